"""
DTOs -- immutable read models returned by the part services.

Responsibility:
    Services and selectors never hand ORM entities to callers; they return
    these frozen dataclasses.  ``from_model`` class methods are the boundary
    converters and are only invoked from services/ and selectors/.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import UUID

from bom_kernel.domain.lifecycle import PartStatus

if TYPE_CHECKING:
    from bom_kernel.models.achat import PartAchat
    from bom_kernel.models.affaire_link import AffairePartLink
    from bom_kernel.models.bom import BomLine
    from bom_kernel.models.document import PartDocument
    from bom_kernel.models.family import PartFamily
    from bom_kernel.models.history import PartHistoryEntry
    from bom_kernel.models.operation import PartOperation
    from bom_kernel.models.part import Part

T = TypeVar("T")


class PartInclude(str, Enum):
    """Child collections that ``get`` can hydrate."""

    NOMENCLATURE = "nomenclature"
    OPERATIONS = "operations"
    ACHATS = "achats"
    HISTORY = "history"
    DOCUMENTS = "documents"
    AFFAIRES = "affaires"

    @classmethod
    def parse(cls, raw: str | None) -> frozenset["PartInclude"]:
        """
        Parse a comma-separated include list ("nomenclature,history").

        None means DEFAULT_INCLUDES.  Unknown names are ignored.
        """
        if raw is None:
            return DEFAULT_INCLUDES
        known = {m.value: m for m in cls}
        return frozenset(
            known[name.strip()]
            for name in raw.split(",")
            if name.strip() in known
        )


DEFAULT_INCLUDES: frozenset[PartInclude] = frozenset({
    PartInclude.NOMENCLATURE,
    PartInclude.OPERATIONS,
    PartInclude.ACHATS,
    PartInclude.HISTORY,
})

ALL_INCLUDES: frozenset[PartInclude] = frozenset(PartInclude)


@dataclass(frozen=True)
class FamilyInfo:
    id: UUID
    code: str
    designation: str
    type_famille: str | None
    section: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, model: PartFamily) -> FamilyInfo:
        return cls(
            id=model.id,
            code=model.code,
            designation=model.designation,
            type_famille=model.type_famille,
            section=model.section,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class BomLineInfo:
    id: UUID
    parent_part_id: UUID
    child_part_id: UUID
    rang: int
    quantite: Decimal
    repere: str | None
    designation: str | None
    # Child part summary (None when the child has been soft-deleted)
    child_code_piece: str | None = None
    child_designation: str | None = None

    @classmethod
    def from_model(cls, model: BomLine, child: Part | None = None) -> BomLineInfo:
        return cls(
            id=model.id,
            parent_part_id=model.parent_part_id,
            child_part_id=model.child_part_id,
            rang=model.rang,
            quantite=model.quantite,
            repere=model.repere,
            designation=model.designation,
            child_code_piece=child.code_piece if child is not None else None,
            child_designation=child.designation if child is not None else None,
        )


@dataclass(frozen=True)
class OperationInfo:
    id: UUID
    part_id: UUID
    phase: int
    designation: str
    designation_2: str | None
    cf_id: str | None
    prix: Decimal
    coef: Decimal
    tp: Decimal
    tf_unit: Decimal
    qte: Decimal
    taux_horaire: Decimal
    temps_total: Decimal
    cout_mo: Decimal

    @classmethod
    def from_model(cls, model: PartOperation) -> OperationInfo:
        return cls(
            id=model.id,
            part_id=model.part_id,
            phase=model.phase,
            designation=model.designation,
            designation_2=model.designation_2,
            cf_id=model.cf_id,
            prix=model.prix,
            coef=model.coef,
            tp=model.tp,
            tf_unit=model.tf_unit,
            qte=model.qte,
            taux_horaire=model.taux_horaire,
            temps_total=model.temps_total,
            cout_mo=model.cout_mo,
        )


@dataclass(frozen=True)
class AchatInfo:
    id: UUID
    part_id: UUID
    phase: int | None
    famille_piece_id: UUID | None
    nom: str | None
    article_id: UUID | None
    fournisseur_id: UUID | None
    fournisseur_nom: str | None
    fournisseur_code: str | None
    quantite: Decimal
    quantite_brut_mm: Decimal | None
    longueur_mm: Decimal | None
    coefficient_chute: Decimal | None
    quantite_pieces: Decimal | None
    prix_par_quantite: Decimal | None
    tarif: Decimal | None
    prix: Decimal | None
    unite_prix: str | None
    pu_achat: Decimal
    tva_achat: Decimal
    total_achat_ht: Decimal
    total_achat_ttc: Decimal
    designation: str | None
    designation_2: str | None
    designation_3: str | None

    @classmethod
    def from_model(cls, model: PartAchat) -> AchatInfo:
        return cls(
            id=model.id,
            part_id=model.part_id,
            phase=model.phase,
            famille_piece_id=model.famille_piece_id,
            nom=model.nom,
            article_id=model.article_id,
            fournisseur_id=model.fournisseur_id,
            fournisseur_nom=model.fournisseur_nom,
            fournisseur_code=model.fournisseur_code,
            quantite=model.quantite,
            quantite_brut_mm=model.quantite_brut_mm,
            longueur_mm=model.longueur_mm,
            coefficient_chute=model.coefficient_chute,
            quantite_pieces=model.quantite_pieces,
            prix_par_quantite=model.prix_par_quantite,
            tarif=model.tarif,
            prix=model.prix,
            unite_prix=model.unite_prix,
            pu_achat=model.pu_achat,
            tva_achat=model.tva_achat,
            total_achat_ht=model.total_achat_ht,
            total_achat_ttc=model.total_achat_ttc,
            designation=model.designation,
            designation_2=model.designation_2,
            designation_3=model.designation_3,
        )


@dataclass(frozen=True)
class HistoryEntryInfo:
    id: UUID
    part_id: UUID
    occurred_at: datetime
    actor_id: UUID
    ancien_statut: PartStatus | None
    nouveau_statut: PartStatus
    commentaire: str | None

    @classmethod
    def from_model(cls, model: PartHistoryEntry) -> HistoryEntryInfo:
        return cls(
            id=model.id,
            part_id=model.part_id,
            occurred_at=model.occurred_at,
            actor_id=model.actor_id,
            ancien_statut=(
                PartStatus(model.ancien_statut) if model.ancien_statut is not None else None
            ),
            nouveau_statut=PartStatus(model.nouveau_statut),
            commentaire=model.commentaire,
        )


@dataclass(frozen=True)
class DocumentInfo:
    id: UUID
    part_id: UUID
    original_name: str
    stored_name: str
    storage_path: str
    mime_type: str
    size_bytes: int
    sha256: str
    label: str | None
    uploaded_by_id: UUID
    created_at: datetime
    removed_at: datetime | None

    @classmethod
    def from_model(cls, model: PartDocument) -> DocumentInfo:
        return cls(
            id=model.id,
            part_id=model.part_id,
            original_name=model.original_name,
            stored_name=model.stored_name,
            storage_path=model.storage_path,
            mime_type=model.mime_type,
            size_bytes=model.size_bytes,
            sha256=model.sha256,
            label=model.label,
            uploaded_by_id=model.uploaded_by_id,
            created_at=model.created_at,
            removed_at=model.removed_at,
        )


@dataclass(frozen=True)
class DownloadableDocument:
    """Document metadata plus the resolved file to stream."""

    document: DocumentInfo
    path: Path


@dataclass(frozen=True)
class AffaireLinkInfo:
    id: UUID
    affaire_id: int
    part_id: UUID
    role: str
    created_at: datetime
    updated_at: datetime
    # Part summary, filled by list_parts_for_affaire
    code_piece: str | None = None
    designation: str | None = None

    @property
    def is_main(self) -> bool:
        return self.role == "MAIN"

    @classmethod
    def from_model(cls, model: AffairePartLink, part: Part | None = None) -> AffaireLinkInfo:
        role = model.role.value if isinstance(model.role, Enum) else model.role
        return cls(
            id=model.id,
            affaire_id=model.affaire_id,
            part_id=model.part_id,
            role=role,
            created_at=model.created_at,
            updated_at=model.updated_at,
            code_piece=part.code_piece if part is not None else None,
            designation=part.designation if part is not None else None,
        )


@dataclass(frozen=True)
class PartInfo:
    """
    A hydrated part.

    Collections not requested through ``includes`` are empty tuples, never
    missing attributes.
    """

    id: UUID
    famille_id: UUID
    name_piece: str
    code_piece: str
    designation: str
    designation_2: str | None
    prix_unitaire: Decimal
    statut: PartStatus
    en_fabrication: bool
    cycle: int | None
    cycle_fabrication: int | None
    client_id: str | None
    code_client: str | None
    client_name: str | None
    ensemble: bool
    created_at: datetime
    updated_at: datetime
    created_by_id: UUID
    updated_by_id: UUID | None
    bom: tuple[BomLineInfo, ...] = ()
    operations: tuple[OperationInfo, ...] = ()
    achats: tuple[AchatInfo, ...] = ()
    history: tuple[HistoryEntryInfo, ...] = ()
    documents: tuple[DocumentInfo, ...] = ()
    affaires: tuple[AffaireLinkInfo, ...] = ()

    @classmethod
    def from_model(cls, model: Part, **collections) -> PartInfo:
        return cls(
            id=model.id,
            famille_id=model.famille_id,
            name_piece=model.name_piece,
            code_piece=model.code_piece,
            designation=model.designation,
            designation_2=model.designation_2,
            prix_unitaire=model.prix_unitaire,
            statut=PartStatus(model.statut),
            en_fabrication=model.en_fabrication,
            cycle=model.cycle,
            cycle_fabrication=model.cycle_fabrication,
            client_id=model.client_id,
            code_client=model.code_client,
            client_name=model.client_name,
            ensemble=model.ensemble,
            created_at=model.created_at,
            updated_at=model.updated_at,
            created_by_id=model.created_by_id,
            updated_by_id=model.updated_by_id,
            **collections,
        )


@dataclass(frozen=True)
class PartListItem:
    id: UUID
    code_piece: str
    designation: str
    designation_2: str | None
    client_id: str | None
    client_name: str | None
    famille_id: UUID
    statut: PartStatus
    en_fabrication: bool
    prix_unitaire: Decimal
    created_at: datetime
    updated_at: datetime
    bom_count: int
    operations_count: int
    achats_count: int
    cout_mo_total: Decimal
    achats_total_ht: Decimal


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


@dataclass(frozen=True)
class PartStats:
    total: int
    draft: int
    active: int
    in_fabrication: int
    obsolete: int

"""
Commands -- typed inputs accepted by the part services.

Responsibility:
    The validation gate (HTTP layer, out of scope) coerces requests into
    these frozen dataclasses.  The services trust their scalar types and
    ranges and only re-check domain invariants (cycles, status legality,
    uniqueness, concurrency tokens).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Patch commands use the UNSET sentinel so that "not supplied" and
"explicitly set to None" stay distinct.  Client-supplied derived totals
(temps_total, cout_mo, total_achat_*) are accepted for wire compatibility
and then ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from bom_kernel.domain.lifecycle import PartStatus


class _Unset:
    """Marker for a patch field that was not supplied."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class _PatchMixin:
    """Shared helpers for patch commands."""

    def changes(self) -> dict[str, Any]:
        """Supplied fields only, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not UNSET
        }

    @classmethod
    def from_mapping(cls, data: dict[str, Any]):
        """
        Build a patch from a plain dict.

        Raises:
            TypeError: on keys that are not fields of the patch.
        """
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        unknown = set(data) - known
        if unknown:
            raise TypeError(f"Unknown fields for {cls.__name__}: {sorted(unknown)}")
        return cls(**data)


# ---------------------------------------------------------------------------
# Actor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ActorContext:
    """
    Who is acting, plus optional request metadata for the audit record.

    actor_id is mandatory: every mutation and every download is attributed.
    """

    actor_id: UUID
    ip: str | None = None
    user_agent: str | None = None
    path: str | None = None
    client_session_id: str | None = None

    def audit_context(self) -> dict[str, Any]:
        return {
            k: v
            for k, v in (
                ("ip", self.ip),
                ("user_agent", self.user_agent),
                ("path", self.path),
                ("client_session_id", self.client_session_id),
            )
            if v is not None
        }

    def log_fields(self) -> dict[str, Any]:
        """Fields bound into the log context while this actor's call runs."""
        return {
            "actor_id": self.actor_id,
            "client_session_id": self.client_session_id,
            "request_path": self.path,
        }


# ---------------------------------------------------------------------------
# Nomenclature
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BomLineInput:
    child_part_id: UUID
    quantite: Decimal = Decimal("1")
    rang: int | None = None
    repere: str | None = None
    designation: str | None = None


@dataclass(frozen=True)
class BomLinePatch(_PatchMixin):
    child_part_id: UUID = UNSET
    rang: int = UNSET
    quantite: Decimal = UNSET
    repere: str | None = UNSET
    designation: str | None = UNSET


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OperationInput:
    designation: str
    phase: int | None = None
    designation_2: str | None = None
    cf_id: str | None = None
    prix: Decimal = Decimal("0")
    coef: Decimal = Decimal("1")
    tp: Decimal = Decimal("0")
    tf_unit: Decimal = Decimal("0")
    qte: Decimal = Decimal("1")
    taux_horaire: Decimal = Decimal("0")
    # Ignored: recomputed from the fields above
    temps_total: Decimal | None = None
    cout_mo: Decimal | None = None


@dataclass(frozen=True)
class OperationPatch(_PatchMixin):
    phase: int = UNSET
    designation: str = UNSET
    designation_2: str | None = UNSET
    cf_id: str | None = UNSET
    prix: Decimal = UNSET
    coef: Decimal = UNSET
    tp: Decimal = UNSET
    tf_unit: Decimal = UNSET
    qte: Decimal = UNSET
    taux_horaire: Decimal = UNSET
    temps_total: Decimal | None = UNSET
    cout_mo: Decimal | None = UNSET


OPERATION_DERIVED_FIELDS = frozenset({"temps_total", "cout_mo"})


# ---------------------------------------------------------------------------
# Achats
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AchatInput:
    quantite: Decimal = Decimal("1")
    phase: int | None = None
    famille_piece_id: UUID | None = None
    nom: str | None = None
    article_id: UUID | None = None
    fournisseur_id: UUID | None = None
    fournisseur_nom: str | None = None
    fournisseur_code: str | None = None
    quantite_brut_mm: Decimal | None = None
    longueur_mm: Decimal | None = None
    coefficient_chute: Decimal | None = None
    quantite_pieces: Decimal | None = None
    prix_par_quantite: Decimal | None = None
    tarif: Decimal | None = None
    prix: Decimal | None = None
    unite_prix: str | None = None
    pu_achat: Decimal | None = None
    tva_achat: Decimal | None = None
    designation: str | None = None
    designation_2: str | None = None
    designation_3: str | None = None
    # Ignored: recomputed from quantite / pu_achat / tva_achat
    total_achat_ht: Decimal | None = None
    total_achat_ttc: Decimal | None = None


@dataclass(frozen=True)
class AchatPatch(_PatchMixin):
    quantite: Decimal = UNSET
    phase: int | None = UNSET
    famille_piece_id: UUID | None = UNSET
    nom: str | None = UNSET
    article_id: UUID | None = UNSET
    fournisseur_id: UUID | None = UNSET
    fournisseur_nom: str | None = UNSET
    fournisseur_code: str | None = UNSET
    quantite_brut_mm: Decimal | None = UNSET
    longueur_mm: Decimal | None = UNSET
    coefficient_chute: Decimal | None = UNSET
    quantite_pieces: Decimal | None = UNSET
    prix_par_quantite: Decimal | None = UNSET
    tarif: Decimal | None = UNSET
    prix: Decimal | None = UNSET
    unite_prix: str | None = UNSET
    pu_achat: Decimal | None = UNSET
    tva_achat: Decimal | None = UNSET
    designation: str | None = UNSET
    designation_2: str | None = UNSET
    designation_3: str | None = UNSET
    total_achat_ht: Decimal | None = UNSET
    total_achat_ttc: Decimal | None = UNSET


ACHAT_DERIVED_FIELDS = frozenset({"total_achat_ht", "total_achat_ttc"})


# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PartCreate:
    famille_id: UUID
    name_piece: str
    code_piece: str
    designation: str
    prix_unitaire: Decimal = Decimal("0")
    designation_2: str | None = None
    statut: PartStatus = PartStatus.DRAFT
    cycle: int | None = None
    cycle_fabrication: int | None = None
    client_id: str | None = None
    code_client: str | None = None
    client_name: str | None = None
    ensemble: bool = False
    bom: tuple[BomLineInput, ...] = ()
    operations: tuple[OperationInput, ...] = ()
    achats: tuple[AchatInput, ...] = ()


# Scalar columns PartPatch may change
PART_SCALAR_FIELDS = (
    "famille_id",
    "name_piece",
    "code_piece",
    "designation",
    "designation_2",
    "prix_unitaire",
    "cycle",
    "cycle_fabrication",
    "client_id",
    "code_client",
    "client_name",
    "ensemble",
)

# Fields that have their own operation and are refused by update()
PART_RESERVED_FIELDS = (
    "statut",
    "en_fabrication",
    "bom",
    "operations",
    "achats",
    "history",
    "documents",
    "affaires",
)


@dataclass(frozen=True)
class PartPatch(_PatchMixin):
    """
    Partial update of a part's scalar fields.

    The reserved fields exist so a gate can forward them verbatim; the
    service rejects the patch with ReservedFieldError when any is set.
    """

    famille_id: UUID = UNSET
    name_piece: str = UNSET
    code_piece: str = UNSET
    designation: str = UNSET
    designation_2: str | None = UNSET
    prix_unitaire: Decimal = UNSET
    cycle: int | None = UNSET
    cycle_fabrication: int | None = UNSET
    client_id: str | None = UNSET
    code_client: str | None = UNSET
    client_name: str | None = UNSET
    ensemble: bool = UNSET
    # Reserved
    statut: Any = UNSET
    en_fabrication: Any = UNSET
    bom: Any = UNSET
    operations: Any = UNSET
    achats: Any = UNSET
    history: Any = UNSET
    documents: Any = UNSET
    affaires: Any = UNSET
    # Concurrency token, not a column change
    expected_updated_at: datetime | None = None

    def reserved_fields(self) -> list[str]:
        return [
            name for name in PART_RESERVED_FIELDS
            if getattr(self, name) is not UNSET
        ]

    def scalar_changes(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in PART_SCALAR_FIELDS
            if getattr(self, name) is not UNSET
        }


PART_SORT_FIELDS = (
    "created_at",
    "updated_at",
    "code_piece",
    "designation",
    "prix_unitaire",
    "statut",
)


@dataclass(frozen=True)
class PartListQuery:
    q: str | None = None
    client_id: str | None = None
    famille_id: UUID | None = None
    statut: PartStatus | None = None
    page: int = 1
    page_size: int | None = None
    sort_by: str = "updated_at"
    sort_dir: str = "desc"

    def __post_init__(self) -> None:
        if self.sort_by not in PART_SORT_FIELDS:
            raise ValueError(f"Unsupported sort field: {self.sort_by}")
        if self.sort_dir not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort direction: {self.sort_dir}")
        if self.page < 1:
            raise ValueError("page must be >= 1")


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UploadedFile:
    """A file already written to a temporary location by the upload layer."""

    temp_path: str
    original_name: str
    mime_type: str = "application/octet-stream"
    size_bytes: int | None = None
    label: str | None = None


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FamilyCreate:
    code: str
    designation: str
    type_famille: str | None = None
    section: str | None = None

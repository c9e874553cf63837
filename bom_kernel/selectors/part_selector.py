"""
Module: bom_kernel.selectors.part_selector
Responsibility: Read-only queries over parts and their child collections:
    the paginated list with per-part counters and cost roll-ups, the
    hydrated single-part read, status statistics, and the per-collection
    listings used by the sub-services.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Soft-delete opacity: every query over parts filters deleted_at IS NULL.
    - Deterministic ordering: lines by (rang, id), operations and achats by
      (phase, id), history by (occurred_at, seq), documents by
      (created_at, id).  Ties never depend on storage order.
    - List sorting always appends Part.id as a final tie-break so pages do
      not overlap.

Failure modes:
    - Returns None or empty tuples when nothing matches.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from bom_kernel.domain.commands import PartListQuery
from bom_kernel.domain.costing import summarize_part_costs
from bom_kernel.domain.dtos import (
    DEFAULT_INCLUDES,
    AchatInfo,
    AffaireLinkInfo,
    BomLineInfo,
    DocumentInfo,
    FamilyInfo,
    HistoryEntryInfo,
    OperationInfo,
    Page,
    PartInclude,
    PartInfo,
    PartListItem,
    PartStats,
)
from bom_kernel.domain.lifecycle import PartStatus
from bom_kernel.domain.settings import DEFAULT_SETTINGS, KernelSettings
from bom_kernel.models.achat import PartAchat
from bom_kernel.models.affaire_link import AffairePartLink, AffaireRole
from bom_kernel.models.bom import BomLine
from bom_kernel.models.document import PartDocument
from bom_kernel.models.family import PartFamily
from bom_kernel.models.history import PartHistoryEntry
from bom_kernel.models.operation import PartOperation
from bom_kernel.models.part import Part
from bom_kernel.selectors.base import BaseSelector

_SORT_COLUMNS = {
    "created_at": Part.created_at,
    "updated_at": Part.updated_at,
    "code_piece": Part.code_piece,
    "designation": Part.designation,
    "prix_unitaire": Part.prix_unitaire,
    "statut": Part.statut,
}


def _live_part(part_id: UUID):
    return and_(Part.id == part_id, Part.deleted_at.is_(None))


class PartSelector(BaseSelector[Part]):
    """
    Selector for part queries.

    Contract:
        All public methods return DTOs from ``bom_kernel.domain.dtos``.
    """

    def __init__(self, session: Session, settings: KernelSettings | None = None):
        super().__init__(session)
        self._settings = settings or DEFAULT_SETTINGS

    # ------------------------------------------------------------------
    # List
    # ------------------------------------------------------------------

    def _filters(self, query: PartListQuery) -> list:
        clauses = [Part.deleted_at.is_(None)]
        if query.q:
            term = query.q.strip()
            clauses.append(
                or_(
                    Part.code_piece.icontains(term, autoescape=True),
                    Part.designation.icontains(term, autoescape=True),
                    Part.name_piece.icontains(term, autoescape=True),
                )
            )
        if query.client_id is not None:
            clauses.append(Part.client_id == query.client_id)
        if query.famille_id is not None:
            clauses.append(Part.famille_id == query.famille_id)
        if query.statut is not None:
            clauses.append(Part.statut == PartStatus(query.statut).value)
        return clauses

    def list_parts(self, query: PartListQuery) -> Page[PartListItem]:
        """
        One page of live parts with counters and cost roll-ups.

        Counters and sums come from grouped subqueries joined once, so a
        page costs a constant number of statements.
        """
        page_size = self._settings.clamp_page_size(query.page_size)
        clauses = self._filters(query)

        total = self.session.execute(
            select(func.count()).select_from(Part).where(*clauses)
        ).scalar_one()

        bom_stats = (
            select(
                BomLine.parent_part_id.label("part_id"),
                func.count(BomLine.id).label("bom_count"),
            )
            .group_by(BomLine.parent_part_id)
            .subquery()
        )
        op_stats = (
            select(
                PartOperation.part_id.label("part_id"),
                func.count(PartOperation.id).label("operations_count"),
                func.sum(PartOperation.cout_mo).label("cout_mo_total"),
            )
            .group_by(PartOperation.part_id)
            .subquery()
        )
        achat_stats = (
            select(
                PartAchat.part_id.label("part_id"),
                func.count(PartAchat.id).label("achats_count"),
                func.sum(PartAchat.total_achat_ht).label("achats_total_ht"),
            )
            .group_by(PartAchat.part_id)
            .subquery()
        )

        sort_column = _SORT_COLUMNS[query.sort_by]
        order = sort_column.asc() if query.sort_dir == "asc" else sort_column.desc()

        stmt = (
            select(
                Part,
                bom_stats.c.bom_count,
                op_stats.c.operations_count,
                op_stats.c.cout_mo_total,
                achat_stats.c.achats_count,
                achat_stats.c.achats_total_ht,
            )
            .outerjoin(bom_stats, bom_stats.c.part_id == Part.id)
            .outerjoin(op_stats, op_stats.c.part_id == Part.id)
            .outerjoin(achat_stats, achat_stats.c.part_id == Part.id)
            .where(*clauses)
            .order_by(order, Part.id.asc())
            .offset((query.page - 1) * page_size)
            .limit(page_size)
        )

        items = []
        for part, bom_count, ops_count, cout_mo, achats_count, achats_ht in self.session.execute(stmt):
            costs = summarize_part_costs([cout_mo], [achats_ht])
            items.append(
                PartListItem(
                    id=part.id,
                    code_piece=part.code_piece,
                    designation=part.designation,
                    designation_2=part.designation_2,
                    client_id=part.client_id,
                    client_name=part.client_name,
                    famille_id=part.famille_id,
                    statut=PartStatus(part.statut),
                    en_fabrication=part.en_fabrication,
                    prix_unitaire=part.prix_unitaire,
                    created_at=part.created_at,
                    updated_at=part.updated_at,
                    bom_count=bom_count or 0,
                    operations_count=ops_count or 0,
                    achats_count=achats_count or 0,
                    cout_mo_total=costs.cout_mo_total,
                    achats_total_ht=costs.achats_total_ht,
                )
            )

        return Page(items=tuple(items), total=total, page=query.page, page_size=page_size)

    def stats(self) -> PartStats:
        """Counts of live parts, overall and per status."""

        def _count_of(status: PartStatus):
            return func.sum(case((Part.statut == status.value, 1), else_=0))

        row = self.session.execute(
            select(
                func.count(Part.id),
                _count_of(PartStatus.DRAFT),
                _count_of(PartStatus.ACTIVE),
                _count_of(PartStatus.IN_FABRICATION),
                _count_of(PartStatus.OBSOLETE),
            ).where(Part.deleted_at.is_(None))
        ).one()
        total, draft, active, in_fab, obsolete = (int(v or 0) for v in row)
        return PartStats(
            total=total,
            draft=draft,
            active=active,
            in_fabrication=in_fab,
            obsolete=obsolete,
        )

    # ------------------------------------------------------------------
    # Single part
    # ------------------------------------------------------------------

    def get_live_model(self, part_id: UUID) -> Part | None:
        return self.session.execute(
            select(Part).where(_live_part(part_id))
        ).scalar_one_or_none()

    def exists(self, part_id: UUID) -> bool:
        return self.session.execute(
            select(Part.id).where(_live_part(part_id))
        ).first() is not None

    def get_part(
        self,
        part_id: UUID,
        includes: Iterable[PartInclude] | None = None,
    ) -> PartInfo | None:
        """
        Hydrated part, or None when missing or soft-deleted.

        Collections outside ``includes`` are returned as empty tuples.
        """
        part = self.get_live_model(part_id)
        if part is None:
            return None

        wanted = DEFAULT_INCLUDES if includes is None else frozenset(includes)
        collections = {}
        if PartInclude.NOMENCLATURE in wanted:
            collections["bom"] = self.list_bom_lines(part_id)
        if PartInclude.OPERATIONS in wanted:
            collections["operations"] = self.list_operations(part_id)
        if PartInclude.ACHATS in wanted:
            collections["achats"] = self.list_achats(part_id)
        if PartInclude.HISTORY in wanted:
            collections["history"] = self.list_history(part_id)
        if PartInclude.DOCUMENTS in wanted:
            collections["documents"] = self.list_documents(part_id)
        if PartInclude.AFFAIRES in wanted:
            collections["affaires"] = self.list_affaires(part_id)

        return PartInfo.from_model(part, **collections)

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def list_bom_lines(self, parent_part_id: UUID) -> tuple[BomLineInfo, ...]:
        """Lines of one parent with a summary of each live child."""
        rows = self.session.execute(
            select(BomLine, Part)
            .outerjoin(
                Part,
                and_(Part.id == BomLine.child_part_id, Part.deleted_at.is_(None)),
            )
            .where(BomLine.parent_part_id == parent_part_id)
            .order_by(BomLine.rang, BomLine.id)
        ).all()
        return tuple(BomLineInfo.from_model(line, child) for line, child in rows)

    def list_operations(self, part_id: UUID) -> tuple[OperationInfo, ...]:
        rows = self.session.execute(
            select(PartOperation)
            .where(PartOperation.part_id == part_id)
            .order_by(PartOperation.phase, PartOperation.id)
        ).scalars().all()
        return tuple(OperationInfo.from_model(r) for r in rows)

    def list_achats(self, part_id: UUID) -> tuple[AchatInfo, ...]:
        # NULL phases sort last on both backends
        rows = self.session.execute(
            select(PartAchat)
            .where(PartAchat.part_id == part_id)
            .order_by(PartAchat.phase.is_(None), PartAchat.phase, PartAchat.id)
        ).scalars().all()
        return tuple(AchatInfo.from_model(r) for r in rows)

    def list_history(self, part_id: UUID) -> tuple[HistoryEntryInfo, ...]:
        rows = self.session.execute(
            select(PartHistoryEntry)
            .where(PartHistoryEntry.part_id == part_id)
            .order_by(PartHistoryEntry.occurred_at, PartHistoryEntry.seq)
        ).scalars().all()
        return tuple(HistoryEntryInfo.from_model(r) for r in rows)

    def list_documents(self, part_id: UUID) -> tuple[DocumentInfo, ...]:
        """Documents that have not been removed."""
        rows = self.session.execute(
            select(PartDocument)
            .where(
                PartDocument.part_id == part_id,
                PartDocument.removed_at.is_(None),
            )
            .order_by(PartDocument.created_at, PartDocument.id)
        ).scalars().all()
        return tuple(DocumentInfo.from_model(r) for r in rows)

    def list_affaires(self, part_id: UUID) -> tuple[AffaireLinkInfo, ...]:
        rows = self.session.execute(
            select(AffairePartLink)
            .where(AffairePartLink.part_id == part_id)
            .order_by(AffairePartLink.affaire_id)
        ).scalars().all()
        return tuple(AffaireLinkInfo.from_model(r) for r in rows)

    def list_parts_for_affaire(self, affaire_id: int) -> tuple[AffaireLinkInfo, ...]:
        """Live parts linked to an affaire, MAIN first then by code."""
        rows = self.session.execute(
            select(AffairePartLink, Part)
            .join(Part, Part.id == AffairePartLink.part_id)
            .where(
                AffairePartLink.affaire_id == affaire_id,
                Part.deleted_at.is_(None),
            )
            .order_by(
                case((AffairePartLink.role == AffaireRole.MAIN.value, 0), else_=1),
                Part.code_piece,
            )
        ).all()
        return tuple(AffaireLinkInfo.from_model(link, part) for link, part in rows)

    def get_main_part_for_affaire(self, affaire_id: int) -> UUID | None:
        return self.session.execute(
            select(AffairePartLink.part_id).where(
                AffairePartLink.affaire_id == affaire_id,
                AffairePartLink.role == AffaireRole.MAIN.value,
            )
        ).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Families
    # ------------------------------------------------------------------

    def list_families(self) -> tuple[FamilyInfo, ...]:
        rows = self.session.execute(
            select(PartFamily).order_by(PartFamily.code)
        ).scalars().all()
        return tuple(FamilyInfo.from_model(r) for r in rows)

    def get_family(self, family_id: UUID) -> FamilyInfo | None:
        family = self.session.get(PartFamily, family_id)
        return FamilyInfo.from_model(family) if family is not None else None

    def family_exists(self, family_id: UUID) -> bool:
        return self.session.execute(
            select(PartFamily.id).where(PartFamily.id == family_id)
        ).first() is not None

    def cost_summary(self, part_id: UUID):
        """Labour and purchase totals of one part from its stored rows."""
        cout_mo = self.session.execute(
            select(PartOperation.cout_mo).where(PartOperation.part_id == part_id)
        ).scalars().all()
        achats = self.session.execute(
            select(PartAchat.total_achat_ht, PartAchat.total_achat_ttc)
            .where(PartAchat.part_id == part_id)
        ).all()
        return summarize_part_costs(
            cout_mo,
            [ht for ht, _ in achats],
            [ttc for _, ttc in achats],
        )


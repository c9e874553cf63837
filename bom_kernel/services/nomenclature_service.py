"""
NomenclatureService -- cycle-safe mutation of the BOM graph.

Responsibility:
    Adds, edits, removes and reorders the BOM lines of a parent part.
    Before any edge is written (on add, on a child change, and for lines
    supplied at part creation or duplication) it proves that the edge keeps
    the nomenclature acyclic.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PartService.

Invariants enforced:
    - Acyclicity: an edge parent -> child is rejected when parent == child
      or parent is a descendant of child.  Descendants are computed by an
      iterative breadth-first closure over BOM rows whose child part is
      not soft-deleted, level by level, seeded at the child.
    - Bounded traversal: at most ``max_bom_depth`` levels are explored.  A
      closure that is still growing at the bound is rejected as a cycle
      rather than accepted unproven.
    - The child of every new or redirected line is a live part.
    - Parent and child rows are locked (in id order) for the check, so two
      writers adding the two halves of a direct cycle serialize.

Failure modes:
    - PartNotFoundError: parent or child missing / soft-deleted.
    - BomLineNotFoundError: line missing or owned by another parent.
    - BomCycleError: edge would close a cycle.
    - ReorderMismatchError: reorder ids differ from the current lines.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from bom_kernel.db.types import to_decimal
from bom_kernel.domain.commands import ActorContext, BomLineInput, BomLinePatch
from bom_kernel.domain.dtos import BomLineInfo
from bom_kernel.exceptions import BomCycleError, BomLineNotFoundError, PartNotFoundError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.models.bom import BomLine
from bom_kernel.models.part import Part
from bom_kernel.services.part_collection import PartCollectionService

logger = get_logger("services.nomenclature")


class NomenclatureService(PartCollectionService[BomLine]):
    """
    BOM sub-repository.

    Non-goals:
        - Does NOT explode quantities through the tree (no MRP here).
    """

    model = BomLine
    owner_attr = "parent_part_id"
    position_attr = "rang"
    collection_name = "bom"
    reorder_action = AuditAction.BOM_REORDERED

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------

    def descendants(
        self,
        part_id: UUID,
        stop_at: UUID | None = None,
    ) -> dict[UUID, UUID]:
        """
        Live descendants of ``part_id`` mapped to the part they were reached from.

        The walk ends early once ``stop_at`` has been reached.  A tree
        exactly ``max_bom_depth`` levels deep is walked in full; one more
        level is never explored.

        Raises:
            BomCycleError: if a part lies deeper than ``max_bom_depth``
                levels below ``part_id`` (reported as stop_at -> part_id).
        """
        reached_from: dict[UUID, UUID] = {}
        frontier = {part_id}
        depth = 0
        while frontier:
            rows = self.session.execute(
                select(BomLine.parent_part_id, BomLine.child_part_id)
                .join(Part, Part.id == BomLine.child_part_id)
                .where(
                    BomLine.parent_part_id.in_(frontier),
                    Part.deleted_at.is_(None),
                )
            ).all()
            next_frontier = set()
            for parent, child in rows:
                if child == part_id or child in reached_from:
                    continue
                if depth >= self._settings.max_bom_depth:
                    logger.warning(
                        "bom_depth_limit_reached",
                        extra={
                            "part_id": str(part_id),
                            "max_bom_depth": self._settings.max_bom_depth,
                        },
                    )
                    raise BomCycleError(stop_at or part_id, part_id)
                reached_from[child] = parent
                if child == stop_at:
                    return reached_from
                next_frontier.add(child)
            frontier = next_frontier
            depth += 1
        return reached_from

    def _path(self, reached_from: dict[UUID, UUID], start: UUID, target: UUID) -> list[str]:
        """Walk back from ``target`` to ``start`` through the BFS parents."""
        path = [target]
        node = target
        while node != start:
            node = reached_from[node]
            path.append(node)
        path.reverse()
        return [str(p) for p in path]

    def assert_acyclic(self, parent_id: UUID, child_id: UUID) -> None:
        """
        Reject the edge parent -> child if it would close a cycle.

        Raises:
            BomCycleError: parent == child, or parent reachable from child.
        """
        if parent_id == child_id:
            logger.warning(
                "bom_cycle_rejected",
                extra={"parent_id": str(parent_id), "child_id": str(child_id), "depth": 0},
            )
            raise BomCycleError(parent_id, child_id)

        reached_from = self.descendants(child_id, stop_at=parent_id)
        if parent_id in reached_from:
            path = self._path(reached_from, child_id, parent_id)
            logger.warning(
                "bom_cycle_rejected",
                extra={
                    "parent_id": str(parent_id),
                    "child_id": str(child_id),
                    "depth": len(path) - 1,
                },
            )
            raise BomCycleError(parent_id, child_id, path)

    def _lock_edge(self, parent_id: UUID, child_id: UUID) -> Part:
        """Lock parent and child; return the parent."""
        locked = self._parts.lock_many([parent_id, child_id])
        if parent_id not in locked:
            raise PartNotFoundError(parent_id)
        if child_id not in locked:
            raise PartNotFoundError(child_id)
        return locked[parent_id]

    # ------------------------------------------------------------------
    # Row building
    # ------------------------------------------------------------------

    def insert_line(
        self,
        parent_id: UUID,
        line: BomLineInput,
        rang: int | None = None,
        require_live_child: bool = True,
    ) -> BomLine:
        """
        Check and insert one line without touching the parent or auditing.

        Used directly by part creation and duplication, which audit once
        for the whole aggregate.  The parent must already be locked or new.
        Duplication copies lines whose child has since been soft-deleted,
        so it passes ``require_live_child=False``.
        """
        if require_live_child and self.session.execute(
            select(Part.id).where(Part.id == line.child_part_id, Part.deleted_at.is_(None))
        ).first() is None:
            raise PartNotFoundError(line.child_part_id)

        self.assert_acyclic(parent_id, line.child_part_id)

        if rang is None:
            rang = line.rang if line.rang is not None else self.next_position(parent_id)
        row = BomLine(
            parent_part_id=parent_id,
            child_part_id=line.child_part_id,
            rang=rang,
            quantite=to_decimal(line.quantite),
            repere=line.repere,
            designation=line.designation,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def _info(self, row: BomLine) -> BomLineInfo:
        child = self.session.get(Part, row.child_part_id)
        if child is not None and child.is_deleted:
            child = None
        return BomLineInfo.from_model(row, child)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_line(self, parent_id: UUID, line: BomLineInput, actor: ActorContext) -> BomLineInfo:
        """
        Add ``line`` under ``parent_id``.

        Postconditions:
            - The graph is still acyclic.
            - rang defaults to max(rang) + 10, or 10 for the first line.
        """
        parent = self._lock_edge(parent_id, line.child_part_id)
        row = self.insert_line(parent_id, line)

        self._finish(
            parent,
            actor,
            AuditAction.BOM_LINE_ADDED,
            {
                "line_id": row.id,
                "child_part_id": row.child_part_id,
                "rang": row.rang,
                "quantite": row.quantite,
            },
        )
        logger.info(
            "bom_line_added",
            extra={
                "part_id": str(parent_id),
                "line_id": str(row.id),
                "child_part_id": str(row.child_part_id),
                "rang": row.rang,
            },
        )
        return self._info(row)

    def update_line(
        self,
        parent_id: UUID,
        line_id: UUID,
        patch: BomLinePatch,
        actor: ActorContext,
    ) -> BomLineInfo:
        """
        Apply ``patch`` to one line.

        Redirecting the line to another child re-runs the cycle check
        against the new child before anything is written.
        """
        changes = patch.changes()
        new_child = changes.get("child_part_id")

        if new_child is not None:
            parent = self._lock_edge(parent_id, new_child)
        else:
            parent = self._parts.lock_live(parent_id)

        row = self._row(parent_id, line_id)
        if row is None:
            raise BomLineNotFoundError(parent_id, line_id)

        if new_child is not None and new_child != row.child_part_id:
            self.assert_acyclic(parent_id, new_child)

        for name, value in changes.items():
            if name == "quantite":
                value = to_decimal(value)
            setattr(row, name, value)

        self._finish(
            parent,
            actor,
            AuditAction.BOM_LINE_UPDATED,
            {"line_id": row.id, "changes": changes},
        )
        logger.info(
            "bom_line_updated",
            extra={
                "part_id": str(parent_id),
                "line_id": str(line_id),
                "fields": sorted(changes),
            },
        )
        return self._info(row)

    def delete_line(self, parent_id: UUID, line_id: UUID, actor: ActorContext) -> bool:
        """Remove one line.  False when the line does not exist on this parent."""
        parent = self._parts.lock_live(parent_id)
        row = self._row(parent_id, line_id)
        if row is None:
            return False

        child_id = row.child_part_id
        self.session.delete(row)
        self._finish(
            parent,
            actor,
            AuditAction.BOM_LINE_DELETED,
            {"line_id": line_id, "child_part_id": child_id},
        )
        logger.info(
            "bom_line_deleted",
            extra={"part_id": str(parent_id), "line_id": str(line_id)},
        )
        return True

    def reorder(
        self,
        parent_id: UUID,
        ordered_ids: Sequence[UUID],
        actor: ActorContext,
    ) -> tuple[BomLineInfo, ...]:
        """Renumber lines 10, 20, 30, ... in the given order."""
        self._reorder(parent_id, ordered_ids, actor)
        return self._selector.list_bom_lines(parent_id)

    def list_lines(self, parent_id: UUID) -> tuple[BomLineInfo, ...]:
        self._parts.get_live(parent_id)
        return self._selector.list_bom_lines(parent_id)

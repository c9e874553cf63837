"""
PartCollectionService -- shared shape of the BOM, operation and achat services.

Responsibility:
    The three ordered child collections of a part share the same rules:
    the owning part is locked before any change, new rows default to
    max(position) + step, reorder() accepts exactly the current set of ids
    and renumbers densely, and every change advances the part's
    ``updated_at`` and leaves one audit record.  Subclasses bind the model,
    its owner column and its position column.

Architecture position:
    Kernel > Services -- imperative shell.  Subclassed by
    NomenclatureService, OperationService and AchatService.

Failure modes:
    - PartNotFoundError: owning part missing or soft-deleted.
    - ReorderMismatchError: reorder ids differ from the current set.
"""

from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bom_kernel.domain.clock import Clock
from bom_kernel.domain.commands import ActorContext
from bom_kernel.domain.ordering import compare_id_sets, dense_positions, next_position
from bom_kernel.domain.settings import DEFAULT_SETTINGS, KernelSettings
from bom_kernel.exceptions import ReorderMismatchError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.models.part import Part
from bom_kernel.selectors.part_selector import PartSelector
from bom_kernel.services.auditor_service import AuditRecorder
from bom_kernel.services.base import AuditedService, ModelType
from bom_kernel.services.part_repository import PartRepository

logger = get_logger("services.part_collection")

PART_ENTITY = "part"


class PartCollectionService(AuditedService[ModelType]):
    """Base for services that own one ordered child collection of a part."""

    model: type
    owner_attr: str = "part_id"
    position_attr: str = "phase"
    collection_name: str = ""
    reorder_action: AuditAction

    def __init__(
        self,
        session: Session,
        audit: AuditRecorder | None,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
    ):
        super().__init__(session, audit, clock)
        self._settings = settings or DEFAULT_SETTINGS
        self._parts = PartRepository(session, self._clock)
        self._selector = PartSelector(session, self._settings)

    # ------------------------------------------------------------------
    # Row access
    # ------------------------------------------------------------------

    def _owner_column(self):
        return getattr(self.model, self.owner_attr)

    def rows(self, part_id: UUID) -> list[ModelType]:
        return list(
            self.session.execute(
                select(self.model)
                .where(self._owner_column() == part_id)
                .order_by(self.model.id)
            ).scalars().all()
        )

    def _row(self, part_id: UUID, row_id: UUID) -> ModelType | None:
        """A row of this part, or None (rows of other parts are invisible)."""
        return self.session.execute(
            select(self.model).where(
                self.model.id == row_id,
                self._owner_column() == part_id,
            )
        ).scalar_one_or_none()

    def next_position(self, part_id: UUID) -> int:
        column = getattr(self.model, self.position_attr)
        existing = self.session.execute(
            select(column).where(self._owner_column() == part_id)
        ).scalars().all()
        return next_position(existing, self._settings.position_step)

    # ------------------------------------------------------------------
    # Shared write steps
    # ------------------------------------------------------------------

    def _finish(
        self,
        part: Part,
        actor: ActorContext,
        action: AuditAction,
        details: dict[str, Any],
    ) -> None:
        """Advance the part token, flush and audit."""
        self._parts.touch(part, actor.actor_id)
        self.session.flush()
        self._audit.record(actor, action, PART_ENTITY, part.id, details)

    def _reorder(
        self,
        part_id: UUID,
        ordered_ids: Sequence[UUID],
        actor: ActorContext,
    ) -> None:
        part = self._parts.lock_live(part_id)
        rows = self.rows(part_id)

        diff = compare_id_sets((r.id for r in rows), ordered_ids)
        if not diff.matches:
            logger.warning(
                "reorder_rejected",
                extra={
                    "part_id": str(part_id),
                    "collection": self.collection_name,
                    "missing": list(diff.missing),
                    "unexpected": list(diff.unexpected),
                    "duplicated": list(diff.duplicated),
                },
            )
            raise ReorderMismatchError(
                self.collection_name,
                part_id,
                list(diff.missing),
                list(diff.unexpected),
                list(diff.duplicated),
            )

        by_id = {str(r.id): r for r in rows}
        positions = dense_positions(len(ordered_ids), self._settings.position_step)
        for row_id, position in zip(ordered_ids, positions):
            setattr(by_id[str(row_id)], self.position_attr, position)

        self._finish(
            part,
            actor,
            self.reorder_action,
            {"order": [str(i) for i in ordered_ids]},
        )
        logger.info(
            "part_collection_reordered",
            extra={
                "part_id": str(part_id),
                "collection": self.collection_name,
                "count": len(rows),
            },
        )

"""
OperationService -- manufacturing operations of a part.

Responsibility:
    Add / update / delete / reorder the operations of a part, keyed on
    ``phase``.  temps_total and cout_mo are recomputed by the costing
    calculator on every write; values supplied by the caller are dropped.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PartService.

Failure modes:
    - PartNotFoundError, OperationNotFoundError, ReorderMismatchError.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from bom_kernel.db.types import to_decimal
from bom_kernel.domain.commands import (
    OPERATION_DERIVED_FIELDS,
    ActorContext,
    OperationInput,
    OperationPatch,
)
from bom_kernel.domain.costing import compute_operation_totals
from bom_kernel.domain.dtos import OperationInfo
from bom_kernel.exceptions import OperationNotFoundError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.models.operation import PartOperation
from bom_kernel.services.part_collection import PartCollectionService

logger = get_logger("services.operations")

_DECIMAL_FIELDS = ("prix", "coef", "tp", "tf_unit", "qte", "taux_horaire")


def _recompute(row: PartOperation) -> None:
    totals = compute_operation_totals(
        tp=row.tp,
        tf_unit=row.tf_unit,
        qte=row.qte,
        coef=row.coef,
        taux_horaire=row.taux_horaire,
    )
    row.temps_total = totals.temps_total
    row.cout_mo = totals.cout_mo


class OperationService(PartCollectionService[PartOperation]):
    model = PartOperation
    collection_name = "operations"
    reorder_action = AuditAction.OPERATIONS_REORDERED

    def insert_operation(
        self,
        part_id: UUID,
        cmd: OperationInput,
        phase: int | None = None,
    ) -> PartOperation:
        """Build, cost and flush one row without touching the part or auditing."""
        if phase is None:
            phase = cmd.phase if cmd.phase is not None else self.next_position(part_id)
        row = PartOperation(
            part_id=part_id,
            phase=phase,
            designation=cmd.designation,
            designation_2=cmd.designation_2,
            cf_id=cmd.cf_id,
            **{name: to_decimal(getattr(cmd, name)) for name in _DECIMAL_FIELDS},
        )
        _recompute(row)
        self.session.add(row)
        self.session.flush()
        return row

    def add_operation(
        self,
        part_id: UUID,
        cmd: OperationInput,
        actor: ActorContext,
    ) -> OperationInfo:
        part = self._parts.lock_live(part_id)
        row = self.insert_operation(part_id, cmd)
        self._finish(
            part,
            actor,
            AuditAction.OPERATION_ADDED,
            {
                "operation_id": row.id,
                "phase": row.phase,
                "temps_total": row.temps_total,
                "cout_mo": row.cout_mo,
            },
        )
        logger.info(
            "operation_added",
            extra={
                "part_id": str(part_id),
                "operation_id": str(row.id),
                "phase": row.phase,
                "cout_mo": str(row.cout_mo),
            },
        )
        return OperationInfo.from_model(row)

    def update_operation(
        self,
        part_id: UUID,
        operation_id: UUID,
        patch: OperationPatch,
        actor: ActorContext,
    ) -> OperationInfo:
        part = self._parts.lock_live(part_id)
        row = self._row(part_id, operation_id)
        if row is None:
            raise OperationNotFoundError(part_id, operation_id)

        changes = {
            k: v for k, v in patch.changes().items()
            if k not in OPERATION_DERIVED_FIELDS
        }
        for name, value in changes.items():
            if name in _DECIMAL_FIELDS:
                value = to_decimal(value)
            setattr(row, name, value)
        _recompute(row)

        self._finish(
            part,
            actor,
            AuditAction.OPERATION_UPDATED,
            {
                "operation_id": row.id,
                "changes": changes,
                "temps_total": row.temps_total,
                "cout_mo": row.cout_mo,
            },
        )
        logger.info(
            "operation_updated",
            extra={
                "part_id": str(part_id),
                "operation_id": str(operation_id),
                "fields": sorted(changes),
            },
        )
        return OperationInfo.from_model(row)

    def delete_operation(self, part_id: UUID, operation_id: UUID, actor: ActorContext) -> bool:
        part = self._parts.lock_live(part_id)
        row = self._row(part_id, operation_id)
        if row is None:
            return False
        self.session.delete(row)
        self._finish(
            part,
            actor,
            AuditAction.OPERATION_DELETED,
            {"operation_id": operation_id},
        )
        logger.info(
            "operation_deleted",
            extra={"part_id": str(part_id), "operation_id": str(operation_id)},
        )
        return True

    def reorder_operations(
        self,
        part_id: UUID,
        ordered_ids: Sequence[UUID],
        actor: ActorContext,
    ) -> tuple[OperationInfo, ...]:
        self._reorder(part_id, ordered_ids, actor)
        return self._selector.list_operations(part_id)

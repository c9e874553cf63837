"""
AchatService -- purchased-component lines of a part.

Responsibility:
    Add / update / delete / reorder achats, keyed on ``phase``.
    total_achat_ht and total_achat_ttc are recomputed on every write from
    quantite, pu_achat and tva_achat.  A missing pu_achat is stored as 0
    and a missing tva_achat as the configured default VAT rate.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PartService.

Failure modes:
    - PartNotFoundError, AchatNotFoundError, ReorderMismatchError.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from bom_kernel.db.types import to_decimal
from bom_kernel.domain.commands import (
    ACHAT_DERIVED_FIELDS,
    AchatInput,
    AchatPatch,
    ActorContext,
)
from bom_kernel.domain.costing import compute_achat_totals
from bom_kernel.domain.dtos import AchatInfo
from bom_kernel.exceptions import AchatNotFoundError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.achat import PartAchat
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.services.part_collection import PartCollectionService

logger = get_logger("services.achats")

_DECIMAL_FIELDS = frozenset({
    "quantite",
    "quantite_brut_mm",
    "longueur_mm",
    "coefficient_chute",
    "quantite_pieces",
    "prix_par_quantite",
    "tarif",
    "prix",
    "pu_achat",
    "tva_achat",
})


def _coerce(name: str, value):
    if name in _DECIMAL_FIELDS and value is not None:
        return to_decimal(value)
    return value


class AchatService(PartCollectionService[PartAchat]):
    model = PartAchat
    collection_name = "achats"
    reorder_action = AuditAction.ACHATS_REORDERED

    def _normalize_prices(self, row: PartAchat) -> None:
        if row.pu_achat is None:
            row.pu_achat = Decimal(0)
        if row.tva_achat is None:
            row.tva_achat = self._settings.default_vat_pct
        totals = compute_achat_totals(row.quantite, row.pu_achat, row.tva_achat)
        row.total_achat_ht = totals.total_achat_ht
        row.total_achat_ttc = totals.total_achat_ttc

    def insert_achat(
        self,
        part_id: UUID,
        cmd: AchatInput,
        phase: int | None = None,
    ) -> PartAchat:
        """Build, cost and flush one row without touching the part or auditing."""
        values = {
            f.name: _coerce(f.name, getattr(cmd, f.name))
            for f in fields(cmd)
            if f.name not in ACHAT_DERIVED_FIELDS and f.name != "phase"
        }
        if phase is None:
            phase = cmd.phase if cmd.phase is not None else self.next_position(part_id)
        row = PartAchat(part_id=part_id, phase=phase, **values)
        self._normalize_prices(row)
        self.session.add(row)
        self.session.flush()
        return row

    def add_achat(self, part_id: UUID, cmd: AchatInput, actor: ActorContext) -> AchatInfo:
        part = self._parts.lock_live(part_id)
        row = self.insert_achat(part_id, cmd)
        self._finish(
            part,
            actor,
            AuditAction.ACHAT_ADDED,
            {
                "achat_id": row.id,
                "phase": row.phase,
                "total_achat_ht": row.total_achat_ht,
                "total_achat_ttc": row.total_achat_ttc,
            },
        )
        logger.info(
            "achat_added",
            extra={
                "part_id": str(part_id),
                "achat_id": str(row.id),
                "total_achat_ht": str(row.total_achat_ht),
            },
        )
        return AchatInfo.from_model(row)

    def update_achat(
        self,
        part_id: UUID,
        achat_id: UUID,
        patch: AchatPatch,
        actor: ActorContext,
    ) -> AchatInfo:
        part = self._parts.lock_live(part_id)
        row = self._row(part_id, achat_id)
        if row is None:
            raise AchatNotFoundError(part_id, achat_id)

        changes = {
            k: v for k, v in patch.changes().items()
            if k not in ACHAT_DERIVED_FIELDS
        }
        for name, value in changes.items():
            setattr(row, name, _coerce(name, value))
        self._normalize_prices(row)

        self._finish(
            part,
            actor,
            AuditAction.ACHAT_UPDATED,
            {
                "achat_id": row.id,
                "changes": changes,
                "total_achat_ht": row.total_achat_ht,
                "total_achat_ttc": row.total_achat_ttc,
            },
        )
        logger.info(
            "achat_updated",
            extra={
                "part_id": str(part_id),
                "achat_id": str(achat_id),
                "fields": sorted(changes),
            },
        )
        return AchatInfo.from_model(row)

    def delete_achat(self, part_id: UUID, achat_id: UUID, actor: ActorContext) -> bool:
        part = self._parts.lock_live(part_id)
        row = self._row(part_id, achat_id)
        if row is None:
            return False
        self.session.delete(row)
        self._finish(part, actor, AuditAction.ACHAT_DELETED, {"achat_id": achat_id})
        logger.info(
            "achat_deleted",
            extra={"part_id": str(part_id), "achat_id": str(achat_id)},
        )
        return True

    def reorder_achats(
        self,
        part_id: UUID,
        ordered_ids: Sequence[UUID],
        actor: ActorContext,
    ) -> tuple[AchatInfo, ...]:
        self._reorder(part_id, ordered_ids, actor)
        return self._selector.list_achats(part_id)

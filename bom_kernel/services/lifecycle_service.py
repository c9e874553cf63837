"""
LifecycleService -- status transitions and the part history.

Responsibility:
    The only writer of Part.statut / Part.en_fabrication after creation and
    the only writer of PartHistoryEntry rows.

Architecture position:
    Kernel > Services -- imperative shell.  Consults the pure transition
    table in ``bom_kernel.domain.lifecycle``.  Called by PartService for
    transitions and for the creation / duplication history entry.

Invariants enforced:
    - Row lock: the part is locked (``SELECT ... FOR UPDATE``) before its
      status is read; a supplied expected_updated_at is compared under
      that lock.
    - Legality: every applied (from, to) pair is in ALLOWED_TRANSITIONS;
      OBSOLETE has no outgoing transition.
    - en_fabrication is always written together with statut.
    - A same-status request is a no-op: no history, no audit.
    - History order: each entry takes a value from the ``part_history``
      sequence, which breaks ties between entries sharing occurred_at.

Failure modes:
    - PartNotFoundError, OptimisticLockError, InvalidTransitionError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from bom_kernel.domain.commands import ActorContext
from bom_kernel.domain.lifecycle import (
    PartStatus,
    TransitionOutcome,
    en_fabrication_for,
    evaluate_transition,
)
from bom_kernel.exceptions import InvalidTransitionError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.models.history import PartHistoryEntry
from bom_kernel.models.part import Part
from bom_kernel.services.base import AuditedService
from bom_kernel.services.part_collection import PART_ENTITY
from bom_kernel.services.part_repository import PartRepository
from bom_kernel.services.sequence_service import SequenceService

logger = get_logger("services.lifecycle")


@dataclass(frozen=True)
class TransitionResult:
    part_id: UUID
    outcome: TransitionOutcome
    from_status: PartStatus
    to_status: PartStatus

    @property
    def changed(self) -> bool:
        return self.outcome is TransitionOutcome.APPLY


class LifecycleService(AuditedService[PartHistoryEntry]):
    def __init__(self, session, audit, clock=None):
        super().__init__(session, audit, clock)
        self._parts = PartRepository(session, self._clock)
        self._sequence = SequenceService(session)

    def record_history(
        self,
        part: Part,
        ancien_statut: PartStatus | None,
        nouveau_statut: PartStatus,
        actor: ActorContext,
        commentaire: str | None = None,
        occurred_at: datetime | None = None,
    ) -> PartHistoryEntry:
        """Append one history entry (flushed, not audited)."""
        entry = PartHistoryEntry(
            part_id=part.id,
            seq=self._sequence.next_value(SequenceService.PART_HISTORY),
            occurred_at=occurred_at or self._clock.now(),
            actor_id=actor.actor_id,
            ancien_statut=ancien_statut.value if ancien_statut is not None else None,
            nouveau_statut=nouveau_statut.value,
            commentaire=commentaire,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def transition(
        self,
        part_id: UUID,
        to_status: PartStatus,
        actor: ActorContext,
        commentaire: str | None = None,
        expected_updated_at: datetime | None = None,
    ) -> TransitionResult:
        """
        Move a part to ``to_status``.

        Postconditions:
            - APPLY: statut and en_fabrication updated, one history entry,
              one audit record, updated_at advanced.
            - NOOP: nothing written.

        Raises:
            PartNotFoundError: part missing or soft-deleted.
            OptimisticLockError: expected_updated_at is stale.
            InvalidTransitionError: pair not in the transition table.
        """
        to_status = PartStatus(to_status)
        part = self._parts.lock_checked(part_id, expected_updated_at)
        from_status = PartStatus(part.statut)

        outcome = evaluate_transition(from_status, to_status)
        if outcome is TransitionOutcome.REJECT:
            logger.warning(
                "part_transition_rejected",
                extra={
                    "part_id": str(part_id),
                    "from_status": from_status.value,
                    "to_status": to_status.value,
                },
            )
            raise InvalidTransitionError(part_id, from_status.value, to_status.value)

        if outcome is TransitionOutcome.NOOP:
            logger.info(
                "part_transition_noop",
                extra={"part_id": str(part_id), "status": from_status.value},
            )
            return TransitionResult(part_id, outcome, from_status, to_status)

        part.statut = to_status.value
        part.en_fabrication = en_fabrication_for(to_status)
        self._parts.touch(part, actor.actor_id)
        self.session.flush()

        self.record_history(
            part,
            from_status,
            to_status,
            actor,
            commentaire=commentaire,
            occurred_at=part.updated_at,
        )
        self._audit.record(
            actor,
            AuditAction.PART_STATUS_CHANGED,
            PART_ENTITY,
            part.id,
            {
                "from_status": from_status.value,
                "to_status": to_status.value,
                "commentaire": commentaire,
            },
        )
        logger.info(
            "part_status_changed",
            extra={
                "part_id": str(part_id),
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )
        return TransitionResult(part_id, outcome, from_status, to_status)

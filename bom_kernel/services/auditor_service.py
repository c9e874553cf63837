"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every mutation of a
    part (and its collections), every family creation and every document
    download.  Provides chain validation for tamper detection and trace
    queries for forensic review.

Architecture position:
    Kernel > Services -- imperative shell.  Injected into every mutating
    service as the ``AuditRecorder``; those services refuse to be built
    without one.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never raw SQL max+1).
    - Chain integrity: ``hash = H(entity_type|entity_id|action|payload_hash|prev_hash)``.
      Every audit event carries a cryptographic link to its predecessor.
    - Append-only: audit events are never modified or deleted (ORM
      listeners in db/immutability.py).
    - Same transaction: ``record()`` only flushes, so the audit row commits
      or rolls back together with the change it describes.

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match stored hash,
      or prev_hash does not match the predecessor's hash.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bom_kernel.domain.clock import Clock, SystemClock
from bom_kernel.domain.commands import ActorContext
from bom_kernel.exceptions import AuditChainBrokenError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.audit_event import AuditAction, AuditEvent
from bom_kernel.services.sequence_service import SequenceService
from bom_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@runtime_checkable
class AuditRecorder(Protocol):
    """
    Collaborator that appends one audit record in the caller's transaction.

    Implementations must not commit.  Any object with this method can be
    injected in place of AuditorService.
    """

    def record(
        self,
        actor: ActorContext,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> Any:
        ...


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events of one entity, in chain order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


def _action_value(action: AuditAction | str) -> str:
    return action.value if isinstance(action, AuditAction) else action


class AuditorService:
    """
    Default AuditRecorder: hash-chained AuditEvent rows.

    Guarantees:
        - Every event's ``hash`` is a deterministic function of
          ``(entity_type, entity_id, action, payload_hash, prev_hash)``.
          Tampering with any of them is detectable by ``validate_chain()``.
        - Sequence numbers come from the locked ``audit_event`` counter row,
          which also serializes concurrent writers on the chain tail.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        """Hash of the most recent audit event."""
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def record(
        self,
        actor: ActorContext,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Append one audit event with hash chain linkage.

        Postconditions:
            - A new ``AuditEvent`` row is flushed with a monotonically
              increasing ``seq`` and a valid chain link.

        Args:
            actor: Who acted, plus request metadata stored as ``context``.
            action: The action being recorded.
            entity_type: "part" or "part_family".
            entity_id: ID of the entity.
            details: Action-specific payload (JSON-safe after conversion).
        """
        # Allocating first locks the counter row, so the tail read below
        # cannot interleave with another writer's append.
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)

        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(details or {})
        computed_payload_hash = hash_payload(payload_data)
        action_value = _action_value(action)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action_value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action_value,
            actor_id=actor.actor_id,
            occurred_at=self._clock.now(),
            context=actor.audit_context() or None,
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action_value,
                "seq": seq,
            },
        )

        return audit_event

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If chain validation fails at any point.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            logger.critical(
                "audit_chain_broken",
                extra={"seq": events[0].seq, "reason": "genesis_has_prev_hash"},
            )
            raise AuditChainBrokenError(
                str(events[0].id),
                "None",
                events[0].prev_hash,
            )

        for i, event in enumerate(events):
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=_action_value(event.action),
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )

            if event.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"seq": event.seq, "reason": "hash_mismatch"},
                )
                raise AuditChainBrokenError(
                    str(event.id),
                    expected_hash,
                    event.hash,
                )

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    logger.critical(
                        "audit_chain_broken",
                        extra={"seq": event.seq, "reason": "prev_hash_mismatch"},
                    )
                    raise AuditChainBrokenError(
                        str(event.id),
                        expected_prev,
                        event.prev_hash or "None",
                    )

        logger.info(
            "audit_chain_valid",
            extra={"event_count": len(events)},
        )
        return True

    # Trace and query methods

    def get_trace(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> AuditTrace:
        """All audit events for one entity, in sequence order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=_action_value(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """The most recent audit events, newest first."""
        result = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

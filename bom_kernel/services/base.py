"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Every write-side service in ``bom_kernel/services/`` extends one of the
    two classes below.  PartService (the facade) is the only component
    that commits.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.
    - Audit coupling: a mutating service cannot be constructed without an
      audit recorder (MissingAuditRecorderError).  Audit records are
      written in the same session as the change they describe.

Failure modes:
    - MissingAuditRecorderError at construction time when ``audit`` is None.
"""

from __future__ import annotations

from abc import ABC
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Generic, TypeVar

from sqlalchemy.orm import Session

from bom_kernel.db.base import Base
from bom_kernel.domain.clock import Clock, SystemClock
from bom_kernel.exceptions import MissingAuditRecorderError

if TYPE_CHECKING:
    from bom_kernel.services.auditor_service import AuditRecorder

ModelType = TypeVar("ModelType", bound=Base)

_ONE_MICROSECOND = timedelta(microseconds=1)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _next_timestamp(self, current: datetime | None = None) -> datetime:
        """
        Clock time, bumped past ``current`` when the clock has not moved.

        updated_at is the optimistic-lock token, so two successive writes
        must never store the same value even under a frozen test clock.
        """
        now = self._clock.now()
        if current is not None and now <= current:
            return current + _ONE_MICROSECOND
        return now


class AuditedService(BaseService[ModelType]):
    """Base for services that mutate state and must leave an audit record."""

    def __init__(
        self,
        session: Session,
        audit: AuditRecorder | None,
        clock: Clock | None = None,
    ):
        if audit is None:
            raise MissingAuditRecorderError(type(self).__name__)
        super().__init__(session, clock)
        self._audit = audit

"""
PartRepository -- write-side access to the part row.

Responsibility:
    Loads and locks live parts, enforces code uniqueness among live parts,
    and implements the optimistic-concurrency claim on ``updated_at``.
    Every sub-service goes through it before touching a part or one of
    its collections.

Architecture position:
    Kernel > Services -- imperative shell.  Reads for callers go through
    PartSelector; this class exists for the write path only.

Invariants enforced:
    - Soft-delete opacity: a part with deleted_at set is "not found" for
      every write.
    - Optimistic lock: ``claim()`` issues
        UPDATE parts SET updated_at = :new
        WHERE id = :id AND deleted_at IS NULL AND updated_at = :expected
      and, when no row matched, a follow-up existence check decides
      between PartNotFoundError and OptimisticLockError.  The UPDATE also
      takes the row lock for the rest of the transaction.
    - updated_at strictly increases on every write (see
      BaseService._next_timestamp).

Failure modes:
    - PartNotFoundError: part missing or soft-deleted.
    - OptimisticLockError: expected_updated_at no longer matches.
    - DuplicatePartCodeError: code_piece used by another live part, either
      detected up front or from the uq_parts_code_live index on flush.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bom_kernel.domain.clock import Clock
from bom_kernel.exceptions import (
    DuplicatePartCodeError,
    OptimisticLockError,
    PartNotFoundError,
)
from bom_kernel.logging_config import get_logger
from bom_kernel.models.part import Part
from bom_kernel.services.base import BaseService

logger = get_logger("services.part_repository")


class PartRepository(BaseService[Part]):
    """
    Row-level operations on ``parts``.

    Non-goals:
        - Does NOT write audit records; callers do, once per operation.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    # ------------------------------------------------------------------
    # Loading and locking
    # ------------------------------------------------------------------

    def _select_live(self, part_id: UUID):
        return select(Part).where(Part.id == part_id, Part.deleted_at.is_(None))

    def get_live(self, part_id: UUID) -> Part:
        part = self.session.execute(self._select_live(part_id)).scalar_one_or_none()
        if part is None:
            raise PartNotFoundError(part_id)
        return part

    def lock_live(self, part_id: UUID) -> Part:
        """Load a live part with ``SELECT ... FOR UPDATE``."""
        part = self.session.execute(
            self._select_live(part_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if part is None:
            raise PartNotFoundError(part_id)
        return part

    def lock_many(self, part_ids: list[UUID]) -> dict[UUID, Part]:
        """
        Lock several live parts in id order.

        A fixed lock order keeps two writers that touch the same pair of
        parts from deadlocking.  Missing ids are simply absent from the
        result.
        """
        rows = self.session.execute(
            select(Part)
            .where(Part.id.in_(part_ids), Part.deleted_at.is_(None))
            .order_by(Part.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        return {p.id: p for p in rows}

    def claim(self, part_id: UUID, expected_updated_at: datetime, actor_id: UUID) -> Part:
        """
        Conditionally advance ``updated_at`` from ``expected_updated_at``.

        Returns the locked, refreshed part.  The caller's further changes
        land in the same transaction.

        Raises:
            PartNotFoundError: no live row with this id.
            OptimisticLockError: the row exists but updated_at moved on.
        """
        new_updated_at = self._next_timestamp(expected_updated_at)
        result = self.session.execute(
            update(Part)
            .where(
                and_(
                    Part.id == part_id,
                    Part.deleted_at.is_(None),
                    Part.updated_at == expected_updated_at,
                )
            )
            .values(updated_at=new_updated_at, updated_by_id=actor_id)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            exists = self.session.execute(
                select(Part.id).where(Part.id == part_id, Part.deleted_at.is_(None))
            ).first()
            if exists is None:
                raise PartNotFoundError(part_id)
            logger.warning(
                "optimistic_lock_conflict",
                extra={
                    "part_id": str(part_id),
                    "expected_updated_at": expected_updated_at.isoformat(),
                },
            )
            raise OptimisticLockError("part", part_id, expected_updated_at)

        return self.lock_live(part_id)

    def lock_checked(self, part_id: UUID, expected_updated_at: datetime | None = None) -> Part:
        """
        Row lock, then compare ``expected_updated_at`` under the lock.

        Unlike ``claim()`` this writes nothing, so a caller that may end
        up a no-op (same-status transition) leaves the token unchanged.
        """
        part = self.lock_live(part_id)
        if expected_updated_at is not None and part.updated_at != expected_updated_at:
            logger.warning(
                "optimistic_lock_conflict",
                extra={
                    "part_id": str(part_id),
                    "expected_updated_at": expected_updated_at.isoformat(),
                },
            )
            raise OptimisticLockError("part", part_id, expected_updated_at)
        return part

    def lock_for_write(
        self,
        part_id: UUID,
        actor_id: UUID,
        expected_updated_at: datetime | None = None,
    ) -> Part:
        """``claim()`` when a token is supplied, plain row lock otherwise."""
        if expected_updated_at is not None:
            return self.claim(part_id, expected_updated_at, actor_id)
        return self.lock_live(part_id)

    # ------------------------------------------------------------------
    # Mutation helpers
    # ------------------------------------------------------------------

    def touch(self, part: Part, actor_id: UUID) -> datetime:
        """Advance the part's concurrency token after a change."""
        part.updated_at = self._next_timestamp(part.updated_at)
        part.updated_by_id = actor_id
        return part.updated_at

    def code_taken(self, code_piece: str, exclude_id: UUID | None = None) -> bool:
        stmt = select(Part.id).where(
            Part.code_piece == code_piece,
            Part.deleted_at.is_(None),
        )
        if exclude_id is not None:
            stmt = stmt.where(Part.id != exclude_id)
        # A pending re-code must reach the database inside the savepoint of
        # flush_with_code_check, not through an autoflush here.
        with self.session.no_autoflush:
            return self.session.execute(stmt.limit(1)).first() is not None

    def flush_with_code_check(self, part: Part) -> None:
        """
        Flush a new or re-coded part, translating the unique-index error.

        The flush runs in a savepoint so a concurrent insert of the same
        code surfaces as DuplicatePartCodeError without poisoning the
        outer transaction.
        """
        if self.code_taken(part.code_piece, exclude_id=part.id):
            raise DuplicatePartCodeError(part.code_piece)

        savepoint = self.session.begin_nested()
        try:
            self.session.add(part)
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            logger.warning(
                "part_code_conflict",
                extra={"code_piece": part.code_piece},
            )
            raise DuplicatePartCodeError(part.code_piece) from exc
        savepoint.commit()

    def soft_delete(self, part_id: UUID, actor_id: UUID) -> Part | None:
        """
        Mark a live part deleted.

        Returns None when the part is missing or already deleted.
        """
        part = self.session.execute(
            self._select_live(part_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if part is None:
            return None
        now = self._next_timestamp(part.updated_at)
        part.deleted_at = now
        part.deleted_by_id = actor_id
        part.updated_at = now
        part.updated_by_id = actor_id
        self.session.flush()
        return part

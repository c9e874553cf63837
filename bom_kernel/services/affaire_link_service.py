"""
AffaireLinkService -- links between parts and production orders.

Responsibility:
    Creates, re-roles and deletes AffairePartLink rows.  An affaire has at
    most one MAIN part; promoting a part to MAIN demotes the previous
    holder to LINKED in the same transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Called by PartService.

Invariants enforced:
    - Lock order: the part row first, then every link of the affaire
      (``SELECT ... FOR UPDATE`` ordered by id).  Two concurrent MAIN
      promotions on one affaire therefore serialize.
    - Single MAIN: the demotion is flushed before the new MAIN is written,
      and the uq_affaire_single_main partial index rejects anything that
      slipped past the lock.
    - Re-linking with the same role writes nothing.

Failure modes:
    - PartNotFoundError: part missing or soft-deleted.
    - OptimisticLockError: a concurrent writer claimed MAIN or created the
      same link between our lock and our flush.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from bom_kernel.domain.commands import ActorContext
from bom_kernel.domain.dtos import AffaireLinkInfo
from bom_kernel.exceptions import OptimisticLockError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.affaire_link import AffairePartLink, AffaireRole
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.selectors.part_selector import PartSelector
from bom_kernel.services.base import AuditedService
from bom_kernel.services.part_collection import PART_ENTITY
from bom_kernel.services.part_repository import PartRepository

logger = get_logger("services.affaires")


def _role_value(role) -> str:
    return AffaireRole(role).value


class AffaireLinkService(AuditedService[AffairePartLink]):
    def __init__(self, session, audit, clock=None):
        super().__init__(session, audit, clock)
        self._parts = PartRepository(session, self._clock)
        self._selector = PartSelector(session)

    def _lock_affaire_links(self, affaire_id: int) -> list[AffairePartLink]:
        return list(
            self.session.execute(
                select(AffairePartLink)
                .where(AffairePartLink.affaire_id == affaire_id)
                .order_by(AffairePartLink.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def upsert_link(
        self,
        part_id: UUID,
        affaire_id: int,
        actor: ActorContext,
        role: AffaireRole | str = AffaireRole.LINKED,
    ) -> AffaireLinkInfo:
        """
        Link a part to an affaire, or change the role of an existing link.

        Postconditions:
            - Exactly one link for (affaire_id, part_id) with ``role``.
            - When ``role`` is MAIN, every other link of the affaire is
              LINKED.
        """
        role = _role_value(role)
        part = self._parts.lock_live(part_id)
        links = self._lock_affaire_links(affaire_id)
        existing = next((l for l in links if l.part_id == part_id), None)

        if existing is not None and _role_value(existing.role) == role:
            return AffaireLinkInfo.from_model(existing)

        now = self._next_timestamp()
        demoted: list[UUID] = []
        if role == AffaireRole.MAIN.value:
            for link in links:
                if link.part_id != part_id and _role_value(link.role) == AffaireRole.MAIN.value:
                    link.role = AffaireRole.LINKED.value
                    link.updated_at = self._next_timestamp(link.updated_at)
                    link.updated_by_id = actor.actor_id
                    demoted.append(link.part_id)
            if demoted:
                self.session.flush()

        previous_role = _role_value(existing.role) if existing is not None else None
        savepoint = self.session.begin_nested()
        try:
            if existing is None:
                existing = AffairePartLink(
                    affaire_id=affaire_id,
                    part_id=part_id,
                    role=role,
                    created_at=now,
                    updated_at=now,
                    created_by_id=actor.actor_id,
                )
                self.session.add(existing)
            else:
                existing.role = role
                existing.updated_at = self._next_timestamp(existing.updated_at)
                existing.updated_by_id = actor.actor_id
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            logger.warning(
                "affaire_link_conflict",
                extra={
                    "affaire_id": affaire_id,
                    "part_id": str(part_id),
                    "role": role,
                },
            )
            raise OptimisticLockError("affaire", affaire_id) from exc
        savepoint.commit()

        self._parts.touch(part, actor.actor_id)
        self.session.flush()
        self._audit.record(
            actor,
            AuditAction.AFFAIRE_LINKED,
            PART_ENTITY,
            part.id,
            {
                "affaire_id": affaire_id,
                "role": role,
                "previous_role": previous_role,
                "demoted_part_ids": demoted,
            },
        )
        logger.info(
            "affaire_linked",
            extra={
                "affaire_id": affaire_id,
                "part_id": str(part_id),
                "role": role,
                "demoted": len(demoted),
            },
        )
        return AffaireLinkInfo.from_model(existing)

    def unlink(self, part_id: UUID, affaire_id: int, actor: ActorContext) -> bool:
        part = self._parts.lock_live(part_id)
        link = self.session.execute(
            select(AffairePartLink)
            .where(
                AffairePartLink.affaire_id == affaire_id,
                AffairePartLink.part_id == part_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if link is None:
            return False

        role = _role_value(link.role)
        self.session.delete(link)
        self._parts.touch(part, actor.actor_id)
        self.session.flush()
        self._audit.record(
            actor,
            AuditAction.AFFAIRE_UNLINKED,
            PART_ENTITY,
            part.id,
            {"affaire_id": affaire_id, "role": role},
        )
        logger.info(
            "affaire_unlinked",
            extra={"affaire_id": affaire_id, "part_id": str(part_id)},
        )
        return True

    def list_affaires(self, part_id: UUID) -> tuple[AffaireLinkInfo, ...]:
        self._parts.get_live(part_id)
        return self._selector.list_affaires(part_id)

    def list_parts_for_affaire(self, affaire_id: int) -> tuple[AffaireLinkInfo, ...]:
        return self._selector.list_parts_for_affaire(affaire_id)

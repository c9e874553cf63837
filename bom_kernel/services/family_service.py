"""
FamilyService -- the part family catalogue.

Families are created once and then referenced by parts; there is no
update or delete.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from bom_kernel.domain.commands import ActorContext, FamilyCreate
from bom_kernel.domain.dtos import FamilyInfo
from bom_kernel.exceptions import DuplicateFamilyCodeError, FamilyNotFoundError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.models.family import PartFamily
from bom_kernel.selectors.part_selector import PartSelector
from bom_kernel.services.base import AuditedService

logger = get_logger("services.families")

FAMILY_ENTITY = "part_family"


class FamilyService(AuditedService[PartFamily]):
    def __init__(self, session, audit, clock=None):
        super().__init__(session, audit, clock)
        self._selector = PartSelector(session)

    def _code_taken(self, code: str) -> bool:
        return self.session.execute(
            select(PartFamily.id).where(PartFamily.code == code).limit(1)
        ).first() is not None

    def create_family(self, cmd: FamilyCreate, actor: ActorContext) -> FamilyInfo:
        """
        Raises:
            DuplicateFamilyCodeError: code already used, including by a
                concurrent insert caught on flush.
        """
        if self._code_taken(cmd.code):
            raise DuplicateFamilyCodeError(cmd.code)

        now = self._clock.now()
        family = PartFamily(
            code=cmd.code,
            designation=cmd.designation,
            type_famille=cmd.type_famille,
            section=cmd.section,
            created_at=now,
            updated_at=now,
            created_by_id=actor.actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(family)
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            logger.warning("family_code_conflict", extra={"code": cmd.code})
            raise DuplicateFamilyCodeError(cmd.code) from exc
        savepoint.commit()

        self._audit.record(
            actor,
            AuditAction.FAMILY_CREATED,
            FAMILY_ENTITY,
            family.id,
            {"code": family.code, "designation": family.designation},
        )
        logger.info(
            "family_created",
            extra={"family_id": str(family.id), "code": family.code},
        )
        return FamilyInfo.from_model(family)

    def list_families(self) -> tuple[FamilyInfo, ...]:
        return self._selector.list_families()

    def get_family(self, family_id: UUID) -> FamilyInfo:
        family = self._selector.get_family(family_id)
        if family is None:
            raise FamilyNotFoundError(family_id)
        return family

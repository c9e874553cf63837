"""Status transitions through PartService.transition."""

from uuid import uuid4

import pytest

from bom_kernel.domain.lifecycle import PartStatus, TransitionOutcome
from bom_kernel.exceptions import (
    InvalidTransitionError,
    OptimisticLockError,
    PartNotFoundError,
)
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.services.part_collection import PART_ENTITY


class TestTransitions:
    def test_full_path_to_obsolete(self, create_part, part_service, test_actor):
        part = create_part()
        for target in (PartStatus.ACTIVE, PartStatus.IN_FABRICATION, PartStatus.OBSOLETE):
            result = part_service.transition(part.id, target, test_actor)
            assert result.changed

        final = part_service.get_part(part.id)
        assert final.statut is PartStatus.OBSOLETE
        assert [(h.ancien_statut, h.nouveau_statut) for h in final.history] == [
            (None, PartStatus.DRAFT),
            (PartStatus.DRAFT, PartStatus.ACTIVE),
            (PartStatus.ACTIVE, PartStatus.IN_FABRICATION),
            (PartStatus.IN_FABRICATION, PartStatus.OBSOLETE),
        ]

    def test_en_fabrication_follows_status(self, create_part, part_service, test_actor):
        part = create_part(statut=PartStatus.ACTIVE)

        part_service.transition(part.id, PartStatus.IN_FABRICATION, test_actor)
        assert part_service.get_part(part.id).en_fabrication is True

        part_service.transition(part.id, PartStatus.ACTIVE, test_actor)
        assert part_service.get_part(part.id).en_fabrication is False

    def test_history_and_audit(self, create_part, part_service, test_actor, auditor_service):
        part = create_part()
        part_service.transition(part.id, "ACTIVE", test_actor, commentaire="Validée BE")

        entry = part_service.get_part(part.id).history[-1]
        assert entry.commentaire == "Validée BE"
        assert entry.actor_id == test_actor.actor_id

        trace = auditor_service.get_trace(PART_ENTITY, part.id)
        assert trace.last_action == AuditAction.PART_STATUS_CHANGED.value
        assert trace.entries[-1].payload["from_status"] == "DRAFT"
        assert trace.entries[-1].payload["to_status"] == "ACTIVE"

    @pytest.mark.parametrize(
        "initial,target",
        [
            (PartStatus.DRAFT, PartStatus.IN_FABRICATION),
            (PartStatus.DRAFT, PartStatus.OBSOLETE),
            (PartStatus.ACTIVE, PartStatus.DRAFT),
            (PartStatus.ACTIVE, PartStatus.OBSOLETE),
            (PartStatus.OBSOLETE, PartStatus.ACTIVE),
            (PartStatus.OBSOLETE, PartStatus.DRAFT),
        ],
    )
    def test_illegal_transition(self, create_part, part_service, test_actor, initial, target):
        part = create_part(statut=initial)

        with pytest.raises(InvalidTransitionError) as exc_info:
            part_service.transition(part.id, target, test_actor)

        assert exc_info.value.from_status == initial.value
        assert exc_info.value.to_status == target.value
        after = part_service.get_part(part.id)
        assert after.statut is initial
        assert len(after.history) == 1

    def test_same_status_is_noop(self, create_part, part_service, test_actor, auditor_service):
        part = create_part(statut=PartStatus.ACTIVE)

        result = part_service.transition(part.id, PartStatus.ACTIVE, test_actor)

        assert result.outcome is TransitionOutcome.NOOP
        assert not result.changed
        after = part_service.get_part(part.id)
        assert len(after.history) == 1
        assert after.updated_at == part.updated_at
        assert auditor_service.get_trace(PART_ENTITY, part.id).actions == (
            AuditAction.PART_CREATED.value,
        )

    def test_obsolete_noop_is_allowed(self, create_part, part_service, test_actor):
        part = create_part(statut=PartStatus.OBSOLETE)
        assert part_service.transition(part.id, PartStatus.OBSOLETE, test_actor).outcome is (
            TransitionOutcome.NOOP
        )

    def test_stale_token(self, create_part, part_service, test_actor):
        part = create_part()
        part_service.transition(part.id, PartStatus.ACTIVE, test_actor)

        with pytest.raises(OptimisticLockError):
            part_service.transition(
                part.id,
                PartStatus.IN_FABRICATION,
                test_actor,
                expected_updated_at=part.updated_at,
            )
        assert part_service.get_part(part.id).statut is PartStatus.ACTIVE

    def test_current_token(self, create_part, part_service, test_actor):
        part = create_part()
        result = part_service.transition(
            part.id, PartStatus.ACTIVE, test_actor, expected_updated_at=part.updated_at,
        )
        assert result.changed

    def test_unknown_status_value(self, create_part, part_service, test_actor):
        part = create_part()
        with pytest.raises(ValueError):
            part_service.transition(part.id, "ARCHIVED", test_actor)

    def test_missing_part(self, part_service, test_actor):
        with pytest.raises(PartNotFoundError):
            part_service.transition(uuid4(), PartStatus.ACTIVE, test_actor)

    def test_history_order_is_stable_under_frozen_clock(self, create_part, part_service, test_actor):
        part = create_part(statut=PartStatus.ACTIVE)
        for _ in range(3):
            part_service.transition(part.id, PartStatus.IN_FABRICATION, test_actor)
            part_service.transition(part.id, PartStatus.ACTIVE, test_actor)

        statuses = [h.nouveau_statut for h in part_service.get_part(part.id).history]
        assert statuses == [PartStatus.ACTIVE] + [
            PartStatus.IN_FABRICATION, PartStatus.ACTIVE,
        ] * 3

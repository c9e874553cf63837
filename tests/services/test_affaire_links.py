"""Part <-> affaire links and the single-MAIN rule."""

from uuid import uuid4

import pytest

from bom_kernel.exceptions import PartNotFoundError
from bom_kernel.models.affaire_link import AffaireRole
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.selectors.part_selector import PartSelector
from bom_kernel.services.part_collection import PART_ENTITY

AFFAIRE = 4242


class TestLink:
    def test_link_defaults_to_linked(self, create_part, part_service, test_actor):
        part = create_part()
        link = part_service.link_affaire(part.id, AFFAIRE, test_actor)

        assert link.role == "LINKED"
        assert not link.is_main
        assert part_service.list_affaires(part.id) == (link,)

    def test_link_advances_part_and_audits(self, create_part, part_service, test_actor, auditor_service):
        part = create_part()
        part_service.link_affaire(part.id, AFFAIRE, test_actor, role="MAIN")

        assert part_service.get_part(part.id).updated_at > part.updated_at
        trace = auditor_service.get_trace(PART_ENTITY, part.id)
        assert trace.last_action == AuditAction.AFFAIRE_LINKED.value
        assert trace.entries[-1].payload == {
            "affaire_id": AFFAIRE,
            "role": "MAIN",
            "previous_role": None,
            "demoted_part_ids": [],
        }

    def test_same_role_writes_nothing(self, create_part, part_service, test_actor, auditor_service):
        part = create_part()
        first = part_service.link_affaire(part.id, AFFAIRE, test_actor)
        token = part_service.get_part(part.id).updated_at

        again = part_service.link_affaire(part.id, AFFAIRE, test_actor, role=AffaireRole.LINKED)

        assert again == first
        assert part_service.get_part(part.id).updated_at == token
        assert auditor_service.get_trace(PART_ENTITY, part.id).actions.count(
            AuditAction.AFFAIRE_LINKED.value
        ) == 1

    def test_role_change_keeps_single_row(self, create_part, part_service, test_actor, auditor_service):
        part = create_part()
        part_service.link_affaire(part.id, AFFAIRE, test_actor)
        link = part_service.link_affaire(part.id, AFFAIRE, test_actor, role=AffaireRole.MAIN)

        assert link.is_main
        assert len(part_service.list_affaires(part.id)) == 1
        payload = auditor_service.get_trace(PART_ENTITY, part.id).entries[-1].payload
        assert payload["previous_role"] == "LINKED"

    def test_unknown_role(self, create_part, part_service, test_actor):
        part = create_part()
        with pytest.raises(ValueError):
            part_service.link_affaire(part.id, AFFAIRE, test_actor, role="OWNER")
        assert part_service.list_affaires(part.id) == ()

    def test_deleted_part_cannot_be_linked(self, create_part, part_service, test_actor):
        part = create_part()
        part_service.delete_part(part.id, test_actor)
        with pytest.raises(PartNotFoundError):
            part_service.link_affaire(part.id, AFFAIRE, test_actor)

    def test_hydrated_on_request(self, create_part, part_service, test_actor):
        part = create_part()
        part_service.link_affaire(part.id, AFFAIRE, test_actor)
        assert part_service.get_part(part.id).affaires == ()
        assert len(part_service.get_part(part.id, "affaires").affaires) == 1


class TestSingleMain:
    def test_promotion_demotes_previous_main(
        self, create_part, part_service, test_actor, auditor_service, session,
    ):
        old_main, new_main = create_part("P-OLD"), create_part("P-NEW")
        part_service.link_affaire(old_main.id, AFFAIRE, test_actor, role="MAIN")

        part_service.link_affaire(new_main.id, AFFAIRE, test_actor, role="MAIN")

        roles = {l.part_id: l.role for l in part_service.list_parts_for_affaire(AFFAIRE)}
        assert roles == {old_main.id: "LINKED", new_main.id: "MAIN"}
        assert PartSelector(session).get_main_part_for_affaire(AFFAIRE) == new_main.id
        payload = auditor_service.get_trace(PART_ENTITY, new_main.id).entries[-1].payload
        assert payload["demoted_part_ids"] == [str(old_main.id)]

    def test_mains_of_other_affaires_untouched(self, create_part, part_service, test_actor):
        a, b = create_part(), create_part()
        part_service.link_affaire(a.id, 1, test_actor, role="MAIN")
        part_service.link_affaire(b.id, 2, test_actor, role="MAIN")

        assert part_service.list_parts_for_affaire(1)[0].is_main
        assert part_service.list_parts_for_affaire(2)[0].is_main

    def test_one_part_main_of_several_affaires(self, create_part, part_service, test_actor):
        part = create_part()
        part_service.link_affaire(part.id, 1, test_actor, role="MAIN")
        part_service.link_affaire(part.id, 2, test_actor, role="MAIN")
        assert [l.affaire_id for l in part_service.list_affaires(part.id)] == [1, 2]
        assert all(l.is_main for l in part_service.list_affaires(part.id))

    def test_listing_main_first_then_code(self, create_part, part_service, test_actor):
        c, a, b = create_part("C-1"), create_part("A-1"), create_part("B-1")
        for part in (a, b):
            part_service.link_affaire(part.id, AFFAIRE, test_actor)
        part_service.link_affaire(c.id, AFFAIRE, test_actor, role="MAIN")

        listed = part_service.list_parts_for_affaire(AFFAIRE)
        assert [l.code_piece for l in listed] == ["C-1", "A-1", "B-1"]
        assert listed[0].designation == "Pièce C-1"

    def test_listing_skips_deleted_parts(self, create_part, part_service, test_actor):
        kept, gone = create_part(), create_part()
        part_service.link_affaire(kept.id, AFFAIRE, test_actor)
        part_service.link_affaire(gone.id, AFFAIRE, test_actor)
        part_service.delete_part(gone.id, test_actor)

        assert [l.part_id for l in part_service.list_parts_for_affaire(AFFAIRE)] == [kept.id]


class TestUnlink:
    def test_unlink(self, create_part, part_service, test_actor, auditor_service):
        part = create_part()
        part_service.link_affaire(part.id, AFFAIRE, test_actor, role="MAIN")

        assert part_service.unlink_affaire(part.id, AFFAIRE, test_actor) is True

        assert part_service.list_affaires(part.id) == ()
        trace = auditor_service.get_trace(PART_ENTITY, part.id)
        assert trace.last_action == AuditAction.AFFAIRE_UNLINKED.value
        assert trace.entries[-1].payload["role"] == "MAIN"

    def test_unlink_missing_link(self, create_part, part_service, test_actor):
        part = create_part()
        assert part_service.unlink_affaire(part.id, AFFAIRE, test_actor) is False

    def test_relink_after_unlink(self, create_part, part_service, test_actor):
        part = create_part()
        part_service.link_affaire(part.id, AFFAIRE, test_actor)
        part_service.unlink_affaire(part.id, AFFAIRE, test_actor)
        link = part_service.link_affaire(part.id, AFFAIRE, test_actor, role="MAIN")
        assert link.is_main

    def test_list_on_missing_part(self, part_service):
        with pytest.raises(PartNotFoundError):
            part_service.list_affaires(uuid4())

"""
Part list queries and cost read-outs.

Verifies:
- Filters combine with AND and never show soft-deleted parts.
- Sorting follows the whitelist with id as the final tie-break.
- Page size defaults and clamps to the configured bounds.
- Per-part counters and cost roll-ups come from stored rows.
"""

from decimal import Decimal

import pytest

from bom_kernel.domain.commands import (
    AchatInput,
    BomLineInput,
    FamilyCreate,
    PartListQuery,
)
from bom_kernel.domain.lifecycle import PartStatus
from bom_kernel.domain.settings import KernelSettings
from bom_kernel.selectors.part_selector import PartSelector


@pytest.fixture
def selector(session):
    return PartSelector(session)


@pytest.fixture
def catalogue(create_part, part_service, test_actor):
    """Five parts across two clients, two families and three statuses."""
    tolerie = part_service.create_family(
        FamilyCreate(code="TOL", designation="Tôlerie"), test_actor,
    )
    parts = {
        "AXE-10": create_part("AXE-10", designation="Axe de roue", client_id="C1"),
        "AXE-20": create_part("AXE-20", designation="Axe moteur", client_id="C2",
                              statut=PartStatus.ACTIVE),
        "BRIDE-1": create_part("BRIDE-1", designation="Bride 50%", client_id="C1",
                               statut=PartStatus.ACTIVE),
        "CAPOT-1": create_part("CAPOT-1", designation="Capot", famille_id=tolerie.id,
                               statut=PartStatus.OBSOLETE),
        "GONE-1": create_part("GONE-1", designation="Axe supprimé", client_id="C1"),
    }
    part_service.delete_part(parts["GONE-1"].id, test_actor)
    return parts, tolerie


def _codes(page):
    return [item.code_piece for item in page.items]


class TestFilters:
    def test_no_filter_hides_deleted(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(sort_by="code_piece", sort_dir="asc"))
        assert page.total == 4
        assert _codes(page) == ["AXE-10", "AXE-20", "BRIDE-1", "CAPOT-1"]

    def test_search_is_case_insensitive(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(q="axe", sort_by="code_piece", sort_dir="asc"))
        assert _codes(page) == ["AXE-10", "AXE-20"]

    def test_search_matches_designation(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(q="MOTEUR"))
        assert _codes(page) == ["AXE-20"]

    def test_search_wildcards_are_literal(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(q="50%"))
        assert _codes(page) == ["BRIDE-1"]
        assert selector.list_parts(PartListQuery(q="%")).total == 1

    def test_client_and_status_combine(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(client_id="C1", statut=PartStatus.ACTIVE))
        assert _codes(page) == ["BRIDE-1"]

    def test_family_filter(self, catalogue, selector):
        _, tolerie = catalogue
        page = selector.list_parts(PartListQuery(famille_id=tolerie.id))
        assert _codes(page) == ["CAPOT-1"]

    def test_status_given_as_string(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(statut="OBSOLETE"))
        assert _codes(page) == ["CAPOT-1"]

    def test_nothing_matches(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(q="introuvable"))
        assert page.items == ()
        assert page.total == 0
        assert page.pages == 0


class TestSortingAndPaging:
    def test_sort_descending(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(sort_by="code_piece", sort_dir="desc"))
        assert _codes(page) == ["CAPOT-1", "BRIDE-1", "AXE-20", "AXE-10"]

    def test_equal_sort_keys_break_on_id(self, catalogue, selector):
        # Every part was created on the same frozen clock tick
        page = selector.list_parts(PartListQuery(sort_by="created_at", sort_dir="asc"))
        ids = [item.id for item in page.items]
        assert ids == sorted(ids, key=str)

    def test_pages_do_not_overlap(self, catalogue, selector):
        seen = []
        for number in (1, 2, 3):
            page = selector.list_parts(PartListQuery(page=number, page_size=2, sort_by="prix_unitaire"))
            seen.extend(item.id for item in page.items)
        assert len(seen) == 4
        assert len(set(seen)) == 4

    def test_page_metadata(self, catalogue, selector):
        page = selector.list_parts(PartListQuery(page=2, page_size=3, sort_by="code_piece", sort_dir="asc"))
        assert (page.total, page.page, page.page_size, page.pages) == (4, 2, 3, 2)
        assert _codes(page) == ["CAPOT-1"]

    def test_default_and_clamped_page_size(self, session):
        selector = PartSelector(session, KernelSettings(default_page_size=5, max_page_size=10))
        assert selector.list_parts(PartListQuery()).page_size == 5
        assert selector.list_parts(PartListQuery(page_size=500)).page_size == 10
        assert selector.list_parts(PartListQuery(page_size=0)).page_size == 1

    def test_unknown_sort_field_rejected(self):
        with pytest.raises(ValueError):
            PartListQuery(sort_by="deleted_at")


class TestCounters:
    def test_counts_and_roll_ups(self, create_part, selector, sample_operation):
        child = create_part("ENF-1")
        parent = create_part(
            "PAR-1",
            bom=(BomLineInput(child_part_id=child.id), BomLineInput(child_part_id=child.id)),
            operations=(sample_operation, sample_operation),
            achats=(
                AchatInput(quantite=Decimal("2"), pu_achat=Decimal("5.25")),
                AchatInput(quantite=Decimal("1"), pu_achat=Decimal("100")),
            ),
        )
        items = {i.code_piece: i for i in selector.list_parts(PartListQuery()).items}

        assert items["PAR-1"].bom_count == 2
        assert items["PAR-1"].operations_count == 2
        assert items["PAR-1"].achats_count == 2
        assert items["PAR-1"].cout_mo_total == Decimal("576.00")
        assert items["PAR-1"].achats_total_ht == Decimal("110.50")

        assert items["ENF-1"].bom_count == 0
        assert items["ENF-1"].cout_mo_total == Decimal("0.00")

        summary = selector.cost_summary(parent.id)
        assert summary.achats_total_ttc == Decimal("132.60")
        assert summary.total_ht == Decimal("686.50")

    def test_stats_ignore_deleted(self, catalogue, part_service):
        stats = part_service.stats()
        assert (stats.total, stats.draft, stats.active, stats.in_fabrication, stats.obsolete) == (
            4, 1, 2, 0, 1,
        )

"""
Hypothesis-based property tests.

Properties checked:
- Derived totals: stored cout_mo and total_achat_ttc are reproducible from
  the other stored (rounded) columns.
- Rounding is symmetric around zero.
- Nomenclature: whatever edges a client throws at the service, the
  accepted graph stays acyclic and every rejected edge would have closed
  a cycle.
- Reordering any permutation yields dense positions in that order.
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from bom_kernel.domain.commands import BomLineInput, OperationInput
from bom_kernel.domain.costing import (
    compute_achat_totals,
    compute_operation_totals,
    round_half_away,
)
from bom_kernel.domain.ordering import dense_positions
from bom_kernel.exceptions import BomCycleError

DB_SETTINGS = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)

quantities = st.decimals(min_value=0, max_value=10_000, places=3, allow_nan=False, allow_infinity=False)
rates = st.decimals(min_value=0, max_value=500, places=2, allow_nan=False, allow_infinity=False)
coefficients = st.decimals(min_value=Decimal("0.1"), max_value=10, places=2, allow_nan=False, allow_infinity=False)


@given(tp=quantities, tf_unit=quantities, qte=quantities, coef=coefficients, taux=rates)
def test_labour_cost_follows_rounded_time(tp, tf_unit, qte, coef, taux):
    totals = compute_operation_totals(tp, tf_unit, qte, coef, taux)

    assert totals.temps_total == totals.temps_total.quantize(Decimal("0.001"))
    assert totals.cout_mo == round_half_away(totals.temps_total * taux, 2)
    assert abs(totals.temps_total - (tp + tf_unit * qte) * coef) <= Decimal("0.0005")


@given(quantite=quantities, pu=rates, tva=st.one_of(st.none(), rates))
def test_ttc_follows_rounded_ht(quantite, pu, tva):
    totals = compute_achat_totals(quantite, pu, tva)
    vat = Decimal(20) if tva is None else tva

    assert totals.total_achat_ht == round_half_away(quantite * pu, 2)
    assert totals.total_achat_ttc == round_half_away(totals.total_achat_ht * (1 + vat / 100), 2)
    assert totals.total_achat_ttc >= totals.total_achat_ht


@given(value=st.decimals(min_value=-10_000, max_value=10_000, places=6, allow_nan=False, allow_infinity=False))
def test_rounding_is_symmetric(value):
    assert round_half_away(-value, 2) == -round_half_away(value, 2)


def _reaches(edges, start, goal):
    stack, seen = [start], set()
    while stack:
        node = stack.pop()
        if node == goal:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(child for parent, child in edges if parent == node)
    return False


@DB_SETTINGS
@given(
    candidate_edges=st.lists(
        st.tuples(st.integers(0, 5), st.integers(0, 5)), min_size=1, max_size=15,
    )
)
def test_accepted_bom_graph_stays_acyclic(create_part, part_service, test_actor, candidate_edges):
    nodes = [create_part(f"N{i}-{uuid4().hex[:8]}").id for i in range(6)]
    accepted = []

    for p, c in candidate_edges:
        parent, child = nodes[p], nodes[c]
        would_cycle = parent == child or _reaches(accepted, child, parent)
        try:
            part_service.add_bom_line(parent, BomLineInput(child_part_id=child), test_actor)
        except BomCycleError:
            assert would_cycle
        else:
            assert not would_cycle
            accepted.append((parent, child))

    for parent, child in accepted:
        assert not _reaches(accepted, child, parent)


@DB_SETTINGS
@given(data=st.data(), count=st.integers(1, 6))
def test_reorder_any_permutation(create_part, part_service, test_actor, data, count):
    part = create_part(f"R-{uuid4().hex[:8]}")
    ids = [
        part_service.add_operation(part.id, OperationInput(designation=str(i)), test_actor).id
        for i in range(count)
    ]
    order = data.draw(st.permutations(ids))

    reordered = part_service.reorder_operations(part.id, order, test_actor)

    assert [op.id for op in reordered] == list(order)
    assert [op.phase for op in reordered] == dense_positions(count)

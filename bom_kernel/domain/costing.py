"""
Costing Calculator -- derived totals for operations and purchase lines.

Responsibility:
    Pure functions that compute the stored-but-derived columns of
    PartOperation (temps_total, cout_mo) and PartAchat (total_achat_ht,
    total_achat_ttc).  The services call them on every create AND update
    path; totals supplied by a client are never written.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    temps_total    = round3((tp + tf_unit * qte) * coef)
    cout_mo        = round2(temps_total * taux_horaire)
    total_achat_ht = round2(quantite * pu_achat)
    total_achat_ttc= round2(total_achat_ht * (1 + tva_achat / 100))

    cout_mo is computed from the ROUNDED temps_total, and total_achat_ttc
    from the ROUNDED total_achat_ht, so a reader recomputing from the
    stored columns gets the stored value.

Rounding is half away from zero on the scaled value.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from bom_kernel.db.types import (
    DURATION_DECIMAL_PLACES,
    MONEY_DECIMAL_PLACES,
    quantize,
    to_decimal,
)

HUNDRED = Decimal(100)
DEFAULT_VAT_PCT = Decimal(20)


def round_half_away(value, places: int) -> Decimal:
    """
    Round ``value`` to ``places`` decimals, ties away from zero.

    >>> round_half_away(Decimal("0.125"), 2)
    Decimal('0.13')
    >>> round_half_away(Decimal("-0.125"), 2)
    Decimal('-0.13')
    """
    return quantize(to_decimal(value), places)


@dataclass(frozen=True)
class OperationTotals:
    temps_total: Decimal
    cout_mo: Decimal


@dataclass(frozen=True)
class AchatTotals:
    total_achat_ht: Decimal
    total_achat_ttc: Decimal


def compute_operation_totals(
    tp,
    tf_unit,
    qte,
    coef,
    taux_horaire,
) -> OperationTotals:
    """
    Derive total time (hours) and labour cost of one operation.

    Example:
        tp=1.0, tf_unit=0.5, qte=10, coef=1.2, taux_horaire=40
        -> temps_total=7.200, cout_mo=288.00
    """
    raw_time = (to_decimal(tp) + to_decimal(tf_unit) * to_decimal(qte)) * to_decimal(coef)
    temps_total = round_half_away(raw_time, DURATION_DECIMAL_PLACES)
    cout_mo = round_half_away(temps_total * to_decimal(taux_horaire), MONEY_DECIMAL_PLACES)
    return OperationTotals(temps_total=temps_total, cout_mo=cout_mo)


def compute_achat_totals(
    quantite,
    pu_achat,
    tva_achat=None,
) -> AchatTotals:
    """
    Derive excl. and incl. tax totals of one purchase line.

    ``pu_achat`` None counts as 0 and ``tva_achat`` None as the default
    VAT rate.
    """
    unit_price = to_decimal(pu_achat) if pu_achat is not None else Decimal(0)
    vat = to_decimal(tva_achat) if tva_achat is not None else DEFAULT_VAT_PCT
    total_ht = round_half_away(to_decimal(quantite) * unit_price, MONEY_DECIMAL_PLACES)
    total_ttc = round_half_away(total_ht * (1 + vat / HUNDRED), MONEY_DECIMAL_PLACES)
    return AchatTotals(total_achat_ht=total_ht, total_achat_ttc=total_ttc)


@dataclass(frozen=True)
class PartCostSummary:
    """Part-level roll-up shown in list views."""

    cout_mo_total: Decimal
    achats_total_ht: Decimal
    achats_total_ttc: Decimal

    @property
    def total_ht(self) -> Decimal:
        return self.cout_mo_total + self.achats_total_ht


def summarize_part_costs(
    cout_mo_values: Iterable,
    achat_ht_values: Iterable,
    achat_ttc_values: Iterable = (),
) -> PartCostSummary:
    """
    Sum the stored per-row totals of one part.

    The inputs are already-rounded stored values, so the sums are exact;
    they are re-quantized only to normalize the scale.
    """
    def _sum(values: Iterable) -> Decimal:
        total = sum((to_decimal(v) for v in values if v is not None), Decimal(0))
        return round_half_away(total, MONEY_DECIMAL_PLACES)

    return PartCostSummary(
        cout_mo_total=_sum(cout_mo_values),
        achats_total_ht=_sum(achat_ht_values),
        achats_total_ttc=_sum(achat_ttc_values),
    )

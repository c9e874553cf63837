"""
Sibling ordering for BOM lines (rang), operations and achats (phase).

Positions step by 10 so a line can be slotted between two others by hand
without renumbering.  reorder() renumbers densely (10, 20, 30, ...) after
checking that the requested order is exactly the current set of ids.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Hashable, Iterable, Sequence

POSITION_STEP = 10


def next_position(existing: Iterable[int | None], step: int = POSITION_STEP) -> int:
    """max(existing) + step, or ``step`` when there is nothing yet."""
    values = [v for v in existing if v is not None]
    if not values:
        return step
    return max(values) + step


def dense_positions(count: int, step: int = POSITION_STEP) -> list[int]:
    return [step * (i + 1) for i in range(count)]


@dataclass(frozen=True)
class SetDifference:
    missing: tuple[str, ...]
    unexpected: tuple[str, ...]
    duplicated: tuple[str, ...]

    @property
    def matches(self) -> bool:
        return not (self.missing or self.unexpected or self.duplicated)


def compare_id_sets(
    current: Iterable[Hashable],
    requested: Sequence[Hashable],
) -> SetDifference:
    """
    Compare a requested ordering to the current sibling ids.

    The request matches only if every current id appears exactly once and
    nothing else appears.
    """
    current_set = {str(x) for x in current}
    requested_str = [str(x) for x in requested]
    counts = Counter(requested_str)
    return SetDifference(
        missing=tuple(sorted(current_set - counts.keys())),
        unexpected=tuple(sorted(counts.keys() - current_set)),
        duplicated=tuple(sorted(k for k, n in counts.items() if n > 1)),
    )

"""
Lifecycle Controller -- the part status state machine.

Responsibility:
    Owns the PartStatus enum and the table of legal transitions.  The
    LifecycleService consults it under a row lock; nothing else may decide
    whether a status change is legal.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Transition table:

    DRAFT          -> ACTIVE
    ACTIVE         -> IN_FABRICATION
    IN_FABRICATION -> ACTIVE
    IN_FABRICATION -> OBSOLETE
    OBSOLETE       -> (none, terminal)

    A "transition" to the current status is a no-op: legal, but it writes
    no history and no audit record.

Invariants enforced:
    - en_fabrication is True iff status is IN_FABRICATION; it is always
      derived through ``en_fabrication_for`` and never set on its own.
"""

from enum import Enum


class PartStatus(str, Enum):
    """Lifecycle status of a technical part."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    IN_FABRICATION = "IN_FABRICATION"
    OBSOLETE = "OBSOLETE"


class TransitionOutcome(str, Enum):
    APPLY = "apply"
    NOOP = "noop"
    REJECT = "reject"


ALLOWED_TRANSITIONS: dict[PartStatus, frozenset[PartStatus]] = {
    PartStatus.DRAFT: frozenset({PartStatus.ACTIVE}),
    PartStatus.ACTIVE: frozenset({PartStatus.IN_FABRICATION}),
    PartStatus.IN_FABRICATION: frozenset({PartStatus.ACTIVE, PartStatus.OBSOLETE}),
    PartStatus.OBSOLETE: frozenset(),
}

INITIAL_STATUS = PartStatus.DRAFT


def en_fabrication_for(status: PartStatus | str) -> bool:
    return PartStatus(status) is PartStatus.IN_FABRICATION


def is_terminal(status: PartStatus | str) -> bool:
    return not ALLOWED_TRANSITIONS[PartStatus(status)]


def evaluate_transition(
    current: PartStatus | str,
    target: PartStatus | str,
) -> TransitionOutcome:
    """
    Classify a requested status change.

    Returns:
        NOOP when target == current, APPLY when the table allows it,
        REJECT otherwise.
    """
    current = PartStatus(current)
    target = PartStatus(target)
    if current is target:
        return TransitionOutcome.NOOP
    if target in ALLOWED_TRANSITIONS[current]:
        return TransitionOutcome.APPLY
    return TransitionOutcome.REJECT


def allowed_targets(current: PartStatus | str) -> tuple[PartStatus, ...]:
    """Statuses reachable in one step, in declaration order."""
    reachable = ALLOWED_TRANSITIONS[PartStatus(current)]
    return tuple(s for s in PartStatus if s in reachable)

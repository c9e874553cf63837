"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Part history and the audit trail are the record of who changed what.  A
history entry that can be edited after the fact is worthless, and a part
row that can be physically deleted takes its history and audit context
with it.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check the rules:

    session.flush()
         |
         v
    [before_flush]  --> _check_part_physical_delete() ------> ImmutabilityViolationError
         |
         v
    [before_update] --> _check_*_immutability() ------------> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() ------------------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable            | Why
--------------------|---------------------------|----------------------------------
PartHistoryEntry    | ALWAYS (from creation)    | Lifecycle record is append-only
AuditEvent          | ALWAYS (from creation)    | Hash chain would break
Part                | Never physically deleted  | Deletion is soft (deleted_at)

Bulk ``update()`` / ``delete()`` statements bypass mapper events.  The
services never issue them against these tables.

===============================================================================
USAGE
===============================================================================

Registered by init_engine_from_url() and by bom_config.bridges when a
PartService is built.  Registration is idempotent:

    from bom_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm import Session

from bom_kernel.exceptions import ImmutabilityViolationError
from bom_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "statement": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_part_physical_delete(session, flush_context, instances):
    """
    Refuse ``session.delete(part)``.

    Runs in before_flush because mapper-level before_delete fires after the
    flush plan (including cascades to child collections) is fixed.
    """
    from bom_kernel.models.part import Part

    for obj in list(session.deleted):
        if isinstance(obj, Part):
            _blocked(
                "Part",
                obj.id,
                "DELETE",
                "Parts are soft-deleted only; set deleted_at instead",
            )


def _check_history_immutability(mapper, connection, target):
    _blocked(
        "PartHistoryEntry",
        target.id,
        "UPDATE",
        "History entries cannot be modified",
    )


def _check_history_delete(mapper, connection, target):
    _blocked(
        "PartHistoryEntry",
        target.id,
        "DELETE",
        "History entries cannot be deleted",
    )


def _check_audit_event_immutability(mapper, connection, target):
    _blocked(
        "AuditEvent",
        target.id,
        "UPDATE",
        "Audit events are immutable",
    )


def _check_audit_event_delete(mapper, connection, target):
    _blocked(
        "AuditEvent",
        target.id,
        "DELETE",
        "Audit events cannot be deleted",
    )


def _listeners():
    from bom_kernel.models.audit_event import AuditEvent
    from bom_kernel.models.history import PartHistoryEntry

    return (
        (Session, "before_flush", _check_part_physical_delete),
        (PartHistoryEntry, "before_update", _check_history_immutability),
        (PartHistoryEntry, "before_delete", _check_history_delete),
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already attached are not attached twice.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it is not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, fn in _listeners():
        _safe_remove_listener(target, event_name, fn)

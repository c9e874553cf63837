"""Database layer - engine, base classes, types, and immutability."""

from bom_kernel.db.base import UUID, Base, SoftDeleteMixin, TrackedBase, UTCDateTime, UUIDString
from bom_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from bom_kernel.db.types import Money, PayloadHash, Quantity, Sequence

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "SoftDeleteMixin",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "Money",
    "Quantity",
    "Sequence",
    "PayloadHash",
]

"""
Module: bom_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (db/immutability.py).
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      computed and validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Audit relevance:
    Every mutation of a part or of one of its collections, and every
    document download, produces exactly one AuditEvent in the same
    transaction as the change it records.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Auditable actions, named ``<module>.<resource>.<verb>``."""

    # Part
    PART_CREATED = "pieces_techniques.create"
    PART_UPDATED = "pieces_techniques.update"
    PART_DELETED = "pieces_techniques.delete"
    PART_DUPLICATED = "pieces_techniques.duplicate"
    PART_STATUS_CHANGED = "pieces_techniques.status.update"

    # Nomenclature
    BOM_LINE_ADDED = "pieces_techniques.bom.create"
    BOM_LINE_UPDATED = "pieces_techniques.bom.update"
    BOM_LINE_DELETED = "pieces_techniques.bom.delete"
    BOM_REORDERED = "pieces_techniques.bom.reorder"

    # Operations
    OPERATION_ADDED = "pieces_techniques.operations.create"
    OPERATION_UPDATED = "pieces_techniques.operations.update"
    OPERATION_DELETED = "pieces_techniques.operations.delete"
    OPERATIONS_REORDERED = "pieces_techniques.operations.reorder"

    # Achats
    ACHAT_ADDED = "pieces_techniques.achats.create"
    ACHAT_UPDATED = "pieces_techniques.achats.update"
    ACHAT_DELETED = "pieces_techniques.achats.delete"
    ACHATS_REORDERED = "pieces_techniques.achats.reorder"

    # Documents
    DOCUMENTS_ATTACHED = "pieces_techniques.documents.attach"
    DOCUMENT_REMOVED = "pieces_techniques.documents.remove"
    DOCUMENT_DOWNLOADED = "pieces_techniques.documents.download"

    # Affaires
    AFFAIRE_LINKED = "pieces_techniques.affaires.link"
    AFFAIRE_UNLINKED = "pieces_techniques.affaires.unlink"

    # Families
    FAMILY_CREATED = "pieces_families.create"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.

    Non-goals:
        - This model does NOT compute the hash; AuditorService does.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    # Type of entity being audited ("part", "part_family")
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(80), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    # Request context (ip, user agent, path) supplied by the caller
    context: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null for the first event
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

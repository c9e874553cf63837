"""
Module: bom_kernel.models.document
Responsibility: ORM persistence for document metadata attached to a part.
    The bytes live in the document store; this row records where, how big
    and what hash.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A row is only flushed after its file has been moved into the store
      and hashed; sha256 and size_bytes describe the stored bytes.
    - Removal is soft (removed_at / removed_by_id); the file is kept.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import Base, UUIDString


class PartDocument(Base):
    """Metadata of one stored document.  ``id`` is the generated document id."""

    __tablename__ = "part_documents"

    __table_args__ = (
        Index("idx_document_part", "part_id", "created_at"),
    )

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parts.id"),
        nullable=False,
    )

    original_name: Mapped[str] = mapped_column(String(255), nullable=False)

    stored_name: Mapped[str] = mapped_column(String(64), nullable=False)

    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)

    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)

    size_bytes: Mapped[int] = mapped_column(nullable=False)

    sha256: Mapped[str] = mapped_column(String(64), nullable=False)

    label: Mapped[str | None] = mapped_column(String(255), nullable=True)

    uploaded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    removed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    removed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def is_removed(self) -> bool:
        return self.removed_at is not None

    def __repr__(self) -> str:
        return f"<PartDocument {self.stored_name} ({self.original_name})>"

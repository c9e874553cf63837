"""
Module: bom_kernel.models.history
Responsibility: ORM persistence for the append-only part lifecycle history.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (db/immutability.py).
    - seq comes from SequenceService and breaks ties between entries that
      share an occurred_at, so history order is commit order.
    - ancien_statut is NULL only for the creation (or duplication) entry.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import Base, UUIDString
from bom_kernel.domain.lifecycle import PartStatus


class PartHistoryEntry(Base):
    """One recorded status change (or creation) of a part."""

    __tablename__ = "part_history"

    __table_args__ = (
        Index("idx_history_part", "part_id", "occurred_at", "seq"),
    )

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parts.id"),
        nullable=False,
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    ancien_statut: Mapped[PartStatus | None] = mapped_column(String(20), nullable=True)

    nouveau_statut: Mapped[PartStatus] = mapped_column(String(20), nullable=False)

    commentaire: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PartHistoryEntry {self.ancien_statut} -> {self.nouveau_statut}>"

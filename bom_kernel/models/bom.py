"""
Module: bom_kernel.models.bom
Responsibility: ORM persistence for nomenclature edges ("parent part contains
    N units of child part at position rang").
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by NomenclatureService, not by the schema):
    - The graph induced by all rows is acyclic; parent_part_id never equals
      child_part_id.
    - rang is only meaningful among siblings of the same parent.  Collisions
      are allowed at storage level; reorder() renumbers densely.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import Base, UUIDString


class BomLine(Base):
    """One edge of the self-referential BOM graph."""

    __tablename__ = "part_bom_lines"

    __table_args__ = (
        Index("idx_bom_parent", "parent_part_id"),
        Index("idx_bom_child", "child_part_id"),
    )

    parent_part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parts.id"),
        nullable=False,
    )

    child_part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parts.id"),
        nullable=False,
    )

    rang: Mapped[int] = mapped_column(nullable=False)

    quantite: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))

    repere: Mapped[str | None] = mapped_column(String(50), nullable=True)

    designation: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<BomLine {self.parent_part_id} -> {self.child_part_id} rang={self.rang}>"

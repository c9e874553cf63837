"""
Module: bom_kernel.models.operation
Responsibility: ORM persistence for manufacturing operations of a part.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by OperationService):
    - temps_total and cout_mo are always the Costing Calculator's output for
      the row's own tp / tf_unit / qte / coef / taux_horaire.
    - phase orders operations within a part.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import Base, UUIDString


class PartOperation(Base):
    """One manufacturing step (routing line) of a part."""

    __tablename__ = "part_operations"

    __table_args__ = (
        Index("idx_operation_part", "part_id", "phase"),
    )

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parts.id"),
        nullable=False,
    )

    phase: Mapped[int] = mapped_column(nullable=False)

    designation: Mapped[str] = mapped_column(String(255), nullable=False)

    designation_2: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Workstation / cost centre reference
    cf_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    prix: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    coef: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))

    # Preparation time (hours)
    tp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Execution time per unit (hours)
    tf_unit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    qte: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))

    taux_horaire: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Derived
    temps_total: Mapped[Decimal] = mapped_column(nullable=False)

    cout_mo: Mapped[Decimal] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<PartOperation phase={self.phase} {self.designation}>"

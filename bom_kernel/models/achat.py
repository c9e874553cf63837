"""
Module: bom_kernel.models.achat
Responsibility: ORM persistence for purchased-component lines of a part.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced (by AchatService):
    - total_achat_ht / total_achat_ttc are always the Costing Calculator's
      output for the row's own quantite / pu_achat / tva_achat.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import Base, UUIDString


class PartAchat(Base):
    """One externally sourced input of a part."""

    __tablename__ = "part_achats"

    __table_args__ = (
        Index("idx_achat_part", "part_id", "phase"),
    )

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parts.id"),
        nullable=False,
    )

    phase: Mapped[int | None] = mapped_column(nullable=True)

    famille_piece_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    nom: Mapped[str | None] = mapped_column(String(255), nullable=True)

    article_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Supplier
    fournisseur_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    fournisseur_nom: Mapped[str | None] = mapped_column(String(255), nullable=True)

    fournisseur_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    quantite: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))

    # Raw material helpers
    quantite_brut_mm: Mapped[Decimal | None] = mapped_column(nullable=True)

    longueur_mm: Mapped[Decimal | None] = mapped_column(nullable=True)

    coefficient_chute: Mapped[Decimal | None] = mapped_column(nullable=True)

    quantite_pieces: Mapped[Decimal | None] = mapped_column(nullable=True)

    prix_par_quantite: Mapped[Decimal | None] = mapped_column(nullable=True)

    tarif: Mapped[Decimal | None] = mapped_column(nullable=True)

    prix: Mapped[Decimal | None] = mapped_column(nullable=True)

    unite_prix: Mapped[str | None] = mapped_column(String(20), nullable=True)

    pu_achat: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    tva_achat: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("20"))

    # Derived
    total_achat_ht: Mapped[Decimal] = mapped_column(nullable=False)

    total_achat_ttc: Mapped[Decimal] = mapped_column(nullable=False)

    designation: Mapped[str | None] = mapped_column(String(255), nullable=True)

    designation_2: Mapped[str | None] = mapped_column(String(255), nullable=True)

    designation_3: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<PartAchat phase={self.phase} {self.nom or self.designation}>"

"""
Module: bom_kernel.models.affaire_link
Responsibility: ORM persistence for links between parts and production
    orders ("affaires").  Affaires live in another module; only their
    integer id is stored here.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (affaire_id, part_id) is unique (uq_affaire_part).
    - At most one MAIN link per affaire: partial unique index
      uq_affaire_single_main (WHERE role = 'MAIN').  AffaireLinkService
      demotes the previous holder before writing the new one.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import TrackedBase, UUIDString


class AffaireRole(str, Enum):
    MAIN = "MAIN"
    LINKED = "LINKED"


class AffairePartLink(TrackedBase):
    """Part used by a production order, as its main part or a linked one."""

    __tablename__ = "affaire_part_links"

    __table_args__ = (
        UniqueConstraint("affaire_id", "part_id", name="uq_affaire_part"),
        Index(
            "uq_affaire_single_main",
            "affaire_id",
            unique=True,
            postgresql_where=text("role = 'MAIN'"),
            sqlite_where=text("role = 'MAIN'"),
        ),
        Index("idx_affaire_link_part", "part_id"),
    )

    affaire_id: Mapped[int] = mapped_column(nullable=False)

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parts.id"),
        nullable=False,
    )

    role: Mapped[AffaireRole] = mapped_column(
        String(10),
        nullable=False,
        default=AffaireRole.LINKED,
    )

    def __repr__(self) -> str:
        return f"<AffairePartLink affaire={self.affaire_id} part={self.part_id} {self.role}>"

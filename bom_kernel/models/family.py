"""
Module: bom_kernel.models.family
Responsibility: ORM persistence for part families (the classification every
    technical part belongs to).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique (uq_part_family_code).
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import TrackedBase


class PartFamily(TrackedBase):
    """Family of technical parts (e.g. "usinage", "tôlerie")."""

    __tablename__ = "part_families"

    __table_args__ = (
        UniqueConstraint("code", name="uq_part_family_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    designation: Mapped[str] = mapped_column(String(255), nullable=False)

    type_famille: Mapped[str | None] = mapped_column(String(50), nullable=True)

    section: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<PartFamily {self.code}: {self.designation}>"

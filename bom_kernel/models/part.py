"""
Module: bom_kernel.models.part
Responsibility: ORM persistence for technical parts ("pièces techniques"),
    the aggregate root that owns BOM lines, operations, achats, history,
    document links and affaire links.
Architecture position: Kernel > Models.  May import from db/ and domain/
    enums only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - code_piece is unique among non-deleted parts (partial unique index
      uq_parts_code_live, WHERE deleted_at IS NULL, on PostgreSQL and SQLite).
    - en_fabrication mirrors statut == IN_FABRICATION.  Only the services
      write either column, always together.
    - Rows are never physically deleted (db/immutability.py blocks it);
      deleted_at / deleted_by_id mark a soft delete.

Failure modes:
    - IntegrityError on a live duplicate code_piece; PartRepository
      translates it to DuplicatePartCodeError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from bom_kernel.db.base import SoftDeleteMixin, TrackedBase, UUIDString
from bom_kernel.domain.lifecycle import PartStatus

CODE_PIECE_MAX_LENGTH = 100


class Part(SoftDeleteMixin, TrackedBase):
    """
    Manufacturable or purchasable technical item.

    Guarantees:
        - statut is one of PartStatus; only LifecycleService changes it after
          creation.
        - updated_at changes on every committed mutation of the part or of
          one of its child collections (it is the optimistic-lock token).
    """

    __tablename__ = "parts"

    __table_args__ = (
        Index(
            "uq_parts_code_live",
            "code_piece",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_parts_famille", "famille_id"),
        Index("idx_parts_client", "client_id"),
        Index("idx_parts_statut", "statut"),
    )

    famille_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("part_families.id"),
        nullable=False,
    )

    # Internal name and unique business code
    name_piece: Mapped[str] = mapped_column(String(255), nullable=False)

    code_piece: Mapped[str] = mapped_column(String(CODE_PIECE_MAX_LENGTH), nullable=False)

    designation: Mapped[str] = mapped_column(String(255), nullable=False)

    designation_2: Mapped[str | None] = mapped_column(String(255), nullable=True)

    prix_unitaire: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Lifecycle
    statut: Mapped[PartStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PartStatus.DRAFT,
    )

    en_fabrication: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Cycle times (seconds)
    cycle: Mapped[int | None] = mapped_column(nullable=True)

    cycle_fabrication: Mapped[int | None] = mapped_column(nullable=True)

    # Client scoping
    client_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    code_client: Mapped[str | None] = mapped_column(String(100), nullable=True)

    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Assembly (has a nomenclature of its own)
    ensemble: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Part {self.code_piece} statut={PartStatus(self.statut).value}>"

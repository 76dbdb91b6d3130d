"""
Module: stock_kernel.models.stock
Responsibility: ORM persistence for the stock ledger (current quantity per
    product and warehouse) and the append-only movement log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - Non-negative stock: CHECK (quantity >= 0) on stock_records.
    - One row per (product, warehouse): UNIQUE constraint.  A missing row
      means quantity 0.
    - Movement arithmetic: CHECK (quantity_after = quantity_before +
      quantity_change), both sides non-negative.
    - Movement ordering: seq is unique and strictly increasing (allocated by
      SequenceService under a row lock).
    - Append-only: ORM listeners in db/immutability.py block UPDATE/DELETE
      on movements and DELETE on stock records.

Failure modes:
    - IntegrityError on duplicate (product_id, warehouse_id) insert (the
      ledger retries inside a savepoint).
    - IntegrityError if a CHECK constraint is violated.
    - ImmutabilityViolationError on UPDATE/DELETE of a movement.

Audit relevance:
    Replaying stock_movements in seq order reproduces every stock_records
    quantity.  scripts/verify_ledger.py performs exactly that replay.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.domain.values import MovementType, ReferenceType
from stock_kernel.models.warehouse import Warehouse


class StockRecord(TrackedBase):
    """
    Current on-hand quantity of one product in one warehouse.

    Contract:
        Written only through StockLedger.apply_delta.  Created on the first
        movement for the pair and never deleted; quantity may return to 0.
    """

    __tablename__ = "stock_records"

    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", name="uq_stock_product_warehouse"),
        CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        Index("idx_stock_warehouse", "warehouse_id"),
        Index("idx_stock_product", "product_id"),
    )

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    warehouse: Mapped[Warehouse] = relationship(Warehouse)

    def __repr__(self) -> str:
        return f"<StockRecord {self.product_id}@{self.warehouse_id} qty={self.quantity}>"


class StockMovement(Base):
    """
    One immutable quantity change and its cause.

    Contract:
        Written once, in the same transaction as the StockRecord change it
        describes.  Never updated, never deleted.  ``reference_number``
        correlates the two legs of a transfer and the adjustments of one
        opname finalize; ``reference_id`` optionally points at the source
        document (e.g. the opname session).
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_movement_seq"),
        CheckConstraint(
            "quantity_after = quantity_before + quantity_change",
            name="ck_movement_arithmetic",
        ),
        CheckConstraint("quantity_before >= 0", name="ck_movement_before_non_negative"),
        CheckConstraint("quantity_after >= 0", name="ck_movement_after_non_negative"),
        Index("idx_movement_product_warehouse", "product_id", "warehouse_id"),
        Index("idx_movement_reference_number", "reference_number"),
        Index("idx_movement_created_at", "created_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)

    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)

    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False)

    reference_type: Mapped[ReferenceType] = mapped_column(String(20), nullable=False)

    reference_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1600), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockMovement #{self.seq} {self.movement_type} "
            f"{self.quantity_before}->{self.quantity_after}>"
        )

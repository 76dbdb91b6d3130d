"""
Module: stock_kernel.models.opname
Responsibility: ORM persistence for physical stock count (opname) sessions
    and their per-product count lines.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Invariants enforced:
    - Session numbers are unique (``OP-YYYYMMDD-NNNN``).
    - One item per (session, product).
    - system_qty is the snapshot taken at session creation and is never
      rewritten.
    - Once status is FINALIZED the session row and all its items are frozen
      (ORM listeners in db/immutability.py).

Failure modes:
    - IntegrityError on duplicate session number or duplicate item.
    - ImmutabilityViolationError on any change after finalization.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.domain.values import OpnameStatus
from stock_kernel.models.warehouse import Warehouse


class OpnameSession(TrackedBase):
    """
    One physical count of one warehouse.

    Contract:
        Status moves draft -> counting -> finalized and never backward.
        finalized_at is set exactly once, by the finalize that applies the
        correction.  Soft-deleted sessions (is_active=False) are invisible
        to every read and write path.
    """

    __tablename__ = "opname_sessions"

    __table_args__ = (
        UniqueConstraint("number", name="uq_opname_number"),
        Index("idx_opname_warehouse", "warehouse_id"),
        Index("idx_opname_status", "status"),
    )

    number: Mapped[str] = mapped_column(String(30), nullable=False)

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("warehouses.id"),
        nullable=False,
    )

    status: Mapped[OpnameStatus] = mapped_column(
        String(10),
        default=OpnameStatus.DRAFT,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    finalized_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    finalized_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    warehouse: Mapped[Warehouse] = relationship(Warehouse)

    items: Mapped[list["OpnameItem"]] = relationship(
        "OpnameItem",
        back_populates="session",
        order_by="OpnameItem.position",
    )

    def __repr__(self) -> str:
        return f"<OpnameSession {self.number} status={self.status}>"

    @property
    def is_finalized(self) -> bool:
        return self.status == OpnameStatus.FINALIZED


class OpnameItem(Base):
    """
    One product line in an opname session.

    Contract:
        physical_qty is None until counted.  difference is
        physical_qty - system_qty whenever physical_qty is set, else None.
    """

    __tablename__ = "opname_items"

    __table_args__ = (
        UniqueConstraint("session_id", "product_id", name="uq_opname_item_product"),
        Index("idx_opname_item_session", "session_id"),
    )

    session_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("opname_sessions.id"),
        nullable=False,
    )

    # Snapshot order, so reads list items as they were captured.
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    system_qty: Mapped[int] = mapped_column(Integer, nullable=False)

    physical_qty: Mapped[int | None] = mapped_column(Integer, nullable=True)

    difference: Mapped[int | None] = mapped_column(Integer, nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    counted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    counted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    session: Mapped[OpnameSession] = relationship(
        OpnameSession,
        back_populates="items",
    )

    def __repr__(self) -> str:
        return (
            f"<OpnameItem {self.product_id} system={self.system_qty} "
            f"physical={self.physical_qty}>"
        )

    @property
    def is_counted(self) -> bool:
        return self.physical_qty is not None

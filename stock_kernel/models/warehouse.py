"""
Module: stock_kernel.models.warehouse
Responsibility: ORM persistence for warehouses (stock locations).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.

Warehouses are created and edited by an administrative collaborator outside
this core.  The kernel reads them (existence, active flag, role) and never
mutates them.

Invariants enforced:
    - Unique warehouse code.
    - At most one active default sellable warehouse (checked on read by
      WarehouseDirectory, since the rows are owned by the admin collaborator).
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.domain.values import WarehouseType


class Warehouse(TrackedBase):
    """
    A physical or logical stock location.

    Contract:
        ``type`` is SELLABLE for stock that can be sold, REJECTED for the
        quarantine location that receives damaged and expired goods.
    """

    __tablename__ = "warehouses"

    __table_args__ = (
        UniqueConstraint("code", name="uq_warehouse_code"),
        Index("idx_warehouse_type", "type"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    type: Mapped[WarehouseType] = mapped_column(
        String(20),
        default=WarehouseType.SELLABLE,
        nullable=False,
    )

    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Warehouse {self.code} type={self.type}>"

    @property
    def is_rejected(self) -> bool:
        return self.type == WarehouseType.REJECTED

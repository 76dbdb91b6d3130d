"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Read projections over the stock ledger -- stock per
    warehouse, stock per product across warehouses, and what currently sits
    in quarantine.
Architecture position: Kernel > Selectors.

Every quantity shown anywhere is a read of stock_records, never a sum over
movements at request time.  Rows with quantity 0 are included unless
``non_zero_only`` is requested.
"""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.values import StockLevel, WarehouseType
from stock_kernel.models.stock import StockRecord
from stock_kernel.models.warehouse import Warehouse
from stock_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector[StockRecord]):
    """Current quantities, joined with warehouse code and name."""

    def _levels(self, *criteria, non_zero_only: bool = False) -> list[StockLevel]:
        stmt = (
            select(StockRecord, Warehouse.code, Warehouse.name)
            .join(Warehouse, Warehouse.id == StockRecord.warehouse_id)
            .where(*criteria)
            .order_by(Warehouse.code, StockRecord.product_id)
            .execution_options(populate_existing=True)
        )
        if non_zero_only:
            stmt = stmt.where(StockRecord.quantity > 0)

        return [
            StockLevel(
                product_id=record.product_id,
                warehouse_id=record.warehouse_id,
                quantity=record.quantity,
                warehouse_code=code,
                warehouse_name=name,
            )
            for record, code, name in self.session.execute(stmt).all()
        ]

    def warehouse_stock(self, warehouse_id: UUID, non_zero_only: bool = False) -> list[StockLevel]:
        """Every tracked product in one warehouse."""
        return self._levels(StockRecord.warehouse_id == warehouse_id, non_zero_only=non_zero_only)

    def product_stock(self, product_id: UUID, non_zero_only: bool = False) -> list[StockLevel]:
        """One product across all warehouses."""
        return self._levels(StockRecord.product_id == product_id, non_zero_only=non_zero_only)

    def rejected_stock(self) -> list[StockLevel]:
        """Non-zero stock held in rejected (quarantine) warehouses."""
        return self._levels(
            Warehouse.type == WarehouseType.REJECTED.value,
            Warehouse.is_active.is_(True),
            non_zero_only=True,
        )

    def total_quantity(self, product_id: UUID) -> int:
        """Sum over all warehouses, used to check transfer conservation."""
        return sum(level.quantity for level in self.product_stock(product_id))

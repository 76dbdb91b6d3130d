"""ORM models for the stock kernel."""

from stock_kernel.models.opname import OpnameItem, OpnameSession
from stock_kernel.models.stock import StockMovement, StockRecord
from stock_kernel.models.warehouse import Warehouse

__all__ = [
    "OpnameItem",
    "OpnameSession",
    "StockMovement",
    "StockRecord",
    "Warehouse",
]

"""
Inventory Module (``stock_modules.inventory``).

Responsibility
--------------
The orchestration surface over the stock kernel: manual adjustments (single
and batch), transfers, producer receipts and issues, stock opname sessions,
and the read side (stock levels, movement log, ledger audit).

Architecture
------------
Layer: **Modules** -- config schema, request converters, and a thin service
that owns transaction boundaries.  Imports from ``stock_kernel`` but never
the reverse.
"""

from stock_modules.inventory.config import InventoryConfig, ReferencePrefixes
from stock_modules.inventory.models import (
    as_adjustment_request,
    as_count_update,
)
from stock_modules.inventory.service import InventoryService

__all__ = [
    "InventoryConfig",
    "InventoryService",
    "ReferencePrefixes",
    "as_adjustment_request",
    "as_count_update",
]

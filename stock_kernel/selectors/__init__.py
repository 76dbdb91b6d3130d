"""Read-only selectors.  Every public method returns frozen DTOs."""

from stock_kernel.selectors.audit_selector import LedgerAuditSelector
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.opname_selector import OpnameSelector
from stock_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "BaseSelector",
    "LedgerAuditSelector",
    "MovementSelector",
    "OpnameSelector",
    "StockSelector",
]

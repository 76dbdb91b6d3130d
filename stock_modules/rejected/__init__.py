"""
Rejected Stock Module (``stock_modules.rejected``).

Disposal and restoration of units held in the quarantine warehouse.
"""

from stock_modules.rejected.service import RejectedStockService

__all__ = ["RejectedStockService"]

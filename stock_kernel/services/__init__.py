"""Flush-only kernel services.  None of them commits; the caller does."""

from stock_kernel.services.adjustment_engine import AdjustmentEngine
from stock_kernel.services.movement_log import MovementLog
from stock_kernel.services.opname_engine import OpnameEngine
from stock_kernel.services.sequence_service import SequenceCounter, SequenceService
from stock_kernel.services.stock_flow_service import StockFlowService
from stock_kernel.services.stock_ledger import StockLedger
from stock_kernel.services.transfer_engine import TransferEngine
from stock_kernel.services.warehouse_directory import WarehouseDirectory

__all__ = [
    "AdjustmentEngine",
    "MovementLog",
    "OpnameEngine",
    "SequenceCounter",
    "SequenceService",
    "StockFlowService",
    "StockLedger",
    "TransferEngine",
    "WarehouseDirectory",
]

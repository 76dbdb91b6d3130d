"""Pure domain values for the stock kernel: enums, DTOs, clock, workflow."""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.values import (
    DEFAULT_QUARANTINE_REASONS,
    DISPOSAL_REASON,
    OPNAME_ADJUSTMENT_REASON,
    PRODUCER_REFERENCE_TYPES,
    AdjustmentOutcome,
    AdjustmentRequest,
    AdjustmentType,
    BatchItemResult,
    BatchResult,
    LedgerAuditReport,
    LedgerDiscrepancy,
    MovementDTO,
    MovementFilter,
    MovementStats,
    MovementType,
    OpnameCountUpdate,
    OpnameItemDTO,
    OpnamePage,
    OpnameSessionDTO,
    OpnameStatus,
    OpnameSummary,
    ReferenceType,
    StockLevel,
    TransferResult,
    WarehouseType,
)
from stock_kernel.domain.workflow import OPNAME_WORKFLOW, Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "DEFAULT_QUARANTINE_REASONS",
    "DISPOSAL_REASON",
    "OPNAME_ADJUSTMENT_REASON",
    "PRODUCER_REFERENCE_TYPES",
    "AdjustmentOutcome",
    "AdjustmentRequest",
    "AdjustmentType",
    "BatchItemResult",
    "BatchResult",
    "LedgerAuditReport",
    "LedgerDiscrepancy",
    "MovementDTO",
    "MovementFilter",
    "MovementStats",
    "MovementType",
    "OpnameCountUpdate",
    "OpnameItemDTO",
    "OpnamePage",
    "OpnameSessionDTO",
    "OpnameStatus",
    "OpnameSummary",
    "ReferenceType",
    "StockLevel",
    "TransferResult",
    "WarehouseType",
    "OPNAME_WORKFLOW",
    "Guard",
    "Transition",
    "Workflow",
]

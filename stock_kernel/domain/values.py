"""
Values -- Closed enumerations and immutable value objects for stock.

Responsibility:
    Defines the tagged variants every stock operation is matched against
    (warehouse type, movement type, reference type, adjustment type, opname
    status) and the frozen DTOs that cross the service boundary.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ORM models import the enumerations from here so the persisted string
    values and the in-memory variants never drift apart.

Invariants enforced:
    - Movement arithmetic: ``quantity_after == quantity_before + quantity_change``
      and ``quantity_after >= 0`` (checked in MovementDTO.__post_init__).
    - Closed variants: every enum is a ``str`` Enum so that values persist
      as plain strings and unknown strings fail on construction.

Failure modes:
    - ValueError from enum construction on unknown strings.
    - ValueError from MovementDTO / OpnameSummary on inconsistent arithmetic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from stock_kernel.models.opname import OpnameItem as OpnameItemModel
    from stock_kernel.models.opname import OpnameSession as OpnameSessionModel
    from stock_kernel.models.stock import StockMovement as StockMovementModel


class WarehouseType(str, Enum):
    """Role of a warehouse in the stock flow."""

    SELLABLE = "sellable"
    REJECTED = "rejected"


class MovementType(str, Enum):
    """Direction of a single ledger change."""

    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


class ReferenceType(str, Enum):
    """Business cause of a movement.

    Contract: Every movement carries exactly one reference type.
    Producer flows (purchase, sale, return) write ``in``/``out`` movements;
    adjustments and opname corrections write ``adjustment`` movements;
    transfers write a linked ``out``/``in`` pair.
    """

    PURCHASE = "purchase"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    RETURN = "return"


PRODUCER_REFERENCE_TYPES: frozenset[ReferenceType] = frozenset(
    {ReferenceType.PURCHASE, ReferenceType.SALE, ReferenceType.RETURN}
)


class AdjustmentType(str, Enum):
    """Manual adjustment operation."""

    ADD = "add"
    SUBTRACT = "subtract"
    SET = "set"


class OpnameStatus(str, Enum):
    """Lifecycle status of a physical count session.

    Contract: Transitions are one-way: DRAFT -> COUNTING -> FINALIZED.
    Guarantees: No backward transitions; FINALIZED is terminal.
    """

    DRAFT = "draft"
    COUNTING = "counting"
    FINALIZED = "finalized"


DEFAULT_QUARANTINE_REASONS: tuple[str, ...] = ("Damaged Goods", "Expired")
OPNAME_ADJUSTMENT_REASON = "Stock Opname"
DISPOSAL_REASON = "Disposal"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AdjustmentRequest:
    """One manual adjustment, as submitted singly or inside a batch."""

    product_id: UUID
    warehouse_id: UUID
    adjustment_type: AdjustmentType
    quantity: int
    reason: str
    notes: str | None = None

    def __post_init__(self) -> None:
        # Accept raw strings at the boundary; reject anything outside the variant.
        if not isinstance(self.adjustment_type, AdjustmentType):
            object.__setattr__(
                self, "adjustment_type", AdjustmentType(self.adjustment_type)
            )


@dataclass(frozen=True)
class OpnameCountUpdate:
    """Physical count for one item of an opname session."""

    item_id: UUID
    physical_qty: int
    notes: str | None = None


@dataclass(frozen=True)
class MovementFilter:
    """Read-side filter for the movement log.  All criteria are ANDed."""

    product_id: UUID | None = None
    warehouse_id: UUID | None = None
    movement_type: MovementType | None = None
    reference_type: ReferenceType | None = None
    reference_number: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    search: str | None = None
    limit: int | None = None
    offset: int = 0


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MovementDTO:
    """Immutable snapshot of one movement log row."""

    id: UUID
    seq: int
    product_id: UUID
    warehouse_id: UUID
    movement_type: MovementType
    quantity_before: int
    quantity_after: int
    quantity_change: int
    reference_type: ReferenceType
    reference_number: str | None
    reference_id: UUID | None
    notes: str | None
    created_at: datetime
    created_by_id: UUID

    def __post_init__(self) -> None:
        if self.quantity_after != self.quantity_before + self.quantity_change:
            raise ValueError(
                f"Movement {self.id}: after ({self.quantity_after}) != "
                f"before ({self.quantity_before}) + change ({self.quantity_change})"
            )
        if self.quantity_after < 0:
            raise ValueError(
                f"Movement {self.id}: quantity_after is negative ({self.quantity_after})"
            )

    @classmethod
    def from_model(cls, model: StockMovementModel) -> MovementDTO:
        """Boundary converter, called from services and selectors only."""
        return cls(
            id=model.id,
            seq=model.seq,
            product_id=model.product_id,
            warehouse_id=model.warehouse_id,
            movement_type=MovementType(model.movement_type),
            quantity_before=model.quantity_before,
            quantity_after=model.quantity_after,
            quantity_change=model.quantity_change,
            reference_type=ReferenceType(model.reference_type),
            reference_number=model.reference_number,
            reference_id=model.reference_id,
            notes=model.notes,
            created_at=model.created_at,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class AdjustmentOutcome:
    """Result of one adjustment.

    ``movement`` is the ``adjustment`` movement on the requested warehouse.
    When a damage/expiry subtraction was rerouted to quarantine,
    ``quarantine_movement`` is the matching ``in`` movement on the rejected
    warehouse.
    """

    movement: MovementDTO
    quarantine_movement: MovementDTO | None = None

    @property
    def quarantined(self) -> bool:
        return self.quarantine_movement is not None


@dataclass(frozen=True)
class TransferResult:
    """Linked out/in pair produced by one transfer."""

    out_movement: MovementDTO
    in_movement: MovementDTO
    reference_number: str


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of one batch item: either an outcome or an error."""

    index: int
    outcome: AdjustmentOutcome | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None


@dataclass(frozen=True)
class BatchResult:
    """Per-item results of a batch adjustment, in request order."""

    results: tuple[BatchItemResult, ...] = ()

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.succeeded)


@dataclass(frozen=True)
class OpnameSummary:
    """Fold over the signed quantity changes applied by a finalize."""

    adjusted_items: int = 0
    total_added: int = 0
    total_subtracted: int = 0

    def __post_init__(self) -> None:
        if self.total_added < 0 or self.total_subtracted < 0:
            raise ValueError("Opname summary totals must be non-negative")

    @classmethod
    def from_changes(cls, changes: list[int]) -> OpnameSummary:
        """Build a summary from the quantity_change of each applied movement."""
        applied = [c for c in changes if c != 0]
        return cls(
            adjusted_items=len(applied),
            total_added=sum(c for c in applied if c > 0),
            total_subtracted=-sum(c for c in applied if c < 0),
        )


@dataclass(frozen=True)
class OpnameItemDTO:
    """One counted (or not yet counted) product in an opname session."""

    id: UUID
    session_id: UUID
    product_id: UUID
    system_qty: int
    physical_qty: int | None
    difference: int | None
    notes: str | None = None
    counted_at: datetime | None = None

    @property
    def is_counted(self) -> bool:
        return self.physical_qty is not None

    @classmethod
    def from_model(cls, model: OpnameItemModel) -> OpnameItemDTO:
        return cls(
            id=model.id,
            session_id=model.session_id,
            product_id=model.product_id,
            system_qty=model.system_qty,
            physical_qty=model.physical_qty,
            difference=model.difference,
            notes=model.notes,
            counted_at=model.counted_at,
        )


@dataclass(frozen=True)
class OpnameSessionDTO:
    """Opname session header with derived counters and (optionally) items."""

    id: UUID
    number: str
    warehouse_id: UUID
    status: OpnameStatus
    notes: str | None
    total_items: int
    counted_items: int
    items_with_difference: int
    is_active: bool
    created_at: datetime | None
    finalized_at: datetime | None
    items: tuple[OpnameItemDTO, ...] = ()

    @property
    def is_finalized(self) -> bool:
        return self.status == OpnameStatus.FINALIZED

    @classmethod
    def from_model(
        cls,
        model: OpnameSessionModel,
        include_items: bool = True,
        counted_items: int | None = None,
        items_with_difference: int | None = None,
    ) -> OpnameSessionDTO:
        """
        Build the DTO.  Derived counters are computed from ``model.items``
        unless the caller already aggregated them in SQL.
        """
        items = tuple(OpnameItemDTO.from_model(i) for i in model.items) if include_items else ()
        if counted_items is None:
            counted_items = sum(1 for i in model.items if i.physical_qty is not None)
        if items_with_difference is None:
            items_with_difference = sum(
                1 for i in model.items if i.difference is not None and i.difference != 0
            )
        return cls(
            id=model.id,
            number=model.number,
            warehouse_id=model.warehouse_id,
            status=OpnameStatus(model.status),
            notes=model.notes,
            total_items=model.total_items,
            counted_items=counted_items,
            items_with_difference=items_with_difference,
            is_active=model.is_active,
            created_at=model.created_at,
            finalized_at=model.finalized_at,
            items=items,
        )


@dataclass(frozen=True)
class OpnamePage:
    """One page of an opname session listing."""

    sessions: tuple[OpnameSessionDTO, ...]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


@dataclass(frozen=True)
class StockLevel:
    """Current on-hand quantity of one product in one warehouse."""

    product_id: UUID
    warehouse_id: UUID
    quantity: int
    warehouse_code: str | None = None
    warehouse_name: str | None = None


@dataclass(frozen=True)
class MovementStats:
    """Aggregate counters over a slice of the movement log."""

    total_in: int = 0
    total_out: int = 0
    total_adjustments: int = 0
    net_change: int = 0
    movement_count: int = 0


@dataclass(frozen=True)
class LedgerDiscrepancy:
    """One disagreement found while replaying the movement log."""

    product_id: UUID
    warehouse_id: UUID
    kind: str
    expected: int | None
    actual: int | None
    movement_id: UUID | None = None


@dataclass(frozen=True)
class LedgerAuditReport:
    """Result of replaying every movement against the ledger."""

    records_checked: int
    movements_replayed: int
    discrepancies: tuple[LedgerDiscrepancy, ...] = field(default_factory=tuple)

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies

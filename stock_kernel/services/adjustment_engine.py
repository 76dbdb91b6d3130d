"""
AdjustmentEngine -- manual add / subtract / set against the ledger.

Responsibility:
    Turns one adjustment request into exactly one ledger change plus its
    movement, and is the only component that special-cases damaged or
    expired stock: a negative change with such a reason is still recorded as
    an adjustment on the source, but the units land in the rejected
    (quarantine) warehouse instead of being destroyed.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  The Opname Engine
    finalize is built on ``set``; the Rejected-Stock Workflow disposal is
    built on ``subtract``.

Invariants enforced:
    - ``after == before + delta`` and ``after >= 0`` (via StockLedger).
    - ``set(q)`` twice in a row writes a second movement with change 0.
    - Quarantine conservation: a rerouted subtraction raises the rejected
      warehouse by exactly the amount removed from the source.

Failure modes:
    - InvalidQuantityError / ValidationError: rejected before any write.
    - WarehouseNotFoundError / WarehouseInactiveError.
    - WarehouseConfigurationError: quarantine reroute needed but no single
      active rejected warehouse exists.
    - InsufficientStockError: subtract would go below zero.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import (
    DEFAULT_QUARANTINE_REASONS,
    AdjustmentOutcome,
    AdjustmentRequest,
    AdjustmentType,
    MovementType,
    ReferenceType,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import StockRecord
from stock_kernel.services.base import BaseService
from stock_kernel.services.movement_log import MovementLog
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger import StockLedger
from stock_kernel.services.validation import (
    validate_notes,
    validate_quantity,
    validate_reason,
)
from stock_kernel.services.warehouse_directory import WarehouseDirectory

logger = get_logger("services.adjustment_engine")


def format_adjustment_notes(reason: str, notes: str | None) -> str:
    """``"<reason>: <notes>"``, or just the reason when there are no notes."""
    return f"{reason}: {notes}" if notes else reason


class AdjustmentEngine(BaseService[StockRecord]):
    """
    Manual stock adjustments.

    Contract:
        Every call writes exactly one ``adjustment`` movement on the target
        warehouse.  A quarantine reroute adds a second movement, ``in`` /
        ``transfer`` on the rejected warehouse, under the same reference.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
        quarantine_reasons: tuple[str, ...] = DEFAULT_QUARANTINE_REASONS,
        quarantine_enabled: bool = True,
        reference_prefix: str = "ADJ",
    ):
        super().__init__(session)
        self._actor_id = actor_id
        self._clock = clock or SystemClock()
        self._quarantine_reasons = tuple(quarantine_reasons)
        self._quarantine_enabled = quarantine_enabled
        self._reference_prefix = reference_prefix
        self._ledger = StockLedger(session, actor_id)
        self._movements = MovementLog(session, actor_id, self._clock)
        self._sequences = SequenceService(session)
        self._warehouses = WarehouseDirectory(session)

    def is_quarantine_reason(self, reason: str) -> bool:
        """Substring match, so "Expired Products" counts as "Expired"."""
        return any(r in reason for r in self._quarantine_reasons)

    # -- public operations ---------------------------------------------------

    def add(self, product_id: UUID, warehouse_id: UUID, quantity: int,
            reason: str, notes: str | None = None) -> AdjustmentOutcome:
        validate_quantity(quantity, minimum=1)
        return self._adjust(product_id, warehouse_id, AdjustmentType.ADD, quantity, reason, notes)

    def subtract(self, product_id: UUID, warehouse_id: UUID, quantity: int,
                 reason: str, notes: str | None = None) -> AdjustmentOutcome:
        validate_quantity(quantity, minimum=1)
        return self._adjust(product_id, warehouse_id, AdjustmentType.SUBTRACT, quantity, reason, notes)

    def set(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        reason: str,
        notes: str | None = None,
        reference_number: str | None = None,
        reference_id: UUID | None = None,
    ) -> AdjustmentOutcome:
        """Set the quantity to an absolute value (delta = quantity - current)."""
        validate_quantity(quantity, minimum=0)
        return self._adjust(
            product_id, warehouse_id, AdjustmentType.SET, quantity, reason, notes,
            reference_number=reference_number, reference_id=reference_id,
        )

    def apply(self, request: AdjustmentRequest) -> AdjustmentOutcome:
        """Dispatch one request on its adjustment type."""
        match request.adjustment_type:
            case AdjustmentType.ADD:
                op = self.add
            case AdjustmentType.SUBTRACT:
                op = self.subtract
            case AdjustmentType.SET:
                op = self.set
            case _:
                raise ValueError(f"Unknown adjustment type: {request.adjustment_type}")
        return op(
            request.product_id,
            request.warehouse_id,
            request.quantity,
            request.reason,
            request.notes,
        )

    # -- internals ------------------------------------------------------------

    def _delta(self, adjustment_type: AdjustmentType, quantity: int, current: int) -> int:
        match adjustment_type:
            case AdjustmentType.ADD:
                return quantity
            case AdjustmentType.SUBTRACT:
                return -quantity
            case AdjustmentType.SET:
                return quantity - current
            case _:
                raise ValueError(f"Unknown adjustment type: {adjustment_type}")

    def _adjust(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        adjustment_type: AdjustmentType,
        quantity: int,
        reason: str,
        notes: str | None,
        reference_number: str | None = None,
        reference_id: UUID | None = None,
    ) -> AdjustmentOutcome:
        validate_reason(reason)
        validate_notes(notes)
        warehouse = self._warehouses.require_active(warehouse_id)

        # A quarantine reroute touches the rejected row too, so both rows are
        # locked together in global order before the delta is computed.
        rejected = None
        if (
            adjustment_type != AdjustmentType.ADD
            and self._quarantine_enabled
            and not warehouse.is_rejected
            and self.is_quarantine_reason(reason)
        ):
            rejected = self._warehouses.get_rejected()

        key = (product_id, warehouse.id)
        keys = [key] if rejected is None else [key, (product_id, rejected.id)]
        current = self._ledger.lock(keys)[key]
        delta = self._delta(adjustment_type, quantity, current)

        # Both ledger rows change before any counter is taken.
        before, after = self._ledger.apply_delta(product_id, warehouse.id, delta)
        rerouted = None
        if delta < 0 and rejected is not None:
            rerouted = self._ledger.apply_delta(product_id, rejected.id, -delta)

        if reference_number is None:
            reference_number = self._sequences.next_reference(
                SequenceService.ADJUSTMENT_REF, self._reference_prefix,
            )
        movement = self._movements.append(
            product_id=product_id,
            warehouse_id=warehouse.id,
            movement_type=MovementType.ADJUSTMENT,
            quantity_before=before,
            quantity_after=after,
            reference_type=ReferenceType.ADJUSTMENT,
            reference_number=reference_number,
            reference_id=reference_id,
            notes=format_adjustment_notes(reason, notes),
        )

        logger.info(
            "stock_adjusted",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse.id),
                "adjustment_type": adjustment_type.value,
                "quantity_before": before,
                "quantity_after": after,
                "quantity_change": movement.quantity_change,
                "reason": reason,
                "reference_number": reference_number,
            },
        )

        quarantine_movement = None
        if rerouted is not None:
            quarantine_movement = self._record_quarantine(
                product_id, warehouse, rejected, rerouted, reason, reference_number,
            )
        return AdjustmentOutcome(movement=movement, quarantine_movement=quarantine_movement)

    def _record_quarantine(self, product_id, warehouse, rejected, rerouted, reason, reference_number):
        """Receiving leg of a damaged/expired write-off, on the rejected warehouse."""
        before, after = rerouted
        movement = self._movements.append(
            product_id=product_id,
            warehouse_id=rejected.id,
            movement_type=MovementType.IN,
            quantity_before=before,
            quantity_after=after,
            reference_type=ReferenceType.TRANSFER,
            reference_number=reference_number,
            notes=f"Transferred from {warehouse.name} ({reason})",
        )
        logger.info(
            "stock_quarantined",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse.id),
                "rejected_warehouse_id": str(rejected.id),
                "quantity": movement.quantity_change,
                "reason": reason,
                "reference_number": reference_number,
            },
        )
        return movement

"""
StockFlowService -- inbound/outbound movements from producer flows.

Sale, purchase and return processors own their own business rules; all
they need from the stock core is to move units through the same ledger
and leave a movement behind.  ``receive`` writes an ``in`` movement,
``issue`` an ``out`` movement.  Issues are subject to the same
non-negative rule as everything else.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import (
    PRODUCER_REFERENCE_TYPES,
    MovementDTO,
    MovementType,
    ReferenceType,
)
from stock_kernel.exceptions import InvalidReferenceTypeError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import StockRecord
from stock_kernel.services.base import BaseService
from stock_kernel.services.movement_log import MovementLog
from stock_kernel.services.stock_ledger import StockLedger
from stock_kernel.services.validation import validate_notes, validate_quantity
from stock_kernel.services.warehouse_directory import WarehouseDirectory

logger = get_logger("services.stock_flow")


class StockFlowService(BaseService[StockRecord]):

    def __init__(self, session: Session, actor_id: UUID, clock: Clock | None = None):
        super().__init__(session)
        self._ledger = StockLedger(session, actor_id)
        self._movements = MovementLog(session, actor_id, clock or SystemClock())
        self._warehouses = WarehouseDirectory(session)

    def _reference_type(self, reference_type: ReferenceType | str) -> ReferenceType:
        allowed = sorted(r.value for r in PRODUCER_REFERENCE_TYPES)
        try:
            parsed = ReferenceType(reference_type)
        except ValueError:
            raise InvalidReferenceTypeError(str(reference_type), allowed) from None
        if parsed not in PRODUCER_REFERENCE_TYPES:
            raise InvalidReferenceTypeError(parsed.value, allowed)
        return parsed

    def _record(self, movement_type, product_id, warehouse_id, quantity,
                reference_type, reference_number, notes) -> MovementDTO:
        validate_quantity(quantity, minimum=1)
        validate_notes(notes)
        parsed = self._reference_type(reference_type)
        warehouse = self._warehouses.require_active(warehouse_id)

        delta = quantity if movement_type == MovementType.IN else -quantity
        before, after = self._ledger.apply_delta(product_id, warehouse.id, delta)
        movement = self._movements.append(
            product_id=product_id,
            warehouse_id=warehouse.id,
            movement_type=movement_type,
            quantity_before=before,
            quantity_after=after,
            reference_type=parsed,
            reference_number=reference_number,
            notes=notes,
        )

        logger.info(
            "stock_received" if movement_type == MovementType.IN else "stock_issued",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse.id),
                "quantity": quantity,
                "reference_type": parsed.value,
                "reference_number": reference_number,
            },
        )
        return movement

    def receive(self, product_id: UUID, warehouse_id: UUID, quantity: int,
                reference_type: ReferenceType | str, reference_number: str | None = None,
                notes: str | None = None) -> MovementDTO:
        """Units arriving from a purchase or a customer return."""
        return self._record(MovementType.IN, product_id, warehouse_id, quantity,
                            reference_type, reference_number, notes)

    def issue(self, product_id: UUID, warehouse_id: UUID, quantity: int,
              reference_type: ReferenceType | str, reference_number: str | None = None,
              notes: str | None = None) -> MovementDTO:
        """Units leaving for a sale (or a return to supplier)."""
        return self._record(MovementType.OUT, product_id, warehouse_id, quantity,
                            reference_type, reference_number, notes)

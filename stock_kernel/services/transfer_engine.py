"""
TransferEngine -- moves stock of one product between two warehouses.

Responsibility:
    Executes a transfer as a linked ``out``/``in`` movement pair sharing one
    reference number.  Both ledger writes and both movements happen in the
    caller's transaction, so either the whole transfer lands or none of it.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.  Used directly by
    InventoryService and RejectedStockService.

Invariants enforced:
    - Conservation: total quantity of the product across warehouses is
      unchanged (-qty on the source, +qty on the destination).
    - No overdraw: qty <= source quantity, checked under lock before any
      write.
    - Deadlock freedom: both rows are locked in global (warehouse, product)
      order before either is changed.

Failure modes:
    - InvalidQuantityError: qty is not a positive int.
    - SameWarehouseTransferError: source == destination.
    - WarehouseNotFoundError / WarehouseInactiveError.
    - InsufficientStockError: source holds less than qty.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import MovementType, ReferenceType, TransferResult
from stock_kernel.exceptions import (
    InsufficientStockError,
    SameWarehouseTransferError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import StockRecord
from stock_kernel.services.base import BaseService
from stock_kernel.services.movement_log import MovementLog
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger import StockLedger
from stock_kernel.services.validation import validate_notes, validate_quantity
from stock_kernel.services.warehouse_directory import WarehouseDirectory

logger = get_logger("services.transfer_engine")


class TransferEngine(BaseService[StockRecord]):
    """
    Inter-warehouse transfer.

    Contract:
        ``transfer`` returns the two movements it wrote.  Default notes are
        ``"Transfer to <destination>"`` on the out leg and
        ``"Transfer from <source>"`` on the in leg.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
        reference_prefix: str = "TRF",
    ):
        super().__init__(session)
        self._actor_id = actor_id
        self._clock = clock or SystemClock()
        self._reference_prefix = reference_prefix
        self._ledger = StockLedger(session, actor_id)
        self._movements = MovementLog(session, actor_id, self._clock)
        self._sequences = SequenceService(session)
        self._warehouses = WarehouseDirectory(session)

    def transfer(
        self,
        product_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        quantity: int,
        notes: str | None = None,
        reference_number: str | None = None,
    ) -> TransferResult:
        """Move ``quantity`` units from one warehouse to another."""
        validate_quantity(quantity, minimum=1)
        validate_notes(notes)
        if from_warehouse_id == to_warehouse_id:
            raise SameWarehouseTransferError(str(from_warehouse_id))

        source = self._warehouses.require_active(from_warehouse_id)
        destination = self._warehouses.require_active(to_warehouse_id)

        return self.move(
            product_id,
            source_id=source.id,
            destination_id=destination.id,
            quantity=quantity,
            out_notes=notes or f"Transfer to {destination.name}",
            in_notes=notes or f"Transfer from {source.name}",
            reference_number=reference_number,
        )

    def move(
        self,
        product_id: UUID,
        *,
        source_id: UUID,
        destination_id: UUID,
        quantity: int,
        out_notes: str | None,
        in_notes: str | None,
        reference_number: str | None = None,
    ) -> TransferResult:
        """
        Write the locked out/in pair.

        Preconditions: arguments already validated, warehouses active and
            distinct.
        """
        source_key = (product_id, source_id)
        destination_key = (product_id, destination_id)
        locked = self._ledger.lock([source_key, destination_key])

        if locked[source_key] < quantity:
            logger.info(
                "transfer_rejected_insufficient_stock",
                extra={
                    "product_id": str(product_id),
                    "from_warehouse_id": str(source_id),
                    "available": locked[source_key],
                    "requested": quantity,
                },
            )
            raise InsufficientStockError(
                product_id=str(product_id),
                warehouse_id=str(source_id),
                available=locked[source_key],
                requested=quantity,
            )

        if reference_number is None:
            reference_number = self._sequences.next_reference(
                SequenceService.TRANSFER_REF, self._reference_prefix,
            )

        out_before, out_after = self._ledger.apply_delta(product_id, source_id, -quantity)
        in_before, in_after = self._ledger.apply_delta(product_id, destination_id, quantity)

        out_movement = self._movements.append(
            product_id=product_id,
            warehouse_id=source_id,
            movement_type=MovementType.OUT,
            quantity_before=out_before,
            quantity_after=out_after,
            reference_type=ReferenceType.TRANSFER,
            reference_number=reference_number,
            notes=out_notes,
        )
        in_movement = self._movements.append(
            product_id=product_id,
            warehouse_id=destination_id,
            movement_type=MovementType.IN,
            quantity_before=in_before,
            quantity_after=in_after,
            reference_type=ReferenceType.TRANSFER,
            reference_number=reference_number,
            notes=in_notes,
        )

        logger.info(
            "stock_transferred",
            extra={
                "product_id": str(product_id),
                "from_warehouse_id": str(source_id),
                "to_warehouse_id": str(destination_id),
                "quantity": quantity,
                "reference_number": reference_number,
            },
        )
        return TransferResult(
            out_movement=out_movement,
            in_movement=in_movement,
            reference_number=reference_number,
        )

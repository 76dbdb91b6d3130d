"""
MovementLog -- append-only history of every quantity change.

Responsibility:
    Writes one StockMovement per ledger change, stamped with the next
    ``stock_movement`` sequence value and the injected clock's time.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - quantity_change is always derived as after - before; the table's CHECK
      constraints and MovementDTO re-validate it.
    - ``seq`` is strictly increasing in commit order per key, because the
      ledger row is locked before the sequence counter.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import MovementDTO, MovementType, ReferenceType
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import StockMovement
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.movement_log")


class MovementLog(BaseService[StockMovement]):
    """Appends movements.  Never updates or deletes them."""

    def __init__(self, session: Session, actor_id: UUID, clock: Clock | None = None):
        super().__init__(session)
        self._actor_id = actor_id
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def append(
        self,
        *,
        product_id: UUID,
        warehouse_id: UUID,
        movement_type: MovementType,
        quantity_before: int,
        quantity_after: int,
        reference_type: ReferenceType,
        reference_number: str | None,
        notes: str | None = None,
        reference_id: UUID | None = None,
    ) -> MovementDTO:
        """Insert one movement and return its DTO."""
        movement = StockMovement(
            seq=self._sequences.next_value(SequenceService.STOCK_MOVEMENT),
            product_id=product_id,
            warehouse_id=warehouse_id,
            movement_type=MovementType(movement_type).value,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            quantity_change=quantity_after - quantity_before,
            reference_type=ReferenceType(reference_type).value,
            reference_number=reference_number,
            reference_id=reference_id,
            notes=notes,
            created_at=self._clock.now(),
            created_by_id=self._actor_id,
        )
        self.session.add(movement)
        self.session.flush()
        dto = MovementDTO.from_model(movement)

        logger.debug(
            "movement_appended",
            extra={
                "movement_id": str(dto.id),
                "seq": dto.seq,
                "movement_type": dto.movement_type.value,
                "quantity_change": dto.quantity_change,
                "reference_type": dto.reference_type.value,
                "reference_number": dto.reference_number,
            },
        )
        return dto

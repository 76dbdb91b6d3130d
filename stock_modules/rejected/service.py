"""
Rejected Stock Service (``stock_modules.rejected.service``).

Responsibility
--------------
What happens to quarantined units after a damaged or expired adjustment
moved them into the rejected warehouse: they are either disposed of
(written off) or restored to the default sellable warehouse.

Architecture
------------
Layer: **Modules**.  ``dispose`` is a subtraction through
``AdjustmentEngine``; ``restore`` is a transfer through ``TransferEngine``.
Quantity checks stay in the kernel.

Failure Modes
-------------
- ``WarehouseConfigurationError`` when there is not exactly one active
  rejected warehouse (or, for restore, one active default warehouse).
- ``InsufficientStockError`` when quarantine holds fewer units.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import AdjustmentOutcome, StockLevel, TransferResult
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors import StockSelector
from stock_kernel.services import AdjustmentEngine, TransferEngine, WarehouseDirectory
from stock_modules._transaction_helpers import run_in_transaction, run_read
from stock_modules.inventory.config import InventoryConfig

logger = get_logger("modules.rejected.service")

DISPOSE_NOTES = "Disposed from rejected stock"
RESTORE_NOTES = "Restored from rejected stock"


class RejectedStockService:
    """Dispose or restore units held in the rejected warehouse."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or InventoryConfig.with_defaults()

    def dispose(
        self,
        product_id: UUID,
        quantity: int,
        notes: str | None = None,
        *,
        actor_id: UUID,
    ) -> AdjustmentOutcome:
        """Write off quarantined units (a plain subtraction, never rerouted)."""
        prefixes = self._config.reference_prefixes
        engine = AdjustmentEngine(
            self._session,
            actor_id,
            self._clock,
            quarantine_reasons=self._config.quarantine_reasons,
            quarantine_enabled=self._config.quarantine_enabled,
            reference_prefix=prefixes.adjustment,
        )

        def work() -> AdjustmentOutcome:
            rejected = WarehouseDirectory(self._session).get_rejected()
            outcome = engine.subtract(
                product_id,
                rejected.id,
                quantity,
                self._config.disposal_reason,
                notes or DISPOSE_NOTES,
            )
            logger.info(
                "rejected_stock_disposed",
                extra={
                    "product_id": str(product_id),
                    "quantity": quantity,
                    "reference_number": outcome.movement.reference_number,
                },
            )
            return outcome

        with LogContext.bind(actor_id=str(actor_id)):
            return run_in_transaction(self._session, "dispose_rejected", work)

    def restore(
        self,
        product_id: UUID,
        quantity: int,
        notes: str | None = None,
        *,
        actor_id: UUID,
    ) -> TransferResult:
        """Move quarantined units back to the default sellable warehouse."""
        engine = TransferEngine(
            self._session,
            actor_id,
            self._clock,
            reference_prefix=self._config.reference_prefixes.transfer,
        )

        def work() -> TransferResult:
            directory = WarehouseDirectory(self._session)
            rejected = directory.get_rejected()
            default = directory.get_default()
            result = engine.transfer(
                product_id,
                rejected.id,
                default.id,
                quantity,
                notes or RESTORE_NOTES,
            )
            logger.info(
                "rejected_stock_restored",
                extra={
                    "product_id": str(product_id),
                    "quantity": quantity,
                    "to_warehouse_id": str(default.id),
                    "reference_number": result.reference_number,
                },
            )
            return result

        with LogContext.bind(actor_id=str(actor_id)):
            return run_in_transaction(self._session, "restore_rejected", work)

    def list_stock(self) -> list[StockLevel]:
        """Non-zero stock currently held in quarantine."""
        selector = StockSelector(self._session)
        return run_read(self._session, selector.rejected_stock)

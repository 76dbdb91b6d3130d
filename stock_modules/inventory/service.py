"""
Inventory Module Service (``stock_modules.inventory.service``).

Responsibility
--------------
The external surface of the stock core.  Composes the flush-only kernel
engines (``AdjustmentEngine``, ``TransferEngine``, ``OpnameEngine``,
``StockFlowService``) and read selectors into one service whose public
methods each own a transaction.  It contains no stock rules of its own.

Architecture
------------
Layer: **Modules** -- stateful orchestration wrapper.

1. Builds actor-scoped kernel engines for each call.
2. Runs the engine call inside ``run_in_transaction`` (commit / rollback).
3. Reads go through selectors and end their transaction immediately.

Invariants
----------
- Each public write method owns its transaction boundary.  A transfer (both
  legs) and an opname finalize (every correction plus the status flip)
  commit as one unit or not at all.
- Batch adjustments are best-effort by default: one transaction per item,
  later items run even if earlier ones failed.  ``atomic=True`` runs the
  whole batch in one transaction and aborts on the first failure.

Failure Modes
-------------
- Any ``StockKernelError`` from the engines propagates after rollback.
- ``SQLAlchemyError`` is logged at CRITICAL and re-raised as
  ``StorageFailureError`` after rollback.

Usage::

    service = InventoryService(session, clock=clock)
    outcome = service.adjust_stock(
        product_id, warehouse_id, "subtract", 5, "Damaged Goods",
        actor_id=actor_id,
    )
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import (
    AdjustmentOutcome,
    AdjustmentRequest,
    AdjustmentType,
    BatchItemResult,
    BatchResult,
    LedgerAuditReport,
    MovementDTO,
    MovementFilter,
    MovementStats,
    OpnameCountUpdate,
    OpnameItemDTO,
    OpnamePage,
    OpnameSessionDTO,
    OpnameStatus,
    OpnameSummary,
    ReferenceType,
    StockLevel,
    TransferResult,
)
from stock_kernel.exceptions import BatchAdjustmentError, StockKernelError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors import (
    LedgerAuditSelector,
    MovementSelector,
    OpnameSelector,
    StockSelector,
)
from stock_kernel.services import (
    AdjustmentEngine,
    OpnameEngine,
    StockFlowService,
    TransferEngine,
)
from stock_modules._transaction_helpers import run_in_transaction, run_read
from stock_modules.inventory.config import InventoryConfig
from stock_modules.inventory.models import as_adjustment_request, as_count_update

logger = get_logger("modules.inventory.service")


class InventoryService:
    """
    Orchestrates stock operations through the kernel engines.

    Contract
    --------
    Every write method takes ``actor_id`` as a keyword-only argument, binds
    it into the log context, delegates to one kernel engine and commits.
    Every read method returns frozen DTOs.

    Non-goals
    ---------
    - Authentication and permission checks: ``actor_id`` is trusted.
    - Product catalogue data: products are opaque ids.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InventoryConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or InventoryConfig.with_defaults()

    @property
    def config(self) -> InventoryConfig:
        return self._config

    # =========================================================================
    # Engine factories
    # =========================================================================

    def _adjustments(self, actor_id: UUID) -> AdjustmentEngine:
        prefixes = self._config.reference_prefixes
        return AdjustmentEngine(
            self._session,
            actor_id,
            self._clock,
            quarantine_reasons=self._config.quarantine_reasons,
            quarantine_enabled=self._config.quarantine_enabled,
            reference_prefix=prefixes.adjustment,
        )

    def _transfers(self, actor_id: UUID) -> TransferEngine:
        return TransferEngine(
            self._session,
            actor_id,
            self._clock,
            reference_prefix=self._config.reference_prefixes.transfer,
        )

    def _opname(self, actor_id: UUID) -> OpnameEngine:
        prefixes = self._config.reference_prefixes
        return OpnameEngine(
            self._session,
            actor_id,
            self._clock,
            reference_prefix=prefixes.opname,
            adjustment_reason=self._config.opname_adjustment_reason,
            quarantine_reasons=self._config.quarantine_reasons,
            quarantine_enabled=self._config.quarantine_enabled,
            adjustment_reference_prefix=prefixes.adjustment,
        )

    # =========================================================================
    # Adjustments
    # =========================================================================

    def adjust_stock(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        adjustment_type: AdjustmentType | str,
        quantity: int,
        reason: str,
        notes: str | None = None,
        *,
        actor_id: UUID,
    ) -> AdjustmentOutcome:
        """
        Apply one manual adjustment.

        Preconditions:
            - ``quantity`` >= 1 for add/subtract, >= 0 for set.
            - ``reason`` is non-blank.

        Postconditions:
            - Exactly one adjustment movement, or, for a damaged/expired
              subtraction, one transfer pair into the rejected warehouse.
            - Session committed on success, rolled back on failure.
        """
        request = as_adjustment_request({
            "product_id": product_id,
            "warehouse_id": warehouse_id,
            "adjustment_type": adjustment_type,
            "quantity": quantity,
            "reason": reason,
            "notes": notes,
        })
        with LogContext.bind(actor_id=str(actor_id)):
            engine = self._adjustments(actor_id)
            return run_in_transaction(
                self._session, "adjust_stock", lambda: engine.apply(request),
            )

    def adjust_stock_batch(
        self,
        requests: Sequence[AdjustmentRequest | Mapping[str, Any]],
        *,
        actor_id: UUID,
        atomic: bool | None = None,
    ) -> BatchResult:
        """
        Apply a list of adjustments and report per-item results.

        Best-effort mode (default): each item commits on its own; a failing
        item is reported with its error code and the batch continues.

        Atomic mode: all items share one transaction.  The first failing
        item rolls back everything and raises ``BatchAdjustmentError``
        carrying its index and cause.
        """
        atomic = self._config.batch_atomic_default if atomic is None else atomic
        with LogContext.bind(actor_id=str(actor_id)):
            engine = self._adjustments(actor_id)
            if atomic:
                result = run_in_transaction(
                    self._session,
                    "adjust_stock_batch",
                    lambda: self._apply_all(engine, requests),
                )
            else:
                result = BatchResult(tuple(
                    self._apply_one(engine, index, item)
                    for index, item in enumerate(requests)
                ))

            logger.info(
                "batch_adjustment_completed",
                extra={
                    "atomic": atomic,
                    "items": len(result.results),
                    "succeeded": result.succeeded,
                    "failed": result.failed,
                },
            )
            return result

    def _apply_all(self, engine: AdjustmentEngine, requests) -> BatchResult:
        results = []
        for index, item in enumerate(requests):
            try:
                outcome = engine.apply(as_adjustment_request(item))
            except StockKernelError as exc:
                logger.warning(
                    "batch_aborted",
                    extra={"index": index, "error_code": exc.code},
                )
                raise BatchAdjustmentError(index, exc) from exc
            results.append(BatchItemResult(index=index, outcome=outcome))
        return BatchResult(tuple(results))

    def _apply_one(self, engine: AdjustmentEngine, index: int, item) -> BatchItemResult:
        try:
            outcome = run_in_transaction(
                self._session,
                "adjust_stock_batch",
                lambda: engine.apply(as_adjustment_request(item)),
            )
        except StockKernelError as exc:
            logger.warning(
                "batch_item_failed",
                extra={"index": index, "error_code": exc.code, "error": str(exc)},
            )
            return BatchItemResult(index=index, error_code=exc.code, error_message=str(exc))
        return BatchItemResult(index=index, outcome=outcome)

    # =========================================================================
    # Transfers and producer flows
    # =========================================================================

    def transfer_stock(
        self,
        product_id: UUID,
        from_warehouse_id: UUID,
        to_warehouse_id: UUID,
        quantity: int,
        notes: str | None = None,
        *,
        actor_id: UUID,
    ) -> TransferResult:
        """
        Move units between warehouses.  Both legs commit together or not at
        all; a database failure between the legs leaves no partial transfer.
        """
        with LogContext.bind(actor_id=str(actor_id)):
            engine = self._transfers(actor_id)
            return run_in_transaction(
                self._session,
                "transfer_stock",
                lambda: engine.transfer(
                    product_id, from_warehouse_id, to_warehouse_id, quantity, notes,
                ),
            )

    def receive_stock(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        reference_type: ReferenceType | str,
        reference_number: str | None = None,
        notes: str | None = None,
        *,
        actor_id: UUID,
    ) -> MovementDTO:
        """Record units arriving from a purchase or a customer return."""
        with LogContext.bind(actor_id=str(actor_id), reference_number=reference_number):
            flow = StockFlowService(self._session, actor_id, self._clock)
            return run_in_transaction(
                self._session,
                "receive_stock",
                lambda: flow.receive(
                    product_id, warehouse_id, quantity, reference_type,
                    reference_number, notes,
                ),
            )

    def issue_stock(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: int,
        reference_type: ReferenceType | str,
        reference_number: str | None = None,
        notes: str | None = None,
        *,
        actor_id: UUID,
    ) -> MovementDTO:
        """Record units leaving for a sale or a return to supplier."""
        with LogContext.bind(actor_id=str(actor_id), reference_number=reference_number):
            flow = StockFlowService(self._session, actor_id, self._clock)
            return run_in_transaction(
                self._session,
                "issue_stock",
                lambda: flow.issue(
                    product_id, warehouse_id, quantity, reference_type,
                    reference_number, notes,
                ),
            )

    # =========================================================================
    # Stock opname
    # =========================================================================

    def create_opname(
        self,
        warehouse_id: UUID,
        notes: str | None = None,
        product_ids: Iterable[UUID] = (),
        *,
        actor_id: UUID,
    ) -> OpnameSessionDTO:
        """Open a count session and snapshot the warehouse's quantities."""
        with LogContext.bind(actor_id=str(actor_id)):
            engine = self._opname(actor_id)
            return run_in_transaction(
                self._session,
                "create_opname",
                lambda: engine.create_session(warehouse_id, notes, product_ids),
            )

    def update_opname_items(
        self,
        session_id: UUID,
        items: Sequence[OpnameCountUpdate | Mapping[str, Any]],
        *,
        actor_id: UUID,
    ) -> OpnameSessionDTO:
        """Record physical counts for several items.  All or none are written."""
        updates = [as_count_update(item) for item in items]
        with LogContext.bind(actor_id=str(actor_id), opname_id=str(session_id)):
            engine = self._opname(actor_id)
            return run_in_transaction(
                self._session,
                "update_opname_items",
                lambda: engine.update_items(session_id, updates),
            )

    def record_opname_count(
        self,
        session_id: UUID,
        product_id: UUID,
        physical_qty: int,
        notes: str | None = None,
        *,
        actor_id: UUID,
    ) -> OpnameItemDTO:
        """Record the physical count of one product in a session."""
        with LogContext.bind(actor_id=str(actor_id), opname_id=str(session_id)):
            engine = self._opname(actor_id)
            return run_in_transaction(
                self._session,
                "record_opname_count",
                lambda: engine.record_count(session_id, product_id, physical_qty, notes),
            )

    def finalize_opname(self, session_id: UUID, *, actor_id: UUID) -> OpnameSummary:
        """
        Apply every counted difference as a ``set`` and close the session.

        Postconditions:
            - Every item with a non-zero difference has its stock set to the
              physical count, all in one transaction with the status flip.
            - A second finalize raises ``AlreadyFinalizedError`` and writes
              nothing.
        """
        with LogContext.bind(actor_id=str(actor_id), opname_id=str(session_id)):
            engine = self._opname(actor_id)
            return run_in_transaction(
                self._session, "finalize_opname", lambda: engine.finalize(session_id),
            )

    def delete_opname(self, session_id: UUID, *, actor_id: UUID) -> None:
        """Soft-delete a session that has not been finalized."""
        with LogContext.bind(actor_id=str(actor_id), opname_id=str(session_id)):
            engine = self._opname(actor_id)
            run_in_transaction(
                self._session, "delete_opname", lambda: engine.delete_session(session_id),
            )

    def get_opname(self, session_id: UUID) -> OpnameSessionDTO:
        selector = OpnameSelector(self._session, self._config.opname_page_size_max)
        return run_read(self._session, lambda: selector.get(session_id))

    def list_opnames(
        self,
        warehouse_id: UUID | None = None,
        status: OpnameStatus | str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> OpnamePage:
        selector = OpnameSelector(self._session, self._config.opname_page_size_max)
        return run_read(
            self._session, lambda: selector.list(warehouse_id, status, page, limit),
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_warehouse_stock(self, warehouse_id: UUID, non_zero_only: bool = False) -> list[StockLevel]:
        selector = StockSelector(self._session)
        return run_read(
            self._session, lambda: selector.warehouse_stock(warehouse_id, non_zero_only),
        )

    def get_product_stock(self, product_id: UUID, non_zero_only: bool = False) -> list[StockLevel]:
        selector = StockSelector(self._session)
        return run_read(
            self._session, lambda: selector.product_stock(product_id, non_zero_only),
        )

    def get_movements(self, movement_filter: MovementFilter | None = None) -> list[MovementDTO]:
        selector = MovementSelector(self._session)
        return run_read(self._session, lambda: selector.list(movement_filter))

    def get_movement(self, movement_id: UUID) -> MovementDTO:
        selector = MovementSelector(self._session)
        return run_read(self._session, lambda: selector.get(movement_id))

    def get_movement_stats(
        self,
        warehouse_id: UUID | None = None,
        since: datetime | None = None,
    ) -> MovementStats:
        selector = MovementSelector(self._session)
        return run_read(self._session, lambda: selector.stats(warehouse_id, since))

    def verify_ledger(self, warehouse_id: UUID | None = None) -> LedgerAuditReport:
        """Replay the movement log and compare it with the stock records."""
        selector = LedgerAuditSelector(self._session)
        return run_read(self._session, lambda: selector.audit(warehouse_id))

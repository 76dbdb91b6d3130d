"""
StockLedger -- the single mutation point for on-hand quantity.

Responsibility:
    Reads and changes the quantity of one product in one warehouse.  Every
    other component (adjustments, transfers, opname finalize, producer
    flows) goes through ``apply_delta``; nothing else writes
    ``stock_records``.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - Non-negative stock: ``apply_delta`` rejects ``before + delta < 0``
      with InsufficientStockError before any write.
    - Per-key serialization: the StockRecord row is locked
      (``SELECT ... FOR UPDATE``) for the rest of the caller's transaction,
      so a concurrent read-modify-write on the same key waits.
    - Global lock order: multi-key callers use ``lock()``, which locks rows
      sorted by (warehouse id, product id).

Failure modes:
    - InsufficientStockError: change would drive quantity below zero.
    - IntegrityError: only if the savepoint retry on first insert also
      fails (the row vanished, which cannot happen since rows are never
      deleted).
"""

from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.stock import StockRecord
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")

StockKey = tuple[UUID, UUID]


def lock_order(key: StockKey) -> tuple[str, str]:
    """Sort key for (product_id, warehouse_id): warehouse first, then product."""
    product_id, warehouse_id = key
    return (str(warehouse_id), str(product_id))


class StockLedger(BaseService[StockRecord]):
    """
    Authoritative current-quantity store per (product, warehouse).

    Contract:
        A missing row means quantity 0.  The row is created on the first
        non-negative change for the pair and never deleted.

    Non-goals:
        Does NOT write movements -- callers pair every ``apply_delta`` with a
        MovementLog.append in the same transaction.
    """

    def __init__(self, session: Session, actor_id: UUID):
        super().__init__(session)
        self._actor_id = actor_id

    def _select(self, product_id: UUID, warehouse_id: UUID, for_update: bool) -> StockRecord | None:
        stmt = select(StockRecord).where(
            StockRecord.product_id == product_id,
            StockRecord.warehouse_id == warehouse_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_quantity(self, product_id: UUID, warehouse_id: UUID) -> int:
        """Current quantity, 0 when the pair has never moved.  Takes no lock."""
        record = self._select(product_id, warehouse_id, for_update=False)
        return record.quantity if record else 0

    def lock(self, keys: Iterable[StockKey]) -> dict[StockKey, int]:
        """
        Lock every existing row in ``keys`` in global order.

        Returns the locked quantity per key (0 for pairs with no row yet).
        Rows stay locked until the caller's transaction ends.
        """
        locked: dict[StockKey, int] = {}
        for key in sorted(set(keys), key=lock_order):
            record = self._select(key[0], key[1], for_update=True)
            locked[key] = record.quantity if record else 0
        return locked

    def _create_record(self, product_id: UUID, warehouse_id: UUID) -> StockRecord:
        """
        Insert a zero-quantity row, or lock the one a concurrent
        transaction inserted first.
        """
        savepoint = self.session.begin_nested()
        try:
            record = StockRecord(
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=0,
                created_by_id=self._actor_id,
            )
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            logger.debug(
                "stock_record_created",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
            return record
        except IntegrityError:
            logger.debug(
                "stock_record_insert_race_retry",
                extra={"product_id": str(product_id), "warehouse_id": str(warehouse_id)},
            )
            savepoint.rollback()
            record = self._select(product_id, warehouse_id, for_update=True)
            if record is None:
                raise
            return record

    def apply_delta(self, product_id: UUID, warehouse_id: UUID, delta: int) -> tuple[int, int]:
        """
        Change quantity by ``delta`` and return ``(before, after)``.

        Preconditions: caller is inside a transaction.
        Postconditions: ``after == before + delta`` and ``after >= 0``; the
            row is locked until the transaction ends.

        Raises:
            InsufficientStockError: if ``before + delta < 0``.  Nothing is
                written, not even an empty row.
        """
        record = self._select(product_id, warehouse_id, for_update=True)
        before = record.quantity if record else 0
        after = before + delta

        if after < 0:
            logger.info(
                "insufficient_stock",
                extra={
                    "product_id": str(product_id),
                    "warehouse_id": str(warehouse_id),
                    "available": before,
                    "requested": -delta,
                },
            )
            raise InsufficientStockError(
                product_id=str(product_id),
                warehouse_id=str(warehouse_id),
                available=before,
                requested=-delta,
            )

        if record is None:
            record = self._create_record(product_id, warehouse_id)
            before = record.quantity
            after = before + delta
            if after < 0:
                raise InsufficientStockError(
                    product_id=str(product_id),
                    warehouse_id=str(warehouse_id),
                    available=before,
                    requested=-delta,
                )

        if delta != 0:
            record.quantity = after
            record.updated_by_id = self._actor_id
            self.session.flush()

        logger.debug(
            "stock_delta_applied",
            extra={
                "product_id": str(product_id),
                "warehouse_id": str(warehouse_id),
                "before": before,
                "after": after,
                "delta": delta,
            },
        )
        return before, after

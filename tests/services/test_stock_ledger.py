"""
StockLedger: the single mutation point for on-hand quantity.

These tests drive the flush-only kernel services directly and commit
themselves, the way the module services do.
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stock_kernel.domain.values import MovementType, ReferenceType
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.models.stock import StockMovement, StockRecord
from stock_kernel.services.movement_log import MovementLog
from stock_kernel.services.stock_ledger import StockLedger, lock_order


class TestApplyDelta:

    def test_missing_pair_reads_as_zero(self, session, main_warehouse, test_actor_id):
        ledger = StockLedger(session, test_actor_id)
        assert ledger.get_quantity(uuid4(), main_warehouse.id) == 0

    def test_first_positive_delta_creates_record(self, session, main_warehouse, test_actor_id, product_id):
        ledger = StockLedger(session, test_actor_id)
        before, after = ledger.apply_delta(product_id, main_warehouse.id, 12)
        session.commit()

        assert (before, after) == (0, 12)
        assert ledger.get_quantity(product_id, main_warehouse.id) == 12

    def test_negative_result_rejected_without_write(self, session, main_warehouse, test_actor_id, product_id):
        ledger = StockLedger(session, test_actor_id)
        ledger.apply_delta(product_id, main_warehouse.id, 3)
        session.commit()

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.apply_delta(product_id, main_warehouse.id, -4)
        session.rollback()

        assert exc_info.value.available == 3
        assert exc_info.value.requested == 4
        assert ledger.get_quantity(product_id, main_warehouse.id) == 3

    def test_negative_delta_on_missing_pair_creates_nothing(self, session, main_warehouse, test_actor_id, product_id):
        ledger = StockLedger(session, test_actor_id)
        with pytest.raises(InsufficientStockError):
            ledger.apply_delta(product_id, main_warehouse.id, -1)
        session.rollback()

        count = session.execute(
            select(func.count(StockRecord.id)).where(StockRecord.product_id == product_id)
        ).scalar_one()
        assert count == 0

    def test_zero_delta_leaves_quantity(self, session, main_warehouse, test_actor_id, product_id):
        ledger = StockLedger(session, test_actor_id)
        ledger.apply_delta(product_id, main_warehouse.id, 5)
        assert ledger.apply_delta(product_id, main_warehouse.id, 0) == (5, 5)


class TestLock:

    def test_lock_returns_zero_for_missing_rows(self, session, main_warehouse, secondary_warehouse, test_actor_id, product_id):
        ledger = StockLedger(session, test_actor_id)
        ledger.apply_delta(product_id, main_warehouse.id, 7)

        locked = ledger.lock([
            (product_id, secondary_warehouse.id),
            (product_id, main_warehouse.id),
        ])
        assert locked == {
            (product_id, main_warehouse.id): 7,
            (product_id, secondary_warehouse.id): 0,
        }

    def test_lock_order_is_warehouse_then_product(self):
        p1, p2, w1, w2 = uuid4(), uuid4(), uuid4(), uuid4()
        keys = [(p1, w1), (p2, w2), (p2, w1), (p1, w2)]
        ordered = sorted(keys, key=lock_order)
        assert [str(w) for _, w in ordered] == sorted(str(w) for _, w in keys)


class TestMovementLog:

    def test_append_assigns_increasing_seq(self, session, main_warehouse, test_actor_id, deterministic_clock, product_id):
        log = MovementLog(session, test_actor_id, deterministic_clock)
        first = log.append(
            product_id=product_id,
            warehouse_id=main_warehouse.id,
            movement_type=MovementType.IN,
            quantity_before=0,
            quantity_after=4,
            reference_type=ReferenceType.PURCHASE,
            reference_number="PO-1",
        )
        second = log.append(
            product_id=product_id,
            warehouse_id=main_warehouse.id,
            movement_type="out",
            quantity_before=4,
            quantity_after=1,
            reference_type="sale",
            reference_number="SO-1",
        )
        session.commit()

        assert second.seq > first.seq
        assert first.quantity_change == 4
        assert second.quantity_change == -3
        assert second.movement_type is MovementType.OUT
        assert session.execute(select(func.count(StockMovement.id))).scalar_one() == 2

"""
Storage failures mid-operation: nothing partial is ever committed.

The movement log is made to fail on the second leg of a transfer (after the
ledger deltas and the out movement were already flushed).  The whole unit
must roll back and surface as StorageFailureError.
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from stock_kernel.domain.values import MovementFilter, MovementType
from stock_kernel.exceptions import StorageFailureError
from stock_kernel.services.movement_log import MovementLog


@pytest.fixture
def failing_in_leg(monkeypatch):
    original = MovementLog.append

    def _append(self, **kwargs):
        if kwargs["movement_type"] == MovementType.IN:
            raise OperationalError("INSERT INTO stock_movements", {}, Exception("disk I/O error"))
        return original(self, **kwargs)

    monkeypatch.setattr(MovementLog, "append", _append)


def test_transfer_rolls_back_completely(
    inventory, stock_in, main_warehouse, secondary_warehouse, quantity_of, test_actor_id, request,
):
    product_id = uuid4()
    stock_in(product_id, main_warehouse, 10)
    request.getfixturevalue("failing_in_leg")

    with pytest.raises(StorageFailureError) as exc_info:
        inventory.transfer_stock(product_id, main_warehouse.id, secondary_warehouse.id, 4, actor_id=test_actor_id)

    assert exc_info.value.operation == "transfer_stock"
    assert isinstance(exc_info.value.__cause__, OperationalError)
    assert quantity_of(product_id, main_warehouse) == 10
    assert quantity_of(product_id, secondary_warehouse) == 0
    movements = inventory.get_movements(MovementFilter(product_id=product_id))
    assert [m.movement_type for m in movements] == [MovementType.ADJUSTMENT]


def test_quarantine_reroute_rolls_back(
    inventory, stock_in, warehouses, quantity_of, test_actor_id, request,
):
    main, _, rejected = warehouses
    product_id = uuid4()
    stock_in(product_id, main, 6)
    request.getfixturevalue("failing_in_leg")

    with pytest.raises(StorageFailureError):
        inventory.adjust_stock(product_id, main.id, "subtract", 2, "Damaged Goods", actor_id=test_actor_id)

    assert quantity_of(product_id, main) == 6
    assert quantity_of(product_id, rejected) == 0


def test_storage_failure_logged_critical(
    inventory, stock_in, main_warehouse, secondary_warehouse, test_actor_id, captured_logs, request,
):
    product_id = uuid4()
    stock_in(product_id, main_warehouse, 3)
    request.getfixturevalue("failing_in_leg")

    with pytest.raises(StorageFailureError):
        inventory.transfer_stock(product_id, main_warehouse.id, secondary_warehouse.id, 1, actor_id=test_actor_id)

    (record,) = [r for r in captured_logs() if r["message"] == "storage_failure"]
    assert record["level"] == "CRITICAL"
    assert record["operation"] == "transfer_stock"
    assert record["error_type"] == "OperationalError"
    assert record["actor_id"] == str(test_actor_id)


def test_service_usable_after_failure(
    inventory, stock_in, main_warehouse, secondary_warehouse, quantity_of, test_actor_id, monkeypatch,
):
    product_id = uuid4()
    stock_in(product_id, main_warehouse, 5)
    original = MovementLog.append
    calls = {"n": 0}

    def _flaky(self, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        return original(self, **kwargs)

    monkeypatch.setattr(MovementLog, "append", _flaky)
    with pytest.raises(StorageFailureError):
        inventory.transfer_stock(product_id, main_warehouse.id, secondary_warehouse.id, 2, actor_id=test_actor_id)

    inventory.transfer_stock(product_id, main_warehouse.id, secondary_warehouse.id, 2, actor_id=test_actor_id)

    assert quantity_of(product_id, main_warehouse) == 3
    assert quantity_of(product_id, secondary_warehouse) == 2
    assert inventory.verify_ledger().is_consistent

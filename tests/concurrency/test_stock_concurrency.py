"""
Concurrent writers against one stock ledger.

Each worker gets its own session and service, mirroring one request per
connection.  Workers start together on a Barrier so their transactions
genuinely contend for the same rows.

Expected behavior:
- Stock never goes negative, whatever the interleaving
- Conserved quantities stay conserved across concurrent transfers
- A session is finalized exactly once
- Movement seq and reference numbers are never handed out twice
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier
from uuid import uuid4

import pytest

from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.values import MovementFilter
from stock_kernel.exceptions import AlreadyFinalizedError, InsufficientStockError
from stock_modules.inventory import InventoryConfig, InventoryService

pytestmark = pytest.mark.slow_locks

WORKERS = 8


def _run_concurrently(session_factory, task, count=WORKERS):
    """Run ``task(service, index)`` in ``count`` threads; return outcomes.

    Each outcome is ``("ok", result)`` or ``("error", exception)``.
    """
    barrier = Barrier(count)

    def _worker(index):
        sess = session_factory()
        service = InventoryService(sess, clock=DeterministicClock(), config=InventoryConfig())
        try:
            barrier.wait()
            return ("ok", task(service, index))
        except Exception as exc:
            return ("error", exc)
        finally:
            sess.close()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(_worker, range(count)))


@pytest.fixture
def ids(session, warehouses):
    """Plain ids, with the fixture session's transaction ended."""
    main, secondary, rejected = warehouses
    result = {"main": main.id, "secondary": secondary.id, "rejected": rejected.id}
    session.commit()
    return result


def test_concurrent_subtractions_never_overdraw(inventory, session_factory, ids, test_actor_id):
    product_id = uuid4()
    inventory.adjust_stock(product_id, ids["main"], "add", 5, "Initial stock", actor_id=test_actor_id)

    outcomes = _run_concurrently(
        session_factory,
        lambda svc, i: svc.adjust_stock(product_id, ids["main"], "subtract", 2, "Picked", actor_id=test_actor_id),
    )

    succeeded = [r for kind, r in outcomes if kind == "ok"]
    failed = [r for kind, r in outcomes if kind == "error"]
    assert len(succeeded) == 2
    assert all(isinstance(e, InsufficientStockError) for e in failed)
    (level,) = inventory.get_product_stock(product_id)
    assert level.quantity == 1


def test_concurrent_transfers_conserve_total(inventory, session_factory, ids, test_actor_id):
    product_id = uuid4()
    inventory.adjust_stock(product_id, ids["main"], "add", 20, "Initial stock", actor_id=test_actor_id)
    inventory.adjust_stock(product_id, ids["secondary"], "add", 20, "Initial stock", actor_id=test_actor_id)

    def _transfer(svc, index):
        # Opposite directions take the row locks in the same order.
        if index % 2:
            return svc.transfer_stock(product_id, ids["main"], ids["secondary"], 3, actor_id=test_actor_id)
        return svc.transfer_stock(product_id, ids["secondary"], ids["main"], 3, actor_id=test_actor_id)

    outcomes = _run_concurrently(session_factory, _transfer)

    assert [kind for kind, _ in outcomes] == ["ok"] * WORKERS
    levels = {lvl.warehouse_id: lvl.quantity for lvl in inventory.get_product_stock(product_id)}
    assert levels[ids["main"]] + levels[ids["secondary"]] == 40
    assert inventory.verify_ledger().is_consistent


def test_concurrent_finalize_applies_once(inventory, session_factory, ids, test_actor_id):
    product_id = uuid4()
    inventory.adjust_stock(product_id, ids["main"], "add", 10, "Initial stock", actor_id=test_actor_id)
    opname = inventory.create_opname(ids["main"], actor_id=test_actor_id)
    inventory.record_opname_count(opname.id, product_id, 7, actor_id=test_actor_id)

    outcomes = _run_concurrently(
        session_factory,
        lambda svc, i: svc.finalize_opname(opname.id, actor_id=test_actor_id),
        count=2,
    )

    kinds = sorted(kind for kind, _ in outcomes)
    assert kinds == ["error", "ok"]
    (error,) = [r for kind, r in outcomes if kind == "error"]
    assert isinstance(error, AlreadyFinalizedError)

    (level,) = inventory.get_product_stock(product_id)
    assert level.quantity == 7
    corrections = inventory.get_movements(MovementFilter(product_id=product_id, reference_number=opname.number))
    assert len(corrections) == 1


def test_sequence_numbers_unique_under_contention(inventory, session_factory, ids, test_actor_id):
    products = [uuid4() for _ in range(WORKERS)]

    outcomes = _run_concurrently(
        session_factory,
        lambda svc, i: svc.adjust_stock(products[i], ids["main"], "add", 1, "Received", actor_id=test_actor_id),
    )

    movements = [result.movement for kind, result in outcomes if kind == "ok"]
    assert len(movements) == WORKERS
    assert len({m.seq for m in movements}) == WORKERS
    assert len({m.reference_number for m in movements}) == WORKERS
    assert sorted(m.seq for m in movements) == list(range(1, WORKERS + 1))


def test_concurrent_opname_numbers_unique(session_factory, ids, test_actor_id):
    outcomes = _run_concurrently(
        session_factory,
        lambda svc, i: svc.create_opname(ids["main"], actor_id=test_actor_id),
        count=4,
    )
    numbers = [r.number for kind, r in outcomes if kind == "ok"]
    assert sorted(numbers) == [f"OP-20240101-000{n}" for n in range(1, 5)]

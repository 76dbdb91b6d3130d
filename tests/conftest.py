"""
Pytest fixtures for the stock kernel test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path by default)
- Warehouse fixtures (default sellable, secondary sellable, rejected)
- Service fixtures wired to a deterministic clock
- Structured log capture

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are dropped and recreated per test.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from stock_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from stock_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.domain.values import WarehouseType
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.models.warehouse import Warehouse
from stock_modules.inventory import InventoryConfig, InventoryService
from stock_modules.rejected import RejectedStockService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, inventory):
            inventory.adjust_stock(...)
            logs = captured_logs()
            assert any(r["message"] == "stock_adjusted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()


@pytest.fixture
def db_engine(tmp_path):
    """Engine bound to a fresh database for this test.

    Real commits are needed (services own their transactions and the
    concurrency tests use several connections), so isolation comes from a
    new SQLite file per test rather than an outer rollback.
    """
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'stock.db'}"
    eng = init_engine_from_url(url, echo=False, pool_size=20, max_overflow=10, pool_timeout=10)
    if os.environ.get("DATABASE_URL"):
        drop_tables()
    create_tables()
    yield eng
    if os.environ.get("DATABASE_URL"):
        drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    """Factory for extra sessions, one per thread in concurrency tests."""
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


# =============================================================================
# Warehouses
# =============================================================================


def _warehouse(session, code, name, type_, is_default=False, is_active=True) -> Warehouse:
    warehouse = Warehouse(
        code=code,
        name=name,
        type=type_.value,
        is_default=is_default,
        is_active=is_active,
        created_by_id=TEST_ACTOR_ID,
    )
    session.add(warehouse)
    session.commit()
    return warehouse


@pytest.fixture
def create_warehouse(session):
    """Factory: create_warehouse("WH-X", "Extra", WarehouseType.SELLABLE)."""

    def _create(code, name, type_=WarehouseType.SELLABLE, is_default=False, is_active=True):
        return _warehouse(session, code, name, type_, is_default, is_active)

    return _create


@pytest.fixture
def main_warehouse(session) -> Warehouse:
    return _warehouse(session, "WH-MAIN", "Main Warehouse", WarehouseType.SELLABLE, is_default=True)


@pytest.fixture
def secondary_warehouse(session) -> Warehouse:
    return _warehouse(session, "WH-SEC", "Secondary Warehouse", WarehouseType.SELLABLE)


@pytest.fixture
def rejected_warehouse(session) -> Warehouse:
    return _warehouse(session, "WH-REJECT", "Rejected Goods", WarehouseType.REJECTED)


@pytest.fixture
def warehouses(main_warehouse, secondary_warehouse, rejected_warehouse):
    return main_warehouse, secondary_warehouse, rejected_warehouse


@pytest.fixture
def product_id() -> UUID:
    return uuid4()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def inventory_config() -> InventoryConfig:
    return InventoryConfig.with_defaults()


@pytest.fixture
def inventory(session, deterministic_clock, inventory_config) -> InventoryService:
    return InventoryService(session, clock=deterministic_clock, config=inventory_config)


@pytest.fixture
def rejected_stock(session, deterministic_clock, inventory_config) -> RejectedStockService:
    return RejectedStockService(session, clock=deterministic_clock, config=inventory_config)


@pytest.fixture
def stock_in(inventory, test_actor_id):
    """Seed stock through the ledger: stock_in(product, warehouse, qty)."""

    def _stock_in(product_id, warehouse, quantity):
        return inventory.adjust_stock(
            product_id, warehouse.id, "add", quantity, "Initial stock",
            actor_id=test_actor_id,
        )

    return _stock_in


@pytest.fixture
def quantity_of(inventory):
    """Read the ledger: quantity_of(product, warehouse) -> int."""

    def _quantity_of(product_id, warehouse) -> int:
        for level in inventory.get_product_stock(product_id):
            if level.warehouse_id == warehouse.id:
                return level.quantity
        return 0

    return _quantity_of

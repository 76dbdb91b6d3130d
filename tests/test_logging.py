"""Tests for the structured logging system (stock_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "stock_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("stock_adjusted", extra={"quantity_after": 7, "reason": "Recount"})

        record = _parse_log(stream)
        assert record["quantity_after"] == 7
        assert record["reason"] == "Recount"

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"product_id": uid})

        assert _parse_log(stream)["product_id"] == str(uid)

    def test_stock_error_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InsufficientStockError("p-1", "w-1", available=2, requested=5)
        except InsufficientStockError:
            get_logger("test").error("adjust_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_available"] == 2
        assert record["exc_requested"] == 5
        assert "traceback" in record

    def test_below_level_suppressed(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        get_logger("test").info("quiet")
        assert stream.getvalue() == ""


class TestLogContext:

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(actor_id="actor-1", opname_id="op-9")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["actor_id"] == "actor-1"
        assert record["opname_id"] == "op-9"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "actor_id" not in record
        assert "reference_number" not in record

    def test_bind_restores_previous_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", reference_number="ADJ-000001"):
            assert LogContext.get_all() == {"actor_id": "inner", "reference_number": "ADJ-000001"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_bind_ignores_none_and_unknown(self):
        with LogContext.bind(actor_id=None, nonsense="x"):
            assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        first, _ = _make_handler()
        second, _ = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        handlers = logging.getLogger("stock_kernel").handlers
        assert sum(h is first for h in handlers) == 1
        assert second not in handlers

    def test_reset_clears_handlers(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        reset_logging()
        assert logging.getLogger("stock_kernel").handlers == []


class TestServiceLogging:

    def test_adjustment_logged_with_actor(self, inventory, main_warehouse, test_actor_id, captured_logs):
        configure_logging(level=logging.DEBUG, stream=StringIO())
        product_id = uuid4()
        inventory.adjust_stock(product_id, main_warehouse.id, "add", 4, "Received", actor_id=test_actor_id)

        records = [r for r in captured_logs() if r["message"] == "stock_adjusted"]
        assert len(records) == 1
        assert records[0]["actor_id"] == str(test_actor_id)
        assert records[0]["product_id"] == str(product_id)

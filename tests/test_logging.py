"""Tests for the structured logging system (warehouse_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from warehouse_kernel.domain.dtos import MovementKind
from warehouse_kernel.exceptions import InsufficientAvailableStockError
from warehouse_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite config."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "warehouse_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("reserved", extra={"requested": 4, "available_stock": 6})

        record = _parse_log(stream)
        assert record["requested"] == 4
        assert record["available_stock"] == 6

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", bill_id="bill-9")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["bill_id"] == "bill-9"

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise InsufficientAvailableStockError("inv-1", requested=6, available=4)
        except InsufficientAvailableStockError:
            logger.error("reservation_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_AVAILABLE_STOCK"
        assert record["exc_type"] == "InsufficientAvailableStockError"
        assert record["exc_requested"] == 6
        assert record["exc_available"] == 4
        assert "traceback" in record

    def test_special_types_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={"bill_uuid": uid, "amount": Decimal("12.50"), "kind": MovementKind.SALE},
        )

        record = _parse_log(stream)
        assert record["bill_uuid"] == str(uid)
        assert record["amount"] == "12.50"
        assert record["kind"] == "sale"

    def test_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.debug("hidden")
        logger.warning("second")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_clear(self):
        LogContext.set(correlation_id="x", inventory_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "inventory_id": "y"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner", actor_id="a1"):
            assert LogContext.get_all()["operation"] == "inner"
            assert LogContext.get_all()["actor_id"] == "a1"
        assert LogContext.get_all() == {"operation": "outer"}

    def test_bind_ignores_none(self):
        with LogContext.bind(bill_id=None, correlation_id="c"):
            assert "bill_id" not in LogContext.get_all()


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("warehouse_kernel").handlers) == 1

    def test_reset_restores_propagation(self):
        configure_logging(handler=_make_handler()[0])
        reset_logging()
        kernel_logger = logging.getLogger("warehouse_kernel")
        assert kernel_logger.propagate is True
        assert kernel_logger.handlers == []

    def test_get_logger_returns_child(self):
        assert get_logger("services.stock_ledger").name == "warehouse_kernel.services.stock_ledger"

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=_make_handler()[0])
        assert logging.getLogger("warehouse_kernel").propagate is False

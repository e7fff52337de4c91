"""Tests for logging context managers."""

import asyncio
import logging

import pytest

from driver_sync.sync_logging import ContextFilter, LogContext, log_context, log_order_context


@pytest.fixture
def logger():
    logger = logging.getLogger("test.driver_sync.context")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def captured_records(logger):
    """Capture log records for inspection."""
    records: list[logging.LogRecord] = []

    class RecordCapture(logging.Handler):
        def emit(self, record: logging.LogRecord) -> None:
            records.append(record)

    handler = RecordCapture()
    handler.addFilter(ContextFilter())
    logger.addHandler(handler)
    yield records
    logger.removeHandler(handler)


@pytest.mark.unit
class TestLogContext:
    def test_adds_extra_fields(self, logger, captured_records):
        with log_context(driver_id=42, subscription="orders"):
            logger.info("Test message")

        record = captured_records[0]
        assert record.driver_id == 42
        assert record.subscription == "orders"

    def test_clears_on_exit(self, logger, captured_records):
        with log_context(subscription="orders"):
            logger.info("inside")
        logger.info("outside")

        assert captured_records[0].subscription == "orders"
        assert not hasattr(captured_records[1], "subscription")

    def test_nested_contexts_restore_outer_fields(self, logger, captured_records):
        with log_context(driver_id=42):
            with log_context(subscription="chat:7"):
                logger.info("inner")
            logger.info("outer")

        inner, outer = captured_records
        assert inner.driver_id == 42
        assert inner.subscription == "chat:7"
        assert outer.driver_id == 42
        assert not hasattr(outer, "subscription")

    def test_explicit_extra_wins_over_context(self, logger, captured_records):
        with log_context(order_id=1):
            logger.info("explicit", extra={"order_id": 2})
        assert captured_records[0].order_id == 2

    async def test_tasks_do_not_share_fields(self, logger, captured_records):
        ready = asyncio.Event()

        async def bound():
            with log_context(subscription="orders"):
                ready.set()
                await asyncio.sleep(0.01)

        async def unbound():
            await ready.wait()
            logger.info("from another task")

        await asyncio.gather(bound(), unbound())

        assert not hasattr(captured_records[0], "subscription")


@pytest.mark.unit
class TestLogOrderContext:
    def test_sets_order_and_correlation(self, logger, captured_records):
        with log_order_context(7):
            logger.info("order log")

        record = captured_records[0]
        assert record.order_id == 7
        assert record.correlation_id == "order-7"

    def test_correlation_id_override(self, logger, captured_records):
        with log_order_context(7, correlation_id="custom"):
            logger.info("order log")
        assert captured_records[0].correlation_id == "custom"


@pytest.mark.unit
class TestLogContextState:
    @pytest.fixture(autouse=True)
    def _clear_context(self):
        LogContext.clear()
        yield
        LogContext.clear()

    def test_set_merges_fields(self):
        LogContext.set(a=1)
        LogContext.set(b=2)
        assert LogContext.get() == {"a": 1, "b": 2}

    def test_clear(self):
        LogContext.set(a=1)
        LogContext.clear()
        assert LogContext.get() == {}

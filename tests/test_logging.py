"""Tests for statement_kernel.logging_config."""

import json
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO

import pytest

from statement_kernel.domain.dtos import AggregationLevel
from statement_kernel.exceptions import AccessDeniedError
from statement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@dataclass(frozen=True)
class _Totals:
    line_code: str
    amount: Decimal


@pytest.fixture
def log_stream():
    """Fresh logging setup writing to a StringIO; restores the suite setup after."""
    reset_logging()
    stream = StringIO()
    configure_logging(stream=stream)
    yield stream
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestStructuredFormatter:
    def test_base_fields(self, log_stream):
        get_logger("engines.formula").info("formula_evaluated")
        (record,) = _records(log_stream)
        assert record["message"] == "formula_evaluated"
        assert record["level"] == "INFO"
        assert record["logger"] == "statement_kernel.engines.formula"
        assert record["ts"].endswith("+00:00")

    def test_extras_are_serialized(self, log_stream):
        get_logger("test").info(
            "statement_generated",
            extra={
                "line_count": 31,
                "total": Decimal("60000.00"),
                "level_used": AggregationLevel.DISTRICT,
                "facility_ids": frozenset({2, 1}),
                "largest": _Totals("TAX_REVENUE", Decimal("5")),
            },
        )
        (record,) = _records(log_stream)
        assert record["line_count"] == 31
        assert record["total"] == "60000.00"
        assert record["level_used"] == "DISTRICT"
        assert record["facility_ids"] == [1, 2]
        assert record["largest"] == {"line_code": "TAX_REVENUE", "amount": "5"}

    def test_debug_dropped_at_default_level(self, log_stream):
        logger = get_logger("test")
        logger.debug("hidden")
        logger.warning("shown")
        assert [r["message"] for r in _records(log_stream)] == ["shown"]

    def test_statement_exception_fields(self, log_stream):
        try:
            raise AccessDeniedError(7, "outside district")
        except AccessDeniedError:
            get_logger("test").error("scope_error", exc_info=True)

        (record,) = _records(log_stream)
        assert record["exc_type"] == "AccessDeniedError"
        assert record["exc_code"] == "ACCESS_DENIED"
        assert record["exc_facility_id"] == 7
        assert record["exc_reason"] == "outside district"
        assert "Traceback" in record["traceback"]

    def test_plain_exception_has_no_code(self, log_stream):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").exception("failed")

        (record,) = _records(log_stream)
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record

    def test_formatter_usable_on_its_own(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg %s", ("a",), None)
        assert json.loads(StructuredFormatter().format(record))["message"] == "msg a"


class TestLogContext:
    def test_fields_appear_on_records(self, log_stream):
        LogContext.set(correlation_id="req-1", statement_code="REV_EXP")
        get_logger("test").info("with_context")
        (record,) = _records(log_stream)
        assert record["correlation_id"] == "req-1"
        assert record["statement_code"] == "REV_EXP"

    def test_nothing_added_when_empty(self, log_stream):
        get_logger("test").info("bare")
        (record,) = _records(log_stream)
        assert "correlation_id" not in record

    def test_set_ignores_none_and_stringifies(self):
        LogContext.set(correlation_id="c", project_id=1)
        LogContext.set(correlation_id=None, reporting_period_id=2)
        assert LogContext.get_all() == {
            "correlation_id": "c",
            "project_id": "1",
            "reporting_period_id": "2",
        }

    def test_bind_restores_previous_values(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", actor_id="analyst"):
            assert LogContext.get_all() == {"correlation_id": "inner", "actor_id": "analyst"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(statement_code="CASH_FLOW"):
                raise RuntimeError("generation failed")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="facility"):
            LogContext.set(facility="1")

    def test_clear(self):
        LogContext.set(actor_id="a")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_threads_do_not_share_context(self):
        seen = {}

        def worker(code):
            with LogContext.bind(statement_code=code):
                barrier.wait()
                seen[code] = LogContext.get_all()["statement_code"]

        barrier = threading.Barrier(2)
        threads = [threading.Thread(target=worker, args=(c,)) for c in ("REV_EXP", "CASH_FLOW")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert seen == {"REV_EXP": "REV_EXP", "CASH_FLOW": "CASH_FLOW"}


class TestConfigureLogging:
    def test_second_call_is_a_no_op(self, log_stream):
        configure_logging(stream=StringIO())
        structured = [
            handler
            for handler in logging.getLogger("statement_kernel").handlers
            if isinstance(handler.formatter, StructuredFormatter)
        ]
        assert len(structured) == 1
        assert structured[0].stream is log_stream

    def test_children_inherit(self):
        reset_logging()
        stream = StringIO()
        try:
            configure_logging(stream=stream, level=logging.DEBUG)
            get_logger("modules.financial_reports.service").debug("nested")
            (record,) = _records(stream)
            assert record["logger"] == "statement_kernel.modules.financial_reports.service"
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

    def test_reset_removes_handlers(self, log_stream):
        reset_logging()
        namespace = logging.getLogger("statement_kernel")
        assert not any(
            isinstance(handler.formatter, StructuredFormatter) for handler in namespace.handlers
        )
        assert namespace.propagate is True

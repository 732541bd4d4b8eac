"""Tests for the structured logging system (approval_kernel/logging_config.py)."""

import json
import logging
from datetime import UTC, datetime
from io import StringIO
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import RequestState
from approval_kernel.exceptions import OptimisticLockError
from approval_kernel.logging_config import (
    CONTEXT_FIELDS,
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
    configure_logging(level=logging.DEBUG, handler=logging.NullHandler())


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
    """Parse all JSON log lines from a stream."""
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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "approval_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("request_submitted", extra={"version": 2, "status": "pending"})

        record = _parse_log(stream)
        assert record["version"] == 2
        assert record["status"] == "pending"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(template_id="change-request", request_id="req-456")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["template_id"] == "change-request"
        assert record["request_id"] == "req-456"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(actor_id="alice")
        get_logger("test").info("msg", extra={"actor_id": "mallory"})

        assert _parse_log(stream)["actor_id"] == "alice"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")

        try:
            raise OptimisticLockError("Request", "r-1", expected_version=2, actual_version=3)
        except OptimisticLockError:
            logger.error("save_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "OPTIMISTIC_LOCK_CONFLICT"
        assert record["exc_type"] == "OptimisticLockError"
        assert record["exc_entity_id"] == "r-1"
        assert record["exc_actual_version"] == 3

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "template_id" not in record
        assert "request_id" not in record

    def test_special_types_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        when = datetime(2025, 8, 10, 10, 0, tzinfo=UTC)
        get_logger("test").info(
            "typed",
            extra={"request_uuid": uid, "at": when, "state": RequestState.PENDING, "ids": ("a", "b")},
        )

        record = _parse_log(stream)
        assert record["request_uuid"] == str(uid)
        assert record["at"] == "2025-08-10T10:00:00+00:00"
        assert record["state"] == "pending"
        assert record["ids"] == ["a", "b"]

    def test_default_level_filters_debug(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(actor_id="x", template_id="y")
        assert LogContext.get_all() == {"actor_id": "x", "template_id": "y"}

    def test_clear(self):
        LogContext.set(request_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(request_id="outer")
        with LogContext.bind(request_id="inner"):
            assert LogContext.get_all()["request_id"] == "inner"
        assert LogContext.get_all()["request_id"] == "outer"

    def test_bind_restores_none(self):
        assert "actor_id" not in LogContext.get_all()
        with LogContext.bind(actor_id="temp"):
            assert LogContext.get_all()["actor_id"] == "temp"
        assert "actor_id" not in LogContext.get_all()

    def test_bind_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(request_id="r-1"):
                raise RuntimeError("fail")
        assert "request_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(request_id="r-1", tenant="acme"):
            assert LogContext.get_all() == {"request_id": "r-1"}

    def test_all_fields(self):
        LogContext.set(request_id="r", actor_id="a", template_id="t", tenant="acme")
        assert LogContext.get_all() == {"request_id": "r", "actor_id": "a", "template_id": "t"}
        assert tuple(LogContext.get_all()) == CONTEXT_FIELDS

    def test_non_string_values_are_stringified(self):
        request_id = uuid4()
        with LogContext.bind(request_id=request_id):
            assert LogContext.get_all() == {"request_id": str(request_id)}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        get_logger("test").info("once")

        assert len(_parse_all_logs(stream)) == 1

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("approval_kernel").propagate is False

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(level="debug", handler=handler)
        get_logger("test").debug("verbose")

        assert _parse_log(stream)["message"] == "verbose"

    def test_reset_clears_handlers(self):
        configure_logging(handler=logging.NullHandler())
        reset_logging()
        assert logging.getLogger("approval_kernel").handlers == []

"""Tests for the structured logging system (requisition_kernel/logging_config.py)."""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from io import StringIO
from uuid import uuid4

import pytest

from requisition_kernel.exceptions import UnauthorizedApproverError
from requisition_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite setup."""
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


class _Decision(Enum):
    APPROVED = "approved"


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
        assert record["logger"] == "requisition_kernel.test"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "requisition_approved_level", extra={"level": 2, "rq_number": "RQ-PJ-00001"},
        )

        record = _parse_log(stream)
        assert record["rq_number"] == "RQ-PJ-00001"
        # "level" is part of the envelope and is not overwritten
        assert record["level"] == "INFO"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(tenant_id="acme", requisition_id="rq-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["tenant_id"] == "acme"
        assert record["requisition_id"] == "rq-1"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "tenant_id" not in record
        assert "bulk_operation_id" not in record

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_engine_exception_attributes_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise UnauthorizedApproverError("rq-9", 2, "u-sup", "supervisor", "role not allowed")
        except UnauthorizedApproverError:
            get_logger("test").error("approve_refused", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "UNAUTHORIZED_APPROVER"
        assert record["exc_type"] == "UnauthorizedApproverError"
        assert record["exc_requisition_id"] == "rq-9"
        assert record["exc_level"] == 2
        assert record["exc_role"] == "supervisor"

    def test_non_json_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "with_values",
            extra={
                "requisition_uuid": uid,
                "decision": _Decision.APPROVED,
                "roles": {"b", "a"},
                "scopes": frozenset({"store-2", "store-1"}),
                "decided_at": datetime(2026, 1, 2, tzinfo=UTC),
                "quantity": Decimal("1.5"),
            },
        )

        record = _parse_log(stream)
        assert record["requisition_uuid"] == str(uid)
        assert record["decision"] == "approved"
        assert record["roles"] == ["a", "b"]
        assert record["scopes"] == ["store-1", "store-2"]
        assert record["decided_at"] == "2026-01-02T00:00:00+00:00"
        # Anything else falls back to str()
        assert record["quantity"] == "1.5"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(tenant_id="acme", actor_id="u-1")
        assert LogContext.get_all() == {"tenant_id": "acme", "actor_id": "u-1"}

    def test_none_values_are_ignored(self):
        LogContext.set(tenant_id="acme")
        LogContext.set(tenant_id=None)
        assert LogContext.get_all() == {"tenant_id": "acme"}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="Unknown log context field"):
            LogContext.set(entry_id="x")

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(requisition_id="outer")
        with LogContext.bind(requisition_id="inner"):
            assert LogContext.get_all()["requisition_id"] == "inner"
        assert LogContext.get_all()["requisition_id"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(correlation_id="temp"):
            assert LogContext.get_all()["correlation_id"] == "temp"
        assert "correlation_id" not in LogContext.get_all()

    def test_nested_binds_keep_outer_fields(self):
        with LogContext.bind(bulk_operation_id="bulk-1"):
            with LogContext.bind(requisition_id="rq-1"):
                assert LogContext.get_all() == {
                    "bulk_operation_id": "bulk-1",
                    "requisition_id": "rq-1",
                }
            assert LogContext.get_all() == {"bulk_operation_id": "bulk-1"}
        assert LogContext.get_all() == {}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id="u-1"):
                raise RuntimeError("fail")
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("requisition_kernel")
        assert h1 in root.handlers
        assert h2 not in root.handlers
        structured = [h for h in root.handlers if isinstance(h.formatter, StructuredFormatter)]
        assert structured == [h1]
        assert root.propagate is False

    def test_get_logger_returns_child(self):
        logger = get_logger("services.requisition")
        assert logger.name == "requisition_kernel.services.requisition"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "requisition_kernel.deep.nested.module"

    def test_reset_allows_reconfiguration(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        reset_logging()
        h2, stream = _make_handler()
        configure_logging(handler=h2, level="WARNING")
        get_logger("test").info("dropped")
        get_logger("test").warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

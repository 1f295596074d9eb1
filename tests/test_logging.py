"""Structured logging: JSON envelope, context propagation and exception fields."""

import json
import logging
from io import StringIO

import pytest

from numbering_kernel.exceptions import FormatOverflowError, PersistenceError
from numbering_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


@pytest.fixture
def emit():
    """Format a single record through StructuredFormatter and parse it back."""
    formatter = StructuredFormatter()

    def _emit(message, *, exc=None, **extra):
        exc_info = (type(exc), exc, None) if exc is not None else None
        record = logging.LogRecord(
            "numbering_kernel.test", logging.INFO, __file__, 1, message, (), exc_info
        )
        for key, val in extra.items():
            setattr(record, key, val)
        return json.loads(formatter.format(record))

    return _emit


class TestStructuredFormatter:

    def test_envelope_fields(self, emit):
        out = emit("allocation_started")
        assert out["message"] == "allocation_started"
        assert out["level"] == "INFO"
        assert out["logger"] == "numbering_kernel.test"
        assert out["ts"].endswith("+00:00")

    def test_extra_fields_are_flattened(self, emit):
        out = emit("counter_reserved", global_sequence=7, state="counters_reserved")
        assert out["global_sequence"] == 7
        assert out["state"] == "counters_reserved"
        assert "args" not in out

    def test_exception_fields(self, emit):
        out = emit("allocation_failed", exc=FormatOverflowError("global_sequence", 1_000_000, 6))
        assert out["exc_type"] == "FormatOverflowError"
        assert out["exc_code"] == "FORMAT_OVERFLOW"
        assert out["exc_field"] == "global_sequence"
        assert out["exc_width"] == 6

    def test_context_fields_are_included(self, emit):
        with LogContext.bind(idempotency_key="inv-1", client_id="client-x"):
            out = emit("allocation_started")
        assert out["idempotency_key"] == "inv-1"
        assert out["client_id"] == "client-x"


class TestLogContext:

    def test_bind_restores_previous_values(self):
        LogContext.set(entity_type="INVOICE")
        with LogContext.bind(entity_type="QUOTATION", actor_id="ops"):
            assert LogContext.get_all() == {"entity_type": "QUOTATION", "actor_id": "ops"}
        assert LogContext.get_all() == {"entity_type": "INVOICE"}

    def test_none_values_are_ignored(self):
        with LogContext.bind(correlation_id="c-1", client_id=None):
            assert LogContext.get_all() == {"correlation_id": "c-1"}

    def test_clear(self):
        LogContext.set(trace_id="t-1")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestLoggerFactory:

    def test_prefix(self):
        assert get_logger("services.allocation").name == "numbering_kernel.services.allocation"

    def test_configure_logging_is_idempotent(self):
        root = logging.getLogger("numbering_kernel")
        handlers_before = list(root.handlers)
        configure_logging(level=logging.INFO, stream=StringIO())
        assert root.handlers == handlers_before

    def test_kernel_errors_carry_codes(self):
        err = PersistenceError("persist_identifier", "disk I/O error")
        assert err.code == "PERSISTENCE_ERROR"
        assert "disk I/O error" in str(err)

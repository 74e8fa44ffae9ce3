"""Tests for structured logging utilities."""

import datetime as dt
import logging
import uuid

import pytest

from msp_billing.utils.logging_utils import (
    REDACTED,
    BillingContextFilter,
    LogContext,
    billing_operation_context,
    generate_correlation_id,
    get_correlation_id,
    get_log_context,
    log_function_call,
    sanitize_sensitive_data,
)


class TestGenerateCorrelationId:
    """Test correlation ID generation."""

    def test_generate_correlation_id_format(self):
        """Test correlation ID has correct UUID format."""
        uuid.UUID(generate_correlation_id())

    def test_generate_correlation_id_uniqueness(self):
        """Test each correlation ID is unique."""
        ids = [generate_correlation_id() for _ in range(100)]
        assert len(set(ids)) == 100


class TestLogContext:
    """Test LogContext context manager."""

    def test_fields_visible_inside_block(self):
        with LogContext(customer_id="acme"):
            assert get_log_context()["customer_id"] == "acme"
        assert "customer_id" not in get_log_context()

    def test_nested_contexts_restore_outer_fields(self):
        with LogContext(customer_id="acme", operation="outer"):
            with LogContext(operation="inner"):
                assert get_log_context() == {"customer_id": "acme", "operation": "inner"}
            assert get_log_context()["operation"] == "outer"


class TestBillingOperationContext:
    """Test billing_operation_context."""

    def test_sets_operation_fields(self):
        with billing_operation_context(
            "create_invoice", "acme", dt.date(2024, 10, 1), dt.date(2024, 10, 31)
        ):
            context = get_log_context()
            assert context["operation"] == "create_invoice"
            assert context["customer_id"] == "acme"
            assert context["period"] == "2024-10-01..2024-10-31"
            assert get_correlation_id() is not None

    def test_nested_operation_keeps_correlation_id(self):
        with billing_operation_context("outer"):
            outer_id = get_correlation_id()
            with billing_operation_context("inner"):
                assert get_correlation_id() == outer_id
        assert get_correlation_id() is None


class TestSanitizeSensitiveData:
    """Test sensitive field redaction."""

    def test_redacts_tokens(self):
        data = {"api_token": "abc", "Authorization": "abc", "customer_id": "acme"}
        assert sanitize_sensitive_data(data) == {
            "api_token": REDACTED,
            "Authorization": REDACTED,
            "customer_id": "acme",
        }

    def test_redacts_nested(self):
        data = {"headers": {"authorization": "abc"}, "password": None}
        assert sanitize_sensitive_data(data) == {
            "headers": {"authorization": REDACTED},
            "password": None,
        }

    def test_non_dict_passthrough(self):
        assert sanitize_sensitive_data("plain") == "plain"


class TestLogFunctionCall:
    """Test log_function_call decorator."""

    def test_logs_entry_and_exit(self, caplog):
        @log_function_call
        def add(a, b):
            return a + b

        with caplog.at_level(logging.DEBUG):
            assert add(1, 2) == 3

        messages = [r.getMessage() for r in caplog.records]
        assert "Entering add" in messages
        assert any(m.startswith("Exiting add after") for m in messages)

    def test_logs_args_when_requested(self, caplog):
        @log_function_call(include_args=True, level="INFO")
        def greet(name):
            return name

        with caplog.at_level(logging.INFO):
            greet("acme")

        assert any("'acme'" in r.getMessage() for r in caplog.records)

    def test_reraises_exceptions(self, caplog):
        @log_function_call
        def fail():
            raise ValueError("bad")

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(ValueError, match="bad"):
                fail()

        assert any("ValueError: bad" in r.getMessage() for r in caplog.records)


class TestBillingContextFilter:
    """Test BillingContextFilter."""

    def _record(self, **extra):
        record = logging.LogRecord("test", logging.INFO, __file__, 1, "msg", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_copies_bound_fields(self):
        record = self._record()
        with LogContext(customer_id="acme"):
            assert BillingContextFilter().filter(record) is True
        assert record.customer_id == "acme"

    def test_explicit_extra_wins(self):
        record = self._record(customer_id="globex")
        with LogContext(customer_id="acme"):
            BillingContextFilter().filter(record)
        assert record.customer_id == "globex"


def test_sanitize_walks_lists():
    data = {"requests": [{"authorization": "abc", "path": "/Invoice"}]}
    assert sanitize_sensitive_data(data) == {
        "requests": [{"authorization": REDACTED, "path": "/Invoice"}]
    }

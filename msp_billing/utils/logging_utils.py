"""
Log context for billing operations.

Fields bound with LogContext (customer, period, correlation id) are copied
onto every record emitted inside the block by BillingContextFilter, so one
invoice run can be followed through aggregation, the accounting client and
the ledger.
"""

import contextvars
import datetime as dt
import functools
import logging
import time
import uuid
from typing import Any, Callable, Dict, Optional

_context: contextvars.ContextVar[Optional[Dict[str, Any]]] = contextvars.ContextVar(
    "msp_billing_log_context", default=None
)

# Substrings of field names whose values never reach a log sink
SENSITIVE_FIELDS = (
    "password",
    "token",
    "api_key",
    "secret",
    "credentials",
    "authorization",
)

REDACTED = "***REDACTED***"


def generate_correlation_id() -> str:
    """Return a new id tying together the log lines of one billing operation."""
    return str(uuid.uuid4())


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields currently bound to log records."""
    return dict(_context.get() or {})


def get_correlation_id() -> Optional[str]:
    return get_log_context().get("correlation_id")


class LogContext:
    """
    Bind fields to all log records emitted inside a with block.

    Contexts nest: inner fields override outer ones until the inner block
    ends.

    Example:
        with LogContext(customer_id="acme", operation="create_invoice"):
            logger.info("Creating invoice")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "LogContext":
        merged = get_log_context()
        merged.update(self.fields)
        self._token = _context.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


def billing_operation_context(
    operation: str,
    customer_id: Optional[str] = None,
    period_start: Optional[dt.date] = None,
    period_end: Optional[dt.date] = None,
) -> LogContext:
    """
    Log context of one billing operation.

    Nested operations keep the caller's correlation id; a top-level
    operation gets a new one.

    Args:
        operation: Operation name, e.g. "create_invoice"
        customer_id: Customer being billed
        period_start: First day of the billed period
        period_end: Last day of the billed period
    """
    fields: Dict[str, Any] = {
        "operation": operation,
        "correlation_id": get_correlation_id() or generate_correlation_id(),
    }
    if customer_id is not None:
        fields["customer_id"] = customer_id
    if period_start is not None and period_end is not None:
        fields["period"] = f"{period_start.isoformat()}..{period_end.isoformat()}"
    return LogContext(**fields)


class BillingContextFilter(logging.Filter):
    """Copies the bound log context onto each record passing a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in (_context.get() or {}).items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_FIELDS)


def sanitize_sensitive_data(data: Any) -> Any:
    """
    Redact credential values before they are logged.

    Dictionaries are walked recursively, including dictionaries inside
    lists. A value is redacted when its key contains one of
    SENSITIVE_FIELDS; None stays None so a missing token remains visible.
    Anything that is not a dict or list is returned unchanged.
    """
    if isinstance(data, list):
        return [sanitize_sensitive_data(item) for item in data]
    if not isinstance(data, dict):
        return data
    return {
        key: (
            (REDACTED if value is not None else None)
            if _is_sensitive(str(key))
            else sanitize_sensitive_data(value)
        )
        for key, value in data.items()
    }


def log_function_call(
    func: Optional[Callable] = None, *, include_args: bool = False, level: str = "DEBUG"
) -> Callable:
    """
    Log entry, exit with duration, and failures of the decorated function.

    Usable bare (@log_function_call) or with options
    (@log_function_call(include_args=True, level="INFO")). Exceptions are
    logged and re-raised unchanged.
    """
    log_level = logging.getLevelName(level.upper())

    def decorator(f: Callable) -> Callable:
        logger = logging.getLogger(f.__module__)

        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            if include_args:
                arguments = [repr(a) for a in args]
                arguments += [f"{k}={v!r}" for k, v in kwargs.items()]
                logger.log(log_level, f"Entering {f.__name__}({', '.join(arguments)})")
            else:
                logger.log(log_level, f"Entering {f.__name__}")

            started = time.perf_counter()
            try:
                result = f(*args, **kwargs)
            except Exception as e:
                logger.log(log_level, f"{f.__name__} raised {type(e).__name__}: {e}")
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.log(log_level, f"Exiting {f.__name__} after {elapsed_ms:.1f} ms")
            return result

        return wrapper

    if func is None:
        return decorator
    return decorator(func)

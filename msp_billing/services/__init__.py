"""
External accounting-system services for the billing engine.

This package provides:
- A sevDesk REST client for invoice creation and status reads
- Error classification (retryable, fatal, outcome unknown)
- Exponential backoff with jitter and a circuit breaker for idempotent reads
"""

from .accounting_client import AccountingSystem, SevdeskClient, map_invoice_status
from .error_classifier import ErrorClassifier, ErrorType
from .retry_handler import CircuitBreakerError, RetryExhaustedException, RetryHandler

__all__ = [
    "AccountingSystem",
    "SevdeskClient",
    "map_invoice_status",
    "ErrorClassifier",
    "ErrorType",
    "RetryHandler",
    "RetryExhaustedException",
    "CircuitBreakerError",
]

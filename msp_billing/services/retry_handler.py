"""
Retry policy for idempotent accounting-system reads.

Status lookups and connection checks are retried with exponential backoff
and jitter, and a 429 answer's Retry-After header is honored. A circuit
breaker stops calling an accounting system that keeps failing.

Invoice creation never goes through this module: after an ambiguous failure
a blind retry could create a second invoice.
"""

import logging
import random
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Optional

from msp_billing.services.error_classifier import ErrorClassifier, get_status_code

logger = logging.getLogger(__name__)


class RetryExhaustedException(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        last_exception: The error of the final attempt
    """

    def __init__(self, message: str, last_exception: Optional[Exception] = None):
        self.last_exception = last_exception
        super().__init__(message)


class CircuitBreakerError(Exception):
    """Raised when the circuit breaker is open."""


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    """
    Counts consecutive failed operations and blocks calls while open.

    After reset_timeout seconds an open breaker lets a single probe through
    (half-open); the probe's outcome closes or re-opens it.
    """

    def __init__(
        self,
        failure_threshold: int = 10,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.clock = clock
        self.state = BreakerState.CLOSED
        self.failure_count = 0
        self._opened_at = 0.0
        self._lock = threading.Lock()

    def allow(self) -> bool:
        """Whether a call may go ahead now."""
        with self._lock:
            if self.state == BreakerState.CLOSED:
                return True
            if self.state == BreakerState.OPEN:
                if self.clock() - self._opened_at < self.reset_timeout:
                    return False
                logger.info("Circuit breaker half-open: probing the accounting system")
                self.state = BreakerState.HALF_OPEN
                return True
            # Half-open: the probe is already in flight
            return False

    def succeeded(self) -> None:
        with self._lock:
            if self.state != BreakerState.CLOSED:
                logger.info("Circuit breaker closed after a successful call")
            self.state = BreakerState.CLOSED
            self.failure_count = 0

    def failed(self) -> None:
        with self._lock:
            self.failure_count += 1
            if self.state == BreakerState.HALF_OPEN or (
                self.state == BreakerState.CLOSED
                and self.failure_count >= self.failure_threshold
            ):
                logger.warning(
                    f"Circuit breaker opened after {self.failure_count} failed operations"
                )
                self.state = BreakerState.OPEN
                self._opened_at = self.clock()

    def reset(self) -> None:
        with self._lock:
            self.state = BreakerState.CLOSED
            self.failure_count = 0
            self._opened_at = 0.0


@dataclass
class RetryStatistics:
    """Counters of a RetryHandler."""

    total_calls: int = 0
    total_retries: int = 0
    total_failures: int = 0
    rejected_calls: int = 0


def retry_after_seconds(exception: Exception) -> Optional[float]:
    """Delay requested by a 429 response's Retry-After header, if any."""
    if get_status_code(exception) != 429:
        return None
    headers = getattr(getattr(exception, "response", None), "headers", None) or {}
    value = headers.get("Retry-After")
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


class RetryHandler:
    """
    Retries idempotent reads with exponential backoff and a circuit breaker.

    Example:
        >>> handler = RetryHandler(max_retries=2)
        >>> handler.execute_with_retry(client._request, "GET", "/Invoice/1001")
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2,
        jitter_factor: float = 0.1,
        circuit_breaker_threshold: int = 10,
        circuit_breaker_timeout: float = 60.0,
        retry_condition: Optional[Callable[[Exception], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize retry handler.

        Args:
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry (seconds)
            max_delay: Upper bound of any delay, Retry-After included (seconds)
            exponential_base: Growth factor of the delay per attempt
            jitter_factor: Random spread applied to the delay (0.0 to 1.0)
            circuit_breaker_threshold: Failed operations before the breaker opens
            circuit_breaker_timeout: Seconds before an open breaker lets a probe through
            retry_condition: Decides whether an error is worth retrying
                (ErrorClassifier.is_retryable if omitted)
            clock: Monotonic time source of the circuit breaker
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter_factor = jitter_factor
        self.retry_condition = retry_condition or ErrorClassifier().is_retryable
        self.breaker = CircuitBreaker(
            circuit_breaker_threshold, circuit_breaker_timeout, clock=clock
        )
        self.stats = RetryStatistics()
        self._lock = threading.Lock()

    @property
    def circuit_breaker_threshold(self) -> int:
        return self.breaker.failure_threshold

    @property
    def circuit_breaker_timeout(self) -> float:
        return self.breaker.reset_timeout

    def backoff_delay(self, attempt: int, exception: Optional[Exception] = None) -> float:
        """
        Seconds to wait before retry number attempt + 1.

        A Retry-After header on a 429 answer wins over the computed backoff.
        Both are capped at max_delay.
        """
        requested = retry_after_seconds(exception) if exception is not None else None
        if requested is not None:
            return min(requested, self.max_delay)

        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        jitter = random.uniform(-self.jitter_factor, self.jitter_factor) * delay
        return max(0.0, delay + jitter)

    def _count(self, **increments: int) -> None:
        with self._lock:
            for name, value in increments.items():
                setattr(self.stats, name, getattr(self.stats, name) + value)

    def execute_with_retry(self, func: Callable, *args, **kwargs) -> Any:
        """
        Call func until it succeeds, fails permanently or runs out of retries.

        Returns:
            Result of func

        Raises:
            CircuitBreakerError: If the breaker is open
            RetryExhaustedException: If every attempt failed with a retryable error
            Exception: The original error if it is not retryable
        """
        self._count(total_calls=1)
        if not self.breaker.allow():
            self._count(rejected_calls=1)
            raise CircuitBreakerError(
                f"Circuit breaker is open after {self.breaker.failure_count} failures"
            )

        name = getattr(func, "__name__", repr(func))
        attempt = 0
        while True:
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                if not self.retry_condition(e):
                    logger.debug(f"{name}: not retrying {type(e).__name__}")
                    self.breaker.succeeded()
                    raise
                if attempt >= self.max_retries:
                    self._count(total_retries=attempt, total_failures=1)
                    self.breaker.failed()
                    logger.warning(f"{name}: giving up after {attempt + 1} attempts: {e}")
                    raise RetryExhaustedException(
                        f"Max retries ({self.max_retries}) exceeded. "
                        f"Last error: {type(e).__name__}: {e}",
                        last_exception=e,
                    ) from e

                delay = self.backoff_delay(attempt, e)
                logger.debug(
                    f"{name}: attempt {attempt + 1}/{self.max_retries + 1} failed "
                    f"({type(e).__name__}), retrying in {delay:.2f}s"
                )
                time.sleep(delay)
                attempt += 1
                continue

            if attempt:
                logger.info(f"{name} succeeded after {attempt} retries")
                self._count(total_retries=attempt)
            self.breaker.succeeded()
            return result

    def get_retry_statistics(self) -> dict:
        """Counters plus the breaker state."""
        with self._lock:
            stats = asdict(self.stats)
        stats["circuit_breaker_state"] = self.breaker.state.value
        stats["failure_count"] = self.breaker.failure_count
        return stats

    def reset_circuit_breaker(self) -> None:
        """Close the breaker manually."""
        self.breaker.reset()
        logger.info("Circuit breaker manually reset")

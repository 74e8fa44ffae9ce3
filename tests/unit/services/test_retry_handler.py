"""
Unit tests for the read retry policy and circuit breaker.
"""

from unittest.mock import Mock, patch

import pytest
import requests.exceptions

from msp_billing.services.retry_handler import (
    BreakerState,
    CircuitBreaker,
    CircuitBreakerError,
    RetryExhaustedException,
    RetryHandler,
    retry_after_seconds,
)


def http_error(status: int, headers=None) -> requests.exceptions.HTTPError:
    return requests.exceptions.HTTPError(
        f"{status} Error", response=Mock(status_code=status, headers=headers or {})
    )


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRetryHandler:
    """Test cases for RetryHandler."""

    @pytest.fixture
    def retry_handler(self):
        """RetryHandler instance with test configuration."""
        return RetryHandler(
            max_retries=3,
            base_delay=0.1,  # Short delay for testing
            max_delay=1.0,
            circuit_breaker_threshold=5,
            circuit_breaker_timeout=2.0,
        )

    def test_initialization_with_defaults(self):
        """Test retry handler initializes with default values."""
        handler = RetryHandler()

        assert handler.max_retries == 3
        assert handler.base_delay == 1.0
        assert handler.max_delay == 60.0
        assert handler.exponential_base == 2
        assert handler.jitter_factor == 0.1
        assert handler.circuit_breaker_threshold == 10
        assert handler.circuit_breaker_timeout == 60.0

    def test_successful_execution_no_retry(self, retry_handler):
        """Test successful execution without retries."""
        mock_func = Mock(return_value="success")

        result = retry_handler.execute_with_retry(mock_func, "GET", "/Invoice/1")

        assert result == "success"
        mock_func.assert_called_once_with("GET", "/Invoice/1")

    def test_retry_on_server_error(self, retry_handler):
        """Test retry behavior on server (5xx) errors."""
        mock_func = Mock(side_effect=[http_error(503), http_error(502), "success"])

        with patch("time.sleep") as mock_sleep:
            result = retry_handler.execute_with_retry(mock_func)

        assert result == "success"
        assert mock_func.call_count == 3
        assert mock_sleep.call_count == 2

    def test_retry_on_network_error(self, retry_handler):
        """Test retry behavior on connection failures."""
        mock_func = Mock(
            side_effect=[requests.exceptions.ConnectionError("reset"), "success"]
        )

        with patch("time.sleep") as mock_sleep:
            assert retry_handler.execute_with_retry(mock_func) == "success"

        assert mock_sleep.call_count == 1

    def test_retry_after_header_is_honored(self, retry_handler):
        """A 429 answer's Retry-After decides the wait, capped at max_delay."""
        mock_func = Mock(
            side_effect=[
                http_error(429, {"Retry-After": "0.5"}),
                http_error(429, {"Retry-After": "30"}),
                "success",
            ]
        )

        with patch("time.sleep") as mock_sleep:
            retry_handler.execute_with_retry(mock_func)

        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    def test_no_retry_on_client_error(self, retry_handler):
        """Test no retry on client (4xx) errors except 429."""
        error = http_error(404)
        mock_func = Mock(side_effect=error)

        with patch("time.sleep") as mock_sleep:
            with pytest.raises(requests.exceptions.HTTPError) as exc_info:
                retry_handler.execute_with_retry(mock_func)

        assert exc_info.value is error
        mock_func.assert_called_once()
        mock_sleep.assert_not_called()

    def test_retry_exhausted(self, retry_handler):
        """Test RetryExhaustedException after all attempts fail."""
        error = http_error(503)
        mock_func = Mock(side_effect=error)

        with patch("time.sleep"):
            with pytest.raises(RetryExhaustedException) as exc_info:
                retry_handler.execute_with_retry(mock_func)

        assert mock_func.call_count == 4  # Initial + 3 retries
        assert exc_info.value.last_exception is error
        assert "Max retries (3) exceeded" in str(exc_info.value)

    def test_exponential_backoff_delays(self):
        """Test delays grow exponentially and are capped by max_delay."""
        handler = RetryHandler(base_delay=1.0, max_delay=5.0, jitter_factor=0.0)

        assert [handler.backoff_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_bounds(self):
        """Test jitter never moves the delay more than jitter_factor."""
        handler = RetryHandler(base_delay=1.0, jitter_factor=0.1)

        for _ in range(50):
            assert 0.9 <= handler.backoff_delay(0) <= 1.1

    def test_circuit_breaker_opens_after_threshold(self):
        """Test the breaker opens after consecutive exhausted operations."""
        handler = RetryHandler(max_retries=0, circuit_breaker_threshold=2)
        mock_func = Mock(side_effect=http_error(503))

        for _ in range(2):
            with pytest.raises(RetryExhaustedException):
                handler.execute_with_retry(mock_func)

        with pytest.raises(CircuitBreakerError):
            handler.execute_with_retry(mock_func)

        assert mock_func.call_count == 2
        stats = handler.get_retry_statistics()
        assert stats["circuit_breaker_state"] == "open"
        assert stats["rejected_calls"] == 1

    def test_circuit_breaker_half_open_after_timeout(self):
        """Test one probe goes through once the timeout has passed."""
        clock = FakeClock()
        handler = RetryHandler(
            max_retries=0,
            circuit_breaker_threshold=1,
            circuit_breaker_timeout=10.0,
            clock=clock,
        )

        with pytest.raises(RetryExhaustedException):
            handler.execute_with_retry(Mock(side_effect=http_error(503)))

        clock.now += 11
        assert handler.execute_with_retry(Mock(return_value="ok")) == "ok"
        assert handler.get_retry_statistics()["circuit_breaker_state"] == "closed"

    def test_reset_circuit_breaker(self):
        """Test manual circuit breaker reset."""
        handler = RetryHandler(max_retries=0, circuit_breaker_threshold=1)

        with pytest.raises(RetryExhaustedException):
            handler.execute_with_retry(Mock(side_effect=http_error(503)))

        handler.reset_circuit_breaker()

        assert handler.execute_with_retry(Mock(return_value="ok")) == "ok"

    def test_custom_retry_condition(self):
        """Test a custom retry condition overrides the classifier."""
        handler = RetryHandler(
            max_retries=2, retry_condition=lambda e: isinstance(e, RuntimeError)
        )
        mock_func = Mock(side_effect=[RuntimeError("flaky"), "success"])

        with patch("time.sleep"):
            assert handler.execute_with_retry(mock_func) == "success"

    def test_retry_statistics(self, retry_handler):
        """Test retry statistics tracking."""
        mock_func = Mock(side_effect=[http_error(500), "success"])

        with patch("time.sleep"):
            retry_handler.execute_with_retry(mock_func)

        stats = retry_handler.get_retry_statistics()
        assert stats["total_calls"] == 1
        assert stats["total_retries"] == 1
        assert stats["total_failures"] == 0


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    def test_failed_probe_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, reset_timeout=5.0, clock=clock)

        breaker.failed()
        assert not breaker.allow()

        clock.now += 5
        assert breaker.allow()
        assert breaker.state == BreakerState.HALF_OPEN
        assert not breaker.allow()

        breaker.failed()
        assert breaker.state == BreakerState.OPEN
        assert not breaker.allow()


class TestRetryAfterSeconds:
    """Test Retry-After parsing."""

    def test_numeric_header(self):
        assert retry_after_seconds(http_error(429, {"Retry-After": "3"})) == 3.0

    def test_missing_or_unparseable(self):
        assert retry_after_seconds(http_error(429)) is None
        assert retry_after_seconds(http_error(429, {"Retry-After": "soon"})) is None

    def test_only_for_rate_limits(self):
        assert retry_after_seconds(http_error(503, {"Retry-After": "3"})) is None
        assert retry_after_seconds(ValueError("x")) is None

"""
Verdicts on accounting-system failures.

Two questions matter after a failed call: may it be retried, and may the
accounting system have acted on the request anyway? The second decides
whether an invoice creation can safely be repeated.
"""

import logging
import socket
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import requests.exceptions

logger = logging.getLogger(__name__)

# Malformed bodies from a 2xx answer
_PARSE_ERRORS = (ValueError, KeyError, TypeError)


class ErrorType(Enum):
    RETRYABLE = "retryable"  # 429, 5xx, network failures
    FATAL = "fatal"  # other 4xx, malformed responses
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorVerdict:
    """
    Assessment of one failure.

    Attributes:
        error_type: Retry classification
        outcome_unknown: The request may have been processed remotely
        description: Short human-readable summary
        status_code: HTTP status of the answer, if there was one
    """

    error_type: ErrorType
    outcome_unknown: bool
    description: str
    status_code: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return self.error_type == ErrorType.RETRYABLE


def get_status_code(exception: Exception) -> Optional[int]:
    """HTTP status code carried by a requests exception, if any."""
    response = getattr(exception, "response", None)
    if response is None:
        return None
    return getattr(response, "status_code", None)


def _assess_http(status: int) -> ErrorVerdict:
    if status == 429:
        return ErrorVerdict(
            ErrorType.RETRYABLE, False, f"Rate limit error (HTTP {status})", status
        )
    if status >= 500:
        return ErrorVerdict(
            ErrorType.RETRYABLE, False, f"Server error (HTTP {status})", status
        )
    if status >= 400:
        return ErrorVerdict(ErrorType.FATAL, False, f"Client error (HTTP {status})", status)
    return ErrorVerdict(ErrorType.UNKNOWN, False, f"Unexpected HTTP {status}", status)


def _assess(exception: Exception) -> ErrorVerdict:
    status = get_status_code(exception)
    if isinstance(exception, requests.exceptions.HTTPError) and status:
        return _assess_http(status)

    # Nothing was sent, so nothing can have been created
    if isinstance(exception, requests.exceptions.ConnectTimeout):
        return ErrorVerdict(ErrorType.RETRYABLE, False, "Network timeout error (connect)")
    if isinstance(exception, (socket.timeout, requests.exceptions.Timeout)):
        return ErrorVerdict(ErrorType.RETRYABLE, True, "Network timeout error")
    if isinstance(exception, requests.exceptions.ConnectionError):
        return ErrorVerdict(ErrorType.RETRYABLE, True, "Network connection error")

    if isinstance(exception, _PARSE_ERRORS):
        return ErrorVerdict(
            ErrorType.FATAL,
            True,
            f"Unusable response ({type(exception).__name__}: {exception})",
        )
    return ErrorVerdict(
        ErrorType.UNKNOWN, False, f"{type(exception).__name__}: {exception}"
    )


class ErrorClassifier:
    """
    Assesses exceptions raised while talking to the accounting system and
    counts the verdicts.

    Example:
        >>> verdict = ErrorClassifier().assess(requests.exceptions.ReadTimeout())
        >>> verdict.retryable, verdict.outcome_unknown
        (True, True)
    """

    def __init__(self):
        self._stats: Counter = Counter()

    def assess(self, exception: Exception) -> ErrorVerdict:
        """Classify an exception and count the verdict."""
        verdict = _assess(exception)
        self._stats[verdict.error_type.value] += 1
        self._stats["total"] += 1
        logger.debug(f"{type(exception).__name__} classified as {verdict.error_type.value}")
        return verdict

    def classify(self, exception: Exception) -> ErrorType:
        return self.assess(exception).error_type

    def is_retryable(self, exception: Exception) -> bool:
        return self.assess(exception).retryable

    def is_outcome_unknown(self, exception: Exception) -> bool:
        """
        Whether the failed request may still have been processed.

        True for read timeouts, dropped connections and unreadable success
        responses. False when the request never left (connect timeout) or
        the server answered with an error status.
        """
        return self.assess(exception).outcome_unknown

    def get_error_description(self, exception: Exception) -> str:
        verdict = self.assess(exception)
        return f"{verdict.description} - {verdict.error_type.value}"

    def get_statistics(self) -> Dict[str, int]:
        """Verdict counts: retryable, fatal, unknown and total."""
        return {
            name: self._stats[name] for name in ("retryable", "fatal", "unknown", "total")
        }

    def reset_statistics(self) -> None:
        self._stats.clear()

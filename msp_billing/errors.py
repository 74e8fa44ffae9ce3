"""Failure taxonomy of the billing reconciliation engine.

Every failure the engine reports derives from BillingError and tells the
caller whether retrying can help (``retryable``) and what the operator
should do next (``recovery_hint``). Nothing inside the engine retries on its
own; retry policy belongs to the caller.
"""

from typing import Iterable, List, Optional


class BillingError(Exception):
    """Base class for all billing engine errors."""

    retryable = False
    default_hint: Optional[str] = None

    def __init__(self, message: str, recovery_hint: Optional[str] = None):
        self.message = message
        self.recovery_hint = recovery_hint or self.default_hint
        super().__init__(message)


class InvalidRange(BillingError):
    """Period start is after period end."""

    default_hint = "Choose a period whose start date is on or before its end date"


class CustomerNotFound(BillingError):
    """The customer id is unknown to the customer directory."""


class NotLinked(BillingError):
    """The customer cannot be invoiced automatically.

    Raised when the customer has no accounting-system link or no hourly rate.
    """

    default_hint = (
        "Link the customer to an accounting contact and configure an hourly "
        "rate, or record a manual export instead"
    )


class NotConfigured(BillingError):
    """The accounting system is not configured (no API token)."""

    default_hint = "Set ACCOUNTING_API_TOKEN in the environment or .env file"


class NoEntriesSelected(BillingError):
    """The selection matched no unbilled entry of the customer in the period."""

    default_hint = "Refresh the billing summary and select unbilled entries"


class AlreadyBilled(BillingError):
    """At least one targeted entry was billed by a concurrent write.

    Also raised when an entry id does not belong to the group's customer or
    no longer exists; in every case no state was changed.

    Attributes:
        entry_ids: Entry ids that failed the unbilled/ownership check
    """

    default_hint = "Re-run the billing summary; the entries may already be billed"

    def __init__(
        self,
        message: str,
        entry_ids: Iterable[str] = (),
        recovery_hint: Optional[str] = None,
    ):
        self.entry_ids: List[str] = sorted(entry_ids)
        super().__init__(message, recovery_hint)


class ExternalServiceError(BillingError):
    """The accounting system call failed.

    No local state was changed. ``retryable`` reflects the error classifier's
    verdict. ``outcome_unknown`` is set when the request may have been
    processed by the accounting system (e.g. the response timed out); check
    the accounting system before creating the invoice again.

    Attributes:
        status_code: HTTP status of the failed response, if any
    """

    default_hint = "Check the accounting system connection and retry"

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        outcome_unknown: bool = False,
        status_code: Optional[int] = None,
        recovery_hint: Optional[str] = None,
    ):
        self.retryable = retryable
        self.outcome_unknown = outcome_unknown
        self.status_code = status_code
        super().__init__(message, recovery_hint)


class PersistenceError(BillingError):
    """A local write failed and was rolled back.

    When raised after the accounting system already created an invoice,
    ``invoice_id`` and ``invoice_number`` identify it; retry with
    ``ReconciliationCoordinator.complete_invoice_record`` to record it.
    """

    retryable = True
    default_hint = "Retry the operation; the write is idempotent"

    def __init__(
        self,
        message: str,
        invoice_id: Optional[str] = None,
        invoice_number: Optional[str] = None,
        recovery_hint: Optional[str] = None,
    ):
        self.invoice_id = invoice_id
        self.invoice_number = invoice_number
        super().__init__(message, recovery_hint)


class EntryLocked(BillingError):
    """Attempt to change the duration or customer of a billed entry."""

"""Reconciliation coordinator and its failure taxonomy."""

from msp_billing.reconciliation.coordinator import (
    InvoiceResult,
    ReconciliationCoordinator,
    StatusRefreshResult,
)
from msp_billing.errors import (
    AlreadyBilled,
    BillingError,
    CustomerNotFound,
    EntryLocked,
    ExternalServiceError,
    InvalidRange,
    NoEntriesSelected,
    NotConfigured,
    NotLinked,
    PersistenceError,
)

__all__ = [
    "ReconciliationCoordinator",
    "InvoiceResult",
    "StatusRefreshResult",
    "BillingError",
    "InvalidRange",
    "CustomerNotFound",
    "NotLinked",
    "NotConfigured",
    "NoEntriesSelected",
    "AlreadyBilled",
    "ExternalServiceError",
    "PersistenceError",
    "EntryLocked",
]

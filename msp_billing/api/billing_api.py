"""
Presentation-facing billing API.

Takes ISO date strings and plain ids, returns camelCase dicts ready to be
serialized as JSON. Selection of customers and entries is the caller's
business: entry_ids narrows a group to a subset of its unbilled entries.
"""

import datetime as dt
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Union

from msp_billing.aggregators.billing_aggregator import BillingAggregator
from msp_billing.api.schemas import (
    BillingGroupPayload,
    ContactPayload,
    CustomerPayload,
    ExportRecordPayload,
    InvoiceCreatedPayload,
)
from msp_billing.calculators.billing_calculator import CENT
from msp_billing.config.settings import BillingSystemConfig
from msp_billing.db.engine import create_db_engine, create_session_factory
from msp_billing.errors import InvalidRange, NotConfigured
from msp_billing.ledger.export_ledger import ExportLedger
from msp_billing.reconciliation.coordinator import ReconciliationCoordinator
from msp_billing.services.accounting_client import AccountingSystem, SevdeskClient
from msp_billing.stores.customer_directory import CustomerDirectory
from msp_billing.stores.entry_store import EntryStore

logger = logging.getLogger(__name__)

DateInput = Union[str, dt.date]


def parse_iso_date(value: DateInput, field_name: str = "date") -> dt.date:
    """
    Parse an ISO calendar date (YYYY-MM-DD).

    Args:
        value: Date string or date
        field_name: Name used in the error message

    Returns:
        Parsed date

    Raises:
        InvalidRange: If the value is not an ISO calendar date
    """
    if isinstance(value, dt.datetime):
        raise InvalidRange(f"{field_name} must be a calendar date without time")
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise InvalidRange(
            f"Invalid {field_name} {value!r}; expected YYYY-MM-DD",
            recovery_hint="Use ISO calendar dates such as 2024-10-31",
        )


def _as_decimal(value: Union[float, str, Decimal]) -> Optional[Decimal]:
    try:
        return Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, ValueError):
        return None


class BillingApi:
    """
    Read/write surface consumed by the presentation layer.

    Example:
        >>> api = create_billing_api(get_config())
        >>> api.summary("2024-10-01", "2024-10-31")[0]["eligibility"]
        'auto-invoiceable'
    """

    def __init__(
        self,
        coordinator: ReconciliationCoordinator,
        exports_default_limit: int = 50,
    ):
        self.coordinator = coordinator
        self.exports_default_limit = exports_default_limit

    @property
    def aggregator(self) -> BillingAggregator:
        return self.coordinator.aggregator

    @property
    def ledger(self) -> ExportLedger:
        return self.coordinator.ledger

    def summary(self, period_start: DateInput, period_end: DateInput) -> List[Dict[str, Any]]:
        """Billing groups of the period, ordered by customer name."""
        start = parse_iso_date(period_start, "period start")
        end = parse_iso_date(period_end, "period end")
        groups = self.aggregator.aggregate(start, end)
        return [BillingGroupPayload.from_group(group).to_dict() for group in groups]

    def create_invoice(
        self,
        customer_id: str,
        entry_ids: Optional[Iterable[str]],
        period_start: DateInput,
        period_end: DateInput,
    ) -> Dict[str, Any]:
        """
        Create an invoice for a customer's selected entries.

        Returns:
            {exportId, invoiceId, invoiceNumber, totalHours, totalAmount}
        """
        start = parse_iso_date(period_start, "period start")
        end = parse_iso_date(period_end, "period end")
        result = self.coordinator.create_invoice(customer_id, start, end, entry_ids)
        return InvoiceCreatedPayload.from_result(result).to_dict()

    def record_export(
        self,
        customer_id: str,
        entry_ids: Optional[Iterable[str]],
        period_start: DateInput,
        period_end: DateInput,
        total_hours: Optional[Union[float, str, Decimal]] = None,
        total_amount: Optional[Union[float, str, Decimal]] = None,
    ) -> Dict[str, Any]:
        """
        Mark a customer's selected entries as billed without an invoice.

        total_hours and total_amount are what the caller displayed. The
        record always carries the totals computed from the stored entries;
        a difference is only logged.

        Returns:
            ExportRecord payload
        """
        start = parse_iso_date(period_start, "period start")
        end = parse_iso_date(period_end, "period end")
        record = self.coordinator.record_manual_export(customer_id, start, end, entry_ids)

        if total_hours is not None and _as_decimal(total_hours) != record.total_hours:
            logger.warning(
                f"Export {record.id}: caller total hours {total_hours} differ "
                f"from recorded {record.total_hours}"
            )
        if total_amount is not None and _as_decimal(total_amount) != record.total_amount:
            logger.warning(
                f"Export {record.id}: caller total amount {total_amount} differs "
                f"from recorded {record.total_amount}"
            )
        return ExportRecordPayload.from_record(record).to_dict()

    def complete_invoice_record(
        self,
        customer_id: str,
        entry_ids: Optional[Iterable[str]],
        period_start: DateInput,
        period_end: DateInput,
        invoice_id: str,
        invoice_number: str,
    ) -> Dict[str, Any]:
        """
        Record an invoice that exists in the accounting system but not locally.

        entry_ids None means all unbilled entries of the customer in the
        period. Safe to repeat: an invoice id that is already recorded returns
        the existing record.

        Returns:
            ExportRecord payload
        """
        start = parse_iso_date(period_start, "period start")
        end = parse_iso_date(period_end, "period end")
        record = self.coordinator.complete_invoice_record(
            customer_id, start, end, entry_ids, invoice_id, invoice_number
        )
        return ExportRecordPayload.from_record(record).to_dict()

    def exports(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Newest export records first."""
        records = self.ledger.list_recent(
            limit if limit is not None else self.exports_default_limit
        )
        return [ExportRecordPayload.from_record(record).to_dict() for record in records]

    def link_customer(self, customer_id: str, external_id: Optional[str]) -> Dict[str, Any]:
        """Link a customer to an accounting contact (None unlinks)."""
        profile = self.aggregator.customer_directory.link_customer(customer_id, external_id)
        return CustomerPayload.from_profile(profile).to_dict()

    def _accounting(self) -> AccountingSystem:
        if self.coordinator.accounting is None:
            raise NotConfigured("No accounting system is configured")
        return self.coordinator.accounting

    def contacts(self) -> List[Dict[str, Any]]:
        """Accounting-system contacts a customer can be linked to."""
        return [
            ContactPayload.from_contact(contact).to_dict()
            for contact in self._accounting().list_contacts()
        ]

    def test_connection(self) -> Dict[str, Any]:
        """Check the accounting credentials.

        Returns:
            {connected: True, accountName}

        Raises:
            NotConfigured: If no API token is configured
            ExternalServiceError: If the accounting system rejects the call
        """
        account_name = self._accounting().test_connection()
        logger.info(f"Accounting connection OK: {account_name}")
        return {"connected": True, "accountName": account_name}


def create_coordinator(
    config: BillingSystemConfig, session_factory=None
) -> ReconciliationCoordinator:
    """
    Wire stores, ledger and accounting client from configuration.

    Args:
        config: Loaded settings
        session_factory: Reuse an existing session factory (a new engine if None)

    Returns:
        ReconciliationCoordinator; its accounting client is None when no
        API token is configured
    """
    if session_factory is None:
        engine = create_db_engine(config.database_url, echo=config.database_echo)
        session_factory = create_session_factory(engine)

    entry_store = EntryStore(session_factory)
    directory = CustomerDirectory(
        session_factory, default_hourly_rate=config.default_hourly_rate
    )
    accounting = (
        SevdeskClient.from_config(config) if config.accounting_configured else None
    )
    if accounting is None:
        logger.info("No accounting API token configured; automated invoicing disabled")

    return ReconciliationCoordinator(
        aggregator=BillingAggregator(entry_store, directory),
        ledger=ExportLedger(session_factory, entry_store),
        accounting=accounting,
        line_item_mode=config.line_item_mode,
    )


def create_billing_api(config: BillingSystemConfig, session_factory=None) -> BillingApi:
    """Build a BillingApi from configuration."""
    return BillingApi(
        create_coordinator(config, session_factory),
        exports_default_limit=config.exports_default_limit,
    )

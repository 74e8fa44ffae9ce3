"""Reconciliation Coordinator: bills customer groups exactly once.

Both operations take a (customer, period) selector that is resolved against
a fresh aggregation, optionally narrowed to a subset of entry ids chosen by
the caller. Correctness does not depend on that read: the Export Ledger
re-checks every entry at write time.

create_invoice talks to the accounting system first and records locally
second. A failure before the invoice exists changes nothing; a failure after
it exists is reported as PersistenceError carrying the invoice id, and
complete_invoice_record finishes the job idempotently.
"""

import contextvars
import datetime as dt
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from msp_billing.aggregators.billing_aggregator import (
    BillingAggregator,
    build_group,
    validate_period,
)
from msp_billing.calculators.billing_calculator import LineItemMode, build_line_items
from msp_billing.errors import (
    AlreadyBilled,
    BillingError,
    ExternalServiceError,
    NoEntriesSelected,
    NotConfigured,
    NotLinked,
    PersistenceError,
)
from msp_billing.ledger.export_ledger import ExportLedger
from msp_billing.models.billing import BillingGroup
from msp_billing.models.export import CreatedInvoice, ExportRecord
from msp_billing.services.accounting_client import AccountingSystem
from msp_billing.utils.logging_utils import billing_operation_context

logger = logging.getLogger(__name__)


@dataclass
class InvoiceResult:
    """Outcome of a successful invoice creation.

    Attributes:
        record: Export record written for the invoice
        invoice: Identifiers returned by the accounting system
    """

    record: ExportRecord
    invoice: CreatedInvoice

    @property
    def invoice_number(self) -> str:
        return self.invoice.invoice_number


@dataclass
class StatusRefreshResult:
    """Counts of a status refresh run.

    Attributes:
        refreshed: Records whose status changed
        unchanged: Records whose status is current or unknown externally
        failed: Records the accounting system could not report on
        failures: Error message per failed record id
    """

    refreshed: int = 0
    unchanged: int = 0
    failed: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.refreshed + self.unchanged + self.failed


def complete_invoice_command(group: BillingGroup, created: CreatedInvoice) -> str:
    """CLI invocation that records an already created invoice for group."""
    entries = " ".join(f"--entry {entry_id}" for entry_id in group.entry_ids)
    return (
        f"billing-cli complete-invoice --customer {group.customer_id} "
        f"--start-date {group.period_start} --end-date {group.period_end} "
        f"--invoice-id {created.invoice_id} "
        f"--invoice-number {created.invoice_number} {entries}"
    )


class ReconciliationCoordinator:
    """Orchestrates invoice creation and manual exports.

    Attributes:
        aggregator: Source of the current billing groups
        ledger: Export Ledger, the only writer of billed flags
        accounting: Accounting system client, None when not configured
        line_item_mode: "per_entry" or "aggregated" invoice positions

    Example:
        >>> coordinator = ReconciliationCoordinator(aggregator, ledger, client)
        >>> result = coordinator.create_invoice("cust-1", start, end)
        >>> result.invoice_number
        'RE-1001'
    """

    def __init__(
        self,
        aggregator: BillingAggregator,
        ledger: ExportLedger,
        accounting: Optional[AccountingSystem] = None,
        line_item_mode: LineItemMode = "per_entry",
    ):
        self.aggregator = aggregator
        self.ledger = ledger
        self.accounting = accounting
        self.line_item_mode = line_item_mode

    def resolve_group(
        self,
        customer_id: str,
        period_start: dt.date,
        period_end: dt.date,
        entry_ids: Optional[Iterable[str]] = None,
    ) -> BillingGroup:
        """Resolve a selector against the current unbilled entries.

        Args:
            customer_id: Customer to bill
            period_start: First day of the period
            period_end: Last day of the period
            entry_ids: Restrict the group to these entries (all if None)

        Returns:
            BillingGroup holding the selected unbilled entries

        Raises:
            InvalidRange: If period_start is after period_end
            CustomerNotFound: If the customer is unknown
            NoEntriesSelected: If nothing unbilled matches the selection
            AlreadyBilled: If some selected entries are no longer unbilled
                in the period
        """
        validate_period(period_start, period_end)
        profile = self.aggregator.customer_directory.resolve(customer_id)

        group = self.aggregator.aggregate_customer(customer_id, period_start, period_end)
        if group is None:
            raise NoEntriesSelected(
                f"Customer {customer_id} has no unbilled entries between "
                f"{period_start} and {period_end}"
            )
        if entry_ids is None:
            return group

        wanted = list(dict.fromkeys(entry_ids))
        if not wanted:
            raise NoEntriesSelected(f"No entries selected for customer {customer_id}")

        available = set(group.entry_ids)
        wanted_set = set(wanted)
        selected = [entry for entry in group.entries if entry.id in wanted_set]
        if not selected:
            raise NoEntriesSelected(
                f"None of the {len(wanted)} selected entries is unbilled for "
                f"customer {customer_id} between {period_start} and {period_end}"
            )
        missing = [entry_id for entry_id in wanted if entry_id not in available]
        if missing:
            raise AlreadyBilled(
                f"{len(missing)} selected entries are billed, outside the period "
                f"or not owned by customer {customer_id}",
                entry_ids=missing,
            )

        return build_group(profile, selected, period_start, period_end)

    def create_invoice(
        self,
        customer_id: str,
        period_start: dt.date,
        period_end: dt.date,
        entry_ids: Optional[Iterable[str]] = None,
    ) -> InvoiceResult:
        """Create an invoice in the accounting system and record it.

        Args:
            customer_id: Customer to invoice
            period_start: First day of the period
            period_end: Last day of the period
            entry_ids: Restrict the invoice to these entries (all if None)

        Returns:
            InvoiceResult with the export record and invoice identifiers

        Raises:
            NotLinked: If the group is not auto-invoiceable
            NotConfigured: If no accounting system is configured
            ExternalServiceError: If the accounting system call fails; no
                local state was changed
            PersistenceError: If the invoice was created but could not be
                recorded; carries invoice_id and invoice_number
            InvalidRange, CustomerNotFound, NoEntriesSelected, AlreadyBilled:
                As for resolve_group
        """
        with billing_operation_context(
            "create_invoice", customer_id, period_start, period_end
        ):
            group = self.resolve_group(customer_id, period_start, period_end, entry_ids)

            if not group.is_auto_invoiceable:
                missing = []
                if group.external_link is None:
                    missing.append("accounting link")
                if group.hourly_rate is None:
                    missing.append("hourly rate")
                raise NotLinked(
                    f"Customer {group.customer_name} has no {' and no '.join(missing)}"
                )
            if self.accounting is None:
                raise NotConfigured("No accounting system is configured")

            line_items = build_line_items(
                group.entries, group.hourly_rate, mode=self.line_item_mode
            )

            try:
                created = self.accounting.create_invoice(
                    group.external_link, line_items, period_start, period_end
                )
            except ExternalServiceError as e:
                logger.warning(
                    f"Invoice creation failed for customer {customer_id}; "
                    f"nothing recorded: {e}"
                )
                raise

            record = self._record_invoice(group, created)
            logger.info(
                f"Invoiced {len(record.entry_ids)} entries of customer "
                f"{customer_id} as {created.invoice_number}"
            )
            return InvoiceResult(record=record, invoice=created)

    def _record_invoice(self, group: BillingGroup, created: CreatedInvoice) -> ExportRecord:
        # The write runs on a worker thread so an interrupt of the caller
        # cannot abandon it halfway; the interrupt is re-raised once it ends.
        # The copied context keeps the operation's log fields on its records.
        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(
                contextvars.copy_context().run,
                self.ledger.record,
                group,
                group.entry_ids,
                created.invoice_id,
                created.invoice_number,
            )
            try:
                try:
                    return future.result()
                except KeyboardInterrupt:
                    logger.warning(
                        f"Interrupted after invoice {created.invoice_number} was "
                        f"created; finishing the local record first"
                    )
                    future.result()
                    raise
            except AlreadyBilled as e:
                logger.error(
                    f"Invoice {created.invoice_number} (id {created.invoice_id}) was "
                    f"created but its entries were billed concurrently: {e}"
                )
                error = PersistenceError(
                    f"Invoice {created.invoice_number} was created but its entries "
                    f"were billed by another export",
                    invoice_id=created.invoice_id,
                    invoice_number=created.invoice_number,
                    recovery_hint=(
                        f"Cancel invoice {created.invoice_number} in the accounting "
                        f"system; the entries are already billed"
                    ),
                )
                error.retryable = False
                raise error from e
            except BillingError as e:
                logger.error(
                    f"Invoice {created.invoice_number} (id {created.invoice_id}) was "
                    f"created but could not be recorded: {e}"
                )
                raise PersistenceError(
                    f"Invoice {created.invoice_number} was created but could not "
                    f"be recorded locally",
                    invoice_id=created.invoice_id,
                    invoice_number=created.invoice_number,
                    recovery_hint=f"Run {complete_invoice_command(group, created)}",
                ) from e

    def complete_invoice_record(
        self,
        customer_id: str,
        period_start: dt.date,
        period_end: dt.date,
        entry_ids: Optional[Iterable[str]],
        invoice_id: str,
        invoice_number: str,
    ) -> ExportRecord:
        """Record an invoice that already exists in the accounting system.

        Idempotent on invoice_id: when the invoice is already recorded the
        existing record is returned and nothing is written.

        entry_ids None records all unbilled entries of the customer in the
        period, as create_invoice does.

        Raises:
            AlreadyBilled: If the entries were billed by another export
            PersistenceError: If the write fails again
        """
        with billing_operation_context(
            "complete_invoice_record", customer_id, period_start, period_end
        ):
            existing = self.ledger.find_by_invoice_id(invoice_id)
            if existing is not None:
                logger.info(
                    f"Invoice {invoice_number} is already recorded as export "
                    f"{existing.id}"
                )
                return existing

            group = self.resolve_group(customer_id, period_start, period_end, entry_ids)
            return self.ledger.record(
                group, group.entry_ids, invoice_id=invoice_id, invoice_number=invoice_number
            )

    def record_manual_export(
        self,
        customer_id: str,
        period_start: dt.date,
        period_end: dt.date,
        entry_ids: Optional[Iterable[str]] = None,
    ) -> ExportRecord:
        """Mark a group as billed without an invoice.

        Allowed for any eligibility.

        Raises:
            InvalidRange, CustomerNotFound, NoEntriesSelected, AlreadyBilled:
                As for resolve_group
            PersistenceError: If the write fails
        """
        with billing_operation_context(
            "record_manual_export", customer_id, period_start, period_end
        ):
            group = self.resolve_group(customer_id, period_start, period_end, entry_ids)
            if group.is_auto_invoiceable:
                logger.info(
                    f"Recording manual export for auto-invoiceable customer "
                    f"{customer_id}"
                )
            return self.ledger.record(group, group.entry_ids)

    def refresh_statuses(self, limit: int = 50) -> StatusRefreshResult:
        """Pull the accounting-system status of open invoices.

        Only the status of invoice-backed records that are not paid yet is
        updated. A failure for one record is logged and counted; it does
        not stop the others.

        Args:
            limit: Maximum number of records to check, newest first

        Returns:
            StatusRefreshResult with refreshed/unchanged/failed counts

        Raises:
            NotConfigured: If no accounting system is configured
            PersistenceError: If the ledger cannot be read or updated
        """
        if self.accounting is None:
            raise NotConfigured("No accounting system is configured")

        result = StatusRefreshResult()
        with billing_operation_context("refresh_statuses"):
            records: List[ExportRecord] = self.ledger.list_open_invoices(limit)
            for record in records:
                try:
                    status = self.accounting.get_invoice_status(record.invoice_id)
                except ExternalServiceError as e:
                    logger.warning(
                        f"Could not refresh status of invoice {record.invoice_number}: {e}"
                    )
                    result.failed += 1
                    result.failures[record.id] = str(e)
                    continue

                if status is None or status == record.status:
                    result.unchanged += 1
                    continue

                self.ledger.update_status(record.id, status)
                result.refreshed += 1

        logger.info(
            f"Status refresh: {result.refreshed} refreshed, {result.unchanged} "
            f"unchanged, {result.failed} failed"
        )
        return result

"""Export Ledger: the append-only record of billing events.

record() is the only write path that bills entries. In one transaction it
inserts the ExportRecord and flips the billed flag of every covered entry,
re-checking at write time that each entry is still unbilled and belongs to
the group's customer. Losing that check against a concurrent writer fails the
whole batch with AlreadyBilled and changes nothing.

For the automated path the accounting-system invoice id is the idempotency
key: recording an invoice id that is already in the ledger returns the
existing record instead of writing a second one.
"""

import datetime as dt
import logging
import threading
from typing import Callable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload, sessionmaker

from msp_billing.calculators.billing_calculator import (
    calculate_amount,
    seconds_to_hours,
)
from msp_billing.db.engine import session_scope, translate_db_errors
from msp_billing.db.tables import ExportRecordRow, TimeEntryRow, new_id
from msp_billing.errors import AlreadyBilled, NoEntriesSelected, PersistenceError
from msp_billing.models.billing import BillingGroup
from msp_billing.models.export import ExportRecord, ExportStatus
from msp_billing.stores.entry_store import EntryStore

logger = logging.getLogger(__name__)


def utcnow() -> dt.datetime:
    """Naive UTC timestamp, as stored in the database."""
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def to_export_record(row: ExportRecordRow) -> ExportRecord:
    """Convert a table row (with customer and entries loaded) into the model."""
    return ExportRecord(
        id=row.id,
        customer_id=row.customer_id,
        customer_name=row.customer.name if row.customer is not None else None,
        period_start=row.period_start,
        period_end=row.period_end,
        entry_ids=[entry.id for entry in row.entries],
        total_hours=row.total_hours,
        total_amount=row.total_amount,
        created_at=row.created_at,
        invoice_id=row.external_invoice_id,
        invoice_number=row.external_invoice_number,
        status=ExportStatus(row.status),
    )


def _with_relations(stmt):
    return stmt.options(
        selectinload(ExportRecordRow.customer), selectinload(ExportRecordRow.entries)
    )


class ExportLedger:
    """Durable, append-only billing records.

    Attributes:
        session_factory: SQLAlchemy session factory
        entry_store: Entry Store whose billed flags are flipped on record
        clock: Returns the creation timestamp for new records

    Example:
        >>> ledger = ExportLedger(session_factory, entry_store)
        >>> record = ledger.record(group, group.entry_ids)
        >>> record.status
        <ExportStatus.RECORDED: 'recorded'>
    """

    # Serializes ledger writes within the process; the conditional update in
    # EntryStore.mark_billed guards across processes.
    _write_lock = threading.Lock()

    def __init__(
        self,
        session_factory: sessionmaker,
        entry_store: EntryStore,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.entry_store = entry_store
        self.clock = clock

    def record(
        self,
        group: BillingGroup,
        entry_ids: Sequence[str],
        invoice_id: Optional[str] = None,
        invoice_number: Optional[str] = None,
    ) -> ExportRecord:
        """Bill entries of a group by writing an ExportRecord.

        Totals are computed from the entries as stored at write time, priced
        at the group's hourly rate.

        Args:
            group: Billing group the entries were selected from
            entry_ids: Entries to bill (a subset of the customer's unbilled entries)
            invoice_id: Accounting-system invoice id (automated path only)
            invoice_number: Accounting-system invoice number

        Returns:
            The new record, or the existing one if invoice_id was already recorded

        Raises:
            NoEntriesSelected: If entry_ids is empty
            AlreadyBilled: If any entry is billed, missing or of another customer
            PersistenceError: If the write fails
        """
        ids = list(dict.fromkeys(entry_ids))
        if not ids:
            raise NoEntriesSelected(
                f"No entries given to record for customer {group.customer_id}"
            )

        with self._write_lock:
            try:
                with translate_db_errors("record export"):
                    record = self._write(group, ids, invoice_id, invoice_number)
            except PersistenceError as e:
                # A concurrent writer in another process recorded the same invoice
                if invoice_id is not None and isinstance(e.__cause__, IntegrityError):
                    existing = self.find_by_invoice_id(invoice_id)
                    if existing is not None:
                        logger.info(
                            f"Invoice {invoice_id} was recorded concurrently as "
                            f"export {existing.id}"
                        )
                        return existing
                raise

        logger.info(
            f"Recorded export {record.id} for customer {record.customer_id}: "
            f"{len(record.entry_ids)} entries, {record.total_hours} h, "
            f"status {record.status.value}"
        )
        return record

    def _write(
        self,
        group: BillingGroup,
        ids: List[str],
        invoice_id: Optional[str],
        invoice_number: Optional[str],
    ) -> ExportRecord:
        with session_scope(self.session_factory) as session:
            if invoice_id is not None:
                existing = session.scalar(
                    _with_relations(select(ExportRecordRow)).where(
                        ExportRecordRow.external_invoice_id == invoice_id
                    )
                )
                if existing is not None:
                    self._log_replay(existing, ids)
                    return to_export_record(existing)

            rows = session.scalars(
                select(TimeEntryRow).where(TimeEntryRow.id.in_(ids))
            ).all()
            unavailable = {row.id for row in rows if row.billed}
            unavailable |= {
                row.id for row in rows if row.customer_id != group.customer_id
            }
            unavailable |= set(ids) - {row.id for row in rows}
            if unavailable:
                raise AlreadyBilled(
                    f"{len(unavailable)} of {len(ids)} entries are billed, unknown "
                    f"or not owned by customer {group.customer_id}",
                    entry_ids=unavailable,
                )

            total_seconds = sum(row.duration_seconds for row in rows)
            record_row = ExportRecordRow(
                id=new_id(),
                customer_id=group.customer_id,
                period_start=group.period_start,
                period_end=group.period_end,
                total_hours=seconds_to_hours(total_seconds),
                total_amount=calculate_amount(total_seconds, group.hourly_rate),
                created_at=self.clock(),
                external_invoice_id=invoice_id,
                external_invoice_number=invoice_number,
                status=(
                    ExportStatus.DRAFT.value
                    if invoice_id is not None
                    else ExportStatus.RECORDED.value
                ),
            )
            session.add(record_row)
            session.flush()

            self.entry_store.mark_billed(
                session, ids, record_row.id, customer_id=group.customer_id
            )
            session.flush()

            record_row = session.scalar(
                _with_relations(select(ExportRecordRow))
                .where(ExportRecordRow.id == record_row.id)
                .execution_options(populate_existing=True)
            )
            return to_export_record(record_row)

    def _log_replay(self, existing: ExportRecordRow, ids: List[str]) -> None:
        covered = {entry.id for entry in existing.entries}
        if covered != set(ids):
            logger.warning(
                f"Invoice {existing.external_invoice_id} is already recorded as "
                f"export {existing.id} covering a different entry set; "
                f"returning the existing record"
            )
        else:
            logger.info(
                f"Invoice {existing.external_invoice_id} already recorded as "
                f"export {existing.id}; nothing to do"
            )

    def list_recent(self, limit: int = 50) -> List[ExportRecord]:
        """Newest records first, at most limit of them.

        Raises:
            ValueError: If limit is not positive
        """
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        stmt = (
            _with_relations(select(ExportRecordRow))
            .order_by(ExportRecordRow.created_at.desc(), ExportRecordRow.id.desc())
            .limit(limit)
        )
        with translate_db_errors("list export records"):
            with session_scope(self.session_factory) as session:
                return [to_export_record(row) for row in session.scalars(stmt).all()]

    def list_open_invoices(self, limit: int = 50) -> List[ExportRecord]:
        """Newest invoice-backed records that are not paid yet."""
        stmt = (
            _with_relations(select(ExportRecordRow))
            .where(
                ExportRecordRow.external_invoice_id.is_not(None),
                ExportRecordRow.status != ExportStatus.PAID.value,
            )
            .order_by(ExportRecordRow.created_at.desc(), ExportRecordRow.id.desc())
            .limit(limit)
        )
        with translate_db_errors("list open invoices"):
            with session_scope(self.session_factory) as session:
                return [to_export_record(row) for row in session.scalars(stmt).all()]

    def get(self, record_id: str) -> Optional[ExportRecord]:
        """Fetch a record by id."""
        with translate_db_errors("read export record"):
            with session_scope(self.session_factory) as session:
                row = session.scalar(
                    _with_relations(select(ExportRecordRow)).where(
                        ExportRecordRow.id == record_id
                    )
                )
                return to_export_record(row) if row is not None else None

    def find_by_invoice_id(self, invoice_id: str) -> Optional[ExportRecord]:
        """Fetch the record of an accounting-system invoice, if recorded."""
        with translate_db_errors("read export record"):
            with session_scope(self.session_factory) as session:
                row = session.scalar(
                    _with_relations(select(ExportRecordRow)).where(
                        ExportRecordRow.external_invoice_id == invoice_id
                    )
                )
                return to_export_record(row) if row is not None else None

    def update_status(self, record_id: str, status: ExportStatus) -> ExportRecord:
        """Refresh the status of an invoice-backed record.

        This is the only mutation an ExportRecord allows.

        Raises:
            KeyError: If the record does not exist
            ValueError: If the record is a manual export or status is RECORDED
        """
        if status == ExportStatus.RECORDED:
            raise ValueError("Invoice-backed records cannot become 'recorded'")

        with translate_db_errors("update export status"):
            with session_scope(self.session_factory) as session:
                row = session.scalar(
                    _with_relations(select(ExportRecordRow)).where(
                        ExportRecordRow.id == record_id
                    )
                )
                if row is None:
                    raise KeyError(f"Export record not found: {record_id}")
                if row.external_invoice_id is None:
                    raise ValueError(
                        f"Export record {record_id} is a manual export; "
                        f"its status is fixed"
                    )
                if row.status != status.value:
                    logger.info(
                        f"Export {record_id} status {row.status} -> {status.value}"
                    )
                    row.status = status.value
                return to_export_record(row)

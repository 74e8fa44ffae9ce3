"""Entry Store backed by the time_entries table.

The store is the single source of truth for whether an entry is available
to be billed. Its only multi-row write, mark_billed(), flips the billed flag
of a whole id list or of none of them.
"""

import datetime as dt
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from msp_billing.db.engine import session_scope, translate_db_errors
from msp_billing.db.tables import TimeEntryRow, new_id
from msp_billing.errors import AlreadyBilled, EntryLocked
from msp_billing.models.entry import TimeEntry

logger = logging.getLogger(__name__)


def period_bounds(
    period_start: dt.date, period_end: dt.date
) -> Tuple[dt.datetime, dt.datetime]:
    """Convert an inclusive date range into a half-open datetime range.

    Example:
        >>> period_bounds(dt.date(2024, 10, 1), dt.date(2024, 10, 31))
        (datetime.datetime(2024, 10, 1, 0, 0), datetime.datetime(2024, 11, 1, 0, 0))
    """
    lower = dt.datetime.combine(period_start, dt.time.min)
    upper = dt.datetime.combine(period_end + dt.timedelta(days=1), dt.time.min)
    return lower, upper


def to_time_entry(row: TimeEntryRow) -> TimeEntry:
    """Convert a table row into the TimeEntry model."""
    return TimeEntry(
        id=row.id,
        customer_id=row.customer_id,
        duration_seconds=row.duration_seconds,
        occurred_at=row.occurred_at,
        description=row.description,
        ticket_number=row.ticket_number,
        ticket_title=row.ticket_title,
        project_name=row.project_name,
        billed=row.billed,
        export_record_id=row.export_record_id,
    )


class EntryStore:
    """Reads and writes time entries.

    Entries are created by the time-tracking side; the billing engine only
    reads unbilled entries and flips their billed flag.

    Attributes:
        session_factory: SQLAlchemy session factory

    Example:
        >>> store = EntryStore(session_factory)
        >>> entries = store.list_unbilled(dt.date(2024, 10, 1), dt.date(2024, 10, 31))
    """

    def __init__(self, session_factory: sessionmaker):
        """Initialize the entry store.

        Args:
            session_factory: SQLAlchemy session factory
        """
        self.session_factory = session_factory

    def add_entry(
        self,
        customer_id: str,
        duration_seconds: int,
        occurred_at: dt.datetime,
        description: Optional[str] = None,
        ticket_number: Optional[str] = None,
        ticket_title: Optional[str] = None,
        project_name: Optional[str] = None,
        entry_id: Optional[str] = None,
    ) -> TimeEntry:
        """Record a new, unbilled time entry.

        Returns:
            The stored entry

        Raises:
            pydantic.ValidationError: If the entry data is invalid
            PersistenceError: If the entry cannot be stored
        """
        entry = TimeEntry(
            id=entry_id or new_id(),
            customer_id=customer_id,
            duration_seconds=duration_seconds,
            occurred_at=occurred_at,
            description=description,
            ticket_number=ticket_number,
            ticket_title=ticket_title,
            project_name=project_name,
        )
        with translate_db_errors("add time entry"):
            with session_scope(self.session_factory) as session:
                session.add(
                    TimeEntryRow(
                        id=entry.id,
                        customer_id=entry.customer_id,
                        duration_seconds=entry.duration_seconds,
                        occurred_at=entry.occurred_at,
                        description=entry.description,
                        ticket_number=entry.ticket_number,
                        ticket_title=entry.ticket_title,
                        project_name=entry.project_name,
                        billed=False,
                    )
                )
        logger.debug(f"Added time entry {entry.id} for customer {customer_id}")
        return entry

    def update_entry(
        self,
        entry_id: str,
        duration_seconds: Optional[int] = None,
        customer_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TimeEntry:
        """Change an entry's duration, customer or description.

        Billed entries keep their duration and customer; only the
        description of a billed entry may change.

        Raises:
            KeyError: If the entry does not exist
            EntryLocked: If a billed entry's duration or customer would change
            ValueError: If duration_seconds is negative
        """
        if duration_seconds is not None and duration_seconds < 0:
            raise ValueError(f"duration_seconds must be >= 0, got {duration_seconds}")

        with translate_db_errors("update time entry"):
            with session_scope(self.session_factory) as session:
                row = session.get(TimeEntryRow, entry_id, with_for_update=True)
                if row is None:
                    raise KeyError(f"Time entry not found: {entry_id}")

                changes_billing = (
                    duration_seconds is not None
                    and duration_seconds != row.duration_seconds
                ) or (customer_id is not None and customer_id != row.customer_id)
                if row.billed and changes_billing:
                    raise EntryLocked(
                        f"Time entry {entry_id} is billed by export "
                        f"{row.export_record_id} and cannot change"
                    )

                if duration_seconds is not None:
                    row.duration_seconds = duration_seconds
                if customer_id is not None:
                    row.customer_id = customer_id
                if description is not None:
                    row.description = description
                session.flush()
                return to_time_entry(row)

    def get_entries(self, entry_ids: Iterable[str]) -> List[TimeEntry]:
        """Fetch entries by id, ordered by occurrence. Unknown ids are skipped."""
        ids = list(dict.fromkeys(entry_ids))
        if not ids:
            return []
        with translate_db_errors("read time entries"):
            with session_scope(self.session_factory) as session:
                rows = session.scalars(
                    select(TimeEntryRow)
                    .where(TimeEntryRow.id.in_(ids))
                    .order_by(TimeEntryRow.occurred_at, TimeEntryRow.id)
                ).all()
                return [to_time_entry(row) for row in rows]

    def list_unbilled(
        self,
        period_start: dt.date,
        period_end: dt.date,
        customer_id: Optional[str] = None,
    ) -> List[TimeEntry]:
        """List unbilled entries that occurred within an inclusive date range.

        Args:
            period_start: First day of the range
            period_end: Last day of the range
            customer_id: Restrict to one customer (optional)

        Returns:
            Entries ordered by customer, occurrence and id
        """
        lower, upper = period_bounds(period_start, period_end)
        stmt = select(TimeEntryRow).where(
            TimeEntryRow.billed.is_(False),
            TimeEntryRow.occurred_at >= lower,
            TimeEntryRow.occurred_at < upper,
        )
        if customer_id is not None:
            stmt = stmt.where(TimeEntryRow.customer_id == customer_id)
        stmt = stmt.order_by(
            TimeEntryRow.customer_id, TimeEntryRow.occurred_at, TimeEntryRow.id
        )

        with translate_db_errors("list unbilled time entries"):
            with session_scope(self.session_factory) as session:
                return [to_time_entry(row) for row in session.scalars(stmt).all()]

    def mark_billed(
        self,
        session: Session,
        entry_ids: Sequence[str],
        export_record_id: str,
        customer_id: Optional[str] = None,
    ) -> int:
        """Flip the billed flag of every listed entry inside the caller's transaction.

        The update only touches rows that are still unbilled (and belong to
        customer_id, when given). If fewer rows change than were requested,
        the batch is refused with AlreadyBilled and the caller's transaction
        must be rolled back.

        Args:
            session: Open session whose transaction also writes the export record
            entry_ids: Entries to mark
            export_record_id: Export record that bills them
            customer_id: Owning customer the entries must belong to

        Returns:
            Number of entries marked

        Raises:
            AlreadyBilled: If any entry is billed, foreign or missing
        """
        ids = list(dict.fromkeys(entry_ids))
        if not ids:
            return 0

        stmt = (
            update(TimeEntryRow)
            .where(TimeEntryRow.id.in_(ids), TimeEntryRow.billed.is_(False))
            .values(billed=True, export_record_id=export_record_id)
            .execution_options(synchronize_session=False)
        )
        if customer_id is not None:
            stmt = stmt.where(TimeEntryRow.customer_id == customer_id)

        marked = session.execute(stmt).rowcount
        if marked != len(ids):
            claimed = session.scalars(
                select(TimeEntryRow.id).where(
                    TimeEntryRow.id.in_(ids),
                    TimeEntryRow.export_record_id == export_record_id,
                )
            ).all()
            conflicting = set(ids) - set(claimed)
            raise AlreadyBilled(
                f"{len(conflicting)} of {len(ids)} entries are no longer "
                f"available for billing",
                entry_ids=conflicting,
            )
        return marked

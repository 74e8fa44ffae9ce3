"""
SQLAlchemy tables backing the Entry Store, Customer Directory and Export Ledger.

Invariants enforced by the schema:
    - ``time_entries.billed`` is true exactly when ``export_record_id`` is set.
    - ``export_records.external_invoice_id`` is unique; it is the idempotency
      key of the automated invoice path.
"""

import datetime as dt
import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from msp_billing.db.base import Base


def new_id() -> str:
    return str(uuid.uuid4())


class CustomerRow(Base):
    """A local customer with its billing link and rate."""

    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    entries: Mapped[List["TimeEntryRow"]] = relationship(back_populates="customer")


class ExportRecordRow(Base):
    """Append-only proof that a set of entries was billed."""

    __tablename__ = "export_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[str] = mapped_column(
        ForeignKey("customers.id"), nullable=False, index=True
    )
    period_start: Mapped[dt.date] = mapped_column(nullable=False)
    period_end: Mapped[dt.date] = mapped_column(nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Optional[Decimal]] = mapped_column(nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(nullable=False, index=True)
    external_invoice_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, unique=True
    )
    external_invoice_number: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)

    customer: Mapped[CustomerRow] = relationship()
    entries: Mapped[List["TimeEntryRow"]] = relationship(
        back_populates="export_record", order_by="TimeEntryRow.occurred_at"
    )


class TimeEntryRow(Base):
    """A recorded span of billable work."""

    __tablename__ = "time_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    customer_id: Mapped[str] = mapped_column(
        ForeignKey("customers.id"), nullable=False, index=True
    )
    duration_seconds: Mapped[int] = mapped_column(nullable=False)
    occurred_at: Mapped[dt.datetime] = mapped_column(nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ticket_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    ticket_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    project_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    billed: Mapped[bool] = mapped_column(nullable=False, default=False)
    export_record_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("export_records.id"), nullable=True, index=True
    )

    customer: Mapped[CustomerRow] = relationship(back_populates="entries")
    export_record: Mapped[Optional[ExportRecordRow]] = relationship(
        back_populates="entries"
    )

    __table_args__ = (
        CheckConstraint("duration_seconds >= 0", name="ck_time_entries_duration"),
        CheckConstraint(
            "(billed AND export_record_id IS NOT NULL) "
            "OR (NOT billed AND export_record_id IS NULL)",
            name="ck_time_entries_billed_reference",
        ),
        Index("ix_time_entries_unbilled", "billed", "occurred_at"),
    )

"""Export record data models.

An ExportRecord is the durable proof that a set of entries has been billed,
either by an automated invoice or by a manual export.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import Field, model_validator

from msp_billing.models.base import FrozenDataModel


class ExportStatus(str, Enum):
    """Lifecycle of an export record.

    DRAFT, SENT and PAID mirror the accounting system for invoice-backed
    records. RECORDED is the fixed state of manual exports.
    """

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    RECORDED = "recorded"


class CreatedInvoice(FrozenDataModel):
    """Identifiers the accounting system returns for a new invoice."""

    invoice_id: str = Field(..., min_length=1)
    invoice_number: str = Field(..., min_length=1)


class ExportRecord(FrozenDataModel):
    """Durable, append-only proof that a billing group was billed.

    Attributes:
        id: Record identifier
        customer_id: Customer the entries belong to
        customer_name: Customer display name at read time
        period_start: First day of the billed period
        period_end: Last day of the billed period
        entry_ids: Entries covered by this record
        total_hours: Billed hours, rounded to 2 decimals
        total_amount: Billed amount, or None for a rate-less manual export
        created_at: When the record was written
        invoice_id: Accounting-system invoice id (automated path only)
        invoice_number: Accounting-system invoice number (automated path only)
        status: DRAFT/SENT/PAID for invoices, RECORDED for manual exports
    """

    id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    customer_name: Optional[str] = None
    period_start: dt.date
    period_end: dt.date
    entry_ids: List[str] = Field(default_factory=list)
    total_hours: Decimal
    total_amount: Optional[Decimal] = None
    created_at: dt.datetime
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    status: ExportStatus

    @model_validator(mode="after")
    def validate_status_matches_path(self) -> "ExportRecord":
        """Manual records are RECORDED; invoice-backed records never are."""
        if self.invoice_id is None and self.status != ExportStatus.RECORDED:
            raise ValueError("manual export records must have status 'recorded'")
        if self.invoice_id is not None and self.status == ExportStatus.RECORDED:
            raise ValueError("invoice-backed records cannot have status 'recorded'")
        return self

    @property
    def is_automated(self) -> bool:
        return self.invoice_id is not None

"""JSON payloads of the presentation-facing API.

Field names are camelCase on the wire. Dates are ISO calendar dates, money
is a decimal string (or null), hours are floats for display only.
"""

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from msp_billing.models.billing import BillingGroup
from msp_billing.models.customer import AccountingContact, CustomerProfile
from msp_billing.models.entry import TimeEntry
from msp_billing.models.export import ExportRecord
from msp_billing.reconciliation.coordinator import InvoiceResult


class ApiPayload(BaseModel):
    """Base class of API payloads (camelCase aliases, immutable)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_dict(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class EntryPayload(ApiPayload):
    id: str
    duration_seconds: int
    hours: float
    occurred_at: dt.datetime
    description: Optional[str] = None
    ticket_number: Optional[str] = None
    ticket_title: Optional[str] = None
    project_name: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: TimeEntry) -> "EntryPayload":
        return cls(
            id=entry.id,
            duration_seconds=entry.duration_seconds,
            hours=round(entry.duration_seconds / 3600, 2),
            occurred_at=entry.occurred_at,
            description=entry.description,
            ticket_number=entry.ticket_number,
            ticket_title=entry.ticket_title,
            project_name=entry.project_name,
        )


class BillingGroupPayload(ApiPayload):
    """One row of the billing summary."""

    customer_id: str
    customer_name: str
    external_link: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    period_start: dt.date
    period_end: dt.date
    total_seconds: int
    total_hours: float
    total_amount: Optional[Decimal] = None
    eligibility: str
    entries: List[EntryPayload]

    @classmethod
    def from_group(cls, group: BillingGroup) -> "BillingGroupPayload":
        return cls(
            customer_id=group.customer_id,
            customer_name=group.customer_name,
            external_link=group.external_link,
            hourly_rate=group.hourly_rate,
            period_start=group.period_start,
            period_end=group.period_end,
            total_seconds=group.total_seconds,
            total_hours=float(group.total_hours),
            total_amount=group.total_amount,
            eligibility=group.eligibility.value,
            entries=[EntryPayload.from_entry(entry) for entry in group.entries],
        )


class ExportRecordPayload(ApiPayload):
    id: str
    customer_id: str
    customer_name: Optional[str] = None
    period_start: dt.date
    period_end: dt.date
    entry_ids: List[str]
    total_hours: float
    total_amount: Optional[Decimal] = None
    created_at: dt.datetime
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    status: str

    @classmethod
    def from_record(cls, record: ExportRecord) -> "ExportRecordPayload":
        return cls(
            id=record.id,
            customer_id=record.customer_id,
            customer_name=record.customer_name,
            period_start=record.period_start,
            period_end=record.period_end,
            entry_ids=record.entry_ids,
            total_hours=float(record.total_hours),
            total_amount=record.total_amount,
            created_at=record.created_at,
            invoice_id=record.invoice_id,
            invoice_number=record.invoice_number,
            status=record.status.value,
        )


class InvoiceCreatedPayload(ApiPayload):
    export_id: str
    invoice_id: str
    invoice_number: str
    total_hours: float
    total_amount: Optional[Decimal] = None

    @classmethod
    def from_result(cls, result: InvoiceResult) -> "InvoiceCreatedPayload":
        return cls(
            export_id=result.record.id,
            invoice_id=result.invoice.invoice_id,
            invoice_number=result.invoice.invoice_number,
            total_hours=float(result.record.total_hours),
            total_amount=result.record.total_amount,
        )


class CustomerPayload(ApiPayload):
    customer_id: str
    display_name: str
    external_link: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    linked: bool

    @classmethod
    def from_profile(cls, profile: CustomerProfile) -> "CustomerPayload":
        return cls(
            customer_id=profile.customer_id,
            display_name=profile.display_name,
            external_link=profile.external_link,
            hourly_rate=profile.hourly_rate,
            linked=profile.is_linked,
        )


class ContactPayload(ApiPayload):
    """Accounting-system contact offered for linking."""

    contact_id: str
    name: str
    customer_number: Optional[str] = None
    category: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_contact(cls, contact: AccountingContact) -> "ContactPayload":
        return cls(**contact.model_dump())

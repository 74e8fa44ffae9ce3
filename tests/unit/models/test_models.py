"""Unit tests for the billing data models."""

import datetime as dt
from decimal import Decimal

import pytest
from pydantic import ValidationError

from msp_billing.models import (
    BillingGroup,
    CreatedInvoice,
    CustomerProfile,
    Eligibility,
    ExportRecord,
    ExportStatus,
    LineItem,
    TimeEntry,
)


def make_entry(entry_id="e-1", customer_id="c-1", seconds=3600, **kwargs):
    return TimeEntry(
        id=entry_id,
        customer_id=customer_id,
        duration_seconds=seconds,
        occurred_at=dt.datetime(2024, 10, 1, 9, 0),
        **kwargs,
    )


def make_group(**overrides):
    entries = overrides.pop("entries", [make_entry("e-1"), make_entry("e-2", seconds=1800)])
    data = dict(
        customer_id="c-1",
        customer_name="Acme",
        external_link="4711",
        hourly_rate=Decimal("100"),
        period_start=dt.date(2024, 10, 1),
        period_end=dt.date(2024, 10, 31),
        entries=entries,
        total_seconds=sum(e.duration_seconds for e in entries),
        total_amount=Decimal("150.00"),
        eligibility=Eligibility.AUTO_INVOICEABLE,
    )
    data.update(overrides)
    return BillingGroup(**data)


class TestTimeEntry:
    """Test TimeEntry model."""

    def test_new_entry_is_unbilled(self):
        entry = make_entry()
        assert entry.billed is False
        assert entry.export_record_id is None

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            make_entry(seconds=-1)

    def test_billed_requires_export_reference(self):
        with pytest.raises(ValidationError, match="export_record_id"):
            make_entry(billed=True)

    def test_export_reference_requires_billed(self):
        with pytest.raises(ValidationError):
            make_entry(export_record_id="x-1")

    def test_billed_entry_with_reference(self):
        entry = make_entry(billed=True, export_record_id="x-1")
        assert entry.billed

    def test_entry_is_immutable(self):
        entry = make_entry()
        with pytest.raises(ValidationError):
            entry.duration_seconds = 10


class TestCustomerProfile:
    """Test CustomerProfile model."""

    def test_blank_link_is_not_linked(self):
        profile = CustomerProfile(customer_id="c-1", display_name="Acme", external_link="  ")
        assert profile.external_link is None
        assert not profile.is_linked

    def test_linked_profile(self):
        profile = CustomerProfile(customer_id="c-1", display_name="Acme", external_link="4711")
        assert profile.is_linked

    @pytest.mark.parametrize("rate", ["0", "-5"])
    def test_rate_must_be_positive(self, rate):
        with pytest.raises(ValidationError):
            CustomerProfile(customer_id="c-1", display_name="Acme", hourly_rate=Decimal(rate))


class TestBillingGroup:
    """Test BillingGroup invariants."""

    def test_valid_group(self):
        group = make_group()
        assert group.entry_ids == ["e-1", "e-2"]
        assert group.total_hours == Decimal("1.50")
        assert group.is_auto_invoiceable

    def test_amount_must_be_null_without_rate(self):
        with pytest.raises(ValidationError, match="total_amount"):
            make_group(hourly_rate=None, eligibility=Eligibility.MANUAL_ONLY)

    def test_rate_less_group_is_manual_only(self):
        group = make_group(
            hourly_rate=None, total_amount=None, eligibility=Eligibility.MANUAL_ONLY
        )
        assert group.total_amount is None
        assert not group.is_auto_invoiceable

    def test_eligibility_must_match_link(self):
        with pytest.raises(ValidationError, match="eligibility"):
            make_group(external_link=None)

    def test_totals_must_match_entries(self):
        with pytest.raises(ValidationError, match="total_seconds"):
            make_group(total_seconds=1)

    def test_entries_must_belong_to_customer(self):
        with pytest.raises(ValidationError, match="belongs to customer"):
            make_group(entries=[make_entry("e-9", customer_id="other")], total_seconds=3600,
                       total_amount=Decimal("100.00"))

    def test_group_needs_entries(self):
        with pytest.raises(ValidationError):
            make_group(entries=[], total_seconds=0, total_amount=Decimal("0"))

    def test_eligibility_values(self):
        assert Eligibility.AUTO_INVOICEABLE.value == "auto-invoiceable"
        assert Eligibility.MANUAL_ONLY.value == "manual-only"


class TestLineItem:
    """Test LineItem model."""

    def test_net_amount(self):
        item = LineItem(name="Support", quantity=Decimal("1.25"), unit_price=Decimal("95"))
        assert item.net_amount == Decimal("118.75")


class TestExportRecord:
    """Test ExportRecord invariants."""

    def make_record(self, **overrides):
        data = dict(
            id="x-1",
            customer_id="c-1",
            period_start=dt.date(2024, 10, 1),
            period_end=dt.date(2024, 10, 31),
            entry_ids=["e-1"],
            total_hours=Decimal("1.00"),
            total_amount=Decimal("100.00"),
            created_at=dt.datetime(2024, 11, 1, 8, 0),
            status=ExportStatus.RECORDED,
        )
        data.update(overrides)
        return ExportRecord(**data)

    def test_manual_record(self):
        record = self.make_record()
        assert not record.is_automated

    def test_manual_record_must_be_recorded(self):
        with pytest.raises(ValidationError):
            self.make_record(status=ExportStatus.DRAFT)

    def test_invoice_record_cannot_be_recorded(self):
        with pytest.raises(ValidationError):
            self.make_record(invoice_id="1001")

    def test_invoice_record(self):
        record = self.make_record(
            invoice_id="1001", invoice_number="RE-1001", status=ExportStatus.DRAFT
        )
        assert record.is_automated

    def test_created_invoice_requires_ids(self):
        with pytest.raises(ValidationError):
            CreatedInvoice(invoice_id="", invoice_number="RE-1")

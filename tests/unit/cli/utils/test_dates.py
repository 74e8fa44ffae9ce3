"""Unit tests for CLI period selection."""

import datetime as dt

import pytest

from msp_billing.cli.error_handlers import InputError
from msp_billing.cli.utils.dates import month_bounds, parse_date_input, resolve_period


class TestParseDateInput:
    """Test parse_date_input."""

    def test_valid(self):
        assert parse_date_input("2024-10-31") == dt.date(2024, 10, 31)

    @pytest.mark.parametrize("value", ["31.10.2024", "2024-02-30", "today"])
    def test_invalid(self, value):
        with pytest.raises(InputError):
            parse_date_input(value)


class TestMonthBounds:
    """Test month_bounds."""

    def test_leap_february(self):
        assert month_bounds("2024-02") == (dt.date(2024, 2, 1), dt.date(2024, 2, 29))

    def test_december(self):
        assert month_bounds("2024-12") == (dt.date(2024, 12, 1), dt.date(2024, 12, 31))

    def test_invalid(self):
        with pytest.raises(InputError):
            month_bounds("2024-13")


class TestResolvePeriod:
    """Test resolve_period."""

    def test_month(self):
        assert resolve_period("2024-10", None, None) == (
            dt.date(2024, 10, 1),
            dt.date(2024, 10, 31),
        )

    def test_explicit_range(self):
        assert resolve_period(None, "2024-10-01", "2024-10-15") == (
            dt.date(2024, 10, 1),
            dt.date(2024, 10, 15),
        )

    def test_start_after_end_is_left_to_the_engine(self):
        start, end = resolve_period(None, "2024-10-15", "2024-10-01")
        assert start > end

    @pytest.mark.parametrize(
        "month,start,end",
        [
            (None, None, None),
            ("2024-10", "2024-10-01", None),
            (None, "2024-10-01", None),
            (None, None, "2024-10-31"),
        ],
    )
    def test_invalid_combinations(self, month, start, end):
        with pytest.raises(InputError):
            resolve_period(month, start, end)

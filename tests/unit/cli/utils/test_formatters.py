"""Unit tests for CLI output formatters."""

from decimal import Decimal

from msp_billing.cli.utils.formatters import (
    format_error,
    format_hours,
    format_info,
    format_money,
    format_success,
    format_table,
    format_warning,
)


class TestFormatters:
    """Test suite for CLI output formatters."""

    def test_format_success_contains_message(self):
        """Test that success formatter includes the message."""
        assert "Invoice created" in format_success("Invoice created")

    def test_format_error_contains_message(self):
        """Test that error formatter includes the message."""
        assert "Something went wrong" in format_error("Something went wrong")

    def test_format_warning_contains_message(self):
        """Test that warning formatter includes the message."""
        assert "This is a warning" in format_warning("This is a warning")

    def test_format_info_contains_message(self):
        """Test that info formatter includes the message."""
        assert "Information message" in format_info("Information message")

    def test_format_money(self):
        assert format_money(Decimal("150")) == "150.00 EUR"
        assert format_money(Decimal("12.346"), "CHF") == "12.35 CHF"
        assert format_money(None) == "-"

    def test_format_hours(self):
        assert format_hours(Decimal("1.5")) == "1.50 h"

    def test_format_table_with_headers_and_rows(self):
        """Test table formatting with headers and data."""
        headers = ["Customer", "Hours", "Amount"]
        rows = [
            ["Acme", "1.50 h", "150.00 EUR"],
            ["Globex", "2.00 h", "-"],
        ]
        result = format_table(headers, rows)

        lines = result.splitlines()
        assert lines[1].startswith("| Customer ")
        assert "Acme" in result
        assert "Globex" in result
        assert len(lines) == 6
        assert len({len(line) for line in lines}) == 1

    def test_format_table_with_empty_rows(self):
        """Test table formatting with no data rows."""
        result = format_table(["Customer", "Hours"], [])
        assert "Customer" in result
        assert len(result.splitlines()) == 3

    def test_format_table_truncates_wide_cells(self):
        result = format_table(["Name"], [["x" * 20]], max_width=5)
        assert "xxxxx " in result
        assert "x" * 6 not in result

    def test_format_table_without_headers(self):
        assert format_table([], [["a"]]) == ""

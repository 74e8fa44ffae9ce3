"""Unit tests for the summary command."""

import json

import pytest
from click.testing import CliRunner

from msp_billing.cli import cli


class TestSummaryCommand:
    """Test suite for summary command."""

    @pytest.fixture
    def runner(self):
        """Create a Click CLI test runner."""
        return CliRunner()

    def test_summary_table(self, runner, seeded_database):
        result = runner.invoke(cli, ["summary", "--month", "2024-10"])

        assert result.exit_code == 0
        assert "Unbilled work from 2024-10-01 to 2024-10-31" in result.output
        assert "Acme" in result.output
        assert "Globex" in result.output
        assert "150.00 EUR" in result.output
        assert "auto-invoiceable" in result.output
        assert "manual-only" in result.output

    def test_summary_json(self, runner, seeded_database):
        result = runner.invoke(
            cli, ["summary", "--start-date", "2024-10-01", "--end-date", "2024-10-31", "--json"]
        )

        assert result.exit_code == 0
        groups = json.loads(result.stdout)
        assert [g["customerId"] for g in groups] == ["acme", "globex"]
        assert groups[0]["totalAmount"] == "150.00"
        assert groups[1]["totalAmount"] is None

    def test_summary_single_customer_with_entries(self, runner, seeded_database):
        result = runner.invoke(
            cli, ["summary", "--month", "2024-10", "--customer", "acme", "--show-entries"]
        )

        assert result.exit_code == 0
        assert "Globex" not in result.output
        assert "acme-1" in result.output
        assert "Server maintenance" in result.output

    def test_summary_empty_period(self, runner, seeded_database):
        result = runner.invoke(cli, ["summary", "--month", "2024-09"])

        assert result.exit_code == 0
        assert "No unbilled entries" in result.output

    def test_summary_requires_period(self, runner, seeded_database):
        result = runner.invoke(cli, ["summary"])

        assert result.exit_code == 2
        assert "No period given" in result.output

    def test_summary_rejects_combined_period_options(self, runner, seeded_database):
        result = runner.invoke(
            cli, ["summary", "--month", "2024-10", "--start-date", "2024-10-01"]
        )
        assert result.exit_code == 2

    def test_summary_invalid_month(self, runner, seeded_database):
        result = runner.invoke(cli, ["summary", "--month", "October"])

        assert result.exit_code == 2
        assert "Invalid month format" in result.output

    def test_summary_start_after_end(self, runner, seeded_database):
        result = runner.invoke(
            cli, ["summary", "--start-date", "2024-10-31", "--end-date", "2024-10-01"]
        )

        assert result.exit_code == 2
        assert "Invalid Period" in result.output

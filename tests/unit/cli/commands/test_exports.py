"""Unit tests for the exports and refresh-status commands."""

import json

import pytest
from click.testing import CliRunner

import msp_billing.config.settings
from msp_billing.cli import cli
from msp_billing.errors import ExternalServiceError
from msp_billing.models import ExportStatus


@pytest.fixture
def runner():
    """Create a Click CLI test runner."""
    return CliRunner()


class TestExportsCommand:
    """Test suite for exports command."""

    def test_no_exports(self, runner, seeded_database):
        result = runner.invoke(cli, ["exports"])

        assert result.exit_code == 0
        assert "No exports recorded yet." in result.output

    def test_table(self, runner, seeded_database, cli_accounting):
        runner.invoke(cli, ["record-export", "--month", "2024-10", "--customer", "globex"])
        runner.invoke(cli, ["create-invoice", "--month", "2024-10", "--customer", "acme"])

        result = runner.invoke(cli, ["exports"])

        assert result.exit_code == 0
        assert "Globex" in result.output
        assert "recorded" in result.output
        assert "RE-1001" in result.output
        assert "draft" in result.output

    def test_json(self, runner, seeded_database):
        runner.invoke(cli, ["record-export", "--month", "2024-10", "--customer", "globex"])

        result = runner.invoke(cli, ["exports", "--json", "--limit", "5"])

        assert result.exit_code == 0
        records = json.loads(result.stdout)
        assert len(records) == 1
        assert records[0]["status"] == "recorded"
        assert records[0]["entryIds"] == ["globex-1"]
        assert records[0]["totalAmount"] is None

    def test_invalid_limit(self, runner, seeded_database):
        result = runner.invoke(cli, ["exports", "--limit", "0"])
        assert result.exit_code == 2


class TestRefreshStatusCommand:
    """Test suite for refresh-status command."""

    def test_refresh(self, runner, seeded_database, cli_accounting):
        runner.invoke(cli, ["create-invoice", "--month", "2024-10", "--customer", "acme"])
        cli_accounting.statuses["1001"] = ExportStatus.PAID

        result = runner.invoke(cli, ["refresh-status"])

        assert result.exit_code == 0
        assert "Checked 1 invoices: 1 updated, 0 unchanged" in result.output

        exports = json.loads(runner.invoke(cli, ["exports", "--json"]).stdout)
        assert exports[0]["status"] == "paid"

    def test_refresh_reports_failures(self, runner, seeded_database, cli_accounting):
        runner.invoke(cli, ["create-invoice", "--month", "2024-10", "--customer", "acme"])
        cli_accounting.status_failures["1001"] = ExternalServiceError("Invoice 1001 not found")

        result = runner.invoke(cli, ["refresh-status"])

        assert result.exit_code == 0
        assert "1 could not be checked" in result.output
        assert "Invoice 1001 not found" in result.output

    def test_refresh_not_configured(self, runner, seeded_database, monkeypatch):
        monkeypatch.delenv("ACCOUNTING_API_TOKEN")
        msp_billing.config.settings._config = None

        result = runner.invoke(cli, ["refresh-status"])

        assert result.exit_code == 1
        assert "Configuration Error" in result.output

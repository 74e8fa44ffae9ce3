"""
Global pytest configuration and fixtures.
"""
import datetime as dt
import os
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from unittest.mock import patch

import pytest

from msp_billing.aggregators.billing_aggregator import BillingAggregator
from msp_billing.config import BillingSystemConfig, reload_config
from msp_billing.config.logging_config import reset_logging
from msp_billing.db.engine import create_db_engine, create_session_factory, create_tables
from msp_billing.errors import ExternalServiceError
from msp_billing.ledger.export_ledger import ExportLedger
from msp_billing.models.billing import LineItem
from msp_billing.models.customer import AccountingContact
from msp_billing.models.export import CreatedInvoice, ExportStatus
from msp_billing.reconciliation.coordinator import ReconciliationCoordinator
from msp_billing.stores.customer_directory import CustomerDirectory
from msp_billing.stores.entry_store import EntryStore


@pytest.fixture(scope="session")
def test_env_vars() -> Dict[str, str]:
    """Test environment variables for configuration."""
    return {
        'ACCOUNTING_API_URL': 'https://accounting.test/api/v1',
        'ACCOUNTING_API_TOKEN': 'test-token',
        'ACCOUNTING_TIMEOUT': '5',
        'TAX_RATE': '19.0',
        'PAYMENT_TERMS_DAYS': '14',
        'CURRENCY': 'EUR',
        'ENVIRONMENT': 'testing',
        'DEBUG': 'true',
        'LOG_LEVEL': 'DEBUG',
        'MAX_RETRIES': '1',
        'RETRY_DELAY': '0',
    }


@pytest.fixture
def mock_env(test_env_vars, tmp_path, monkeypatch):
    """Mock environment variables for testing, with a database under tmp_path."""
    for key, value in test_env_vars.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv('DATABASE_URL', f"sqlite:///{tmp_path / 'billing.db'}")

    # Clear the global config to force reload with test values
    import msp_billing.config.settings
    msp_billing.config.settings._config = None

    yield test_env_vars

    # Clean up
    msp_billing.config.settings._config = None


@pytest.fixture
def test_config(mock_env) -> BillingSystemConfig:
    """Test configuration instance."""
    return reload_config()


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Drop handlers a test may have installed on the root logger."""
    yield
    reset_logging()


# Database and engine fixtures


@pytest.fixture
def session_factory(tmp_path):
    """Session factory on a fresh SQLite file with all tables created."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'engine.db'}")
    create_tables(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def entry_store(session_factory) -> EntryStore:
    return EntryStore(session_factory)


@pytest.fixture
def customer_directory(session_factory) -> CustomerDirectory:
    return CustomerDirectory(session_factory)


@pytest.fixture
def aggregator(entry_store, customer_directory) -> BillingAggregator:
    return BillingAggregator(entry_store, customer_directory)


@pytest.fixture
def ledger(session_factory, entry_store) -> ExportLedger:
    return ExportLedger(session_factory, entry_store)


class FakeAccountingSystem:
    """In-memory accounting system recording every call."""

    def __init__(self):
        self.invoices: List[Tuple[str, List[LineItem], dt.date, dt.date]] = []
        self.statuses: Dict[str, Optional[ExportStatus]] = {}
        self.fail_with: Optional[Exception] = None
        self.status_failures: Dict[str, Exception] = {}
        self.contacts: List[AccountingContact] = [
            AccountingContact(contact_id="4711", name="Acme GmbH", customer_number="1001"),
            AccountingContact(contact_id="5000", name="Initech AG", category="Kunde"),
        ]
        self.account_name = "Test MSP GmbH"

    def create_invoice(self, customer_external_id, line_items, period_start, period_end):
        if self.fail_with is not None:
            raise self.fail_with
        self.invoices.append(
            (customer_external_id, list(line_items), period_start, period_end)
        )
        invoice_id = str(1000 + len(self.invoices))
        self.statuses[invoice_id] = ExportStatus.DRAFT
        return CreatedInvoice(invoice_id=invoice_id, invoice_number=f"RE-{invoice_id}")

    def get_invoice_status(self, invoice_id):
        if invoice_id in self.status_failures:
            raise self.status_failures[invoice_id]
        return self.statuses.get(invoice_id)

    def list_contacts(self):
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.contacts)

    def test_connection(self):
        if self.fail_with is not None:
            raise self.fail_with
        return self.account_name


@pytest.fixture
def fake_accounting() -> FakeAccountingSystem:
    return FakeAccountingSystem()


@pytest.fixture
def coordinator(aggregator, ledger, fake_accounting) -> ReconciliationCoordinator:
    return ReconciliationCoordinator(aggregator, ledger, fake_accounting)


@pytest.fixture
def cli_accounting(fake_accounting):
    """Route the CLI's accounting client to the fake accounting system."""
    with patch(
        "msp_billing.api.billing_api.SevdeskClient.from_config",
        return_value=fake_accounting,
    ):
        yield fake_accounting


@pytest.fixture
def external_failure() -> ExternalServiceError:
    return ExternalServiceError("Failed to create invoice: Server error (HTTP 503)")


# Sample data


@pytest.fixture
def october() -> Tuple[dt.date, dt.date]:
    """Inclusive period covering October 2024."""
    return dt.date(2024, 10, 1), dt.date(2024, 10, 31)


def seed_billing_data(customer_directory, entry_store) -> Dict[str, str]:
    """Two customers with unbilled October work.

    acme: linked, 100/h, entries of 3600s and 1800s
    globex: unlinked, no rate, one 7200s entry
    """
    customer_directory.add_customer(
        "Acme", hourly_rate=Decimal("100"), external_id="4711", customer_id="acme"
    )
    customer_directory.add_customer("Globex", customer_id="globex")

    entry_store.add_entry(
        customer_id="acme",
        duration_seconds=3600,
        occurred_at=dt.datetime(2024, 10, 1, 9, 0),
        description="Server maintenance",
        entry_id="acme-1",
    )
    entry_store.add_entry(
        customer_id="acme",
        duration_seconds=1800,
        occurred_at=dt.datetime(2024, 10, 2, 14, 0),
        ticket_number="T-42",
        ticket_title="Printer offline",
        entry_id="acme-2",
    )
    entry_store.add_entry(
        customer_id="globex",
        duration_seconds=7200,
        occurred_at=dt.datetime(2024, 10, 3, 10, 0),
        project_name="Migration",
        description="Mailbox move",
        entry_id="globex-1",
    )
    return {"linked": "acme", "unlinked": "globex"}


@pytest.fixture
def billing_data(customer_directory, entry_store) -> Dict[str, str]:
    """Sample customers and entries in the test database."""
    return seed_billing_data(customer_directory, entry_store)


@pytest.fixture
def seeded_database(test_config):
    """Sample data in the database DATABASE_URL points at (for CLI tests)."""
    engine = create_db_engine(test_config.database_url)
    create_tables(engine)
    factory = create_session_factory(engine)
    seed_billing_data(CustomerDirectory(factory), EntryStore(factory))
    yield factory
    engine.dispose()


@pytest.fixture(autouse=True)
def cleanup_test_files():
    """Clean up any test files created during testing."""
    yield

    # Remove test coverage files in case they're created
    test_files = ['coverage.xml', '.coverage']
    for file in test_files:
        if os.path.exists(file):
            os.remove(file)


# Pytest configuration for different test types
def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on location."""
    for item in items:
        # Add unit marker for tests in tests/unit/
        if "tests/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Add integration marker for tests in tests/integration/
        elif "tests/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

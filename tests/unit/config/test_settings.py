"""Unit tests for configuration management."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from msp_billing.config import BillingSystemConfig, get_config, reload_config


class TestBillingSystemConfig:
    """Test BillingSystemConfig settings."""

    def test_config_loads_from_environment(self, test_config):
        """Test that configuration loads values from the environment."""
        assert test_config.accounting_api_url == "https://accounting.test/api/v1"
        assert test_config.accounting_api_token == "test-token"
        assert test_config.accounting_timeout == 5.0
        assert test_config.environment == "testing"
        assert test_config.debug is True
        assert test_config.log_level == "DEBUG"
        assert test_config.accounting_configured

    def test_defaults(self, monkeypatch):
        """Test defaults when nothing is set."""
        for key in ["ACCOUNTING_API_TOKEN", "DEFAULT_HOURLY_RATE", "LINE_ITEM_MODE"]:
            monkeypatch.delenv(key, raising=False)

        config = BillingSystemConfig(_env_file=None)

        assert config.database_url == "sqlite:///billing.db"
        assert config.accounting_api_token is None
        assert not config.accounting_configured
        assert config.default_hourly_rate is None
        assert config.tax_rate == Decimal("19.0")
        assert config.payment_terms_days == 14
        assert config.create_as_final is False
        assert config.line_item_mode == "per_entry"
        assert config.exports_default_limit == 50

    def test_blank_token_is_not_configured(self, mock_env, monkeypatch):
        monkeypatch.setenv("ACCOUNTING_API_TOKEN", "   ")
        config = reload_config()
        assert config.accounting_api_token is None
        assert not config.accounting_configured

    def test_default_rate_must_be_positive(self, mock_env, monkeypatch):
        monkeypatch.setenv("DEFAULT_HOURLY_RATE", "0")
        with pytest.raises(ValidationError, match="DEFAULT_HOURLY_RATE"):
            reload_config()

    def test_default_rate_parsed_as_decimal(self, mock_env, monkeypatch):
        monkeypatch.setenv("DEFAULT_HOURLY_RATE", "95.50")
        assert reload_config().default_hourly_rate == Decimal("95.50")

    def test_line_item_mode_is_normalized(self, mock_env, monkeypatch):
        monkeypatch.setenv("LINE_ITEM_MODE", "AGGREGATED")
        assert reload_config().line_item_mode == "aggregated"

    def test_invalid_line_item_mode(self, mock_env, monkeypatch):
        monkeypatch.setenv("LINE_ITEM_MODE", "weekly")
        with pytest.raises(ValidationError, match="Line item mode"):
            reload_config()

    def test_invalid_log_level(self, mock_env, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError, match="Log level"):
            reload_config()

    def test_invalid_environment(self, mock_env, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "staging")
        with pytest.raises(ValidationError, match="Environment"):
            reload_config()

    def test_get_config_is_cached(self, mock_env):
        assert get_config() is get_config()

    def test_reload_config_replaces_instance(self, mock_env):
        first = get_config()
        assert reload_config() is not first

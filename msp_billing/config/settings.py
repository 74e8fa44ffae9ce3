"""
Configuration management for the billing reconciliation engine.
"""

from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BillingSystemConfig(BaseSettings):
    """Configuration settings for the billing reconciliation engine."""

    # Database Configuration
    database_url: str = Field(default="sqlite:///billing.db", alias="DATABASE_URL")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Accounting System Configuration
    accounting_api_url: str = Field(
        default="https://my.sevdesk.de/api/v1", alias="ACCOUNTING_API_URL"
    )
    accounting_api_token: Optional[str] = Field(
        default=None, alias="ACCOUNTING_API_TOKEN"
    )
    accounting_timeout: float = Field(default=30.0, alias="ACCOUNTING_TIMEOUT")

    # Invoice Configuration
    default_hourly_rate: Optional[Decimal] = Field(
        default=None, alias="DEFAULT_HOURLY_RATE"
    )
    tax_rate: Decimal = Field(default=Decimal("19.0"), alias="TAX_RATE")
    payment_terms_days: int = Field(default=14, alias="PAYMENT_TERMS_DAYS")
    create_as_final: bool = Field(default=False, alias="CREATE_AS_FINAL")
    currency: str = Field(default="EUR", alias="CURRENCY")
    line_item_mode: str = Field(default="per_entry", alias="LINE_ITEM_MODE")
    exports_default_limit: int = Field(default=50, alias="EXPORTS_DEFAULT_LIMIT")

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Retry Configuration (idempotent external reads only)
    max_retries: int = Field(default=3, alias="MAX_RETRIES")
    retry_delay: float = Field(default=1.0, alias="RETRY_DELAY")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    @field_validator("accounting_api_token")
    @classmethod
    def blank_token_is_none(cls, v):
        """Treat an empty token as not configured."""
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("default_hourly_rate")
    @classmethod
    def validate_default_rate(cls, v):
        """Ensure a configured default rate is positive."""
        if v is not None and v <= 0:
            raise ValueError("DEFAULT_HOURLY_RATE must be positive")
        return v

    @field_validator("line_item_mode")
    @classmethod
    def validate_line_item_mode(cls, v):
        """Ensure line item mode is valid."""
        valid_modes = ["per_entry", "aggregated"]
        if v.lower() not in valid_modes:
            raise ValueError(f"Line item mode must be one of: {valid_modes}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Ensure environment is valid."""
        valid_envs = ["development", "testing", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of: {valid_envs}")
        return v.lower()

    @property
    def accounting_configured(self) -> bool:
        """Whether automated invoicing is available."""
        return self.accounting_api_token is not None


def load_config(env_file: Optional[str] = None) -> BillingSystemConfig:
    """Load configuration from environment variables and .env file."""
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    return BillingSystemConfig()


# Global configuration instance
_config: Optional[BillingSystemConfig] = None


def get_config() -> BillingSystemConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config(env_file: Optional[str] = None) -> BillingSystemConfig:
    """Reload configuration (useful for testing)."""
    global _config
    _config = load_config(env_file)
    return _config

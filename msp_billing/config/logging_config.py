"""Logging setup for the billing CLI: console and rotating file handlers."""

import json
import logging
import logging.handlers
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

from msp_billing.utils.logging_utils import BillingContextFilter, sanitize_sensitive_data

if TYPE_CHECKING:
    from msp_billing.config.settings import BillingSystemConfig

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_FORMATS = ("standard", "json")

# Billing context fields shown in the standard format, in this order
CONTEXT_FIELDS = ("correlation_id", "operation", "customer_id", "period")

# Libraries that are chatty at INFO; kept at WARNING unless DEBUG is on
LIBRARY_LOGGERS = ("urllib3", "sqlalchemy.engine", "sqlalchemy.pool")

_STANDARD_RECORD = logging.LogRecord("", 0, "", 0, "", None, None)
_RECORD_ATTRIBUTES = set(vars(_STANDARD_RECORD)) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, object]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
    }


class ContextFormatter(logging.Formatter):
    """Plain-text formatter that appends the bound billing context.

    Example output:
        2024-11-04 10:15:02 - INFO - msp_billing.ledger.export_ledger -
        Recorded export 7f3c... [operation=create_invoice customer_id=acme]
    """

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = [
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if name != "correlation_id" and getattr(record, name, None) is not None
        ]
        if not context:
            return line
        head, newline, rest = line.partition("\n")
        return f"{head} [{' '.join(context)}]{newline}{rest}"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, extra fields included after redaction."""

    def format(self, record: logging.LogRecord) -> str:
        data: Dict[str, object] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        data.update(sanitize_sensitive_data(_extra_fields(record)))
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class LoggingConfig:
    """
    Where and how the billing engine logs.

    Attributes:
        log_level: Root level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "standard" or "json"
        log_file: Path of the rotating log file
        enable_console: Log to stderr
        enable_file: Log to log_file
        max_file_size: Bytes before the log file rotates
        backup_count: Rotated files to keep
        library_levels: Level per third-party logger
    """

    log_level: str = "INFO"
    log_format: str = "standard"
    log_file: Optional[str] = None
    enable_console: bool = True
    enable_file: bool = False
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 5
    library_levels: Dict[str, str] = field(
        default_factory=lambda: {name: "WARNING" for name in LIBRARY_LOGGERS}
    )

    def __post_init__(self):
        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.log_level}. "
                f"Must be one of {', '.join(VALID_LEVELS)}"
            )
        if self.log_format not in VALID_FORMATS:
            raise ValueError(
                f"Invalid log format: {self.log_format}. "
                f"Must be one of {', '.join(VALID_FORMATS)}"
            )
        if self.enable_file and not self.log_file:
            raise ValueError("log_file must be set when file logging is enabled")

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """
        Read LOG_LEVEL, LOG_FORMAT, LOG_FILE, LOG_CONSOLE, LOG_FILE_ENABLED,
        LOG_MAX_FILE_SIZE and LOG_BACKUP_COUNT.

        Setting LOG_FILE alone turns file logging on.
        """
        log_file = os.getenv("LOG_FILE") or None
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard").lower(),
            log_file=log_file,
            enable_console=_env_flag("LOG_CONSOLE", True),
            enable_file=_env_flag("LOG_FILE_ENABLED", log_file is not None),
            max_file_size=int(os.getenv("LOG_MAX_FILE_SIZE", str(10 * 1024 * 1024))),
            backup_count=int(os.getenv("LOG_BACKUP_COUNT", "5")),
        )

    @classmethod
    def from_settings(cls, settings: "BillingSystemConfig") -> "LoggingConfig":
        """
        Combine the LOG_* environment with the application settings.

        DEBUG=true forces the DEBUG level and lets library loggers through;
        DATABASE_ECHO=true shows SQL statements.
        """
        config = cls.from_env()
        if settings.debug:
            config.log_level = "DEBUG"
            config.library_levels = {name: "DEBUG" for name in LIBRARY_LOGGERS}
        else:
            config.log_level = settings.log_level.upper()
        if settings.database_echo:
            config.library_levels["sqlalchemy.engine"] = "INFO"
        return config

    def build_formatter(self) -> logging.Formatter:
        if self.log_format == "json":
            return JSONFormatter()
        return ContextFormatter()


def _clear_root_handlers(root: logging.Logger) -> None:
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def configure_logging(config: LoggingConfig) -> None:
    """
    Install the handlers described by config on the root logger.

    Existing root handlers are closed and replaced, so calling this twice
    does not duplicate output.
    """
    root = logging.getLogger()
    _clear_root_handlers(root)
    root.setLevel(config.log_level)

    handlers = []
    if config.enable_console:
        handlers.append(logging.StreamHandler())
    if config.enable_file and config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.log_file,
                maxBytes=config.max_file_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )

    formatter = config.build_formatter()
    context_filter = BillingContextFilter()
    for handler in handlers:
        handler.setLevel(config.log_level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root.addHandler(handler)

    for name, level in config.library_levels.items():
        logging.getLogger(name).setLevel(level)


def reset_logging() -> None:
    """Remove all root handlers and restore the default levels (tests)."""
    root = logging.getLogger()
    _clear_root_handlers(root)
    root.setLevel(logging.WARNING)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)

"""Database layer: tables, engine and transactional scope."""

from msp_billing.db.engine import (
    create_db_engine,
    create_session_factory,
    create_tables,
    session_scope,
    translate_db_errors,
)
from msp_billing.db.tables import CustomerRow, ExportRecordRow, TimeEntryRow

__all__ = [
    "create_db_engine",
    "create_session_factory",
    "create_tables",
    "session_scope",
    "translate_db_errors",
    "CustomerRow",
    "ExportRecordRow",
    "TimeEntryRow",
]

"""
SQLAlchemy engine initialization, session factory management and
transactional scope utilities.

Every write of the billing engine goes through session_scope(), which
commits on normal exit and rolls back (re-raising) on any exception, so a
failed operation never leaves partial state behind.
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from msp_billing.db.base import Base
from msp_billing.errors import PersistenceError

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine for a database URL.

    SQLite connections are shared across threads (the ledger serializes its
    writes) and enforce foreign keys; every other backend uses the default
    pool with pre-ping.

    Args:
        database_url: SQLAlchemy URL (e.g. sqlite:///billing.db)
        echo: If True, log all SQL statements

    Returns:
        SQLAlchemy Engine instance
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

    logger.info(f"Database engine created for dialect {engine.dialect.name}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory used by stores and the ledger."""
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope(factory) as session:
            session.add(row)
            # Commits on successful exit, rolls back on exception
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        logger.debug("Transaction rolled back")
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create all billing tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Billing tables created")


@contextmanager
def translate_db_errors(action: str) -> Generator[None, None, None]:
    """
    Re-raise SQLAlchemy failures as PersistenceError.

    Args:
        action: What was being done, for the error message
    """
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Database error while trying to {action}: {e}")
        raise PersistenceError(f"Failed to {action}: {type(e).__name__}") from e

"""
Database Initialization

Builds the SQLite async engine shared by the quote and settlement stores.

The engine is created once at process start and handed to both stores. WAL
mode lets readers proceed while a writer holds the lock; busy_timeout makes
concurrent writers wait for each other instead of failing immediately.
"""
import logging
from pathlib import Path
from typing import Union

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    """Apply per-connection pragmas."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_SECONDS * 1000}")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def database_url(database_path: Union[str, Path]) -> str:
    return f"sqlite+aiosqlite:///{database_path}"


def create_engine(database_path: Union[str, Path]) -> AsyncEngine:
    """Create the async engine for a SQLite file. Nothing is opened until first use."""
    db_path = Path(database_path)

    engine = create_async_engine(
        database_url(db_path),
        echo=False,
        connect_args={
            "timeout": BUSY_TIMEOUT_SECONDS,  # lock acquisition timeout
            "check_same_thread": False
        },
        pool_pre_ping=True,
    )
    event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)

    logger.info(f"Database engine created for {db_path}")
    return engine

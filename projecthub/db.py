# projecthub/db.py
# Database abstraction layer supporting PostgreSQL (production) and SQLite (dev/tests)
#
# All queries use named ":param" placeholders, which both sqlite3 and
# SQLAlchemy text() understand, so the same SQL runs on either backend.

import sqlite3
from contextlib import contextmanager
from pathlib import Path as FsPath
from typing import Any, Dict, Generator, List, Optional, Union
from urllib.parse import urlparse

from sqlalchemy import create_engine, pool, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from projecthub import config

DbConnection = Union[sqlite3.Connection, Connection]

# Global engine (SQLAlchemy) or None for SQLite
_engine: Optional[Engine] = None


def init_engine() -> None:
    """Initialize SQLAlchemy engine for PostgreSQL if DATABASE_URL is set."""
    global _engine

    if not config.IS_POSTGRES:
        _engine = None
        if config.IS_DEV:
            print("[DB] Using SQLite (local dev mode)")
        return

    parsed = urlparse(config.DATABASE_URL)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid DATABASE_URL: {config.DATABASE_URL[:20]}...")

    _engine = create_engine(
        config.DATABASE_URL,
        poolclass=pool.QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=False,
    )

    print(f"[DB] Using PostgreSQL ({parsed.hostname})")


def database_path() -> str:
    """Absolute SQLite path. Relative DATABASE_PATH values live beside this package."""
    return str(FsPath(__file__).resolve().parent / config.DATABASE_PATH)


@contextmanager
def get_db_connection() -> Generator[DbConnection, None, None]:
    """
    Context manager for database connections.
    Returns sqlite3.Connection for SQLite or sqlalchemy Connection for Postgres.
    """
    if config.IS_POSTGRES:
        if _engine is None:
            init_engine()

        with _engine.connect() as conn:
            yield conn
    else:
        conn = sqlite3.connect(database_path(), timeout=10, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()


def execute_query(
    conn: DbConnection,
    query: str,
    params: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Execute a query with named parameters.

    Returns:
        Cursor (SQLite) or CursorResult (PostgreSQL)
    """
    if config.IS_POSTGRES:
        return conn.execute(text(query), params or {})

    cur = conn.cursor()
    return cur.execute(query, params or {})


def row_to_dict(row: Any) -> Dict[str, Any]:
    """
    Convert a sqlite3.Row or SQLAlchemy Row to a plain dict.

    This is the single boundary for converting DB rows to dicts.
    """
    if row is None:
        return {}
    if hasattr(row, "_mapping"):
        return dict(row._mapping)
    return dict(row)


def fetch_one(conn: DbConnection, query: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    row = execute_query(conn, query, params).fetchone()
    if row is None:
        return None
    return row_to_dict(row)


def fetch_all(conn: DbConnection, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    return [row_to_dict(row) for row in execute_query(conn, query, params).fetchall()]


def fetch_scalar(conn: DbConnection, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
    row = execute_query(conn, query, params).fetchone()
    if row is None:
        return None
    return row[0]


def insert_returning_id(conn: DbConnection, query: str, params: Dict[str, Any]) -> Optional[int]:
    """
    Run an INSERT and return the new primary key.

    Returns None when the statement inserted nothing, which is how guarded
    INSERT ... SELECT ... WHERE statements report a failed condition.
    """
    if config.IS_POSTGRES:
        row = conn.execute(text(f"{query} RETURNING id"), params).fetchone()
        return int(row[0]) if row else None

    cur = execute_query(conn, query, params)
    if cur.rowcount == 0:
        return None
    return cur.lastrowid


def commit(conn: DbConnection) -> None:
    conn.commit()


def rollback(conn: DbConnection) -> None:
    conn.rollback()


@contextmanager
def transaction(conn: DbConnection) -> Generator[DbConnection, None, None]:
    """Commit on success, roll back and re-raise on any error."""
    try:
        yield conn
    except Exception:
        rollback(conn)
        raise
    else:
        commit(conn)


def is_integrity_error(exc: Exception) -> bool:
    """True for unique/check constraint violations on either backend."""
    if isinstance(exc, sqlite3.IntegrityError):
        return True
    return isinstance(exc, SAIntegrityError)


# Initialize engine on module import if Postgres mode
if config.IS_POSTGRES and _engine is None:
    init_engine()

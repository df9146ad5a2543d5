"""
Database connection management.

Provides SQLite connections and write transactions for data persistence.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

DEFAULT_DB_PATH = "ai_quota_guard.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=30.0, isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def transaction(db_path: str = DEFAULT_DB_PATH) -> Iterator[sqlite3.Connection]:
    """Open a connection inside an immediate write transaction.

    BEGIN IMMEDIATE takes the database write lock up front, so two processes
    cannot both read the same counter and then write it back.
    Commits on success, rolls back and re-raises on any error.

    Args:
        db_path: Path to SQLite database file

    Yields:
        Connection with an open transaction
    """
    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.execute("COMMIT")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


@contextmanager
def use_connection(
    db_path: str, conn: Optional[sqlite3.Connection] = None
) -> Iterator[sqlite3.Connection]:
    """Yield the given connection, or a short-lived one in its own transaction.

    Lets repository methods join an enclosing transaction when one is
    passed in and stay atomic on their own when it is not.
    """
    if conn is not None:
        yield conn
        return
    with transaction(db_path) as own:
        yield own

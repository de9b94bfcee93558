"""SQLite connection helpers.

All engine tables live in one database file. Reads use a short-lived
connection; every state change runs inside ``transaction()`` which takes the
database write lock up front (BEGIN IMMEDIATE) so the precondition checks
and the writes of one operation see a single consistent snapshot.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from core.config import DEFAULT_DB_PATH


def _open(db_path: Path, timeout: float) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def connect(db_path: Path = DEFAULT_DB_PATH, timeout: float = 5.0) -> Iterator[sqlite3.Connection]:
    """Yield a connection in autocommit mode; closed on exit."""
    conn = _open(db_path, timeout)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(db_path: Path = DEFAULT_DB_PATH, timeout: float = 5.0) -> Iterator[sqlite3.Connection]:
    """Yield a connection inside BEGIN IMMEDIATE.

    Commits when the block exits normally; rolls back and re-raises on any
    exception, so a failed operation leaves no visible state.
    """
    conn = _open(db_path, timeout)
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


@contextmanager
def use_connection(
    db_path: Path = DEFAULT_DB_PATH,
    conn: Optional[sqlite3.Connection] = None,
) -> Iterator[sqlite3.Connection]:
    """Reuse ``conn`` when the caller is already inside a transaction, else open one."""
    if conn is not None:
        yield conn
        return
    with connect(db_path) as own:
        yield own

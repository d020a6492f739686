"""
Shared database utilities: consistent SQLite connection management.

All connections use WAL mode for concurrent read access and a 5-second
busy timeout to prevent SQLITE_BUSY errors under async load.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from config import KV_BUSY_TIMEOUT_MS, KV_SQLITE_PATH

logger = logging.getLogger(__name__)

# WAL mode is persistent per-database (set once, survives restarts).
# Track which files have been switched to avoid redundant PRAGMAs.
_wal_initialized: set[str] = set()


def _configure_connection(conn: sqlite3.Connection, db_path: Path):
    """Apply standard connection settings: WAL mode and busy timeout."""
    conn.execute(f"PRAGMA busy_timeout = {int(KV_BUSY_TIMEOUT_MS)}")
    key = str(db_path)
    if key not in _wal_initialized:
        conn.execute("PRAGMA journal_mode = WAL")
        _wal_initialized.add(key)


@contextmanager
def db_connection(db_path: Optional[Path] = None, autocommit: bool = False):
    """Context manager for SQLite connections; ensures close on exit.

    With ``autocommit=True`` the connection runs with ``isolation_level=None``
    so callers can open explicit ``BEGIN IMMEDIATE`` transactions.
    """
    path = Path(db_path or KV_SQLITE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), isolation_level=None if autocommit else "")
    _configure_connection(conn, path)
    try:
        yield conn
    finally:
        conn.close()

"""
Database schema: CREATE TABLE statements for the SQLite key/value backend.

Called once at startup via init_db().
"""

from pathlib import Path
from typing import Optional

from db import db_connection


def init_db(db_path: Optional[Path] = None):
    with db_connection(db_path) as conn:
        c = conn.cursor()
        # Key/value entries; expires_at is a unix timestamp, NULL for no TTL
        c.execute('''CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            expires_at REAL,
            updated_at REAL NOT NULL
        )''')
        c.execute('CREATE INDEX IF NOT EXISTS idx_kv_expires ON kv_store(expires_at)')
        conn.commit()

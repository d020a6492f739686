"""
Key/value store used for OAuth state tokens and user credential records.

Contract: get / put (optional TTL in seconds) / delete, plus ``take`` which
reads and removes a key in one atomic step. ``take`` is what makes
single-use state tokens race-free: of two concurrent takes on the same key,
exactly one receives the value.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from db import db_connection
from schema import init_db

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Async key/value contract consumed by the OAuth bridge."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key. Returns True if a live entry was removed."""

    @abstractmethod
    async def take(self, key: str) -> Optional[str]:
        """Atomically read and delete a key. None if absent or expired."""

    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self.get(key)
        return json.loads(raw) if raw is not None else None

    async def put_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self.put(key, json.dumps(value, default=str), ttl=ttl)

    async def close(self) -> None:
        pass


class MemoryKVStore(KeyValueStore):
    """Process-local store. Expiry is checked lazily on access."""

    def __init__(self, clock=time.time):
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._live(key)

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        async with self._lock:
            self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            live = self._live(key) is not None
            self._data.pop(key, None)
            return live

    async def take(self, key: str) -> Optional[str]:
        async with self._lock:
            value = self._live(key)
            if value is not None:
                del self._data[key]
            return value


class SQLiteKVStore(KeyValueStore):
    """SQLite-backed store; safe across worker processes sharing one file.

    Blocking sqlite calls run in the default executor so the event loop is
    never held by disk I/O.
    """

    def __init__(self, db_path: Path, clock=time.time):
        self.db_path = Path(db_path)
        self._clock = clock
        init_db(self.db_path)

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    # ── Blocking implementations ──

    def _get_sync(self, key: str) -> Optional[str]:
        with db_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
                (key, self._clock()),
            ).fetchone()
            return row[0] if row else None

    def _put_sync(self, key: str, value: str, ttl: Optional[int]):
        now = self._clock()
        expires_at = now + ttl if ttl else None
        with db_connection(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, expires_at, updated_at) VALUES (?, ?, ?, ?)",
                (key, value, expires_at, now),
            )
            # Opportunistic purge of expired rows
            conn.execute(
                "DELETE FROM kv_store WHERE expires_at IS NOT NULL AND expires_at <= ?", (now,))
            conn.commit()

    def _delete_sync(self, key: str) -> bool:
        with db_connection(self.db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM kv_store WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
                (key, self._clock()),
            )
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

    def _take_sync(self, key: str) -> Optional[str]:
        with db_connection(self.db_path, autocommit=True) as conn:
            # IMMEDIATE takes the write lock before the read, so two takers
            # serialize and the second sees the row already gone.
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
                    (key, self._clock()),
                ).fetchone()
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
            return row[0] if row else None

    # ── Async contract ──

    async def get(self, key: str) -> Optional[str]:
        return await self._run(self._get_sync, key)

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._run(self._put_sync, key, value, ttl)

    async def delete(self, key: str) -> bool:
        return await self._run(self._delete_sync, key)

    async def take(self, key: str) -> Optional[str]:
        return await self._run(self._take_sync, key)


def create_store(backend: str, sqlite_path: Optional[Path] = None) -> KeyValueStore:
    """Build the configured store backend."""
    if backend == "memory":
        logger.info("Key/value store: in-memory (not shared across processes)")
        return MemoryKVStore()
    if backend == "sqlite":
        logger.info("Key/value store: sqlite at %s", sqlite_path)
        return SQLiteKVStore(sqlite_path)
    raise ValueError(f"Unknown key/value backend: {backend}")

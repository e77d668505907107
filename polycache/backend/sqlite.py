# polycache/backend/sqlite.py

"""
SQLite cache backend (embedded ordered-index store).

Entries live in one table keyed by the namespaced key. The primary key is a
B-tree, so keys sharing a prefix are contiguous and prefix deletion is an
ascending scan that starts at the prefix and stops at the first key past it.
Pass ``":memory:"`` as the path for a purely in-memory cache.
"""

import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Any, Iterator, List

from .base import TTL, BaseCacheBackend, normalize_ttl
from polycache.config import MEMORY, Options
from polycache.exceptions import BackendError, BulkDeleteError, NotFoundError
from polycache.serializer import pack_value, unpack_value

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    expires_at REAL
)
"""


class SQLiteCacheBackend(BaseCacheBackend):
    """
    Cache backend on top of a SQLite database file or an in-memory database.

    The connection runs in autocommit mode; every operation opens its own
    explicit transaction.

    Every call runs on the event loop thread and blocks it for the duration of
    its transaction, including the ordered scan and delete of
    ``empty_by_match``. sqlite3 connections are bound to the thread that
    created them, and the transactions here share one connection, so no work is
    handed to a worker thread.
    """

    engine_errors = (sqlite3.Error, OSError)

    def __init__(self, conn: sqlite3.Connection, key_prefix: str = "") -> None:
        super().__init__(key_prefix)
        self.conn = conn
        with self._backend_errors("create schema"):
            self.conn.execute(_SCHEMA)

    @classmethod
    def from_options(cls, options: Options) -> "SQLiteCacheBackend":
        path = options.sqlite_path
        try:
            if path != MEMORY:
                directory = os.path.dirname(os.path.abspath(path))
                os.makedirs(directory, exist_ok=True)
            conn = sqlite3.connect(path, isolation_level=None)
        except (sqlite3.Error, OSError) as exc:
            raise BackendError(f"cannot open sqlite database {path!r}: {exc}") from exc
        logger.debug("opened sqlite cache at %s prefix=%r", path, options.prefix)
        return cls(conn, key_prefix=options.prefix)

    @contextmanager
    def _transaction(self, mode: str = "DEFERRED") -> Iterator[sqlite3.Connection]:
        self.conn.execute(f"BEGIN {mode}")
        try:
            yield self.conn
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    async def get(self, key: str) -> Any:
        self._ensure_open()
        with self._backend_errors(f"get {key!r}"), self._transaction() as conn:
            row = conn.execute(
                "SELECT value FROM cache_entries "
                "WHERE key = ? AND (expires_at IS NULL OR expires_at > ?)",
                (self._build_key(key), time.time()),
            ).fetchone()

        if row is None:
            raise NotFoundError(key)

        return unpack_value(key, row[0])

    async def set(self, key: str, value: Any, ttl: TTL = None) -> None:
        self._ensure_open()
        data = pack_value(key, value)
        seconds = normalize_ttl(ttl)
        expires_at = None if seconds is None else time.time() + seconds

        with self._backend_errors(f"set {key!r}"), self._transaction("IMMEDIATE") as conn:
            conn.execute(
                "INSERT INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET "
                "value = excluded.value, expires_at = excluded.expires_at",
                (self._build_key(key), data, expires_at),
            )

    async def has(self, key: str) -> bool:
        try:
            await self.get(key)
        except Exception:
            return False
        return True

    async def forget(self, key: str) -> None:
        self._ensure_open()
        with self._backend_errors(f"forget {key!r}"), self._transaction("IMMEDIATE") as conn:
            conn.execute(
                "DELETE FROM cache_entries WHERE key = ?", (self._build_key(key),)
            )

    def _scan_prefix(self, prefix: str) -> List[str]:
        """Ascend from ``prefix`` and collect keys until one no longer matches."""
        keys: List[str] = []
        with self._transaction() as conn:
            cursor = conn.execute(
                "SELECT key FROM cache_entries WHERE key >= ? ORDER BY key",
                (prefix,),
            )
            for (k,) in cursor:
                if not k.startswith(prefix):
                    break
                keys.append(k)
            cursor.close()
        return keys

    async def empty_by_match(self, match: str) -> None:
        self._ensure_open()
        prefix = self._build_key(match)

        with self._backend_errors(f"scan {prefix!r}"):
            keys = self._scan_prefix(prefix)

        failed: List[str] = []
        errors: List[BaseException] = []
        with self._backend_errors(f"delete under {prefix!r}"):
            with self._transaction("IMMEDIATE") as conn:
                for k in keys:
                    try:
                        conn.execute("DELETE FROM cache_entries WHERE key = ?", (k,))
                    except sqlite3.Error as exc:
                        failed.append(k)
                        errors.append(exc)

        logger.debug(
            "empty_by_match(%r): deleted %d of %d key(s)",
            match, len(keys) - len(failed), len(keys),
        )
        if failed:
            logger.warning("empty_by_match(%r): %d deletion(s) failed", match, len(failed))
            raise BulkDeleteError(failed, errors)

    async def sweep_expired(self) -> int:
        """
        Delete this cache's entries whose expiry time has passed.

        :return: Number of expired entries removed.
        """
        self._ensure_open()
        prefix = self._build_key("")
        with self._backend_errors("sweep expired"), self._transaction("IMMEDIATE") as conn:
            cursor = conn.execute(
                "DELETE FROM cache_entries "
                "WHERE substr(key, 1, ?) = ? AND expires_at IS NOT NULL AND expires_at <= ?",
                (len(prefix), prefix, time.time()),
            )
        return cursor.rowcount

    async def _release(self) -> None:
        self.conn.close()

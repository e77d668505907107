# polycache/backend/leveldb.py

"""
LevelDB cache backend (embedded log-structured store).

Requires the ``plyvel`` package (``pip install polycache[leveldb]``).

LevelDB has no native expiry, so every entry is written together with a
deadline record in the same atomic write batch:

    d:<prefix>:<key>  ->  encoded cache entry
    x:<prefix>:<key>  ->  expiry deadline (unix seconds, ASCII float)

Reads go through a snapshot and treat an entry whose deadline has passed as
absent. Expired records stay on disk until they are overwritten, forgotten,
bulk-deleted or removed by :meth:`LevelDBCacheBackend.sweep_expired`.
"""

import asyncio
import logging
import os
import time
from typing import Any, List, Optional

import plyvel

from .base import TTL, BaseCacheBackend, normalize_ttl
from polycache.config import Options
from polycache.exceptions import BackendError, BulkDeleteError, NotFoundError
from polycache.serializer import pack_value, unpack_value

logger = logging.getLogger(__name__)

DATA_PREFIX = b"d:"
EXPIRY_PREFIX = b"x:"


class LevelDBCacheBackend(BaseCacheBackend):
    """
    Cache backend on top of an embedded LevelDB database.

    Single-key operations call plyvel directly and block the event loop for
    one read or write batch. Prefix scans behind ``empty_by_match`` and
    ``sweep_expired`` run in a worker thread via ``asyncio.to_thread``.
    """

    engine_errors = (plyvel.Error, OSError)

    def __init__(
        self,
        db: "plyvel.DB",
        key_prefix: str = "",
        batch_size: int = 100_000,
    ) -> None:
        super().__init__(key_prefix)
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.db = db
        self.batch_size = batch_size

    @classmethod
    def from_options(cls, options: Options) -> "LevelDBCacheBackend":
        path = options.leveldb_path
        try:
            os.makedirs(path, exist_ok=True)
            db = plyvel.DB(path, create_if_missing=True)
        except (plyvel.Error, OSError) as exc:
            raise BackendError(f"cannot open leveldb at {path!r}: {exc}") from exc
        logger.debug("opened leveldb cache at %s prefix=%r", path, options.prefix)
        return cls(db, key_prefix=options.prefix, batch_size=options.leveldb_batch_size)

    def _data_key(self, key: str) -> bytes:
        return DATA_PREFIX + self._build_key(key).encode("utf-8")

    def _expiry_key(self, key: str) -> bytes:
        return EXPIRY_PREFIX + self._build_key(key).encode("utf-8")

    @staticmethod
    def _is_expired(deadline: Optional[bytes], now: float) -> bool:
        return deadline is not None and float(deadline) <= now

    async def get(self, key: str) -> Any:
        self._ensure_open()
        with self._backend_errors(f"get {key!r}"):
            with self.db.snapshot() as snapshot:
                raw = snapshot.get(self._data_key(key))
                deadline = snapshot.get(self._expiry_key(key))

        if raw is None or self._is_expired(deadline, time.time()):
            raise NotFoundError(key)

        return unpack_value(key, raw)

    async def set(self, key: str, value: Any, ttl: TTL = None) -> None:
        self._ensure_open()
        data = pack_value(key, value)
        seconds = normalize_ttl(ttl)

        with self._backend_errors(f"set {key!r}"):
            with self.db.write_batch(transaction=True) as wb:
                wb.put(self._data_key(key), data)
                if seconds is None:
                    wb.delete(self._expiry_key(key))
                else:
                    deadline = time.time() + seconds
                    wb.put(self._expiry_key(key), repr(deadline).encode("ascii"))

    async def has(self, key: str) -> bool:
        try:
            await self.get(key)
        except Exception:
            return False
        return True

    async def forget(self, key: str) -> None:
        self._ensure_open()
        with self._backend_errors(f"forget {key!r}"):
            with self.db.write_batch(transaction=True) as wb:
                wb.delete(self._data_key(key))
                wb.delete(self._expiry_key(key))

    def _delete_batch(
        self,
        names: List[bytes],
        failed: List[str],
        errors: List[BaseException],
    ) -> None:
        """Delete namespaced keys (without the record prefix) in one write batch."""
        try:
            with self.db.write_batch(transaction=True) as wb:
                for name in names:
                    wb.delete(DATA_PREFIX + name)
                    wb.delete(EXPIRY_PREFIX + name)
        except self.engine_errors as exc:
            failed.extend(n.decode("utf-8", errors="replace") for n in names)
            errors.append(exc)

    def _collect_and_delete(self, record_prefix: bytes, match: bytes, only_expired: bool) -> int:
        """
        Scan ``record_prefix + match`` on a snapshot, deleting matches in batches
        of at most ``batch_size`` keys, each in its own write batch.

        :return: Number of keys scanned for deletion.
        """
        failed: List[str] = []
        errors: List[BaseException] = []
        pending: List[bytes] = []
        total = 0
        now = time.time()

        with self._backend_errors(f"scan {match!r}"):
            with self.db.snapshot() as snapshot:
                with snapshot.iterator(
                    prefix=record_prefix + match,
                    include_value=only_expired,
                ) as it:
                    for item in it:
                        if only_expired:
                            k, deadline = item
                            if not self._is_expired(deadline, now):
                                continue
                        else:
                            k = item
                        pending.append(k[len(record_prefix):])
                        total += 1
                        if len(pending) >= self.batch_size:
                            self._delete_batch(pending, failed, errors)
                            pending = []

            if pending:
                self._delete_batch(pending, failed, errors)

        if failed:
            logger.warning("leveldb: %d deletion(s) failed", len(failed))
            raise BulkDeleteError(failed, errors)
        return total

    async def empty_by_match(self, match: str) -> None:
        self._ensure_open()
        count = await asyncio.to_thread(
            self._collect_and_delete,
            DATA_PREFIX,
            self._build_key(match).encode("utf-8"),
            only_expired=False,
        )
        logger.debug("empty_by_match(%r): deleted %d key(s)", match, count)

    async def sweep_expired(self) -> int:
        """
        Delete this cache's entries whose deadline has passed.

        :return: Number of expired entries removed.
        """
        self._ensure_open()
        return await asyncio.to_thread(
            self._collect_and_delete,
            EXPIRY_PREFIX,
            self._build_key("").encode("utf-8"),
            only_expired=True,
        )

    async def _release(self) -> None:
        self.db.close()

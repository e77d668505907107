# polycache/backend/redis.py

import logging
from typing import Any, List

import redis.asyncio as redis
from redis.exceptions import RedisError

from .base import TTL, BaseCacheBackend, ttl_millis
from polycache.config import Options
from polycache.exceptions import BulkDeleteError, NotFoundError
from polycache.serializer import pack_value, unpack_value

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = "\\*?[]"


def _glob_escape(text: str) -> str:
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in text)


class RedisCacheBackend(BaseCacheBackend):
    """
    Redis cache backend implementation.
    Uses redis-py for asynchronous Redis operations.
    """

    engine_errors = (RedisError, OSError)

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "dev",
        scan_count: int = 1000,
    ) -> None:
        super().__init__(key_prefix)
        self.client = client
        self.scan_count = scan_count

    @classmethod
    def from_options(cls, options: Options) -> "RedisCacheBackend":
        client = redis.Redis(
            host=options.host,
            port=options.port,
            password=options.password,
            db=options.db,
            decode_responses=False,
        )
        logger.debug(
            "redis cache on %s:%s db=%s prefix=%r",
            options.host, options.port, options.db, options.prefix,
        )
        return cls(client, key_prefix=options.prefix)

    async def get(self, key: str) -> Any:
        self._ensure_open()
        with self._backend_errors(f"get {key!r}"):
            raw = await self.client.get(self._build_key(key))

        if raw is None:
            raise NotFoundError(key)

        return unpack_value(key, raw)

    async def set(self, key: str, value: Any, ttl: TTL = None) -> None:
        self._ensure_open()
        data = pack_value(key, value)
        px = ttl_millis(ttl)

        with self._backend_errors(f"set {key!r}"):
            await self.client.set(self._build_key(key), data, px=px)

    async def has(self, key: str) -> bool:
        # decodes like get() so an unreadable entry is absent here as well
        try:
            await self.get(key)
        except NotFoundError:
            return False
        except Exception:
            logger.debug("has(%r) failed; reporting absent", key, exc_info=True)
            return False
        return True

    async def forget(self, key: str) -> None:
        self._ensure_open()
        with self._backend_errors(f"forget {key!r}"):
            await self.client.delete(self._build_key(key))

    async def empty_by_match(self, match: str) -> None:
        """
        Delete keys under ``prefix:match``.
        Enumerates with SCAN, then deletes keys one by one.
        """
        self._ensure_open()
        pattern = f"{_glob_escape(self._build_key(match))}*"

        with self._backend_errors(f"scan {pattern!r}"):
            keys: List[bytes] = [
                k async for k in self.client.scan_iter(
                    match=pattern, count=self.scan_count
                )
            ]

        failed: List[str] = []
        errors: List[BaseException] = []
        for k in keys:
            try:
                await self.client.delete(k)
            except self.engine_errors as exc:
                failed.append(k.decode("utf-8", errors="replace"))
                errors.append(exc)

        logger.debug(
            "empty_by_match(%r): deleted %d of %d key(s)",
            match, len(keys) - len(failed), len(keys),
        )
        if failed:
            logger.warning(
                "empty_by_match(%r): %d deletion(s) failed", match, len(failed)
            )
            raise BulkDeleteError(failed, errors)

    async def _release(self) -> None:
        aclose = getattr(self.client, "aclose", None)
        if aclose is not None:
            await aclose()
        else:
            await self.client.close()

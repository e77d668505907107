# polycache/backend/base.py

"""
Abstract base class for cache backends.
Defines the interface that all cache backends must implement.
"""

import inspect
import logging
import math
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from polycache.exceptions import (
    BackendError,
    CacheError,
    ClosedError,
    NotFoundError,
    TypeMismatchError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

TTL = Union[int, float, timedelta, None]

#: Characters a key prefix may not contain: the namespace separator and glob syntax.
RESERVED_PREFIX_CHARS = ":*?[]"


def validate_prefix(prefix: str) -> str:
    """
    Check that ``prefix`` can own a namespace on its own.

    A prefix containing the separator would let ``"app"`` own the keys of
    ``"app:v2"``, so it is rejected along with glob characters.

    :raises ValueError: If the prefix contains a reserved character.
    """
    bad = sorted({ch for ch in prefix if ch in RESERVED_PREFIX_CHARS})
    if bad:
        raise ValueError(
            f"prefix {prefix!r} must not contain {''.join(bad)!r} "
            f"(reserved: {RESERVED_PREFIX_CHARS!r})"
        )
    return prefix


def normalize_ttl(ttl: TTL) -> Optional[float]:
    """
    Convert a TTL argument to seconds.

    :param ttl: Seconds or a timedelta. ``None`` and zero mean "no expiration".
    :return: Positive seconds, or None for no expiration.
    :raises ValueError: If the TTL is negative.
    """
    if ttl is None:
        return None
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    if seconds < 0 or math.isnan(seconds):
        raise ValueError(f"ttl must be >= 0, got {ttl!r}")
    if seconds == 0:
        return None
    return seconds


def ttl_millis(ttl: TTL) -> Optional[int]:
    """
    Convert a TTL argument to whole milliseconds, rounding up.

    A positive TTL shorter than one millisecond becomes one millisecond so it
    still expires instead of turning into "no expiration".
    """
    seconds = normalize_ttl(ttl)
    if seconds is None:
        return None
    return max(1, math.ceil(seconds * 1000))


class BaseCacheBackend(ABC):
    """
    Abstract base class for cache backends.
    All cache backends must implement this interface.

    Every instance owns one store connection and one key prefix. Keys are
    namespaced as ``prefix:key`` before they reach the store.
    """

    #: Exceptions raised by the underlying engine, wrapped into BackendError.
    engine_errors: Tuple[Type[BaseException], ...] = (OSError,)

    def __init__(self, prefix: str = "") -> None:
        self._prefix = validate_prefix(prefix)
        self._closed = False

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def closed(self) -> bool:
        return self._closed

    def _build_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClosedError(f"{type(self).__name__} is closed")

    @contextmanager
    def _backend_errors(self, action: str) -> Iterator[None]:
        """Re-raise engine failures as BackendError, keeping the cause."""
        try:
            yield
        except CacheError:
            raise
        except self.engine_errors as exc:
            raise BackendError(f"{action} failed: {exc}") from exc

    @abstractmethod
    async def get(self, key: str) -> Any:
        """
        Retrieve a value from the cache by its key.

        :param key: The key to look up in the cache.
        :return: The cached value.
        :raises NotFoundError: If the key is absent or expired.
        """
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: TTL = None) -> None:
        """
        Set a value in the cache with an optional time-to-live (TTL).

        :param key: The key under which to store the value.
        :param value: The value to store in the cache.
        :param ttl: Optional time-to-live, in seconds or as a timedelta.
            None or zero means the value never expires.
        """
        raise NotImplementedError

    @abstractmethod
    async def has(self, key: str) -> bool:
        """
        Check whether a key is in the cache.

        Never raises: any failure, including a closed cache, reads as False.

        :param key: The key to look up.
        """
        raise NotImplementedError

    @abstractmethod
    async def forget(self, key: str) -> None:
        """
        Delete a value from the cache by its key.
        Forgetting an absent key is not an error.

        :param key: The key to delete from the cache.
        """
        raise NotImplementedError

    @abstractmethod
    async def empty_by_match(self, match: str) -> None:
        """
        Delete every key of this cache whose logical key starts with ``match``.

        Keys written concurrently with the call may or may not be deleted.

        :param match: Logical key prefix to delete.
        :raises BulkDeleteError: If some deletions failed; the rest still ran.
        """
        raise NotImplementedError

    @abstractmethod
    async def _release(self) -> None:
        """Release the underlying store connection."""
        raise NotImplementedError

    async def empty(self) -> None:
        """Delete every key under this cache's prefix."""
        await self.empty_by_match("")

    async def close(self) -> None:
        """
        Release the store connection. Calling close() again is a no-op.
        """
        if self._closed:
            return
        self._closed = True
        with self._backend_errors("close"):
            await self._release()
        logger.debug("closed %s (prefix=%r)", type(self).__name__, self._prefix)

    async def __aenter__(self) -> "BaseCacheBackend":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _typed(self, key: str, expected: Type[T]) -> T:
        value = await self.get(key)
        # bool is an int subclass but never a valid int/float here
        if isinstance(value, bool) and expected is not bool:
            raise TypeMismatchError(key, expected, value)
        if not isinstance(value, expected):
            raise TypeMismatchError(key, expected, value)
        return value

    async def get_int(self, key: str) -> int:
        """Retrieve a value and assert it is an int."""
        return await self._typed(key, int)

    async def get_str(self, key: str) -> str:
        """Retrieve a value and assert it is a str."""
        return await self._typed(key, str)

    async def get_float(self, key: str) -> float:
        """Retrieve a value as a float. Ints are widened."""
        value = await self.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TypeMismatchError(key, float, value)
        return float(value)

    async def get_time(self, key: str) -> datetime:
        """Retrieve a value and assert it is a datetime."""
        return await self._typed(key, datetime)

    async def remember(
        self,
        key: str,
        ttl: TTL,
        factory: Callable[[], Union[Any, Awaitable[Any]]],
    ) -> Any:
        """
        Return the cached value for ``key``, computing and storing it on a miss.

        :param key: The key to look up.
        :param ttl: TTL used when the value has to be stored.
        :param factory: Sync or async callable producing the value.
        """
        try:
            return await self.get(key)
        except NotFoundError:
            pass

        value = factory()
        if inspect.isawaitable(value):
            value = await value
        await self.set(key, value, ttl=ttl)
        return value

    async def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Retrieve several keys at once; missing keys are left out."""
        found: Dict[str, Any] = {}
        for key in keys:
            try:
                found[key] = await self.get(key)
            except NotFoundError:
                continue
        return found

    async def set_many(self, items: Dict[str, Any], ttl: TTL = None) -> None:
        for key, value in items.items():
            await self.set(key, value, ttl=ttl)

    async def forget_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            await self.forget(key)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__} prefix={self._prefix!r} {state}>"

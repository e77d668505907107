# polycache/config.py

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from polycache.backend.base import BaseCacheBackend, validate_prefix
from polycache.exceptions import CacheConfigError, UnsupportedBackendError


MEMORY = ":memory:"
"""Path sentinel that keeps the SQLite backend entirely in memory."""


class BackendKind(str, Enum):
    """Supported storage engines."""
    REDIS = "redis"
    LEVELDB = "leveldb"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, kind: Union[str, "BackendKind"]) -> "BackendKind":
        """
        Resolve a backend kind from its enum member or string value.

        Raises:
            UnsupportedBackendError: If ``kind`` names no known backend
        """
        try:
            return cls(kind)
        except ValueError:
            raise UnsupportedBackendError(
                f"unsupported cache type: {kind!r}"
            ) from None


class Options(BaseModel):
    """
    Immutable construction options for a cache instance.

    Only the fields relevant to the selected backend are read:

    - redis: ``host``, ``port``, ``password``, ``db``, ``prefix``
    - leveldb: ``leveldb_path``, ``leveldb_batch_size``, ``prefix``
    - sqlite: ``sqlite_path`` (or :data:`MEMORY`), ``prefix``
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = "localhost"
    port: int = Field(default=6379, ge=1, le=65535)
    password: Optional[str] = None
    db: int = Field(default=0, ge=0)
    prefix: str = ""
    leveldb_path: str = "./leveldb"
    leveldb_batch_size: int = Field(default=100_000, ge=1)
    sqlite_path: str = MEMORY

    @field_validator("prefix")
    @classmethod
    def _prefix_owns_its_namespace(cls, value: str) -> str:
        return validate_prefix(value)

    @classmethod
    def defaults_for(cls, kind: Union[str, BackendKind]) -> "Options":
        """
        Options used when a cache is constructed without explicit options.

        Args:
            kind: Backend kind the defaults are for

        Returns:
            Default options for that backend
        """
        kind = BackendKind.parse(kind)
        if kind is BackendKind.REDIS:
            return cls(host="localhost", port=6379, prefix="dev", db=0)
        if kind is BackendKind.LEVELDB:
            return cls(leveldb_path="./leveldb")
        return cls(sqlite_path=MEMORY)


class CacheConfig:
    """
    Global cache configuration holder.

    Holds the process-wide default cache used by the cache decorators when
    they are not given an explicit ``cache=``.
    """

    _backend: Optional[BaseCacheBackend] = None
    _initialized: bool = False

    @classmethod
    def init(cls, backend: BaseCacheBackend) -> None:
        """
        Initialize the cache configuration.

        This MUST be called once at application startup.

        Args:
            backend: Cache instance (e.g. one returned by ``polycache.new``)

        Raises:
            CacheConfigError: If backend is invalid or config already initialized
        """
        if cls._initialized:
            raise CacheConfigError("CacheConfig is already initialized.")

        if not isinstance(backend, BaseCacheBackend):
            raise CacheConfigError(
                "Provided backend does not implement BaseCacheBackend."
            )

        cls._backend = backend
        cls._initialized = True

    @classmethod
    def is_initialized(cls) -> bool:
        """Check whether the cache configuration is initialized."""
        return cls._initialized

    @classmethod
    def get_backend(cls) -> BaseCacheBackend:
        """
        Get the configured cache backend.

        Raises:
            CacheConfigError: If config is not initialized

        Returns:
            Configured cache backend
        """
        if not cls._initialized or cls._backend is None:
            raise CacheConfigError(
                "CacheConfig is not initialized. Call CacheConfig.init() first."
            )
        return cls._backend

    @classmethod
    def reset(cls) -> None:
        """
        Reset cache configuration.

        Intended for testing ONLY.
        """
        cls._backend = None
        cls._initialized = False

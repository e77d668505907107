# polycache/factory.py

import logging
from typing import Optional, Union

from polycache.backend.base import BaseCacheBackend
from polycache.config import BackendKind, Options

logger = logging.getLogger(__name__)


def new(
    kind: Union[str, BackendKind],
    options: Optional[Options] = None,
) -> BaseCacheBackend:
    """
    Build a cache instance for the given backend kind.

    The instance owns its store connection until :meth:`close` is awaited.

    :param kind: ``"redis"``, ``"leveldb"`` or ``"sqlite"`` (or a BackendKind).
    :param options: Construction options; per-kind defaults when omitted.
    :return: A cache implementing BaseCacheBackend.
    :raises UnsupportedBackendError: If ``kind`` is not a known backend.
    :raises BackendError: If an embedded store cannot be opened.
    """
    kind = BackendKind.parse(kind)
    if options is None:
        options = Options.defaults_for(kind)

    logger.debug("creating %s cache (prefix=%r)", kind.value, options.prefix)

    if kind is BackendKind.REDIS:
        from polycache.backend.redis import RedisCacheBackend
        return RedisCacheBackend.from_options(options)

    if kind is BackendKind.LEVELDB:
        try:
            from polycache.backend.leveldb import LevelDBCacheBackend
        except ImportError as exc:
            raise ImportError(
                "LevelDB backend requires 'plyvel'. "
                "Install with: pip install polycache[leveldb]"
            ) from exc
        return LevelDBCacheBackend.from_options(options)

    from polycache.backend.sqlite import SQLiteCacheBackend
    return SQLiteCacheBackend.from_options(options)


__all__ = ["new"]

"""Pytest configuration and fixtures for polycache tests."""

import sqlite3

import pytest

from polycache.backend.sqlite import SQLiteCacheBackend
from polycache.config import CacheConfig

BACKENDS = ["redis", "leveldb", "sqlite"]


@pytest.fixture(autouse=True)
def _reset_cache_config():
    CacheConfig.reset()
    yield
    CacheConfig.reset()


@pytest.fixture(params=BACKENDS)
async def make_cache(request, tmp_path):
    """Factory building caches that share one underlying store.

    ``make_cache(prefix)`` returns a new cache instance with its own prefix
    over the same store, so namespace isolation can be observed.
    """
    kind = request.param
    created = []

    if kind == "redis":
        fakeredis = pytest.importorskip("fakeredis")
        from polycache.backend.redis import RedisCacheBackend

        server = fakeredis.FakeServer()

        def make(prefix="test_cache", **kwargs):
            client = fakeredis.FakeAsyncRedis(server=server)
            cache = RedisCacheBackend(client, key_prefix=prefix, **kwargs)
            created.append(cache)
            return cache

        yield make
        for cache in created:
            await cache.close()

    elif kind == "leveldb":
        plyvel = pytest.importorskip("plyvel")
        from polycache.backend.leveldb import LevelDBCacheBackend

        db = plyvel.DB(str(tmp_path / "leveldb"), create_if_missing=True)

        def make(prefix="test_cache", **kwargs):
            cache = LevelDBCacheBackend(db, key_prefix=prefix, **kwargs)
            created.append(cache)
            return cache

        yield make
        if not db.closed:
            db.close()

    else:
        conn = sqlite3.connect(":memory:", isolation_level=None)

        def make(prefix="test_cache", **kwargs):
            cache = SQLiteCacheBackend(conn, key_prefix=prefix, **kwargs)
            created.append(cache)
            return cache

        yield make
        conn.close()


@pytest.fixture
def cache(make_cache):
    return make_cache("test_cache")


@pytest.fixture
async def memory_cache():
    conn = sqlite3.connect(":memory:", isolation_level=None)
    cache = SQLiteCacheBackend(conn, key_prefix="test")
    yield cache
    await cache.close()

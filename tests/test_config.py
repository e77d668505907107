"""Tests for Options, backend selection and the global cache holder."""

import sqlite3

import pytest
from pydantic import ValidationError

import polycache
from polycache.backend.sqlite import SQLiteCacheBackend
from polycache.config import MEMORY, BackendKind, CacheConfig, Options
from polycache.exceptions import CacheConfigError, UnsupportedBackendError


def test_options_are_immutable():
    options = Options(prefix="a")
    with pytest.raises(ValidationError):
        options.prefix = "b"


def test_options_reject_unknown_fields():
    with pytest.raises(ValidationError):
        Options(server="localhost")


@pytest.mark.parametrize("field,value", [("port", 0), ("port", 70000), ("db", -1), ("leveldb_batch_size", 0)])
def test_options_validate_ranges(field, value):
    with pytest.raises(ValidationError):
        Options(**{field: value})


@pytest.mark.parametrize("prefix", ["a*", "a?", "[a]"])
def test_options_reject_glob_prefix(prefix):
    with pytest.raises(ValidationError):
        Options(prefix=prefix)


@pytest.mark.parametrize("prefix", ["app:v2", ":", "app:"])
def test_options_reject_separator_in_prefix(prefix):
    with pytest.raises(ValidationError):
        Options(prefix=prefix)


@pytest.mark.parametrize("prefix", ["app:v2", "a*"])
def test_backend_rejects_reserved_prefix(prefix):
    conn = sqlite3.connect(MEMORY, isolation_level=None)
    try:
        with pytest.raises(ValueError):
            SQLiteCacheBackend(conn, key_prefix=prefix)
    finally:
        conn.close()


def test_defaults_per_backend():
    assert Options.defaults_for("redis").prefix == "dev"
    assert Options.defaults_for("redis").port == 6379
    assert Options.defaults_for(BackendKind.LEVELDB).leveldb_path == "./leveldb"
    assert Options.defaults_for("sqlite").sqlite_path == MEMORY


def test_backend_kind_parse():
    assert BackendKind.parse("redis") is BackendKind.REDIS
    assert BackendKind.parse(BackendKind.SQLITE) is BackendKind.SQLITE
    with pytest.raises(UnsupportedBackendError):
        BackendKind.parse("fish")


def test_new_rejects_unknown_backend():
    with pytest.raises(UnsupportedBackendError):
        polycache.new("fish")
    with pytest.raises(ValueError):
        polycache.new("memcached", Options())


async def test_new_redis_uses_defaults():
    cache = polycache.new("redis")
    try:
        assert cache.prefix == "dev"
        kwargs = cache.client.connection_pool.connection_kwargs
        assert (kwargs["host"], kwargs["port"], kwargs["db"]) == ("localhost", 6379, 0)
    finally:
        await cache.close()


async def test_cache_config_holds_backend(memory_cache):
    assert not CacheConfig.is_initialized()
    with pytest.raises(CacheConfigError):
        CacheConfig.get_backend()

    CacheConfig.init(memory_cache)
    assert CacheConfig.is_initialized()
    assert CacheConfig.get_backend() is memory_cache

    with pytest.raises(CacheConfigError):
        CacheConfig.init(memory_cache)


def test_cache_config_rejects_non_backend():
    with pytest.raises(CacheConfigError):
        CacheConfig.init(object())


async def test_new_returns_base_backend():
    cache = polycache.new(BackendKind.SQLITE, Options(prefix="x"))
    try:
        assert isinstance(cache, SQLiteCacheBackend)
        assert isinstance(cache, polycache.BaseCacheBackend)
        assert repr(cache) == "<SQLiteCacheBackend prefix='x' open>"
    finally:
        await cache.close()

"""Tests for ``polycache.backend.sqlite.SQLiteCacheBackend``."""

import asyncio
import sqlite3

import pytest

import polycache
from polycache.backend.sqlite import SQLiteCacheBackend
from polycache.config import MEMORY, Options
from polycache.exceptions import BackendError, BulkDeleteError
from polycache.serializer import decode


class FlakyConnection:
    """Delegates to a sqlite3 connection but fails deletes of one key."""

    def __init__(self, conn, fail_key):
        self._conn = conn
        self._fail_key = fail_key

    def execute(self, sql, params=()):
        if sql.startswith("DELETE") and params and params[0] == self._fail_key:
            raise sqlite3.OperationalError("disk I/O error")
        return self._conn.execute(sql, params)

    def close(self):
        self._conn.close()


@pytest.fixture
def conn():
    conn = sqlite3.connect(":memory:", isolation_level=None)
    yield conn
    conn.close()


def _rows(conn):
    return conn.execute(
        "SELECT key, expires_at FROM cache_entries ORDER BY key"
    ).fetchall()


async def test_rows_are_stored_under_namespaced_keys(conn):
    cache = SQLiteCacheBackend(conn, key_prefix="test_cache")
    await cache.set("foo", "bar", ttl=60)
    await cache.set("plain", 1)

    rows = dict(_rows(conn))
    assert set(rows) == {"test_cache:foo", "test_cache:plain"}
    assert rows["test_cache:foo"] is not None
    assert rows["test_cache:plain"] is None

    (value,) = conn.execute(
        "SELECT value FROM cache_entries WHERE key = 'test_cache:foo'"
    ).fetchone()
    assert decode(value) == {"foo": "bar"}


async def test_ordered_scan_stops_past_prefix(conn):
    cache = SQLiteCacheBackend(conn, key_prefix="p")
    for key in ("a", "ab", "abc", "b", "ba"):
        await cache.set(key, key)

    assert cache._scan_prefix("p:a") == ["p:a", "p:ab", "p:abc"]
    assert cache._scan_prefix("p:z") == []


async def test_failed_delete_is_reported_and_rest_deleted(conn):
    for key in ("alpha", "beta", "gamma"):
        await SQLiteCacheBackend(conn, key_prefix="p").set(key, key)

    cache = SQLiteCacheBackend(FlakyConnection(conn, "p:beta"), key_prefix="p")

    with pytest.raises(BulkDeleteError) as exc_info:
        await cache.empty()

    assert exc_info.value.failed_keys == ["p:beta"]
    assert isinstance(exc_info.value.errors[0], sqlite3.OperationalError)
    assert [k for k, _ in _rows(conn)] == ["p:beta"]


async def test_sweep_expired(conn):
    cache = SQLiteCacheBackend(conn, key_prefix="p")
    other = SQLiteCacheBackend(conn, key_prefix="q")
    await cache.set("short", 1, ttl=0.001)
    await cache.set("long", 2, ttl=60)
    await cache.set("forever", 3)
    await other.set("short", 4, ttl=0.001)
    await asyncio.sleep(0.05)

    assert await cache.sweep_expired() == 1

    assert [k for k, _ in _rows(conn)] == ["p:forever", "p:long", "q:short"]


async def test_engine_errors_are_wrapped(conn):
    cache = SQLiteCacheBackend(conn, key_prefix="p")
    conn.execute("DROP TABLE cache_entries")

    with pytest.raises(BackendError) as exc_info:
        await cache.get("foo")
    assert isinstance(exc_info.value.__cause__, sqlite3.Error)
    assert await cache.has("foo") is False


async def test_failed_write_rolls_back(conn):
    cache = SQLiteCacheBackend(conn, key_prefix="p")
    conn.execute("DROP TABLE cache_entries")

    with pytest.raises(BackendError):
        await cache.set("foo", "bar")
    assert not conn.in_transaction


async def test_factory_defaults_to_memory():
    cache = polycache.new("sqlite")
    try:
        assert isinstance(cache, SQLiteCacheBackend)
        await cache.set("foo", "bar")
        assert await cache.get("foo") == "bar"
    finally:
        await cache.close()


async def test_factory_file_database_persists(tmp_path):
    path = tmp_path / "nested" / "cache.db"
    options = Options(sqlite_path=str(path), prefix="app")

    cache = polycache.new("sqlite", options)
    await cache.set("foo", "bar")
    await cache.close()
    assert path.exists()

    reopened = polycache.new("sqlite", options)
    try:
        assert await reopened.get("foo") == "bar"
    finally:
        await reopened.close()


async def test_memory_databases_are_private():
    first = polycache.new("sqlite", Options(sqlite_path=MEMORY))
    second = polycache.new("sqlite", Options(sqlite_path=MEMORY))
    try:
        await first.set("foo", "bar")
        assert await second.has("foo") is False
    finally:
        await first.close()
        await second.close()

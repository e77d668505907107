"""Tests for the cacheable / cache_evict decorators."""

import pytest

from polycache import CacheConfig, cache_evict, cacheable
from polycache.exceptions import CacheNotInitializedError, NotFoundError
from polycache.key_builder import DefaultKeyBuilder


async def test_cacheable_calls_function_once(memory_cache):
    calls = []

    @cacheable(namespace="users", ttl=30, cache=memory_cache)
    async def get_user(user_id: int) -> dict:
        calls.append(user_id)
        return {"user_id": user_id}

    assert await get_user(1) == {"user_id": 1}
    assert await get_user(1) == {"user_id": 1}
    assert await get_user(2) == {"user_id": 2}
    assert calls == [1, 2]


async def test_cacheable_caches_none(memory_cache):
    calls = []

    @cacheable(namespace="n", cache=memory_cache)
    async def lookup() -> None:
        calls.append(1)
        return None

    assert await lookup() is None
    assert await lookup() is None
    assert len(calls) == 1


async def test_cacheable_uses_global_config(memory_cache):
    CacheConfig.init(memory_cache)

    @cacheable(namespace="users", key="get_user")
    async def get_user(user_id: int) -> dict:
        return {"user_id": user_id}

    await get_user(7)

    builder = DefaultKeyBuilder("users", "get_user")
    assert await memory_cache.get(builder.build(get_user, (7,), {})) == {"user_id": 7}


async def test_cacheable_requires_initialized_config():
    @cacheable(namespace="users")
    async def get_user(user_id: int) -> dict:
        return {"user_id": user_id}

    with pytest.raises(CacheNotInitializedError):
        await get_user(1)


def test_decorators_require_async_functions():
    with pytest.raises(TypeError):
        @cacheable(namespace="x")
        def sync_func():
            return 1

    with pytest.raises(TypeError):
        @cache_evict(namespace="x")
        def sync_evict():
            return 1


async def test_condition_and_unless(memory_cache):
    calls = []

    @cacheable(
        namespace="calc",
        cache=memory_cache,
        condition=lambda n: n > 0,
        unless=lambda result: result == 4,
    )
    async def square(n: int) -> int:
        calls.append(n)
        return n * n

    await square(-1)
    await square(-1)
    await square(2)
    await square(2)
    await square(3)
    await square(3)

    assert calls == [-1, -1, 2, 2, 3]


async def test_cache_evict_forgets_matching_entry(memory_cache):
    calls = []

    @cacheable(namespace="users", key="get_user", cache=memory_cache)
    async def get_user(user_id: int) -> dict:
        calls.append(user_id)
        return {"user_id": user_id}

    @cache_evict(namespace="users", key="get_user", cache=memory_cache)
    async def update_user(user_id: int) -> bool:
        return True

    await get_user(1)
    await get_user(2)
    await update_user(1)
    await get_user(1)
    await get_user(2)

    assert calls == [1, 2, 1]


async def test_cache_evict_all_entries_is_scoped_to_namespace(memory_cache):
    @cacheable(namespace="users", cache=memory_cache)
    async def get_user(user_id: int) -> int:
        return user_id

    @cache_evict(namespace="users", all_entries=True, cache=memory_cache)
    async def reset_users() -> None:
        return None

    await get_user(1)
    await memory_cache.set("users2:keep", "kept")
    await memory_cache.set("orders:keep", "kept")

    await reset_users()

    builder = DefaultKeyBuilder("users")
    with pytest.raises(NotFoundError):
        await memory_cache.get(builder.build(get_user, (1,), {}))
    assert await memory_cache.get("users2:keep") == "kept"
    assert await memory_cache.get("orders:keep") == "kept"


async def test_cache_failure_falls_back_to_function(memory_cache):
    await memory_cache.close()

    @cacheable(namespace="users", cache=memory_cache)
    async def get_user(user_id: int) -> int:
        return user_id

    assert await get_user(5) == 5


def test_key_builder_excludes_request_params():
    async def handler(user_id: int, request=None):
        return user_id

    builder = DefaultKeyBuilder("ns")
    assert builder.build(handler, (1,), {"request": object()}) == builder.build(handler, (1,), {})
    assert builder.build(handler, (1,), {}) != builder.build(handler, (2,), {})
    assert builder.build(handler, (1,), {}).startswith("ns:")

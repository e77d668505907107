from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, ParamSpec, TypeVar, cast

from polycache.backend.base import TTL, BaseCacheBackend
from polycache.config import CacheConfig
from polycache.exceptions import CacheNotInitializedError, NotFoundError
from polycache.key_builder import DefaultKeyBuilder, KeyBuilder

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

Condition = Callable[..., bool] | Callable[..., Awaitable[bool]]
Unless = Callable[[Any], bool] | Callable[[Any], Awaitable[bool]]


def _resolve_cache(cache: Optional[BaseCacheBackend]) -> BaseCacheBackend:
	if cache is not None:
		return cache
	if not CacheConfig.is_initialized():
		raise CacheNotInitializedError(
			"CacheConfig is not initialized. Call CacheConfig.init(...) at startup "
			"or pass cache= to the decorator."
		)
	return CacheConfig.get_backend()


def _ensure_async(func: Callable[..., Any]) -> None:
	if not inspect.iscoroutinefunction(func):
		raise TypeError(
			f"Cache decorators require an async function; got {func.__qualname__}."
		)


async def _maybe_await_bool(value: bool | Awaitable[bool]) -> bool:
	if inspect.isawaitable(value):
		return bool(await value)
	return bool(value)


def cacheable(
	*,
	namespace: str,
	key: Optional[str] = None,
	ttl: TTL = None,
	key_builder: Optional[KeyBuilder] = None,
	condition: Optional[Condition] = None,
	unless: Optional[Unless] = None,
	excluded_params: Optional[set[str]] = None,
	cache: Optional[BaseCacheBackend] = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
	"""Read-through cache decorator.

	Reads from the cache first; on a miss runs the coroutine and stores its
	result under ``namespace:...``. Cache failures are logged and bypassed.
	"""
	builder = key_builder or DefaultKeyBuilder(namespace, key, excluded_params)

	def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
		_ensure_async(func)

		@functools.wraps(func)
		async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
			backend = _resolve_cache(cache)

			if condition is not None:
				if not await _maybe_await_bool(condition(*args, **kwargs)):
					logger.debug(
						"cacheable(%s): condition false; bypass cache for %s",
						namespace,
						func.__qualname__,
					)
					return await func(*args, **kwargs)

			cache_key = builder.build(
				func, cast(tuple[Any, ...], args), cast(dict[str, Any], kwargs)
			)

			try:
				return cast(R, await backend.get(cache_key))
			except NotFoundError:
				pass
			except Exception:
				logger.exception("cacheable(%s): cache get failed", namespace)

			result = await func(*args, **kwargs)

			if unless is not None and await _maybe_await_bool(unless(result)):
				return result

			try:
				await backend.set(cache_key, result, ttl=ttl)
			except Exception:
				logger.exception("cacheable(%s): cache set failed", namespace)

			return result

		return wrapper

	return decorator


def cache_evict(
	*,
	namespace: str,
	key: Optional[str] = None,
	all_entries: bool = False,
	before_invocation: bool = False,
	key_builder: Optional[KeyBuilder] = None,
	condition: Optional[Condition] = None,
	excluded_params: Optional[set[str]] = None,
	cache: Optional[BaseCacheBackend] = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
	"""Cache eviction decorator.

	Forgets the entry :func:`cacheable` would have written for the same
	arguments, or every entry of ``namespace`` when ``all_entries`` is set.
	"""
	builder = key_builder or DefaultKeyBuilder(namespace, key, excluded_params)

	def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
		_ensure_async(func)

		async def _evict(backend: BaseCacheBackend, *args: Any, **kwargs: Any) -> None:
			if all_entries:
				await backend.empty_by_match(f"{namespace}:")
				return
			await backend.forget(builder.build(func, args, kwargs))

		@functools.wraps(func)
		async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
			backend = _resolve_cache(cache)

			if condition is not None:
				if not await _maybe_await_bool(condition(*args, **kwargs)):
					return await func(*args, **kwargs)

			if before_invocation:
				try:
					await _evict(backend, *args, **kwargs)
				except Exception:
					logger.exception("cache_evict(%s): eviction failed before invocation", namespace)

			result = await func(*args, **kwargs)

			if not before_invocation:
				try:
					await _evict(backend, *args, **kwargs)
				except Exception:
					logger.exception("cache_evict(%s): eviction failed after invocation", namespace)

			return result

		return wrapper

	return decorator


__all__ = ["cacheable", "cache_evict"]

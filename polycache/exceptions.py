from typing import Any, Iterable, Optional


class CacheError(RuntimeError):
	"""Base exception for cache-related errors."""


class CacheNotInitializedError(CacheError):
	"""Raised when cache decorators are used before CacheConfig.init()."""


class CacheConfigError(CacheError):
	"""Raised when there is a configuration error in the cache setup."""


class NotFoundError(CacheError, KeyError):
	"""Raised when a key is absent from the cache or has expired."""

	def __init__(self, key: str) -> None:
		super().__init__(f"key not found in cache: {key!r}")
		self.key = key

	def __str__(self) -> str:
		return self.args[0]


class EncodeError(CacheError):
	"""Raised when a value cannot be serialized for storage."""


class DecodeError(CacheError):
	"""Raised when stored bytes are malformed, truncated or not a cache entry."""


class TypeMismatchError(CacheError, TypeError):
	"""Raised when a typed accessor finds a value of a different type."""

	def __init__(self, key: str, expected: type, actual: Any) -> None:
		super().__init__(
			f"value for {key!r} is {type(actual).__name__}, not {expected.__name__}"
		)
		self.key = key
		self.expected = expected
		self.actual = actual


class BackendError(CacheError):
	"""Raised when the underlying store fails (I/O, network, corruption)."""


class BulkDeleteError(BackendError):
	"""Raised when some deletions of an empty/empty_by_match call failed.

	The remaining deletions were still attempted.
	"""

	def __init__(
		self,
		failed_keys: Iterable[str],
		errors: Optional[Iterable[BaseException]] = None,
	) -> None:
		self.failed_keys = list(failed_keys)
		self.errors = list(errors or ())
		super().__init__(
			f"failed to delete {len(self.failed_keys)} key(s): "
			+ ", ".join(repr(k) for k in self.failed_keys[:10])
			+ (" ..." if len(self.failed_keys) > 10 else "")
		)


class UnsupportedBackendError(CacheError, ValueError):
	"""Raised when an unknown backend kind is requested."""


class ClosedError(CacheError):
	"""Raised when a cache is used after close()."""


__all__ = [
	"CacheError",
	"CacheNotInitializedError",
	"CacheConfigError",
	"NotFoundError",
	"EncodeError",
	"DecodeError",
	"TypeMismatchError",
	"BackendError",
	"BulkDeleteError",
	"UnsupportedBackendError",
	"ClosedError",
]

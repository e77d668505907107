from polycache.backend.base import BaseCacheBackend
from polycache.config import MEMORY, BackendKind, CacheConfig, Options
from polycache.decorators import cache_evict, cacheable
from polycache.exceptions import (
	BackendError,
	BulkDeleteError,
	CacheConfigError,
	CacheError,
	CacheNotInitializedError,
	ClosedError,
	DecodeError,
	EncodeError,
	NotFoundError,
	TypeMismatchError,
	UnsupportedBackendError,
)
from polycache.factory import new
from polycache.key_builder import DefaultKeyBuilder, KeyBuilder
from polycache.serializer import CacheEntry, decode, encode

__version__ = "0.1.0"

__all__ = [
	"new",
	"BackendKind",
	"BaseCacheBackend",
	"Options",
	"MEMORY",
	"CacheConfig",
	"CacheEntry",
	"encode",
	"decode",
	"cacheable",
	"cache_evict",
	"DefaultKeyBuilder",
	"KeyBuilder",
	"CacheError",
	"CacheConfigError",
	"CacheNotInitializedError",
	"NotFoundError",
	"EncodeError",
	"DecodeError",
	"TypeMismatchError",
	"BackendError",
	"BulkDeleteError",
	"UnsupportedBackendError",
	"ClosedError",
]

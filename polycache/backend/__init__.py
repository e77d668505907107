from polycache.backend.base import (
    BaseCacheBackend,
    normalize_ttl,
    ttl_millis,
    validate_prefix,
)

__all__ = ["BaseCacheBackend", "normalize_ttl", "ttl_millis", "validate_prefix"]

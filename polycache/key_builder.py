# polycache/key_builder.py

from __future__ import annotations

import hashlib
import inspect
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Protocol
from uuid import UUID

from pydantic import BaseModel

DEFAULT_EXCLUDED_PARAMS = frozenset({"self", "cls", "request", "response", "db", "session"})


class KeyBuilder(Protocol):
    """
    Interface for cache key builders used by the cache decorators.
    """

    def build(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> str:
        """
        Build a logical cache key for one call of ``func``.

        :param func: The target function being cached.
        :param args: Positional arguments passed to the function.
        :param kwargs: Keyword arguments passed to the function.
        :return: A string representing the cache key.
        """
        ...


class DefaultKeyBuilder:
    """
    Builds ``namespace:function-id:argument-hash`` keys.

    The namespace comes first so that ``cache.empty_by_match(namespace)``
    drops every entry a decorator wrote.
    """

    def __init__(
        self,
        namespace: str,
        key: Optional[str] = None,
        excluded_params: Optional[Iterable[str]] = None,
    ) -> None:
        self.namespace = namespace
        self.key = key
        self.excluded_params = (
            frozenset(excluded_params)
            if excluded_params is not None
            else DEFAULT_EXCLUDED_PARAMS
        )

    def build(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> str:
        key_id = self.key or f"{func.__module__}.{func.__qualname__}"
        arguments = self.bind_arguments(func, args, kwargs)
        return f"{self.namespace}:{key_id}:{self._hash(arguments)}"

    def bind_arguments(
        self,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Bind call arguments to parameter names, apply defaults and drop
        excluded parameters (request objects, sessions, ``self``).
        """
        bound = inspect.signature(func).bind_partial(*args, **kwargs)
        bound.apply_defaults()
        return {
            name: value
            for name, value in bound.arguments.items()
            if name not in self.excluded_params
        }

    def _make_json_safe(self, obj: Any) -> Any:
        if isinstance(obj, (str, int, float, bool)) or obj is None:
            return obj

        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()

        if isinstance(obj, (UUID, Decimal)):
            return str(obj)

        if isinstance(obj, Enum):
            return self._make_json_safe(obj.value)

        if isinstance(obj, bytes):
            return obj.hex()

        if isinstance(obj, BaseModel):
            return self._make_json_safe(obj.model_dump())

        if is_dataclass(obj) and not isinstance(obj, type):
            return self._make_json_safe(asdict(obj))

        if isinstance(obj, (set, frozenset)):
            return sorted((self._make_json_safe(item) for item in obj), key=repr)

        if isinstance(obj, (list, tuple)):
            return [self._make_json_safe(item) for item in obj]

        if isinstance(obj, dict):
            return {str(k): self._make_json_safe(v) for k, v in obj.items()}

        # Fallback to string representation for unsupported types
        return repr(obj)

    def _hash(self, data: dict[str, Any]) -> str:
        """
        Generate a SHA256 hash of the given arguments.
        :param data: Bound arguments
        :return: Hexadecimal hash string
        """
        raw = json.dumps(self._make_json_safe(data), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

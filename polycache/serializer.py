"""
Value codec shared by every cache backend.

A value is never stored bare: it is wrapped in a single-pair ``CacheEntry``
(``{key: value}``) and packed with MessagePack. Types MessagePack does not know
natively are carried as tagged maps so they decode back to the same Python type,
including datetimes, Pydantic models and dataclasses.
"""

from datetime import datetime, date, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict
from uuid import UUID

import msgpack

from polycache.exceptions import DecodeError, EncodeError

try:
    from pydantic import BaseModel
    PYDANTIC_AVAILABLE = True
except ImportError:
    PYDANTIC_AVAILABLE = False


CacheEntry = Dict[str, Any]

TYPE_TAG = "__type__"

_INT_MIN = -(2 ** 63)
_UINT_MAX = 2 ** 64 - 1


def _encode_default(obj: Any) -> Any:
    """
    Convert a value MessagePack cannot pack natively into a tagged map.

    Called by ``msgpack.packb`` with ``strict_types=True``, so subclasses of the
    native types (enums deriving from ``str``/``int``, tuples, ``OrderedDict``)
    are routed here as well.

    :param obj: Object to convert
    :return: A packable representation of the object
    :raises TypeError: If the object type is not supported
    """
    if isinstance(obj, Enum):
        return {TYPE_TAG: "enum", "module": obj.__class__.__module__,
                "name": obj.__class__.__qualname__, "value": obj.value}

    # datetime must be checked before date, it is a subclass
    if isinstance(obj, datetime):
        return {TYPE_TAG: "datetime", "value": obj.isoformat()}

    if isinstance(obj, date):
        return {TYPE_TAG: "date", "value": obj.isoformat()}

    if isinstance(obj, time):
        return {TYPE_TAG: "time", "value": obj.isoformat()}

    if isinstance(obj, timedelta):
        return {TYPE_TAG: "timedelta",
                "value": [obj.days, obj.seconds, obj.microseconds]}

    # msgpack integers are limited to the int64/uint64 range
    if type(obj) is int and not _INT_MIN <= obj <= _UINT_MAX:
        return {TYPE_TAG: "int", "value": str(obj)}

    if isinstance(obj, UUID):
        return {TYPE_TAG: "uuid", "value": str(obj)}

    if isinstance(obj, Decimal):
        return {TYPE_TAG: "decimal", "value": str(obj)}

    if isinstance(obj, tuple):
        return {TYPE_TAG: "tuple", "value": list(obj)}

    if isinstance(obj, frozenset):
        return {TYPE_TAG: "frozenset", "value": list(obj)}

    if isinstance(obj, set):
        return {TYPE_TAG: "set", "value": list(obj)}

    if PYDANTIC_AVAILABLE and isinstance(obj, BaseModel):
        return {
            TYPE_TAG: "pydantic",
            "module": obj.__class__.__module__,
            "name": obj.__class__.__qualname__,
            "value": obj.model_dump(),
        }

    if hasattr(obj, "__dataclass_fields__") and not isinstance(obj, type):
        from dataclasses import fields
        return {
            TYPE_TAG: "dataclass",
            "module": obj.__class__.__module__,
            "name": obj.__class__.__qualname__,
            "value": {f.name: getattr(obj, f.name) for f in fields(obj)},
        }

    # Subclasses of the native containers and scalars
    if isinstance(obj, dict):
        return dict(obj)
    if isinstance(obj, list):
        return list(obj)
    if isinstance(obj, bool):
        return bool(obj)
    if isinstance(obj, int):
        return int(obj)
    if isinstance(obj, float):
        return float(obj)
    if isinstance(obj, str):
        return str(obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes(obj)

    raise TypeError(f"unsupported value type: {type(obj).__qualname__}")


def _import_path(module_path: str, qualname: str) -> Any:
    module = __import__(module_path, fromlist=[qualname.split(".")[0]])
    target: Any = module
    for part in qualname.split("."):
        target = getattr(target, part)
    return target


def _decode_object_hook(obj: dict) -> Any:
    """
    MessagePack object hook restoring tagged maps to their Python types.

    :param obj: Map to decode
    :return: Decoded Python object
    """
    if TYPE_TAG not in obj:
        return obj

    obj_type = obj[TYPE_TAG]
    value = obj.get("value")

    if obj_type == "datetime":
        return datetime.fromisoformat(value)

    if obj_type == "date":
        return date.fromisoformat(value)

    if obj_type == "time":
        return time.fromisoformat(value)

    if obj_type == "timedelta":
        days, seconds, microseconds = value
        return timedelta(days=days, seconds=seconds, microseconds=microseconds)

    if obj_type == "int":
        return int(value)

    if obj_type == "uuid":
        return UUID(value)

    if obj_type == "decimal":
        return Decimal(value)

    if obj_type == "tuple":
        return tuple(value)

    if obj_type == "set":
        return set(value)

    if obj_type == "frozenset":
        return frozenset(value)

    if obj_type == "enum":
        try:
            enum_class = _import_path(obj["module"], obj["name"])
            return enum_class(value)
        except (ImportError, AttributeError, ValueError):
            # If we can't import the enum, return the value
            return value

    if obj_type == "pydantic" and PYDANTIC_AVAILABLE:
        try:
            model_class = _import_path(obj["module"], obj["name"])
        except (ImportError, AttributeError):
            return value
        return model_class.model_validate(value)

    if obj_type == "dataclass":
        try:
            dataclass_type = _import_path(obj["module"], obj["name"])
        except (ImportError, AttributeError):
            return value
        return dataclass_type(**value)

    return obj


def encode(entry: CacheEntry) -> bytes:
    """
    Serialize a single-pair cache entry to bytes.

    :param entry: Mapping of exactly one logical key to its value
    :return: Serialized bytes
    :raises EncodeError: If the entry is malformed or holds an unsupported type
    """
    if not isinstance(entry, dict) or len(entry) != 1:
        raise EncodeError("a cache entry must hold exactly one key/value pair")

    try:
        return msgpack.packb(
            entry,
            default=_encode_default,
            use_bin_type=True,
            strict_types=True,
        )
    except (TypeError, ValueError, OverflowError) as e:
        raise EncodeError(f"Failed to encode cache entry: {e}") from e


def decode(data: bytes) -> CacheEntry:
    """
    Deserialize bytes produced by :func:`encode`.

    :param data: Serialized bytes
    :return: The decoded single-pair cache entry
    :raises DecodeError: If the input is malformed, truncated or not an entry
    """
    try:
        entry = msgpack.unpackb(
            data,
            raw=False,
            object_hook=_decode_object_hook,
            strict_map_key=False,
        )
    except Exception as e:
        raise DecodeError(f"Failed to decode cache entry: {e}") from e

    if not isinstance(entry, dict) or len(entry) != 1:
        raise DecodeError("decoded payload is not a single-pair cache entry")
    return entry


def pack_value(key: str, value: Any) -> bytes:
    """
    Wrap ``value`` in an entry for ``key`` and encode it.

    :param key: Logical (un-prefixed) key
    :param value: Value to store
    :return: Serialized bytes
    """
    return encode({key: value})


def unpack_value(key: str, data: bytes) -> Any:
    """
    Decode ``data`` and return the value stored for ``key``.

    :param key: Logical (un-prefixed) key the value was stored under
    :param data: Serialized bytes
    :return: The original value
    :raises DecodeError: If the bytes don't decode or belong to another key
    """
    entry = decode(data)
    if key not in entry:
        raise DecodeError(f"cache entry does not belong to key {key!r}")
    return entry[key]


__all__ = [
    "CacheEntry",
    "encode",
    "decode",
    "pack_value",
    "unpack_value",
]

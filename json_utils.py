"""
Optimized JSON utilities using orjson for the Huly Storage Bridge
=================================================================

Provides a json-module-like interface backed by orjson. Pydantic models are
serialized by alias so tool responses keep their wire field names.
"""

import orjson
from typing import Any, Callable, Optional

from pydantic import BaseModel


def _default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True, mode="json")
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, BaseException):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dumps(obj: Any, indent: Optional[int] = None, default: Optional[Callable[[Any], Any]] = None) -> str:
    """
    Serialize obj to a JSON string using orjson

    Args:
        obj: Object to serialize
        indent: Any non-None value enables two-space pretty printing
        default: Callable for objects orjson cannot serialize; falls back to
            the pydantic-aware handler when omitted

    Returns:
        JSON string (orjson returns bytes, this returns str)
    """
    option = orjson.OPT_SERIALIZE_UUID | orjson.OPT_NON_STR_KEYS
    if indent is not None:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(obj, default=default or _default, option=option).decode("utf-8")


def loads(s: Any) -> Any:
    """Deserialize a JSON str or bytes payload."""
    return orjson.loads(s)


def dump(obj: Any, fp, indent: Optional[int] = None) -> None:
    fp.write(dumps(obj, indent=indent))


def load(fp) -> Any:
    return loads(fp.read())


# Provide compatibility constants
JSONDecodeError = orjson.JSONDecodeError

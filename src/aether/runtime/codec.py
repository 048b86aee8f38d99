"""
Conversion between runtime Values and JSON-compatible host data.

This is the only place values cross the engine boundary. Numbers that
are integral leave as ints so hosts see 30 rather than 30.0.
"""

import json
import math
from typing import Any, Optional, Set

from .values import (
    Value, ValueKind, NULL, bool_val, number_val, string_val, list_val, map_val,
)
from ..errors import SerializationError, InvalidArgument


def _number_to_python(x: float):
    if math.isnan(x) or math.isinf(x):
        raise SerializationError(f"number {x!r} has no JSON representation")
    if x.is_integer():
        return int(x)
    return x


def to_python(value: Value) -> Any:
    """
    Convert a Value into plain Python data (None, bool, int, float, str,
    list, dict).

    Raises:
        SerializationError: the value is or contains a function
    """
    kind = value.kind
    if kind == ValueKind.NULL:
        return None
    if kind == ValueKind.BOOLEAN:
        return value.data
    if kind == ValueKind.NUMBER:
        return _number_to_python(value.data)
    if kind == ValueKind.STRING:
        return value.data
    if kind == ValueKind.LIST:
        return [to_python(v) for v in value.data]
    if kind == ValueKind.MAP:
        return {k: to_python(v) for k, v in value.data.items()}
    raise SerializationError("functions cannot be serialized")


def from_python(data: Any) -> Value:
    """
    Convert host data into a Value.

    Raises:
        SerializationError: cyclic or too deeply nested containers, integers
            beyond the double range, non-string map keys or unsupported types
    """
    try:
        return _from_python(data, set())
    except RecursionError:
        raise SerializationError("host value is nested too deeply") from None


def _from_python(data: Any, active: Set[int]) -> Value:
    if data is None:
        return NULL
    if isinstance(data, bool):
        return bool_val(data)
    if isinstance(data, (int, float)):
        try:
            return number_val(data)
        except OverflowError:
            raise SerializationError("integer is out of range for a number") from None
    if isinstance(data, str):
        return string_val(data)
    if isinstance(data, Value):
        return data

    if isinstance(data, (list, tuple, dict)):
        marker = id(data)
        if marker in active:
            raise SerializationError("cyclic structure cannot be converted")
        active.add(marker)
        try:
            if isinstance(data, dict):
                items = {}
                for key, item in data.items():
                    if not isinstance(key, str):
                        raise SerializationError(f"map keys must be strings, got {key!r}")
                    items[key] = _from_python(item, active)
                return map_val(items)
            return list_val(_from_python(item, active) for item in data)
        finally:
            active.discard(marker)

    raise SerializationError(f"unsupported host value of type {type(data).__name__}")


def to_json(value: Value, indent: Optional[int] = None) -> str:
    """Serialize a Value to JSON text."""
    try:
        return json.dumps(to_python(value), indent=indent, ensure_ascii=False)
    except RecursionError:
        raise SerializationError("value is nested too deeply to serialize") from None


def from_json(text: str) -> Value:
    """
    Parse JSON text into a Value.

    Raises:
        InvalidArgument: the text is not valid JSON
    """
    try:
        data = json.loads(text)
    except (TypeError, ValueError, RecursionError) as e:
        raise InvalidArgument(f"invalid JSON value: {e}")
    return from_python(data)

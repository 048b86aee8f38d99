"""
Runtime values for the Aether interpreter.

Every value the evaluator handles is a Value: a kind tag plus the Python
payload for that kind. Payloads:

- NULL: None
- BOOLEAN: bool
- NUMBER: float (all numbers are doubles)
- STRING: str
- LIST: tuple of Value
- MAP: dict of str -> Value, insertion ordered
- FUNCTION: Closure or BuiltinFunction

Lists and maps are never mutated in place; builtins return new values.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple, TYPE_CHECKING
import math

if TYPE_CHECKING:
    from ..ast import Block
    from .environment import Scope


class ValueKind(Enum):
    """Tag of a runtime value."""
    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    LIST = "list"
    MAP = "map"
    FUNCTION = "function"


@dataclass(frozen=True)
class Value:
    """A tagged runtime value."""
    kind: ValueKind
    data: Any

    def __repr__(self) -> str:
        return f"Value({self.kind.value}, {self.data!r})"

    def is_truthy(self) -> bool:
        """Check if this value is truthy in boolean context."""
        if self.kind == ValueKind.NULL:
            return False
        if self.kind == ValueKind.BOOLEAN:
            return self.data
        if self.kind == ValueKind.NUMBER:
            return self.data != 0.0 and not math.isnan(self.data)
        if self.kind in (ValueKind.STRING, ValueKind.LIST, ValueKind.MAP):
            return len(self.data) > 0
        # Functions are always truthy
        return True

    @property
    def type_name(self) -> str:
        return self.kind.value


@dataclass(eq=False)
class Closure:
    """
    A user-defined function: parameters, body and the scope it captured.

    Closures compare by identity; two definitions of the same text are
    different functions.
    """
    parameters: Tuple[str, ...]
    body: "Block"
    scope: "Scope"
    name: Optional[str] = None
    tail_recursive: bool = False

    @property
    def arity(self) -> int:
        return len(self.parameters)

    @property
    def display_name(self) -> str:
        return self.name or "<lambda>"

    def __repr__(self) -> str:
        return f"Closure({self.display_name}/{self.arity})"


# Shared singletons for the immutable scalar values
NULL = Value(ValueKind.NULL, None)
TRUE = Value(ValueKind.BOOLEAN, True)
FALSE = Value(ValueKind.BOOLEAN, False)


# Convenience constructors

def null_val() -> Value:
    """Create the Null value."""
    return NULL


def bool_val(b: bool) -> Value:
    """Create a boolean value."""
    return TRUE if b else FALSE


def number_val(x: float) -> Value:
    """Create a number value."""
    return Value(ValueKind.NUMBER, float(x))


def string_val(s: str) -> Value:
    """Create a string value."""
    return Value(ValueKind.STRING, str(s))


def list_val(items: Iterable[Value]) -> Value:
    """Create a list value from Values."""
    return Value(ValueKind.LIST, tuple(items))


def map_val(items: Dict[str, Value]) -> Value:
    """Create a map value from a str -> Value mapping."""
    return Value(ValueKind.MAP, dict(items))


def function_val(fn: Any) -> Value:
    """Wrap a Closure or BuiltinFunction."""
    return Value(ValueKind.FUNCTION, fn)


def literal_val(raw: Any) -> Value:
    """Convert a literal payload from the AST into a Value."""
    if raw is None:
        return NULL
    if isinstance(raw, bool):
        return bool_val(raw)
    if isinstance(raw, (int, float)):
        return number_val(raw)
    if isinstance(raw, str):
        return string_val(raw)
    raise TypeError(f"not a literal payload: {raw!r}")


def is_scalar(value: Value) -> bool:
    """Scalars are the kinds a Literal node can hold."""
    return value.kind in (ValueKind.NULL, ValueKind.BOOLEAN,
                          ValueKind.NUMBER, ValueKind.STRING)


# Display

def format_number(x: float) -> str:
    """Render a number the way scripts see it: 10 not 10.0."""
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Infinity" if x > 0 else "-Infinity"
    if x.is_integer() and abs(x) < 1e16:
        return str(int(x))
    return repr(x)


def display(value: Value, nested: bool = False) -> str:
    """
    Human-readable rendering used by PRINT, string concatenation and TRACE.

    Strings are bare at the top level and quoted inside collections.
    """
    kind = value.kind
    if kind == ValueKind.NULL:
        return "Null"
    if kind == ValueKind.BOOLEAN:
        return "True" if value.data else "False"
    if kind == ValueKind.NUMBER:
        return format_number(value.data)
    if kind == ValueKind.STRING:
        return f'"{value.data}"' if nested else value.data
    if kind == ValueKind.LIST:
        return "[" + ", ".join(display(v, True) for v in value.data) + "]"
    if kind == ValueKind.MAP:
        inner = ", ".join(f'"{k}": {display(v, True)}' for k, v in value.data.items())
        return "{" + inner + "}"
    fn = value.data
    name = getattr(fn, "display_name", None) or getattr(fn, "name", "?")
    return f"<function {name}>"

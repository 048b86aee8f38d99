"""
Built-in function registry for the Aether interpreter.

Builtins are looked up after the environment, so scripts may shadow them.
They are ordinary function values: MAP(XS, LENGTH) works.

Functions tagged with a capability (the I/O group) are never invoked
directly by this module; the evaluator records the attempt in the trace
and asks the permission guard first.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING
import math
import os

from .values import (
    Value, ValueKind, NULL, bool_val, number_val, string_val, list_val, map_val,
    function_val, display,
)
from .operators import values_equal
from .permissions import Capability
from .tracer import TraceEventKind, TRACE_LEVELS
from ..errors import EvalError, TypeMismatch

if TYPE_CHECKING:
    from .interpreter import ExecutionContext


@dataclass(frozen=True)
class BuiltinFunction:
    """
    A built-in function with its implementation and arity.

    Contextual builtins receive the ExecutionContext as their first
    argument (for tracing, output and calling back into scripts).
    """
    name: str
    implementation: Callable[..., Value]
    min_args: int = 0
    max_args: Optional[int] = None      # None means variadic
    capability: Optional[Capability] = None
    contextual: bool = False
    doc: str = ""

    @property
    def display_name(self) -> str:
        return self.name

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args

    def arity_text(self) -> str:
        if self.max_args is None:
            return f"at least {self.min_args}"
        if self.max_args == self.min_args:
            return str(self.min_args)
        return f"{self.min_args} to {self.max_args}"

    def invoke(self, ctx: "ExecutionContext", args: List[Value]) -> Value:
        if self.contextual:
            return self.implementation(ctx, *args)
        return self.implementation(*args)


# --- Argument helpers ---

def _expect(value: Value, kind: ValueKind, fname: str, position: int) -> Any:
    if value.kind != kind:
        raise TypeMismatch(
            f"{fname}: argument {position} must be a {kind.value}, got {value.type_name}"
        )
    return value.data


def _expect_index(value: Value, fname: str, position: int) -> int:
    x = _expect(value, ValueKind.NUMBER, fname, position)
    if not x.is_integer():
        raise TypeMismatch(f"{fname}: argument {position} must be a whole number, got {x!r}")
    return int(x)


def _expect_function(value: Value, fname: str, position: int) -> Value:
    _expect(value, ValueKind.FUNCTION, fname, position)
    return value


class BuiltinRegistry:
    """
    Registry of all built-in functions.

    Read-only once constructed, so one registry can serve any number of
    engines.
    """

    def __init__(self):
        self._functions: Dict[str, BuiltinFunction] = {}
        self._values: Dict[str, Value] = {}
        self._register_all()

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """The builtin called name, or None."""
        return self._functions.get(name)

    def get_value(self, name: str) -> Optional[Value]:
        """Look up a builtin as a function Value."""
        return self._values.get(name)

    def names(self) -> List[str]:
        return sorted(self._functions)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def register(self, func: BuiltinFunction) -> None:
        """Register a function."""
        self._functions[func.name] = func
        self._values[func.name] = function_val(func)

    def _register_all(self) -> None:
        """Fill the table, one family at a time."""
        self._register_math_functions()
        self._register_collection_functions()
        self._register_string_functions()
        self._register_higher_order_functions()
        self._register_trace_functions()
        self._register_io_functions()

    # --- Math Functions ---

    def _register_math_functions(self) -> None:
        """Register numeric functions."""

        def _unary(name: str, fn: Callable[[float], float]) -> Callable[[Value], Value]:
            def impl(x: Value) -> Value:
                try:
                    return number_val(fn(_expect(x, ValueKind.NUMBER, name, 1)))
                except (ValueError, OverflowError) as e:
                    raise EvalError(f"{name}: {e}")
            return impl

        def _pow(base: Value, exp: Value) -> Value:
            b = _expect(base, ValueKind.NUMBER, "POW", 1)
            e = _expect(exp, ValueKind.NUMBER, "POW", 2)
            try:
                return number_val(math.pow(b, e))
            except (ValueError, OverflowError) as err:
                raise EvalError(f"POW: {err}")

        def _extreme(name: str, pick: Callable) -> Callable[..., Value]:
            def impl(*args: Value) -> Value:
                items = args
                if len(args) == 1 and args[0].kind == ValueKind.LIST:
                    items = args[0].data
                if not items:
                    raise EvalError(f"{name}: no values")
                numbers = [_expect(v, ValueKind.NUMBER, name, i + 1) for i, v in enumerate(items)]
                return number_val(pick(numbers))
            return impl

        def _sum(lst: Value) -> Value:
            items = _expect(lst, ValueKind.LIST, "SUM", 1)
            total = 0.0
            for i, v in enumerate(items):
                total += _expect(v, ValueKind.NUMBER, "SUM", i + 1)
            return number_val(total)

        unary_funcs = [
            ("ABS", abs),
            ("FLOOR", math.floor),
            ("CEIL", math.ceil),
            ("ROUND", lambda x: math.floor(x + 0.5)),
            ("SQRT", math.sqrt),
        ]
        for name, fn in unary_funcs:
            self.register(BuiltinFunction(name, _unary(name, fn), 1, 1))

        self.register(BuiltinFunction("POW", _pow, 2, 2))
        self.register(BuiltinFunction("MIN", _extreme("MIN", min), 1, None))
        self.register(BuiltinFunction("MAX", _extreme("MAX", max), 1, None))
        self.register(BuiltinFunction("SUM", _sum, 1, 1))

    # --- Collection Functions ---

    def _register_collection_functions(self) -> None:
        """Register list and map functions."""

        def _length(x: Value) -> Value:
            if x.kind not in (ValueKind.LIST, ValueKind.MAP, ValueKind.STRING):
                raise TypeMismatch(f"LENGTH: cannot take the length of a {x.type_name}")
            return number_val(len(x.data))

        def _push(lst: Value, item: Value) -> Value:
            return list_val(_expect(lst, ValueKind.LIST, "PUSH", 1) + (item,))

        def _range(*args: Value) -> Value:
            bounds = [_expect_index(a, "RANGE", i + 1) for i, a in enumerate(args)]
            if len(bounds) == 3 and bounds[2] == 0:
                raise EvalError("RANGE: step must not be zero")
            return list_val(number_val(i) for i in range(*bounds))

        def _slice(seq: Value, start: Value, end: Value = None) -> Value:
            if seq.kind not in (ValueKind.LIST, ValueKind.STRING):
                raise TypeMismatch(f"SLICE: cannot slice a {seq.type_name}")
            lo = _expect_index(start, "SLICE", 2)
            hi = _expect_index(end, "SLICE", 3) if end is not None else len(seq.data)
            part = seq.data[lo:hi]
            return list_val(part) if seq.kind == ValueKind.LIST else string_val(part)

        def _reverse(seq: Value) -> Value:
            if seq.kind == ValueKind.STRING:
                return string_val(seq.data[::-1])
            return list_val(reversed(_expect(seq, ValueKind.LIST, "REVERSE", 1)))

        def _sort(lst: Value) -> Value:
            items = _expect(lst, ValueKind.LIST, "SORT", 1)
            kinds = {v.kind for v in items}
            if len(kinds) > 1 or not kinds <= {ValueKind.NUMBER, ValueKind.STRING}:
                raise TypeMismatch("SORT: list must hold only numbers or only strings")
            return list_val(sorted(items, key=lambda v: v.data))

        def _contains(container: Value, item: Value) -> Value:
            if container.kind == ValueKind.LIST:
                return bool_val(any(values_equal(v, item) for v in container.data))
            if container.kind == ValueKind.MAP:
                return bool_val(_expect(item, ValueKind.STRING, "CONTAINS", 2) in container.data)
            if container.kind == ValueKind.STRING:
                return bool_val(_expect(item, ValueKind.STRING, "CONTAINS", 2) in container.data)
            raise TypeMismatch(f"CONTAINS: cannot search a {container.type_name}")

        def _keys(m: Value) -> Value:
            return list_val(string_val(k) for k in _expect(m, ValueKind.MAP, "KEYS", 1))

        def _values(m: Value) -> Value:
            return list_val(_expect(m, ValueKind.MAP, "VALUES", 1).values())

        def _get(m: Value, key: Value, default: Value = NULL) -> Value:
            data = _expect(m, ValueKind.MAP, "GET", 1)
            return data.get(_expect(key, ValueKind.STRING, "GET", 2), default)

        def _put(m: Value, key: Value, item: Value) -> Value:
            data = dict(_expect(m, ValueKind.MAP, "PUT", 1))
            data[_expect(key, ValueKind.STRING, "PUT", 2)] = item
            return map_val(data)

        def _type(x: Value) -> Value:
            return string_val(x.type_name)

        self.register(BuiltinFunction("LENGTH", _length, 1, 1, doc="Length of a list, map or string"))
        self.register(BuiltinFunction("PUSH", _push, 2, 2))
        self.register(BuiltinFunction("RANGE", _range, 1, 3))
        self.register(BuiltinFunction("SLICE", _slice, 2, 3))
        self.register(BuiltinFunction("REVERSE", _reverse, 1, 1))
        self.register(BuiltinFunction("SORT", _sort, 1, 1))
        self.register(BuiltinFunction("CONTAINS", _contains, 2, 2))
        self.register(BuiltinFunction("KEYS", _keys, 1, 1))
        self.register(BuiltinFunction("VALUES", _values, 1, 1))
        self.register(BuiltinFunction("GET", _get, 2, 3))
        self.register(BuiltinFunction("PUT", _put, 3, 3))
        self.register(BuiltinFunction("TYPE", _type, 1, 1))

    # --- String Functions ---

    def _register_string_functions(self) -> None:
        """Register string conversion and manipulation functions."""

        def _str(x: Value) -> Value:
            return string_val(display(x))

        def _num(x: Value) -> Value:
            if x.kind == ValueKind.NUMBER:
                return x
            text = _expect(x, ValueKind.STRING, "NUM", 1)
            try:
                return number_val(float(text.strip()))
            except ValueError:
                raise EvalError(f"NUM: cannot convert {text!r} to a number")

        def _upper(s: Value) -> Value:
            return string_val(_expect(s, ValueKind.STRING, "UPPER", 1).upper())

        def _lower(s: Value) -> Value:
            return string_val(_expect(s, ValueKind.STRING, "LOWER", 1).lower())

        def _split(s: Value, sep: Value) -> Value:
            text = _expect(s, ValueKind.STRING, "SPLIT", 1)
            separator = _expect(sep, ValueKind.STRING, "SPLIT", 2)
            if not separator:
                return list_val(string_val(ch) for ch in text)
            return list_val(string_val(part) for part in text.split(separator))

        def _join(lst: Value, sep: Value) -> Value:
            items = _expect(lst, ValueKind.LIST, "JOIN", 1)
            separator = _expect(sep, ValueKind.STRING, "JOIN", 2)
            return string_val(separator.join(display(v) for v in items))

        self.register(BuiltinFunction("STR", _str, 1, 1))
        self.register(BuiltinFunction("NUM", _num, 1, 1))
        self.register(BuiltinFunction("UPPER", _upper, 1, 1))
        self.register(BuiltinFunction("LOWER", _lower, 1, 1))
        self.register(BuiltinFunction("SPLIT", _split, 2, 2))
        self.register(BuiltinFunction("JOIN", _join, 2, 2))

    # --- Higher-order Functions ---

    def _register_higher_order_functions(self) -> None:
        """Register functions that call back into scripts."""

        def _map(ctx: "ExecutionContext", lst: Value, fn: Value) -> Value:
            items = _expect(lst, ValueKind.LIST, "MAP", 1)
            _expect_function(fn, "MAP", 2)
            return list_val([ctx.call_function(fn, [item]) for item in items])

        def _filter(ctx: "ExecutionContext", lst: Value, fn: Value) -> Value:
            items = _expect(lst, ValueKind.LIST, "FILTER", 1)
            _expect_function(fn, "FILTER", 2)
            return list_val([item for item in items
                             if ctx.call_function(fn, [item]).is_truthy()])

        def _reduce(ctx: "ExecutionContext", lst: Value, fn: Value, initial: Value) -> Value:
            items = _expect(lst, ValueKind.LIST, "REDUCE", 1)
            _expect_function(fn, "REDUCE", 2)
            acc = initial
            for item in items:
                acc = ctx.call_function(fn, [acc, item])
            return acc

        self.register(BuiltinFunction("MAP", _map, 2, 2, contextual=True))
        self.register(BuiltinFunction("FILTER", _filter, 2, 2, contextual=True))
        self.register(BuiltinFunction("REDUCE", _reduce, 3, 3, contextual=True))

    # --- Trace Functions ---

    def _register_trace_functions(self) -> None:
        """Register TRACE and its levelled variants.

        TRACE(category, values...) records a user trace entry. With a
        single argument the category is "user".
        """

        def _make_trace(level: str) -> Callable[..., Value]:
            def impl(ctx: "ExecutionContext", first: Value, *rest: Value) -> Value:
                if rest:
                    category = _expect(first, ValueKind.STRING, "TRACE", 1)
                    values = [display(v) for v in rest]
                else:
                    category = "user"
                    values = [display(first)]
                ctx.tracer.record(
                    TraceEventKind.TRACE,
                    " ".join(values),
                    node=ctx.current_node_identity(),
                    level=level,
                    category=category,
                    values=values,
                )
                return NULL
            return impl

        self.register(BuiltinFunction("TRACE", _make_trace("info"), 1, None, contextual=True))
        for level in TRACE_LEVELS:
            name = f"TRACE_{level.upper()}"
            self.register(BuiltinFunction(name, _make_trace(level), 1, None, contextual=True))

    # --- I/O Functions ---

    def _register_io_functions(self) -> None:
        """Register effectful functions; all require the io capability."""

        def _print(ctx: "ExecutionContext", *args: Value) -> Value:
            ctx.write_output(" ".join(display(a) for a in args))
            return NULL

        def _println(ctx: "ExecutionContext", *args: Value) -> Value:
            ctx.write_output(" ".join(display(a) for a in args) + "\n")
            return NULL

        def _read_file(path: Value) -> Value:
            filename = _expect(path, ValueKind.STRING, "READ_FILE", 1)
            try:
                with open(filename, "r", encoding="utf-8") as f:
                    return string_val(f.read())
            except (OSError, ValueError) as e:
                raise EvalError(f"READ_FILE: {e}")

        def _write(name: str, mode: str) -> Callable[[Value, Value], Value]:
            def impl(path: Value, content: Value) -> Value:
                filename = _expect(path, ValueKind.STRING, name, 1)
                text = content.data if content.kind == ValueKind.STRING else display(content)
                try:
                    with open(filename, mode, encoding="utf-8") as f:
                        f.write(text)
                except (OSError, ValueError) as e:
                    raise EvalError(f"{name}: {e}")
                return NULL
            return impl

        def _file_exists(path: Value) -> Value:
            return bool_val(os.path.exists(_expect(path, ValueKind.STRING, "FILE_EXISTS", 1)))

        def _env(name: Value, default: Value = NULL) -> Value:
            value = os.environ.get(_expect(name, ValueKind.STRING, "ENV", 1))
            return default if value is None else string_val(value)

        io = Capability.IO
        self.register(BuiltinFunction("PRINT", _print, 0, None, io, contextual=True))
        self.register(BuiltinFunction("PRINTLN", _println, 0, None, io, contextual=True))
        self.register(BuiltinFunction("READ_FILE", _read_file, 1, 1, io))
        self.register(BuiltinFunction("WRITE_FILE", _write("WRITE_FILE", "w"), 2, 2, io))
        self.register(BuiltinFunction("APPEND_FILE", _write("APPEND_FILE", "a"), 2, 2, io))
        self.register(BuiltinFunction("FILE_EXISTS", _file_exists, 1, 1, io))
        self.register(BuiltinFunction("ENV", _env, 1, 2, io))


_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the shared, read-only built-in function registry."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry

"""
Scopes and name resolution.

The engine owns one Environment whose root scope holds the globals and
outlives every eval. Blocks, loop iterations and calls hang child scopes
off the current one and drop them again when they finish.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from .values import Value
from ..errors import UndefinedVariable, VariableNotFound, InvalidArgument
from ..tokens import SourceSpan


@dataclass
class Scope:
    variables: Dict[str, Value] = field(default_factory=dict)
    parent: Optional["Scope"] = None
    name: str = "block"

    def chain(self) -> Iterator["Scope"]:
        """This scope, then each enclosing one out to the root."""
        scope: Optional[Scope] = self
        while scope is not None:
            yield scope
            scope = scope.parent

    def owner(self, name: str) -> Optional["Scope"]:
        """The nearest scope that binds name."""
        return next((s for s in self.chain() if name in s.variables), None)


class Environment:
    """
    The scope chain evaluation runs against.

    define() always binds in the current scope, set() only rebinds an
    existing name, and assign() (what `Set` does) rebinds if it can and
    defines locally otherwise.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        """Forget every binding."""
        self.root = Scope(name="global")
        self.current = self.root

    def lookup(self, name: str) -> Optional[Value]:
        scope = self.current.owner(name)
        return None if scope is None else scope.variables[name]

    def get(self, name: str, span: Optional[SourceSpan] = None) -> Value:
        value = self.lookup(name)
        if value is None:
            raise UndefinedVariable(name, span)
        return value

    def define(self, name: str, value: Value) -> None:
        self.current.variables[name] = value

    def set(self, name: str, value: Value, span: Optional[SourceSpan] = None) -> None:
        scope = self.current.owner(name)
        if scope is None:
            raise UndefinedVariable(name, span)
        scope.variables[name] = value

    def assign(self, name: str, value: Value) -> None:
        (self.current.owner(name) or self.current).variables[name] = value

    # --- Scope stack ---

    def push_scope(self, name: str = "block") -> Scope:
        self.current = Scope(parent=self.current, name=name)
        return self.current

    def pop_scope(self) -> Scope:
        popped = self.current
        if popped.parent is None:
            raise InvalidArgument("the global scope cannot be popped")
        self.current = popped.parent
        return popped

    @contextmanager
    def _entered(self, scope: Scope) -> Iterator[Scope]:
        saved, self.current = self.current, scope
        try:
            yield scope
        finally:
            self.current = saved

    def new_scope(self, name: str = "block"):
        """with env.new_scope("for"): ... runs in a child of the current scope."""
        return self._entered(Scope(parent=self.current, name=name))

    def call_scope(self, parent: Scope, name: str = "call"):
        """Like new_scope, but the child hangs off a closure's captured scope."""
        return self._entered(Scope(parent=parent, name=name))

    def unwind(self) -> None:
        """Abandon transient scopes left behind by an aborted eval."""
        self.current = self.root

    # --- Host access to globals ---

    def get_global(self, name: str) -> Value:
        try:
            return self.root.variables[name]
        except KeyError:
            raise VariableNotFound(name) from None

    def set_global(self, name: str, value: Value) -> None:
        self.root.variables[name] = value

    def has_global(self, name: str) -> bool:
        return name in self.root.variables

    def globals(self) -> Dict[str, Value]:
        return dict(self.root.variables)

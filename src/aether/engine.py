"""
The Aether engine: composition root of the interpreter.

An Engine exclusively owns one global Environment, one AstCache, one
Tracer, its current Limits and OptimizationFlags, and its Permissions.
Nothing is shared between engines, so independent engines can run on
different threads. A single engine must not be used from two threads at
once.

Usage:
    with Engine.restricted() as engine:
        result = engine.eval("Set X 10\\n(X + 20)")
        result.code      # ErrorCode.SUCCESS
        result.output    # "30"
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TextIO
import logging

from .ast import Program
from .cache import AstCache, CacheStats
from .config import EngineConfig
from .errors import (
    AetherError, Diagnostic, ErrorCode, InvalidArgument, ParseError,
)
from .runtime.codec import from_python, to_python, to_json
from .runtime.environment import Environment
from .runtime.interpreter import Evaluator, ExecutionContext
from .runtime.limits import Limits, LimitMonitor, ExecutionStats
from .runtime.permissions import Permissions, PermissionGuard
from .runtime.tracer import Tracer, TraceStats, TraceEventKind
from .runtime.values import Value
from .transforms import OptimizationFlags

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def version() -> str:
    """The engine version; needs no instance."""
    return VERSION


@dataclass
class EvalResult:
    """Outcome of one eval call. Failures are reported here, not raised."""
    code: ErrorCode
    value: Optional[Value] = None
    output: Optional[str] = None        # The value as JSON text
    error: Optional[str] = None
    diagnostic: Optional[Diagnostic] = None
    stats: Optional[ExecutionStats] = None
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.code == ErrorCode.SUCCESS

    @property
    def data(self) -> Any:
        """The value as plain Python data (None on failure)."""
        if self.value is None:
            return None
        return to_python(self.value)


class Engine:
    """
    An isolated interpreter instance.

    Operations on a closed engine raise InvalidArgument.
    """

    def __init__(
        self,
        permissions: Optional[Permissions] = None,
        limits: Optional[Limits] = None,
        optimization: Optional[OptimizationFlags] = None,
        cache_max_entries: Optional[int] = None,
        trace_max_entries: Optional[int] = None,
        output: Optional[TextIO] = None,
    ):
        self._guard = PermissionGuard(permissions or Permissions.restricted())
        self._limits = limits or Limits()
        self._flags = optimization or OptimizationFlags()
        self._env = Environment()
        self._cache = AstCache(cache_max_entries)
        self._tracer = Tracer(trace_max_entries)
        self._evaluator = Evaluator()
        self._output = output
        self._closed = False
        self.last_stats: Optional[ExecutionStats] = None

    @classmethod
    def restricted(cls, **kwargs) -> "Engine":
        """An engine with every capability denied (the default)."""
        return cls(permissions=Permissions.restricted(), **kwargs)

    @classmethod
    def all_granted(cls, **kwargs) -> "Engine":
        """An engine with every capability granted."""
        return cls(permissions=Permissions.all_granted(), **kwargs)

    @classmethod
    def from_config(cls, config: EngineConfig, output: Optional[TextIO] = None) -> "Engine":
        return cls(
            permissions=Permissions(io=config.allow_io),
            limits=config.limits,
            optimization=config.optimization,
            cache_max_entries=config.cache_max_entries,
            trace_max_entries=config.trace_max_entries,
            output=output,
        )

    # --- Lifecycle ---

    def close(self) -> None:
        """Release everything the engine owns. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._env.reset()
        self._cache.clear()
        self._tracer.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "Engine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise InvalidArgument("engine is closed")

    @property
    def permissions(self) -> Permissions:
        return self._guard.permissions

    # --- Evaluation ---

    def compile(self, code: str, filename: Optional[str] = None) -> Program:
        """Parse and optimize through the cache without evaluating.

        Raises:
            ParseError: If the source is malformed
        """
        self._check_open()
        program, _ = self._cache.get_or_compile(code, self._flags, filename)
        return program

    def eval(self, code: str, filename: Optional[str] = None) -> EvalResult:
        """
        Evaluate source text against the global environment.

        Never raises for evaluation failures: parse errors, runtime errors,
        permission denials, limit aborts and unserializable results all come
        back as an EvalResult with a non-zero code. Bindings committed before
        a failure stay in place.
        """
        self._check_open()
        if not isinstance(code, str):
            raise InvalidArgument("code must be a string")

        try:
            program, cached = self._cache.get_or_compile(code, self._flags, filename)
        except ParseError as e:
            self._tracer.record(TraceEventKind.ERROR, e.message, label=e.diagnostic.code)
            self.last_stats = ExecutionStats()
            return EvalResult(code=e.error_code, error=str(e), diagnostic=e.diagnostic,
                              stats=self.last_stats)

        monitor = LimitMonitor(self._limits, self._tracer)
        ctx = ExecutionContext(
            env=self._env,
            guard=self._guard,
            tracer=self._tracer,
            monitor=monitor,
            output=self._output,
        )
        try:
            value = self._evaluator.execute(program, ctx)
            output = to_json(value)
        except AetherError as e:
            self.last_stats = monitor.stats()
            return EvalResult(code=e.error_code, error=str(e), diagnostic=e.diagnostic,
                              stats=self.last_stats, cached=cached)
        except Exception as e:
            logger.error("internal error during evaluation", exc_info=True)
            self.last_stats = monitor.stats()
            return EvalResult(code=ErrorCode.RUNTIME_ERROR, error=f"internal error: {e}",
                              stats=self.last_stats, cached=cached)

        self.last_stats = monitor.stats()
        return EvalResult(code=ErrorCode.SUCCESS, value=value, output=output,
                          stats=self.last_stats, cached=cached)

    # --- Globals ---

    def set_global(self, name: str, data: Any) -> None:
        """
        Create or overwrite a binding in the global scope.

        Raises:
            InvalidArgument: the name is not a non-empty string
            SerializationError: the data cannot be represented as a Value
        """
        self._check_open()
        if not isinstance(name, str) or not name:
            raise InvalidArgument("global name must be a non-empty string")
        self._env.set_global(name, from_python(data))

    def get_global(self, name: str) -> Any:
        """
        Read a global binding as plain Python data.

        Raises:
            VariableNotFound: no such global
            SerializationError: the binding holds a function
        """
        self._check_open()
        return to_python(self._env.get_global(name))

    def get_global_value(self, name: str) -> Value:
        self._check_open()
        return self._env.get_global(name)

    def global_names(self) -> List[str]:
        self._check_open()
        return sorted(self._env.globals())

    def reset_env(self) -> None:
        """Clear every binding; cache and trace are untouched."""
        self._check_open()
        self._env.reset()

    # --- Tracing ---

    def take_trace(self) -> List[str]:
        """Raw trace lines; drains the buffer."""
        self._check_open()
        return self._tracer.take()

    def trace_records(self) -> List[Dict[str, Any]]:
        """Structured trace entries; does not drain."""
        self._check_open()
        return self._tracer.records()

    def export_trace(self) -> Dict[str, Any]:
        """Structured entries plus stats; does not drain."""
        self._check_open()
        return self._tracer.export()

    def trace_stats(self) -> TraceStats:
        self._check_open()
        return self._tracer.stats()

    def clear_trace(self) -> None:
        self._check_open()
        self._tracer.clear()

    # --- Limits ---

    def set_limits(self, limits: Limits) -> None:
        """Replace the limits as a whole."""
        self._check_open()
        if not isinstance(limits, Limits):
            raise InvalidArgument("set_limits expects a Limits instance")
        logger.debug("limits set to %s", limits)
        self._limits = limits

    def get_limits(self) -> Limits:
        self._check_open()
        return self._limits

    # --- Cache and optimization ---

    def clear_cache(self) -> None:
        self._check_open()
        self._cache.clear()

    def cache_stats(self) -> CacheStats:
        self._check_open()
        return self._cache.stats()

    def set_optimization(self, constant_folding: bool = True,
                         dead_code_elimination: bool = True,
                         tail_recursion: bool = True) -> None:
        """
        Choose optimizer passes. Entries compiled under other flags stay in
        the cache but are no longer reachable.
        """
        self._check_open()
        self._flags = OptimizationFlags(
            bool(constant_folding), bool(dead_code_elimination), bool(tail_recursion)
        )
        logger.debug("optimization set to %s", self._flags.key())

    def get_optimization(self) -> OptimizationFlags:
        self._check_open()
        return self._flags

    @staticmethod
    def version() -> str:
        return VERSION

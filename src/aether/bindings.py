"""
Handle-based host interface.

A C-style boundary for foreign hosts: engines live in a
per-process table and hosts refer to them by integer handle. Every call
returns a status code (an ErrorCode value) instead of raising, with
results and errors passed as JSON text.

Most functions return a triple (status, payload_json, error_message);
exactly one of payload and error is set, and payload may be None for
operations that produce nothing.
"""

from itertools import count
from typing import Callable, Dict, Optional, Tuple
import json
import logging

from .engine import Engine, version
from .errors import AetherError, ErrorCode, InvalidArgument
from .runtime.codec import from_json, to_json
from .runtime.limits import Limits

logger = logging.getLogger(__name__)

Status = Tuple[int, Optional[str], Optional[str]]

_engines: Dict[int, Engine] = {}
_handle_ids = count(1)


def _register(engine: Engine) -> int:
    handle = next(_handle_ids)
    _engines[handle] = engine
    logger.debug("created engine handle %d", handle)
    return handle


def _lookup(handle: int) -> Engine:
    engine = _engines.get(handle)
    if engine is None:
        raise InvalidArgument(f"invalid engine handle: {handle!r}")
    return engine


def _call(handle: int, operation: Callable[[Engine], Optional[str]]) -> Status:
    """Run an operation against a handle, converting errors to status codes."""
    try:
        payload = operation(_lookup(handle))
    except AetherError as e:
        return int(e.error_code), None, e.message
    return int(ErrorCode.SUCCESS), payload, None


def _dumps(data) -> str:
    return json.dumps(data, ensure_ascii=False)


# --- Lifecycle ---

def aether_new() -> int:
    """Create a restricted engine; returns its handle."""
    return _register(Engine.restricted())


def aether_new_with_permissions() -> int:
    """Create an engine with all capabilities granted; returns its handle."""
    return _register(Engine.all_granted())


def aether_free(handle: int) -> int:
    """Release an engine. The handle is invalid afterwards."""
    engine = _engines.pop(handle, None)
    if engine is None:
        return int(ErrorCode.INVALID_ARGUMENT)
    engine.close()
    logger.debug("freed engine handle %d", handle)
    return int(ErrorCode.SUCCESS)


def aether_version() -> str:
    return version()


# --- Evaluation ---

def aether_eval(handle: int, code: str) -> Status:
    """Evaluate code; on success the payload is the result as JSON."""
    try:
        engine = _lookup(handle)
        result = engine.eval(code)
    except AetherError as e:
        return int(e.error_code), None, e.message
    if result.ok:
        return int(ErrorCode.SUCCESS), result.output, None
    return int(result.code), None, result.error


# --- Globals ---

def aether_set_global(handle: int, name: str, value_json: str) -> Status:
    def op(engine: Engine) -> None:
        engine.set_global(name, from_json(value_json))
    return _call(handle, op)


def aether_get_global(handle: int, name: str) -> Status:
    return _call(handle, lambda engine: to_json(engine.get_global_value(name)))


def aether_reset_env(handle: int) -> Status:
    return _call(handle, lambda engine: engine.reset_env())


# --- Tracing ---

def aether_take_trace(handle: int) -> Status:
    """JSON array of raw trace lines; drains the buffer."""
    return _call(handle, lambda engine: _dumps(engine.take_trace()))


def aether_trace_records(handle: int) -> Status:
    """JSON array of structured trace entries; does not drain."""
    return _call(handle, lambda engine: _dumps(engine.trace_records()))


def aether_trace_stats(handle: int) -> Status:
    return _call(handle, lambda engine: _dumps(engine.trace_stats().to_dict()))


def aether_clear_trace(handle: int) -> Status:
    return _call(handle, lambda engine: engine.clear_trace())


# --- Limits ---

def aether_set_limits(handle: int, max_steps: int, max_recursion_depth: int,
                      max_duration_ms: int) -> Status:
    """Replace the engine's limits; values of zero or less mean unlimited."""
    def op(engine: Engine) -> None:
        engine.set_limits(Limits.from_dict({
            "max_steps": max_steps,
            "max_recursion_depth": max_recursion_depth,
            "max_duration_ms": max_duration_ms,
        }))
    return _call(handle, op)


def aether_get_limits(handle: int) -> Status:
    return _call(handle, lambda engine: _dumps(engine.get_limits().to_dict()))


# --- Cache and optimization ---

def aether_clear_cache(handle: int) -> Status:
    return _call(handle, lambda engine: engine.clear_cache())


def aether_cache_stats(handle: int) -> Status:
    return _call(handle, lambda engine: _dumps(engine.cache_stats().to_dict()))


def aether_set_optimization(handle: int, constant_folding: bool,
                            dead_code_elimination: bool, tail_recursion: bool) -> Status:
    return _call(handle, lambda engine: engine.set_optimization(
        constant_folding, dead_code_elimination, tail_recursion
    ))

"""
Execution limits and the per-evaluation monitor that enforces them.

Limits are soft: the evaluator calls tick() for every node it evaluates
and enters frame() for every call, and the monitor raises LimitExceeded
from there. A single slow builtin cannot be interrupted mid-call.

A bound of zero or less means unlimited (hosts speaking the C-style
interface pass -1).
"""

from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Iterator, Optional
from contextlib import contextmanager
import logging
import time

from ..ast import AstNode, node_identity
from ..errors import LimitExceeded, LimitKind, InvalidArgument
from .tracer import Tracer, TraceEventKind

logger = logging.getLogger(__name__)

# Fraction of a bound at which a one-time limit-warning is traced
WARNING_THRESHOLD = 0.8


@dataclass(frozen=True)
class Limits:
    """Bounds for one evaluation. Read and written as a whole."""
    max_steps: int = 0
    max_recursion_depth: int = 100
    max_duration_ms: int = 0

    @classmethod
    def unlimited(cls) -> "Limits":
        return cls(max_steps=0, max_recursion_depth=0, max_duration_ms=0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Limits":
        """Build from a mapping; missing keys keep their defaults."""
        known = {"max_steps", "max_recursion_depth", "max_duration_ms"}
        unknown = set(data) - known
        if unknown:
            raise InvalidArgument(f"unknown limit field(s): {', '.join(sorted(unknown))}")
        values = {}
        for key, raw in data.items():
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise InvalidArgument(f"limit '{key}' must be an integer, got {raw!r}")
            values[key] = raw
        return cls(**values)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    @property
    def steps_bounded(self) -> bool:
        return self.max_steps > 0

    @property
    def depth_bounded(self) -> bool:
        return self.max_recursion_depth > 0

    @property
    def duration_bounded(self) -> bool:
        return self.max_duration_ms > 0


@dataclass
class ExecutionStats:
    """What one evaluation consumed."""
    steps: int = 0
    max_depth: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "steps": self.steps,
            "max_depth": self.max_depth,
            "duration_ms": round(self.duration_ms, 3),
        }


class LimitMonitor:
    """
    Step, depth and wall-clock accounting for a single evaluation.

    Steps are checked before they are counted, so when max_steps is N the
    recorded step count never exceeds N.
    """

    def __init__(self, limits: Limits, tracer: Optional[Tracer] = None,
                 clock: Callable[[], float] = time.perf_counter):
        self.limits = limits
        self.tracer = tracer
        self._clock = clock
        self.steps_taken = 0
        self.current_depth = 0
        self.max_depth_seen = 0
        self.start_time = clock()
        self._warned_steps = False
        self._warned_depth = False

    def elapsed_ms(self) -> float:
        return (self._clock() - self.start_time) * 1000.0

    def tick(self, node: Optional[AstNode] = None) -> None:
        """Account for one evaluated node."""
        limits = self.limits
        if limits.steps_bounded:
            if self.steps_taken >= limits.max_steps:
                logger.info("step limit %d reached", limits.max_steps)
                raise LimitExceeded(LimitKind.STEPS, limits.max_steps,
                                    node.span if node else None)
            self.steps_taken += 1
            if not self._warned_steps and self.steps_taken >= limits.max_steps * WARNING_THRESHOLD:
                self._warned_steps = True
                self._warn(f"{self.steps_taken} of {limits.max_steps} steps used", node)
        else:
            self.steps_taken += 1

        if limits.duration_bounded:
            elapsed = self.elapsed_ms()
            if elapsed > limits.max_duration_ms:
                logger.info("duration limit %d ms reached after %.1f ms",
                            limits.max_duration_ms, elapsed)
                raise LimitExceeded(LimitKind.DURATION, limits.max_duration_ms,
                                    node.span if node else None)

    @contextmanager
    def frame(self, node: Optional[AstNode] = None) -> Iterator[int]:
        """Enter a call frame for the duration of the with-block."""
        limits = self.limits
        depth = self.current_depth + 1
        if limits.depth_bounded and depth > limits.max_recursion_depth:
            logger.info("recursion limit %d reached", limits.max_recursion_depth)
            raise LimitExceeded(LimitKind.RECURSION, limits.max_recursion_depth,
                                node.span if node else None)
        self.current_depth = depth
        self.max_depth_seen = max(self.max_depth_seen, depth)
        if (limits.depth_bounded and not self._warned_depth
                and depth >= limits.max_recursion_depth * WARNING_THRESHOLD):
            self._warned_depth = True
            self._warn(f"call depth {depth} of {limits.max_recursion_depth}", node)
        try:
            yield depth
        finally:
            self.current_depth -= 1

    def _warn(self, message: str, node: Optional[AstNode]) -> None:
        if self.tracer is not None:
            self.tracer.record(TraceEventKind.LIMIT_WARNING, message, node_identity(node))

    def stats(self) -> ExecutionStats:
        return ExecutionStats(
            steps=self.steps_taken,
            max_depth=self.max_depth_seen,
            duration_ms=self.elapsed_ms(),
        )

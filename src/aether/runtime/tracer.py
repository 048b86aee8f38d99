"""
Structured execution trace.

The tracer is an append-only buffer of TraceEntry records with lifetime
sequence numbers. It is unbounded unless constructed with max_entries, in
which case it behaves as a ring buffer and counts what it dropped.

Two export flavours read the same buffer:
- take(): raw one-line strings; drains the buffer
- records(): structured dicts; leaves the buffer untouched
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple
import time


class TraceEventKind(Enum):
    """What happened."""
    ENTER_CALL = "enter-call"
    EXIT_CALL = "exit-call"
    LIMIT_WARNING = "limit-warning"
    IO_ATTEMPT = "io-attempt"
    ERROR = "error"
    TRACE = "trace"         # Explicit TRACE* calls from scripts


# Levels used by TRACE_DEBUG / TRACE_INFO / TRACE_WARN / TRACE_ERROR
TRACE_LEVELS = ("debug", "info", "warn", "error")

_DEFAULT_LEVELS = {
    TraceEventKind.ENTER_CALL: "debug",
    TraceEventKind.EXIT_CALL: "debug",
    TraceEventKind.LIMIT_WARNING: "warn",
    TraceEventKind.IO_ATTEMPT: "info",
    TraceEventKind.ERROR: "error",
    TraceEventKind.TRACE: "info",
}

_DEFAULT_CATEGORIES = {
    TraceEventKind.ENTER_CALL: "call",
    TraceEventKind.EXIT_CALL: "call",
    TraceEventKind.LIMIT_WARNING: "limits",
    TraceEventKind.IO_ATTEMPT: "io",
    TraceEventKind.ERROR: "error",
    TraceEventKind.TRACE: "user",
}


@dataclass(frozen=True)
class TraceEntry:
    """One recorded event."""
    seq: int
    timestamp: int              # Milliseconds since the epoch
    kind: TraceEventKind
    message: str
    node: Optional[str] = None  # node_identity() of the associated AST node
    level: str = "info"
    category: str = ""
    values: Tuple[str, ...] = ()
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "seq": self.seq,
            "timestamp": self.timestamp,
            "kind": self.kind.value,
            "node": self.node,
            "message": self.message,
            "level": self.level,
            "category": self.category,
            "values": list(self.values),
        }
        if self.label is not None:
            data["label"] = self.label
        return data

    def to_raw(self) -> str:
        """Single-line rendering used by the raw export."""
        text = f"[{self.level.upper()}] [{self.category}] {self.message}"
        if self.node:
            text = f"{text} @{self.node}"
        return text


@dataclass
class TraceStats:
    """Aggregates computed over the current buffer."""
    count: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_level: Dict[str, int] = field(default_factory=dict)
    by_category: Dict[str, int] = field(default_factory=dict)
    buffer_size: Optional[int] = None   # None when unbounded
    buffer_full: bool = False
    dropped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "by_kind": dict(self.by_kind),
            "by_level": dict(self.by_level),
            "by_category": dict(self.by_category),
            "buffer_size": self.buffer_size,
            "buffer_full": self.buffer_full,
            "dropped": self.dropped,
        }


class Tracer:
    """
    Append-only trace buffer.

    Usage:
        tracer = Tracer()
        tracer.record(TraceEventKind.ENTER_CALL, "enter FACT", node="FunctionCall@3:1")
        tracer.stats().count    # 1
        tracer.take()           # ["[DEBUG] [call] enter FACT @FunctionCall@3:1"]
    """

    def __init__(self, max_entries: Optional[int] = None,
                 clock: Callable[[], float] = time.time):
        if max_entries is not None and max_entries <= 0:
            max_entries = None
        self._max_entries = max_entries
        self._entries: Deque[TraceEntry] = deque(maxlen=max_entries)
        self._next_seq = 1
        self._dropped = 0
        self._clock = clock

    @property
    def max_entries(self) -> Optional[int]:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def record(self, kind: TraceEventKind, message: str, node: Optional[str] = None,
               level: Optional[str] = None, category: Optional[str] = None,
               values: Sequence[str] = (), label: Optional[str] = None) -> TraceEntry:
        """Append an entry with the next sequence number and current time."""
        entry = TraceEntry(
            seq=self._next_seq,
            timestamp=int(self._clock() * 1000),
            kind=kind,
            message=message,
            node=node,
            level=level or _DEFAULT_LEVELS[kind],
            category=category or _DEFAULT_CATEGORIES[kind],
            values=tuple(values),
            label=label,
        )
        self._next_seq += 1
        if self._max_entries is not None and len(self._entries) == self._max_entries:
            self._dropped += 1
        self._entries.append(entry)
        return entry

    def entries(self) -> List[TraceEntry]:
        """Snapshot of the buffer, oldest first."""
        return list(self._entries)

    def take(self) -> List[str]:
        """Raw export; drains the buffer."""
        raw = [entry.to_raw() for entry in self._entries]
        self._entries.clear()
        return raw

    def records(self) -> List[Dict[str, Any]]:
        """Structured export; does not drain."""
        return [entry.to_dict() for entry in self._entries]

    def export(self) -> Dict[str, Any]:
        """Structured entries plus aggregate stats; does not drain."""
        return {"entries": self.records(), "stats": self.stats().to_dict()}

    def stats(self) -> TraceStats:
        """Aggregate counts over the current buffer without mutating it."""
        by_kind: Counter = Counter()
        by_level: Counter = Counter()
        by_category: Counter = Counter()
        for entry in self._entries:
            by_kind[entry.kind.value] += 1
            by_level[entry.level] += 1
            by_category[entry.category] += 1
        full = self._max_entries is not None and len(self._entries) >= self._max_entries
        return TraceStats(
            count=len(self._entries),
            by_kind=dict(by_kind),
            by_level=dict(by_level),
            by_category=dict(by_category),
            buffer_size=self._max_entries,
            buffer_full=full,
            dropped=self._dropped,
        )

    def clear(self) -> None:
        """Empty the buffer; sequence numbers keep increasing."""
        self._entries.clear()
        self._dropped = 0

"""
Compiled-program cache.

Maps a fingerprint of (source text, optimization flags) to the optimized
Program, so repeated evaluation of the same text skips parsing and
optimization. Because the flags are part of the key, changing them makes
old entries unreachable rather than stale.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import hashlib
import logging

from .ast import Program
from .errors import ParserError
from .parser import parse_source
from .transforms import OptimizationFlags, build_pipeline

logger = logging.getLogger(__name__)


def fingerprint(source: str, flags: OptimizationFlags) -> str:
    """SHA-256 over the flag set and the exact source bytes."""
    digest = hashlib.sha256()
    digest.update(flags.key().encode())
    digest.update(b"\0")
    digest.update(source.encode("utf-8"))
    return f"sha256:{digest.hexdigest()}"


def compile_source(source: str, flags: OptimizationFlags,
                   filename: Optional[str] = None) -> Program:
    """
    Parse and optimize source text.

    Raises:
        ParseError: If the source is malformed
    """
    try:
        program = parse_source(source, filename)
    except RecursionError:
        raise ParserError("source is nested too deeply to parse")
    return build_pipeline(flags).apply(program)


@dataclass(frozen=True)
class CacheEntry:
    """An optimized program and the flags that produced it."""
    fingerprint: str
    program: Program
    flags: OptimizationFlags


@dataclass
class CacheStats:
    """Lifetime hit/miss counters plus the live entry count."""
    hits: int = 0
    misses: int = 0
    size: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "size": self.size}


class AstCache:
    """
    Fingerprint-keyed cache of optimized programs.

    Unbounded by default. With max_entries set, the least recently used
    entry is evicted to make room.

    Usage:
        cache = AstCache()
        program, cached = cache.get_or_compile("Set X 10\\n(X + 20)", OptimizationFlags())
    """

    def __init__(self, max_entries: Optional[int] = None):
        if max_entries is not None and max_entries <= 0:
            max_entries = None
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get_or_compile(self, source: str, flags: OptimizationFlags,
                       filename: Optional[str] = None) -> Tuple[Program, bool]:
        """
        Return (program, came_from_cache).

        A miss parses and optimizes; parse errors propagate and are not
        stored, but still count as a miss.
        """
        key = fingerprint(source, flags)
        entry = self._entries.get(key)
        if entry is not None:
            self._hits += 1
            self._entries.move_to_end(key)
            logger.debug("cache hit %s", key[:19])
            return entry.program, True

        self._misses += 1
        logger.debug("cache miss %s", key[:19])
        program = compile_source(source, flags, filename)
        self._store(CacheEntry(key, program, flags))
        return program, False

    def _store(self, entry: CacheEntry) -> None:
        self._entries[entry.fingerprint] = entry
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("cache evicted %s", evicted[:19])

    def clear(self) -> None:
        """Drop every entry; hit and miss counters are kept."""
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(hits=self._hits, misses=self._misses, size=len(self._entries))

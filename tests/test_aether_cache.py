"""
Tests for the compiled-program cache.
"""

import hashlib

import pytest
from aether import AstCache, OptimizationFlags, ParseError, fingerprint


class TestFingerprint:

    def test_format(self):
        flags = OptimizationFlags()
        expected = hashlib.sha256(b"cf=1;dce=1;tr=1\0Set X 1").hexdigest()
        assert fingerprint("Set X 1", flags) == f"sha256:{expected}"

    def test_flags_are_part_of_the_key(self):
        assert fingerprint("1", OptimizationFlags()) != fingerprint("1", OptimizationFlags.none())

    def test_whitespace_is_significant(self):
        flags = OptimizationFlags()
        assert fingerprint("1 + 1", flags) != fingerprint("1+1", flags)


class TestAstCache:
    """Hit/miss accounting and eviction."""

    def test_miss_then_hit(self):
        cache = AstCache()
        flags = OptimizationFlags()
        first, cached_first = cache.get_or_compile("Set X 1", flags)
        second, cached_second = cache.get_or_compile("Set X 1", flags)
        assert (cached_first, cached_second) == (False, True)
        assert first is second
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)

    def test_different_flags_miss(self):
        cache = AstCache()
        cache.get_or_compile("1 + 1", OptimizationFlags())
        _, cached = cache.get_or_compile("1 + 1", OptimizationFlags.none())
        assert not cached
        assert len(cache) == 2

    def test_programs_are_optimized_under_their_flags(self):
        cache = AstCache()
        folded, _ = cache.get_or_compile("1 + 1", OptimizationFlags())
        plain, _ = cache.get_or_compile("1 + 1", OptimizationFlags.none())
        assert folded.body.statements[0].expression.value == 2.0
        assert type(plain.body.statements[0].expression).__name__ == "BinaryOp"

    def test_lru_eviction(self):
        cache = AstCache(max_entries=2)
        flags = OptimizationFlags()
        cache.get_or_compile("1", flags)
        cache.get_or_compile("2", flags)
        cache.get_or_compile("1", flags)   # refresh "1"
        cache.get_or_compile("3", flags)   # evicts "2"
        assert fingerprint("1", flags) in cache
        assert fingerprint("2", flags) not in cache
        assert fingerprint("3", flags) in cache
        assert len(cache) == 2

    def test_non_positive_bound_is_unbounded(self):
        assert AstCache(max_entries=0).max_entries is None

    def test_parse_error_counts_as_miss(self):
        cache = AstCache()
        with pytest.raises(ParseError):
            cache.get_or_compile("Set", OptimizationFlags())
        stats = cache.stats()
        assert stats.misses == 1
        assert stats.size == 0

    def test_clear_keeps_counters(self):
        cache = AstCache()
        flags = OptimizationFlags()
        cache.get_or_compile("1", flags)
        cache.get_or_compile("1", flags)
        cache.clear()
        assert cache.stats().to_dict() == {"hits": 1, "misses": 1, "size": 0}

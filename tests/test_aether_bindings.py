"""
Tests for the handle-based host interface.
"""

import json

import pytest
from aether import bindings


@pytest.fixture
def handle():
    h = bindings.aether_new()
    yield h
    bindings.aether_free(h)


class TestHandles:

    def test_new_handles_are_distinct(self):
        first = bindings.aether_new()
        second = bindings.aether_new_with_permissions()
        try:
            assert first != second
        finally:
            bindings.aether_free(first)
            bindings.aether_free(second)

    def test_free_twice(self):
        h = bindings.aether_new()
        assert bindings.aether_free(h) == 0
        assert bindings.aether_free(h) == 7

    def test_freed_handle_rejected(self):
        h = bindings.aether_new()
        bindings.aether_free(h)
        status, payload, error = bindings.aether_eval(h, "1")
        assert status == 7
        assert payload is None
        assert "handle" in error

    def test_unknown_handle(self):
        assert bindings.aether_cache_stats(-1)[0] == 7

    def test_version(self):
        assert bindings.aether_version() == "0.1.0"


class TestEvalAndGlobals:

    def test_eval_success(self, handle):
        assert bindings.aether_eval(handle, "Set X 10\n(X + 20)") == (0, "30", None)

    def test_eval_failure(self, handle):
        status, payload, error = bindings.aether_eval(handle, "1 / 0")
        assert status == 2
        assert payload is None
        assert "division by zero" in error

    def test_parse_failure(self, handle):
        assert bindings.aether_eval(handle, "Set")[0] == 1

    def test_set_and_get_global(self, handle):
        assert bindings.aether_set_global(handle, "CFG", '{"n": 2, "tags": ["a"]}') == (0, None, None)
        assert bindings.aether_eval(handle, "CFG['n'] * 3")[1] == "6"
        status, payload, _ = bindings.aether_get_global(handle, "CFG")
        assert status == 0
        assert json.loads(payload) == {"n": 2, "tags": ["a"]}

    def test_get_missing_global(self, handle):
        status, payload, error = bindings.aether_get_global(handle, "NOPE")
        assert status == 6
        assert payload is None
        assert "NOPE" in error

    def test_set_global_bad_json(self, handle):
        assert bindings.aether_set_global(handle, "X", "{not json")[0] == 7

    def test_set_global_integer_beyond_double_range(self, handle):
        status, payload, error = bindings.aether_set_global(handle, "X", "1" + "0" * 400)
        assert status == 5
        assert payload is None
        assert "out of range" in error
        assert bindings.aether_get_global(handle, "X")[0] == 6

    def test_reset_env(self, handle):
        bindings.aether_eval(handle, "Set X 1")
        assert bindings.aether_reset_env(handle)[0] == 0
        assert bindings.aether_get_global(handle, "X")[0] == 6

    def test_permission_denied(self, handle):
        assert bindings.aether_eval(handle, "PRINT('x')")[0] == 3

    def test_granted_engine(self, capsys):
        h = bindings.aether_new_with_permissions()
        try:
            assert bindings.aether_eval(h, "PRINT('hi')")[0] == 0
        finally:
            bindings.aether_free(h)
        assert capsys.readouterr().out == "hi"


class TestTraceLimitsAndCache:

    def test_trace_round(self, handle):
        bindings.aether_eval(handle, "TRACE('a')")
        status, payload, _ = bindings.aether_trace_records(handle)
        assert status == 0
        records = json.loads(payload)
        assert records[0]["message"] == "a"
        assert json.loads(bindings.aether_trace_stats(handle)[1])["count"] == 1

        lines = json.loads(bindings.aether_take_trace(handle)[1])
        assert len(lines) == 1
        assert json.loads(bindings.aether_trace_stats(handle)[1])["count"] == 0

    def test_clear_trace(self, handle):
        bindings.aether_eval(handle, "TRACE('a')")
        bindings.aether_clear_trace(handle)
        assert json.loads(bindings.aether_trace_records(handle)[1]) == []

    def test_limits_round_trip(self, handle):
        assert bindings.aether_set_limits(handle, 10, 5, 0)[0] == 0
        limits = json.loads(bindings.aether_get_limits(handle)[1])
        assert limits == {"max_steps": 10, "max_recursion_depth": 5, "max_duration_ms": 0}
        assert bindings.aether_eval(handle, "While True { 1 }")[0] == 4

    def test_limits_type_checked(self, handle):
        assert bindings.aether_set_limits(handle, "10", 5, 0)[0] == 7

    def test_cache(self, handle):
        bindings.aether_eval(handle, "1")
        bindings.aether_eval(handle, "1")
        stats = json.loads(bindings.aether_cache_stats(handle)[1])
        assert stats == {"hits": 1, "misses": 1, "size": 1}
        bindings.aether_clear_cache(handle)
        assert json.loads(bindings.aether_cache_stats(handle)[1])["size"] == 0

    def test_set_optimization(self, handle):
        program = """
Func DEPTH (N, ACC) {
    If N == 0 { Return ACC }
    Return DEPTH(N - 1, ACC + 1)
}
DEPTH(100, 0)
"""
        bindings.aether_set_limits(handle, 0, 20, 0)
        assert bindings.aether_eval(handle, program) == (0, "100", None)
        bindings.aether_set_optimization(handle, True, True, False)
        assert bindings.aether_eval(handle, program)[0] == 4

"""
Language-level tests: scripts evaluated through an Engine.
"""

import io

from aether import Engine, ErrorCode, Limits, OptimizationFlags


def run(source, **engine_kwargs):
    """Evaluate source in a fresh engine and return the result."""
    with Engine(**engine_kwargs) as engine:
        return engine.eval(source)


def value_of(source, **engine_kwargs):
    result = run(source, **engine_kwargs)
    assert result.ok, result.error
    return result.data


class TestExpressions:
    """Arithmetic, strings, collections."""

    def test_set_and_add(self):
        assert value_of("Set X 10\n(X + 20)") == 30

    def test_division_yields_fraction(self):
        assert value_of("10 / 4") == 2.5

    def test_precedence(self):
        assert value_of("2 + 3 * 4 - 6 / 2") == 11

    def test_string_concatenation(self):
        assert value_of("Set NAME 'ann'\n'hello ' + NAME + '!'") == "hello ann!"
        assert value_of("'n=' + 5") == "n=5"

    def test_list_index(self):
        assert value_of("Set XS [10, 20, 30]\nXS[1]") == 20

    def test_map_index(self):
        assert value_of('Set M {"a": 1, b: [2, 3]}\nM["b"][0]') == 2

    def test_missing_map_key_is_null(self):
        assert value_of('{"a": 1}["z"]') is None

    def test_string_index(self):
        assert value_of("'abc'[2]") == "c"

    def test_index_out_of_range(self):
        result = run("[1, 2][5]")
        assert result.code == ErrorCode.RUNTIME_ERROR
        assert "out of range" in result.error

    def test_logical_operators_yield_booleans(self):
        assert value_of("1 && 'x'") is True
        assert value_of("0 || ''") is False

    def test_short_circuit_skips_right_side(self):
        assert value_of("False && UNDEFINED_NAME") is False
        assert value_of("True || UNDEFINED_NAME") is True

    def test_equality_is_structural(self):
        assert value_of("[1, {a: 2}] == [1, {a: 2}]") is True
        assert value_of("1 == '1'") is False

    def test_list_concatenation(self):
        assert value_of("[1] + [2, 3]") == [1, 2, 3]


class TestStatements:
    """Bindings, branches and loops."""

    def test_if_elif_else_value(self):
        source = "Set X 5\nIf X > 10 { 'big' } Elif X > 3 { 'mid' } Else { 'small' }"
        assert value_of(source) == "mid"

    def test_if_without_taken_branch_is_null(self):
        assert value_of("Set X 1\nIf X > 5 { 'big' }") is None

    def test_while_with_break(self):
        source = """
Set I 0
While True {
    Set I I + 1
    If I >= 5 { Break }
}
I
"""
        assert value_of(source) == 5

    def test_for_over_list_with_continue(self):
        source = """
Set TOTAL 0
For N In RANGE(10) {
    If N % 2 == 0 { Continue }
    Set TOTAL TOTAL + N
}
TOTAL
"""
        assert value_of(source) == 25

    def test_for_over_map_keys_and_string(self):
        assert value_of("Set KS []\nFor K In {a: 1, b: 2} { Set KS PUSH(KS, K) }\nKS") == ["a", "b"]
        assert value_of("Set N 0\nFor C In 'abc' { Set N N + 1 }\nN") == 3

    def test_for_over_number_is_type_error(self):
        result = run("For X In 5 { X }")
        assert result.code == ErrorCode.RUNTIME_ERROR
        assert result.diagnostic.code == "E402"

    def test_loop_locals_do_not_leak(self):
        result = run("For I In [1] { Set INNER 2 }\nINNER")
        assert result.code == ErrorCode.RUNTIME_ERROR
        assert result.diagnostic.code == "E401"

    def test_set_updates_enclosing_binding(self):
        assert value_of("Set X 1\nIf True { Set X 2 }\nX") == 2

    def test_top_level_return(self):
        assert value_of("Return 7\n8") == 7

    def test_script_globals_visible_to_host(self):
        with Engine() as engine:
            engine.eval("Set TOTAL 3 * 3")
            assert engine.get_global("TOTAL") == 9


class TestFunctions:
    """Named functions, lambdas and closures."""

    def test_function_return(self):
        assert value_of("Func ADD (A, B) { Return A + B }\nADD(2, 3)") == 5

    def test_function_block_value(self):
        assert value_of("Func DOUBLE (X) { X * 2 }\nDOUBLE(21)") == 42

    def test_recursion(self):
        source = """
Func FACT (N) {
    If N <= 1 { Return 1 }
    Return N * FACT(N - 1)
}
FACT(10)
"""
        assert value_of(source) == 3628800

    def test_closure_captures_scope(self):
        source = """
Func ADDER (N) {
    Return Lambda (X) { X + N }
}
Set ADD5 ADDER(5)
ADD5(10)
"""
        assert value_of(source) == 15

    def test_function_locals_do_not_leak(self):
        result = run("Func F () { Set LOCAL 1 }\nF()\nLOCAL")
        assert result.diagnostic.code == "E401"

    def test_arity_mismatch(self):
        result = run("Func F (A) { A }\nF(1, 2)")
        assert result.code == ErrorCode.RUNTIME_ERROR
        assert result.diagnostic.code == "E403"

    def test_calling_a_non_function(self):
        result = run("Set X 1\nX(2)")
        assert result.diagnostic.code == "E402"
        assert "'X' is not callable" in result.error

    def test_variables_shadow_builtins(self):
        assert value_of("Set LENGTH 3\nLENGTH") == 3

    def test_builtins_are_values(self):
        assert value_of("MAP(['a', 'bc'], LENGTH)") == [1, 2]

    def test_returning_a_function_is_not_serializable(self):
        result = run("Lambda (X) { X }")
        assert result.code == ErrorCode.SERIALIZATION_ERROR

    def test_rebound_tail_call_falls_back_to_normal_call(self):
        source = """
Func COUNT (N) {
    If N == 0 { Return 'done' }
    Return COUNT(N - 1)
}
Set ORIGINAL COUNT
Func COUNT (N) { Return 'replaced' }
ORIGINAL(3)
"""
        assert value_of(source) == "replaced"


class TestBuiltins:
    """A sample of the builtin library."""

    def test_math(self):
        assert value_of("[ABS(-2), FLOOR(2.7), CEIL(2.1), ROUND(2.5), SQRT(16), POW(2, 10)]") == \
            [2, 2, 3, 3, 4, 1024]
        assert value_of("[MIN(3, 1, 2), MAX([4, 9]), SUM([1, 2, 3])]") == [1, 9, 6]

    def test_collections(self):
        assert value_of("LENGTH([1, 2, 3])") == 3
        assert value_of("SLICE([1, 2, 3, 4], 1, 3)") == [2, 3]
        assert value_of("REVERSE([1, 2])") == [2, 1]
        assert value_of("SORT(['b', 'a'])") == ["a", "b"]
        assert value_of("CONTAINS([1, 2], 2)") is True
        assert value_of("KEYS({a: 1, b: 2})") == ["a", "b"]
        assert value_of("GET({a: 1}, 'z', 0)") == 0
        assert value_of("PUT({a: 1}, 'b', 2)") == {"a": 1, "b": 2}
        assert value_of("RANGE(1, 7, 2)") == [1, 3, 5]

    def test_collections_are_immutable(self):
        assert value_of("Set XS [1]\nSet YS PUSH(XS, 2)\n[XS, YS]") == [[1], [1, 2]]

    def test_strings(self):
        assert value_of("UPPER('ab') + LOWER('CD')") == "ABcd"
        assert value_of("SPLIT('a,b', ',')") == ["a", "b"]
        assert value_of("JOIN([1, 'x'], '-')") == "1-x"
        assert value_of("NUM('2.5') + 1") == 3.5
        assert value_of("STR(10)") == "10"
        assert value_of("TYPE({})") == "map"

    def test_higher_order(self):
        assert value_of("MAP([1, 2, 3], Lambda (X) { X * X })") == [1, 4, 9]
        assert value_of("FILTER(RANGE(6), Lambda (X) { X % 2 == 0 })") == [0, 2, 4]
        assert value_of("REDUCE([1, 2, 3], Lambda (A, X) { A + X }, 10)") == 16

    def test_builtin_arity(self):
        result = run("LENGTH()")
        assert result.diagnostic.code == "E403"
        assert "LENGTH expects 1" in result.error

    def test_builtin_type_error_has_span(self):
        result = run("Set X 1\nUPPER(5)")
        assert result.diagnostic.code == "E402"
        assert result.diagnostic.span.start.line == 2


class TestRuntimeErrors:
    """Failures come back as results, with partial effects kept."""

    def test_division_by_zero(self):
        result = run("1 / 0")
        assert result.code == ErrorCode.RUNTIME_ERROR
        assert not result.ok
        assert result.value is None

    def test_undefined_variable(self):
        result = run("Set Y MISSING + 1")
        assert result.diagnostic.code == "E401"
        assert "MISSING" in result.error

    def test_type_mismatch(self):
        result = run("1 - 'a'")
        assert result.diagnostic.code == "E402"

    def test_committed_bindings_survive_failure(self):
        with Engine() as engine:
            result = engine.eval("Set A 1\nSet B 1 / 0\nSet C 3")
            assert result.code == ErrorCode.RUNTIME_ERROR
            assert engine.get_global("A") == 1
            assert "C" not in engine.global_names()

    def test_engine_usable_after_failure(self):
        with Engine() as engine:
            engine.eval("1 / 0")
            assert engine.eval("1 + 1").data == 2

    def test_unbounded_recursion_is_a_limit_not_a_crash(self):
        result = run("Func F (N) { Return 1 + F(N) }\nF(0)",
                     limits=Limits(max_recursion_depth=0))
        assert result.code == ErrorCode.LIMIT_EXCEEDED

    def test_optimized_and_plain_runs_fail_alike(self):
        plain = run("Set X 1 / 0", optimization=OptimizationFlags.none())
        optimized = run("Set X 1 / 0")
        assert plain.code == optimized.code == ErrorCode.RUNTIME_ERROR
        assert plain.diagnostic.code == optimized.diagnostic.code


class TestIO:
    """Capability-gated builtins on an all-granted engine."""

    def test_print_goes_to_engine_output(self):
        out = io.StringIO()
        with Engine.all_granted(output=out) as engine:
            engine.eval("PRINT('a', 1)\nPRINTLN(' b', [1, 'x'])")
        assert out.getvalue() == 'a 1 b [1, "x"]\n'

    def test_file_round_trip(self, tmp_path):
        target = tmp_path / "notes.txt"
        with Engine.all_granted() as engine:
            engine.set_global("PATH", str(target))
            engine.eval("WRITE_FILE(PATH, 'one')\nAPPEND_FILE(PATH, ' two')")
            assert target.read_text(encoding="utf-8") == "one two"
            assert engine.eval("READ_FILE(PATH)").data == "one two"
            assert engine.eval("FILE_EXISTS(PATH)").data is True

    def test_read_missing_file(self, tmp_path):
        with Engine.all_granted() as engine:
            engine.set_global("PATH", str(tmp_path / "absent.txt"))
            result = engine.eval("READ_FILE(PATH)")
        assert result.code == ErrorCode.RUNTIME_ERROR
        assert "READ_FILE" in result.error

    def test_read_binary_file_is_runtime_error(self, tmp_path):
        target = tmp_path / "blob.bin"
        target.write_bytes(b"\xff\xfe\x00")
        with Engine.all_granted() as engine:
            engine.set_global("PATH", str(target))
            result = engine.eval("READ_FILE(PATH)")
            kinds = [r["kind"] for r in engine.trace_records()]
        assert result.code == ErrorCode.RUNTIME_ERROR
        assert "READ_FILE: " in result.error
        assert result.diagnostic.code == "E400"
        assert kinds[-2:] == ["io-attempt", "error"]

    def test_write_path_with_nul_is_runtime_error(self, tmp_path):
        with Engine.all_granted() as engine:
            engine.set_global("PATH", str(tmp_path / "bad\0name.txt"))
            result = engine.eval("WRITE_FILE(PATH, 'x')")
            kinds = [r["kind"] for r in engine.trace_records()]
        assert result.code == ErrorCode.RUNTIME_ERROR
        assert "WRITE_FILE" in result.error
        assert kinds[-1] == "error"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("AETHER_TEST_VALUE", "xyz")
        monkeypatch.delenv("AETHER_TEST_MISSING", raising=False)
        with Engine.all_granted() as engine:
            assert engine.eval("ENV('AETHER_TEST_VALUE')").data == "xyz"
            assert engine.eval("ENV('AETHER_TEST_MISSING', 'dflt')").data == "dflt"

    def test_restricted_print(self):
        out = io.StringIO()
        with Engine.restricted(output=out) as engine:
            result = engine.eval("PRINT('x')")
        assert result.code == ErrorCode.PERMISSION_DENIED
        assert out.getvalue() == ""

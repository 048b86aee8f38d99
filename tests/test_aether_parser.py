"""
Unit tests for the Aether parser.
"""

import pytest
from aether import parse_source, ParserError, ParseError
from aether.ast import (
    SetStatement, FunctionDef, IfStatement, WhileStatement, ForStatement,
    ReturnStatement, BreakStatement, ExpressionStatement, Literal, Identifier,
    BinaryOp, LogicalOp, UnaryOp, ListLiteral, MapLiteral, IndexAccess,
    FunctionCall, LambdaExpr, node_identity,
)
from aether.tokens import TokenType


def _statements(source):
    return parse_source(source).body.statements


def _expr(source):
    stmt = _statements(source)[0]
    assert isinstance(stmt, ExpressionStatement)
    return stmt.expression


class TestParserStatements:
    """Statement forms."""

    def test_set_statement(self):
        stmt = _statements("Set X 10")[0]
        assert isinstance(stmt, SetStatement)
        assert stmt.name == "X"
        assert isinstance(stmt.value, Literal)
        assert stmt.value.value == 10.0

    def test_statements_separated_by_newlines_and_semicolons(self):
        stmts = _statements("Set X 1\n\nSet Y 2; Set Z 3")
        assert [s.name for s in stmts] == ["X", "Y", "Z"]

    def test_function_definition(self):
        stmt = _statements("Func ADD (A, B) {\n    Return A + B\n}")[0]
        assert isinstance(stmt, FunctionDef)
        assert stmt.name == "ADD"
        assert stmt.parameters == ("A", "B")
        assert isinstance(stmt.body.statements[0], ReturnStatement)
        assert stmt.tail_recursive is False

    def test_function_without_parameters(self):
        stmt = _statements("Func NOW () { 1 }")[0]
        assert stmt.parameters == ()

    def test_if_elif_else_across_lines(self):
        source = "If X {\n  1\n}\nElif Y {\n  2\n}\nElse {\n  3\n}"
        stmt = _statements(source)[0]
        assert isinstance(stmt, IfStatement)
        assert len(stmt.elif_branches) == 1
        assert stmt.else_branch is not None

    def test_while_statement(self):
        stmt = _statements("While I < 10 { Set I I + 1 }")[0]
        assert isinstance(stmt, WhileStatement)
        assert isinstance(stmt.condition, BinaryOp)

    def test_for_statement(self):
        stmt = _statements("For U In USERS { TRACE(U) }")[0]
        assert isinstance(stmt, ForStatement)
        assert stmt.variable == "U"
        assert isinstance(stmt.iterable, Identifier)

    def test_break_inside_loop(self):
        stmt = _statements("While True { Break }")[0]
        assert isinstance(stmt.body.statements[0], BreakStatement)

    def test_bare_return(self):
        stmt = _statements("Func F () { Return }")[0]
        assert stmt.body.statements[0].value is None

    def test_program_keeps_filename(self):
        program = parse_source("X", filename="job.ae")
        assert program.filename == "job.ae"


class TestParserExpressions:
    """Expression forms and precedence."""

    def test_multiplication_binds_tighter(self):
        expr = _expr("1 + 2 * 3")
        assert expr.operator == TokenType.PLUS
        assert isinstance(expr.right, BinaryOp)
        assert expr.right.operator == TokenType.STAR

    def test_left_associative(self):
        expr = _expr("10 - 4 - 3")
        assert isinstance(expr.left, BinaryOp)
        assert expr.right.value == 3.0

    def test_logical_operators(self):
        expr = _expr("A || B && C")
        assert isinstance(expr, LogicalOp)
        assert expr.operator == TokenType.OR
        assert isinstance(expr.right, LogicalOp)

    def test_unary(self):
        expr = _expr("-X")
        assert isinstance(expr, UnaryOp)
        assert expr.operator == TokenType.MINUS
        assert isinstance(_expr("!Y"), UnaryOp)

    def test_parenthesized(self):
        expr = _expr("(1 + 2) * 3")
        assert expr.operator == TokenType.STAR
        assert isinstance(expr.left, BinaryOp)

    def test_call_and_index_postfix(self):
        expr = _expr("ROWS(1)[0]")
        assert isinstance(expr, IndexAccess)
        assert isinstance(expr.object, FunctionCall)
        assert len(expr.object.arguments) == 1

    def test_list_literal_with_trailing_comma(self):
        expr = _expr("[1, 2, 3,]")
        assert isinstance(expr, ListLiteral)
        assert len(expr.elements) == 3

    def test_map_literal_keys(self):
        """String and bare-name keys are both strings."""
        expr = _expr('{"a": 1, b: 2}')
        assert isinstance(expr, MapLiteral)
        assert [k for k, _ in expr.entries] == ["a", "b"]

    def test_map_literal_duplicate_key_last_wins(self):
        expr = _expr('{"a": 1, "b": 2, "a": 3}')
        assert [k for k, _ in expr.entries] == ["a", "b"]
        assert expr.entries[0][1].value == 3.0

    def test_lambda(self):
        expr = _expr("Lambda (X) { X * 2 }")
        assert isinstance(expr, LambdaExpr)
        assert expr.parameters == ("X",)

    def test_call_arguments_span_lines(self):
        expr = _expr("MAX(1,\n    2,\n    3)")
        assert len(expr.arguments) == 3


class TestParserErrors:
    """Diagnostics for malformed source."""

    def test_missing_variable_name(self):
        with pytest.raises(ParserError) as exc_info:
            parse_source("Set 5 5")
        err = exc_info.value
        assert err.diagnostic.code == "E101"
        assert "variable name" in err.message

    def test_unexpected_eof(self):
        with pytest.raises(ParserError) as exc_info:
            parse_source("Set X (1 +")
        assert exc_info.value.diagnostic.code == "E102"

    def test_unclosed_block(self):
        with pytest.raises(ParserError) as exc_info:
            parse_source("If X {\n  1\n")
        assert exc_info.value.diagnostic.code == "E102"

    def test_invalid_expression(self):
        with pytest.raises(ParserError) as exc_info:
            parse_source(")")
        assert exc_info.value.diagnostic.code == "E103"

    def test_two_expressions_on_one_line(self):
        with pytest.raises(ParserError) as exc_info:
            parse_source("1 2")
        assert "end of statement" in exc_info.value.message

    def test_break_outside_loop(self):
        with pytest.raises(ParserError) as exc_info:
            parse_source("Break")
        assert exc_info.value.diagnostic.code == "E104"

    def test_function_body_resets_loop_context(self):
        with pytest.raises(ParserError):
            parse_source("While True {\n  Func F () { Continue }\n}")

    def test_duplicate_parameter(self):
        with pytest.raises(ParserError) as exc_info:
            parse_source("Func F (A, A) { A }")
        assert exc_info.value.diagnostic.code == "E105"

    def test_stray_closing_brace(self):
        with pytest.raises(ParserError):
            parse_source("Set X 1\n}")

    def test_parse_errors_share_a_base(self):
        """Lexer and parser errors are both ParseErrors."""
        with pytest.raises(ParseError):
            parse_source("Set X $")

    def test_diagnostic_points_at_source(self):
        with pytest.raises(ParserError) as exc_info:
            parse_source("Set X 1\nSet 2 3", filename="bad.ae")
        text = str(exc_info.value)
        assert text.startswith("bad.ae:2:5:")
        assert "Set 2 3" in text
        assert "^" in text


class TestNodeIdentity:
    """Stable node identities for tracing."""

    def test_identity_is_kind_and_position(self):
        stmts = _statements("Set X 1\n  F(X)")
        assert node_identity(stmts[0]) == "SetStatement@1:1"
        assert node_identity(stmts[1].expression) == "FunctionCall@2:3"

    def test_identity_survives_reparse(self):
        first = _statements("Set X 1")[0]
        second = _statements("Set X 1")[0]
        assert first is not second
        assert node_identity(first) == node_identity(second)

    def test_no_node(self):
        assert node_identity(None) is None

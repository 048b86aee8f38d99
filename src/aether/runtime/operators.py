"""
Operator semantics shared by the evaluator and constant folding.

Both callers go through apply_binary/apply_unary, so a folded constant is
computed by exactly the code that would have computed it at run time.
"""

from typing import Optional

from .values import (
    Value, ValueKind, bool_val, number_val, string_val, list_val, display,
)
from ..errors import EvalError, TypeMismatch
from ..tokens import SourceSpan, TokenType


OPERATOR_SYMBOLS = {
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
    TokenType.LT: "<",
    TokenType.GT: ">",
    TokenType.LE: "<=",
    TokenType.GE: ">=",
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.AND: "&&",
    TokenType.OR: "||",
    TokenType.NOT: "!",
}


def values_equal(left: Value, right: Value) -> bool:
    """Structural equality; functions compare by identity."""
    if left.kind != right.kind:
        return False
    if left.kind == ValueKind.LIST:
        if len(left.data) != len(right.data):
            return False
        return all(values_equal(a, b) for a, b in zip(left.data, right.data))
    if left.kind == ValueKind.MAP:
        if left.data.keys() != right.data.keys():
            return False
        return all(values_equal(v, right.data[k]) for k, v in left.data.items())
    if left.kind == ValueKind.FUNCTION:
        return left.data is right.data
    return left.data == right.data


def _mismatch(op: TokenType, left: Value, right: Value,
              span: Optional[SourceSpan]) -> TypeMismatch:
    symbol = OPERATOR_SYMBOLS.get(op, op.name)
    return TypeMismatch(
        f"unsupported operand kinds for '{symbol}': {left.type_name} and {right.type_name}",
        span,
    )


def _add(left: Value, right: Value, span: Optional[SourceSpan]) -> Value:
    if left.kind == ValueKind.NUMBER and right.kind == ValueKind.NUMBER:
        return number_val(left.data + right.data)
    if left.kind == ValueKind.STRING or right.kind == ValueKind.STRING:
        if ValueKind.FUNCTION in (left.kind, right.kind):
            raise _mismatch(TokenType.PLUS, left, right, span)
        return string_val(display(left) + display(right))
    if left.kind == ValueKind.LIST and right.kind == ValueKind.LIST:
        return list_val(left.data + right.data)
    raise _mismatch(TokenType.PLUS, left, right, span)


def _arith(op: TokenType, left: Value, right: Value, span: Optional[SourceSpan]) -> Value:
    if left.kind != ValueKind.NUMBER or right.kind != ValueKind.NUMBER:
        raise _mismatch(op, left, right, span)
    a, b = left.data, right.data
    if op == TokenType.MINUS:
        return number_val(a - b)
    if op == TokenType.STAR:
        return number_val(a * b)
    if b == 0.0:
        raise EvalError("division by zero" if op == TokenType.SLASH else "modulo by zero", span)
    if op == TokenType.SLASH:
        return number_val(a / b)
    return number_val(a % b)


def _compare(op: TokenType, left: Value, right: Value, span: Optional[SourceSpan]) -> Value:
    comparable = (ValueKind.NUMBER, ValueKind.STRING)
    if left.kind != right.kind or left.kind not in comparable:
        raise _mismatch(op, left, right, span)
    a, b = left.data, right.data
    if op == TokenType.LT:
        return bool_val(a < b)
    if op == TokenType.GT:
        return bool_val(a > b)
    if op == TokenType.LE:
        return bool_val(a <= b)
    return bool_val(a >= b)


def apply_binary(op: TokenType, left: Value, right: Value,
                 span: Optional[SourceSpan] = None) -> Value:
    """
    Apply a non-short-circuit binary operator.

    Raises:
        TypeMismatch: operand kinds not supported by the operator
        EvalError: division or modulo by zero, arithmetic overflow
    """
    try:
        if op == TokenType.PLUS:
            return _add(left, right, span)
        if op in (TokenType.MINUS, TokenType.STAR, TokenType.SLASH, TokenType.PERCENT):
            return _arith(op, left, right, span)
        if op in (TokenType.LT, TokenType.GT, TokenType.LE, TokenType.GE):
            return _compare(op, left, right, span)
        if op == TokenType.EQ:
            return bool_val(values_equal(left, right))
        if op == TokenType.NE:
            return bool_val(not values_equal(left, right))
    except ArithmeticError as e:
        raise EvalError(f"arithmetic error: {e}", span)
    raise EvalError(f"unknown binary operator {op.name}", span)


def apply_unary(op: TokenType, operand: Value,
                span: Optional[SourceSpan] = None) -> Value:
    """Apply '-' (numbers only) or '!' (any value, by truthiness)."""
    if op == TokenType.NOT:
        return bool_val(not operand.is_truthy())
    if op == TokenType.MINUS:
        if operand.kind != ValueKind.NUMBER:
            raise TypeMismatch(f"cannot negate a {operand.type_name}", span)
        return number_val(-operand.data)
    raise EvalError(f"unknown unary operator {op.name}", span)

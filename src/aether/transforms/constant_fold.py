"""
Constant folding.

Replaces operators whose operands are literals with the literal result,
computed by the same operator functions the evaluator uses. Anything
that would raise (division by zero, mismatched kinds) is left in place
so the error surfaces at run time exactly as it would unoptimized.
"""

from ..ast import Expression, Literal, BinaryOp, LogicalOp, UnaryOp
from ..errors import AetherError
from ..runtime.operators import apply_binary, apply_unary
from ..runtime.values import literal_val, is_scalar
from ..tokens import TokenType
from .base import TreeTransform


class ConstantFoldTransform(TreeTransform):
    """Fold literal-only arithmetic, comparison and logic."""

    @property
    def name(self) -> str:
        return "constant-folding"

    def visit_binary_op(self, node: BinaryOp) -> Expression:
        folded = super().visit_binary_op(node)
        if not (isinstance(folded.left, Literal) and isinstance(folded.right, Literal)):
            return folded
        try:
            result = apply_binary(
                folded.operator, literal_val(folded.left.value), literal_val(folded.right.value)
            )
        except AetherError:
            return folded
        if not is_scalar(result):
            return folded
        return Literal(span=node.span, value=result.data)

    def visit_unary_op(self, node: UnaryOp) -> Expression:
        folded = super().visit_unary_op(node)
        if not isinstance(folded.operand, Literal):
            return folded
        try:
            result = apply_unary(folded.operator, literal_val(folded.operand.value))
        except AetherError:
            return folded
        return Literal(span=node.span, value=result.data)

    def visit_logical_op(self, node: LogicalOp) -> Expression:
        folded = super().visit_logical_op(node)
        if not isinstance(folded.left, Literal):
            return folded
        left = literal_val(folded.left.value).is_truthy()
        if folded.operator == TokenType.AND and not left:
            return Literal(span=node.span, value=False)
        if folded.operator == TokenType.OR and left:
            return Literal(span=node.span, value=True)
        if isinstance(folded.right, Literal):
            return Literal(span=node.span, value=literal_val(folded.right.value).is_truthy())
        return folded

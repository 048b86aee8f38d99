"""
Tail-recursion rewrite.

Inside a named function F, a self-call whose result is the function's
result becomes a TailCall:

    Func LOOP (N, ACC) {
        If (N == 0) { Return ACC }
        Return LOOP(N - 1, ACC + N)     // TailCall
    }

Tail positions are `Return F(...)` anywhere in the body, and a bare
`F(...)` that is the final statement of the body (looking through the
branches of a final If). Nested Func and Lambda bodies belong to other
functions and are left to their own rewrite.

The evaluator runs a TailCall by rebinding the parameters and restarting
the body, so the call depth stays constant.
"""

from typing import Optional, Tuple

from ..ast import (
    Statement, Block, FunctionDef, IfStatement, ElifBranch, WhileStatement,
    ForStatement, ReturnStatement, ExpressionStatement, TailCall,
    Expression, Identifier, FunctionCall,
)
from .base import TreeTransform


def _self_call(expr: Optional[Expression], name: str) -> Optional[FunctionCall]:
    if (isinstance(expr, FunctionCall) and isinstance(expr.callee, Identifier)
            and expr.callee.name == name):
        return expr
    return None


def _tail_call(stmt: Statement, call: FunctionCall, name: str) -> TailCall:
    return TailCall(span=stmt.span, function_name=name, arguments=call.arguments, call=call)


class TailRecursionTransform(TreeTransform):
    """Turn self-calls in tail position into TailCall statements."""

    @property
    def name(self) -> str:
        return "tail-recursion"

    def visit_function_def(self, node: FunctionDef) -> Optional[Statement]:
        # Nested definitions are rewritten first, each under its own name
        visited = super().visit_function_def(node)
        statements, found = self._rewrite(visited.body.statements, node.name, tail=True)
        if not found:
            return visited
        return FunctionDef(
            span=visited.span,
            name=visited.name,
            parameters=visited.parameters,
            body=Block(span=visited.body.span, statements=statements),
            tail_recursive=True,
        )

    def _rewrite(self, statements: Tuple[Statement, ...], name: str,
                 tail: bool) -> Tuple[Tuple[Statement, ...], bool]:
        """Rewrite a statement list; `tail` says whether its end is a tail position."""
        found = False
        result = []
        last = len(statements) - 1
        for i, stmt in enumerate(statements):
            new_stmt, changed = self._rewrite_statement(stmt, name, tail and i == last)
            found = found or changed
            result.append(new_stmt)
        return tuple(result), found

    def _rewrite_block(self, block: Block, name: str, tail: bool) -> Tuple[Block, bool]:
        statements, found = self._rewrite(block.statements, name, tail)
        if not found:
            return block, False
        return Block(span=block.span, statements=statements), True

    def _rewrite_statement(self, stmt: Statement, name: str,
                           tail: bool) -> Tuple[Statement, bool]:
        if isinstance(stmt, ReturnStatement):
            call = _self_call(stmt.value, name)
            if call is not None:
                return _tail_call(stmt, call, name), True
            return stmt, False

        if isinstance(stmt, ExpressionStatement) and tail:
            call = _self_call(stmt.expression, name)
            if call is not None:
                return _tail_call(stmt, call, name), True
            return stmt, False

        if isinstance(stmt, IfStatement):
            then_branch, found = self._rewrite_block(stmt.then_branch, name, tail)
            elif_branches = []
            for branch in stmt.elif_branches:
                body, changed = self._rewrite_block(branch.body, name, tail)
                found = found or changed
                elif_branches.append(ElifBranch(span=branch.span, condition=branch.condition, body=body))
            else_branch = stmt.else_branch
            if else_branch is not None:
                else_branch, changed = self._rewrite_block(else_branch, name, tail)
                found = found or changed
            if not found:
                return stmt, False
            return IfStatement(
                span=stmt.span,
                condition=stmt.condition,
                then_branch=then_branch,
                elif_branches=tuple(elif_branches),
                else_branch=else_branch,
            ), True

        if isinstance(stmt, Block):
            return self._rewrite_block(stmt, name, tail)

        # Loop bodies end in the loop, not the function: only Returns qualify
        if isinstance(stmt, WhileStatement):
            body, found = self._rewrite_block(stmt.body, name, False)
            if not found:
                return stmt, False
            return WhileStatement(span=stmt.span, condition=stmt.condition, body=body), True

        if isinstance(stmt, ForStatement):
            body, found = self._rewrite_block(stmt.body, name, False)
            if not found:
                return stmt, False
            return ForStatement(span=stmt.span, variable=stmt.variable,
                                iterable=stmt.iterable, body=body), True

        return stmt, False

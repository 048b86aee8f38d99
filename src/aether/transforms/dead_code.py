"""
Dead-code elimination.

Removes code that can never run or whose only effect is a value nobody
sees:
- the untaken arms of an If whose condition is a literal
- a While whose condition is a falsy literal
- statements following Return, Break or Continue in the same block
- literal expression statements that are not last in their block

A block's value is the value of its last statement, so when the last
statement goes away a Null literal takes its place.
"""

from typing import List, Optional, Tuple

from ..ast import (
    Statement, Block, IfStatement, ElifBranch, WhileStatement, ReturnStatement,
    BreakStatement, ContinueStatement, ExpressionStatement, TailCall, Literal,
)
from ..runtime.values import literal_val
from .base import TreeTransform

_TERMINATORS = (ReturnStatement, BreakStatement, ContinueStatement, TailCall)


def _null_statement(stmt: Statement) -> ExpressionStatement:
    return ExpressionStatement(span=stmt.span, expression=Literal(span=stmt.span, value=None))


def _is_literal_statement(stmt: Statement) -> bool:
    return isinstance(stmt, ExpressionStatement) and isinstance(stmt.expression, Literal)


class DeadCodeTransform(TreeTransform):
    """Drop unreachable and effect-free statements."""

    @property
    def name(self) -> str:
        return "dead-code-elimination"

    def visit_statements(self, statements: Tuple[Statement, ...]) -> Tuple[Statement, ...]:
        result: List[Statement] = []
        terminated = False
        last_survived = True
        for stmt in statements:
            new_stmt = self.visit_statement(stmt)
            last_survived = new_stmt is not None
            if new_stmt is None:
                continue
            result.append(new_stmt)
            if isinstance(new_stmt, _TERMINATORS):
                terminated = True
                break

        # Preserve the block value when its last statement was removed
        if statements and not terminated and not last_survived:
            result.append(_null_statement(statements[-1]))

        return tuple(s for i, s in enumerate(result)
                     if i == len(result) - 1 or not _is_literal_statement(s))

    def visit_if(self, node: IfStatement) -> Optional[Statement]:
        visited = super().visit_if(node)
        return self._prune_if(visited)

    def _prune_if(self, node: IfStatement) -> Optional[Statement]:
        if isinstance(node.condition, Literal):
            if literal_val(node.condition.value).is_truthy():
                return node.then_branch
            if node.elif_branches:
                first, rest = node.elif_branches[0], node.elif_branches[1:]
                return self._prune_if(IfStatement(
                    span=node.span,
                    condition=first.condition,
                    then_branch=first.body,
                    elif_branches=rest,
                    else_branch=node.else_branch,
                ))
            return node.else_branch

        # Literal Elif conditions: false ones go, a true one becomes the Else
        elif_branches: List[ElifBranch] = []
        else_branch = node.else_branch
        for branch in node.elif_branches:
            if isinstance(branch.condition, Literal):
                if literal_val(branch.condition.value).is_truthy():
                    else_branch = branch.body
                    break
                continue
            elif_branches.append(branch)

        return IfStatement(
            span=node.span,
            condition=node.condition,
            then_branch=node.then_branch,
            elif_branches=tuple(elif_branches),
            else_branch=else_branch,
        )

    def visit_while(self, node: WhileStatement) -> Optional[Statement]:
        visited = super().visit_while(node)
        if isinstance(visited.condition, Literal) and not literal_val(visited.condition.value).is_truthy():
            return None
        return visited

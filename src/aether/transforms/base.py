"""
Tree rewriting passes.

A pass maps a Program to a Program. Nodes are frozen, so rewriting means
building replacements with dataclasses.replace; leaves come back as-is.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple
import logging

from ..ast import (
    AstNode, Program, Statement, Block, SetStatement, FunctionDef, IfStatement,
    WhileStatement, ForStatement, ReturnStatement, ExpressionStatement, TailCall,
    Expression, BinaryOp, LogicalOp, UnaryOp,
    ListLiteral, MapLiteral, IndexAccess, FunctionCall, LambdaExpr,
)

logger = logging.getLogger(__name__)


class AstTransform(ABC):
    """One optimization pass."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short label used in logs."""

    @abstractmethod
    def transform(self, program: Program) -> Program:
        """Return the rewritten program; returning the input means no change."""


# Node class -> name of the TreeTransform hook that handles it
_STATEMENT_HOOKS: Dict[type, str] = {
    ExpressionStatement: "visit_expr_statement",
    SetStatement: "visit_set",
    FunctionDef: "visit_function_def",
    IfStatement: "visit_if",
    WhileStatement: "visit_while",
    ForStatement: "visit_for",
    ReturnStatement: "visit_return",
    TailCall: "visit_tail_call",
    Block: "visit_block",
}

_EXPRESSION_HOOKS: Dict[type, str] = {
    BinaryOp: "visit_binary_op",
    LogicalOp: "visit_logical_op",
    UnaryOp: "visit_unary_op",
    FunctionCall: "visit_function_call",
    IndexAccess: "visit_index_access",
    ListLiteral: "visit_list_literal",
    MapLiteral: "visit_map_literal",
    LambdaExpr: "visit_lambda",
}


class TreeTransform(AstTransform):
    """
    Walks every statement and expression, rebuilding parents from their
    rewritten children.

    Subclasses override the visit_* hook for the node kinds they care
    about and call super() to get the children rewritten first. Node kinds
    without a hook (literals, identifiers, Break, Continue) pass through.
    A statement hook may return None to drop the statement.
    """

    def transform(self, program: Program) -> Program:
        return replace(program, body=self.visit_block(program.body))

    def _dispatch(self, node: AstNode, hooks: Dict[type, str]):
        hook: Optional[Callable] = getattr(self, hooks.get(type(node), ""), None)
        return hook(node) if hook else node

    # --- Statements ---

    def visit_statement(self, node: Statement) -> Optional[Statement]:
        return self._dispatch(node, _STATEMENT_HOOKS)

    def visit_statements(self, statements: Tuple[Statement, ...]) -> Tuple[Statement, ...]:
        rewritten = (self.visit_statement(stmt) for stmt in statements)
        return tuple(stmt for stmt in rewritten if stmt is not None)

    def visit_block(self, node: Block) -> Block:
        return replace(node, statements=self.visit_statements(node.statements))

    def visit_expr_statement(self, node: ExpressionStatement) -> Optional[Statement]:
        return replace(node, expression=self.visit_expression(node.expression))

    def visit_set(self, node: SetStatement) -> Optional[Statement]:
        return replace(node, value=self.visit_expression(node.value))

    def visit_function_def(self, node: FunctionDef) -> Optional[Statement]:
        return replace(node, body=self.visit_block(node.body))

    def visit_if(self, node: IfStatement) -> Optional[Statement]:
        branches = tuple(
            replace(branch, condition=self.visit_expression(branch.condition),
                    body=self.visit_block(branch.body))
            for branch in node.elif_branches
        )
        return replace(
            node,
            condition=self.visit_expression(node.condition),
            then_branch=self.visit_block(node.then_branch),
            elif_branches=branches,
            else_branch=node.else_branch and self.visit_block(node.else_branch),
        )

    def visit_while(self, node: WhileStatement) -> Optional[Statement]:
        return replace(node, condition=self.visit_expression(node.condition),
                       body=self.visit_block(node.body))

    def visit_for(self, node: ForStatement) -> Optional[Statement]:
        return replace(node, iterable=self.visit_expression(node.iterable),
                       body=self.visit_block(node.body))

    def visit_return(self, node: ReturnStatement) -> Optional[Statement]:
        if node.value is None:
            return node
        return replace(node, value=self.visit_expression(node.value))

    def visit_tail_call(self, node: TailCall) -> Optional[Statement]:
        call = self.visit_expression(node.call)
        if isinstance(call, FunctionCall):
            return replace(node, arguments=call.arguments, call=call)
        # The call was rewritten into something else; it is a plain return now
        return ReturnStatement(span=node.span, value=call)

    # --- Expressions ---

    def visit_expression(self, node: Expression) -> Expression:
        return self._dispatch(node, _EXPRESSION_HOOKS)

    def _visit_all(self, nodes: Tuple[Expression, ...]) -> Tuple[Expression, ...]:
        return tuple(map(self.visit_expression, nodes))

    def visit_binary_op(self, node: BinaryOp) -> Expression:
        return replace(node, left=self.visit_expression(node.left),
                       right=self.visit_expression(node.right))

    def visit_logical_op(self, node: LogicalOp) -> Expression:
        return replace(node, left=self.visit_expression(node.left),
                       right=self.visit_expression(node.right))

    def visit_unary_op(self, node: UnaryOp) -> Expression:
        return replace(node, operand=self.visit_expression(node.operand))

    def visit_function_call(self, node: FunctionCall) -> Expression:
        return replace(node, callee=self.visit_expression(node.callee),
                       arguments=self._visit_all(node.arguments))

    def visit_index_access(self, node: IndexAccess) -> Expression:
        return replace(node, object=self.visit_expression(node.object),
                       index=self.visit_expression(node.index))

    def visit_list_literal(self, node: ListLiteral) -> Expression:
        return replace(node, elements=self._visit_all(node.elements))

    def visit_map_literal(self, node: MapLiteral) -> Expression:
        return replace(node, entries=tuple(
            (key, self.visit_expression(value)) for key, value in node.entries
        ))

    def visit_lambda(self, node: LambdaExpr) -> Expression:
        return replace(node, body=self.visit_block(node.body))


class TransformPipeline:
    """Runs passes in order, each on the previous one's output."""

    def __init__(self, transforms: Optional[List[AstTransform]] = None):
        self.transforms: List[AstTransform] = list(transforms or ())

    def add(self, transform: AstTransform) -> "TransformPipeline":
        self.transforms.append(transform)
        return self

    @property
    def names(self) -> List[str]:
        return [t.name for t in self.transforms]

    def apply(self, program: Program) -> Program:
        for transform in self.transforms:
            logger.debug("applying %s", transform.name)
            program = transform.transform(program)
        return program


class IdentityTransform(AstTransform):
    """A pass that changes nothing."""

    name = "identity"

    def transform(self, program: Program) -> Program:
        return program

"""
Syntax tree for Aether programs.

Every node is a frozen dataclass and child sequences are tuples, so a tree
that sits in the cache can be evaluated any number of times and optimizer
passes build new trees instead of editing old ones. TailCall is the one
node kind the parser never produces.
"""

from dataclasses import dataclass, field, fields
from typing import Iterator, Optional, Tuple, Union, TextIO
import sys

from .tokens import SourceSpan, TokenType


@dataclass(frozen=True)
class AstNode:
    span: SourceSpan


def node_identity(node: Optional[AstNode]) -> Optional[str]:
    """
    Name a node by its kind and start position, e.g. "BinaryOp@3:7".

    Two parses of the same text give the same identities, which id()
    would not.
    """
    if node is None:
        return None
    where = node.span.start
    return f"{type(node).__name__}@{where.line}:{where.column}"


# --- Expressions ---

@dataclass(frozen=True)
class Expression(AstNode):
    pass


@dataclass(frozen=True)
class Literal(Expression):
    value: Union[None, bool, float, str]


@dataclass(frozen=True)
class Identifier(Expression):
    name: str


@dataclass(frozen=True)
class BinaryOp(Expression):
    """Arithmetic and comparison: A + B, X < Y."""
    left: Expression
    operator: TokenType
    right: Expression


@dataclass(frozen=True)
class LogicalOp(Expression):
    """&& and ||; the right side runs only when needed."""
    left: Expression
    operator: TokenType
    right: Expression


@dataclass(frozen=True)
class UnaryOp(Expression):
    operator: TokenType   # MINUS or NOT
    operand: Expression


@dataclass(frozen=True)
class ListLiteral(Expression):
    elements: Tuple[Expression, ...]


@dataclass(frozen=True)
class MapLiteral(Expression):
    """{"k": v, ...}; entries are (key, value) pairs in source order."""
    entries: Tuple[Tuple[str, Expression], ...]


@dataclass(frozen=True)
class IndexAccess(Expression):
    object: Expression
    index: Expression


@dataclass(frozen=True)
class FunctionCall(Expression):
    """Any call. The callee is an expression, so F(1)(2) nests."""
    callee: Expression
    arguments: Tuple[Expression, ...]


@dataclass(frozen=True)
class LambdaExpr(Expression):
    parameters: Tuple[str, ...]
    body: "Block"


# --- Statements ---

@dataclass(frozen=True)
class Statement(AstNode):
    pass


@dataclass(frozen=True)
class Block(Statement):
    """
    Statements run in order; the block's value is the last one's.

    A construct's body shares the construct's scope. A Block standing
    alone as a statement, which only dead-code elimination creates, gets
    its own child scope.
    """
    statements: Tuple[Statement, ...]


@dataclass(frozen=True)
class SetStatement(Statement):
    name: str
    value: Expression


@dataclass(frozen=True)
class FunctionDef(Statement):
    """
    Func NAME (A, B) { ... }

    tail_recursive marks bodies the tail-recursion pass rewrote to contain
    TailCall statements.
    """
    name: str
    parameters: Tuple[str, ...]
    body: Block
    tail_recursive: bool = False


@dataclass(frozen=True)
class ElifBranch(AstNode):
    condition: Expression
    body: Block


@dataclass(frozen=True)
class IfStatement(Statement):
    condition: Expression
    then_branch: Block
    elif_branches: Tuple[ElifBranch, ...] = ()
    else_branch: Optional[Block] = None


@dataclass(frozen=True)
class WhileStatement(Statement):
    condition: Expression
    body: Block


@dataclass(frozen=True)
class ForStatement(Statement):
    """For X In xs { ... } over list items, map keys or string characters."""
    variable: str
    iterable: Expression
    body: Block


@dataclass(frozen=True)
class ReturnStatement(Statement):
    value: Optional[Expression] = None


@dataclass(frozen=True)
class BreakStatement(Statement):
    pass


@dataclass(frozen=True)
class ContinueStatement(Statement):
    pass


@dataclass(frozen=True)
class ExpressionStatement(Statement):
    expression: Expression


@dataclass(frozen=True)
class TailCall(Statement):
    """
    Stands in for `Return F(args)` inside F: the interpreter rebinds the
    parameters and loops instead of growing the stack. If F has been
    rebound to another function by then, `call` is evaluated normally.
    """
    function_name: str
    arguments: Tuple[Expression, ...]
    call: FunctionCall


@dataclass(frozen=True)
class Program(AstNode):
    body: Block
    filename: Optional[str] = field(default=None, compare=False)


# --- Debug output ---

def _children(node: AstNode) -> Iterator[Tuple[str, object]]:
    for f in fields(node):
        if f.name != "span":
            yield f.name, getattr(node, f.name)


def _dump(value, label: str, depth: int, out: TextIO) -> None:
    pad = "  " * depth
    prefix = f"{label}: " if label else ""
    if isinstance(value, AstNode):
        print(f"{pad}{prefix}{type(value).__name__}", file=out)
        for name, child in _children(value):
            _dump(child, name, depth + 1, out)
    elif isinstance(value, tuple) and value and not isinstance(value[0], str):
        print(f"{pad}{prefix}[", file=out)
        for item in value:
            if isinstance(item, tuple):
                _dump(item[1], repr(item[0]), depth + 1, out)
            else:
                _dump(item, "", depth + 1, out)
        print(f"{pad}]", file=out)
    elif isinstance(value, TokenType):
        print(f"{pad}{prefix}{value.name}", file=out)
    else:
        print(f"{pad}{prefix}{value!r}", file=out)


def print_ast(node: AstNode, stream: Optional[TextIO] = None) -> None:
    """Write an indented outline of the tree, one node or field per line."""
    _dump(node, "", 0, stream or sys.stdout)

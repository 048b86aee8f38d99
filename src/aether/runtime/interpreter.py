"""
Tree-walking evaluator for Aether programs.

Evaluates AST nodes against an Environment, ticking the LimitMonitor for
every node, entering a frame for every call, consulting the
PermissionGuard before I/O builtins and recording call and error events
in the Tracer.

Evaluation order is left to right everywhere: binary operands, call
arguments (after the callee), list elements and map entries.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, TextIO, Tuple
import logging
import sys

from .values import (
    Value, ValueKind, Closure, NULL, FALSE, bool_val, string_val, list_val, map_val,
    function_val, literal_val, display,
)
from .operators import apply_binary, apply_unary
from .environment import Environment
from .permissions import PermissionGuard
from .limits import LimitMonitor
from .tracer import Tracer, TraceEventKind
from .builtins import BuiltinFunction, BuiltinRegistry, get_builtin_registry

from ..ast import (
    AstNode, Program, Statement, Block, SetStatement, FunctionDef, IfStatement,
    WhileStatement, ForStatement, ReturnStatement, BreakStatement,
    ContinueStatement, ExpressionStatement, TailCall,
    Expression, Literal, Identifier, BinaryOp, LogicalOp, UnaryOp,
    ListLiteral, MapLiteral, IndexAccess, FunctionCall, LambdaExpr,
    node_identity,
)
from ..errors import (
    AetherError, EvalError, TypeMismatch, ArityMismatch, LimitExceeded, LimitKind,
)
from ..tokens import TokenType

logger = logging.getLogger(__name__)


class ControlSignal(Enum):
    """Non-local control flow in flight."""
    RETURN = "return"
    TAIL_CALL = "tail-call"
    BREAK = "break"
    CONTINUE = "continue"


@dataclass
class ExecutionContext:
    """
    Everything one evaluation borrows from its engine, plus control state.

    Tracks:
    - The scope chain (env)
    - The guard, tracer and limit monitor
    - Pending Return / Break / Continue / tail-call signals
    - The closure currently running (for tail calls)
    """
    env: Environment
    guard: PermissionGuard
    tracer: Tracer
    monitor: LimitMonitor
    evaluator: "Evaluator" = None
    output: Optional[TextIO] = None

    current_node: Optional[AstNode] = None
    current_closure: Optional[Closure] = None

    # Control flow flags
    _signal: Optional[ControlSignal] = None
    _return_value: Value = NULL
    _tail_args: Tuple[Value, ...] = field(default_factory=tuple)

    def current_node_identity(self) -> Optional[str]:
        return node_identity(self.current_node)

    def write_output(self, text: str) -> None:
        stream = self.output if self.output is not None else sys.stdout
        stream.write(text)

    def call_function(self, fn: Value, args: Sequence[Value]) -> Value:
        """Call a function value from a builtin (MAP, FILTER, REDUCE)."""
        return self.evaluator.call_value(fn, list(args), self.current_node, self)

    # --- Control signals ---

    @property
    def interrupted(self) -> bool:
        """Check if any control signal is pending."""
        return self._signal is not None

    def signal_return(self, value: Value) -> None:
        """Signal an early return from a function or the program."""
        self._signal = ControlSignal.RETURN
        self._return_value = value

    def signal_tail_call(self, args: Tuple[Value, ...]) -> None:
        """Signal a restart of the running function with new arguments."""
        self._signal = ControlSignal.TAIL_CALL
        self._tail_args = args

    def signal_break(self) -> None:
        self._signal = ControlSignal.BREAK

    def signal_continue(self) -> None:
        self._signal = ControlSignal.CONTINUE

    @property
    def should_return(self) -> bool:
        """Return and tail calls both leave the function body."""
        return self._signal in (ControlSignal.RETURN, ControlSignal.TAIL_CALL)

    @property
    def has_tail_call(self) -> bool:
        return self._signal == ControlSignal.TAIL_CALL

    @property
    def should_break(self) -> bool:
        return self._signal == ControlSignal.BREAK

    @property
    def should_continue(self) -> bool:
        return self._signal == ControlSignal.CONTINUE

    @property
    def return_value(self) -> Value:
        return self._return_value

    def take_tail_call(self) -> Tuple[Value, ...]:
        args = self._tail_args
        self._signal = None
        self._tail_args = ()
        return args

    def clear_return(self) -> None:
        """Called by the function that consumed the return."""
        self._signal = None
        self._return_value = NULL

    def clear_loop_signal(self) -> None:
        if self._signal in (ControlSignal.BREAK, ControlSignal.CONTINUE):
            self._signal = None


class Evaluator:
    """
    Tree-walking evaluator.

    Evaluates AST nodes by dispatching to type-specific methods. Holds no
    per-evaluation state; everything mutable lives in the ExecutionContext.
    """

    def __init__(self, builtins: Optional[BuiltinRegistry] = None):
        self.builtins = builtins or get_builtin_registry()

    def execute(self, program: Program, ctx: ExecutionContext) -> Value:
        """
        Run a program in the environment's current (root) scope.

        Returns the program's value: a top-level Return value or the value
        of the last executed statement.

        Raises:
            AetherError: any evaluation failure; an `error` trace entry has
                already been recorded
        """
        ctx.evaluator = self
        try:
            value = self._execute_statements(program.body.statements, ctx)
            if ctx.should_return:
                value = ctx.return_value
                ctx.clear_return()
            return value
        except RecursionError:
            limit = ctx.monitor.limits.max_recursion_depth
            err = LimitExceeded(
                LimitKind.RECURSION,
                limit if limit > 0 else ctx.monitor.current_depth,
                ctx.current_node.span if ctx.current_node else None,
                detail=f"host stack exhausted at call depth {ctx.monitor.current_depth}",
            )
            logger.info("host stack exhausted at call depth %d", ctx.monitor.current_depth)
            self._trace_error(err, ctx)
            raise err from None
        except AetherError as e:
            self._trace_error(e, ctx)
            raise
        except Exception as e:
            logger.error("unexpected %s during evaluation", type(e).__name__, exc_info=True)
            err = EvalError(f"internal error: {e}",
                            ctx.current_node.span if ctx.current_node else None)
            self._trace_error(err, ctx)
            raise err from e
        finally:
            ctx.env.unwind()

    def _trace_error(self, error: AetherError, ctx: ExecutionContext) -> None:
        ctx.tracer.record(
            TraceEventKind.ERROR,
            error.message,
            node=ctx.current_node_identity(),
            label=error.diagnostic.code,
        )

    def _tick(self, node: AstNode, ctx: ExecutionContext) -> None:
        ctx.current_node = node
        ctx.monitor.tick(node)

    # --- Statements ---

    def _execute_statements(self, statements: Sequence[Statement],
                            ctx: ExecutionContext) -> Value:
        """Execute statements in order; the value is that of the last one run."""
        result = NULL
        for stmt in statements:
            result = self._execute_statement(stmt, ctx)
            if ctx.interrupted:
                break
        return result

    def _execute_statement(self, stmt: Statement, ctx: ExecutionContext) -> Value:
        """Execute a statement."""
        self._tick(stmt, ctx)
        if isinstance(stmt, ExpressionStatement):
            return self._evaluate(stmt.expression, ctx)
        elif isinstance(stmt, SetStatement):
            ctx.env.assign(stmt.name, self._evaluate(stmt.value, ctx))
        elif isinstance(stmt, FunctionDef):
            self._execute_function_def(stmt, ctx)
        elif isinstance(stmt, IfStatement):
            return self._execute_if_statement(stmt, ctx)
        elif isinstance(stmt, WhileStatement):
            self._execute_while(stmt, ctx)
        elif isinstance(stmt, ForStatement):
            self._execute_for(stmt, ctx)
        elif isinstance(stmt, ReturnStatement):
            self._execute_return(stmt, ctx)
        elif isinstance(stmt, TailCall):
            self._execute_tail_call(stmt, ctx)
        elif isinstance(stmt, BreakStatement):
            ctx.signal_break()
        elif isinstance(stmt, ContinueStatement):
            ctx.signal_continue()
        elif isinstance(stmt, Block):
            with ctx.env.new_scope("block"):
                return self._execute_statements(stmt.statements, ctx)
        else:
            raise EvalError(f"unknown statement type: {type(stmt).__name__}", stmt.span)
        return NULL

    def _execute_function_def(self, stmt: FunctionDef, ctx: ExecutionContext) -> None:
        """Bind a closure over the current scope, so it can see itself."""
        closure = Closure(
            parameters=stmt.parameters,
            body=stmt.body,
            scope=ctx.env.current,
            name=stmt.name,
            tail_recursive=stmt.tail_recursive,
        )
        ctx.env.define(stmt.name, function_val(closure))

    def _execute_if_statement(self, stmt: IfStatement, ctx: ExecutionContext) -> Value:
        """Execute a conditional; its value is the taken branch's value."""
        if self._evaluate(stmt.condition, ctx).is_truthy():
            with ctx.env.new_scope("if-then"):
                return self._execute_statements(stmt.then_branch.statements, ctx)

        for elif_branch in stmt.elif_branches:
            if self._evaluate(elif_branch.condition, ctx).is_truthy():
                with ctx.env.new_scope("elif"):
                    return self._execute_statements(elif_branch.body.statements, ctx)

        if stmt.else_branch is not None:
            with ctx.env.new_scope("else"):
                return self._execute_statements(stmt.else_branch.statements, ctx)
        return NULL

    def _run_loop_body(self, body: Block, ctx: ExecutionContext,
                       variable: Optional[str] = None, item: Optional[Value] = None) -> bool:
        """Run one iteration in a fresh scope. Returns False to leave the loop."""
        with ctx.env.new_scope("loop-body"):
            if variable is not None:
                ctx.env.define(variable, item)
            self._execute_statements(body.statements, ctx)
        if ctx.should_return:
            return False
        if ctx.should_break:
            ctx.clear_loop_signal()
            return False
        ctx.clear_loop_signal()
        return True

    def _execute_while(self, stmt: WhileStatement, ctx: ExecutionContext) -> None:
        """Execute a while loop."""
        while self._evaluate(stmt.condition, ctx).is_truthy():
            if not self._run_loop_body(stmt.body, ctx):
                return

    def _execute_for(self, stmt: ForStatement, ctx: ExecutionContext) -> None:
        """Iterate a list's items, a map's keys or a string's characters."""
        iterable = self._evaluate(stmt.iterable, ctx)

        if iterable.kind == ValueKind.LIST:
            items = iterable.data
        elif iterable.kind == ValueKind.MAP:
            items = tuple(string_val(k) for k in iterable.data)
        elif iterable.kind == ValueKind.STRING:
            items = tuple(string_val(ch) for ch in iterable.data)
        else:
            raise TypeMismatch(f"cannot iterate over a {iterable.type_name}", stmt.iterable.span)

        for item in items:
            if not self._run_loop_body(stmt.body, ctx, stmt.variable, item):
                return

    def _execute_return(self, stmt: ReturnStatement, ctx: ExecutionContext) -> None:
        value = self._evaluate(stmt.value, ctx) if stmt.value is not None else NULL
        ctx.signal_return(value)

    def _execute_tail_call(self, stmt: TailCall, ctx: ExecutionContext) -> None:
        """Restart the running function, or fall back to an ordinary call."""
        running = ctx.current_closure
        target = ctx.env.lookup(stmt.function_name)
        if (running is None or target is None
                or target.kind != ValueKind.FUNCTION or target.data is not running):
            ctx.signal_return(self._evaluate(stmt.call, ctx))
            return

        args = tuple(self._evaluate(arg, ctx) for arg in stmt.arguments)
        self._check_arity(running, len(args), stmt.call)
        ctx.signal_tail_call(args)

    # --- Expressions ---

    def _evaluate(self, expr: Expression, ctx: ExecutionContext) -> Value:
        self._tick(expr, ctx)
        if isinstance(expr, Literal):
            return literal_val(expr.value)
        elif isinstance(expr, Identifier):
            return self._eval_identifier(expr, ctx)
        elif isinstance(expr, BinaryOp):
            left = self._evaluate(expr.left, ctx)
            right = self._evaluate(expr.right, ctx)
            return apply_binary(expr.operator, left, right, expr.span)
        elif isinstance(expr, LogicalOp):
            return self._eval_logical_op(expr, ctx)
        elif isinstance(expr, UnaryOp):
            return apply_unary(expr.operator, self._evaluate(expr.operand, ctx), expr.span)
        elif isinstance(expr, FunctionCall):
            return self._eval_function_call(expr, ctx)
        elif isinstance(expr, IndexAccess):
            return self._eval_index_access(expr, ctx)
        elif isinstance(expr, ListLiteral):
            return list_val([self._evaluate(e, ctx) for e in expr.elements])
        elif isinstance(expr, MapLiteral):
            return map_val({key: self._evaluate(e, ctx) for key, e in expr.entries})
        elif isinstance(expr, LambdaExpr):
            return function_val(Closure(expr.parameters, expr.body, ctx.env.current))
        else:
            raise EvalError(f"unknown expression type: {type(expr).__name__}", expr.span)

    def _eval_identifier(self, ident: Identifier, ctx: ExecutionContext) -> Value:
        """Variables first, then builtins."""
        value = ctx.env.lookup(ident.name)
        if value is not None:
            return value
        builtin = self.builtins.get_value(ident.name)
        if builtin is not None:
            return builtin
        return ctx.env.get(ident.name, ident.span)

    def _eval_logical_op(self, op: LogicalOp, ctx: ExecutionContext) -> Value:
        """Short-circuit && and ||; the result is always a Boolean."""
        left = self._evaluate(op.left, ctx).is_truthy()
        if op.operator == TokenType.AND and not left:
            return FALSE
        if op.operator == TokenType.OR and left:
            return bool_val(True)
        return bool_val(self._evaluate(op.right, ctx).is_truthy())

    def _eval_index_access(self, access: IndexAccess, ctx: ExecutionContext) -> Value:
        """Index a list or string by position, or a map by key (missing keys are Null)."""
        obj = self._evaluate(access.object, ctx)
        index = self._evaluate(access.index, ctx)

        if obj.kind == ValueKind.MAP:
            if index.kind != ValueKind.STRING:
                raise TypeMismatch(f"map keys are strings, got {index.type_name}", access.index.span)
            return obj.data.get(index.data, NULL)

        if obj.kind in (ValueKind.LIST, ValueKind.STRING):
            if index.kind != ValueKind.NUMBER or not float(index.data).is_integer():
                raise TypeMismatch(
                    f"{obj.type_name} index must be a whole number, got {display(index)}",
                    access.index.span,
                )
            position = int(index.data)
            if position < 0 or position >= len(obj.data):
                raise EvalError(
                    f"index {position} out of range for {obj.type_name} of length {len(obj.data)}",
                    access.span,
                )
            item = obj.data[position]
            return item if obj.kind == ValueKind.LIST else string_val(item)

        raise TypeMismatch(f"cannot index a {obj.type_name}", access.object.span)

    # --- Calls ---

    def _eval_function_call(self, call: FunctionCall, ctx: ExecutionContext) -> Value:
        """Evaluate the callee, then the arguments left to right, then call."""
        callee = self._evaluate(call.callee, ctx)
        args = [self._evaluate(arg, ctx) for arg in call.arguments]
        return self.call_value(callee, args, call, ctx)

    def call_value(self, callee: Value, args: List[Value], call: Optional[AstNode],
                   ctx: ExecutionContext) -> Value:
        """Invoke a function value with already-evaluated arguments."""
        span = call.span if call is not None else None
        if callee.kind != ValueKind.FUNCTION:
            what = f"'{call.callee.name}'" if isinstance(call, FunctionCall) and \
                isinstance(call.callee, Identifier) else f"a {callee.type_name}"
            raise TypeMismatch(f"{what} is not callable", span)

        fn = callee.data
        if isinstance(fn, BuiltinFunction):
            return self._call_builtin(fn, args, call, ctx)
        return self._call_closure(fn, args, call, ctx)

    def _check_arity(self, closure: Closure, count: int, call: Optional[AstNode]) -> None:
        if count != closure.arity:
            raise ArityMismatch(
                f"{closure.display_name} expects {closure.arity} argument(s), got {count}",
                call.span if call is not None else None,
            )

    def _call_closure(self, closure: Closure, args: List[Value], call: Optional[AstNode],
                      ctx: ExecutionContext) -> Value:
        """
        Run a closure in a child of its captured scope.

        Tail calls restart the loop below with fresh bindings instead of
        recursing, so they do not deepen the frame count.
        """
        self._check_arity(closure, len(args), call)
        name = closure.display_name
        identity = node_identity(call)
        ctx.tracer.record(TraceEventKind.ENTER_CALL, f"enter {name}", identity)

        saved_closure = ctx.current_closure
        ctx.current_closure = closure
        try:
            with ctx.monitor.frame(call):
                bindings: Sequence[Value] = args
                while True:
                    with ctx.env.call_scope(closure.scope, name):
                        for param, arg in zip(closure.parameters, bindings):
                            ctx.env.define(param, arg)
                        value = self._execute_statements(closure.body.statements, ctx)
                    if ctx.has_tail_call:
                        bindings = ctx.take_tail_call()
                        continue
                    if ctx.should_return:
                        value = ctx.return_value
                        ctx.clear_return()
                    break
        finally:
            ctx.current_closure = saved_closure

        ctx.tracer.record(TraceEventKind.EXIT_CALL, f"exit {name}", identity)
        return value

    def _call_builtin(self, fn: BuiltinFunction, args: List[Value], call: Optional[AstNode],
                      ctx: ExecutionContext) -> Value:
        span = call.span if call is not None else None
        if fn.capability is not None:
            ctx.tracer.record(
                TraceEventKind.IO_ATTEMPT,
                f"{fn.name} requires '{fn.capability.value}'",
                node_identity(call),
                values=[display(a) for a in args],
            )
            ctx.guard.check(fn.capability, fn.name, span)

        if not fn.accepts(len(args)):
            raise ArityMismatch(
                f"{fn.name} expects {fn.arity_text()} argument(s), got {len(args)}", span
            )

        try:
            return fn.invoke(ctx, args)
        except AetherError as e:
            if e.diagnostic.span is None:
                e.diagnostic.span = span
            raise

"""
Recursive descent parser for Aether.

Statements end at a newline, a semicolon, a closing brace or the end of
input. Expressions are parsed by binding power, loosest first:

    ||   &&   == !=   < > <= >=   + -   * / %   unary ! -   call/index

Every binary operator is left-associative. The tree keeps operands,
arguments and collection elements in source order, which is the order
the evaluator runs them in.
"""

from typing import Callable, Dict, List, Optional, Tuple
from .tokens import Token, TokenType, SourceSpan, STATEMENT_TERMINATORS
from .lexer import tokenize
from .ast import (
    Expression, Literal, Identifier, BinaryOp, LogicalOp, UnaryOp,
    ListLiteral, MapLiteral, IndexAccess, FunctionCall, LambdaExpr,
    Statement, Block, SetStatement, FunctionDef, ElifBranch, IfStatement,
    WhileStatement, ForStatement, ReturnStatement, BreakStatement,
    ContinueStatement, ExpressionStatement, Program,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_expression,
    error_misplaced_statement,
    error_duplicate_parameter,
)

BINDING_POWER: Dict[TokenType, int] = {
    TokenType.OR: 1,
    TokenType.AND: 2,
    TokenType.EQ: 3, TokenType.NE: 3,
    TokenType.LT: 4, TokenType.GT: 4, TokenType.LE: 4, TokenType.GE: 4,
    TokenType.PLUS: 5, TokenType.MINUS: 5,
    TokenType.STAR: 6, TokenType.SLASH: 6, TokenType.PERCENT: 6,
}

_SHORT_CIRCUIT = (TokenType.AND, TokenType.OR)
_LITERALS = (TokenType.NUMBER, TokenType.STRING, TokenType.TRUE, TokenType.FALSE, TokenType.NULL)
_SEPARATORS = (TokenType.NEWLINE, TokenType.SEMICOLON)


class Parser:
    """
    Builds a Program from a token list.

    Usage:
        program = Parser(tokenize(source), filename, source).parse_program()
    """

    def __init__(self, tokens: List[Token], filename: Optional[str] = None,
                 source: Optional[str] = None):
        self.tokens = tokens
        self.filename = filename
        self.index = 0
        self._lines = source.splitlines() if source else []
        self._loops = 0     # enclosing loops in the current function body

        self._statement_rules: Dict[TokenType, Callable[[], Statement]] = {
            TokenType.SET: self._set_statement,
            TokenType.FUNC: self._func_statement,
            TokenType.IF: self._if_statement,
            TokenType.WHILE: self._while_statement,
            TokenType.FOR: self._for_statement,
            TokenType.RETURN: self._return_statement,
            TokenType.BREAK: self._loop_jump,
            TokenType.CONTINUE: self._loop_jump,
        }

    # --- Token stream ---

    def _token(self, ahead: int = 0) -> Token:
        return self.tokens[min(self.index + ahead, len(self.tokens) - 1)]

    @property
    def _kind(self) -> TokenType:
        return self._token().type

    def _last(self) -> Token:
        return self.tokens[max(0, self.index - 1)]

    def _take(self) -> Token:
        token = self._token()
        if token.type is not TokenType.EOF:
            self.index += 1
        return token

    def _accept(self, *kinds: TokenType) -> Optional[Token]:
        return self._take() if self._kind in kinds else None

    def _expect(self, kind: TokenType, what: str) -> Token:
        if self._kind is not kind:
            self._fail(what)
        return self._take()

    def _skip(self, *kinds: TokenType) -> None:
        while self._kind in kinds:
            self._take()

    def _kind_after_newlines(self) -> TokenType:
        ahead = 0
        while self._token(ahead).type is TokenType.NEWLINE:
            ahead += 1
        return self._token(ahead).type

    def _line_of(self, token: Token) -> Optional[str]:
        number = token.span.start.line
        return self._lines[number - 1] if 0 < number <= len(self._lines) else None

    def _fail(self, what: str) -> None:
        token = self._token()
        if token.type is TokenType.EOF:
            raise error_unexpected_eof(what, token.span)
        if token.type is TokenType.NEWLINE:
            found = "end of line"
        else:
            found = f"'{token.lexeme}'" if token.lexeme else token.type.name
        raise error_unexpected_token(what, found, token.span, self._line_of(token))

    def _span_from(self, first: Token) -> SourceSpan:
        return SourceSpan(first.span.start, self._last().span.end)

    # --- Program and blocks ---

    def _end_statement(self) -> None:
        if self._kind in _SEPARATORS:
            self._skip(*_SEPARATORS)
        elif self._kind not in (TokenType.RBRACE, TokenType.EOF):
            self._fail("end of statement")

    def parse_program(self) -> Program:
        first = self._token()
        self._skip(*_SEPARATORS)
        body: List[Statement] = []
        while self._kind is not TokenType.EOF:
            body.append(self._statement())
            if self._kind is TokenType.RBRACE:
                self._fail("statement")
            self._end_statement()
        span = SourceSpan(first.span.start, self._token().span.end)
        return Program(span=span, body=Block(span=span, statements=tuple(body)),
                       filename=self.filename)

    def _block(self) -> Block:
        """'{' statements '}', optionally starting on the next line."""
        self._skip(TokenType.NEWLINE)
        opening = self._expect(TokenType.LBRACE, "'{'")
        self._skip(*_SEPARATORS)
        body: List[Statement] = []
        while self._kind is not TokenType.RBRACE:
            if self._kind is TokenType.EOF:
                self._fail("'}'")
            body.append(self._statement())
            self._end_statement()
        self._take()
        return Block(span=self._span_from(opening), statements=tuple(body))

    def _loop_body(self) -> Block:
        self._loops += 1
        try:
            return self._block()
        finally:
            self._loops -= 1

    def _function_body(self) -> Block:
        """Break and Continue never reach out of a function."""
        outer, self._loops = self._loops, 0
        try:
            return self._block()
        finally:
            self._loops = outer

    # --- Statements ---

    def _statement(self) -> Statement:
        rule = self._statement_rules.get(self._kind)
        if rule is not None:
            return rule()
        expr = self._expression()
        return ExpressionStatement(span=expr.span, expression=expr)

    def _set_statement(self) -> SetStatement:
        keyword = self._take()
        name = self._expect(TokenType.IDENTIFIER, "variable name").value
        value = self._expression()
        return SetStatement(span=self._span_from(keyword), name=name, value=value)

    def _parameters(self) -> Tuple[str, ...]:
        self._expect(TokenType.LPAREN, "'('")
        names: List[str] = []
        while self._kind is not TokenType.RPAREN:
            param = self._expect(TokenType.IDENTIFIER, "parameter name")
            if param.value in names:
                raise error_duplicate_parameter(param.value, param.span, self._line_of(param))
            names.append(param.value)
            if not self._accept(TokenType.COMMA):
                break
        self._expect(TokenType.RPAREN, "')'")
        return tuple(names)

    def _func_statement(self) -> FunctionDef:
        keyword = self._take()
        name = self._expect(TokenType.IDENTIFIER, "function name").value
        params = self._parameters()
        body = self._function_body()
        return FunctionDef(span=self._span_from(keyword), name=name,
                           parameters=params, body=body)

    def _if_statement(self) -> IfStatement:
        keyword = self._take()
        test = self._expression()
        then = self._block()

        elifs: List[ElifBranch] = []
        while self._kind_after_newlines() is TokenType.ELIF:
            self._skip(TokenType.NEWLINE)
            elif_keyword = self._take()
            elif_test = self._expression()
            elif_body = self._block()
            elifs.append(ElifBranch(span=self._span_from(elif_keyword),
                                    condition=elif_test, body=elif_body))

        otherwise = None
        if self._kind_after_newlines() is TokenType.ELSE:
            self._skip(TokenType.NEWLINE)
            self._take()
            otherwise = self._block()

        return IfStatement(span=self._span_from(keyword), condition=test, then_branch=then,
                           elif_branches=tuple(elifs), else_branch=otherwise)

    def _while_statement(self) -> WhileStatement:
        keyword = self._take()
        test = self._expression()
        body = self._loop_body()
        return WhileStatement(span=self._span_from(keyword), condition=test, body=body)

    def _for_statement(self) -> ForStatement:
        keyword = self._take()
        variable = self._expect(TokenType.IDENTIFIER, "loop variable").value
        self._expect(TokenType.IN, "'In'")
        iterable = self._expression()
        body = self._loop_body()
        return ForStatement(span=self._span_from(keyword), variable=variable,
                            iterable=iterable, body=body)

    def _return_statement(self) -> ReturnStatement:
        keyword = self._take()
        value = None if self._kind in STATEMENT_TERMINATORS else self._expression()
        return ReturnStatement(span=self._span_from(keyword), value=value)

    def _loop_jump(self) -> Statement:
        keyword = self._take()
        if not self._loops:
            raise error_misplaced_statement(keyword.lexeme, "a loop", keyword.span,
                                            self._line_of(keyword))
        if keyword.type is TokenType.BREAK:
            return BreakStatement(span=keyword.span)
        return ContinueStatement(span=keyword.span)

    # --- Expressions ---

    def _expression(self, min_power: int = 1) -> Expression:
        left = self._prefix()
        while BINDING_POWER.get(self._kind, 0) >= min_power:
            operator = self._take().type
            right = self._expression(BINDING_POWER[operator] + 1)
            node = LogicalOp if operator in _SHORT_CIRCUIT else BinaryOp
            left = node(span=SourceSpan(left.span.start, right.span.end),
                        left=left, operator=operator, right=right)
        return left

    def _prefix(self) -> Expression:
        sign = self._accept(TokenType.MINUS, TokenType.NOT)
        if sign is None:
            return self._suffixes(self._atom())
        operand = self._prefix()
        return UnaryOp(span=SourceSpan(sign.span.start, operand.span.end),
                       operator=sign.type, operand=operand)

    def _suffixes(self, expr: Expression) -> Expression:
        """Calls and index accesses chained onto an atom."""
        while True:
            if self._accept(TokenType.LPAREN):
                args = self._items_until(TokenType.RPAREN, "')'")
                expr = FunctionCall(span=SourceSpan(expr.span.start, self._last().span.end),
                                    callee=expr, arguments=args)
            elif self._accept(TokenType.LBRACKET):
                key = self._expression()
                self._expect(TokenType.RBRACKET, "']'")
                expr = IndexAccess(span=SourceSpan(expr.span.start, self._last().span.end),
                                   object=expr, index=key)
            else:
                return expr

    def _items_until(self, closer: TokenType, what: str) -> Tuple[Expression, ...]:
        """Comma-separated expressions and the closer; a trailing comma is allowed."""
        items: List[Expression] = []
        while self._kind is not closer:
            items.append(self._expression())
            if not self._accept(TokenType.COMMA):
                break
        self._expect(closer, what)
        return tuple(items)

    def _atom(self) -> Expression:
        token = self._token()
        kind = token.type

        if kind in _LITERALS:
            self._take()
            return Literal(span=token.span, value=token.value)
        if kind is TokenType.IDENTIFIER:
            self._take()
            return Identifier(span=token.span, name=token.value)
        if kind is TokenType.LPAREN:
            self._take()
            inner = self._expression()
            self._expect(TokenType.RPAREN, "')'")
            return inner
        if kind is TokenType.LBRACKET:
            self._take()
            elements = self._items_until(TokenType.RBRACKET, "']'")
            return ListLiteral(span=self._span_from(token), elements=elements)
        if kind is TokenType.LBRACE:
            return self._map_literal()
        if kind is TokenType.LAMBDA:
            self._take()
            params = self._parameters()
            body = self._function_body()
            return LambdaExpr(span=self._span_from(token), parameters=params, body=body)

        if kind is TokenType.EOF:
            raise error_unexpected_eof("expression", token.span)
        raise error_invalid_expression(token.span, self._line_of(token))

    def _map_literal(self) -> MapLiteral:
        """{"key": value, name: value}; a bare name is a string key and later duplicates win."""
        opening = self._take()
        entries: Dict[str, Expression] = {}
        self._skip(TokenType.NEWLINE)
        while self._kind is not TokenType.RBRACE:
            if self._kind not in (TokenType.STRING, TokenType.IDENTIFIER):
                self._fail("map key")
            key = self._take().value
            self._expect(TokenType.COLON, "':'")
            self._skip(TokenType.NEWLINE)
            entries[key] = self._expression()
            self._skip(TokenType.NEWLINE)
            if not self._accept(TokenType.COMMA):
                break
            self._skip(TokenType.NEWLINE)
        self._expect(TokenType.RBRACE, "'}'")
        return MapLiteral(span=self._span_from(opening), entries=tuple(entries.items()))


def parse(tokens: List[Token], filename: Optional[str] = None,
          source: Optional[str] = None) -> Program:
    """
    Parse a token list.

    Raises:
        ParserError: On the first syntax error
    """
    return Parser(tokens, filename, source).parse_program()


def parse_source(source: str, filename: Optional[str] = None) -> Program:
    """
    Tokenize and parse in one step.

    Raises:
        ParseError: If the source is malformed
    """
    return parse(tokenize(source, filename), filename, source)

"""
Tokens and source positions.

Keywords are capitalized words; every other run of letters, digits and
underscores is an identifier, so `if` and `set` are ordinary names.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, Optional


class TokenType(Enum):
    # Literals and names
    NUMBER = auto()
    STRING = auto()
    TRUE = auto()
    FALSE = auto()
    NULL = auto()
    IDENTIFIER = auto()

    # Keywords
    SET = auto()
    FUNC = auto()
    LAMBDA = auto()
    RETURN = auto()
    IF = auto()
    ELIF = auto()
    ELSE = auto()
    WHILE = auto()
    FOR = auto()
    IN = auto()
    BREAK = auto()
    CONTINUE = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    LT = auto()
    GT = auto()
    LE = auto()
    GE = auto()
    EQ = auto()
    NE = auto()
    AND = auto()
    OR = auto()
    NOT = auto()

    # Punctuation
    LBRACE = auto()
    RBRACE = auto()
    LPAREN = auto()
    RPAREN = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COLON = auto()
    COMMA = auto()
    SEMICOLON = auto()
    NEWLINE = auto()
    EOF = auto()


@dataclass(frozen=True)
class SourceLocation:
    """A point in the source; line and column count from 1, offset from 0."""
    line: int
    column: int
    offset: int
    filename: Optional[str] = None

    def __str__(self) -> str:
        where = f"{self.line}:{self.column}"
        return f"{self.filename}:{where}" if self.filename else where


@dataclass(frozen=True)
class SourceSpan:
    """Half-open range between two locations."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        return f"{self.start}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any      # float for NUMBER, str for STRING and names, bool/None for literals
    lexeme: str
    span: SourceSpan

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


KEYWORDS: Dict[str, TokenType] = {
    word: kind for word, kind in (
        ("Set", TokenType.SET), ("Func", TokenType.FUNC), ("Lambda", TokenType.LAMBDA),
        ("Return", TokenType.RETURN), ("If", TokenType.IF), ("Elif", TokenType.ELIF),
        ("Else", TokenType.ELSE), ("While", TokenType.WHILE), ("For", TokenType.FOR),
        ("In", TokenType.IN), ("Break", TokenType.BREAK), ("Continue", TokenType.CONTINUE),
        ("True", TokenType.TRUE), ("False", TokenType.FALSE), ("Null", TokenType.NULL),
    )
}

# A statement must be followed by one of these
STATEMENT_TERMINATORS = frozenset({
    TokenType.NEWLINE, TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF,
})

"""
Lexer for the Aether scripting language.

Newlines end statements, except inside ( ) and [ ] where a statement may
run across several lines. Braces delimit blocks, so newlines inside them
still count. Comments are // to end of line or /* ... */, which nest.

Numbers are always doubles; a literal like 12abc is rejected rather than
split into a number and a name.
"""

from typing import Callable, Iterator, List, Optional
from .tokens import Token, TokenType, SourceLocation, SourceSpan, KEYWORDS
from .errors import (
    error_unexpected_character,
    error_unterminated_string,
    error_unterminated_comment,
    error_invalid_escape_sequence,
    error_invalid_number_literal,
)

_END = '\0'

_TWO_CHAR = {
    '==': TokenType.EQ,
    '!=': TokenType.NE,
    '<=': TokenType.LE,
    '>=': TokenType.GE,
    '&&': TokenType.AND,
    '||': TokenType.OR,
}

_ONE_CHAR = {
    '+': TokenType.PLUS, '-': TokenType.MINUS, '*': TokenType.STAR,
    '/': TokenType.SLASH, '%': TokenType.PERCENT,
    '<': TokenType.LT, '>': TokenType.GT, '!': TokenType.NOT,
    '(': TokenType.LPAREN, ')': TokenType.RPAREN,
    '[': TokenType.LBRACKET, ']': TokenType.RBRACKET,
    '{': TokenType.LBRACE, '}': TokenType.RBRACE,
    ':': TokenType.COLON, ',': TokenType.COMMA, ';': TokenType.SEMICOLON,
}

_OPENERS = {TokenType.LPAREN, TokenType.LBRACKET}
_CLOSERS = {TokenType.RPAREN, TokenType.RBRACKET}

_ESCAPES = {
    'n': '\n', 't': '\t', 'r': '\r', '0': '\0',
    '\\': '\\', '"': '"', "'": "'",
}

_LITERAL_KEYWORDS = {TokenType.TRUE: True, TokenType.FALSE: False, TokenType.NULL: None}


def _is_name_char(ch: str) -> bool:
    return ch.isalnum() or ch == '_'


class Lexer:
    """
    Turns source text into tokens, lazily.

    Iterating a Lexer yields tokens up to and including EOF; tokenize()
    collects them into a list.
    """

    def __init__(self, source: str, filename: Optional[str] = None):
        self.source = source
        self.filename = filename
        self.offset = 0
        self.line = 1
        self.column = 1
        self.nesting = 0    # open ( and [ still waiting for their closer
        self._source_lines = source.splitlines()

    def source_line(self, number: int) -> Optional[str]:
        if 0 < number <= len(self._source_lines):
            return self._source_lines[number - 1]
        return None

    # --- Cursor ---

    def _here(self, ahead: int = 0) -> str:
        index = self.offset + ahead
        return self.source[index] if index < len(self.source) else _END

    def _at_end(self) -> bool:
        return self.offset >= len(self.source)

    def _step(self, count: int = 1) -> str:
        """Consume count characters and return the last one."""
        ch = _END
        for _ in range(count):
            if self._at_end():
                break
            ch = self.source[self.offset]
            self.offset += 1
            if ch == '\n':
                self.line, self.column = self.line + 1, 1
            else:
                self.column += 1
        return ch

    def _step_while(self, predicate: Callable[[str], bool]) -> None:
        while not self._at_end() and predicate(self._here()):
            self._step()

    def _mark(self) -> SourceLocation:
        return SourceLocation(self.line, self.column, self.offset, self.filename)

    def _since(self, start: SourceLocation) -> SourceSpan:
        return SourceSpan(start, self._mark())

    def _text_since(self, start: SourceLocation) -> str:
        return self.source[start.offset:self.offset]

    def _token(self, kind: TokenType, value, start: SourceLocation,
               lexeme: Optional[str] = None) -> Token:
        if lexeme is None:
            lexeme = self._text_since(start)
        return Token(kind, value, lexeme, self._since(start))

    # --- Trivia ---

    def _skip_block_comment(self) -> None:
        start = self._mark()
        self._step(2)
        depth = 1
        while depth:
            if self._at_end():
                raise error_unterminated_comment(self._since(start), self.source_line(start.line))
            pair = self._here() + self._here(1)
            if pair == '/*':
                depth += 1
                self._step(2)
            elif pair == '*/':
                depth -= 1
                self._step(2)
            else:
                self._step()

    def _skip_trivia(self) -> None:
        """Spaces, tabs, carriage returns and comments; never newlines."""
        while True:
            ch = self._here()
            if ch in ' \t\r':
                self._step()
            elif ch == '/' and self._here(1) == '/':
                self._step_while(lambda c: c != '\n')
            elif ch == '/' and self._here(1) == '*':
                self._skip_block_comment()
            else:
                break

    # --- Literals ---

    def _read_escape(self) -> str:
        start = self._mark()
        ch = self._step()
        if ch in _ESCAPES:
            return _ESCAPES[ch]
        if ch == 'u':
            digits = ''.join(self._step() for _ in range(4))
            try:
                return chr(int(digits, 16))
            except ValueError:
                raise error_invalid_escape_sequence(
                    'u' + digits, self._since(start), self.source_line(start.line)
                )
        raise error_invalid_escape_sequence(
            '' if ch == _END else ch, self._since(start), self.source_line(start.line)
        )

    def _read_string(self) -> Token:
        start = self._mark()
        quote = self._step()
        text: List[str] = []
        while self._here() != quote:
            if self._at_end() or self._here() == '\n':
                raise error_unterminated_string(self._since(start), self.source_line(start.line))
            if self._step() == '\\':
                text.append(self._read_escape())
            else:
                text.append(self.source[self.offset - 1])
        self._step()
        return self._token(TokenType.STRING, ''.join(text), start)

    def _read_number(self) -> Token:
        start = self._mark()

        def bad_number() -> Exception:
            return error_invalid_number_literal(
                self._text_since(start), self._since(start), self.source_line(start.line)
            )

        self._step_while(str.isdigit)
        if self._here() == '.' and self._here(1).isdigit():
            self._step()
            self._step_while(str.isdigit)
        if self._here() in ('e', 'E'):
            self._step()
            if self._here() in ('+', '-'):
                self._step()
            if not self._here().isdigit():
                raise bad_number()
            self._step_while(str.isdigit)
        if _is_name_char(self._here()):
            self._step_while(_is_name_char)
            raise bad_number()

        text = self._text_since(start)
        return self._token(TokenType.NUMBER, float(text), start, text)

    def _read_word(self) -> Token:
        start = self._mark()
        self._step_while(_is_name_char)
        word = self._text_since(start)
        kind = KEYWORDS.get(word)
        if kind is None:
            return self._token(TokenType.IDENTIFIER, word, start, word)
        return self._token(kind, _LITERAL_KEYWORDS.get(kind, word), start, word)

    def _read_operator(self) -> Token:
        start = self._mark()
        pair = self._here() + self._here(1)
        if pair in _TWO_CHAR:
            self._step(2)
            return self._token(_TWO_CHAR[pair], pair, start)

        ch = self._here()
        kind = _ONE_CHAR.get(ch)
        if kind is None:
            self._step()
            raise error_unexpected_character(ch, self._since(start), self.source_line(start.line))
        self._step()
        if kind in _OPENERS:
            self.nesting += 1
        elif kind in _CLOSERS and self.nesting:
            self.nesting -= 1
        return self._token(kind, ch, start)

    # --- Driver ---

    def _next_token(self) -> Token:
        while True:
            self._skip_trivia()
            if self._here() != '\n':
                break
            start = self._mark()
            self._step()
            if not self.nesting:
                return self._token(TokenType.NEWLINE, None, start, "\\n")

        if self._at_end():
            return self._token(TokenType.EOF, None, self._mark(), "")

        ch = self._here()
        if ch in ('"', "'"):
            return self._read_string()
        if ch.isdigit():
            return self._read_number()
        if ch.isalpha() or ch == '_':
            return self._read_word()
        return self._read_operator()

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self._next_token()
            yield token
            if token.type is TokenType.EOF:
                return

    def tokenize(self) -> List[Token]:
        return list(self)


def tokenize(source: str, filename: Optional[str] = None) -> List[Token]:
    """
    Tokenize source text.

    Raises:
        LexerError: On the first malformed token
    """
    return Lexer(source, filename).tokenize()

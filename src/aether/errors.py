"""
Exceptions, diagnostics and host status codes.

Every exception the engine raises is an AetherError carrying two codes:
the coarse ErrorCode a host sees and a Diagnostic with a fine-grained code
string. Diagnostic codes are grouped by hundreds:

    E0xx lexing      E1xx parsing      E4xx evaluation
    E5xx permission  E6xx limits       E7xx serialization
    E8xx host interface
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from .tokens import SourceSpan


class ErrorCode(IntEnum):
    """Status codes returned across the host boundary."""
    SUCCESS = 0
    PARSE_ERROR = 1
    RUNTIME_ERROR = 2
    PERMISSION_DENIED = 3
    LIMIT_EXCEEDED = 4
    SERIALIZATION_ERROR = 5
    VARIABLE_NOT_FOUND = 6
    INVALID_ARGUMENT = 7


class ErrorSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class LimitKind(Enum):
    """Which execution bound was crossed."""
    STEPS = "steps"
    RECURSION = "recursion"
    DURATION = "duration"


@dataclass
class Diagnostic:
    """What went wrong, where, and optionally how to fix it."""
    code: str
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    span: Optional[SourceSpan] = None
    source_line: Optional[str] = None
    hints: List[str] = field(default_factory=list)

    def _underline(self) -> str:
        start, end = self.span.start, self.span.end
        last = end.column if end.line == start.line else len(self.source_line) + 1
        return " " * (start.column - 1) + "^" * max(1, last - start.column)

    def format(self, show_source: bool = True) -> str:
        """
        Render as text, e.g.:

            job.ae:2:5: error[E101]: expected variable name, found NUMBER(2.0)
              |
              2 | Set 2 3
                |     ^
        """
        header = f"{self.severity.value}[{self.code}]: {self.message}"
        lines = [f"{self.span.start}: {header}" if self.span else header]
        if show_source and self.span and self.source_line is not None:
            lines += [
                "  |",
                f"{self.span.start.line:>3} | {self.source_line}",
                f"    | {self._underline()}",
            ]
        lines += [f"    = hint: {hint}" for hint in self.hints]
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "code": self.code,
            "severity": self.severity.value,
            "message": self.message,
            "hints": list(self.hints),
        }
        if self.span:
            data["start"] = [self.span.start.line, self.span.start.column]
            data["end"] = [self.span.end.line, self.span.end.column]
        return data


class AetherError(Exception):
    """Root of the engine's exceptions; subclasses pick the two codes."""

    error_code: ErrorCode = ErrorCode.RUNTIME_ERROR
    diagnostic_code: str = "E400"

    def __init__(self, message: str, span: Optional[SourceSpan] = None,
                 source_line: Optional[str] = None, hints: Optional[List[str]] = None,
                 diagnostic: Optional[Diagnostic] = None):
        self.diagnostic = diagnostic or Diagnostic(
            self.diagnostic_code, message, span=span,
            source_line=source_line, hints=list(hints or ()),
        )
        super().__init__(self.diagnostic.message)

    @property
    def message(self) -> str:
        return self.diagnostic.message

    @property
    def span(self) -> Optional[SourceSpan]:
        return self.diagnostic.span

    def __str__(self) -> str:
        return self.diagnostic.format()


class ParseError(AetherError):
    """The source text is malformed."""
    error_code = ErrorCode.PARSE_ERROR
    diagnostic_code = "E100"


class LexerError(ParseError):
    diagnostic_code = "E000"


class ParserError(ParseError):
    diagnostic_code = "E100"


class EvalError(AetherError):
    """Failure while evaluating a well-formed program."""
    error_code = ErrorCode.RUNTIME_ERROR
    diagnostic_code = "E400"


class UndefinedVariable(EvalError):
    diagnostic_code = "E401"

    def __init__(self, name: str, span: Optional[SourceSpan] = None):
        self.name = name
        super().__init__(f"undefined variable '{name}'", span)


class TypeMismatch(EvalError):
    diagnostic_code = "E402"


class ArityMismatch(EvalError):
    diagnostic_code = "E403"


class PermissionDenied(AetherError):
    """An effectful builtin ran without its capability."""
    error_code = ErrorCode.PERMISSION_DENIED
    diagnostic_code = "E501"

    def __init__(self, capability: str, operation: str = "",
                 span: Optional[SourceSpan] = None):
        self.capability = capability
        self.operation = operation
        subject = f"'{operation}'" if operation else "operation"
        super().__init__(
            f"permission denied: {subject} requires the '{capability}' capability",
            span,
            hints=["create the engine with all permissions granted to allow I/O"],
        )


class LimitExceeded(AetherError):
    """Execution crossed a step, depth or time bound."""
    error_code = ErrorCode.LIMIT_EXCEEDED
    diagnostic_code = "E600"

    _CODES = {
        LimitKind.STEPS: "E601",
        LimitKind.RECURSION: "E602",
        LimitKind.DURATION: "E603",
    }

    def __init__(self, kind: LimitKind, limit: int, span: Optional[SourceSpan] = None,
                 detail: str = ""):
        self.kind = kind
        self.limit = limit
        message = f"{kind.value} limit exceeded (limit: {limit})"
        if detail:
            message += f": {detail}"
        super().__init__(message, diagnostic=Diagnostic(self._CODES[kind], message, span=span))


class SerializationError(AetherError):
    """A value has no JSON form."""
    error_code = ErrorCode.SERIALIZATION_ERROR
    diagnostic_code = "E701"


class VariableNotFound(AetherError):
    """The host asked for a global that is not bound."""
    error_code = ErrorCode.VARIABLE_NOT_FOUND
    diagnostic_code = "E801"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"variable not found: '{name}'")


class InvalidArgument(AetherError):
    """Bad input from the host: closed engine, malformed JSON, bad config."""
    error_code = ErrorCode.INVALID_ARGUMENT
    diagnostic_code = "E802"


# --- Syntax error constructors ---

def _syntax(cls, code: str, message: str, span: SourceSpan,
            source_line: Optional[str] = None, *hints: str) -> ParseError:
    diagnostic = Diagnostic(code, message, span=span, source_line=source_line,
                            hints=list(hints))
    return cls(message, diagnostic=diagnostic)


def error_unexpected_character(char: str, span: SourceSpan,
                               source_line: Optional[str] = None) -> LexerError:
    return _syntax(LexerError, "E001", f"unexpected character '{char}'", span, source_line)


def error_unterminated_string(span: SourceSpan, source_line: Optional[str] = None) -> LexerError:
    return _syntax(LexerError, "E002", "string literal is never closed", span, source_line,
                   "a string must end with the quote it started with, on the same line")


def error_unterminated_comment(span: SourceSpan, source_line: Optional[str] = None) -> LexerError:
    return _syntax(LexerError, "E004", "block comment is never closed with */", span, source_line)


def error_invalid_escape_sequence(seq: str, span: SourceSpan,
                                  source_line: Optional[str] = None) -> LexerError:
    return _syntax(LexerError, "E005", f"unknown escape '\\{seq}'", span, source_line,
                   "escapes are \\n \\t \\r \\0 \\\\ \\\" \\' and \\uXXXX")


def error_invalid_number_literal(text: str, span: SourceSpan,
                                 source_line: Optional[str] = None) -> LexerError:
    return _syntax(LexerError, "E006", f"malformed number '{text}'", span, source_line)


def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: Optional[str] = None) -> ParserError:
    return _syntax(ParserError, "E101", f"expected {expected}, found {found}", span, source_line)


def error_unexpected_eof(expected: str, span: SourceSpan) -> ParserError:
    return _syntax(ParserError, "E102", f"source ended where {expected} was expected", span)


def error_invalid_expression(span: SourceSpan, source_line: Optional[str] = None) -> ParserError:
    return _syntax(ParserError, "E103", "expected an expression", span, source_line)


def error_misplaced_statement(keyword: str, context: str, span: SourceSpan,
                              source_line: Optional[str] = None) -> ParserError:
    return _syntax(ParserError, "E104", f"'{keyword}' outside of {context}", span, source_line)


def error_duplicate_parameter(name: str, span: SourceSpan,
                              source_line: Optional[str] = None) -> ParserError:
    return _syntax(ParserError, "E105", f"parameter '{name}' is declared twice", span,
                   source_line)

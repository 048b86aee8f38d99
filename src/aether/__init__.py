"""
Aether - an embeddable interpreter with bounded, capability-gated execution.

This package provides:
- Lexer and Parser: source text to an immutable AST
- Optimizer: constant folding, dead-code elimination, tail-recursion rewrite
- AstCache: fingerprint-keyed cache of optimized programs
- Runtime: limit-enforced evaluator, scopes, permissions and tracing
- Engine: the composition root hosts talk to

Usage:
    from aether import Engine

    with Engine.restricted() as engine:
        result = engine.eval("Set X 10\\n(X + 20)")
        print(result.output)    # 30
"""

import logging

from .errors import (
    ErrorCode,
    Diagnostic,
    AetherError,
    ParseError,
    LexerError,
    ParserError,
    EvalError,
    UndefinedVariable,
    TypeMismatch,
    ArityMismatch,
    PermissionDenied,
    LimitExceeded,
    LimitKind,
    SerializationError,
    VariableNotFound,
    InvalidArgument,
)
from .lexer import Lexer, tokenize
from .parser import Parser, parse, parse_source
from .cache import AstCache, CacheStats, fingerprint
from .transforms import OptimizationFlags
from .runtime import Limits, ExecutionStats, Permissions, TraceStats, Value
from .config import EngineConfig, load_config, config_from_env
from .engine import Engine, EvalResult, VERSION, version

__version__ = VERSION

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    '__version__',
    # Engine
    'Engine',
    'EvalResult',
    'version',
    # Configuration
    'EngineConfig',
    'load_config',
    'config_from_env',
    'Limits',
    'OptimizationFlags',
    'Permissions',
    # Statistics
    'ExecutionStats',
    'CacheStats',
    'TraceStats',
    # Compilation
    'Lexer',
    'tokenize',
    'Parser',
    'parse',
    'parse_source',
    'AstCache',
    'fingerprint',
    'Value',
    # Errors
    'ErrorCode',
    'Diagnostic',
    'AetherError',
    'ParseError',
    'LexerError',
    'ParserError',
    'EvalError',
    'UndefinedVariable',
    'TypeMismatch',
    'ArityMismatch',
    'PermissionDenied',
    'LimitExceeded',
    'LimitKind',
    'SerializationError',
    'VariableNotFound',
    'InvalidArgument',
]

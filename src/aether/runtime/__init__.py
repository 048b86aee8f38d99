"""
Aether Runtime - limit-enforced tree-walking evaluation.

This module provides:
- Evaluator: Executes a Program against an Environment
- Value: Tagged runtime values and their JSON codec
- Environment: Scope chain management
- PermissionGuard: Capability checks for I/O builtins
- LimitMonitor: Step, depth and duration enforcement
- Tracer: Structured execution trace
- BuiltinRegistry: Built-in function implementations
"""

from .values import (
    Value,
    ValueKind,
    Closure,
    NULL,
    TRUE,
    FALSE,
    null_val,
    bool_val,
    number_val,
    string_val,
    list_val,
    map_val,
    function_val,
    literal_val,
    display,
)

from .codec import (
    to_python,
    from_python,
    to_json,
    from_json,
)

from .environment import (
    Scope,
    Environment,
)

from .permissions import (
    Capability,
    Permissions,
    PermissionGuard,
)

from .limits import (
    Limits,
    LimitMonitor,
    ExecutionStats,
)

from .tracer import (
    TraceEventKind,
    TraceEntry,
    TraceStats,
    Tracer,
)

from .builtins import (
    BuiltinFunction,
    BuiltinRegistry,
    get_builtin_registry,
)

from .interpreter import (
    Evaluator,
    ExecutionContext,
)

__all__ = [
    # Values
    'Value',
    'ValueKind',
    'Closure',
    'NULL',
    'TRUE',
    'FALSE',
    'null_val',
    'bool_val',
    'number_val',
    'string_val',
    'list_val',
    'map_val',
    'function_val',
    'literal_val',
    'display',
    # Codec
    'to_python',
    'from_python',
    'to_json',
    'from_json',
    # Scopes
    'Scope',
    'Environment',
    # Permissions
    'Capability',
    'Permissions',
    'PermissionGuard',
    # Limits
    'Limits',
    'LimitMonitor',
    'ExecutionStats',
    # Tracing
    'TraceEventKind',
    'TraceEntry',
    'TraceStats',
    'Tracer',
    # Builtins
    'BuiltinFunction',
    'BuiltinRegistry',
    'get_builtin_registry',
    # Evaluation
    'Evaluator',
    'ExecutionContext',
]

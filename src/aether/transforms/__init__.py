"""
Aether AST optimizer.

Passes run in a fixed order, each individually switchable:
- Constant folding
- Dead code elimination
- Tail-recursion rewrite

Usage:
    from aether.transforms import OptimizationFlags, build_pipeline

    pipeline = build_pipeline(OptimizationFlags(tail_recursion=False))
    optimized = pipeline.apply(program)
"""

from .base import (
    AstTransform,
    TreeTransform,
    TransformPipeline,
    IdentityTransform,
)
from .constant_fold import ConstantFoldTransform
from .dead_code import DeadCodeTransform
from .tail_recursion import TailRecursionTransform
from .optimizer import OptimizationFlags, build_pipeline

__all__ = [
    'AstTransform',
    'TreeTransform',
    'TransformPipeline',
    'IdentityTransform',
    'ConstantFoldTransform',
    'DeadCodeTransform',
    'TailRecursionTransform',
    'OptimizationFlags',
    'build_pipeline',
]

"""
Optimization flags and the fixed-order pass pipeline.
"""

from dataclasses import dataclass, asdict
from typing import Dict

from .base import TransformPipeline
from .constant_fold import ConstantFoldTransform
from .dead_code import DeadCodeTransform
from .tail_recursion import TailRecursionTransform


@dataclass(frozen=True)
class OptimizationFlags:
    """Which optimizer passes run. All on by default."""
    constant_folding: bool = True
    dead_code_elimination: bool = True
    tail_recursion: bool = True

    @classmethod
    def none(cls) -> "OptimizationFlags":
        return cls(False, False, False)

    def key(self) -> str:
        """Stable text form folded into cache fingerprints."""
        return "cf={:d};dce={:d};tr={:d}".format(
            self.constant_folding, self.dead_code_elimination, self.tail_recursion
        )

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


def build_pipeline(flags: OptimizationFlags) -> TransformPipeline:
    """Constant folding, then dead-code elimination, then tail recursion."""
    pipeline = TransformPipeline()
    if flags.constant_folding:
        pipeline.add(ConstantFoldTransform())
    if flags.dead_code_elimination:
        pipeline.add(DeadCodeTransform())
    if flags.tail_recursion:
        pipeline.add(TailRecursionTransform())
    return pipeline

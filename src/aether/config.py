"""
Engine configuration loaded from YAML.

Example file:

    limits:
      max_steps: 100000
      max_recursion_depth: 64
      max_duration_ms: 2000
    optimization:
      constant_folding: true
      dead_code_elimination: true
      tail_recursion: true
    allow_io: false
    trace:
      max_entries: 10000
    cache:
      max_entries: 256

Every section is optional. Unknown keys are rejected so that typos do not
silently fall back to defaults.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union
import logging
import os

import yaml

from .errors import InvalidArgument
from .runtime.limits import Limits
from .transforms import OptimizationFlags

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AETHER_CONFIG"

_TOP_LEVEL_KEYS = {"limits", "optimization", "allow_io", "trace", "cache"}
_OPTIMIZATION_KEYS = {"constant_folding", "dead_code_elimination", "tail_recursion"}


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidArgument(f"config section '{name}' must be a mapping")
    return value


def _bounded(section: Dict[str, Any], name: str) -> Optional[int]:
    unknown = set(section) - {"max_entries"}
    if unknown:
        raise InvalidArgument(f"unknown key(s) in '{name}': {', '.join(sorted(unknown))}")
    value = section.get("max_entries")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"'{name}.max_entries' must be an integer")
    return value if value > 0 else None


@dataclass
class EngineConfig:
    """Construction-time settings for an Engine."""
    limits: Limits = field(default_factory=Limits)
    optimization: OptimizationFlags = field(default_factory=OptimizationFlags)
    allow_io: bool = False
    trace_max_entries: Optional[int] = None
    cache_max_entries: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "EngineConfig":
        """
        Build a config from parsed YAML/JSON data.

        Raises:
            InvalidArgument: unknown keys or values of the wrong type
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise InvalidArgument("config must be a mapping")

        unknown = set(data) - _TOP_LEVEL_KEYS
        if unknown:
            raise InvalidArgument(f"unknown config key(s): {', '.join(sorted(unknown))}")

        limits = Limits.from_dict(_section(data, "limits"))

        opt = _section(data, "optimization")
        bad = set(opt) - _OPTIMIZATION_KEYS
        if bad:
            raise InvalidArgument(f"unknown optimization flag(s): {', '.join(sorted(bad))}")
        for key, value in opt.items():
            if not isinstance(value, bool):
                raise InvalidArgument(f"optimization flag '{key}' must be true or false")
        optimization = OptimizationFlags(**opt)

        allow_io = data.get("allow_io", False)
        if not isinstance(allow_io, bool):
            raise InvalidArgument("'allow_io' must be true or false")

        return cls(
            limits=limits,
            optimization=optimization,
            allow_io=allow_io,
            trace_max_entries=_bounded(_section(data, "trace"), "trace"),
            cache_max_entries=_bounded(_section(data, "cache"), "cache"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "limits": self.limits.to_dict(),
            "optimization": self.optimization.to_dict(),
            "allow_io": self.allow_io,
            "trace": {"max_entries": self.trace_max_entries},
            "cache": {"max_entries": self.cache_max_entries},
        }


def load_config(path: Union[str, Path]) -> EngineConfig:
    """
    Load an EngineConfig from a YAML file.

    Raises:
        InvalidArgument: the file is missing, is not valid YAML or has bad keys
    """
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp)
    except OSError as e:
        raise InvalidArgument(f"cannot read config {config_path}: {e}")
    except yaml.YAMLError as e:
        raise InvalidArgument(f"YAML parse error in {config_path}: {e}")

    logger.debug("loaded config from %s", config_path)
    return EngineConfig.from_dict(data)


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """Load the file named by AETHER_CONFIG, or return defaults."""
    environ = os.environ if environ is None else environ
    path = environ.get(CONFIG_ENV_VAR)
    if not path:
        return EngineConfig()
    return load_config(path)

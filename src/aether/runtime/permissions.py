"""
Capability gating for effectful builtins.

An engine's permissions are fixed when it is constructed. The evaluator
asks the guard before every I/O builtin; a denial raises PermissionDenied,
which aborts the current evaluation only.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional
import logging

from ..errors import PermissionDenied
from ..tokens import SourceSpan

logger = logging.getLogger(__name__)


class Capability(Enum):
    """Named permissions an engine may grant."""
    IO = "io"


@dataclass(frozen=True)
class Permissions:
    """The capability set of one engine."""
    io: bool = False

    @classmethod
    def restricted(cls) -> "Permissions":
        return cls(io=False)

    @classmethod
    def all_granted(cls) -> "Permissions":
        return cls(io=True)

    def allows(self, capability: Capability) -> bool:
        if capability == Capability.IO:
            return self.io
        return False

    def to_dict(self) -> Dict[str, bool]:
        return {"io": self.io}


class PermissionGuard:
    """Checks capabilities against an engine's Permissions."""

    def __init__(self, permissions: Optional[Permissions] = None):
        self._permissions = permissions or Permissions.restricted()

    @property
    def permissions(self) -> Permissions:
        return self._permissions

    def allows(self, capability: Capability) -> bool:
        return self._permissions.allows(capability)

    def check(self, capability: Capability, operation: str = "",
              span: Optional[SourceSpan] = None) -> None:
        """
        Return normally if the capability is granted.

        Raises:
            PermissionDenied: the capability is not granted
        """
        if self._permissions.allows(capability):
            return
        logger.warning("denied %s: capability '%s' not granted",
                       operation or "operation", capability.value)
        raise PermissionDenied(capability.value, operation, span)

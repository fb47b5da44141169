"""Directory principal models."""

from dataclasses import dataclass
from enum import Enum


class PrincipalKind(str, Enum):
    """Kind of directory object a principal string resolved to."""

    USER = "User"
    GROUP = "Group"
    SERVICE_PRINCIPAL = "ServicePrincipal"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class PrincipalRef:
    """A free-form identity string paired with the object id it resolved to."""

    raw_identifier: str
    resolved_id: str
    kind: PrincipalKind = PrincipalKind.UNKNOWN

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "raw_identifier": self.raw_identifier,
            "resolved_id": self.resolved_id,
            "kind": self.kind.value,
        }

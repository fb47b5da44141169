"""Azure control-plane models: subscriptions, vaults, role assignments and scopes.

Scopes are Azure resource paths such as::

    /subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.KeyVault/vaults/{name}

Azure treats these paths case-insensitively, so every comparison here goes
through :func:`normalize_scope`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

KEY_VAULT_RESOURCE_TYPE = "Microsoft.KeyVault/vaults"


def normalize_scope(scope: Optional[str]) -> str:
    """Lower-case a scope and strip the trailing slash for comparison."""
    if not scope:
        return ""
    normalized = scope.strip().lower()
    if len(normalized) > 1:
        normalized = normalized.rstrip("/")
    return normalized


def is_same_scope(left: Optional[str], right: Optional[str]) -> bool:
    """True if both scopes address the same resource path."""
    return normalize_scope(left) == normalize_scope(right)


def is_ancestor_scope(candidate: Optional[str], scope: Optional[str]) -> bool:
    """
    True if ``candidate`` is a strict ancestor of ``scope``.

    The root scope ``/`` and management-group scopes are ancestors of every
    subscription-level path.
    """
    parent = normalize_scope(candidate)
    child = normalize_scope(scope)
    if not parent or not child or parent == child:
        return False
    if parent == "/" or parent.startswith("/providers/microsoft.management/"):
        return True
    return child.startswith(parent + "/")


def role_definition_guid(role_definition_id: Optional[str]) -> str:
    """
    Extract the lower-cased GUID from a role definition id.

    Role definition ids come back subscription-qualified
    (``/subscriptions/{sub}/providers/Microsoft.Authorization/roleDefinitions/{guid}``)
    and the qualifying subscription differs per query scope, so identity is
    the trailing GUID.
    """
    if not role_definition_id:
        return ""
    return role_definition_id.rstrip("/").split("/")[-1].lower()


def parse_resource_id(resource_id: Optional[str]) -> Dict[str, str]:
    """
    Parse an Azure resource ID into subscription_id, resource_group and name.

    Args:
        resource_id: Azure resource ID

    Returns:
        Dict containing the components found, empty dict otherwise
    """
    if not resource_id:
        return {}

    segments = resource_id.strip("/").split("/")
    lowered = [s.lower() for s in segments]
    result: Dict[str, str] = {}

    if "subscriptions" in lowered:
        index = lowered.index("subscriptions")
        if index + 1 < len(segments):
            result["subscription_id"] = segments[index + 1]

    if "resourcegroups" in lowered:
        index = lowered.index("resourcegroups")
        if index + 1 < len(segments):
            result["resource_group"] = segments[index + 1]

    if "providers" in lowered and len(segments) >= 2:
        result["name"] = segments[-1]

    return result


@dataclass(frozen=True)
class SubscriptionInfo:
    """An accessible Azure subscription."""

    subscription_id: str
    display_name: str = ""
    state: Optional[str] = None

    def matches(self, selector: str) -> bool:
        """True if ``selector`` equals the id or display name (case-insensitive)."""
        wanted = selector.strip().lower()
        return wanted in (self.subscription_id.lower(), (self.display_name or "").lower())

    @property
    def label(self) -> str:
        return self.display_name or self.subscription_id


@dataclass(frozen=True)
class VaultResource:
    """A Key Vault resource; its id is the vault scope."""

    id: str
    name: str
    subscription_id: str
    resource_group: Optional[str] = None
    location: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def scope(self) -> str:
        return self.id

    def has_tag(self, name: str, value: str) -> bool:
        """True if the vault carries exactly this tag key/value pair."""
        return name in self.tags and self.tags[name] == value


@dataclass(frozen=True)
class RoleAssignment:
    """Read-only view of one RBAC assignment as returned at query time."""

    scope: str
    principal_id: str
    role_definition_id: str
    role_definition_name: str = ""
    principal_type: Optional[str] = None
    id: Optional[str] = None

    @property
    def role_key(self) -> str:
        return role_definition_guid(self.role_definition_id)

    def is_at_scope(self, scope: str) -> bool:
        """True if this assignment was made exactly at ``scope``."""
        return is_same_scope(self.scope, scope)

    def is_inherited_at(self, scope: str) -> bool:
        """True if this assignment reaches ``scope`` from an ancestor scope."""
        return is_ancestor_scope(self.scope, scope)

    def belongs_to(self, principal_id: str) -> bool:
        return (self.principal_id or "").lower() == (principal_id or "").lower()

    def grants(self, principal_id: str, role_definition_id: str, scope: str) -> bool:
        """True if this assignment is (principal, role definition, exact scope)."""
        return (
            self.belongs_to(principal_id)
            and self.role_key == role_definition_guid(role_definition_id)
            and self.is_at_scope(scope)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "scope": self.scope,
            "principalId": self.principal_id,
            "principalType": self.principal_type,
            "roleDefinitionId": self.role_definition_id,
            "roleDefinitionName": self.role_definition_name,
        }

"""Models module for Key Vault RBAC Migrator."""

from .audit_records import ActionType, OperationRecord, OperationStatus, SnapshotRecord
from .azure_resources import (
    KEY_VAULT_RESOURCE_TYPE,
    RoleAssignment,
    SubscriptionInfo,
    VaultResource,
)
from .mapping import MappingRow, ResolvedMapping
from .principal import PrincipalKind, PrincipalRef

__all__ = [
    "ActionType",
    "KEY_VAULT_RESOURCE_TYPE",
    "MappingRow",
    "OperationRecord",
    "OperationStatus",
    "PrincipalKind",
    "PrincipalRef",
    "ResolvedMapping",
    "RoleAssignment",
    "SnapshotRecord",
    "SubscriptionInfo",
    "VaultResource",
]

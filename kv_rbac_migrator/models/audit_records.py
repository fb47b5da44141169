"""Audit record models for operation and snapshot logs.

Public API:
    ActionType: What the engine did (or declined to do) for one assignment
    OperationStatus: Outcome of that action, set exactly once
    OperationRecord: One row of the operation log
    SnapshotRecord: One row of the pre-change snapshot
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class ActionType(str, Enum):
    """Action recorded in the operation log."""

    ADD = "Add"
    REMOVE_OLD = "RemoveOld"
    SKIP_ADD = "Skip(Add)"
    SKIP_ROW = "Skip(Row)"


class OperationStatus(str, Enum):
    """Outcome of a recorded action."""

    SUCCESS = "Success"
    SIMULATED = "Simulated"
    EXISTS = "Exists"
    ERROR = "Error"


@dataclass(frozen=True)
class OperationRecord:
    """One attempted or skipped action. Append-only."""

    timestamp: str
    mapping_old: str
    mapping_new: str
    subscription: str
    vault: str
    scope: str
    action: ActionType
    role: str
    role_id: str
    old_object_id: str
    new_object_id: str
    status: OperationStatus
    message: str = ""

    FIELDNAMES = [
        "Timestamp",
        "MappingOld",
        "MappingNew",
        "Subscription",
        "Vault",
        "Scope",
        "Action",
        "Role",
        "RoleId",
        "OldObjectId",
        "NewObjectId",
        "Status",
        "Message",
    ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a flat dictionary keyed by the exported column names."""
        return {
            "Timestamp": self.timestamp,
            "MappingOld": self.mapping_old,
            "MappingNew": self.mapping_new,
            "Subscription": self.subscription,
            "Vault": self.vault,
            "Scope": self.scope,
            "Action": self.action.value,
            "Role": self.role,
            "RoleId": self.role_id,
            "OldObjectId": self.old_object_id,
            "NewObjectId": self.new_object_id,
            "Status": self.status.value,
            "Message": self.message,
        }


@dataclass(frozen=True)
class SnapshotRecord:
    """An old-principal assignment seen at a scope before any mutation."""

    timestamp: str
    mapping_old: str
    mapping_new: str
    subscription: str
    vault: str
    scope: str
    assignment_scope: str
    role: str
    role_id: str
    principal_id: str
    principal_type: str
    inherited: bool

    FIELDNAMES = [
        "Timestamp",
        "MappingOld",
        "MappingNew",
        "Subscription",
        "Vault",
        "Scope",
        "AssignmentScope",
        "Role",
        "RoleId",
        "PrincipalId",
        "PrincipalType",
        "Inherited",
    ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a flat dictionary keyed by the exported column names."""
        return {
            "Timestamp": self.timestamp,
            "MappingOld": self.mapping_old,
            "MappingNew": self.mapping_new,
            "Subscription": self.subscription,
            "Vault": self.vault,
            "Scope": self.scope,
            "AssignmentScope": self.assignment_scope,
            "Role": self.role,
            "RoleId": self.role_id,
            "PrincipalId": self.principal_id,
            "PrincipalType": self.principal_type,
            "Inherited": self.inherited,
        }


"""
Service Layer Module

Services for the Key Vault RBAC migration: identity resolution, scope
enumeration, assignment indexing, the migration engine and its audit log,
plus the Azure and Microsoft Graph adapters behind the collaborator protocols.
"""

from .aad_directory_service import AADDirectoryService
from .assignment_index import AssignmentIndex, AssignmentSet
from .audit_logger import AuditLogger, ExportPaths
from .azure_control_plane_service import AzureControlPlaneService
from .confirmation import ActionDecision, ActionGate, PendingAction, decide
from .identity_resolver import IdentityResolver, is_object_id
from .mapping_loader import load_mapping
from .migration_engine import (
    ActionOutcome,
    MigrationEngine,
    MigrationOptions,
    RunSummary,
)
from .migration_pipeline import MigrationPipeline, ScopeWorkItem
from .protocols import ControlPlaneClient, DirectoryClient
from .scope_enumerator import ScopeEnumerator
from .subscription_catalog import SubscriptionCatalog

__all__ = [
    "AADDirectoryService",
    "ActionDecision",
    "ActionGate",
    "ActionOutcome",
    "AssignmentIndex",
    "AssignmentSet",
    "AuditLogger",
    "AzureControlPlaneService",
    "ControlPlaneClient",
    "DirectoryClient",
    "ExportPaths",
    "IdentityResolver",
    "MigrationEngine",
    "MigrationOptions",
    "MigrationPipeline",
    "PendingAction",
    "RunSummary",
    "ScopeEnumerator",
    "ScopeWorkItem",
    "SubscriptionCatalog",
    "decide",
    "is_object_id",
    "load_mapping",
]

"""
Azure Control Plane Service

Implements the ControlPlaneClient protocol on top of the Azure management
SDKs. The SDK clients are synchronous; every call is pushed to a worker
thread with ``asyncio.to_thread`` and awaited, one at a time.
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from azure.identity import DefaultAzureCredential
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.authorization.models import RoleAssignmentCreateParameters
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.subscription import SubscriptionClient

from ..exceptions import (
    AssignmentQueryError,
    AzureError,
    RoleAssignmentOperationError,
    ScopeEnumerationError,
    wrap_azure_exception,
)
from ..models.azure_resources import (
    KEY_VAULT_RESOURCE_TYPE,
    RoleAssignment,
    SubscriptionInfo,
    VaultResource,
    parse_resource_id,
    role_definition_guid,
)

logger = logging.getLogger(__name__)

VAULT_FILTER = f"resourceType eq '{KEY_VAULT_RESOURCE_TYPE}'"


def _error_message(exc: Exception) -> str:
    return getattr(exc, "message", None) or str(exc)


def _enum_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


class AzureControlPlaneService:
    """
    Subscription, Key Vault and role assignment operations.

    Clients are created lazily and cached per subscription. Role definition
    names are looked up once per role definition GUID and cached for the run.
    """

    def __init__(
        self,
        credential: Optional[Any] = None,
        subscription_client_factory: Optional[Callable[[Any], Any]] = None,
        resource_client_factory: Optional[Callable[[Any, str], Any]] = None,
        authorization_client_factory: Optional[Callable[[Any, str], Any]] = None,
    ) -> None:
        """
        Initialize the control plane service.

        Args:
            credential: Optional Azure credential (for dependency injection/testing)
            subscription_client_factory: Optional factory for SubscriptionClient (for testing)
            resource_client_factory: Optional factory for ResourceManagementClient (for testing)
            authorization_client_factory: Optional factory for AuthorizationManagementClient (for testing)
        """
        self.credential = credential or DefaultAzureCredential()
        self.subscription_client_factory = (
            subscription_client_factory or SubscriptionClient
        )
        self.resource_client_factory = (
            resource_client_factory or ResourceManagementClient
        )
        self.authorization_client_factory = (
            authorization_client_factory or AuthorizationManagementClient
        )
        self.active_subscription_id: Optional[str] = None
        self._resource_clients: Dict[str, Any] = {}
        self._authorization_clients: Dict[str, Any] = {}
        self._role_names: Dict[str, str] = {}

    def _get_resource_client(self, subscription_id: str) -> Any:
        """Get or create a ResourceManagementClient for a subscription."""
        if subscription_id not in self._resource_clients:
            self._resource_clients[subscription_id] = self.resource_client_factory(
                self.credential, subscription_id
            )
        return self._resource_clients[subscription_id]

    def _get_authorization_client(self, scope: str) -> Any:
        """Get or create an AuthorizationManagementClient for a scope's subscription."""
        subscription_id = (
            parse_resource_id(scope).get("subscription_id")
            or self.active_subscription_id
        )
        if not subscription_id:
            raise AzureError(
                f"No subscription context for scope {scope}",
                recovery_suggestion="Call set_subscription before querying assignments",
            )
        if subscription_id not in self._authorization_clients:
            self._authorization_clients[subscription_id] = (
                self.authorization_client_factory(self.credential, subscription_id)
            )
        return self._authorization_clients[subscription_id]

    async def list_subscriptions(self) -> List[SubscriptionInfo]:
        def _list() -> List[SubscriptionInfo]:
            client = self.subscription_client_factory(self.credential)
            return [
                SubscriptionInfo(
                    subscription_id=sub.subscription_id,
                    display_name=getattr(sub, "display_name", None) or "",
                    state=_enum_value(getattr(sub, "state", None)),
                )
                for sub in client.subscriptions.list()
                if getattr(sub, "subscription_id", None)
            ]

        try:
            subscriptions = await asyncio.to_thread(_list)
        except Exception as e:
            raise wrap_azure_exception(e) from e
        logger.info(f"Discovered {len(subscriptions)} accessible subscriptions")
        return subscriptions

    async def set_subscription(self, subscription_id: str) -> None:
        self.active_subscription_id = subscription_id
        logger.debug(f"Active subscription set to {subscription_id}")

    async def list_vaults(self, subscription_id: str) -> List[VaultResource]:
        def _list() -> List[VaultResource]:
            client = self._get_resource_client(subscription_id)
            vaults: List[VaultResource] = []
            for resource in client.resources.list(filter=VAULT_FILTER):
                parsed = parse_resource_id(resource.id)
                vaults.append(
                    VaultResource(
                        id=resource.id,
                        name=resource.name,
                        subscription_id=parsed.get("subscription_id", subscription_id),
                        resource_group=parsed.get("resource_group"),
                        location=getattr(resource, "location", None),
                        tags=dict(getattr(resource, "tags", None) or {}),
                    )
                )
            return vaults

        try:
            vaults = await asyncio.to_thread(_list)
        except Exception as e:
            raise ScopeEnumerationError(
                f"Failed to list Key Vaults: {_error_message(e)}",
                subscription_id=subscription_id,
                cause=e,
            ) from e
        logger.info(f"Found {len(vaults)} Key Vaults in subscription {subscription_id}")
        return vaults

    def _role_name(self, client: Any, role_definition_id: str) -> str:
        key = role_definition_guid(role_definition_id)
        if key not in self._role_names:
            try:
                definition = client.role_definitions.get_by_id(role_definition_id)
                self._role_names[key] = getattr(definition, "role_name", None) or key
            except Exception as e:
                logger.warning(
                    f"Could not read role definition {role_definition_id}: {_error_message(e)}"
                )
                return key
        return self._role_names[key]

    async def list_role_assignments(self, scope: str) -> List[RoleAssignment]:
        def _list() -> List[RoleAssignment]:
            client = self._get_authorization_client(scope)
            assignments: List[RoleAssignment] = []
            # atScope() returns assignments at the scope and at its ancestors
            for ra in client.role_assignments.list_for_scope(scope, filter="atScope()"):
                assignments.append(
                    RoleAssignment(
                        id=ra.id,
                        scope=ra.scope,
                        principal_id=ra.principal_id,
                        role_definition_id=ra.role_definition_id,
                        role_definition_name=self._role_name(client, ra.role_definition_id),
                        principal_type=_enum_value(getattr(ra, "principal_type", None)),
                    )
                )
            return assignments

        try:
            return await asyncio.to_thread(_list)
        except Exception as e:
            raise AssignmentQueryError(
                f"Failed to list role assignments: {_error_message(e)}",
                scope=scope,
                cause=e,
            ) from e

    async def create_role_assignment(
        self, principal_id: str, role_definition_id: str, scope: str
    ) -> None:
        def _create() -> Any:
            client = self._get_authorization_client(scope)
            parameters = RoleAssignmentCreateParameters(
                role_definition_id=role_definition_id,
                principal_id=principal_id,
            )
            return client.role_assignments.create(
                scope=scope,
                role_assignment_name=str(uuid.uuid4()),
                parameters=parameters,
            )

        try:
            await asyncio.to_thread(_create)
        except Exception as e:
            raise RoleAssignmentOperationError(
                _error_message(e),
                operation="create",
                scope=scope,
                principal_id=principal_id,
                role_definition_id=role_definition_id,
                cause=e,
            ) from e
        logger.info(f"Created role assignment for {principal_id} at {scope}")

    async def delete_role_assignment(
        self, principal_id: str, role_definition_id: str, scope: str
    ) -> None:
        def _delete() -> None:
            client = self._get_authorization_client(scope)
            target = None
            for ra in client.role_assignments.list_for_scope(
                scope, filter=f"principalId eq '{principal_id}'"
            ):
                candidate = RoleAssignment(
                    id=ra.id,
                    scope=ra.scope,
                    principal_id=ra.principal_id,
                    role_definition_id=ra.role_definition_id,
                )
                if candidate.grants(principal_id, role_definition_id, scope):
                    target = candidate
                    break
            if target is None or not target.id:
                raise RoleAssignmentOperationError(
                    "Role assignment not found",
                    operation="delete",
                    scope=scope,
                    principal_id=principal_id,
                    role_definition_id=role_definition_id,
                )
            client.role_assignments.delete_by_id(target.id)

        try:
            await asyncio.to_thread(_delete)
        except RoleAssignmentOperationError:
            raise
        except Exception as e:
            raise RoleAssignmentOperationError(
                _error_message(e),
                operation="delete",
                scope=scope,
                principal_id=principal_id,
                role_definition_id=role_definition_id,
                cause=e,
            ) from e
        logger.info(f"Deleted role assignment for {principal_id} at {scope}")

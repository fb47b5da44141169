"""
Tests for AzureControlPlaneService.

The Azure SDK clients are replaced by MagicMock objects through the client
factories, the same way the discovery service tests inject them.
"""

import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import HttpResponseError

from conftest import ALICE_ID, BOB_ID, OTHER_SUB_ID, READER_ID, SECRETS_USER_GUID, SECRETS_USER_ID, SUB_ID, vault_id
from kv_rbac_migrator.exceptions import (
    AssignmentQueryError,
    AzureAuthenticationError,
    RoleAssignmentOperationError,
    ScopeEnumerationError,
)
from kv_rbac_migrator.services.azure_control_plane_service import (
    VAULT_FILTER,
    AzureControlPlaneService,
)

KV1 = vault_id("kv1")


def sdk_assignment(principal_id, scope, role_definition_id=SECRETS_USER_ID, name="ra1"):
    return SimpleNamespace(
        id=f"{scope}/providers/Microsoft.Authorization/roleAssignments/{name}",
        scope=scope,
        principal_id=principal_id,
        role_definition_id=role_definition_id,
        principal_type="User",
    )


@pytest.fixture
def subscription_client():
    return MagicMock()


@pytest.fixture
def resource_client():
    return MagicMock()


@pytest.fixture
def auth_client():
    client = MagicMock()
    client.role_definitions.get_by_id.return_value = SimpleNamespace(
        role_name="Key Vault Secrets User"
    )
    return client


@pytest.fixture
def factories(subscription_client, resource_client, auth_client):
    return {
        "subscription": MagicMock(return_value=subscription_client),
        "resource": MagicMock(return_value=resource_client),
        "authorization": MagicMock(return_value=auth_client),
    }


@pytest.fixture
def service(factories):
    return AzureControlPlaneService(
        credential=MagicMock(),
        subscription_client_factory=factories["subscription"],
        resource_client_factory=factories["resource"],
        authorization_client_factory=factories["authorization"],
    )


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_list_subscriptions(self, service, subscription_client):
        subscription_client.subscriptions.list.return_value = [
            SimpleNamespace(subscription_id=SUB_ID, display_name="Production", state="Enabled"),
            SimpleNamespace(subscription_id=OTHER_SUB_ID, display_name=None, state=None),
        ]

        subscriptions = await service.list_subscriptions()

        assert [s.subscription_id for s in subscriptions] == [SUB_ID, OTHER_SUB_ID]
        assert subscriptions[0].display_name == "Production"
        assert subscriptions[0].state == "Enabled"
        assert subscriptions[1].label == OTHER_SUB_ID

    @pytest.mark.asyncio
    async def test_credential_failure_is_wrapped(self, service, subscription_client):
        subscription_client.subscriptions.list.side_effect = Exception(
            "DefaultAzureCredential failed to retrieve a token"
        )

        with pytest.raises(AzureAuthenticationError):
            await service.list_subscriptions()

    @pytest.mark.asyncio
    async def test_set_subscription(self, service):
        await service.set_subscription(SUB_ID)
        assert service.active_subscription_id == SUB_ID


class TestVaults:
    @pytest.mark.asyncio
    async def test_list_vaults_filters_by_resource_type(self, service, factories, resource_client):
        resource_client.resources.list.return_value = [
            SimpleNamespace(id=KV1, name="kv1", location="eastus", tags={"env": "prod"}),
            SimpleNamespace(id=vault_id("kv2", resource_group="rg-b"), name="kv2", location="westus", tags=None),
        ]

        vaults = await service.list_vaults(SUB_ID)

        resource_client.resources.list.assert_called_once_with(filter=VAULT_FILTER)
        factories["resource"].assert_called_once_with(service.credential, SUB_ID)
        assert [v.name for v in vaults] == ["kv1", "kv2"]
        assert vaults[0].scope == KV1
        assert vaults[0].tags == {"env": "prod"}
        assert vaults[1].resource_group == "rg-b"
        assert vaults[1].tags == {}

    @pytest.mark.asyncio
    async def test_listing_failure(self, service, resource_client):
        resource_client.resources.list.side_effect = HttpResponseError(message="Forbidden")

        with pytest.raises(ScopeEnumerationError) as exc_info:
            await service.list_vaults(SUB_ID)

        assert exc_info.value.context["subscription_id"] == SUB_ID
        assert "Forbidden" in exc_info.value.message


class TestRoleAssignments:
    @pytest.mark.asyncio
    async def test_list_role_assignments_with_cached_role_names(self, service, factories, auth_client):
        other_qualified = SECRETS_USER_ID.replace(SUB_ID, OTHER_SUB_ID)
        auth_client.role_assignments.list_for_scope.return_value = [
            sdk_assignment(ALICE_ID, KV1),
            sdk_assignment(BOB_ID, f"/subscriptions/{SUB_ID}", other_qualified, name="ra2"),
        ]

        assignments = await service.list_role_assignments(KV1)

        auth_client.role_assignments.list_for_scope.assert_called_once_with(KV1, filter="atScope()")
        factories["authorization"].assert_called_once_with(service.credential, SUB_ID)
        assert [a.principal_id for a in assignments] == [ALICE_ID, BOB_ID]
        assert all(a.role_definition_name == "Key Vault Secrets User" for a in assignments)
        assert auth_client.role_definitions.get_by_id.call_count == 1
        assert assignments[1].role_key == SECRETS_USER_GUID

    @pytest.mark.asyncio
    async def test_role_name_falls_back_to_guid(self, service, auth_client):
        auth_client.role_definitions.get_by_id.side_effect = HttpResponseError(message="NotFound")
        auth_client.role_assignments.list_for_scope.return_value = [sdk_assignment(ALICE_ID, KV1)]

        assignments = await service.list_role_assignments(KV1)

        assert assignments[0].role_definition_name == SECRETS_USER_GUID

    @pytest.mark.asyncio
    async def test_query_failure(self, service, auth_client):
        auth_client.role_assignments.list_for_scope.side_effect = HttpResponseError(message="Throttled")

        with pytest.raises(AssignmentQueryError) as exc_info:
            await service.list_role_assignments(KV1)
        assert exc_info.value.context["scope"] == KV1

    @pytest.mark.asyncio
    async def test_create_uses_fresh_assignment_name(self, service, auth_client):
        await service.create_role_assignment(BOB_ID, SECRETS_USER_ID, KV1)

        kwargs = auth_client.role_assignments.create.call_args.kwargs
        assert kwargs["scope"] == KV1
        uuid.UUID(kwargs["role_assignment_name"])
        assert kwargs["parameters"].principal_id == BOB_ID
        assert kwargs["parameters"].role_definition_id == SECRETS_USER_ID

    @pytest.mark.asyncio
    async def test_create_failure(self, service, auth_client):
        auth_client.role_assignments.create.side_effect = HttpResponseError(
            message="The role assignment already exists."
        )

        with pytest.raises(RoleAssignmentOperationError) as exc_info:
            await service.create_role_assignment(BOB_ID, SECRETS_USER_ID, KV1)

        assert exc_info.value.message == "The role assignment already exists."
        assert exc_info.value.context["operation"] == "create"

    @pytest.mark.asyncio
    async def test_delete_matches_role_and_exact_scope(self, service, auth_client):
        inherited = sdk_assignment(ALICE_ID, f"/subscriptions/{SUB_ID}", name="inherited")
        other_role = sdk_assignment(ALICE_ID, KV1, READER_ID, name="reader")
        target = sdk_assignment(ALICE_ID, KV1, name="target")
        auth_client.role_assignments.list_for_scope.return_value = [inherited, other_role, target]

        await service.delete_role_assignment(ALICE_ID, SECRETS_USER_ID, KV1)

        auth_client.role_assignments.list_for_scope.assert_called_once_with(
            KV1, filter=f"principalId eq '{ALICE_ID}'"
        )
        auth_client.role_assignments.delete_by_id.assert_called_once_with(target.id)

    @pytest.mark.asyncio
    async def test_delete_not_found(self, service, auth_client):
        auth_client.role_assignments.list_for_scope.return_value = []

        with pytest.raises(RoleAssignmentOperationError) as exc_info:
            await service.delete_role_assignment(ALICE_ID, SECRETS_USER_ID, KV1)

        assert exc_info.value.message == "Role assignment not found"
        auth_client.role_assignments.delete_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_scope_without_subscription_uses_active_context(self, service, factories, auth_client):
        auth_client.role_assignments.list_for_scope.return_value = []
        await service.set_subscription(OTHER_SUB_ID)

        await service.list_role_assignments("/")

        factories["authorization"].assert_called_once_with(service.credential, OTHER_SUB_ID)

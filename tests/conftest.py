from typing import Dict, List, Optional, Set, Tuple

import pytest

from kv_rbac_migrator.exceptions import DirectoryLookupError, RoleAssignmentOperationError
from kv_rbac_migrator.models.azure_resources import (
    RoleAssignment,
    SubscriptionInfo,
    VaultResource,
    role_definition_guid,
)
from kv_rbac_migrator.models.mapping import MappingRow

SUB_ID = "11111111-1111-1111-1111-111111111111"
SUB_NAME = "Production"
OTHER_SUB_ID = "22222222-2222-2222-2222-222222222222"
OTHER_SUB_NAME = "Development"

ALICE_UPN = "alice@contoso.com"
ALICE_ID = "aaaaaaaa-0000-0000-0000-000000000001"
BOB_UPN = "bob@contoso.com"
BOB_ID = "bbbbbbbb-0000-0000-0000-000000000002"

SECRETS_USER_GUID = "4633458b-17de-408a-b874-0445c86b69e6"
SECRETS_USER_ID = (
    f"/subscriptions/{SUB_ID}/providers/Microsoft.Authorization/roleDefinitions/{SECRETS_USER_GUID}"
)
READER_GUID = "21090545-7ca7-4776-b22c-e363652d74d2"
READER_ID = (
    f"/subscriptions/{SUB_ID}/providers/Microsoft.Authorization/roleDefinitions/{READER_GUID}"
)

ROLE_NAMES = {
    SECRETS_USER_GUID: "Key Vault Secrets User",
    READER_GUID: "Key Vault Reader",
}


def vault_id(name: str, subscription_id: str = SUB_ID, resource_group: str = "rg-app") -> str:
    return (
        f"/subscriptions/{subscription_id}/resourceGroups/{resource_group}"
        f"/providers/Microsoft.KeyVault/vaults/{name}"
    )


def make_vault(
    name: str,
    subscription_id: str = SUB_ID,
    resource_group: str = "rg-app",
    tags: Optional[Dict[str, str]] = None,
) -> VaultResource:
    return VaultResource(
        id=vault_id(name, subscription_id, resource_group),
        name=name,
        subscription_id=subscription_id,
        resource_group=resource_group,
        location="eastus",
        tags=tags or {},
    )


def make_assignment(
    principal_id: str,
    scope: str,
    role_definition_id: str = SECRETS_USER_ID,
    principal_type: str = "User",
) -> RoleAssignment:
    return RoleAssignment(
        scope=scope,
        principal_id=principal_id,
        role_definition_id=role_definition_id,
        role_definition_name=ROLE_NAMES.get(role_definition_guid(role_definition_id), ""),
        principal_type=principal_type,
        id=f"{scope}/providers/Microsoft.Authorization/roleAssignments/{principal_id[:8]}",
    )


def make_row(old: str = ALICE_UPN, new: str = BOB_UPN, row_number: int = 1, **kwargs) -> MappingRow:
    return MappingRow(row_number=row_number, old_principal=old, new_principal=new, **kwargs)


class FakeControlPlane:
    """In-memory ControlPlaneClient that records every call."""

    def __init__(
        self,
        subscriptions: Optional[List[SubscriptionInfo]] = None,
        vaults: Optional[Dict[str, List[VaultResource]]] = None,
        assignments: Optional[List[RoleAssignment]] = None,
    ):
        self.subscriptions = (
            subscriptions
            if subscriptions is not None
            else [SubscriptionInfo(SUB_ID, SUB_NAME, "Enabled")]
        )
        self.vaults = vaults if vaults is not None else {}
        self.assignments: List[RoleAssignment] = list(assignments or [])
        self.calls: List[Tuple] = []
        self.fail_subscriptions: Optional[Exception] = None
        self.fail_vaults: Set[str] = set()
        self.fail_assignment_scopes: Set[str] = set()
        self.fail_create: Set[str] = set()
        self.fail_delete: Set[str] = set()

    @property
    def mutations(self) -> List[Tuple]:
        return [c for c in self.calls if c[0] in ("create", "delete")]

    async def list_subscriptions(self) -> List[SubscriptionInfo]:
        self.calls.append(("list_subscriptions",))
        if self.fail_subscriptions is not None:
            raise self.fail_subscriptions
        return list(self.subscriptions)

    async def set_subscription(self, subscription_id: str) -> None:
        self.calls.append(("set_subscription", subscription_id))

    async def list_vaults(self, subscription_id: str) -> List[VaultResource]:
        self.calls.append(("list_vaults", subscription_id))
        if subscription_id in self.fail_vaults:
            raise RuntimeError("vault listing failed")
        return list(self.vaults.get(subscription_id, []))

    async def list_role_assignments(self, scope: str) -> List[RoleAssignment]:
        self.calls.append(("list_role_assignments", scope))
        if scope in self.fail_assignment_scopes:
            raise RuntimeError("assignment query failed")
        return [
            a for a in self.assignments
            if a.is_at_scope(scope) or a.is_inherited_at(scope)
        ]

    async def create_role_assignment(
        self, principal_id: str, role_definition_id: str, scope: str
    ) -> None:
        self.calls.append(("create", principal_id, role_definition_id, scope))
        if principal_id in self.fail_create:
            raise RoleAssignmentOperationError(
                "The client does not have authorization to perform action",
                operation="create",
            )
        self.assignments.append(make_assignment(principal_id, scope, role_definition_id))

    async def delete_role_assignment(
        self, principal_id: str, role_definition_id: str, scope: str
    ) -> None:
        self.calls.append(("delete", principal_id, role_definition_id, scope))
        if principal_id in self.fail_delete:
            raise RuntimeError("delete failed")
        self.assignments = [
            a for a in self.assignments
            if not a.grants(principal_id, role_definition_id, scope)
        ]


class FakeDirectory:
    """In-memory DirectoryClient keyed by exact lookup value."""

    def __init__(self):
        self.users_by_upn: Dict[str, List[str]] = {}
        self.users_by_name: Dict[str, List[str]] = {}
        self.sps_by_app_id: Dict[str, List[str]] = {}
        self.sps_by_name: Dict[str, List[str]] = {}
        self.groups_by_name: Dict[str, List[str]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_on: Set[str] = set()

    def _lookup(self, kind: str, table: Dict[str, List[str]], value: str) -> List[str]:
        self.calls.append((kind, value))
        if kind in self.fail_on:
            raise DirectoryLookupError("Graph query failed: 503", query=value)
        return list(table.get(value, []))

    async def find_users_by_principal_name(self, principal_name: str) -> List[str]:
        return self._lookup("user_upn", self.users_by_upn, principal_name)

    async def find_users_by_display_name(self, display_name: str) -> List[str]:
        return self._lookup("user_name", self.users_by_name, display_name)

    async def find_service_principals_by_app_id(self, app_id: str) -> List[str]:
        return self._lookup("sp_app_id", self.sps_by_app_id, app_id)

    async def find_service_principals_by_display_name(self, display_name: str) -> List[str]:
        return self._lookup("sp_name", self.sps_by_name, display_name)

    async def find_groups_by_display_name(self, display_name: str) -> List[str]:
        return self._lookup("group_name", self.groups_by_name, display_name)


@pytest.fixture
def directory() -> FakeDirectory:
    """Directory knowing alice and bob by UPN."""
    fake = FakeDirectory()
    fake.users_by_upn[ALICE_UPN] = [ALICE_ID]
    fake.users_by_upn[BOB_UPN] = [BOB_ID]
    return fake


@pytest.fixture
def kv1() -> VaultResource:
    return make_vault("kv1")


@pytest.fixture
def control_plane(kv1) -> FakeControlPlane:
    """One subscription, one vault, alice holds Secrets User directly on it."""
    return FakeControlPlane(
        vaults={SUB_ID: [kv1]},
        assignments=[make_assignment(ALICE_ID, kv1.scope)],
    )

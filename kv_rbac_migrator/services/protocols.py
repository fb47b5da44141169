"""
Type protocols for the external collaborators of the migration engine.

Philosophy:
- The engine only depends on these two narrow contracts
- The Azure SDK and Microsoft Graph implementations live in their own services
- Tests substitute in-memory fakes without patching SDK modules

Every method may raise; callers decide whether a failure is fatal or isolated.
"""

from typing import List, Protocol

from ..models.azure_resources import RoleAssignment, SubscriptionInfo, VaultResource


class ControlPlaneClient(Protocol):
    """Azure Resource Manager operations the engine consumes."""

    async def list_subscriptions(self) -> List[SubscriptionInfo]:
        """
        List subscriptions accessible to the signed-in identity.

        Returns:
            Accessible subscriptions (may be empty)
        """
        ...

    async def set_subscription(self, subscription_id: str) -> None:
        """Make ``subscription_id`` the active subscription context."""
        ...

    async def list_vaults(self, subscription_id: str) -> List[VaultResource]:
        """
        List Key Vault resources, with tags, in a subscription.

        Args:
            subscription_id: Subscription to list

        Returns:
            Vault resources
        """
        ...

    async def list_role_assignments(self, scope: str) -> List[RoleAssignment]:
        """
        List role assignments visible at a scope, including inherited ones.

        Args:
            scope: Resource path to query

        Returns:
            Role assignments with role definition names filled in
        """
        ...

    async def create_role_assignment(
        self, principal_id: str, role_definition_id: str, scope: str
    ) -> None:
        """Grant ``role_definition_id`` to ``principal_id`` at ``scope``."""
        ...

    async def delete_role_assignment(
        self, principal_id: str, role_definition_id: str, scope: str
    ) -> None:
        """Revoke ``role_definition_id`` from ``principal_id`` at ``scope``."""
        ...


class DirectoryClient(Protocol):
    """Directory lookups used by identity resolution.

    Each lookup is an exact-equality query and returns the object ids of every
    match (empty when nothing matches).
    """

    async def find_users_by_principal_name(self, principal_name: str) -> List[str]:
        ...

    async def find_users_by_display_name(self, display_name: str) -> List[str]:
        ...

    async def find_service_principals_by_app_id(self, app_id: str) -> List[str]:
        ...

    async def find_service_principals_by_display_name(
        self, display_name: str
    ) -> List[str]:
        ...

    async def find_groups_by_display_name(self, display_name: str) -> List[str]:
        ...

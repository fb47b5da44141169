"""Service for discovering accessible subscriptions and selecting them per row."""

import logging
from typing import List, Optional

from ..exceptions import SubscriptionDiscoveryError, wrap_azure_exception
from ..models.azure_resources import SubscriptionInfo
from .protocols import ControlPlaneClient

logger = logging.getLogger(__name__)


class SubscriptionCatalog:
    """Accessible subscriptions, listed once per run."""

    def __init__(self, control_plane: ControlPlaneClient):
        self.control_plane = control_plane
        self._subscriptions: Optional[List[SubscriptionInfo]] = None

    @property
    def subscriptions(self) -> List[SubscriptionInfo]:
        """Get the cached list of discovered subscriptions."""
        return list(self._subscriptions or [])

    async def load(self) -> List[SubscriptionInfo]:
        """
        List accessible subscriptions once.

        Raises:
            SubscriptionDiscoveryError: If listing fails or nothing is accessible
        """
        if self._subscriptions is not None:
            return self.subscriptions

        try:
            found = await self.control_plane.list_subscriptions()
        except Exception as e:
            wrapped = wrap_azure_exception(e)
            raise SubscriptionDiscoveryError(
                f"Unable to list accessible subscriptions: {wrapped.message}",
                cause=e,
            ) from e

        unique: List[SubscriptionInfo] = []
        seen = set()
        for sub in found:
            key = sub.subscription_id.lower()
            if key not in seen:
                seen.add(key)
                unique.append(sub)

        if not unique:
            raise SubscriptionDiscoveryError("No accessible subscriptions found")

        for sub in unique:
            logger.info(f"Found subscription: {sub.display_name} ({sub.subscription_id})")
        self._subscriptions = unique
        return self.subscriptions

    def select(self, subscription_filter: Optional[str]) -> List[SubscriptionInfo]:
        """
        Subscriptions a mapping row applies to.

        Args:
            subscription_filter: Subscription id or display name, or None for all

        Returns:
            Matching subscriptions (empty if the filter matches nothing)
        """
        if not subscription_filter:
            return self.subscriptions
        selected = [s for s in self.subscriptions if s.matches(subscription_filter)]
        logger.debug(
            f"Subscription filter '{subscription_filter}' matched {len(selected)} subscriptions"
        )
        return selected

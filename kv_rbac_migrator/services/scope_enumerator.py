"""Service for listing and filtering Key Vault scopes in a subscription."""

import logging
from typing import List, Optional, Pattern, Tuple

from ..models.azure_resources import VaultResource
from .protocols import ControlPlaneClient

logger = logging.getLogger(__name__)


class ScopeEnumerator:
    """Lists vault resources and narrows them by name pattern and tag."""

    def __init__(self, control_plane: ControlPlaneClient):
        self.control_plane = control_plane

    async def list_scopes(
        self,
        subscription_id: str,
        pattern: Optional[Pattern[str]] = None,
        tag: Optional[Tuple[str, str]] = None,
    ) -> List[VaultResource]:
        """
        List vaults in a subscription that pass the optional filters.

        Filters apply in order: name pattern (regex search on the vault name),
        then tag (exact key/value pair). A missing filter passes everything.
        A listing failure is logged and yields no scopes.

        Args:
            subscription_id: Subscription to enumerate
            pattern: Compiled name pattern, or None
            tag: (name, value) tag filter, or None

        Returns:
            Vaults that pass every configured filter
        """
        try:
            vaults = await self.control_plane.list_vaults(subscription_id)
        except Exception as e:
            logger.warning(
                f"Could not list vaults in subscription {subscription_id}, skipping: {e}"
            )
            return []

        filtered = filter_by_pattern(vaults, pattern)
        filtered = filter_by_tag(filtered, tag)

        if len(filtered) != len(vaults):
            logger.info(
                f"Filtered vaults: {len(filtered)}/{len(vaults)} "
                f"vaults match filter criteria in subscription {subscription_id}"
            )
        return filtered


def filter_by_pattern(
    vaults: List[VaultResource], pattern: Optional[Pattern[str]]
) -> List[VaultResource]:
    """Keep vaults whose name matches ``pattern``; no pattern keeps all."""
    if pattern is None:
        return list(vaults)
    return [v for v in vaults if pattern.search(v.name or "")]


def filter_by_tag(
    vaults: List[VaultResource], tag: Optional[Tuple[str, str]]
) -> List[VaultResource]:
    """Keep vaults carrying the exact tag pair; no tag filter keeps all."""
    if not tag:
        return list(vaults)
    name, value = tag
    return [v for v in vaults if v.has_tag(name, value)]

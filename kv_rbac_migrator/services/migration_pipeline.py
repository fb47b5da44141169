"""
Work pipeline for a migration run: row -> subscription -> vault scope.

The pipeline owns everything above the per-assignment decision: principal
resolution, subscription selection, subscription context switching and scope
enumeration. It yields one ScopeWorkItem per vault, in order, so the engine
only ever sees a resolved mapping and a single scope. Work items are
independent of each other; today they are consumed strictly in sequence so
the audit log order equals the order work was attempted.
"""

import re
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

import structlog

from ..exceptions import ResolutionError
from ..models.azure_resources import SubscriptionInfo, VaultResource
from ..models.mapping import MappingRow, ResolvedMapping
from .audit_logger import AuditLogger
from .identity_resolver import IdentityResolver
from .protocols import ControlPlaneClient
from .scope_enumerator import ScopeEnumerator
from .subscription_catalog import SubscriptionCatalog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ScopeWorkItem:
    """One vault scope to process for one resolved mapping row."""

    mapping: ResolvedMapping
    subscription: SubscriptionInfo
    vault: VaultResource


class MigrationPipeline:
    """Turns mapping rows into an ordered stream of scope work items."""

    def __init__(
        self,
        control_plane: ControlPlaneClient,
        resolver: IdentityResolver,
        audit: AuditLogger,
        catalog: Optional[SubscriptionCatalog] = None,
        scope_enumerator: Optional[ScopeEnumerator] = None,
    ):
        self.control_plane = control_plane
        self.resolver = resolver
        self.audit = audit
        self.catalog = catalog or SubscriptionCatalog(control_plane)
        self.scope_enumerator = scope_enumerator or ScopeEnumerator(control_plane)
        self.subscriptions_visited = 0
        self.scopes_visited = 0

    async def resolve_row(self, row: MappingRow) -> Optional[ResolvedMapping]:
        """
        Resolve both principals of a row.

        Returns:
            ResolvedMapping, or None if the row was skipped (the skip is
            recorded in the audit log)
        """
        if row.has_blank_principal():
            self.audit.record_row_skip(
                row.old_principal,
                row.new_principal,
                "OldPrincipal or NewPrincipal is blank",
            )
            return None

        try:
            row.compiled_pattern
        except re.error as e:
            self.audit.record_row_skip(
                row.old_principal,
                row.new_principal,
                f"Invalid VaultNamePattern '{row.vault_name_pattern}': {e}",
            )
            return None

        try:
            old = await self.resolver.resolve_principal(row.old_principal)
        except ResolutionError as e:
            self.audit.record_row_skip(
                row.old_principal,
                row.new_principal,
                f"OldPrincipal could not be resolved: {e.message}",
            )
            return None

        try:
            new = await self.resolver.resolve_principal(row.new_principal)
        except ResolutionError as e:
            self.audit.record_row_skip(
                row.old_principal,
                row.new_principal,
                f"NewPrincipal could not be resolved: {e.message}",
                old_object_id=old.resolved_id,
            )
            return None

        return ResolvedMapping(row=row, old=old, new=new)

    def select_subscriptions(self, mapping: ResolvedMapping) -> List[SubscriptionInfo]:
        """
        Subscriptions for a resolved row; records a row skip if none match.
        """
        row = mapping.row
        selected = self.catalog.select(row.subscription_filter)
        if not selected:
            self.audit.record_row_skip(
                row.old_principal,
                row.new_principal,
                f"Subscription filter '{row.subscription_filter}' matched no accessible subscription",
                old_object_id=mapping.old.resolved_id,
                new_object_id=mapping.new.resolved_id,
                subscription=row.subscription_filter or "",
            )
        return selected

    async def iter_work(
        self, mapping: ResolvedMapping, subscriptions: List[SubscriptionInfo]
    ) -> AsyncIterator[ScopeWorkItem]:
        """
        Yield one work item per filtered vault in each subscription.

        A subscription whose context cannot be set, or whose vault listing
        fails or is empty, is logged as zero-scope and skipped.
        """
        row = mapping.row
        for subscription in subscriptions:
            self.subscriptions_visited += 1
            try:
                await self.control_plane.set_subscription(subscription.subscription_id)
            except Exception as e:
                logger.warning(
                    "subscription skipped",
                    subscription=subscription.subscription_id,
                    reason=f"could not set subscription context: {e}",
                )
                continue

            vaults = await self.scope_enumerator.list_scopes(
                subscription.subscription_id,
                pattern=row.compiled_pattern,
                tag=row.tag_filter,
            )
            if not vaults:
                logger.info(
                    "no vault scopes in subscription",
                    subscription=subscription.subscription_id,
                    old_principal=row.old_principal,
                )
                continue

            for vault in vaults:
                self.scopes_visited += 1
                yield ScopeWorkItem(mapping=mapping, subscription=subscription, vault=vault)

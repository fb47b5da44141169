"""
Migration engine.

Replicates each eligible role assignment of an old principal to its new
principal at every vault scope a mapping row selects, optionally revoking the
old assignment afterwards. Every decision lands in the AuditLogger.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import structlog

from ..config_manager import RunConfig
from ..exceptions import KvRbacMigratorError
from ..models.audit_records import ActionType, OperationStatus
from ..models.azure_resources import RoleAssignment
from ..models.mapping import MappingRow
from .assignment_index import AssignmentIndex, AssignmentSet
from .audit_logger import AuditLogger
from .confirmation import ActionDecision, ActionGate, PendingAction, Prompter
from .identity_resolver import IdentityResolver
from .migration_pipeline import MigrationPipeline, ScopeWorkItem
from .protocols import ControlPlaneClient

logger = structlog.get_logger(__name__)


class ActionOutcome(str, Enum):
    """How a single Add or RemoveOld action ended."""

    APPLIED = "applied"
    SIMULATED = "simulated"
    EXISTS = "exists"
    DECLINED = "declined"
    FAILED = "failed"


STATUS_BY_OUTCOME: Dict[ActionOutcome, OperationStatus] = {
    ActionOutcome.APPLIED: OperationStatus.SUCCESS,
    ActionOutcome.SIMULATED: OperationStatus.SIMULATED,
    ActionOutcome.EXISTS: OperationStatus.EXISTS,
    ActionOutcome.DECLINED: OperationStatus.ERROR,
    ActionOutcome.FAILED: OperationStatus.ERROR,
}

# Outcomes after which the old assignment may be revoked
REMOVABLE_OUTCOMES = frozenset({ActionOutcome.APPLIED, ActionOutcome.SIMULATED})


@dataclass
class MigrationOptions:
    """Run-wide switches the engine needs."""

    include_inherited: bool = False
    remove_old: bool = False
    what_if: bool = False
    confirm: bool = False
    throttle_ms: int = 0

    @classmethod
    def from_run_config(cls, run: RunConfig) -> "MigrationOptions":
        return cls(
            include_inherited=run.include_inherited,
            remove_old=run.remove_old,
            what_if=run.what_if,
            confirm=run.confirm,
            throttle_ms=run.throttle_ms,
        )

    @property
    def throttle_seconds(self) -> float:
        return self.throttle_ms / 1000.0


@dataclass
class RunSummary:
    """Counters for one run."""

    rows_total: int = 0
    rows_processed: int = 0
    rows_skipped: int = 0
    subscriptions_visited: int = 0
    scopes_visited: int = 0
    snapshots: int = 0
    status_counts: Dict[Tuple[str, str], int] = field(default_factory=dict)

    def count(self, action: ActionType, status: OperationStatus) -> int:
        return self.status_counts.get((action.value, status.value), 0)

    @property
    def errors(self) -> int:
        return sum(
            n for (_, status), n in self.status_counts.items()
            if status == OperationStatus.ERROR.value
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rows_total": self.rows_total,
            "rows_processed": self.rows_processed,
            "rows_skipped": self.rows_skipped,
            "subscriptions_visited": self.subscriptions_visited,
            "scopes_visited": self.scopes_visited,
            "snapshots": self.snapshots,
            "status_counts": {
                f"{action}/{status}": n
                for (action, status), n in sorted(self.status_counts.items())
            },
        }


class MigrationEngine:
    """Runs mapping rows through the pipeline and applies each action."""

    def __init__(
        self,
        control_plane: ControlPlaneClient,
        resolver: IdentityResolver,
        audit: AuditLogger,
        options: Optional[MigrationOptions] = None,
        prompter: Optional[Prompter] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        pipeline: Optional[MigrationPipeline] = None,
        index: Optional[AssignmentIndex] = None,
    ):
        """
        Initialize the engine.

        Args:
            control_plane: Azure control plane client
            resolver: Identity resolver, shared by every row of the run
            audit: Audit log receiving snapshots and operations
            options: Run switches
            prompter: Asks the operator in confirmation mode
            sleep: Awaitable delay used for throttling
            pipeline: Work pipeline (built from the collaborators if omitted)
            index: Assignment index (built from control_plane if omitted)
        """
        self.control_plane = control_plane
        self.resolver = resolver
        self.audit = audit
        self.options = options or MigrationOptions()
        self.gate = ActionGate(
            what_if=self.options.what_if,
            confirm=self.options.confirm,
            prompter=prompter,
        )
        self._sleep = sleep or asyncio.sleep
        self.pipeline = pipeline or MigrationPipeline(control_plane, resolver, audit)
        self.index = index or AssignmentIndex(control_plane)
        self.summary = RunSummary()

    async def run(self, rows: List[MappingRow]) -> RunSummary:
        """
        Process every mapping row in order.

        Raises:
            SubscriptionDiscoveryError: If no subscription can be listed; no
                row is processed in that case
        """
        self.summary = RunSummary(rows_total=len(rows))
        await self.pipeline.catalog.load()

        if self.options.what_if:
            logger.info("dry-run: no role assignment will be created or deleted")

        for row in rows:
            await self.migrate_row(row)

        return self.build_summary()

    def build_summary(self) -> RunSummary:
        """Refresh the summary counters from the pipeline and audit log."""
        self.summary.subscriptions_visited = self.pipeline.subscriptions_visited
        self.summary.scopes_visited = self.pipeline.scopes_visited
        self.summary.snapshots = len(self.audit.snapshots)
        self.summary.status_counts = self.audit.status_counts()
        return self.summary

    async def migrate_row(self, row: MappingRow) -> None:
        logger.info(
            "processing mapping row",
            row=row.row_number,
            old_principal=row.old_principal,
            new_principal=row.new_principal,
        )
        mapping = await self.pipeline.resolve_row(row)
        if mapping is None:
            self.summary.rows_skipped += 1
            return

        subscriptions = self.pipeline.select_subscriptions(mapping)
        if not subscriptions:
            self.summary.rows_skipped += 1
            return

        self.summary.rows_processed += 1
        async for item in self.pipeline.iter_work(mapping, subscriptions):
            await self.migrate_scope(item)

    async def migrate_scope(self, item: ScopeWorkItem) -> None:
        """Snapshot, then replicate every eligible old-principal assignment."""
        mapping = item.mapping
        include_inherited = mapping.row.effective_include_inherited(
            self.options.include_inherited
        )
        assignments = await self.index.assignments_at(item.vault.scope, include_inherited)

        # Snapshot before any mutation, regardless of the inherited filter
        for assignment in assignments.for_principal(mapping.old.resolved_id):
            self.audit.record_snapshot(
                mapping, item.subscription.label, item.vault, assignment
            )

        eligible = assignments.eligible_for_principal(mapping.old.resolved_id)
        logger.debug(
            "eligible assignments",
            vault=item.vault.name,
            count=len(eligible),
            include_inherited=include_inherited,
        )
        for assignment in eligible:
            await self.migrate_assignment(item, assignment, assignments)

    async def migrate_assignment(
        self,
        item: ScopeWorkItem,
        assignment: RoleAssignment,
        assignments: AssignmentSet,
    ) -> None:
        mapping = item.mapping
        subscription = item.subscription.label
        new_id = mapping.new.resolved_id
        old_id = mapping.old.resolved_id

        if assignments.holds(new_id, assignment.role_definition_id, assignment.scope):
            self.audit.record_operation(
                mapping,
                subscription,
                item.vault,
                assignment,
                ActionType.SKIP_ADD,
                STATUS_BY_OUTCOME[ActionOutcome.EXISTS],
                "new principal already holds this role at this scope",
            )
            return

        outcome, message = await self._perform(
            PendingAction("Add", assignment.role_definition_name, assignment.scope, new_id),
            lambda: self.control_plane.create_role_assignment(
                new_id, assignment.role_definition_id, assignment.scope
            ),
        )
        self.audit.record_operation(
            mapping,
            subscription,
            item.vault,
            assignment,
            ActionType.ADD,
            STATUS_BY_OUTCOME[outcome],
            message,
        )

        if not self.options.remove_old or outcome not in REMOVABLE_OUTCOMES:
            return

        outcome, message = await self._perform(
            PendingAction("RemoveOld", assignment.role_definition_name, assignment.scope, old_id),
            lambda: self.control_plane.delete_role_assignment(
                old_id, assignment.role_definition_id, assignment.scope
            ),
        )
        self.audit.record_operation(
            mapping,
            subscription,
            item.vault,
            assignment,
            ActionType.REMOVE_OLD,
            STATUS_BY_OUTCOME[outcome],
            message,
        )

    async def _perform(
        self,
        action: PendingAction,
        call: Callable[[], Awaitable[Any]],
    ) -> Tuple[ActionOutcome, str]:
        """Run one mutating call through the gate and classify the result."""
        decision = self.gate.evaluate(action)
        if decision == ActionDecision.SIMULATE:
            return ActionOutcome.SIMULATED, f"WhatIf: {action.describe()}"
        if decision == ActionDecision.DECLINE:
            return ActionOutcome.DECLINED, "declined"

        try:
            await call()
            outcome, message = ActionOutcome.APPLIED, ""
        except KvRbacMigratorError as e:
            outcome, message = ActionOutcome.FAILED, e.message
        except Exception as e:
            outcome, message = ActionOutcome.FAILED, str(e) or type(e).__name__

        if self.options.throttle_ms > 0:
            await self._sleep(self.options.throttle_seconds)
        return outcome, message

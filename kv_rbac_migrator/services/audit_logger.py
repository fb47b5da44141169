"""
Audit log for a migration run.

Accumulates every snapshot taken and every action attempted, in the order the
work happened, and exports them once at the end of the run as:

- rbac-migration-operations-<ts>.csv
- rbac-migration-operations-<ts>.json
- rbac-migration-snapshot-<ts>.csv

The log is append-only: records are frozen dataclasses and there is no API to
remove or edit one.
"""

import csv
import json
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from ..models.audit_records import (
    ActionType,
    OperationRecord,
    OperationStatus,
    SnapshotRecord,
)
from ..models.azure_resources import RoleAssignment, VaultResource
from ..models.mapping import ResolvedMapping

logger = structlog.get_logger(__name__)

FILE_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExportPaths:
    """Files written by one export."""

    operations_csv: Path
    operations_json: Path
    snapshot_csv: Path


class AuditLogger:
    """Append-only operation and snapshot log for one run."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the audit log.

        Args:
            clock: Returns the current time; defaults to UTC now
        """
        self._clock = clock or utc_now
        self._operations: List[OperationRecord] = []
        self._snapshots: List[SnapshotRecord] = []
        self.started_at = self._clock()

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    @property
    def operations(self) -> Tuple[OperationRecord, ...]:
        return tuple(self._operations)

    @property
    def snapshots(self) -> Tuple[SnapshotRecord, ...]:
        return tuple(self._snapshots)

    def record_snapshot(
        self,
        mapping: ResolvedMapping,
        subscription: str,
        vault: VaultResource,
        assignment: RoleAssignment,
    ) -> SnapshotRecord:
        """Record one old-principal assignment seen at a vault scope."""
        record = SnapshotRecord(
            timestamp=self._timestamp(),
            mapping_old=mapping.row.old_principal,
            mapping_new=mapping.row.new_principal,
            subscription=subscription,
            vault=vault.name,
            scope=vault.scope,
            assignment_scope=assignment.scope,
            role=assignment.role_definition_name,
            role_id=assignment.role_definition_id,
            principal_id=assignment.principal_id,
            principal_type=assignment.principal_type or "",
            inherited=not assignment.is_at_scope(vault.scope),
        )
        self._snapshots.append(record)
        return record

    def record_operation(
        self,
        mapping: ResolvedMapping,
        subscription: str,
        vault: VaultResource,
        assignment: RoleAssignment,
        action: ActionType,
        status: OperationStatus,
        message: str = "",
    ) -> OperationRecord:
        """Record one attempted or skipped action on an assignment."""
        record = OperationRecord(
            timestamp=self._timestamp(),
            mapping_old=mapping.row.old_principal,
            mapping_new=mapping.row.new_principal,
            subscription=subscription,
            vault=vault.name,
            scope=assignment.scope,
            action=action,
            role=assignment.role_definition_name,
            role_id=assignment.role_definition_id,
            old_object_id=mapping.old.resolved_id,
            new_object_id=mapping.new.resolved_id,
            status=status,
            message=message,
        )
        self._operations.append(record)
        log = logger.warning if status == OperationStatus.ERROR else logger.info
        log(
            "operation recorded",
            action=action.value,
            status=status.value,
            role=record.role,
            scope=record.scope,
            message=message or None,
        )
        return record

    def record_row_skip(
        self,
        old_principal: str,
        new_principal: str,
        reason: str,
        old_object_id: str = "",
        new_object_id: str = "",
        subscription: str = "",
    ) -> OperationRecord:
        """Record that a whole mapping row was skipped."""
        record = OperationRecord(
            timestamp=self._timestamp(),
            mapping_old=old_principal,
            mapping_new=new_principal,
            subscription=subscription,
            vault="",
            scope="",
            action=ActionType.SKIP_ROW,
            role="",
            role_id="",
            old_object_id=old_object_id,
            new_object_id=new_object_id,
            status=OperationStatus.ERROR,
            message=reason,
        )
        self._operations.append(record)
        logger.warning(
            "mapping row skipped",
            old_principal=old_principal,
            new_principal=new_principal,
            reason=reason,
        )
        return record

    def status_counts(self) -> Dict[Tuple[str, str], int]:
        """Count operation records by (action, status)."""
        counts = Counter(
            (r.action.value, r.status.value) for r in self._operations
        )
        return dict(counts)

    def export(self, output_dir: Path) -> ExportPaths:
        """
        Write the three artifacts into ``output_dir``.

        All three files share the run's start timestamp in their names.

        Args:
            output_dir: Target directory, created if missing

        Returns:
            ExportPaths of the written files
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        stamp = self.started_at.strftime(FILE_TIMESTAMP_FORMAT)
        paths = ExportPaths(
            operations_csv=output_dir / f"rbac-migration-operations-{stamp}.csv",
            operations_json=output_dir / f"rbac-migration-operations-{stamp}.json",
            snapshot_csv=output_dir / f"rbac-migration-snapshot-{stamp}.csv",
        )

        operation_rows = [r.to_dict() for r in self._operations]
        snapshot_rows = [r.to_dict() for r in self._snapshots]

        _write_csv(paths.operations_csv, OperationRecord.FIELDNAMES, operation_rows)
        with open(paths.operations_json, "w", encoding="utf-8") as f:
            json.dump(operation_rows, f, indent=2)
        _write_csv(paths.snapshot_csv, SnapshotRecord.FIELDNAMES, snapshot_rows)

        logger.info(
            "audit log exported",
            operations=len(operation_rows),
            snapshots=len(snapshot_rows),
            output_dir=str(output_dir),
        )
        return paths


def _write_csv(path: Path, fieldnames: List[str], rows: List[Dict]) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)

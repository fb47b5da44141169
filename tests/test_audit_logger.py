"""Tests for AuditLogger recording and export."""

import csv
import json
from datetime import datetime, timedelta, timezone

from conftest import ALICE_ID, ALICE_UPN, BOB_ID, BOB_UPN, SUB_ID, make_assignment, make_row, make_vault
from kv_rbac_migrator.models.audit_records import (
    ActionType,
    OperationRecord,
    OperationStatus,
    SnapshotRecord,
)
from kv_rbac_migrator.models.mapping import ResolvedMapping
from kv_rbac_migrator.models.principal import PrincipalKind, PrincipalRef
from kv_rbac_migrator.services.audit_logger import AuditLogger


class FixedClock:
    def __init__(self):
        self.now = datetime(2024, 3, 5, 14, 30, 9, tzinfo=timezone.utc)

    def __call__(self):
        current = self.now
        self.now += timedelta(seconds=1)
        return current


def resolved():
    return ResolvedMapping(
        row=make_row(),
        old=PrincipalRef(ALICE_UPN, ALICE_ID, PrincipalKind.USER),
        new=PrincipalRef(BOB_UPN, BOB_ID, PrincipalKind.USER),
    )


def read_csv(path):
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        return reader.fieldnames, list(reader)


class TestAuditLogger:
    def test_records_in_order(self):
        audit = AuditLogger(clock=FixedClock())
        vault = make_vault("kv1")
        assignment = make_assignment(ALICE_ID, vault.scope)

        audit.record_operation(resolved(), "Production", vault, assignment, ActionType.ADD, OperationStatus.SUCCESS)
        audit.record_operation(resolved(), "Production", vault, assignment, ActionType.REMOVE_OLD, OperationStatus.ERROR, "boom")

        assert [r.action for r in audit.operations] == [ActionType.ADD, ActionType.REMOVE_OLD]
        assert audit.operations[0].timestamp < audit.operations[1].timestamp
        assert audit.status_counts() == {("Add", "Success"): 1, ("RemoveOld", "Error"): 1}

    def test_snapshot_marks_inherited(self):
        audit = AuditLogger()
        vault = make_vault("kv1")

        direct = audit.record_snapshot(resolved(), "Production", vault, make_assignment(ALICE_ID, vault.scope))
        inherited = audit.record_snapshot(
            resolved(), "Production", vault, make_assignment(ALICE_ID, f"/subscriptions/{SUB_ID}")
        )

        assert direct.inherited is False
        assert inherited.inherited is True
        assert inherited.scope == vault.scope
        assert inherited.assignment_scope == f"/subscriptions/{SUB_ID}"

    def test_row_skip(self):
        audit = AuditLogger()

        record = audit.record_row_skip("ghost", BOB_UPN, "OldPrincipal could not be resolved")

        assert record.action == ActionType.SKIP_ROW
        assert record.status == OperationStatus.ERROR
        assert record.vault == ""

    def test_export_writes_three_files_with_shared_timestamp(self, tmp_path):
        audit = AuditLogger(clock=FixedClock())
        vault = make_vault("kv1")
        assignment = make_assignment(ALICE_ID, vault.scope)
        audit.record_snapshot(resolved(), "Production", vault, assignment)
        audit.record_operation(resolved(), "Production", vault, assignment, ActionType.ADD, OperationStatus.SIMULATED, "WhatIf")
        audit.record_row_skip("ghost", BOB_UPN, "not found")

        output_dir = tmp_path / "out" / "nested"
        paths = audit.export(output_dir)

        assert paths.operations_csv.name == "rbac-migration-operations-20240305-143009.csv"
        assert paths.operations_json.name == "rbac-migration-operations-20240305-143009.json"
        assert paths.snapshot_csv.name == "rbac-migration-snapshot-20240305-143009.csv"

        fieldnames, rows = read_csv(paths.operations_csv)
        assert fieldnames == OperationRecord.FIELDNAMES
        assert [r["Action"] for r in rows] == ["Add", "Skip(Row)"]
        assert rows[0]["Status"] == "Simulated"
        assert rows[0]["Role"] == "Key Vault Secrets User"
        assert rows[0]["NewObjectId"] == BOB_ID

        with open(paths.operations_json, encoding="utf-8") as f:
            data = json.load(f)
        assert isinstance(data, list)
        assert data == rows

        fieldnames, snapshots = read_csv(paths.snapshot_csv)
        assert fieldnames == SnapshotRecord.FIELDNAMES
        assert snapshots[0]["PrincipalId"] == ALICE_ID
        assert snapshots[0]["Inherited"] == "False"

    def test_export_empty_log_writes_headers(self, tmp_path):
        paths = AuditLogger().export(tmp_path)

        fieldnames, rows = read_csv(paths.snapshot_csv)
        assert fieldnames == SnapshotRecord.FIELDNAMES
        assert rows == []
        with open(paths.operations_json, encoding="utf-8") as f:
            assert json.load(f) == []

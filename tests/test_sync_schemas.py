"""Tests for sync engine schemas: operations, results and options."""

from __future__ import annotations

import string

import pytest
from pydantic import TypeAdapter, ValidationError

from src.leadsync.sync.schemas import (
    ConflictStrategy,
    FailedOperation,
    OperationType,
    PendingOperation,
    SyncOptions,
    SyncResult,
    SyncSuccess,
    generate_operation_id,
)


class TestPendingOperation:
    def test_create_needs_no_id(self):
        op = PendingOperation(entity_type="leads", operation="create", data={"companyName": "Acme"})

        assert op.operation == OperationType.CREATE
        assert op.attempts == 0
        assert op.id

    @pytest.mark.parametrize("operation", ["update", "delete"])
    def test_update_and_delete_require_entity_id(self, operation):
        with pytest.raises(ValidationError, match=f"{operation} operations require data with an 'id'"):
            PendingOperation(entity_type="leads", operation=operation, data={"status": "won"})

    def test_unknown_operation_rejected(self):
        with pytest.raises(ValidationError):
            PendingOperation(entity_type="leads", operation="merge", data={"id": 1})

    def test_json_round_trip_preserves_fields(self):
        op = PendingOperation(entity_type="calls", operation="delete", data={"id": 9})

        restored = PendingOperation.model_validate(op.model_dump(mode="json"))

        assert restored == op

    def test_failed_operation_extends_pending(self):
        failed = FailedOperation(
            entity_type="notes", operation="create", data={}, error="500", attempts=1
        )

        assert isinstance(failed, PendingOperation)
        assert failed.error == "500"


def test_operation_ids_are_distinct():
    ids = {generate_operation_id() for _ in range(200)}

    assert len(ids) == 200
    assert all(set(i) <= set(string.digits + string.ascii_lowercase) for i in ids)


class TestSyncResult:
    def test_union_discriminates_on_success(self):
        adapter = TypeAdapter(SyncResult)

        ok = adapter.validate_python(
            {"success": True, "operations": {"sent": 1}, "timestamp": "2026-03-14T09:30:00Z"}
        )
        failed = adapter.validate_python({"success": False, "reason": "offline"})

        assert isinstance(ok, SyncSuccess)
        assert ok.operations.sent == 1
        assert failed.reason == "offline"
        assert failed.error is None

    def test_failure_reason_is_constrained(self):
        adapter = TypeAdapter(SyncResult)

        with pytest.raises(ValidationError):
            adapter.validate_python({"success": False, "reason": "tired"})


class TestSyncOptions:
    def test_defaults(self):
        options = SyncOptions()

        assert options.sync_interval_ms == 60000
        assert options.max_retries == 5
        assert options.entity_types == ["leads", "calls", "notes"]
        assert options.conflict_resolution == ConflictStrategy.SERVER_WINS
        assert options.entity_resources["calls"] == "call"

    def test_defaults_are_not_shared(self):
        first = SyncOptions()
        first.entity_types.append("tasks")

        assert SyncOptions().entity_types == ["leads", "calls", "notes"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"sync_interval_ms": 0},
            {"max_retries": -1},
            {"entity_types": []},
            {"conflict_resolution": "newest"},
            {"max_operation_attempts": 0},
        ],
    )
    def test_invalid_options_rejected(self, overrides):
        with pytest.raises(ValidationError):
            SyncOptions(**overrides)

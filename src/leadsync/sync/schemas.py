"""Schemas for the offline sync engine.

Pending operations, failed-operation records, sync results, status
snapshots, and engine options. Everything that is persisted through the
key-value store serializes with ``model_dump(mode="json")`` and loads back
with ``model_validate``.
"""

from __future__ import annotations

import random
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_ENTITY_TYPES: list[str] = ["leads", "calls", "notes"]

# Entity type -> resource name used for API client method lookup
# (``create_lead``, ``update_call``, ``delete_note``...).
DEFAULT_ENTITY_RESOURCES: dict[str, str] = {
    "leads": "lead",
    "calls": "call",
    "notes": "note",
}

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_operation_id() -> str:
    """Time-based base36 prefix plus a 5-char random suffix.

    Only used for logging and for addressing failed operations;
    never for deduplication.
    """
    suffix = "".join(random.choices(_BASE36, k=5))
    return f"{_to_base36(int(time.time() * 1000))}{suffix}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OperationType(str, Enum):
    """Kind of local mutation waiting to be sent to the server."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ConflictStrategy(str, Enum):
    """Policy applied when a pulled entity collides with a cached one."""

    SERVER_WINS = "server-wins"
    CLIENT_WINS = "client-wins"
    MANUAL = "manual"


class SyncEngineState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    RETRY_SCHEDULED = "retry-scheduled"


class PendingOperation(BaseModel):
    """A local mutation that has not yet been acknowledged by the server.

    Attributes:
        id: Opaque token for logs and failed-operation lookup.
        entity_type: Entity collection, e.g. ``leads``.
        operation: create, update or delete.
        data: Entity payload. Must contain ``id`` for update/delete.
        timestamp: Creation time, diagnostics only. Queue order is
            insertion order.
        attempts: Flush attempts so far (strict requeue mode only).
    """

    id: str = Field(default_factory=generate_operation_id)
    entity_type: str
    operation: OperationType
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)
    attempts: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_entity_id(self) -> PendingOperation:
        """update and delete must carry the id of the entity they target."""
        if self.operation in (OperationType.UPDATE, OperationType.DELETE):
            if self.data.get("id") in (None, ""):
                raise ValueError(
                    f"{self.operation.value} operations require data with an 'id'"
                )
        return self


class FailedOperation(PendingOperation):
    """A pending operation that was dropped from the queue after failing."""

    error: str = ""
    failed_at: datetime = Field(default_factory=_utcnow)


class SyncCounts(BaseModel):
    """Per-cycle counters."""

    sent: int = 0
    received: int = 0
    conflicts: int = 0
    errors: int = 0


class SyncSuccess(BaseModel):
    success: Literal[True] = True
    operations: SyncCounts = Field(default_factory=SyncCounts)
    timestamp: datetime


class SyncFailure(BaseModel):
    """A sync cycle that did not run to completion.

    ``in-progress`` and ``offline`` are backpressure, not errors: nothing
    was touched. ``error`` means an exception escaped the cycle.
    """

    success: Literal[False] = False
    reason: Literal["in-progress", "offline", "error"]
    error: str | None = None


SyncResult = Union[SyncSuccess, SyncFailure]


class SyncStatus(BaseModel):
    """Read-only snapshot for the UI layer."""

    last_sync: datetime | None = None
    pending_operations: int = 0
    in_progress: bool = False
    offline_mode: bool = False
    state: SyncEngineState = SyncEngineState.IDLE
    retry_count: int = 0
    failed_operations: int = 0


class PendingConflict(BaseModel):
    """A server entity that collided with a locally cached version.

    Delivered to the conflict handler under the ``manual`` policy.
    """

    entity_type: str
    entity_id: Any
    local: dict[str, Any]
    remote: dict[str, Any]
    detected_at: datetime = Field(default_factory=_utcnow)


class SyncOptions(BaseModel):
    """Sync engine configuration.

    Attributes:
        sync_interval_ms: Auto-sync period in milliseconds.
        max_retries: Retry budget for cycle-level failures.
        entity_types: Entity collections pulled each cycle.
        conflict_resolution: Merge policy for pulled entities.
        debug: Promote engine trace events from debug to info.
        auto_sync: Start the periodic scheduler from ``init()``.
        requeue_failed: Keep failed operations in the queue instead of
            dropping them after a flush.
        max_operation_attempts: Attempts before a requeued operation is
            moved to the failed-operation ledger.
        timestamp_field: Entity field compared under ``client-wins``.
        entity_resources: Entity type -> API client resource name.
    """

    sync_interval_ms: int = Field(default=60000, gt=0)
    max_retries: int = Field(default=5, ge=0)
    entity_types: list[str] = Field(default_factory=lambda: list(DEFAULT_ENTITY_TYPES))
    conflict_resolution: ConflictStrategy = ConflictStrategy.SERVER_WINS
    debug: bool = False
    auto_sync: bool = False
    requeue_failed: bool = False
    max_operation_attempts: int = Field(default=5, ge=1)
    timestamp_field: str = "updatedAt"
    entity_resources: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ENTITY_RESOURCES)
    )

    @field_validator("entity_types")
    @classmethod
    def entity_types_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("entity_types must not be empty")
        return v

"""Persistent pending-operation queue and failed-operation ledger.

The queue is a single list stored under one key, in insertion order.
Every read-modify-write goes through one asyncio.Lock so an append from
``queue_operation`` can't interleave with the engine rewriting the queue
after a flush.

Storage layout:
    pending_sync_operations -> [PendingOperation, ...]
    failed_operations       -> [FailedOperation, ...]
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

from src.leadsync.sync.adapter import KeyValueStore
from src.leadsync.sync.schemas import FailedOperation, PendingOperation

logger = structlog.get_logger(__name__)

PENDING_SYNC_KEY = "pending_sync_operations"
FAILED_OPERATIONS_KEY = "failed_operations"


class QueueOperationError(RuntimeError):
    """Raised when a mutation could not be persisted to the queue."""


class PendingOperationQueue:
    """Ordered log of local mutations not yet acknowledged by the server.

    Args:
        storage: Key-value store holding the serialized queue.
        key: Storage key for the pending list.
        failed_key: Storage key for the failed-operation ledger.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        key: str = PENDING_SYNC_KEY,
        failed_key: str = FAILED_OPERATIONS_KEY,
    ) -> None:
        self._storage = storage
        self._key = key
        self._failed_key = failed_key
        self._lock = asyncio.Lock()

    # ── Pending queue ───────────────────────────────────────────────────

    async def _read(self) -> list[PendingOperation]:
        raw = await self._storage.get(self._key)
        return [PendingOperation.model_validate(item) for item in raw or []]

    async def _write(self, ops: Iterable[PendingOperation]) -> None:
        await self._storage.set(self._key, [op.model_dump(mode="json") for op in ops])

    async def load(self) -> list[PendingOperation]:
        """Return all pending operations in insertion order."""
        return await self._read()

    async def count(self) -> int:
        return len(await self._read())

    async def append(self, op: PendingOperation) -> int:
        """Append and persist. Returns the new queue length."""
        async with self._lock:
            ops = await self._read()
            ops.append(op)
            await self._write(ops)
        return len(ops)

    async def complete_flush(
        self,
        attempted: Iterable[PendingOperation],
        requeue: Iterable[PendingOperation] = (),
    ) -> int:
        """Drop a flushed snapshot from the queue.

        Operations in ``attempted`` are removed whether or not they reached
        the server. Operations in ``requeue`` go back to the head of the
        queue, ahead of anything appended while the flush was in flight.

        Returns:
            Number of operations left in the queue.
        """
        attempted_ids = {op.id for op in attempted}
        async with self._lock:
            current = await self._read()
            remaining = [op for op in current if op.id not in attempted_ids]
            ops = list(requeue) + remaining
            await self._write(ops)
        return len(ops)

    async def clear(self) -> None:
        async with self._lock:
            await self._write([])

    # ── Failed-operation ledger ─────────────────────────────────────────

    async def _read_failed(self) -> list[FailedOperation]:
        raw = await self._storage.get(self._failed_key)
        return [FailedOperation.model_validate(item) for item in raw or []]

    async def _write_failed(self, ops: Iterable[FailedOperation]) -> None:
        await self._storage.set(
            self._failed_key, [op.model_dump(mode="json") for op in ops]
        )

    async def load_failed(self) -> list[FailedOperation]:
        return await self._read_failed()

    async def record_failed(self, failed: list[FailedOperation]) -> None:
        """Append dropped operations to the failed-operation ledger."""
        if not failed:
            return
        async with self._lock:
            ops = await self._read_failed()
            ops.extend(failed)
            await self._write_failed(ops)

        logger.warning(
            "sync.operations_dropped",
            count=len(failed),
            operation_ids=[op.id for op in failed],
        )

    async def restore_failed(self, operation_id: str) -> PendingOperation | None:
        """Move a failed operation back to the tail of the pending queue.

        The attempt counter is reset. Returns the restored operation, or
        None if no failed operation has that id.
        """
        async with self._lock:
            failed = await self._read_failed()
            found = next((op for op in failed if op.id == operation_id), None)
            if found is None:
                return None

            restored = PendingOperation.model_validate(
                found.model_dump(exclude={"error", "failed_at"}) | {"attempts": 0}
            )
            await self._write_failed([op for op in failed if op.id != operation_id])
            ops = await self._read()
            ops.append(restored)
            await self._write(ops)
        return restored

    async def clear_failed(self) -> None:
        async with self._lock:
            await self._write_failed([])

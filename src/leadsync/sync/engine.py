"""Offline-first sync engine for leads, calls and notes.

Coordinates the pending-operation queue, the remote API, and the local
entity cache. Each ``sync()`` cycle runs four phases:

1. Flush: dispatch every queued mutation in insertion order. Per-operation
   failures are counted and the batch continues. The attempted snapshot
   is then removed from the queue whether or not each operation reached
   the server (failed ones land in the failed-operation ledger, or are
   requeued when ``requeue_failed`` is on).
2. Pull: fetch entities changed since the last watermark, per entity type.
3. Merge: apply the conflict policy and write the cache per entity type.
4. Commit: advance the watermark to the cycle start time.

State machine: IDLE -> SYNCING -> IDLE on success, or -> RETRY_SCHEDULED
on a cycle-level exception while retry budget remains (backoff 2^n
seconds). Only one cycle runs at a time; a concurrent ``sync()`` is
rejected with ``reason="in-progress"`` rather than queued.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from src.leadsync.sync.adapter import ConnectivityOracle, KeyValueStore, RemoteApiClient
from src.leadsync.sync.cache import EntityCache
from src.leadsync.sync.conflict import ConflictHandler, ConflictResolver
from src.leadsync.sync.dispatch import OperationDispatcher
from src.leadsync.sync.queue import PendingOperationQueue, QueueOperationError
from src.leadsync.sync.scheduling import PeriodicTask, RetryScheduler, backoff_delay
from src.leadsync.sync.schemas import (
    FailedOperation,
    OperationType,
    PendingOperation,
    SyncCounts,
    SyncEngineState,
    SyncFailure,
    SyncOptions,
    SyncResult,
    SyncStatus,
    SyncSuccess,
)

logger = structlog.get_logger(__name__)

LAST_SYNC_KEY = "last_sync_timestamp"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    """Orchestrates queued mutations, delta pulls, and cache merges.

    Args:
        api_client: Remote CRM API client.
        storage: Local key-value store for the queue, watermark and cache.
        options: Engine configuration. Defaults to ``SyncOptions()``.
        connectivity: Oracle polled before any network work. Without one
            the engine is online unless offline mode is set.
        conflict_handler: Async callback for the ``manual`` policy.
        clock: Returns the current UTC time. Injected for tests.
    """

    def __init__(
        self,
        api_client: RemoteApiClient,
        storage: KeyValueStore,
        options: SyncOptions | None = None,
        connectivity: ConnectivityOracle | None = None,
        conflict_handler: ConflictHandler | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._options = options or SyncOptions()
        self._storage = storage
        self._connectivity = connectivity
        self._clock = clock or _utcnow

        self._queue = PendingOperationQueue(storage)
        self._cache = EntityCache(storage)
        self._dispatcher = OperationDispatcher(api_client, self._options.entity_resources)
        self._resolver = ConflictResolver(
            strategy=self._options.conflict_resolution,
            timestamp_field=self._options.timestamp_field,
            handler=conflict_handler,
        )
        self._auto_sync = PeriodicTask(
            self.sync,
            interval=self._options.sync_interval_ms / 1000,
            name="leadsync.auto_sync",
        )
        self._retry = RetryScheduler(self.sync, name="leadsync.retry")

        self._in_progress = False
        self._offline_mode = False
        self._retry_count = 0
        self._last_known_online = True
        self._background: set[asyncio.Task] = set()

    # ── Properties ──────────────────────────────────────────────────────

    @property
    def options(self) -> SyncOptions:
        return self._options

    @property
    def queue(self) -> PendingOperationQueue:
        return self._queue

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def state(self) -> SyncEngineState:
        if self._in_progress:
            return SyncEngineState.SYNCING
        if self._retry.pending:
            return SyncEngineState.RETRY_SCHEDULED
        return SyncEngineState.IDLE

    @property
    def auto_sync_running(self) -> bool:
        return self._auto_sync.running

    def _trace(self, event: str, **kw: Any) -> None:
        """Engine lifecycle trace; promoted to info when ``debug`` is on."""
        if self._options.debug:
            logger.info(event, **kw)
        else:
            logger.debug(event, **kw)

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def init(self) -> SyncResult | None:
        """Report pending work, start auto-sync if configured, run a first sync.

        Initialization problems are logged, never raised, so a broken store
        or API can't prevent the host app from starting.
        """
        try:
            pending = await self._queue.count()
            if pending:
                logger.info("sync.pending_operations_found", count=pending)

            if self._options.auto_sync:
                self.start_auto_sync()

            return await self.sync()
        except Exception as exc:
            logger.error("sync.init_failed", error=str(exc), exc_info=True)
            return None

    def start_auto_sync(self) -> None:
        """Start the periodic sync timer, replacing any running one."""
        self._auto_sync.start()
        self._trace("sync.auto_sync_started", interval_ms=self._options.sync_interval_ms)

    def stop_auto_sync(self) -> None:
        """Stop the periodic timer and cancel any pending backoff retry.

        A cycle already started by either timer runs to completion; use
        ``join()`` or ``close()`` to wait for it.
        """
        was_running = self._auto_sync.running
        self._auto_sync.cancel()
        self._retry.cancel()
        if was_running:
            self._trace("sync.auto_sync_stopped")

    async def join(self) -> None:
        """Wait for background syncs, including ones fired by the timers."""
        while self._background or self._auto_sync.busy or self._retry.busy:
            await asyncio.gather(
                *list(self._background),
                self._auto_sync.wait(),
                self._retry.wait(),
                return_exceptions=True,
            )

    async def close(self) -> None:
        """Stop timers, cancel retries, and wait for in-flight syncs to finish."""
        self.stop_auto_sync()
        await self.join()

    # ── Connectivity ────────────────────────────────────────────────────

    def set_offline_mode(self, offline: bool) -> None:
        """Force the engine offline (or release it) regardless of the oracle."""
        self._offline_mode = offline
        self._trace("sync.offline_mode_changed", offline=offline)

    async def is_online(self) -> bool:
        if self._offline_mode:
            return False
        if self._connectivity is None:
            return True
        return await self._connectivity.is_online()

    def notify_connectivity_change(self, online: bool) -> bool:
        """Host callback for network changes.

        A transition from offline to online triggers a background sync.
        Returns True if a sync was started.
        """
        was_online = self._last_known_online
        self._last_known_online = online
        if online and not was_online and not self._offline_mode and not self._in_progress:
            logger.info("sync.reconnected")
            self._spawn_sync()
            return True
        return False

    # ── Sync cycle ──────────────────────────────────────────────────────

    async def sync(self) -> SyncResult:
        """Run one sync cycle.

        Returns:
            SyncSuccess with per-cycle counts, or SyncFailure with reason
            ``in-progress``, ``offline`` or ``error``.
        """
        if self._in_progress:
            self._trace("sync.skipped_in_progress")
            return SyncFailure(reason="in-progress")

        self._in_progress = True
        try:
            if not await self.is_online():
                self._trace("sync.skipped_offline")
                return SyncFailure(reason="offline")

            result = await self._run_cycle()
        except Exception as exc:
            return self._handle_cycle_failure(exc)
        finally:
            self._in_progress = False

        self._retry_count = 0
        self._retry.cancel()
        logger.info(
            "sync.cycle_complete",
            sent=result.operations.sent,
            received=result.operations.received,
            conflicts=result.operations.conflicts,
            errors=result.operations.errors,
        )
        return result

    async def _run_cycle(self) -> SyncSuccess:
        last_sync = await self.get_last_sync_timestamp()
        started_at = self._clock()
        counts = SyncCounts()

        await self._flush(counts)

        for entity_type in self._options.entity_types:
            try:
                updates = await self._dispatcher.fetch_updates(entity_type, last_sync)
                if updates:
                    cached = await self._cache.get(entity_type)
                    merged = await self._resolver.merge(entity_type, cached, updates)
                    await self._cache.replace(entity_type, merged.entities)
                    counts.received += len(updates)
                    counts.conflicts += merged.conflicts
                    self._trace(
                        "sync.entities_merged",
                        entity_type=entity_type,
                        received=len(updates),
                        inserted=merged.inserted,
                        replaced=merged.replaced,
                        kept_local=merged.kept_local,
                    )
            except Exception as exc:
                counts.errors += 1
                logger.warning("sync.pull_failed", entity_type=entity_type, error=str(exc))

        await self._storage.set(LAST_SYNC_KEY, started_at.isoformat())
        return SyncSuccess(operations=counts, timestamp=started_at)

    async def _flush(self, counts: SyncCounts) -> None:
        pending = await self._queue.load()
        if not pending:
            return

        self._trace("sync.flush_started", count=len(pending))
        requeue: list[PendingOperation] = []
        dropped: list[FailedOperation] = []

        for op in pending:
            try:
                await self._dispatcher.dispatch(op)
                counts.sent += 1
            except Exception as exc:
                counts.errors += 1
                attempts = op.attempts + 1
                logger.warning(
                    "sync.operation_failed",
                    operation_id=op.id,
                    entity_type=op.entity_type,
                    operation=op.operation.value,
                    attempts=attempts,
                    error=str(exc),
                )
                if self._options.requeue_failed and attempts < self._options.max_operation_attempts:
                    requeue.append(op.model_copy(update={"attempts": attempts}))
                else:
                    dropped.append(
                        FailedOperation.model_validate(
                            op.model_dump() | {"attempts": attempts, "error": str(exc)}
                        )
                    )

        await self._queue.complete_flush(pending, requeue)
        await self._queue.record_failed(dropped)

    def _handle_cycle_failure(self, exc: Exception) -> SyncFailure:
        self._retry_count += 1
        logger.error(
            "sync.cycle_failed",
            error=str(exc),
            retry_count=self._retry_count,
            exc_info=True,
        )

        if self._retry_count < self._options.max_retries:
            delay = backoff_delay(self._retry_count)
            self._retry.schedule(delay)
            logger.info("sync.retry_scheduled", delay_seconds=delay, attempt=self._retry_count)
        else:
            logger.warning("sync.retries_exhausted", max_retries=self._options.max_retries)
            # Next externally triggered sync starts with a fresh budget
            self._retry_count = 0

        return SyncFailure(reason="error", error=str(exc))

    # ── Queueing ────────────────────────────────────────────────────────

    async def queue_operation(
        self,
        entity_type: str,
        operation: OperationType | str,
        data: dict[str, Any],
    ) -> PendingOperation:
        """Queue a local mutation and kick off a background sync when online.

        The entity type is not checked here; an unknown one fails at
        dispatch time and is counted as a flush error.

        Raises:
            pydantic.ValidationError: Bad operation type, or update/delete
                without an ``id`` in data.
            QueueOperationError: The queue could not be persisted.
        """
        op = PendingOperation(entity_type=entity_type, operation=operation, data=dict(data))

        try:
            length = await self._queue.append(op)
        except Exception as exc:
            logger.error("sync.queue_failed", entity_type=entity_type, error=str(exc))
            raise QueueOperationError(f"Failed to queue operation: {exc}") from exc

        self._trace(
            "sync.operation_queued",
            operation_id=op.id,
            entity_type=entity_type,
            operation=op.operation.value,
            queue_length=length,
        )

        await self._sync_in_background()
        return op

    async def _sync_in_background(self) -> None:
        """Start a background sync if idle and online.

        The mutation is already persisted, so a failing connectivity check
        is logged and the next timer or reconnect picks the work up.
        """
        if self._in_progress:
            return
        try:
            online = await self.is_online()
        except Exception as exc:
            logger.warning("sync.connectivity_check_failed", error=str(exc))
            return
        if online:
            self._spawn_sync()

    def _spawn_sync(self) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.sync(), name="leadsync.sync")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ── Failed operations ───────────────────────────────────────────────

    async def get_failed_operations(self) -> list[FailedOperation]:
        return await self._queue.load_failed()

    async def retry_failed_operation(self, operation_id: str) -> bool:
        """Put a failed operation back in the queue and sync if online.

        Returns False if no failed operation has that id.
        """
        restored = await self._queue.restore_failed(operation_id)
        if restored is None:
            return False

        logger.info("sync.failed_operation_requeued", operation_id=operation_id)
        await self._sync_in_background()
        return True

    async def clear_failed_operations(self) -> None:
        await self._queue.clear_failed()

    # ── State & cache ───────────────────────────────────────────────────

    async def get_last_sync_timestamp(self) -> datetime | None:
        raw = await self._storage.get(LAST_SYNC_KEY)
        if not raw:
            return None
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))

    async def get_cached_entities(self, entity_type: str) -> list[dict[str, Any]]:
        """Read path for the UI: the cached entities of one type."""
        return await self._cache.get(entity_type)

    async def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            last_sync=await self.get_last_sync_timestamp(),
            pending_operations=await self._queue.count(),
            in_progress=self._in_progress,
            offline_mode=self._offline_mode,
            state=self.state,
            retry_count=self._retry_count,
            failed_operations=len(await self._queue.load_failed()),
        )

    async def clear_sync_data(self) -> None:
        """Empty the pending queue and forget the watermark (next pull is full)."""
        await self._queue.clear()
        await self._storage.remove(LAST_SYNC_KEY)
        self._trace("sync.data_cleared")

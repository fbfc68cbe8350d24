"""Offline-first synchronization for CRM leads, calls and notes.

Provides:
- SyncEngine: queue/flush/pull/merge orchestration with backoff retry
- PendingOperationQueue: persisted mutation log and failed-operation ledger
- ConflictResolver: server-wins, client-wins and manual merge policies
- OperationDispatcher: routes queued operations to the remote API client
- KeyValueStore / RemoteApiClient / ConnectivityOracle / CredentialProvider:
  injected collaborator interfaces

Quick start::

    engine = SyncEngine(api_client, storage, SyncOptions(auto_sync=True))
    await engine.init()
    await engine.queue_operation("leads", "create", {"companyName": "Acme"})
    ...
    await engine.close()
"""

from src.leadsync.sync.adapter import (
    ConnectivityOracle,
    CredentialProvider,
    KeyValueStore,
    RemoteApiClient,
)
from src.leadsync.sync.conflict import ConflictResolver, MergeResult
from src.leadsync.sync.connectivity import HttpConnectivityProbe, StaticConnectivity
from src.leadsync.sync.dispatch import OperationDispatcher, UnknownEntityTypeError
from src.leadsync.sync.engine import SyncEngine
from src.leadsync.sync.queue import PendingOperationQueue, QueueOperationError
from src.leadsync.sync.schemas import (
    ConflictStrategy,
    FailedOperation,
    OperationType,
    PendingConflict,
    PendingOperation,
    SyncCounts,
    SyncEngineState,
    SyncFailure,
    SyncOptions,
    SyncResult,
    SyncStatus,
    SyncSuccess,
)

__all__ = [
    "ConflictResolver",
    "ConflictStrategy",
    "ConnectivityOracle",
    "CredentialProvider",
    "FailedOperation",
    "HttpConnectivityProbe",
    "KeyValueStore",
    "MergeResult",
    "OperationDispatcher",
    "OperationType",
    "PendingConflict",
    "PendingOperation",
    "PendingOperationQueue",
    "QueueOperationError",
    "RemoteApiClient",
    "StaticConnectivity",
    "SyncCounts",
    "SyncEngine",
    "SyncEngineState",
    "SyncFailure",
    "SyncOptions",
    "SyncResult",
    "SyncStatus",
    "SyncSuccess",
    "UnknownEntityTypeError",
]

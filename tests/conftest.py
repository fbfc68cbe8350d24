"""Shared fixtures for sync engine tests.

Provides:
- Mock remote API client (AsyncMock spec'd on RemoteApiClient)
- In-memory key-value store
- Static connectivity oracle
- Fixed clock (`fixed_now`) and an engine factory wired to all of the above
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from src.leadsync.storage.memory import InMemoryKeyValueStore
from src.leadsync.sync.adapter import RemoteApiClient
from src.leadsync.sync.connectivity import StaticConnectivity
from src.leadsync.sync.engine import SyncEngine
from src.leadsync.sync.schemas import SyncOptions

FIXED_NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def api_client() -> AsyncMock:
    """Remote API mock; every delta query returns no changes by default."""
    client = AsyncMock(spec=RemoteApiClient)
    client.make_request.return_value = []
    return client


@pytest.fixture
def storage() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(namespace="test")


@pytest.fixture
def connectivity() -> StaticConnectivity:
    return StaticConnectivity(online=True)


@pytest.fixture
def make_engine(api_client, storage, connectivity) -> Callable[..., SyncEngine]:
    """Factory building a SyncEngine with test doubles and a fixed clock."""

    def _make(**option_overrides: Any) -> SyncEngine:
        conflict_handler = option_overrides.pop("conflict_handler", None)
        return SyncEngine(
            api_client=api_client,
            storage=storage,
            options=SyncOptions(**option_overrides),
            connectivity=connectivity,
            conflict_handler=conflict_handler,
            clock=lambda: FIXED_NOW,
        )

    return _make


"""Collaborator interfaces consumed by the SyncEngine.

The engine never reaches for globals: the remote API, the local store,
connectivity, and credentials are all injected through these ABCs so
tests can swap in fakes and each platform can plug in its own backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class KeyValueStore(ABC):
    """Namespaced async key-value store backing the queue, watermark and cache.

    Values are JSON-compatible (dicts, lists, strings, numbers). A missing
    key reads as ``None``. Each call is a single write from the engine's
    point of view.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if the key is absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a JSON-compatible value under key."""
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete key. Removing a missing key is a no-op."""
        ...


class RemoteApiClient(ABC):
    """Per-entity CRUD against the CRM REST API.

    Network and HTTP failures surface as raised exceptions. Timeouts are
    the client's responsibility, the engine imposes none.

    Methods:
        create_lead / create_call / create_note: Create from payload.
        update_lead / update_call / update_note: Update by id with the
            payload minus its ``id`` key.
        delete_lead / delete_call / delete_note: Delete by id.
        make_request: Generic GET used for ``?since=`` delta queries.
    """

    @abstractmethod
    async def create_lead(self, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_lead(self, entity_id: Any, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def delete_lead(self, entity_id: Any) -> Any: ...

    @abstractmethod
    async def create_call(self, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_call(self, entity_id: Any, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def delete_call(self, entity_id: Any) -> Any: ...

    @abstractmethod
    async def create_note(self, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def update_note(self, entity_id: Any, data: dict[str, Any]) -> Any: ...

    @abstractmethod
    async def delete_note(self, entity_id: Any) -> Any: ...

    @abstractmethod
    async def make_request(self, path: str) -> Any:
        """GET path and return the decoded JSON body."""
        ...


class ConnectivityOracle(ABC):
    """Answers whether network operations should be attempted right now."""

    @abstractmethod
    async def is_online(self) -> bool: ...


class CredentialProvider(ABC):
    """Source of bearer credentials for the remote API.

    Token storage and refresh live behind this interface; the sync layer
    only asks for a currently valid token.
    """

    @abstractmethod
    async def get_token(self) -> str | None:
        """Return a valid bearer token, or None for anonymous requests."""
        ...

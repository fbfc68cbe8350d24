"""Route queued operations and delta queries to the remote API client."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from urllib.parse import quote

from src.leadsync.sync.adapter import RemoteApiClient
from src.leadsync.sync.schemas import OperationType, PendingOperation


class UnknownEntityTypeError(ValueError):
    """Raised when an operation targets an entity type with no API resource."""

    def __init__(self, entity_type: str) -> None:
        self.entity_type = entity_type
        super().__init__(f"Unknown entity type: {entity_type}")


class OperationDispatcher:
    """Maps ``(entity_type, operation)`` onto API client methods.

    ``leads``/``create`` resolves to ``api_client.create_lead(data)``,
    ``calls``/``update`` to ``api_client.update_call(id, data_without_id)``
    and so on. The entity type -> resource name table is configurable so
    new collections can be added without touching the engine.

    Args:
        api_client: Remote API client.
        entity_resources: Entity type -> resource name.
    """

    def __init__(self, api_client: RemoteApiClient, entity_resources: dict[str, str]) -> None:
        self._api = api_client
        self._resources = dict(entity_resources)

    def _method(self, entity_type: str, operation: OperationType):
        resource = self._resources.get(entity_type)
        if resource is None:
            raise UnknownEntityTypeError(entity_type)
        method = getattr(self._api, f"{operation.value}_{resource}", None)
        if method is None:
            raise UnknownEntityTypeError(entity_type)
        return method

    async def dispatch(self, op: PendingOperation) -> Any:
        """Send one pending operation to the server. Raises on failure."""
        operation = op.operation
        method = self._method(op.entity_type, operation)

        if operation == OperationType.CREATE:
            return await method(op.data)
        if operation == OperationType.UPDATE:
            update_data = {k: v for k, v in op.data.items() if k != "id"}
            return await method(op.data["id"], update_data)
        return await method(op.data["id"])

    async def fetch_updates(
        self, entity_type: str, since: datetime | None
    ) -> list[dict[str, Any]]:
        """Fetch entities of one type changed since the watermark.

        An absent watermark sends an empty ``since`` (full pull). The
        response may be a bare JSON array or an envelope with a ``data``
        array.
        """
        since_param = quote(since.isoformat()) if since else ""
        response = await self._api.make_request(f"/api/{entity_type}?since={since_param}")

        if response is None:
            return []
        if isinstance(response, dict):
            response = response.get("data") or []
        if not isinstance(response, list):
            raise TypeError(
                f"Expected a list of {entity_type}, got {type(response).__name__}"
            )
        return response

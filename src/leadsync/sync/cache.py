"""Local entity cache, one list per entity type.

The UI reads these lists directly between syncs. Only the engine's merge
phase writes them, and always as a whole list per entity type.
"""

from __future__ import annotations

from typing import Any

from src.leadsync.sync.adapter import KeyValueStore


class EntityCache:
    """Cached server entities keyed by entity type (``leads``, ``calls``...)."""

    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage

    async def get(self, entity_type: str) -> list[dict[str, Any]]:
        return list(await self._storage.get(entity_type) or [])

    async def replace(self, entity_type: str, entities: list[dict[str, Any]]) -> None:
        await self._storage.set(entity_type, entities)

"""Merge pulled server entities into the local cache.

Policies:
- server-wins: the incoming server entity always replaces the cached one.
- client-wins: the server entity replaces the cached one only when its
  timestamp is strictly newer; otherwise the local version stays.
- manual: each collision becomes a PendingConflict handed to an async
  conflict handler, which returns the version to keep. With no handler
  registered this falls back to server-wins.

Entities with an id not yet in the cache are always inserted.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from src.leadsync.sync.schemas import ConflictStrategy, PendingConflict

logger = structlog.get_logger(__name__)

ConflictHandler = Callable[[PendingConflict], Awaitable["dict[str, Any] | None"]]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an entity timestamp for comparison.

    Accepts datetimes, ISO-8601 strings (``Z`` suffix allowed) and epoch
    milliseconds. Anything missing or unparseable compares as the epoch.
    """
    if value is None or value == "":
        return _EPOCH
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return _EPOCH
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _EPOCH
    else:
        return _EPOCH

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class MergeResult:
    """Outcome of merging one entity type's updates."""

    entities: list[dict[str, Any]]
    inserted: int = 0
    replaced: int = 0
    kept_local: int = 0
    conflicts: int = 0
    conflict_ids: list[Any] = field(default_factory=list)


class ConflictResolver:
    """Apply a conflict policy while merging server updates into a cache.

    Args:
        strategy: Merge policy.
        timestamp_field: Entity field compared under client-wins.
        handler: Async callback resolving manual conflicts.
    """

    def __init__(
        self,
        strategy: ConflictStrategy = ConflictStrategy.SERVER_WINS,
        timestamp_field: str = "updatedAt",
        handler: ConflictHandler | None = None,
    ) -> None:
        self._strategy = ConflictStrategy(strategy)
        self._timestamp_field = timestamp_field
        self._handler = handler

    @property
    def strategy(self) -> ConflictStrategy:
        return self._strategy

    async def merge(
        self,
        entity_type: str,
        cached: list[dict[str, Any]],
        updates: list[dict[str, Any]],
    ) -> MergeResult:
        """Merge server updates into a copy of the cached list.

        Cache order is preserved and new entities are appended. The input
        list is never mutated, so readers holding the old list see a
        consistent snapshot.
        """
        merged = list(cached)
        index = {item.get("id"): pos for pos, item in enumerate(merged)}
        result = MergeResult(entities=merged)

        for incoming in updates:
            entity_id = incoming.get("id")
            pos = index.get(entity_id)

            if pos is None:
                index[entity_id] = len(merged)
                merged.append(incoming)
                result.inserted += 1
                continue

            local = merged[pos]
            if local != incoming:
                result.conflicts += 1
                result.conflict_ids.append(entity_id)

            winner = await self._resolve(entity_type, local, incoming)
            if winner is incoming:
                result.replaced += 1
            else:
                result.kept_local += 1
            merged[pos] = winner

        return result

    async def _resolve(
        self,
        entity_type: str,
        local: dict[str, Any],
        remote: dict[str, Any],
    ) -> dict[str, Any]:
        if self._strategy == ConflictStrategy.CLIENT_WINS:
            remote_ts = parse_timestamp(remote.get(self._timestamp_field))
            local_ts = parse_timestamp(local.get(self._timestamp_field))
            return remote if remote_ts > local_ts else local

        if self._strategy == ConflictStrategy.MANUAL and local != remote:
            if self._handler is None:
                logger.warning(
                    "sync.manual_conflict_unhandled",
                    entity_type=entity_type,
                    entity_id=remote.get("id"),
                )
                return remote

            conflict = PendingConflict(
                entity_type=entity_type,
                entity_id=remote.get("id"),
                local=local,
                remote=remote,
            )
            chosen = await self._handler(conflict)
            if chosen is None:
                return remote
            # Keep identity semantics for the counters in merge()
            if chosen == remote:
                return remote
            if chosen == local:
                return local
            return chosen

        return remote

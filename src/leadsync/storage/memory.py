"""In-process key-value store.

Values are stored JSON-encoded, so what comes back from ``get`` is always
a fresh copy and anything that isn't JSON-serializable is rejected at
``set`` time, same as the persistent backends.
"""

from __future__ import annotations

import json
import time
from typing import Any

from src.leadsync.sync.adapter import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """Namespaced dict-backed store with optional per-key expiry.

    Args:
        namespace: Key prefix, e.g. ``crm`` -> ``crm:pending_sync_operations``.
    """

    def __init__(self, namespace: str = "crm") -> None:
        self._namespace = namespace
        self._data: dict[str, str] = {}
        self._expires: dict[str, float] = {}

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        ns_key = self._key(key)
        expires_at = self._expires.get(ns_key)
        if expires_at is not None and expires_at <= time.monotonic():
            self._data.pop(ns_key, None)
            self._expires.pop(ns_key, None)
            return None

        raw = self._data.get(ns_key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ex: float | None = None) -> None:
        """Store value, optionally expiring after ``ex`` seconds."""
        ns_key = self._key(key)
        self._data[ns_key] = json.dumps(value)
        if ex:
            self._expires[ns_key] = time.monotonic() + ex
        else:
            self._expires.pop(ns_key, None)

    async def remove(self, key: str) -> None:
        ns_key = self._key(key)
        self._data.pop(ns_key, None)
        self._expires.pop(ns_key, None)

    def keys(self) -> list[str]:
        """Un-namespaced keys currently held (expired entries included)."""
        prefix = f"{self._namespace}:"
        return [k[len(prefix):] for k in self._data if k.startswith(prefix)]

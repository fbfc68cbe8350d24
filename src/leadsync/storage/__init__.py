"""Key-value store backends for the sync engine.

- InMemoryKeyValueStore: process-local, for tests and ephemeral clients
- RedisKeyValueStore: persistent, namespaced, shared across processes
"""

from src.leadsync.storage.memory import InMemoryKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
]


def __getattr__(name: str):  # noqa: N807
    """Lazy-load the Redis backend so redis stays off the import path until used."""
    if name == "RedisKeyValueStore":
        from src.leadsync.storage.redis import RedisKeyValueStore

        return RedisKeyValueStore
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)

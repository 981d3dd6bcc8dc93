"""
Storage and transport adapters for the alert engine.

Modules:
    memory_store: InMemoryAlertStore, dict-backed reference store
    postgres_store: PostgresAlertStore, asyncpg-backed store
    redis_bus: RedisBus pub/sub transport and RedisDigestChannel

Example:
    >>> from alert_engine.storage import InMemoryAlertStore, RedisBus
"""

from alert_engine.storage.memory_store import InMemoryAlertStore
from alert_engine.storage.postgres_store import PostgresAlertStore, build_where
from alert_engine.storage.redis_bus import (
    BusConnectionError,
    BusError,
    BusOperationError,
    RedisBus,
    RedisDigestChannel,
)

__all__ = [
    "InMemoryAlertStore",
    "PostgresAlertStore",
    "build_where",
    "RedisBus",
    "RedisDigestChannel",
    "BusError",
    "BusConnectionError",
    "BusOperationError",
]

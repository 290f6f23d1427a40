"""Storage layer for ScriptVoid jobs - MongoDB access and in-process caching.

This package provides:
- Logical collection names and the motor-backed document store
- Client lifecycle (open/close, health check, indexes)
- A process-wide TTL cache map
"""

from .cache import TTLCache, shared_cache
from .collections import (
    CODES,
    LEADERBOARD,
    ONLINE,
    SCRIPTS,
    USERS,
    DocumentCollection,
    DocumentStore,
    MongoStore,
    MotorCollection,
)
from .connection import check_db_connection, create_client, ensure_indexes, open_store

__all__ = [
    "TTLCache",
    "shared_cache",
    "CODES",
    "LEADERBOARD",
    "ONLINE",
    "SCRIPTS",
    "USERS",
    "DocumentCollection",
    "DocumentStore",
    "MongoStore",
    "MotorCollection",
    "check_db_connection",
    "create_client",
    "ensure_indexes",
    "open_store",
]

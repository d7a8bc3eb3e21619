"""Storage: adapter protocol, bundled adapters, and the storage manager."""

from entityforge.storage.errors import (
    DuplicateKeyError,
    RecordNotFoundError,
    StorageError,
    StoreNotFoundError,
)
from entityforge.storage.manager import ADAPTERS, StorageManager, UpdateResult
from entityforge.storage.memory import MemoryAdapter
from entityforge.storage.protocol import Record, StorageAdapter
from entityforge.storage.sql import SqlAdapter

__all__ = [
    "StorageAdapter",
    "Record",
    "MemoryAdapter",
    "SqlAdapter",
    "StorageManager",
    "UpdateResult",
    "ADAPTERS",
    # Errors
    "StorageError",
    "StoreNotFoundError",
    "DuplicateKeyError",
    "RecordNotFoundError",
]

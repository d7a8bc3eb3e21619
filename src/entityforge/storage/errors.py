"""Storage errors raised by adapters.

Adapters translate backend exceptions into these; the storage manager catches
StorageError at its boundary, logs it, and resolves the operation as a no-op.
"""


class StorageError(Exception):
    """Base class of adapter failures."""


class StoreNotFoundError(StorageError):
    """Raised when a database or an entity type's store does not exist."""


class DuplicateKeyError(StorageError):
    """Raised when a bulk add contains an identity already stored."""


class RecordNotFoundError(StorageError):
    """Raised when a record to update does not exist."""

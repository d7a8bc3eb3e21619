"""entityforge: declarative entity modeling, validation, and persistence.

Usage:
    from entityforge import Entity, Property, StorageManager, entity_type

    @entity_type
    class Publisher(Entity):
        name = Property("NonEmptyString", id=True)

    @entity_type(display_attribute="title")
    class Book(Entity):
        isbn = Property("NonEmptyString", id=True, pattern=r"^\\d{9}(\\d|X)$")
        title = Property("NonEmptyString", min=2, max=50)
        publisher = Property(Publisher, optional=True)

    manager = StorageManager("memory", "library")
    await manager.create_empty_db()
    await manager.add(Book, {"isbn": "006251587X", "title": "Weaving the Web"})
    books = await manager.retrieve_all(Book)
"""

__version__ = "0.1.0"

# Core primitives
from entityforge.core import (
    UNBOUNDED,
    CardinalityConstraintViolation,
    CheckResult,
    ConstraintViolation,
    Datatype,
    Entity,
    EntityTypeRegistry,
    Enumeration,
    FrozenValueConstraintViolation,
    IntervalConstraintViolation,
    MandatoryValueConstraintViolation,
    NoConstraintViolation,
    PatternConstraintViolation,
    Property,
    RangeConstraintViolation,
    ReferentialIntegrityConstraintViolation,
    StringLengthConstraintViolation,
    UniquenessConstraintViolation,
    ViolationKind,
    check,
    constraint_checking,
    entity_type,
    get_registry,
    list_of,
    record_of,
    referential_integrity,
)

# Configuration
from entityforge.config import StorageSettings

# Storage
from entityforge.storage import (
    MemoryAdapter,
    SqlAdapter,
    StorageAdapter,
    StorageError,
    StorageManager,
    UpdateResult,
)

__all__ = [
    "__version__",
    # Catalog
    "Datatype",
    "Enumeration",
    "list_of",
    "record_of",
    # Constraints
    "ViolationKind",
    "ConstraintViolation",
    "NoConstraintViolation",
    "MandatoryValueConstraintViolation",
    "RangeConstraintViolation",
    "StringLengthConstraintViolation",
    "IntervalConstraintViolation",
    "PatternConstraintViolation",
    "CardinalityConstraintViolation",
    "UniquenessConstraintViolation",
    "ReferentialIntegrityConstraintViolation",
    "FrozenValueConstraintViolation",
    "CheckResult",
    "check",
    "constraint_checking",
    "referential_integrity",
    # Entity
    "Entity",
    "EntityTypeRegistry",
    "Property",
    "UNBOUNDED",
    "entity_type",
    "get_registry",
    # Config
    "StorageSettings",
    # Storage
    "StorageAdapter",
    "MemoryAdapter",
    "SqlAdapter",
    "StorageManager",
    "UpdateResult",
    "StorageError",
]

"""Core functionalities: the type catalog, constraint checking, entity types, and identity.

Architecture Note:
    core/ holds the declarative entity model and its validation. The only
    stateful pieces are the entity type registry with its instance cache and
    auto-id allocator, which the storage manager writes.
    For persistence, see storage/.
"""

from entityforge.core.constraint import (
    CardinalityConstraintViolation,
    CheckResult,
    ConstraintViolation,
    FrozenValueConstraintViolation,
    IntervalConstraintViolation,
    MandatoryValueConstraintViolation,
    NoConstraintViolation,
    PatternConstraintViolation,
    RangeConstraintViolation,
    ReferentialIntegrityConstraintViolation,
    StringLengthConstraintViolation,
    UniquenessConstraintViolation,
    ViolationKind,
    check,
    check_entity_table,
    constraint_checking,
    referential_integrity,
)
from entityforge.core.datatypes import (
    Datatype,
    Enumeration,
    list_of,
    record_of,
)
from entityforge.core.entity import (
    UNBOUNDED,
    Entity,
    EntityTypeRegistry,
    Property,
    entity_type,
    get_registry,
)
from entityforge.core.identity import AutoIdAllocator, IdentityKey, IdValue

__all__ = [
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
    "check_entity_table",
    "constraint_checking",
    "referential_integrity",
    # Entity
    "Entity",
    "EntityTypeRegistry",
    "Property",
    "UNBOUNDED",
    "entity_type",
    "get_registry",
    # Identity
    "AutoIdAllocator",
    "IdentityKey",
    "IdValue",
]

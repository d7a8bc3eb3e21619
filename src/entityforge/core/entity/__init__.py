"""Entity types: base type, property descriptors, registry, instance cache, and records."""

from entityforge.core.entity.cache import InstanceCache
from entityforge.core.entity.core import (
    Entity,
    EntityTypeRegistry,
    UnknownEntityTypeError,
    entity_type,
    get_registry,
)
from entityforge.core.entity.models import UNBOUNDED, EntityTypeMeta, Property
from entityforge.core.entity.records import (
    class_to_table_name,
    obj_to_record,
    record_to_obj,
    reference_identities,
    reference_identity,
    to_json_compatible,
)

__all__ = [
    "Entity",
    "EntityTypeMeta",
    "EntityTypeRegistry",
    "InstanceCache",
    "Property",
    "UNBOUNDED",
    "UnknownEntityTypeError",
    "entity_type",
    "get_registry",
    # Records
    "class_to_table_name",
    "obj_to_record",
    "record_to_obj",
    "reference_identities",
    "reference_identity",
    "to_json_compatible",
]

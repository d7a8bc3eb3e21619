"""Entity base type, entity type registry, and the @entity_type decorator.

Usage:
    @entity_type
    class Publisher(Entity):
        name = Property("NonEmptyString", id=True)
        published_books = Property("Book", max_card=UNBOUNDED, inverse_of="publisher")

    @entity_type(display_attribute="title")
    class Book(Entity):
        isbn = Property("NonEmptyString", id=True, pattern=r"^\\d{9}(\\d|X)$")
        title = Property("NonEmptyString", min=2, max=50)
        publisher = Property("Publisher", optional=True)

    book = Book(isbn="006251587X", title="Weaving the Web")
    book.year = 1222  # raises IntervalConstraintViolation
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, overload

from entityforge.core.constraint import ConstraintViolation, MandatoryValueConstraintViolation
from entityforge.core.datatypes import Datatype, EntityRef, stringify_value
from entityforge.core.entity.cache import InstanceCache
from entityforge.core.entity.models import EntityTypeMeta, Property
from entityforge.core.entity.records import class_to_table_name, obj_to_record, record_to_obj
from entityforge.core.identity import AUTO_ID_START, AutoIdAllocator, IdValue

logger = logging.getLogger(__name__)


class UnknownEntityTypeError(KeyError):
    """Raised when an entity type name is not registered."""


class EntityTypeRegistry:
    """Process-local registry of entity types by name.

    Owns the instance cache and the auto-id allocator shared by all entity
    types registered with it.

    Args:
        auto_id_start: First value of fresh auto-id counters.
    """

    def __init__(self, auto_id_start: int = AUTO_ID_START) -> None:
        self._by_name: dict[str, type[Entity]] = {}
        self._meta: dict[type[Entity], EntityTypeMeta] = {}
        self.cache = InstanceCache()
        self.allocator = AutoIdAllocator(auto_id_start)

    def register(self, cls: type[Entity], meta: EntityTypeMeta) -> EntityTypeMeta:
        """Register an entity type under its name.

        Args:
            cls: Entity class to register.
            meta: Metadata computed at setup.

        Returns:
            The registered metadata.

        Raises:
            RuntimeError: If another class is already registered under the name.
        """
        existing = self._by_name.get(meta.type_name)
        if existing is not None and existing is not cls:
            raise RuntimeError(
                f"Entity type name collision: {cls.__qualname__} and {existing.__qualname__} "
                f"are both named {meta.type_name}"
            )
        self._by_name[meta.type_name] = cls
        self._meta[cls] = meta
        return meta

    def get_type(self, type_name: str) -> type[Entity]:
        """Get an entity type by name.

        Raises:
            UnknownEntityTypeError: If no type is registered under type_name.
        """
        try:
            return self._by_name[type_name]
        except KeyError:
            raise UnknownEntityTypeError(f"No entity type named {type_name!r} is registered") from None

    def get_meta(self, cls: type[Entity]) -> EntityTypeMeta | None:
        """Get metadata for a registered entity type, or None."""
        return self._meta.get(cls)

    def is_registered(self, cls: type) -> bool:
        return cls in self._meta

    def types(self) -> list[type[Entity]]:
        """All registered entity types, in registration order."""
        return list(self._by_name.values())

    def clear(self) -> None:
        """Forget all types, cached instances, and auto-id counters."""
        self._by_name.clear()
        self._meta.clear()
        self.cache.clear()
        self.allocator.reset()


# Module-level registry instance
_registry = EntityTypeRegistry()


def get_registry() -> EntityTypeRegistry:
    """Access the global entity type registry.

    Returns:
        The process-local EntityTypeRegistry instance.
    """
    return _registry


class Entity:
    """Base type of all entity types.

    Subclasses declare Property class attributes and are set up with
    @entity_type. Construction assigns the identity first (explicit value,
    then the ``get_auto_id`` hook, then the per-type counter), then initial
    values, then the caller's slots; every assignment is validated.

    Raises:
        TypeError: If the type is not set up, or a slot name is not declared.
        ConstraintViolation: If a slot value violates its declaration.
    """

    properties: ClassVar[dict[str, Property]]
    id_attribute: ClassVar[str]
    display_attribute: ClassVar[str | None]
    reference_properties: ClassVar[tuple[str, ...]]
    inverse_reference_properties: ClassVar[tuple[str, ...]]
    __entity_meta__: ClassVar[EntityTypeMeta]
    __entity_registry__: ClassVar[EntityTypeRegistry]

    def __init__(self, **slots: Any) -> None:
        cls = type(self)
        if "__entity_meta__" not in cls.__dict__:
            raise TypeError(
                f"Entity type {cls.__name__} is not set up. Did you forget @entity_type decorator?"
            )
        unknown = [name for name in slots if name not in cls.properties]
        if unknown:
            raise TypeError(f"{cls.__name__} has no properties named {', '.join(unknown)}")
        self._slots: dict[str, Any] = {}

        allocator = cls.__entity_registry__.allocator
        id_attr = cls.id_attribute
        identity = slots.pop(id_attr, None)
        if identity is not None and identity != "":
            setattr(self, id_attr, identity)
            if isinstance(self.identity, int) and not isinstance(self.identity, bool):
                allocator.observe(cls, self.identity)
        elif cls.properties[id_attr].is_auto_id or callable(getattr(cls, "get_auto_id", None)):
            setattr(self, id_attr, allocator.assign(cls))
        else:
            raise MandatoryValueConstraintViolation(f"A value for {cls.__name__}::{id_attr} is required!")

        for name, prop in cls.properties.items():
            if prop.has_initial_value and not prop.id:
                setattr(self, name, prop.initial_value_for(self))
        for name, value in slots.items():
            setattr(self, name, value)
        for name, prop in cls.properties.items():
            if name not in self._slots and not prop.is_inverse_reference:
                setattr(self, name, None)

    @property
    def identity(self) -> IdValue:
        """The identity value of this instance."""
        return self._slots.get(type(self).id_attribute)  # type: ignore[return-value]

    @property
    def display_value(self) -> str:
        """Human-readable rendering: the display attribute's value, else the identity."""
        display_attribute = type(self).display_attribute
        if display_attribute is None:
            return str(self.identity)
        return self.get_value_as_string(display_attribute)

    def get_value_as_string(self, name: str) -> str:
        """Render a property value as a (form field) string.

        Collections are joined with ", ", enumeration codes become labels,
        referenced entities their display values.
        """
        value = self._slots.get(name)
        if value is None:
            return ""
        return stringify_value(value, type(self).properties[name].range)

    def to_record(self) -> dict[str, Any]:
        """Convert this instance to its storage record."""
        return obj_to_record(self, type(self))

    @classmethod
    def from_record[E: Entity](cls: type[E], record: Mapping[str, Any]) -> E | None:
        """Construct an instance from a record, or None if the record is invalid."""
        try:
            return record_to_obj(record, cls)
        except ConstraintViolation as e:
            logger.warning("Cannot create %s from record %r: %s", cls.__name__, record, e)
            return None

    def __str__(self) -> str:
        cls = type(self)
        parts = [
            f"{cls.properties[name].label or name}: {json.dumps(value, default=str)}"
            for name, value in self.to_record().items()
        ]
        return f"{cls.__name__}:{self.identity}{{ {', '.join(parts)} }}"

    def __repr__(self) -> str:
        fields = ", ".join(f"{name}={value!r}" for name, value in self.to_record().items())
        return f"{type(self).__name__}({fields})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity) or type(other) is not type(self):
            return NotImplemented
        return self.to_record() == other.to_record()

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.identity))


_RESERVED = frozenset(
    {
        "properties",
        "id_attribute",
        "display_attribute",
        "reference_properties",
        "inverse_reference_properties",
        "_slots",
    }
)


def _collect_properties(cls: type) -> dict[str, Property]:
    """Collect Property declarations of cls and its bases, base declarations first."""
    properties: dict[str, Property] = {}
    for klass in reversed(cls.__mro__):
        for name, attr in vars(klass).items():
            if isinstance(attr, Property):
                properties[name] = attr
    return properties


def _setup(cls: type[Entity], display_attribute: str | None, registry: EntityTypeRegistry) -> None:
    properties = _collect_properties(cls)
    reserved = [name for name in properties if name in _RESERVED or name in vars(Entity)]
    if reserved:
        raise TypeError(f"{cls.__name__} declares reserved property names: {', '.join(reserved)}")

    id_attrs = [name for name, prop in properties.items() if prop.id]
    if len(id_attrs) > 1:
        raise TypeError(f"{cls.__name__} declares more than one identity property: {', '.join(id_attrs)}")
    if not id_attrs:
        if "id" in properties:
            raise TypeError(f"{cls.__name__} declares a property 'id' that is not its identity property")
        id_prop = Property(Datatype.AUTO_ID_NUMBER, id=True, label="ID")
        id_prop.__set_name__(cls, "id")
        cls.id = id_prop  # type: ignore[attr-defined]
        properties = {"id": id_prop, **properties}
        id_attrs = ["id"]
    id_attr = id_attrs[0]
    id_prop = properties[id_attr]
    if id_prop.is_multi_valued or id_prop.optional or isinstance(id_prop.range, EntityRef):
        raise TypeError(f"Identity property {cls.__name__}::{id_attr} must be a mandatory single value")
    if display_attribute is not None and display_attribute not in properties:
        raise ValueError(f"Display attribute {display_attribute!r} is not a property of {cls.__name__}")

    meta = EntityTypeMeta(
        type_name=cls.__name__,
        id_attribute=id_attr,
        display_attribute=display_attribute,
        reference_properties=tuple(n for n, p in properties.items() if p.is_reference),
        inverse_reference_properties=tuple(n for n, p in properties.items() if p.is_inverse_reference),
        table_name=class_to_table_name(cls.__name__),
    )
    cls.properties = properties
    cls.id_attribute = meta.id_attribute
    cls.display_attribute = meta.display_attribute
    cls.reference_properties = meta.reference_properties
    cls.inverse_reference_properties = meta.inverse_reference_properties
    cls.__entity_meta__ = meta
    cls.__entity_registry__ = registry
    registry.register(cls, meta)


@overload
def entity_type[T: Entity](cls: type[T]) -> type[T]: ...


@overload
def entity_type[T: Entity](
    cls: None = None,
    *,
    display_attribute: str | None = None,
    registry: EntityTypeRegistry | None = None,
) -> Callable[[type[T]], type[T]]: ...


def entity_type[T: Entity](
    cls: type[T] | None = None,
    *,
    display_attribute: str | None = None,
    registry: EntityTypeRegistry | None = None,
) -> type[T] | Callable[[type[T]], type[T]]:
    """Set up an Entity subclass as an entity type and register it.

    Supports three forms:
        @entity_type                               # bare decorator
        @entity_type()                             # parenthesized, no args
        @entity_type(display_attribute="title")    # factory with args

    Args:
        cls: The class to set up, or None if called with arguments.
        display_attribute: Property rendering instances for humans.
        registry: Registry to register with. Defaults to the global registry.

    Returns:
        Decorated class or decorator function.

    Raises:
        TypeError: If the class does not subclass Entity, or its identity
            declaration is invalid.
        ValueError: If display_attribute is not a declared property.
    """

    def decorator(c: type[T]) -> type[T]:
        if not (isinstance(c, type) and issubclass(c, Entity)):
            raise TypeError(
                f"Entity type {getattr(c, '__name__', c)!r} must subclass Entity. "
                f"Did you forget to inherit from Entity?"
            )
        _setup(c, display_attribute, registry if registry is not None else _registry)
        return c

    if cls is None:
        return decorator
    return decorator(cls)

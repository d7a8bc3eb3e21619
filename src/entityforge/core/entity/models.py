"""Entity models: the Property descriptor and per-type metadata.

A Property is a declarative property descriptor and, as a Python data
descriptor, the validated accessor of the property on instances.

Usage:
    @entity_type(display_attribute="title")
    class Book(Entity):
        isbn = Property("NonEmptyString", id=True, pattern=r"^\\d{9}(\\d|X)$")
        title = Property("NonEmptyString", min=2, max=50)
        authors = Property("Author", max_card=UNBOUNDED)
"""

from __future__ import annotations

import copy
import inspect
import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from entityforge.core.constraint import (
    FrozenValueConstraintViolation,
    check,
    is_constraint_checking,
)
from entityforge.core.datatypes import Datatype, EntityRef, PrimitiveRange, Range, to_range

if TYPE_CHECKING:
    from entityforge.core.entity.core import Entity

UNBOUNDED = math.inf
"""Maximum cardinality of an unbounded collection-valued property."""

_MISSING: Any = object()


class Property:
    """Declaration and validated accessor of one entity property.

    Args:
        range: The value range: a Datatype or its name, an Enumeration, an
            entity type or its name, a list/record range, or a list of literals.
        optional: If True, the property may be unset.
        min_card: Minimum collection size. Defaults to 0 if optional, else 1.
        max_card: Maximum collection size; values > 1 make the property
            collection-valued. May be UNBOUNDED.
        min: Lower bound of a numeric value or of a string's length. May be a
            callable evaluated at check time.
        max: Upper bound, like min.
        pattern: Regular expression a string value must contain a match of.
        pattern_message: Violation message used when pattern does not match.
        id: Marks the identity property.
        inverse_of: Name of the reference property this derived property inverts.
        is_component: Marks a part-whole (composition) reference.
        is_ordered: Keep a multi-valued reference as an ordered list rather
            than an identity -> entity map.
        initial_value: Default assigned at construction. A callable taking no
            argument is called; one taking one argument receives the instance.
        label: Human-readable name.

    Raises:
        TypeError: If range is not admissible.
        ValueError: If the cardinality bounds are inconsistent.
    """

    def __init__(
        self,
        range: Any,  # noqa: A002 - declaration keyword
        *,
        optional: bool = False,
        min_card: int | None = None,
        max_card: float = 1,
        min: Any = None,  # noqa: A002
        max: Any = None,  # noqa: A002
        pattern: str | re.Pattern[str] | None = None,
        pattern_message: str | None = None,
        id: bool = False,  # noqa: A002
        inverse_of: str | None = None,
        is_component: bool = False,
        is_ordered: bool = False,
        initial_value: Any = _MISSING,
        label: str | None = None,
    ):
        if max_card < 1:
            raise ValueError(f"max_card must be at least 1, got {max_card}")
        if min_card is not None and not 0 <= min_card <= max_card:
            raise ValueError(f"min_card must be between 0 and max_card, got {min_card}")
        if inverse_of is not None and not isinstance(to_range(range), EntityRef):
            raise TypeError(f"inverse_of requires an entity type range, got {range!r}")
        self.range: Range = to_range(range)
        self.optional = optional
        self.min_card = min_card
        self.max_card = max_card
        self.min = min
        self.max = max
        self.pattern = pattern
        self.pattern_message = pattern_message
        self.id = id
        self.inverse_of = inverse_of
        self.is_component = is_component
        self.is_ordered = is_ordered
        self.initial_value = initial_value
        self.label = label
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"Property({self.name!r}, range={self.range})"

    @property
    def is_multi_valued(self) -> bool:
        return self.max_card > 1

    @property
    def is_reference(self) -> bool:
        """True for a stored reference to another entity type."""
        return isinstance(self.range, EntityRef) and self.inverse_of is None

    @property
    def is_inverse_reference(self) -> bool:
        """True for a derived reference populated from its inverse."""
        return isinstance(self.range, EntityRef) and self.inverse_of is not None

    @property
    def has_initial_value(self) -> bool:
        return self.initial_value is not _MISSING

    @property
    def is_auto_id(self) -> bool:
        """True if the range is the auto-generated identity datatype."""
        return self.range == PrimitiveRange(Datatype.AUTO_ID_NUMBER)

    def initial_value_for(self, obj: Entity) -> Any:
        """Compute the initial value of this property for a new instance."""
        value = self.initial_value
        if not callable(value):
            return copy.deepcopy(value)
        if len(inspect.signature(value).parameters) == 0:
            return value()
        return value(obj)

    def __get__(self, obj: Entity | None, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return obj._slots.get(self.name)

    def __set__(self, obj: Entity, value: Any) -> None:
        if is_constraint_checking():
            value = check(self.name, self, value, type(obj).__entity_registry__).unwrap()
        if self.id:
            current = obj._slots.get(self.name)
            if current is not None and current != value:
                raise FrozenValueConstraintViolation(
                    f"The value of {type(obj).__name__}::{self.name} must not be changed!"
                )
        self.store(obj, value)

    def store(self, obj: Entity, value: Any) -> None:
        """Write a slot without validation."""
        obj._slots[self.name] = value


@dataclass(frozen=True, slots=True)
class EntityTypeMeta:
    """Metadata computed once when an entity type is set up.

    Attributes:
        type_name: Name of the entity type.
        id_attribute: Name of the identity property.
        display_attribute: Property rendering an instance for humans, if any.
        reference_properties: Properties referencing other entity types.
        inverse_reference_properties: Derived inverse reference properties.
        table_name: Name of the type's store.
    """

    type_name: str
    id_attribute: str
    display_attribute: str | None
    reference_properties: tuple[str, ...]
    inverse_reference_properties: tuple[str, ...]
    table_name: str


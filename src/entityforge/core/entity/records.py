"""Conversion between entity instances and storage records.

A record is the flat, JSON-compatible form of an instance: references are
reduced to identities, dates to ISO-8601 strings, and nested list/record
values to plain lists and dicts. Inverse reference properties are derived
and never stored.

Usage:
    record = obj_to_record(book, Book)
    # {"isbn": "006251587X", "title": "Weaving the Web", "publisher": "Harper"}
    book = record_to_obj(record, Book)
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from typing import TYPE_CHECKING, Any

from entityforge.core.datatypes import EntityRef
from entityforge.core.identity import IdValue

if TYPE_CHECKING:
    from entityforge.core.entity.core import Entity
    from entityforge.core.entity.models import Property


def class_to_table_name(class_name: str) -> str:
    """Derive a store name from an entity type name.

    Upper camel case becomes plural snake case, lower camel case becomes
    plural upper snake case. A trailing "y" pluralizes to "ies".

    Examples:
        >>> class_to_table_name("Book")
        'books'
        >>> class_to_table_name("Category")
        'categories'
        >>> class_to_table_name("BookCopy")
        'book_copies'
    """
    if not class_name:
        raise ValueError("An entity type name must not be empty")
    if class_name[0].isupper():
        snake = re.sub(r"(?<!^)(?=[A-Z])", "_", class_name).lower()
        return snake[:-1] + "ies" if snake.endswith("y") else snake + "s"
    snake = re.sub(r"(?=[A-Z])", "_", class_name).upper()
    return snake[:-1] + "IES" if snake.endswith("Y") else snake + "S"


def to_json_compatible(value: Any) -> Any:
    """Reduce dates to ISO strings and tuples to lists, recursively."""
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list | tuple):
        return [to_json_compatible(v) for v in value]
    if isinstance(value, Mapping):
        return {k: to_json_compatible(v) for k, v in value.items()}
    return value


def reference_identity(value: Any) -> IdValue:
    """Reduce an entity reference to its identity. Identities pass through."""
    if isinstance(value, str | int):
        return value
    return value.identity  # type: ignore[no-any-return]


def reference_identities(value: Any) -> list[IdValue]:
    """Reduce a multi-valued reference (map, list, or single value) to an identity list."""
    if isinstance(value, Mapping):
        items = list(value.values())
    elif isinstance(value, list | tuple):
        items = list(value)
    else:
        items = [value]
    return [reference_identity(v) for v in items]


def value_to_storage(prop: Property, value: Any) -> Any:
    """Convert one slot value to its record form."""
    if isinstance(prop.range, EntityRef):
        if prop.is_multi_valued:
            return reference_identities(value)
        return reference_identity(value)
    return to_json_compatible(value)


def obj_to_record(source: Entity | Mapping[str, Any], entity_cls: type[Entity]) -> dict[str, Any]:
    """Convert an entity instance or a slot map to a record.

    Unset (None or empty string) slots and inverse reference properties are
    omitted.

    Args:
        source: An instance of entity_cls, or a map of slot values.
        entity_cls: The entity type.

    Returns:
        The record.

    Raises:
        TypeError: If source is neither an entity nor a mapping.
    """
    slots = getattr(source, "_slots", source)
    if not isinstance(slots, Mapping):
        raise TypeError(f"Expected a {entity_cls.__name__} or a slot map, got {type(source).__name__}")
    record: dict[str, Any] = {}
    for name, prop in entity_cls.properties.items():
        if prop.is_inverse_reference:
            continue
        value = slots.get(name)
        if value is None or (isinstance(value, str) and value == ""):
            continue
        record[name] = value_to_storage(prop, value)
    return record


def record_to_obj[E: Entity](record: Mapping[str, Any], entity_cls: type[E]) -> E:
    """Construct an instance from a record.

    Construction validates every value, coercing ISO date strings back to
    dates and resolving identities against the instance cache. Record fields
    that are not stored properties of entity_cls are ignored.

    Raises:
        ConstraintViolation: If a value violates its property's constraints.
    """
    stored = {
        name: value
        for name, value in record.items()
        if name in entity_cls.properties and not entity_cls.properties[name].is_inverse_reference
    }
    return entity_cls(**stored)

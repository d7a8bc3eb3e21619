"""The check algorithm and validation switches.

check() is the single validation algorithm used by property setters, entity
construction, and the storage manager. It runs in a fixed order:

    1. mandatory value
    2. collection normalization (+ fail-fast cardinality pre-check)
    3. string -> value coercion
    4. range check per element (recursive over list/record ranges)
    5. string length, pattern, and interval checks
    6. cardinality check

Usage:
    result = check("year", Book.properties["year"], "2022")
    result.value  # 2022

    with referential_integrity(False):
        book = Book(isbn="006251587X", title="Weaving the Web", publisher="Unknown")
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Protocol

from entityforge.core.constraint.models import (
    CardinalityConstraintViolation,
    CheckResult,
    ConstraintViolation,
    IntervalConstraintViolation,
    MandatoryValueConstraintViolation,
    PatternConstraintViolation,
    RangeConstraintViolation,
    ReferentialIntegrityConstraintViolation,
    StringLengthConstraintViolation,
)
from entityforge.core.datatypes.core import (
    DATATYPES,
    coerce,
    is_number_type,
    is_string_type,
)
from entityforge.core.datatypes.models import (
    EntityRef,
    EnumRange,
    ListRange,
    LiteralRange,
    PrimitiveRange,
    Range,
    RecordRange,
)

if TYPE_CHECKING:
    from entityforge.core.entity.core import EntityTypeRegistry

_constraint_checking: ContextVar[bool] = ContextVar("constraint_checking", default=True)
_referential_integrity: ContextVar[bool] = ContextVar("referential_integrity", default=True)


class Declaration(Protocol):
    """What check() reads from a property declaration."""

    range: Range
    optional: bool
    min_card: int | None
    max_card: float
    min: Any
    max: Any
    pattern: str | re.Pattern[str] | None
    pattern_message: str | None
    inverse_of: str | None
    is_ordered: bool


# Validation switches


def is_constraint_checking() -> bool:
    """Check if property setters validate assigned values."""
    return _constraint_checking.get()


def set_constraint_checking(enabled: bool) -> None:
    _constraint_checking.set(enabled)


def is_referential_integrity_checking() -> bool:
    """Check if unresolvable entity references are reported as violations."""
    return _referential_integrity.get()


def set_referential_integrity(enabled: bool) -> None:
    _referential_integrity.set(enabled)


@contextmanager
def constraint_checking(enabled: bool) -> Iterator[None]:
    """Enable or disable setter validation within a block."""
    token = _constraint_checking.set(enabled)
    try:
        yield
    finally:
        _constraint_checking.reset(token)


@contextmanager
def referential_integrity(enabled: bool) -> Iterator[None]:
    """Enable or disable referential integrity checking within a block."""
    token = _referential_integrity.set(enabled)
    try:
        yield
    finally:
        _referential_integrity.reset(token)


# Check


def _resolve(bound: Any) -> Any:
    return bound() if callable(bound) else bound


def lower_cardinality(decl: Declaration) -> int:
    """Effective minimum cardinality: min_card, else 0 if optional, else 1."""
    if decl.min_card is not None:
        return decl.min_card
    return 0 if decl.optional else 1


def _default_registry() -> EntityTypeRegistry:
    from entityforge.core.entity.core import get_registry

    return get_registry()


def check(
    name: str,
    decl: Declaration,
    value: Any,
    registry: EntityTypeRegistry | None = None,
) -> CheckResult:
    """Check a value against a property declaration.

    Args:
        name: Property name, used in violation messages.
        decl: The property declaration.
        value: The value to check; strings are coerced to the range's type.
        registry: Entity type registry used to resolve entity references.
            Defaults to the global registry.

    Returns:
        CheckResult carrying the canonicalized value, or the violations found.
        Multi-valued reference properties canonicalize to a dict identity ->
        entity unless declared is_ordered.
    """
    rng = decl.range
    max_card = decl.max_card
    min_card = lower_cardinality(decl)
    multi = max_card > 1

    # 1. mandatory value
    if value is None or (isinstance(value, str) and value == ""):
        if decl.optional or (multi and min_card == 0) or decl.inverse_of:
            return CheckResult.success(None)
        return CheckResult.failure(MandatoryValueConstraintViolation(f"A value for {name} is required!"))

    # 2. collection normalization
    if multi:
        if isinstance(value, list | tuple):
            values = list(value)
        elif isinstance(value, Mapping) and isinstance(rng, EntityRef):
            if decl.is_ordered:
                return CheckResult.failure(
                    RangeConstraintViolation(
                        f"The ordered-collection-valued attribute {name} must not have a map value "
                        f"like {value!r}."
                    )
                )
            values = list(value.values())
        else:
            return CheckResult.failure(
                RangeConstraintViolation(
                    f"The value {value!r} does not represent a collection value for attribute {name}."
                )
            )
        if len(values) > max_card:
            return CheckResult.failure(_too_many(name, max_card))
    else:
        values = [value]

    # 3. + 4. coercion and range check
    if isinstance(rng, EntityRef):
        if registry is None:
            registry = _default_registry()
        checked, violations = _check_references(name, rng, values, registry)
        if violations:
            return CheckResult(violations=violations)
    else:
        checked = []
        for v in values:
            converted, violation = _check_element(name, rng, v)
            if violation is not None:
                return CheckResult.failure(violation)
            checked.append(converted)

    # 5. secondary checks
    violations = _check_bounds(name, decl, checked)

    # 6. cardinality
    if multi:
        if min_card > 0 and len(checked) < min_card:
            violations.append(
                CardinalityConstraintViolation(
                    f"A set of {min_card} or more values is required for {name}. "
                    f"Invalid value: {value!r}"
                )
            )
        if len(checked) > max_card:
            violations.append(_too_many(name, max_card))
    if violations:
        return CheckResult(violations=violations)

    if not multi:
        return CheckResult.success(checked[0])
    if isinstance(rng, EntityRef) and not decl.is_ordered:
        return CheckResult.success({_identity_of(v): v for v in checked})
    return CheckResult.success(checked)


def _too_many(name: str, max_card: float) -> CardinalityConstraintViolation:
    return CardinalityConstraintViolation(
        f"A collection value for {name} must not have more than {max_card:g} members!"
    )


def _identity_of(v: Any) -> Any:
    identity = getattr(v, "identity", None)
    return v if identity is None else identity


def _check_element(name: str, rng: Range, v: Any) -> tuple[Any, ConstraintViolation | None]:
    """Coerce and range-check one value against a non-reference range."""
    match rng:
        case PrimitiveRange(datatype=datatype):
            v = coerce(rng, v)
            spec = DATATYPES[datatype]
            if not spec.condition(v):
                return v, RangeConstraintViolation(f"The value {v!r} of attribute {name} is not {spec.phrase}!")
            return v, None
        case EnumRange(enumeration=enumeration):
            v = coerce(rng, v)
            if not enumeration.is_valid_index(v):
                return v, RangeConstraintViolation(
                    f"The value {v!r} is not an admissible enumeration integer for {name}"
                )
            return v, None
        case LiteralRange(literals=literals):
            if v not in literals:
                return v, RangeConstraintViolation(
                    f"The {name} value {v!r} is not in ad-hoc enumeration {rng}"
                )
            return v, None
        case ListRange(item=item):
            if not isinstance(v, list | tuple):
                return v, RangeConstraintViolation(f"The {name} value {v!r} is not of type {rng}")
            items = []
            for x in v:
                converted, violation = _check_element(name, item, x)
                if violation is not None:
                    return v, violation
                items.append(converted)
            return items, None
        case RecordRange():
            if not isinstance(v, Mapping):
                return v, RangeConstraintViolation(f"The {name} value {v!r} is not of type {rng}")
            field_map = rng.field_map
            fields = {}
            for key, x in v.items():
                if key not in field_map:
                    return v, RangeConstraintViolation(
                        f"The {name} record field {key!r} is not a field of {rng}"
                    )
                if x is None:
                    fields[key] = None
                    continue
                converted, violation = _check_element(f"{name}.{key}", field_map[key], x)
                if violation is not None:
                    return v, violation
                fields[key] = converted
            return fields, None
    raise TypeError(f"Nonadmissible range {rng!r} for {name}")


def _check_references(
    name: str,
    rng: EntityRef,
    values: list[Any],
    registry: EntityTypeRegistry,
) -> tuple[list[Any], list[ConstraintViolation]]:
    """Resolve identifiers to cached instances and check object references."""
    range_cls = registry.get_type(rng.type_name)
    id_range = range_cls.properties[range_cls.id_attribute].range
    checked: list[Any] = []
    violations: list[ConstraintViolation] = []
    for v in values:
        if isinstance(v, str | int) and not isinstance(v, bool):
            ref_id = coerce(id_range, v)
            target = registry.cache.get(range_cls, ref_id)
            if target is not None:
                checked.append(target)
                continue
            checked.append(ref_id)
            if is_referential_integrity_checking():
                violations.append(
                    ReferentialIntegrityConstraintViolation(
                        f'The value {v!r} of attribute "{name}" is not an ID of any {rng} object!',
                        culprit=v,
                    )
                )
        elif isinstance(v, range_cls):
            checked.append(v)
        else:
            violations.append(
                ReferentialIntegrityConstraintViolation(
                    f"The object {v!r} referenced by attribute {name} is not from its range {rng}",
                    culprit=v,
                )
            )
    return checked, violations


def _check_bounds(name: str, decl: Declaration, values: list[Any]) -> list[ConstraintViolation]:
    violations: list[ConstraintViolation] = []
    rng = decl.range
    if is_string_type(rng):
        lower, upper = _resolve(decl.min), _resolve(decl.max)
        for v in values:
            if lower is not None and len(v) < lower:
                violations.append(
                    StringLengthConstraintViolation(f"The length of {name} must not be smaller than {lower}")
                )
            elif upper is not None and len(v) > upper:
                violations.append(
                    StringLengthConstraintViolation(f"The length of {name} must not be greater than {upper}")
                )
            elif decl.pattern is not None and not re.search(decl.pattern, v):
                violations.append(
                    PatternConstraintViolation(
                        decl.pattern_message or f"{v!r} does not comply with the pattern defined for {name}"
                    )
                )
    elif is_number_type(rng):
        lower, upper = _resolve(decl.min), _resolve(decl.max)
        for v in values:
            if lower is not None and v < lower:
                violations.append(IntervalConstraintViolation(f"{name} must not be smaller than {lower}"))
            elif upper is not None and v > upper:
                violations.append(IntervalConstraintViolation(f"{name} must not be greater than {upper}"))
    return violations


def check_entity_table(
    records: Mapping[Any, Mapping[str, Any]],
    declarations: Mapping[str, Declaration] | None = None,
    registry: EntityTypeRegistry | None = None,
) -> list[ConstraintViolation | ValueError]:
    """Check a table of records keyed by identity.

    Every record must contain every column: the declared property names, or
    the keys of the first record when no declarations are given. With
    declarations, each column value is also checked. Checking stops at the
    first record missing a column.

    Args:
        records: Identity -> record map.
        declarations: Optional property name -> declaration map.
        registry: Entity type registry used to resolve references.

    Returns:
        The problems found; an empty list if the table is valid.
    """
    problems: list[ConstraintViolation | ValueError] = []
    if not records:
        return problems
    if declarations is not None:
        columns = [c for c, d in declarations.items() if not d.inverse_of]
    else:
        columns = list(next(iter(records.values())).keys())
    for record_id, record in records.items():
        for column in columns:
            if column not in record:
                problems.append(ValueError(f"The attribute {column} is missing in record with ID {record_id}."))
                return problems
            if declarations is not None:
                problems.extend(check(column, declarations[column], record[column], registry).violations)
    return problems


"""Type catalog: primitive datatype conditions, range construction, and value coercion.

Usage:
    rng = to_range("NonNegativeInteger")
    coerce(rng, "42")             # 42
    is_of_type(42, Datatype.YEAR)  # False

    PhoneNumbers = list_of(record_of(type="String", number="Integer"))
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from entityforge.core.datatypes.models import (
    MAX_NESTING_DEPTH,
    RANGE_TYPES,
    Datatype,
    DatatypeSpec,
    EntityRef,
    Enumeration,
    EnumRange,
    ListRange,
    LiteralRange,
    PrimitiveRange,
    Range,
    RecordRange,
)

DEFAULT_DECIMAL_PLACES = 2

PATTERNS = {
    "ID": re.compile(r"^([a-zA-Z0-9][a-zA-Z0-9_\-]+[a-zA-Z0-9])$"),
    # WHATWG HTML5 email address
    "EMAIL": re.compile(
        r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
        r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
    ),
    "URL": re.compile(
        r"^(?:https?|ftp)://(?:\S+(?::\S*)?@)?(?:[a-z0-9¡-￿-]+\.)*"
        r"[a-z0-9¡-￿-]+(?:\.[a-z¡-￿]{2,})?(?::\d{2,5})?(?:[/?#]\S*)?$",
        re.IGNORECASE,
    ),
    "INT_PHONE_NO": re.compile(r"^\+(?:[0-9] ?){6,14}[0-9]$"),
}

_INTEGER_STRING = re.compile(r"^-?[0-9]+$")
_DATE_STRING = re.compile(r"^\d{4}-(0\d|1[0-2])-([0-2]\d|3[0-1])")


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _is_number(v: Any) -> bool:
    return isinstance(v, int | float) and not isinstance(v, bool) and not math.isnan(v)


def _is_text(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


DATATYPES: dict[Datatype, DatatypeSpec] = {
    Datatype.STRING: DatatypeSpec("a string", lambda v: isinstance(v, str)),
    Datatype.TEXT: DatatypeSpec("a text", lambda v: isinstance(v, str)),
    Datatype.NON_EMPTY_STRING: DatatypeSpec("a non-empty string", _is_text),
    Datatype.EMAIL: DatatypeSpec(
        "an email address", lambda v: _is_text(v) and bool(PATTERNS["EMAIL"].match(v))
    ),
    Datatype.URL: DatatypeSpec("a URL", lambda v: _is_text(v) and bool(PATTERNS["URL"].match(v))),
    Datatype.PHONE_NUMBER: DatatypeSpec(
        "an international phone number",
        lambda v: _is_text(v) and bool(PATTERNS["INT_PHONE_NO"].match(v)),
    ),
    Datatype.IDENTIFIER: DatatypeSpec(
        "an identifier", lambda v: _is_text(v) and bool(PATTERNS["ID"].match(v))
    ),
    Datatype.INTEGER: DatatypeSpec("an integer", _is_int),
    Datatype.NON_NEGATIVE_INTEGER: DatatypeSpec(
        "a non-negative integer", lambda v: _is_int(v) and v >= 0
    ),
    Datatype.POSITIVE_INTEGER: DatatypeSpec("a positive integer", lambda v: _is_int(v) and v > 0),
    Datatype.AUTO_ID_NUMBER: DatatypeSpec(
        "a positive integer as required for an auto-ID", lambda v: _is_int(v) and v > 0
    ),
    Datatype.YEAR: DatatypeSpec(
        "a year number (between 1000 and 9999)", lambda v: _is_int(v) and 1000 <= v <= 9999
    ),
    Datatype.NUMBER: DatatypeSpec("a number", _is_number),
    Datatype.DECIMAL: DatatypeSpec("a decimal number", _is_number),
    Datatype.PERCENT: DatatypeSpec("a percentage number", _is_number),
    Datatype.PROBABILITY: DatatypeSpec(
        "a probability number in [0,1]", lambda v: _is_number(v) and 0 <= v <= 1
    ),
    Datatype.CLOSED_UNIT_INTERVAL: DatatypeSpec(
        "a number in the closed unit interval [0,1]", lambda v: _is_number(v) and 0 <= v <= 1
    ),
    Datatype.OPEN_UNIT_INTERVAL: DatatypeSpec(
        "a number in the open unit interval (0,1)", lambda v: _is_number(v) and 0 < v < 1
    ),
    Datatype.BOOLEAN: DatatypeSpec(
        "a Boolean value (true/'yes' or false/'no')", lambda v: isinstance(v, bool)
    ),
    # datetime is a date subclass; a Date slot holds a plain date
    Datatype.DATE: DatatypeSpec(
        "an ISO date string (or a date value)",
        lambda v: isinstance(v, date) and not isinstance(v, datetime),
    ),
    Datatype.DATE_TIME: DatatypeSpec(
        "an ISO date-time string (or a datetime value)", lambda v: isinstance(v, datetime)
    ),
    Datatype.JSON_ARRAY: DatatypeSpec("a JSON array", lambda v: isinstance(v, list)),
    Datatype.JSON_OBJECT: DatatypeSpec("a JSON object", lambda v: isinstance(v, dict)),
}

STRING_TYPES = frozenset(
    {
        Datatype.STRING,
        Datatype.NON_EMPTY_STRING,
        Datatype.IDENTIFIER,
        Datatype.EMAIL,
        Datatype.URL,
        Datatype.PHONE_NUMBER,
        Datatype.TEXT,
    }
)
INTEGER_TYPES = frozenset(
    {
        Datatype.INTEGER,
        Datatype.POSITIVE_INTEGER,
        Datatype.NON_NEGATIVE_INTEGER,
        Datatype.AUTO_ID_NUMBER,
        Datatype.YEAR,
    }
)
DECIMAL_TYPES = frozenset(
    {
        Datatype.NUMBER,
        Datatype.DECIMAL,
        Datatype.PERCENT,
        Datatype.PROBABILITY,
        Datatype.CLOSED_UNIT_INTERVAL,
        Datatype.OPEN_UNIT_INTERVAL,
    }
)
NUMERIC_TYPES = INTEGER_TYPES | DECIMAL_TYPES
TEMPORAL_TYPES = frozenset({Datatype.DATE, Datatype.DATE_TIME})
JSON_COLLECTION_TYPES = frozenset({Datatype.JSON_ARRAY, Datatype.JSON_OBJECT})


# Range construction


def to_range(spec: Any) -> Range:
    """Normalize a range declaration to a range variant.

    Accepts a range variant, a Datatype or its name, an Enumeration, an entity
    class (any class carrying ``__entity_meta__`` or subclassing Entity), an
    entity type name, or a list/tuple of literals (ad-hoc enumeration).

    Args:
        spec: The declared range.

    Returns:
        The corresponding range variant.

    Raises:
        TypeError: If spec cannot denote a range.
    """
    if isinstance(spec, RANGE_TYPES):
        return spec
    if isinstance(spec, Datatype):
        return PrimitiveRange(spec)
    if isinstance(spec, Enumeration):
        return EnumRange(spec)
    if isinstance(spec, str):
        if not spec:
            raise TypeError("A range name must not be empty")
        try:
            return PrimitiveRange(Datatype(spec))
        except ValueError:
            return EntityRef(spec)
    if isinstance(spec, list | tuple):
        return LiteralRange(tuple(spec))
    if isinstance(spec, type) and _is_entity_class(spec):
        return EntityRef(spec.__name__)
    raise TypeError(f"Nonadmissible range {spec!r}")


def _is_entity_class(cls: type) -> bool:
    """Check if cls is an entity type without importing the entity module."""
    return any(
        base.__name__ == "Entity" and base.__module__.startswith("entityforge.")
        for base in cls.__mro__
    )


def range_depth(rng: Range) -> int:
    """Nesting depth of a range: 0 for scalars, +1 per list/record level."""
    match rng:
        case ListRange(item=item):
            return 1 + range_depth(item)
        case RecordRange(fields=fields):
            return 1 + max((range_depth(r) for _, r in fields), default=0)
        case _:
            return 0


def list_of(item: Any) -> ListRange:
    """Construct a list range over an item range.

    Raises:
        TypeError: If the item range is not admissible or is an entity reference.
        ValueError: If nesting exceeds MAX_NESTING_DEPTH.
    """
    item_range = to_range(item)
    if isinstance(item_range, EntityRef):
        raise TypeError(f"{item_range} is not a supported datatype!")
    rng = ListRange(item_range)
    _check_depth(rng)
    return rng


def record_of(**fields: Any) -> RecordRange:
    """Construct a record range from field name -> field range pairs.

    Raises:
        TypeError: If a field range is not admissible or is an entity reference.
        ValueError: If nesting exceeds MAX_NESTING_DEPTH.
    """
    if not fields:
        raise TypeError("A record range needs at least one field")
    pairs = []
    for name, spec in fields.items():
        field_range = to_range(spec)
        if isinstance(field_range, EntityRef):
            raise TypeError(f"{field_range} is not a supported datatype!")
        pairs.append((name, field_range))
    rng = RecordRange(tuple(pairs))
    _check_depth(rng)
    return rng


def _check_depth(rng: Range) -> None:
    depth = range_depth(rng)
    if depth > MAX_NESTING_DEPTH:
        raise ValueError(
            f"Max level of complex data types reached: {rng} nests {depth} levels "
            f"(at most {MAX_NESTING_DEPTH})"
        )


# Datatype predicates


def is_string_type(rng: Range) -> bool:
    """Check if rng is a string-valued primitive range."""
    return isinstance(rng, PrimitiveRange) and rng.datatype in STRING_TYPES


def is_integer_type(rng: Range) -> bool:
    """Check if rng is integer-valued. Enumerations count as integer-valued."""
    return isinstance(rng, EnumRange) or (
        isinstance(rng, PrimitiveRange) and rng.datatype in INTEGER_TYPES
    )


def is_decimal_type(rng: Range) -> bool:
    """Check if rng is a decimal-valued primitive range."""
    return isinstance(rng, PrimitiveRange) and rng.datatype in DECIMAL_TYPES


def is_number_type(rng: Range) -> bool:
    """Check if rng is a numeric primitive range."""
    return isinstance(rng, PrimitiveRange) and rng.datatype in NUMERIC_TYPES


def is_integer_string(value: Any) -> bool:
    """Check if value is a string of decimal digits with an optional sign."""
    return isinstance(value, str) and bool(_INTEGER_STRING.match(value))


def is_date_string(value: Any) -> bool:
    """Check if value is a string starting with a valid ISO date."""
    if not isinstance(value, str) or not _DATE_STRING.match(value):
        return False
    try:
        date.fromisoformat(value[:10])
    except ValueError:
        return False
    return True


def is_of_type(value: Any, datatype: Datatype | str) -> bool:
    """Check if value satisfies the condition of a catalog datatype."""
    try:
        spec = DATATYPES[Datatype(datatype)]
    except ValueError:
        return False
    return spec.condition(value)


# Coercion


def _parse_decimal(value: str) -> float | str:
    try:
        number = float(value)
    except ValueError:
        return value
    return value if math.isnan(number) or math.isinf(number) else number


def coerce(rng: Range, value: Any) -> Any:
    """Convert a string (or other storage form) to a value of the range.

    Values that cannot be converted are returned unchanged; the range check
    reports them. List and record values are coerced item by item.

    Args:
        rng: Target range.
        value: Raw value, typically a string from a form or a record.

    Returns:
        The converted value, or value unchanged.
    """
    if is_integer_type(rng):
        if is_integer_string(value.strip() if isinstance(value, str) else value):
            return int(value)
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value
    if is_decimal_type(rng):
        if isinstance(value, str):
            return _parse_decimal(value.strip())
        return value
    match rng:
        case ListRange(item=item) if isinstance(value, list | tuple):
            return [coerce(item, v) for v in value]
        case RecordRange() if isinstance(value, Mapping):
            field_map = rng.field_map
            return {
                k: coerce(field_map[k], v) if k in field_map and v is not None else v for k, v in value.items()
            }
    if not isinstance(rng, PrimitiveRange):
        return value
    match rng.datatype:
        case Datatype.BOOLEAN if isinstance(value, str):
            if value in ("true", "yes"):
                return True
            if value in ("false", "no"):
                return False
        case Datatype.DATE:
            if isinstance(value, datetime):
                return value.date()
            if is_date_string(value):
                return date.fromisoformat(value[:10])
        case Datatype.DATE_TIME:
            if isinstance(value, str):
                try:
                    return datetime.fromisoformat(value)
                except ValueError:
                    return value
            if isinstance(value, date) and not isinstance(value, datetime):
                return datetime(value.year, value.month, value.day)
    return value


# Defaults and implicit datatypes


def get_default_value(rng: Range) -> Any:
    """Default value of a range: 0, 0.0, False, the epoch date, or an empty string."""
    if is_integer_type(rng):
        return 0
    if is_decimal_type(rng):
        return 0.0
    if isinstance(rng, PrimitiveRange):
        match rng.datatype:
            case Datatype.BOOLEAN:
                return False
            case Datatype.DATE:
                return date(1970, 1, 1)
            case Datatype.DATE_TIME:
                return datetime(1970, 1, 1)
    return ""


def determine_datatype(value: Any) -> Datatype | None:
    """Determine the implicit datatype of a value, or None if it has none."""
    if isinstance(value, bool):
        return Datatype.BOOLEAN
    if isinstance(value, str):
        return Datatype.STRING
    if isinstance(value, int):
        return Datatype.YEAR if 1800 <= value < 2100 else Datatype.INTEGER
    if isinstance(value, float):
        return Datatype.DECIMAL
    if isinstance(value, datetime):
        return Datatype.DATE_TIME
    if isinstance(value, date):
        return Datatype.DATE
    if isinstance(value, list):
        return Datatype.JSON_ARRAY
    if isinstance(value, dict) and value:
        return Datatype.JSON_OBJECT
    return None


# String conversion


def round_decimal(x: float, decimal_places: int = DEFAULT_DECIMAL_PLACES) -> float:
    """Round half away from zero to decimal_places."""
    factor = 10**decimal_places
    return math.floor(abs(x) * factor + 0.5) / factor * (1 if x >= 0 else -1)


def parse_value_string(value_string: str, spec: Any) -> Any:
    """Parse a (possibly comma-separated) value string according to a range.

    Lists of non-string values are separated by ", ". Entity references are
    parsed to identifiers without resolution.

    Args:
        value_string: The string to parse.
        spec: Range declaration (anything accepted by to_range).

    Returns:
        The parsed value, a list of values for list strings, or None if the
        string does not conform to the range.
    """
    rng = to_range(spec)
    if not is_string_type(rng) and ", " in value_string:
        parts = value_string.split(", ")
    else:
        parts = [value_string]
    values: list[Any] = []
    for part in parts:
        if isinstance(rng, PrimitiveRange) and rng.datatype in JSON_COLLECTION_TYPES:
            try:
                value = json.loads(part)
            except json.JSONDecodeError:
                return None
        elif isinstance(rng, EntityRef):
            value = coerce(PrimitiveRange(Datatype.INTEGER), part) if is_integer_string(part) else part
        else:
            value = coerce(rng, part)
            if isinstance(rng, PrimitiveRange) and not DATATYPES[rng.datatype].condition(value):
                return None
            if isinstance(rng, EnumRange) and not rng.enumeration.is_valid_index(value):
                return None
        values.append(value)
    return values[0] if len(values) == 1 else values


def stringify_value(
    value: Any, spec: Any = None, decimal_places: int = DEFAULT_DECIMAL_PLACES
) -> str:
    """Convert a value (or collection of values) to a display string.

    Args:
        value: Value to stringify. Lists and id -> entity maps are joined with ", ".
        spec: Range declaration; the implicit datatype of value is used when omitted.
        decimal_places: Rounding for decimal types.

    Returns:
        The display string.
    """
    rng = to_range(spec) if spec is not None else None
    if rng is None:
        datatype = determine_datatype(value)
        rng = PrimitiveRange(datatype) if datatype is not None else PrimitiveRange(Datatype.STRING)
    if isinstance(value, Mapping) and isinstance(rng, EntityRef):
        items = list(value.values())
    elif isinstance(value, list) and not (
        isinstance(rng, PrimitiveRange) and rng.datatype == Datatype.JSON_ARRAY
    ):
        items = value
    else:
        items = [value]
    return ", ".join(_stringify_one(v, rng, decimal_places) for v in items)


def _stringify_one(v: Any, rng: Range, decimal_places: int) -> str:
    if v is None:
        return ""
    match rng:
        case EnumRange(enumeration=enumeration):
            return enumeration.label(v) if enumeration.is_valid_index(v) else str(v)
        case EntityRef():
            display = getattr(v, "display_value", None)
            return str(display if display is not None else v)
        case ListRange() | RecordRange():
            return json.dumps(v, default=str)
        case PrimitiveRange(datatype=datatype):
            if datatype in DECIMAL_TYPES and _is_number(v):
                return str(round_decimal(v, decimal_places))
            if datatype == Datatype.BOOLEAN and isinstance(v, bool):
                return "yes" if v else "no"
            if datatype in TEMPORAL_TYPES and isinstance(v, date):
                return v.isoformat()
            if datatype in JSON_COLLECTION_TYPES:
                return json.dumps(v, default=str)
    return str(v)

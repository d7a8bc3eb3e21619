"""Type catalog: primitive datatypes, enumerations, ranges, and value coercion."""

from entityforge.core.datatypes.core import (
    DATATYPES,
    PATTERNS,
    coerce,
    determine_datatype,
    get_default_value,
    is_decimal_type,
    is_integer_type,
    is_number_type,
    is_of_type,
    is_string_type,
    list_of,
    parse_value_string,
    range_depth,
    record_of,
    round_decimal,
    stringify_value,
    to_range,
)
from entityforge.core.datatypes.models import (
    MAX_NESTING_DEPTH,
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

__all__ = [
    # Models
    "Datatype",
    "DatatypeSpec",
    "Enumeration",
    "EntityRef",
    "EnumRange",
    "ListRange",
    "LiteralRange",
    "PrimitiveRange",
    "Range",
    "RecordRange",
    "MAX_NESTING_DEPTH",
    # Catalog
    "DATATYPES",
    "PATTERNS",
    "coerce",
    "determine_datatype",
    "get_default_value",
    "is_decimal_type",
    "is_integer_type",
    "is_number_type",
    "is_of_type",
    "is_string_type",
    "list_of",
    "parse_value_string",
    "range_depth",
    "record_of",
    "round_decimal",
    "stringify_value",
    "to_range",
]

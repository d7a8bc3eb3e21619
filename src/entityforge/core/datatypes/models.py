"""Datatype models: primitive datatypes, enumerations, and the range sum type.

A property's range is one of a closed set of variants:

    PrimitiveRange(Datatype.INTEGER)          # catalog primitive
    EnumRange(BookCategoryEL)                 # enumeration, 1-based integer codes
    EntityRef("Publisher")                    # reference to another entity type
    ListRange(PrimitiveRange(Datatype.STRING))
    RecordRange((("type", ...), ("number", ...)))
    LiteralRange(("red", "green", "blue"))    # ad-hoc enumeration of literals

Usage:
    BookCategoryEL = Enumeration("BookCategoryEL", ["novel", "biography", "textbook"])
    BookCategoryEL.NOVEL  # 1
    BookCategoryEL.labels[0]  # "novel"
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

MAX_NESTING_DEPTH = 3
"""Maximum nesting depth of list and record ranges."""


class Datatype(StrEnum):
    """Primitive datatypes of the catalog, named as in declarations."""

    STRING = "String"
    NON_EMPTY_STRING = "NonEmptyString"
    IDENTIFIER = "Identifier"
    EMAIL = "Email"
    URL = "URL"
    PHONE_NUMBER = "PhoneNumber"
    TEXT = "Text"
    INTEGER = "Integer"
    POSITIVE_INTEGER = "PositiveInteger"
    NON_NEGATIVE_INTEGER = "NonNegativeInteger"
    AUTO_ID_NUMBER = "AutoIdNumber"
    YEAR = "Year"
    NUMBER = "Number"
    DECIMAL = "Decimal"
    PERCENT = "Percent"
    PROBABILITY = "Probability"
    CLOSED_UNIT_INTERVAL = "ClosedUnitInterval"
    OPEN_UNIT_INTERVAL = "OpenUnitInterval"
    BOOLEAN = "Boolean"
    DATE = "Date"
    DATE_TIME = "DateTime"
    JSON_ARRAY = "JSON-Array"
    JSON_OBJECT = "JSON-Object"


@dataclass(frozen=True, slots=True)
class DatatypeSpec:
    """Catalog entry for a primitive datatype.

    Attributes:
        phrase: Human-readable description used in violation messages.
        condition: Predicate a (coerced) value must satisfy.
    """

    phrase: str
    condition: Callable[[Any], bool]


class Enumeration:
    """An enumeration of labels with 1-based integer codes.

    Constructed either from a list of labels or from a code list map
    (code -> label). Each label (or code) becomes an upper-case constant
    attribute holding its integer code.

    Args:
        name: Name of the enumeration.
        labels: List of label strings, or a map from code strings to labels.

    Raises:
        TypeError: If name is not a string, or labels is neither a list of
            strings nor a map with string values.
    """

    def __init__(self, name: str, labels: Iterable[str] | Mapping[str, str]):
        if not isinstance(name, str):
            raise TypeError("The first constructor argument of an enumeration must be a string!")
        self.name = name
        if isinstance(labels, Mapping):
            if not all(isinstance(v, str) for v in labels.values()):
                raise TypeError("All values of a code list map must be strings!")
            self.codes: tuple[str, ...] = tuple(labels.keys())
            self.labels: tuple[str, ...] = tuple(labels.values())
            constant_names = [_constant_name(code) for code in self.codes]
        elif isinstance(labels, list | tuple):
            if not all(isinstance(label, str) for label in labels):
                raise TypeError(
                    "A list of enumeration labels as the second constructor argument "
                    "must be an array of strings!"
                )
            self.codes = ()
            self.labels = tuple(labels)
            constant_names = [_constant_name(label) for label in self.labels]
        else:
            raise TypeError(f"Invalid Enumeration constructor argument: {labels!r}")
        self._constants = dict(zip(constant_names, range(1, len(self.labels) + 1), strict=True))

    def __getattr__(self, name: str) -> int:
        try:
            return self.__dict__["_constants"][name]  # type: ignore[no-any-return]
        except KeyError:
            raise AttributeError(f"Enumeration {self.__dict__.get('name')!r} has no literal {name!r}") from None

    def __repr__(self) -> str:
        return f"Enumeration({self.name!r}, {list(self.labels)!r})"

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def MAX(self) -> int:  # noqa: N802 - mirrors the enumeration constant naming
        """Highest admissible code."""
        return len(self.labels)

    def label(self, index: int) -> str:
        """Return the label of a 1-based code.

        Raises:
            ValueError: If index is not an admissible code.
        """
        if not self.is_valid_index(index):
            raise ValueError(f"{index} is not an admissible code of enumeration {self.name}")
        return self.labels[index - 1]

    def is_valid_index(self, index: Any) -> bool:
        """Check if index is an admissible 1-based code of this enumeration."""
        return isinstance(index, int) and not isinstance(index, bool) and 1 <= index <= self.MAX

    def indexes_to_names(self, indexes: Iterable[int]) -> str:
        """Join the labels of all valid codes in indexes with ", ".

        Invalid codes are skipped.

        Raises:
            TypeError: If indexes is not a list or tuple.
        """
        if not isinstance(indexes, list | tuple):
            raise TypeError("The argument must be an Array!")
        return ", ".join(self.labels[i - 1] for i in indexes if self.is_valid_index(i))


def _constant_name(label: str) -> str:
    """Derive a constant name from a label: "text book" -> "TEXT_BOOK"."""
    return re.sub(r"\W+", "_", label.strip()).upper()


# Range variants


@dataclass(frozen=True, slots=True)
class PrimitiveRange:
    """Range restricted to a catalog primitive datatype."""

    datatype: Datatype

    def __str__(self) -> str:
        return str(self.datatype)


@dataclass(frozen=True, slots=True)
class EnumRange:
    """Range restricted to the codes of an enumeration."""

    enumeration: Enumeration

    def __str__(self) -> str:
        return self.enumeration.name


@dataclass(frozen=True, slots=True)
class EntityRef:
    """Range restricted to instances of another entity type, referenced by name.

    Resolution by name happens at check time so entity types may reference
    types declared later.
    """

    type_name: str

    def __str__(self) -> str:
        return self.type_name


@dataclass(frozen=True, slots=True)
class ListRange:
    """Range of JSON-compatible lists whose items belong to an item range."""

    item: Range

    def __str__(self) -> str:
        return f"List({self.item})"


@dataclass(frozen=True, slots=True)
class RecordRange:
    """Range of JSON-compatible objects with named, typed fields."""

    fields: tuple[tuple[str, Range], ...]

    @property
    def field_map(self) -> dict[str, Range]:
        """Field name -> field range."""
        return dict(self.fields)

    def __str__(self) -> str:
        inner = ", ".join(f"{name}: {rng}" for name, rng in self.fields)
        return f"Record({inner})"


@dataclass(frozen=True, slots=True)
class LiteralRange:
    """Ad-hoc enumeration: the value must be one of the given literals."""

    literals: tuple[Any, ...]

    def __str__(self) -> str:
        return ", ".join(str(v) for v in self.literals)


type Range = PrimitiveRange | EnumRange | EntityRef | ListRange | RecordRange | LiteralRange
"""Closed sum type of property ranges."""

RANGE_TYPES = (PrimitiveRange, EnumRange, EntityRef, ListRange, RecordRange, LiteralRange)

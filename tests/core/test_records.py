"""Tests for conversion between entities and storage records."""

from datetime import date

import pytest
from hypothesis import given
from hypothesis import strategies as st

from entityforge import UNBOUNDED, Entity, EntityTypeRegistry, Property, entity_type
from entityforge.core.entity import (
    class_to_table_name,
    obj_to_record,
    record_to_obj,
    reference_identities,
    reference_identity,
)

_registry = EntityTypeRegistry()


@entity_type(registry=_registry)
class Measurement(Entity):
    name = Property("NonEmptyString", id=True, max=30)
    value = Property("Decimal")
    count = Property("NonNegativeInteger")
    taken = Property("Date", optional=True)
    tags = Property("String", max_card=UNBOUNDED, optional=True)


@pytest.mark.parametrize(
    ("class_name", "table_name"),
    [
        ("Book", "books"),
        ("Category", "categories"),
        ("BookCopy", "book_copies"),
        ("bookCopy", "BOOK_COPIES"),
    ],
)
def test_class_to_table_name(class_name: str, table_name: str) -> None:
    assert class_to_table_name(class_name) == table_name


def test_record_reduces_references_to_identities(registry, library) -> None:
    Publisher, Author, Book = library
    springer = Publisher(name="Springer")
    author = Author(name="Tim Berners-Lee", date_of_birth=date(1955, 6, 8))
    registry.cache.put(springer)
    registry.cache.put(author)
    book = Book(
        isbn="123456789X",
        title="Hello world",
        year=2022,
        category=1,
        publisher=springer,
        authors=[author],
    )

    assert obj_to_record(book, Book) == {
        "isbn": "123456789X",
        "title": "Hello world",
        "year": 2022,
        "category": 1,
        "publisher": "Springer",
        "authors": [1001],
    }
    assert author.to_record()["date_of_birth"] == "1955-06-08"


def test_inverse_references_are_not_stored(library) -> None:
    Publisher, _, _ = library
    assert Publisher(name="Springer", address="Heidelberg").to_record() == {
        "name": "Springer",
        "address": "Heidelberg",
    }


def test_record_round_trip_with_references(registry, library) -> None:
    Publisher, Author, Book = library
    registry.cache.put(Publisher(name="Springer"))
    author = Author(name="Tim Berners-Lee", date_of_birth=date(1955, 6, 8))
    registry.cache.put(author)
    book = Book(isbn="123456789X", title="Hello world", year=2022, publisher="Springer", authors=[1001])

    assert record_to_obj(obj_to_record(book, Book), Book) == book
    assert record_to_obj(author.to_record(), Author).date_of_birth == date(1955, 6, 8)


def test_record_from_slot_map(library) -> None:
    _, _, Book = library
    record = obj_to_record({"isbn": "123456789X", "title": "Hello world", "category": None}, Book)
    assert record == {"isbn": "123456789X", "title": "Hello world"}


def test_record_from_other_value_is_type_error(library) -> None:
    _, _, Book = library
    with pytest.raises(TypeError):
        obj_to_record(["123456789X"], Book)  # type: ignore[arg-type]


def test_unknown_record_fields_are_ignored(library) -> None:
    _, _, Book = library
    book = record_to_obj({"isbn": "123456789X", "title": "Hello world", "year": 2022, "legacy": 1}, Book)
    assert book.identity == "123456789X"


def test_reference_identity_helpers(library) -> None:
    Publisher, _, _ = library
    springer = Publisher(name="Springer")
    assert reference_identity(springer) == "Springer"
    assert reference_identity("Springer") == "Springer"
    assert reference_identities({"Springer": springer}) == ["Springer"]
    assert reference_identities([springer, "Harper"]) == ["Springer", "Harper"]


@given(
    name=st.text(min_size=1, max_size=30).filter(lambda s: s.strip() != ""),
    value=st.floats(allow_nan=False, allow_infinity=False),
    count=st.integers(min_value=0),
    taken=st.none() | st.dates(),
    tags=st.none() | st.lists(st.text(), max_size=5),
)
def test_round_trip_preserves_declared_properties(name, value, count, taken, tags) -> None:
    """rec2obj(obj2rec(e)) equals e in all declared properties."""
    measurement = Measurement(name=name, value=value, count=count, taken=taken, tags=tags)
    record = obj_to_record(measurement, Measurement)
    restored = record_to_obj(record, Measurement)

    assert restored == measurement
    assert restored.to_record() == record

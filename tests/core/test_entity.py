"""Tests for entity types: construction, validated setters, identity and setup."""

from datetime import date

import pytest

from entityforge import (
    Entity,
    FrozenValueConstraintViolation,
    IntervalConstraintViolation,
    MandatoryValueConstraintViolation,
    PatternConstraintViolation,
    Property,
    ReferentialIntegrityConstraintViolation,
    constraint_checking,
    entity_type,
)
from entityforge.core.entity import UnknownEntityTypeError


@pytest.fixture
def book(library):
    _, _, Book = library
    return Book(isbn="123456789X", title="Hello world", year=2022)


# Construction


def test_valid_construction(book) -> None:
    assert book.identity == "123456789X"
    assert book.title == "Hello world"
    assert book.year == 2022
    assert book.publisher is None


def test_identity_pattern_is_checked(library) -> None:
    _, _, Book = library
    with pytest.raises(PatternConstraintViolation):
        Book(isbn="123456789", title="Hello world", year=2022)


def test_missing_identity_without_auto_id(library) -> None:
    """An identity property without an auto-id range must be supplied."""
    _, _, Book = library
    with pytest.raises(MandatoryValueConstraintViolation, match="Book::isbn"):
        Book(title="Hello world", year=2022)


def test_missing_mandatory_property(library) -> None:
    _, _, Book = library
    with pytest.raises(MandatoryValueConstraintViolation, match="title"):
        Book(isbn="123456789X", year=2022)


def test_unknown_slot_name(library) -> None:
    _, _, Book = library
    with pytest.raises(TypeError, match="no properties named subtitle"):
        Book(isbn="123456789X", title="Hello world", year=2022, subtitle="x")


def test_strings_are_coerced_on_construction(library) -> None:
    _, _, Book = library
    book = Book(isbn="123456789X", title="Hello world", year="2022", category="1")
    assert book.year == 2022
    assert book.category == 1


# Setters


def test_setter_rejects_year_below_lower_bound(book) -> None:
    with pytest.raises(IntervalConstraintViolation):
        book.year = 1222
    assert book.year == 2022


def test_setter_checking_can_be_suspended(book) -> None:
    with constraint_checking(False):
        book.year = 1222
    assert book.year == 1222


def test_reference_setter_resolves_identifier(registry, library, book) -> None:
    Publisher, _, _ = library
    springer = Publisher(name="Springer")
    registry.cache.put(springer)

    book.publisher = "Springer"
    assert book.publisher is springer


def test_reference_setter_rejects_unknown_identifier(book) -> None:
    with pytest.raises(ReferentialIntegrityConstraintViolation):
        book.publisher = "Unknown"


def test_identity_is_frozen(book) -> None:
    book.isbn = "123456789X"
    with pytest.raises(FrozenValueConstraintViolation):
        book.isbn = "0000000000"
    assert book.identity == "123456789X"


# Auto ids and initial values


def test_auto_ids_increase_per_type(library) -> None:
    _, Author, _ = library
    first = Author(name="Tim Berners-Lee")
    second = Author(name="Mark Fischetti")
    assert first.author_id == 1001
    assert second.author_id == 1002


def test_explicit_ids_advance_the_counter(library) -> None:
    _, Author, _ = library
    Author(author_id=2000, name="Tim Berners-Lee")
    assert Author(name="Mark Fischetti").author_id == 2001


def test_implicit_identity_property(registry) -> None:
    """A type without an identity property gets an auto-id property named id."""

    @entity_type(registry=registry)
    class Tag(Entity):
        text = Property("NonEmptyString")

    assert Tag.id_attribute == "id"
    assert Tag(text="web").id == 1001
    assert Tag(text="history").identity == 1002


def test_get_auto_id_hook_takes_priority(registry) -> None:
    @entity_type(registry=registry)
    class Ticket(Entity):
        code = Property("NonEmptyString", id=True)

        @classmethod
        def get_auto_id(cls) -> str:
            return "T-1"

    assert Ticket().code == "T-1"


def test_initial_values(registry) -> None:
    """Callables with no argument are called; one-argument callables receive the instance."""

    @entity_type(registry=registry)
    class Counter(Entity):
        hits = Property("NonNegativeInteger", initial_value=0)
        started = Property("Date", initial_value=lambda: date(2024, 1, 1))
        slug = Property("NonEmptyString", initial_value=lambda obj: f"counter-{obj.id}")

    counter = Counter()
    assert counter.hits == 0
    assert counter.started == date(2024, 1, 1)
    assert counter.slug == "counter-1001"
    assert Counter(hits=5).hits == 5


def test_literal_initial_values_are_not_shared(registry) -> None:
    """Each instance gets its own copy of a mutable initial value."""

    @entity_type(registry=registry)
    class Bag(Entity):
        items = Property("JSON-Array", initial_value=[])
        tags = Property("JSON-Object", initial_value={"kind": "bag"})

    first, second = Bag(), Bag()
    first.items.append(1)
    first.tags["kind"] = "box"

    assert second.items == []
    assert second.tags == {"kind": "bag"}
    assert Bag.properties["items"].initial_value == []


# Setup


def test_type_metadata(registry, library) -> None:
    Publisher, _, Book = library
    assert Book.id_attribute == "isbn"
    assert Book.display_attribute == "title"
    assert Book.reference_properties == ("publisher", "authors")
    assert Publisher.inverse_reference_properties == ("published_books",)
    assert Book.__entity_meta__.table_name == "books"
    assert registry.get_type("Book") is Book
    assert registry.types() == [Publisher, library[1], Book]


def test_unknown_type_name(registry) -> None:
    with pytest.raises(UnknownEntityTypeError):
        registry.get_type("Magazine")


def test_type_name_collision(registry, library) -> None:
    with pytest.raises(RuntimeError, match="collision"):

        @entity_type(registry=registry)
        class Book(Entity):
            title = Property("String")


def test_undecorated_type_cannot_be_instantiated() -> None:
    class Draft(Entity):
        title = Property("String")

    with pytest.raises(TypeError, match="Did you forget @entity_type"):
        Draft(title="x")


def test_decorator_requires_entity_subclass(registry) -> None:
    with pytest.raises(TypeError, match="must subclass Entity"):

        @entity_type(registry=registry)
        class Plain:
            title = Property("String")


@pytest.mark.parametrize(
    "declarations",
    [
        {"a": Property("String", id=True), "b": Property("String", id=True)},
        {"code": Property("String", id=True, optional=True)},
        {"code": Property("String", id=True, max_card=3)},
        {"properties": Property("String")},
    ],
)
def test_invalid_type_declarations(registry, declarations) -> None:
    cls = type("Invalid", (Entity,), dict(declarations))
    with pytest.raises(TypeError):
        entity_type(registry=registry)(cls)


def test_display_attribute_must_be_declared(registry) -> None:
    with pytest.raises(ValueError, match="Display attribute"):

        @entity_type(registry=registry, display_attribute="name")
        class Shelf(Entity):
            label_text = Property("String")


# Instance API


def test_display_value_and_string_values(registry, library, book) -> None:
    _, Author, _ = library
    author = Author(name="Tim Berners-Lee")
    registry.cache.put(author)
    book.authors = [author.author_id]
    book.category = 1

    assert book.display_value == "Hello world"
    assert book.get_value_as_string("category") == "novel"
    assert book.get_value_as_string("authors") == "Tim Berners-Lee"
    assert book.get_value_as_string("publisher") == ""


def test_str_lists_labelled_record(book) -> None:
    assert str(book) == 'Book:123456789X{ ISBN: "123456789X", Title: "Hello world", Year: 2022 }'


def test_equality_and_hash(library, book) -> None:
    _, _, Book = library
    twin = Book(isbn="123456789X", title="Hello world", year=2022)
    assert twin == book
    assert hash(twin) == hash(book)
    twin.year = 2023
    assert twin != book


def test_from_record_returns_none_for_invalid_record(library) -> None:
    _, _, Book = library
    assert Book.from_record({"isbn": "123456789X", "title": "A", "year": 2022}) is None
    book = Book.from_record({"isbn": "123456789X", "title": "Hello world", "year": 2022})
    assert book is not None
    assert book.title == "Hello world"

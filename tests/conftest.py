"""Shared test fixtures."""

import sys
from collections.abc import Callable
from datetime import date

import pytest

# Ensure src is in path
sys.path.insert(0, "src")

from entityforge import (
    UNBOUNDED,
    Entity,
    EntityTypeRegistry,
    Enumeration,
    Property,
    StorageManager,
    StorageSettings,
    entity_type,
)
from entityforge.storage import MemoryAdapter

BookCategoryEL = Enumeration("BookCategoryEL", ["novel", "biography", "textbook", "other"])

type LibraryModel = tuple[type[Entity], type[Entity], type[Entity]]


def next_year() -> int:
    return date.today().year + 1


def define_library(registry: EntityTypeRegistry) -> LibraryModel:
    """Declare the Publisher, Author and Book entity types in a registry."""

    @entity_type(registry=registry, display_attribute="name")
    class Publisher(Entity):
        name = Property("NonEmptyString", id=True, label="Name")
        address = Property("NonEmptyString", optional=True, label="Address")
        published_books = Property(
            "Book", max_card=UNBOUNDED, inverse_of="publisher", label="Published books"
        )

    @entity_type(registry=registry, display_attribute="name")
    class Author(Entity):
        author_id = Property("AutoIdNumber", id=True, label="Author ID")
        name = Property("NonEmptyString", max=120, label="Name")
        date_of_birth = Property("Date", optional=True, label="Date of birth")

    @entity_type(registry=registry, display_attribute="title")
    class Book(Entity):
        isbn = Property(
            "NonEmptyString",
            id=True,
            pattern=r"^\d{9}(\d|X)$",
            pattern_message="The ISBN must be a 10-digit string or a 9-digit string followed by 'X'!",
            label="ISBN",
        )
        title = Property("NonEmptyString", min=2, max=50, label="Title")
        year = Property("Integer", min=1459, max=next_year, label="Year")
        category = Property(BookCategoryEL, optional=True, label="Category")
        publisher = Property(Publisher, optional=True, label="Publisher")
        authors = Property(Author, max_card=UNBOUNDED, optional=True, label="Authors")

    return Publisher, Author, Book


@pytest.fixture
def registry() -> EntityTypeRegistry:
    """Fresh entity type registry, isolated from the global one."""
    return EntityTypeRegistry()


@pytest.fixture
def library_factory() -> Callable[[EntityTypeRegistry], LibraryModel]:
    return define_library


@pytest.fixture
def library(registry: EntityTypeRegistry) -> LibraryModel:
    """Publisher, Author and Book registered with the test registry."""
    return define_library(registry)


@pytest.fixture
def settings() -> StorageSettings:
    return StorageSettings(db_name="library")


@pytest.fixture
def manager(
    registry: EntityTypeRegistry, library: LibraryModel, settings: StorageSettings
) -> StorageManager:
    """Storage manager over a fresh in-memory adapter."""
    return StorageManager(MemoryAdapter(), "library", settings=settings, registry=registry)

"""Tests for the storage manager over the in-memory adapter.

Critical Invariants:
- Invalid and duplicate records are dropped from a batch, the rest is added
- Updates write only changed properties, and nothing if any change is invalid
- Retrieval resolves references without writing the instance cache
"""

import logging

import pytest

from entityforge import (
    Entity,
    EntityTypeRegistry,
    IntervalConstraintViolation,
    Property,
    ReferentialIntegrityConstraintViolation,
    StorageManager,
    StorageSettings,
    entity_type,
    list_of,
)
from entityforge.core.constraint import is_referential_integrity_checking
from entityforge.storage import MemoryAdapter, SqlAdapter

WEAVING = {
    "isbn": "006251587X",
    "title": "Weaving the Web",
    "year": 2000,
    "category": 1,
    "publisher": "Springer",
    "authors": [1001, 1002],
}


class SpyAdapter(MemoryAdapter):
    """Memory adapter recording the slots of every update call."""

    def __init__(self) -> None:
        super().__init__()
        self.updates: list[dict] = []

    async def update(self, db_name, entity_cls, identity, slots) -> None:
        self.updates.append(dict(slots))
        await super().update(db_name, entity_cls, identity, slots)


async def stock(manager: StorageManager, library) -> None:
    """Open the database and add a publisher, two authors and a book."""
    Publisher, Author, Book = library
    await manager.create_empty_db()
    await manager.add(Publisher, {"name": "Springer", "address": "Heidelberg"})
    await manager.add(Author, [{"name": "Tim Berners-Lee"}, {"name": "Mark Fischetti"}])
    await manager.add(Book, WEAVING)


@pytest.fixture
def spy_manager(registry, library, settings) -> tuple[StorageManager, SpyAdapter]:
    adapter = SpyAdapter()
    return StorageManager(adapter, "library", settings=settings, registry=registry), adapter


# Construction


def test_adapter_by_name(registry, library) -> None:
    manager = StorageManager("sql", "library", settings=StorageSettings(), registry=registry)
    assert isinstance(manager.adapter, SqlAdapter)


def test_settings_supply_defaults(registry) -> None:
    manager = StorageManager(settings=StorageSettings(db_name="catalog"), registry=registry)
    assert isinstance(manager.adapter, MemoryAdapter)
    assert manager.db_name == "catalog"


def test_invalid_construction_arguments(registry) -> None:
    with pytest.raises(ValueError, match="Invalid storage adapter name"):
        StorageManager("csv", "library", registry=registry)
    with pytest.raises(ValueError, match="Missing DB name"):
        StorageManager(MemoryAdapter(), "", registry=registry)


# Add


@pytest.mark.asyncio
async def test_add_keeps_valid_records_and_logs_invalid_ones(manager, library, caplog) -> None:
    """A batch with one invalid record persists only the valid one."""
    _, _, Book = library
    await manager.create_empty_db()
    invalid = {"isbn": "0465026567", "title": "G", "year": 1999}

    ids = await manager.add(Book, [{"isbn": "006251587X", "title": "Weaving the Web", "year": 2000}, invalid])

    assert ids == ["006251587X"]
    assert await manager.retrieve(Book, "0465026567") is None
    assert "StringLengthConstraintViolation" in caplog.text


@pytest.mark.asyncio
async def test_add_rejects_duplicate_identities(manager, library, caplog) -> None:
    _, _, Book = library
    await manager.create_empty_db()
    record = {"isbn": "006251587X", "title": "Weaving the Web", "year": 2000}

    assert await manager.add(Book, [record, record]) == ["006251587X"]
    assert await manager.add(Book, record) == []
    assert "UniquenessConstraintViolation" in caplog.text


@pytest.mark.asyncio
async def test_add_assigns_auto_ids_and_stores_counter(manager, library) -> None:
    _, Author, _ = library
    await manager.create_empty_db()

    ids = await manager.add(Author, [{"name": "Tim Berners-Lee"}, {"name": "Mark Fischetti"}])

    assert ids == [1001, 1002]
    assert await manager.adapter.retrieve_counter("library", Author) == 1003


@pytest.mark.asyncio
async def test_add_caches_instances(registry, manager, library) -> None:
    await stock(manager, library)
    Publisher, _, Book = library

    book = registry.cache.get(Book, "006251587X")
    assert book is not None
    assert book.publisher is registry.cache.get(Publisher, "Springer")


@pytest.mark.asyncio
async def test_add_accepts_entity_instances(manager, library) -> None:
    _, _, Book = library
    await manager.create_empty_db()
    book = Book(isbn="006251587X", title="Weaving the Web", year=2000)

    assert await manager.add(Book, book) == ["006251587X"]


@pytest.mark.asyncio
async def test_add_rejects_bad_arguments(manager, library, library_factory) -> None:
    _, _, Book = library
    _, _, StrayBook = library_factory(EntityTypeRegistry())
    await manager.create_empty_db()

    with pytest.raises(TypeError, match="must be a record or record list"):
        await manager.add(Book, "006251587X")
    with pytest.raises(TypeError, match="not an entity type registered"):
        await manager.add(StrayBook, {"isbn": "006251587X"})


@pytest.mark.asyncio
async def test_add_without_validation(registry, library) -> None:
    """With validate_before_save off, invalid records are stored as given."""
    _, _, Book = library
    settings = StorageSettings(validate_before_save=False)
    manager = StorageManager(MemoryAdapter(), "library", settings=settings, registry=registry)
    await manager.create_empty_db()

    assert await manager.add(Book, {"isbn": "0465026567", "title": "G", "year": 1999}) == ["0465026567"]
    assert await manager.adapter.retrieve("library", Book, "0465026567") == {
        "isbn": "0465026567",
        "title": "G",
        "year": 1999,
    }


@pytest.mark.asyncio
async def test_adapter_failure_is_logged_not_raised(manager, library, caplog) -> None:
    _, _, Book = library

    ids = await manager.add(Book, {"isbn": "006251587X", "title": "Weaving the Web", "year": 2000})

    assert ids == []
    assert "StoreNotFoundError" in caplog.text


@pytest.mark.asyncio
async def test_informational_logging_can_be_disabled(registry, library, caplog) -> None:
    _, _, Book = library
    caplog.set_level(logging.INFO)
    quiet = StorageManager(
        MemoryAdapter(), "library", settings=StorageSettings(create_log=False), registry=registry
    )
    await quiet.create_empty_db()
    await quiet.add(Book, {"isbn": "006251587X", "title": "Weaving the Web", "year": 2000})
    assert "added" not in caplog.text

    loud = StorageManager(MemoryAdapter(), "library", settings=StorageSettings(), registry=registry)
    await loud.create_empty_db()
    await loud.add(Book, {"isbn": "006251587X", "title": "Weaving the Web", "year": 2000})
    assert "1 Book(s) added." in caplog.text


# Retrieve


@pytest.mark.asyncio
async def test_retrieve_resolves_references_without_caching(registry, manager, library) -> None:
    await stock(manager, library)
    Publisher, Author, Book = library
    registry.cache.clear()

    book = await manager.retrieve(Book, "006251587X")

    assert book is not None
    assert isinstance(book.publisher, Publisher)
    assert book.publisher.address == "Heidelberg"
    assert sorted(book.authors) == [1001, 1002]
    assert all(isinstance(author, Author) for author in book.authors.values())
    assert book.authors[1002].name == "Mark Fischetti"
    assert (Book, "006251587X") not in registry.cache


@pytest.mark.asyncio
async def test_retrieve_missing_entity(manager, library, caplog) -> None:
    _, _, Book = library
    await manager.create_empty_db()

    assert await manager.retrieve(Book, "9999999999") is None
    assert "Retrieval of Book '9999999999' failed!" in caplog.text


@pytest.mark.asyncio
async def test_retrieve_all_twice_yields_identical_populations(manager, library) -> None:
    await stock(manager, library)
    _, _, Book = library

    first = await manager.retrieve_all(Book)
    second = await manager.retrieve_all(Book)

    assert first.keys() == second.keys() == {"006251587X"}
    for identity in first:
        assert first[identity].to_record() == second[identity].to_record()


@pytest.mark.asyncio
async def test_retrieve_all_links_references_and_inverse_references(registry, manager, library) -> None:
    await stock(manager, library)
    Publisher, Author, Book = library

    publishers = await manager.retrieve_all(Publisher)

    springer = publishers["Springer"]
    assert list(springer.published_books) == ["006251587X"]
    book = springer.published_books["006251587X"]
    assert book.publisher is springer
    assert book is registry.cache.get(Book, "006251587X")
    assert book.authors[1001] is registry.cache.get(Author, 1001)


@pytest.mark.asyncio
async def test_retrieve_all_keeps_counters_ahead(registry, manager, library) -> None:
    await stock(manager, library)
    _, Author, _ = library
    registry.allocator.reset()

    await manager.retrieve_all(Author)

    assert registry.allocator.peek(Author) == 1003


def define_mentoring(registry: EntityTypeRegistry) -> type[Entity]:
    """Declare a Person type whose mentor is another Person."""

    @entity_type(registry=registry, display_attribute="name")
    class Person(Entity):
        name = Property("NonEmptyString", id=True)
        mentor = Property("Person", optional=True)

    return Person


def define_staffing(registry: EntityTypeRegistry) -> tuple[type[Entity], type[Entity]]:
    """Declare Employee and Department types referencing each other."""

    @entity_type(registry=registry)
    class Employee(Entity):
        code = Property("NonEmptyString", id=True)
        department = Property("Department", optional=True)

    @entity_type(registry=registry)
    class Department(Entity):
        code = Property("NonEmptyString", id=True)
        head = Property(Employee, optional=True)

    return Employee, Department


@pytest.mark.asyncio
async def test_retrieve_leaves_same_type_references_unresolved(registry, manager) -> None:
    Person = define_mentoring(registry)
    await manager.create_empty_db()
    await manager.add(Person, [{"name": "a", "mentor": "b"}, {"name": "b", "mentor": "a"}])
    registry.cache.clear()

    person = await manager.retrieve(Person, "b")

    assert person is not None
    assert person.mentor == "a"
    assert is_referential_integrity_checking()


@pytest.mark.asyncio
async def test_retrieve_stops_at_reference_cycles(registry, manager) -> None:
    Employee, Department = define_staffing(registry)
    await manager.create_empty_db()
    await manager.add(Department, {"code": "d1", "head": "e1"})
    await manager.add(Employee, {"code": "e1", "department": "d1"})
    registry.cache.clear()

    employee = await manager.retrieve(Employee, "e1")

    assert isinstance(employee.department, Department)
    assert employee.department.code == "d1"
    assert employee.department.head == "e1"
    assert is_referential_integrity_checking()


@pytest.mark.asyncio
async def test_retrieve_all_links_same_type_references(registry, manager) -> None:
    Person = define_mentoring(registry)
    await manager.create_empty_db()
    await manager.add(Person, [{"name": "a", "mentor": "b"}, {"name": "b", "mentor": "a"}, {"name": "c"}])
    registry.cache.clear()

    people = await manager.retrieve_all(Person)

    assert people["b"].mentor is people["a"]
    assert people["a"].mentor is people["b"]
    assert people["c"].mentor is None
    assert is_referential_integrity_checking()


@pytest.mark.asyncio
async def test_retrieve_update_and_destroy_coerce_identities(manager, library) -> None:
    """Identity strings are converted to the type of the identity property."""
    await stock(manager, library)
    _, Author, _ = library

    author = await manager.retrieve(Author, "1001")
    assert author is not None
    assert author.author_id == 1001

    result = await manager.update(Author, "1002", {"name": "Mark A. Fischetti"})
    assert result.updated == ["name"]
    assert (await manager.retrieve(Author, 1002)).name == "Mark A. Fischetti"

    assert await manager.destroy(Author, "1001")
    assert await manager.retrieve(Author, 1001) is None


# Update


@pytest.mark.asyncio
async def test_update_with_identical_slots_writes_nothing(spy_manager, library) -> None:
    """String forms equal to the stored values are not changes."""
    manager, adapter = spy_manager
    await stock(manager, library)
    _, _, Book = library

    result = await manager.update(
        Book,
        "006251587X",
        {"title": "Weaving the Web", "year": "2000", "category": "1", "publisher": "Springer", "authors": [1001, 1002]},
    )

    assert result.ok
    assert result.updated == []
    assert adapter.updates == []


@pytest.mark.asyncio
async def test_update_writes_only_changed_properties(registry, spy_manager, library) -> None:
    manager, adapter = spy_manager
    await stock(manager, library)
    _, _, Book = library

    result = await manager.update(Book, "006251587X", {"title": "Weaving the Web", "year": 2001})

    assert result.updated == ["year"]
    assert adapter.updates == [{"year": 2001}]
    assert registry.cache.get(Book, "006251587X").year == 2001
    assert (await adapter.retrieve("library", Book, "006251587X"))["year"] == 2001


@pytest.mark.asyncio
async def test_update_is_aborted_by_any_violation(registry, spy_manager, library) -> None:
    """Nothing is written when one of several changed properties is invalid."""
    manager, adapter = spy_manager
    await stock(manager, library)
    _, _, Book = library

    result = await manager.update(Book, "006251587X", {"title": "Weaving the World Wide Web", "year": 1222})

    assert not result.ok
    assert [type(v) for v in result.violations] == [IntervalConstraintViolation]
    assert adapter.updates == []
    assert registry.cache.get(Book, "006251587X").title == "Weaving the Web"


@pytest.mark.asyncio
async def test_update_checks_referential_integrity(spy_manager, library) -> None:
    manager, adapter = spy_manager
    await stock(manager, library)
    _, _, Book = library

    result = await manager.update(Book, "006251587X", {"publisher": "Unknown"})

    assert isinstance(result.violations[0], ReferentialIntegrityConstraintViolation)
    assert adapter.updates == []


@pytest.mark.asyncio
@pytest.mark.parametrize("slots", [{"publisher": 3.5}, {"authors": [None]}, {"authors": [1001, 2.5]}])
async def test_update_reports_malformed_references(spy_manager, library, slots) -> None:
    """Values that are neither identities nor entities are violations, not errors."""
    manager, adapter = spy_manager
    await stock(manager, library)
    _, _, Book = library

    result = await manager.update(Book, "006251587X", slots)

    assert result.found
    assert not result.ok
    assert all(isinstance(v, ReferentialIntegrityConstraintViolation) for v in result.violations)
    assert adapter.updates == []


@pytest.mark.asyncio
async def test_update_coerces_nested_values_before_comparing(registry, spy_manager) -> None:
    """String items equal to the stored list items are not changes."""
    manager, adapter = spy_manager

    @entity_type(registry=registry)
    class Scorecard(Entity):
        player = Property("NonEmptyString", id=True)
        scores = Property(list_of("Integer"), optional=True)

    await manager.create_empty_db()
    await manager.add(Scorecard, {"player": "ada", "scores": [1, 2]})

    result = await manager.update(Scorecard, "ada", {"scores": ["1", "2"]})
    assert result.updated == []
    assert adapter.updates == []

    result = await manager.update(Scorecard, "ada", {"scores": ["1", "3"]})
    assert result.updated == ["scores"]
    assert adapter.updates == [{"scores": [1, 3]}]


@pytest.mark.asyncio
async def test_update_without_referential_integrity(registry, library) -> None:
    _, _, Book = library
    settings = StorageSettings(check_referential_integrity=False)
    manager = StorageManager(MemoryAdapter(), "library", settings=settings, registry=registry)
    await stock(manager, library)

    result = await manager.update(Book, "006251587X", {"publisher": "Unknown"})

    assert result.updated == ["publisher"]
    assert (await manager.adapter.retrieve("library", Book, "006251587X"))["publisher"] == "Unknown"


@pytest.mark.asyncio
async def test_update_can_unset_optional_property(registry, manager, library) -> None:
    await stock(manager, library)
    _, _, Book = library

    result = await manager.update(Book, "006251587X", {"category": None})

    assert result.updated == ["category"]
    assert "category" not in await manager.adapter.retrieve("library", Book, "006251587X")
    assert registry.cache.get(Book, "006251587X").category is None


@pytest.mark.asyncio
async def test_update_missing_entity(manager, library, caplog) -> None:
    _, _, Book = library
    await manager.create_empty_db()

    result = await manager.update(Book, "9999999999", {"year": 2001})

    assert not result.found
    assert "There is no Book with ID '9999999999' in the database!" in caplog.text


@pytest.mark.asyncio
async def test_update_unknown_property(manager, library) -> None:
    _, _, Book = library
    await manager.create_empty_db()
    with pytest.raises(TypeError, match="no properties named subtitle"):
        await manager.update(Book, "006251587X", {"subtitle": "x"})


# Destroy and administration


@pytest.mark.asyncio
async def test_destroy(registry, manager, library) -> None:
    await stock(manager, library)
    _, _, Book = library

    assert await manager.destroy(Book, "006251587X")
    assert await manager.retrieve(Book, "006251587X") is None
    assert (Book, "006251587X") not in registry.cache
    assert not await manager.destroy(Book, "006251587X")


@pytest.mark.asyncio
async def test_clear_table_and_database(registry, manager, library) -> None:
    await stock(manager, library)
    Publisher, _, Book = library

    await manager.clear_table(Book)
    assert await manager.retrieve_all(Book) == {}
    assert await manager.has_database_contents()

    await manager.clear_database()
    assert not await manager.has_database_contents()
    assert registry.cache.get(Publisher, "Springer") is None


@pytest.mark.asyncio
async def test_reopening_loads_persisted_counters(registry, manager, library) -> None:
    """Auto-ids keep increasing when a non-empty database is opened again."""
    await stock(manager, library)
    _, Author, _ = library
    registry.allocator.reset()

    await manager.create_empty_db()

    assert await manager.add(Author, {"name": "Douglas Hofstadter"}) == [1003]


@pytest.mark.asyncio
@pytest.mark.parametrize(("stored_ids", "expected"), [([], 2000), ([1500], 2000), ([1500, 5000], 5001)])
async def test_missing_counter_is_seeded_from_settings(
    registry, library, stored_ids: list[int], expected: int
) -> None:
    """A non-empty database without a persisted counter starts above settings and stored ids."""
    Publisher, Author, Book = library
    adapter = MemoryAdapter()
    await adapter.create_empty_db("library", [Publisher, Author, Book])
    await adapter.add("library", Publisher, [{"name": "Springer"}])
    await adapter.add("library", Author, [{"author_id": i, "name": f"Author {i}"} for i in stored_ids])
    settings = StorageSettings(db_name="library", auto_id_start=2000)
    manager = StorageManager(adapter, settings=settings, registry=registry)

    await manager.create_empty_db()

    assert await adapter.retrieve_counter("library", Author) == expected
    assert await manager.add(Author, {"name": "Douglas Hofstadter"}) == [expected]


@pytest.mark.asyncio
async def test_delete_database(registry, manager, library) -> None:
    await stock(manager, library)
    _, _, Book = library

    await manager.delete_database()

    assert not await manager.has_database_contents()
    assert registry.cache.get(Book, "006251587X") is None

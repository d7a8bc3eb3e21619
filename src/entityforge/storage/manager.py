"""Storage manager: backend-agnostic persistence of entity instances.

The manager converts between entities and records, validates before saving,
generates auto-ids, resolves references on retrieval, and writes only the
changed properties on update. Actual I/O is delegated to a storage adapter.

Adapter failures (StorageError) are logged and the operation resolves as a
no-op; constraint violations in batch operations are logged and the
offending records dropped.

Usage:
    manager = StorageManager("memory", "library")
    await manager.create_empty_db([Publisher, Book])
    await manager.add(Book, [{"isbn": "006251587X", "title": "Weaving the Web", "year": 2000}])
    books = await manager.retrieve_all(Book)
    await manager.update(Book, "006251587X", {"year": 2001})
    await manager.destroy(Book, "006251587X")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from entityforge.config import StorageSettings
from entityforge.core.constraint import (
    ConstraintViolation,
    UniquenessConstraintViolation,
    check,
    referential_integrity,
)
from entityforge.core.datatypes import EntityRef, coerce
from entityforge.core.entity import (
    Entity,
    EntityTypeRegistry,
    Property,
    get_registry,
    reference_identities,
    reference_identity,
)
from entityforge.core.entity.records import value_to_storage
from entityforge.core.identity import IdentityKey, IdValue
from entityforge.storage.errors import StorageError
from entityforge.storage.memory import MemoryAdapter
from entityforge.storage.protocol import Record, StorageAdapter
from entityforge.storage.sql import SqlAdapter

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, Callable[[StorageSettings], StorageAdapter]] = {
    "memory": lambda settings: MemoryAdapter(),
    "sql": lambda settings: SqlAdapter(settings.database_url),
}
"""Adapter factories selectable by name."""


@dataclass(slots=True)
class UpdateResult:
    """Outcome of StorageManager.update.

    Attributes:
        updated: Names of the properties written.
        violations: Violations that aborted the update.
        found: Whether a record with the identity exists.
    """

    updated: list[str] = field(default_factory=list)
    violations: list[ConstraintViolation] = field(default_factory=list)
    found: bool = False

    @property
    def ok(self) -> bool:
        return self.found and not self.violations


class StorageManager:
    """Façade over one storage adapter and one database.

    Args:
        adapter: An adapter instance, or the name of one in ADAPTERS.
            Defaults to settings.adapter.
        db_name: Database name. Defaults to settings.db_name.
        settings: Administrative flags. Defaults to StorageSettings().
        registry: Entity type registry whose instance cache the manager
            maintains. Defaults to the global registry.

    Raises:
        ValueError: If the adapter name is unknown or db_name is empty.
    """

    def __init__(
        self,
        adapter: StorageAdapter | str | None = None,
        db_name: str | None = None,
        *,
        settings: StorageSettings | None = None,
        registry: EntityTypeRegistry | None = None,
    ):
        self.settings = settings if settings is not None else StorageSettings()
        if adapter is None:
            adapter = self.settings.adapter
        if isinstance(adapter, str):
            try:
                factory = ADAPTERS[adapter]
            except KeyError:
                raise ValueError(
                    f"Invalid storage adapter name {adapter!r}! Choose one of {', '.join(ADAPTERS)}"
                ) from None
            adapter = factory(self.settings)
        self.adapter: StorageAdapter = adapter
        self.db_name = db_name if db_name is not None else self.settings.db_name
        if not self.db_name:
            raise ValueError("Missing DB name!")
        self.registry = registry if registry is not None else get_registry()

    # Logging helpers

    def _log(self, msg: str, *args: Any) -> None:
        if self.settings.create_log:
            logger.info(msg, *args)

    def _error(self, error: Exception) -> None:
        logger.error("%s: %s", type(error).__name__, error)

    def _violation(self, violation: ConstraintViolation) -> None:
        logger.error("%s", violation)

    def _require_type(self, entity_cls: type[Entity]) -> None:
        if not self.registry.is_registered(entity_cls):
            raise TypeError(
                f"{getattr(entity_cls, '__name__', entity_cls)!r} is not an entity type "
                f"registered with this storage manager's registry"
            )

    def _has_auto_id(self, entity_cls: type[Entity]) -> bool:
        return entity_cls.properties[entity_cls.id_attribute].is_auto_id or callable(
            getattr(entity_cls, "get_auto_id", None)
        )

    def _ref_type(self, prop: Property) -> type[Entity]:
        return self.registry.get_type(prop.range.type_name)  # type: ignore[union-attr]

    def _identity(self, entity_cls: type[Entity], identity: IdValue) -> IdValue:
        """Coerce an identity to the type of the identity property."""
        return coerce(entity_cls.properties[entity_cls.id_attribute].range, identity)  # type: ignore[no-any-return]

    # Administration

    async def has_database_contents(self) -> bool:
        """Check if any store of the database holds a record."""
        try:
            return await self.adapter.has_contents(self.db_name)
        except StorageError as e:
            self._error(e)
            return False

    async def create_empty_db(self, entity_types: Sequence[type[Entity]] | None = None) -> None:
        """Open the database, creating missing stores.

        Auto-id counters are seeded with settings.auto_id_start only when the
        whole store is empty; otherwise the persisted counters are loaded. A type
        without a persisted counter starts above its stored identities.

        Args:
            entity_types: Types to create stores for. Defaults to all
                registered types.
        """
        types = list(entity_types) if entity_types is not None else self.registry.types()
        for entity_cls in types:
            self._require_type(entity_cls)
        allocator = self.registry.allocator
        try:
            was_empty = not await self.adapter.has_contents(self.db_name)
            await self.adapter.create_empty_db(self.db_name, types)
            for entity_cls in types:
                if not self._has_auto_id(entity_cls):
                    continue
                if was_empty:
                    await self.adapter.store_counter(self.db_name, entity_cls, self.settings.auto_id_start)
                    allocator.seed(entity_cls, self.settings.auto_id_start)
                else:
                    next_value = await self.adapter.retrieve_counter(self.db_name, entity_cls)
                    if next_value is None:
                        next_value = await self._first_free_id(entity_cls)
                        await self.adapter.store_counter(self.db_name, entity_cls, next_value)
                    allocator.seed(entity_cls, next_value)
        except StorageError as e:
            self._error(e)
            return
        self._log("Connection to database %s established.", self.db_name)

    async def _first_free_id(self, entity_cls: type[Entity]) -> int:
        """First auto-id above settings.auto_id_start and every stored identity."""
        id_attr = entity_cls.id_attribute
        stored = [
            record[id_attr]
            for record in await self.adapter.retrieve_all(self.db_name, entity_cls)
            if isinstance(record.get(id_attr), int) and not isinstance(record.get(id_attr), bool)
        ]
        return max([self.settings.auto_id_start, *(i + 1 for i in stored)])

    async def delete_database(self) -> None:
        """Drop the database and evict all cached instances."""
        try:
            await self.adapter.delete_db(self.db_name)
        except StorageError as e:
            self._error(e)
            return
        self.registry.cache.clear()
        self._log("Database %s deleted", self.db_name)

    async def clear_table(self, entity_cls: type[Entity]) -> None:
        """Delete every record of a type and evict its cached instances."""
        self._require_type(entity_cls)
        try:
            await self.adapter.clear_table(self.db_name, entity_cls)
        except StorageError as e:
            self._error(e)
            return
        self.registry.cache.clear(entity_cls)
        self._log("Table %s cleared.", entity_cls.__entity_meta__.table_name)

    async def clear_database(self) -> None:
        """Delete every record of every store and evict all cached instances."""
        try:
            await self.adapter.clear_db(self.db_name)
        except StorageError as e:
            self._error(e)
            return
        self.registry.cache.clear()
        self._log("All tables of %s cleared.", self.db_name)

    # Add

    async def add(
        self,
        entity_cls: type[Entity],
        record_or_records: Entity | Mapping[str, Any] | Sequence[Entity | Mapping[str, Any]],
    ) -> list[IdValue]:
        """Persist one or more records (or entities) of a type.

        Records missing an auto-id get one. With validate_before_save, each
        record is validated by constructing an instance (referential
        integrity suspended); invalid records and duplicate identities are
        logged and dropped, the rest are added in one atomic adapter call.

        Args:
            entity_cls: The entity type.
            record_or_records: A record or entity, or a list of them.

        Returns:
            Identities of the persisted records; empty if nothing was added.

        Raises:
            TypeError: If entity_cls is not registered or the second argument
                is not a record or a list of records.
        """
        self._require_type(entity_cls)
        if isinstance(record_or_records, Entity | Mapping):
            items: list[Entity | Mapping[str, Any]] = [record_or_records]
        elif isinstance(record_or_records, list | tuple) and all(
            isinstance(r, Entity | Mapping) for r in record_or_records
        ):
            items = list(record_or_records)
        else:
            raise TypeError(
                f"2nd argument of 'add' must be a record or record list! Invalid value: {record_or_records!r}"
            )

        id_attr = entity_cls.id_attribute
        allocator = self.registry.allocator
        records = [self.adapter.obj_to_record(item, entity_cls) for item in items]
        if self._has_auto_id(entity_cls):
            for record in records:
                if id_attr not in record:
                    record[id_attr] = allocator.assign(entity_cls)

        try:
            if self.settings.validate_before_save:
                accepted = await self._accept(entity_cls, records)
            else:
                accepted = [(record, None) for record in records]
            if not accepted:
                logger.warning("No %s record to add.", entity_cls.__name__)
                return []
            await self.adapter.add(self.db_name, entity_cls, [record for record, _ in accepted])
        except StorageError as e:
            self._error(e)
            return []

        identities: list[IdValue] = []
        with referential_integrity(False):
            for record, entity in accepted:
                identity = record[id_attr]
                identities.append(identity)
                if isinstance(identity, int) and not isinstance(identity, bool):
                    allocator.observe(entity_cls, identity)
                if entity is None:
                    entity = self._to_entity(record, entity_cls)
                if entity is not None:
                    self.registry.cache.put(entity)
        if self._has_auto_id(entity_cls):
            try:
                await self.adapter.store_counter(self.db_name, entity_cls, allocator.peek(entity_cls))
            except StorageError as e:
                self._error(e)
        self._log("%d %s(s) added.", len(identities), entity_cls.__name__)
        return identities

    async def _accept(
        self, entity_cls: type[Entity], records: list[Record]
    ) -> list[tuple[Record, Entity | None]]:
        """Validate records; keep the valid ones with unique identities.

        Returns:
            (canonical record, entity) pairs of the accepted records.
        """
        accepted: list[tuple[Record, Entity | None]] = []
        seen: set[IdValue] = set()
        for record in records:
            with referential_integrity(False):
                try:
                    entity = self.adapter.record_to_obj(record, entity_cls)
                except ConstraintViolation as e:
                    self._violation(e)
                    continue
            identity = entity.identity
            if identity in seen or await self.adapter.retrieve(self.db_name, entity_cls, identity) is not None:
                self._violation(
                    UniquenessConstraintViolation(
                        f"There is already a {entity_cls.__name__} with {entity_cls.id_attribute} {identity!r}!"
                    )
                )
                continue
            seen.add(identity)
            accepted.append((self.adapter.obj_to_record(entity, entity_cls), entity))
        return accepted

    def _to_entity[E: Entity](self, record: Mapping[str, Any], entity_cls: type[E]) -> E | None:
        try:
            return self.adapter.record_to_obj(record, entity_cls)
        except ConstraintViolation as e:
            self._violation(e)
            return None

    # Retrieve

    async def retrieve[E: Entity](self, entity_cls: type[E], identity: IdValue) -> E | None:
        """Retrieve one entity with its references resolved.

        Referenced entities are retrieved recursively (references to the same
        type are left as cached or as identities). Referential integrity is
        suspended meanwhile. The instance cache is not written.

        Returns:
            The entity, or None if it does not exist or is invalid.
        """
        self._require_type(entity_cls)
        identity = self._identity(entity_cls, identity)
        with referential_integrity(False):
            try:
                entity = await self._retrieve(entity_cls, identity, set())
            except StorageError as e:
                self._error(e)
                return None
        if entity is not None:
            self._log("%s %r retrieved.", entity_cls.__name__, identity)
        return entity

    async def _retrieve[E: Entity](
        self, entity_cls: type[E], identity: IdValue, visiting: set[IdentityKey]
    ) -> E | None:
        visiting.add(IdentityKey(entity_cls.__name__, identity))
        record = await self.adapter.retrieve(self.db_name, entity_cls, identity)
        if record is None:
            logger.error("Retrieval of %s %r failed!", entity_cls.__name__, identity)
            return None
        entity = self._to_entity(record, entity_cls)
        if entity is None:
            return None
        for name in entity_cls.reference_properties:
            prop = entity_cls.properties[name]
            ref_cls = self._ref_type(prop)
            if ref_cls is entity_cls or record.get(name) is None:
                continue
            for ref_id in reference_identities(record[name]):
                if IdentityKey(ref_cls.__name__, ref_id) in visiting:
                    continue
                target = await self._retrieve(ref_cls, ref_id, visiting)
                if target is not None:
                    _link(entity, prop, {target.identity: target})
        return entity

    async def retrieve_all[E: Entity](self, entity_cls: type[E]) -> dict[IdValue, E]:
        """Retrieve all entities of a type, replacing its cached population.

        All types reachable via reference and inverse reference properties
        are retrieved too, each at most once. References are then linked to
        the freshly loaded instances and inverse reference properties are
        populated.

        Returns:
            Identity -> entity map of the type's new population.
        """
        self._require_type(entity_cls)
        loaded: dict[type[Entity], dict[IdValue, Entity]] = {}
        with referential_integrity(False):
            try:
                await self._retrieve_all(entity_cls, loaded)
            except StorageError as e:
                self._error(e)
                return {}
        self._link_references(loaded)
        self._link_inverse_references(loaded)
        return self.registry.cache.all(entity_cls)  # type: ignore[return-value]

    async def _retrieve_all(
        self, entity_cls: type[Entity], loaded: dict[type[Entity], dict[IdValue, Entity]]
    ) -> None:
        loaded[entity_cls] = {}
        records = await self.adapter.retrieve_all(self.db_name, entity_cls)
        self._log("%d %s records retrieved.", len(records), entity_cls.__name__)
        for name in (*entity_cls.reference_properties, *entity_cls.inverse_reference_properties):
            ref_cls = self._ref_type(entity_cls.properties[name])
            if ref_cls not in loaded:
                await self._retrieve_all(ref_cls, loaded)
        instances: dict[IdValue, Entity] = {}
        for record in records:
            entity = self._to_entity(record, entity_cls)
            if entity is None:
                continue
            instances[entity.identity] = entity
            if isinstance(entity.identity, int) and not isinstance(entity.identity, bool):
                self.registry.allocator.observe(entity_cls, entity.identity)
        self.registry.cache.replace(entity_cls, instances)
        loaded[entity_cls] = instances

    def _link_references(self, loaded: dict[type[Entity], dict[IdValue, Entity]]) -> None:
        """Point reference slots at the instances loaded in this call."""
        for entity_cls, instances in loaded.items():
            for name in entity_cls.reference_properties:
                prop = entity_cls.properties[name]
                targets = loaded.get(self._ref_type(prop))
                if targets is None:
                    continue
                for entity in instances.values():
                    _link(entity, prop, targets)

    def _link_inverse_references(self, loaded: dict[type[Entity], dict[IdValue, Entity]]) -> None:
        """Populate inverse reference slots from the references loaded in this call."""
        for entity_cls, instances in loaded.items():
            for name in entity_cls.inverse_reference_properties:
                inv_prop = entity_cls.properties[name]
                sources = loaded.get(self._ref_type(inv_prop), {})
                ref_prop = self._inverted(inv_prop, self._ref_type(inv_prop))
                for entity in instances.values():
                    related = [
                        source
                        for source in sources.values()
                        if entity.identity in _referenced_identities(source, ref_prop)
                    ]
                    if not inv_prop.is_multi_valued:
                        inv_prop.store(entity, related[0] if related else None)
                    elif inv_prop.is_ordered:
                        inv_prop.store(entity, related)
                    else:
                        inv_prop.store(entity, {source.identity: source for source in related})

    @staticmethod
    def _inverted(inv_prop: Property, source_cls: type[Entity]) -> Property:
        try:
            return source_cls.properties[inv_prop.inverse_of]  # type: ignore[index]
        except KeyError:
            raise TypeError(
                f"{inv_prop.name} is declared as inverse of {source_cls.__name__}::{inv_prop.inverse_of}, "
                f"which does not exist"
            ) from None

    # Update

    async def update(
        self, entity_cls: type[Entity], identity: IdValue, slots: Mapping[str, Any]
    ) -> UpdateResult:
        """Write the changed properties of a stored entity.

        Each proposed slot is compared with the stored record; unchanged
        properties are neither validated nor written. If any changed property
        violates its constraints, nothing is written. Otherwise the adapter
        merges the changed properties and the cached instance, if any, has
        exactly those properties overwritten.

        Args:
            entity_cls: The entity type.
            identity: Identity of the entity to update.
            slots: Proposed property values. The identity property and
                inverse reference properties are ignored.

        Returns:
            The properties written, or the violations found.

        Raises:
            TypeError: If a slot name is not a declared property.
        """
        self._require_type(entity_cls)
        identity = self._identity(entity_cls, identity)
        unknown = [name for name in slots if name not in entity_cls.properties]
        if unknown:
            raise TypeError(f"{entity_cls.__name__} has no properties named {', '.join(unknown)}")
        result = UpdateResult()
        try:
            record = await self.adapter.retrieve(self.db_name, entity_cls, identity)
        except StorageError as e:
            self._error(e)
            return result
        if record is None:
            logger.error("There is no %s with ID %r in the database!", entity_cls.__name__, identity)
            return result
        result.found = True

        changes = {
            name: value
            for name, value in slots.items()
            if name != entity_cls.id_attribute
            and not entity_cls.properties[name].is_inverse_reference
            and _differs(entity_cls.properties[name], record.get(name), value)
        }
        if not changes:
            self._log("No property value changed for %s %r!", entity_cls.__name__, identity)
            return result

        checked: dict[str, Any] = {}
        with referential_integrity(self.settings.check_referential_integrity):
            for name, value in changes.items():
                outcome = check(name, entity_cls.properties[name], value, self.registry)
                if outcome.ok:
                    checked[name] = outcome.value
                else:
                    result.violations.extend(outcome.violations)
        if result.violations:
            for violation in result.violations:
                self._violation(violation)
            logger.warning("Update of %s %r aborted.", entity_cls.__name__, identity)
            return result

        record_slots = {
            name: None if value is None else value_to_storage(entity_cls.properties[name], value)
            for name, value in checked.items()
        }
        try:
            await self.adapter.update(self.db_name, entity_cls, identity, record_slots)
        except StorageError as e:
            self._error(e)
            return result
        cached = self.registry.cache.get(entity_cls, identity)
        if cached is not None:
            for name, value in checked.items():
                entity_cls.properties[name].store(cached, value)
        result.updated = list(checked)
        suffix = "ies" if len(result.updated) > 1 else "y"
        self._log(
            "Propert%s %s of %s %r updated.", suffix, ", ".join(result.updated), entity_cls.__name__, identity
        )
        return result

    # Destroy

    async def destroy(self, entity_cls: type[Entity], identity: IdValue) -> bool:
        """Delete a stored entity and evict it from the cache.

        Returns:
            True if a record was deleted; False if none exists.
        """
        self._require_type(entity_cls)
        identity = self._identity(entity_cls, identity)
        try:
            if await self.adapter.retrieve(self.db_name, entity_cls, identity) is None:
                logger.error("There is no %s with ID %r in the database!", entity_cls.__name__, identity)
                return False
            await self.adapter.destroy(self.db_name, entity_cls, identity)
        except StorageError as e:
            self._error(e)
            return False
        self.registry.cache.remove(entity_cls, identity)
        self._log("%s %r deleted.", entity_cls.__name__, identity)
        return True


def _referenced_identities(entity: Entity, prop: Property) -> list[IdValue]:
    value = getattr(entity, prop.name)
    if value is None:
        return []
    if prop.is_multi_valued:
        return reference_identities(value)
    return [reference_identity(value)]


def _link(entity: Entity, prop: Property, targets: Mapping[IdValue, Entity]) -> None:
    """Replace references in a slot by the targets with the same identity."""
    value = getattr(entity, prop.name)
    if value is None:
        return
    if not prop.is_multi_valued:
        prop.store(entity, targets.get(reference_identity(value), value))
        return
    items = list(value.values()) if isinstance(value, Mapping) else list(value)
    resolved = [targets.get(reference_identity(v), v) for v in items]
    if prop.is_ordered:
        prop.store(entity, resolved)
    else:
        prop.store(entity, {reference_identity(v): v for v in resolved})


def _proposed(prop: Property, value: Any) -> Any:
    """Record form of a proposed slot value, with strings coerced to the range's type.

    Reference values that are neither identities nor entities are kept as they
    are, so that the constraint check reports them.
    """
    if value is None or (isinstance(value, str) and value == ""):
        return None
    if isinstance(prop.range, EntityRef):
        if not prop.is_multi_valued:
            return _identity_of(value)
        if isinstance(value, Mapping):
            return [_identity_of(v) for v in value.values()]
        if isinstance(value, list | tuple):
            return [_identity_of(v) for v in value]
        return value
    if prop.is_multi_valued and isinstance(value, list | tuple):
        value = [coerce(prop.range, v) for v in value]
    else:
        value = coerce(prop.range, value)
    return value_to_storage(prop, value)


def _identity_of(value: Any) -> Any:
    return getattr(value, "identity", value)


def _differs(prop: Property, old: Any, value: Any) -> bool:
    """Compare a stored record value with a proposed slot value."""
    new = _proposed(prop, value)
    if prop.is_multi_valued and isinstance(old, list) and isinstance(new, list):
        return len(old) != len(new) or any(a != b for a, b in zip(old, new, strict=True))
    return bool(old != new)

"""Storage adapter protocol for swappable persistence backends.

An adapter translates the generic storage operations into the calls of one
persistence technology. Adapters work on raw records: reference resolution
and validation are the storage manager's job.

Usage:
    adapter = MemoryAdapter()
    manager = StorageManager(adapter, "library")
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol

from entityforge.core.identity import IdValue

if TYPE_CHECKING:
    from entityforge.core.entity import Entity

type Record = dict[str, Any]


class StorageAdapter(Protocol):
    """Abstract storage adapter interface. Implementations handle actual I/O."""

    name: str

    async def create_empty_db(self, db_name: str, entity_types: Sequence[type[Entity]]) -> None:
        """Idempotently create one store per entity type, keyed by identity."""
        ...

    async def has_contents(self, db_name: str) -> bool:
        """Check if any store of the database holds a record."""
        ...

    async def add(self, db_name: str, entity_cls: type[Entity], records: Sequence[Record]) -> None:
        """Insert records atomically: all of them or none."""
        ...

    async def retrieve(self, db_name: str, entity_cls: type[Entity], identity: IdValue) -> Record | None:
        """Get one record by identity, or None."""
        ...

    async def retrieve_all(self, db_name: str, entity_cls: type[Entity]) -> list[Record]:
        """Get every record of a type."""
        ...

    async def update(
        self,
        db_name: str,
        entity_cls: type[Entity],
        identity: IdValue,
        slots: Mapping[str, Any],
    ) -> None:
        """Merge the given slots into an existing record."""
        ...

    async def destroy(self, db_name: str, entity_cls: type[Entity], identity: IdValue) -> None:
        """Delete one record by identity."""
        ...

    async def clear_table(self, db_name: str, entity_cls: type[Entity]) -> None:
        """Delete every record of a type."""
        ...

    async def clear_db(self, db_name: str) -> None:
        """Delete every record of every store, atomically."""
        ...

    async def delete_db(self, db_name: str) -> None:
        """Drop the database with all its stores."""
        ...

    async def retrieve_counter(self, db_name: str, entity_cls: type[Entity]) -> int | None:
        """Get the persisted next auto-id of a type, or None."""
        ...

    async def store_counter(self, db_name: str, entity_cls: type[Entity], next_value: int) -> None:
        """Persist the next auto-id of a type."""
        ...

    def obj_to_record(self, source: Entity | Mapping[str, Any], entity_cls: type[Entity]) -> Record:
        """Collapse an entity or slot map to a record."""
        ...

    def record_to_obj[E: Entity](self, record: Mapping[str, Any], entity_cls: type[E]) -> E:
        """Expand a record to an entity instance."""
        ...

"""In-memory transactional key-value object store.

Named databases hold one store per entity type, keyed by identity. Bulk
operations stage their writes in a transaction whose operations are submitted
concurrently; the transaction commits only if every operation succeeds.

Usage:
    adapter = MemoryAdapter()
    await adapter.create_empty_db("library", [Book, Publisher])
    await adapter.add("library", Book, [{"isbn": "006251587X", "title": "Weaving the Web"}])
    state = adapter.snapshot()  # JSON string
"""

from __future__ import annotations

import asyncio
import copy as cp
import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any

from entityforge.core.entity import Entity
from entityforge.core.identity import IdValue
from entityforge.storage.base import RecordConverter
from entityforge.storage.errors import (
    DuplicateKeyError,
    RecordNotFoundError,
    StorageError,
    StoreNotFoundError,
)
from entityforge.storage.protocol import Record

logger = logging.getLogger(__name__)

type Table = dict[IdValue, Record]


class _Transaction:
    """Copy-on-write view of some stores of a database.

    Operations write to staged copies of the stores; commit() publishes them.
    """

    def __init__(self, database: dict[str, Table], table_names: Iterable[str]):
        self._database = database
        self.staged: dict[str, Table] = {name: dict(database[name]) for name in table_names}

    async def run(self, operations: Iterable[Callable[[], Awaitable[None]]]) -> None:
        """Submit all operations concurrently, then commit if none failed."""
        await asyncio.gather(*(op() for op in operations))
        self._database.update(self.staged)


class MemoryAdapter(RecordConverter):
    """Dict-based transactional object store.

    Structure:
        _databases[db_name][table_name][identity] = record

    Records are deep-copied on the way in and out, so callers never share
    state with the store.
    """

    name = "memory"

    def __init__(self) -> None:
        self._databases: dict[str, dict[str, Table]] = {}
        self._counters: dict[str, dict[str, int]] = {}

    def _database(self, db_name: str) -> dict[str, Table]:
        try:
            return self._databases[db_name]
        except KeyError:
            raise StoreNotFoundError(f"Database {db_name} not found!") from None

    def _table(self, db_name: str, entity_cls: type[Entity]) -> Table:
        table_name = entity_cls.__entity_meta__.table_name
        try:
            return self._database(db_name)[table_name]
        except KeyError:
            raise StoreNotFoundError(f"Object store {table_name} not found in {db_name}!") from None

    async def create_empty_db(self, db_name: str, entity_types: Sequence[type[Entity]]) -> None:
        database = self._databases.setdefault(db_name, {})
        self._counters.setdefault(db_name, {})
        for entity_cls in entity_types:
            database.setdefault(entity_cls.__entity_meta__.table_name, {})

    async def has_contents(self, db_name: str) -> bool:
        database = self._databases.get(db_name, {})
        return any(database.values())

    async def add(self, db_name: str, entity_cls: type[Entity], records: Sequence[Record]) -> None:
        """Insert records in one transaction.

        Raises:
            StoreNotFoundError: If the type's store does not exist.
            StorageError: If a record has no identity.
            DuplicateKeyError: If an identity is already stored or repeated.
        """
        self._table(db_name, entity_cls)
        table_name = entity_cls.__entity_meta__.table_name
        id_attr = entity_cls.id_attribute
        transaction = _Transaction(self._database(db_name), [table_name])
        staged = transaction.staged[table_name]

        def put(record: Record) -> Callable[[], Awaitable[None]]:
            async def op() -> None:
                key = record.get(id_attr)
                if key is None:
                    raise StorageError(f"Missing ID value in {entity_cls.__name__} record: {record!r}")
                if key in staged:
                    raise DuplicateKeyError(f"{entity_cls.__name__} {key!r} already exists")
                staged[key] = cp.deepcopy(dict(record))

            return op

        await transaction.run(put(r) for r in records)

    async def retrieve(self, db_name: str, entity_cls: type[Entity], identity: IdValue) -> Record | None:
        record = self._table(db_name, entity_cls).get(identity)
        return cp.deepcopy(record) if record is not None else None

    async def retrieve_all(self, db_name: str, entity_cls: type[Entity]) -> list[Record]:
        return [cp.deepcopy(r) for r in self._table(db_name, entity_cls).values()]

    async def update(
        self,
        db_name: str,
        entity_cls: type[Entity],
        identity: IdValue,
        slots: Mapping[str, Any],
    ) -> None:
        """Merge slots into a stored record.

        Raises:
            RecordNotFoundError: If no record has the identity.
        """
        record = self._table(db_name, entity_cls).get(identity)
        if record is None:
            raise RecordNotFoundError(f"{entity_cls.__name__} {identity!r} not found")
        for name, value in slots.items():
            if value is None:
                record.pop(name, None)
            else:
                record[name] = cp.deepcopy(value)

    async def destroy(self, db_name: str, entity_cls: type[Entity], identity: IdValue) -> None:
        table = self._table(db_name, entity_cls)
        if table.pop(identity, None) is None:
            raise RecordNotFoundError(f"{entity_cls.__name__} {identity!r} not found")

    async def clear_table(self, db_name: str, entity_cls: type[Entity]) -> None:
        self._table(db_name, entity_cls).clear()

    async def clear_db(self, db_name: str) -> None:
        """Clear every store of the database in one transaction."""
        database = self._database(db_name)
        transaction = _Transaction(database, database.keys())

        def clear(table_name: str) -> Callable[[], Awaitable[None]]:
            async def op() -> None:
                transaction.staged[table_name].clear()

            return op

        await transaction.run(clear(name) for name in list(database))
        self._counters[db_name] = {}

    async def delete_db(self, db_name: str) -> None:
        self._databases.pop(db_name, None)
        self._counters.pop(db_name, None)

    async def retrieve_counter(self, db_name: str, entity_cls: type[Entity]) -> int | None:
        return self._counters.get(db_name, {}).get(entity_cls.__name__)

    async def store_counter(self, db_name: str, entity_cls: type[Entity], next_value: int) -> None:
        self._database(db_name)
        self._counters.setdefault(db_name, {})[entity_cls.__name__] = next_value

    def snapshot(self) -> str:
        """Serialize all databases and counters to a JSON string."""
        state = {
            "databases": {
                db_name: {name: [[key, record] for key, record in table.items()] for name, table in database.items()}
                for db_name, database in self._databases.items()
            },
            "counters": self._counters,
        }
        return json.dumps(state)

    def restore(self, data: str) -> None:
        """Replace all state with a snapshot taken by snapshot().

        Raises:
            StorageError: If data is not a valid snapshot.
        """
        try:
            state = json.loads(data)
            databases = {
                db_name: {name: {key: record for key, record in rows} for name, rows in database.items()}
                for db_name, database in state["databases"].items()
            }
            counters = {db_name: dict(c) for db_name, c in state["counters"].items()}
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Invalid snapshot: {e}") from e
        self._databases = databases
        self._counters = counters
        logger.debug("Restored %d database(s) from snapshot", len(databases))

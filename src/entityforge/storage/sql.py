"""SQL storage adapter using SQLAlchemy Core.

One table per database and entity type, named ``<db_name>__<table_name>``,
holding the JSON-encoded identity as primary key and the record as a JSON
column. Auto-id counters live in a shared ``entityforge_counters`` table.
Each operation runs in its own ``engine.begin()`` transaction, so bulk adds
and database clears are atomic.

Usage:
    adapter = SqlAdapter("sqlite:///library.db")
    manager = StorageManager(adapter, "library")
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    insert,
    inspect,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

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

COUNTERS_TABLE = "entityforge_counters"


@contextmanager
def _translated(action: str) -> Iterator[None]:
    """Translate SQLAlchemy exceptions into storage errors."""
    try:
        yield
    except IntegrityError as e:
        raise DuplicateKeyError(f"{action}: {e.orig}") from e
    except SQLAlchemyError as e:
        raise StorageError(f"{action}: {e}") from e


def _encode_key(identity: IdValue) -> str:
    return json.dumps(identity)


def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


class SqlAdapter(RecordConverter):
    """Relational storage adapter.

    Args:
        url: SQLAlchemy database URL. In-memory SQLite URLs share one
            connection so all operations see the same database.
        engine: An existing engine to use instead of creating one from url.
    """

    name = "sql"

    def __init__(self, url: str = "sqlite://", engine: Engine | None = None):
        if engine is None:
            if _is_memory_url(url):
                engine = create_engine(
                    url, poolclass=StaticPool, connect_args={"check_same_thread": False}
                )
            else:
                engine = create_engine(url)
        self._engine = engine
        self._metadata = MetaData()
        self._counters = Table(
            COUNTERS_TABLE,
            self._metadata,
            Column("db_name", String(255), primary_key=True),
            Column("type_name", String(255), primary_key=True),
            Column("next_value", Integer, nullable=False),
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    def _table(self, physical_name: str) -> Table:
        table = self._metadata.tables.get(physical_name)
        if table is None:
            table = Table(
                physical_name,
                self._metadata,
                Column("key", String(255), primary_key=True),
                Column("record", JSON, nullable=False),
            )
        return table

    def _entity_table(self, db_name: str, entity_cls: type[Entity], conn: Connection) -> Table:
        physical_name = f"{db_name}__{entity_cls.__entity_meta__.table_name}"
        if not inspect(conn).has_table(physical_name):
            raise StoreNotFoundError(f"Object store {physical_name} not found!")
        return self._table(physical_name)

    def _db_tables(self, db_name: str, conn: Connection) -> list[Table]:
        prefix = f"{db_name}__"
        return [self._table(name) for name in inspect(conn).get_table_names() if name.startswith(prefix)]

    # Sync implementations

    def _create_empty_db(self, db_name: str, entity_types: Sequence[type[Entity]]) -> None:
        tables = [self._table(f"{db_name}__{cls.__entity_meta__.table_name}") for cls in entity_types]
        with _translated(f"Creating database {db_name}"):
            self._metadata.create_all(self._engine, tables=[self._counters, *tables], checkfirst=True)

    def _has_contents(self, db_name: str) -> bool:
        with _translated(f"Inspecting database {db_name}"), self._engine.connect() as conn:
            return any(
                conn.execute(select(table.c.key).limit(1)).first() is not None
                for table in self._db_tables(db_name, conn)
            )

    def _add(self, db_name: str, entity_cls: type[Entity], records: Sequence[Record]) -> None:
        id_attr = entity_cls.id_attribute
        rows = []
        for record in records:
            identity = record.get(id_attr)
            if identity is None:
                raise StorageError(f"Missing ID value in {entity_cls.__name__} record: {record!r}")
            rows.append({"key": _encode_key(identity), "record": dict(record)})
        with _translated(f"Adding {entity_cls.__name__} records"), self._engine.begin() as conn:
            table = self._entity_table(db_name, entity_cls, conn)
            if rows:
                conn.execute(insert(table), rows)

    def _retrieve(self, db_name: str, entity_cls: type[Entity], identity: IdValue) -> Record | None:
        with _translated(f"Retrieving {entity_cls.__name__} {identity!r}"), self._engine.connect() as conn:
            table = self._entity_table(db_name, entity_cls, conn)
            query = select(table.c.record).where(table.c.key == _encode_key(identity))
            return conn.execute(query).scalar_one_or_none()  # type: ignore[no-any-return]

    def _retrieve_all(self, db_name: str, entity_cls: type[Entity]) -> list[Record]:
        with _translated(f"Retrieving {entity_cls.__name__} records"), self._engine.connect() as conn:
            table = self._entity_table(db_name, entity_cls, conn)
            return list(conn.execute(select(table.c.record)).scalars())

    def _update(self, db_name: str, entity_cls: type[Entity], identity: IdValue, slots: Mapping[str, Any]) -> None:
        key = _encode_key(identity)
        with _translated(f"Updating {entity_cls.__name__} {identity!r}"), self._engine.begin() as conn:
            table = self._entity_table(db_name, entity_cls, conn)
            record = conn.execute(select(table.c.record).where(table.c.key == key)).scalar_one_or_none()
            if record is None:
                raise RecordNotFoundError(f"{entity_cls.__name__} {identity!r} not found")
            merged = dict(record)
            for name, value in slots.items():
                if value is None:
                    merged.pop(name, None)
                else:
                    merged[name] = value
            conn.execute(update(table).where(table.c.key == key).values(record=merged))

    def _destroy(self, db_name: str, entity_cls: type[Entity], identity: IdValue) -> None:
        with _translated(f"Deleting {entity_cls.__name__} {identity!r}"), self._engine.begin() as conn:
            table = self._entity_table(db_name, entity_cls, conn)
            result = conn.execute(delete(table).where(table.c.key == _encode_key(identity)))
            if result.rowcount == 0:
                raise RecordNotFoundError(f"{entity_cls.__name__} {identity!r} not found")

    def _clear_table(self, db_name: str, entity_cls: type[Entity]) -> None:
        with _translated(f"Clearing {entity_cls.__name__} records"), self._engine.begin() as conn:
            conn.execute(delete(self._entity_table(db_name, entity_cls, conn)))

    def _clear_db(self, db_name: str) -> None:
        with _translated(f"Clearing database {db_name}"), self._engine.begin() as conn:
            tables = self._db_tables(db_name, conn)
            if not tables:
                raise StoreNotFoundError(f"Database {db_name} not found!")
            for table in tables:
                conn.execute(delete(table))
            conn.execute(delete(self._counters).where(self._counters.c.db_name == db_name))

    def _delete_db(self, db_name: str) -> None:
        with _translated(f"Deleting database {db_name}"), self._engine.begin() as conn:
            for table in self._db_tables(db_name, conn):
                table.drop(conn)
                self._metadata.remove(table)
            if inspect(conn).has_table(COUNTERS_TABLE):
                conn.execute(delete(self._counters).where(self._counters.c.db_name == db_name))

    def _retrieve_counter(self, db_name: str, entity_cls: type[Entity]) -> int | None:
        counters = self._counters
        query = select(counters.c.next_value).where(
            counters.c.db_name == db_name, counters.c.type_name == entity_cls.__name__
        )
        with _translated(f"Reading {entity_cls.__name__} counter"), self._engine.connect() as conn:
            if not inspect(conn).has_table(COUNTERS_TABLE):
                return None
            return conn.execute(query).scalar_one_or_none()  # type: ignore[no-any-return]

    def _store_counter(self, db_name: str, entity_cls: type[Entity], next_value: int) -> None:
        counters = self._counters
        where = (counters.c.db_name == db_name, counters.c.type_name == entity_cls.__name__)
        with _translated(f"Storing {entity_cls.__name__} counter"), self._engine.begin() as conn:
            if not inspect(conn).has_table(COUNTERS_TABLE):
                raise StoreNotFoundError(f"Database {db_name} not found!")
            result = conn.execute(update(counters).where(*where).values(next_value=next_value))
            if result.rowcount == 0:
                conn.execute(
                    insert(counters).values(
                        db_name=db_name, type_name=entity_cls.__name__, next_value=next_value
                    )
                )

    # Async interface (wrappers for the sync implementation)

    async def create_empty_db(self, db_name: str, entity_types: Sequence[type[Entity]]) -> None:
        self._create_empty_db(db_name, entity_types)

    async def has_contents(self, db_name: str) -> bool:
        return self._has_contents(db_name)

    async def add(self, db_name: str, entity_cls: type[Entity], records: Sequence[Record]) -> None:
        self._add(db_name, entity_cls, records)

    async def retrieve(self, db_name: str, entity_cls: type[Entity], identity: IdValue) -> Record | None:
        return self._retrieve(db_name, entity_cls, identity)

    async def retrieve_all(self, db_name: str, entity_cls: type[Entity]) -> list[Record]:
        return self._retrieve_all(db_name, entity_cls)

    async def update(
        self,
        db_name: str,
        entity_cls: type[Entity],
        identity: IdValue,
        slots: Mapping[str, Any],
    ) -> None:
        self._update(db_name, entity_cls, identity, slots)

    async def destroy(self, db_name: str, entity_cls: type[Entity], identity: IdValue) -> None:
        self._destroy(db_name, entity_cls, identity)

    async def clear_table(self, db_name: str, entity_cls: type[Entity]) -> None:
        self._clear_table(db_name, entity_cls)

    async def clear_db(self, db_name: str) -> None:
        self._clear_db(db_name)

    async def delete_db(self, db_name: str) -> None:
        self._delete_db(db_name)
        logger.debug("Dropped tables of database %s", db_name)

    async def retrieve_counter(self, db_name: str, entity_cls: type[Entity]) -> int | None:
        return self._retrieve_counter(db_name, entity_cls)

    async def store_counter(self, db_name: str, entity_cls: type[Entity], next_value: int) -> None:
        self._store_counter(db_name, entity_cls, next_value)

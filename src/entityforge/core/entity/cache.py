"""Explicit repository of living entity instances, per entity type.

The cache is owned by an EntityTypeRegistry and written only by the storage
manager: retrieve_all replaces a type's population, add and update patch it,
destroy removes from it. check() reads it to resolve identity references.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING

from entityforge.core.identity import IdValue

if TYPE_CHECKING:
    from entityforge.core.entity.core import Entity


class InstanceCache:
    """Per-type map from identity to entity instance."""

    def __init__(self) -> None:
        self._instances: dict[str, dict[IdValue, Entity]] = {}

    def _table(self, entity_cls: type[Entity]) -> dict[IdValue, Entity]:
        return self._instances.setdefault(entity_cls.__name__, {})

    def get(self, entity_cls: type[Entity], identity: IdValue) -> Entity | None:
        """Get a cached instance, or None if not cached."""
        return self._instances.get(entity_cls.__name__, {}).get(identity)

    def put(self, entity: Entity) -> None:
        """Cache an instance under its type and identity."""
        self._table(type(entity))[entity.identity] = entity

    def remove(self, entity_cls: type[Entity], identity: IdValue) -> Entity | None:
        """Evict an instance.

        Returns:
            The evicted instance, or None if it was not cached.
        """
        return self._instances.get(entity_cls.__name__, {}).pop(identity, None)

    def replace(self, entity_cls: type[Entity], instances: Mapping[IdValue, Entity]) -> None:
        """Replace the whole population of a type."""
        self._instances[entity_cls.__name__] = dict(instances)

    def all(self, entity_cls: type[Entity]) -> dict[IdValue, Entity]:
        """Snapshot of the population of a type."""
        return dict(self._instances.get(entity_cls.__name__, {}))

    def ids(self, entity_cls: type[Entity]) -> list[IdValue]:
        return list(self._instances.get(entity_cls.__name__, {}))

    def clear(self, entity_cls: type[Entity] | None = None) -> None:
        """Evict one type's population, or every type's."""
        if entity_cls is None:
            self._instances.clear()
        else:
            self._instances.pop(entity_cls.__name__, None)

    def __contains__(self, key: tuple[type[Entity], IdValue]) -> bool:
        entity_cls, identity = key
        return identity in self._instances.get(entity_cls.__name__, {})

    def __iter__(self) -> Iterator[str]:
        return iter(self._instances)

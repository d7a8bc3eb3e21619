"""Record conversion shared by the bundled adapters."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from entityforge.core.entity import Entity, obj_to_record, record_to_obj
from entityforge.storage.protocol import Record


class RecordConverter:
    """Converts between entities and records.

    Records of the bundled adapters are JSON-compatible: references become
    identities, multi-valued references identity lists, dates ISO strings.
    """

    def obj_to_record(self, source: Entity | Mapping[str, Any], entity_cls: type[Entity]) -> Record:
        return obj_to_record(source, entity_cls)

    def record_to_obj[E: Entity](self, record: Mapping[str, Any], entity_cls: type[E]) -> E:
        return record_to_obj(record, entity_cls)

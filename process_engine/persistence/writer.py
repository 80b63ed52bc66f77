"""
Writer visitor: flattens an entity graph into string records.

Each entity becomes one flat ``{field: str}`` record keyed by its uuid, the
shape of a Redis hash. Owned entities (a SubProcessTask's process, a
process's tasks) are written as records of their own and referenced by uuid.
"""

import json
from typing import Any, Optional

from process_engine.core.registry import DefinitionRegistry
from process_engine.persistence.visitor import Persistable, Visitor

Record = dict[str, str]

ENTITY_FIELD = "entity"
STATE_FIELD = "state"
ERROR_FIELD = "error"


def dump_args(value: Any) -> str:
    return json.dumps(value, default=str)


def state_fields(entity: Any) -> Record:
    """Fields that track runtime state outside the visitor protocol."""
    fields = {STATE_FIELD: entity.current_state.value}
    error = getattr(entity, "error", None)
    if error is not None:
        fields[ERROR_FIELD] = error if isinstance(error, str) else repr(error)
    return fields


class WriterVisitor(Visitor):
    """Collects one record per entity reachable through owned fields."""

    def __init__(
        self,
        registry: DefinitionRegistry,
        records: Optional[dict[str, Record]] = None,
    ):
        self.registry = registry
        self.records: dict[str, Record] = records if records is not None else {}
        self._instance: Any = None
        self._record: Record = {}

    def write(self, entity: Persistable) -> dict[str, Record]:
        """Write ``entity`` and everything it owns; returns all records."""
        self._instance = entity
        self._record = {ENTITY_FIELD: type(entity).__name__}
        self._record.update(state_fields(entity))

        entity.accept(self)

        self.records[entity.uuid] = self._record
        return self.records

    def _value(self, name: str) -> Any:
        return getattr(self._instance, name)

    def visit_type(self, name: str) -> None:
        self._record[name] = self.registry.name_for(name, self._value(name))

    def visit_attribute(self, name: str) -> None:
        value = self._value(name)
        self._record[name] = "" if value is None else str(value)

    def visit_args(self, name: str) -> None:
        self._record[name] = dump_args(self._value(name))

    def visit_process_reference(self, name: str) -> None:
        self._write_reference(name)

    def visit_task_reference(self, name: str) -> None:
        self._write_reference(name)

    def visit_process(self, name: str) -> None:
        owned = self._value(name)
        self._record[name] = owned.uuid
        WriterVisitor(self.registry, self.records).write(owned)

    def visit_tasks(self, name: str) -> None:
        tasks = list(self._value(name))
        self._record[name] = json.dumps([task.uuid for task in tasks])
        for task in tasks:
            WriterVisitor(self.registry, self.records).write(task)

    def _write_reference(self, name: str) -> None:
        referenced = self._value(name)
        self._record[name] = "" if referenced is None else referenced.uuid

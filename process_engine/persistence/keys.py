"""
Visitor collecting the uuids of an entity and everything it owns.

Used by retention policies that delete a finished graph; references are not
followed, so deleting a task never deletes its process.
"""

from typing import Any

from process_engine.persistence.visitor import Persistable, Visitor


class KeyCollectorVisitor(Visitor):
    """Walks owned fields only and records every uuid it meets."""

    def __init__(self) -> None:
        self.uuids: list[str] = []
        self._instance: Any = None

    def collect(self, entity: Persistable) -> list[str]:
        previous = self._instance
        self._instance = entity
        self.uuids.append(entity.uuid)
        entity.accept(self)
        self._instance = previous
        return self.uuids

    def visit_process(self, name: str) -> None:
        self.collect(getattr(self._instance, name))

    def visit_tasks(self, name: str) -> None:
        for task in getattr(self._instance, name):
            self.collect(task)

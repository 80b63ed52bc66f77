"""
Store collaborator: persists entity records and answers loads.

Backends implement a handful of record operations on flat string hashes;
everything entity-shaped is done here through the visitor protocol.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from process_engine.core.registry import DefinitionRegistry
from process_engine.persistence.keys import KeyCollectorVisitor
from process_engine.persistence.reader import LoadSession
from process_engine.persistence.writer import Record, WriterVisitor, state_fields

if TYPE_CHECKING:
    from process_engine.core.context import EngineContext
    from process_engine.core.process import Process

logger = logging.getLogger(__name__)

COMPLETED_COUNT_FIELD = "completed_count"


class Store(ABC):
    """
    Base store.

    ``save`` is overwrite-safe: re-saving an entity in the same state writes
    the same fields again and leaves runtime counters alone.
    """

    def __init__(self, registry: Optional[DefinitionRegistry] = None):
        self._registry = registry
        self.context: Optional["EngineContext"] = None

    def attach(self, context: "EngineContext") -> None:
        """Bind to the context whose processes this store loads."""
        self.context = context

    @property
    def registry(self) -> DefinitionRegistry:
        if self.context is not None:
            return self.context.registry
        if self._registry is None:
            self._registry = DefinitionRegistry()
        return self._registry

    # ==================== Record operations ====================

    @abstractmethod
    def read_record(self, uuid: str) -> Optional[Record]:
        """Return the record for ``uuid``, or None when nothing is persisted."""

    @abstractmethod
    def write_records(self, records: dict[str, Record]) -> None:
        """Write (merge) several records at once."""

    @abstractmethod
    def update_fields(self, uuid: str, fields: Record) -> None:
        """Merge ``fields`` into one record."""

    @abstractmethod
    def increment_field(self, uuid: str, field: str) -> int:
        """Atomically increment an integer field and return the new value."""

    @abstractmethod
    def delete_records(self, uuids: list[str]) -> int:
        """Delete records; returns how many existed."""

    # ==================== Entity operations ====================

    def save(self, entity: Any) -> None:
        """Persist ``entity`` and everything it owns."""
        records = WriterVisitor(self.registry).write(entity)
        self.write_records(records)
        logger.debug(f"Saved {entity} ({len(records)} records)")

    def load(self, uuid: str) -> Any:
        """
        Rebuild an entity by uuid.

        Raises:
            EntityNotFoundError: If nothing is persisted for the uuid
        """
        return LoadSession(self).resolve(uuid)

    def reload(self, entity: Any) -> bool:
        """Refresh an entity's runtime state; False when nothing is persisted."""
        record = self.read_record(entity.uuid)
        if not record:
            return False
        entity._reload_from(record)
        return True

    def persist_state(self, entity: Any) -> None:
        """Write the entity's current state (and error, if any)."""
        self.update_fields(entity.uuid, state_fields(entity))

    def increment_completed(self, process: "Process") -> int:
        """Count one more completed child of a concurrent process."""
        return self.increment_field(process.uuid, COMPLETED_COUNT_FIELD)

    def completed_count(self, process: "Process") -> int:
        record = self.read_record(process.uuid) or {}
        return int(record.get(COMPLETED_COUNT_FIELD) or 0)

    def exists(self, uuid: str) -> bool:
        return bool(self.read_record(uuid))

    def delete(self, entity: Any) -> int:
        """Delete an entity and everything it owns. For retention policies."""
        uuids = KeyCollectorVisitor().collect(entity)
        deleted = self.delete_records(uuids)
        logger.info(f"Deleted {deleted} records for {entity}")
        return deleted

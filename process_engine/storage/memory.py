"""
In-memory store.

Keeps the same flat string records the Redis store writes, guarded by one
lock, so it can stand in for Redis in tests and single-process setups.
"""

import threading
from typing import Optional

from process_engine.core.registry import DefinitionRegistry
from process_engine.persistence.writer import Record
from process_engine.storage.base import Store


class MemoryStore(Store):
    """Dictionary of records keyed by uuid."""

    def __init__(self, registry: Optional[DefinitionRegistry] = None):
        super().__init__(registry)
        self._records: dict[str, Record] = {}
        self._lock = threading.Lock()

    def read_record(self, uuid: str) -> Optional[Record]:
        with self._lock:
            record = self._records.get(uuid)
            return dict(record) if record else None

    def write_records(self, records: dict[str, Record]) -> None:
        with self._lock:
            for uuid, record in records.items():
                self._records.setdefault(uuid, {}).update(record)

    def update_fields(self, uuid: str, fields: Record) -> None:
        with self._lock:
            self._records.setdefault(uuid, {}).update(fields)

    def increment_field(self, uuid: str, field: str) -> int:
        with self._lock:
            record = self._records.setdefault(uuid, {})
            value = int(record.get(field) or 0) + 1
            record[field] = str(value)
            return value

    def delete_records(self, uuids: list[str]) -> int:
        with self._lock:
            deleted = 0
            for uuid in uuids:
                if self._records.pop(uuid, None) is not None:
                    deleted += 1
            return deleted

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

"""
Redis store: one hash per entity.

Keys are ``<prefix>:entity:<uuid>``. Concurrent completion counting runs in
a Lua script so the increment and the existence check are one atomic step,
however many workers finish siblings at once.
"""

import logging
from typing import Any, Optional

import redis

from process_engine.config import Settings, get_settings
from process_engine.core.exceptions import EntityNotFoundError
from process_engine.core.registry import DefinitionRegistry
from process_engine.persistence.writer import Record
from process_engine.storage.base import Store

logger = logging.getLogger(__name__)


# Increments a field of an existing hash.
# Returns -1 if the hash does not exist (entity never saved)
INCREMENT_IF_EXISTS_SCRIPT = """
local key = KEYS[1]
local field = ARGV[1]

if redis.call("EXISTS", key) == 0 then
    return -1
end

return redis.call("HINCRBY", key, field, 1)
"""


class RedisStore(Store):
    """Store backed by Redis hashes."""

    def __init__(
        self,
        client: redis.Redis,
        registry: Optional[DefinitionRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(registry)
        self.client = client
        self.settings = settings or get_settings()
        self.prefix = f"{self.settings.redis.key_prefix}:entity:"
        self._increment_script: Optional[Any] = None

    def _key(self, uuid: str) -> str:
        return f"{self.prefix}{uuid}"

    def read_record(self, uuid: str) -> Optional[Record]:
        record = self.client.hgetall(self._key(uuid))
        return dict(record) if record else None

    def write_records(self, records: dict[str, Record]) -> None:
        with self.client.pipeline(transaction=True) as pipe:
            for uuid, record in records.items():
                pipe.hset(self._key(uuid), mapping=record)
            pipe.execute()

    def update_fields(self, uuid: str, fields: Record) -> None:
        self.client.hset(self._key(uuid), mapping=fields)

    def increment_field(self, uuid: str, field: str) -> int:
        if self._increment_script is None:
            self._increment_script = self.client.register_script(INCREMENT_IF_EXISTS_SCRIPT)

        result = int(self._increment_script(keys=[self._key(uuid)], args=[field]))

        if result == -1:
            raise EntityNotFoundError(uuid)
        return result

    def delete_records(self, uuids: list[str]) -> int:
        if not uuids:
            return 0
        return int(self.client.delete(*(self._key(uuid) for uuid in uuids)))

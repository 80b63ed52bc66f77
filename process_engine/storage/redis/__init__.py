"""Redis storage layer."""

from process_engine.storage.redis.connection import close_redis, get_redis
from process_engine.storage.redis.store import RedisStore

__all__ = ["RedisStore", "get_redis", "close_redis"]

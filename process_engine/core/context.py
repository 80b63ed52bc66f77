"""
Engine context: the collaborators a process graph runs against.

A context bundles the work queue, the store and the definition registry.
It is built once at startup and handed to every process; nothing in the
engine reaches for a global queue or store.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from process_engine.core.registry import DefinitionRegistry

if TYPE_CHECKING:
    from process_engine.config import Settings
    from process_engine.messaging.base import WorkQueue
    from process_engine.storage.base import Store

logger = logging.getLogger(__name__)


@dataclass
class EngineContext:
    """Queue, store and registry shared by one engine instance."""

    queue: Optional["WorkQueue"] = None
    store: Optional["Store"] = None
    registry: DefinitionRegistry = field(default_factory=DefinitionRegistry)

    def __post_init__(self) -> None:
        if self.store is not None:
            self.store.attach(self)

    def load(self, uuid: str) -> Any:
        """Load a persisted task or process by uuid."""
        if self.store is None:
            raise RuntimeError("No store configured")
        return self.store.load(uuid)


def create_context(
    settings: Optional["Settings"] = None,
    registry: Optional[DefinitionRegistry] = None,
) -> EngineContext:
    """
    Build a context from settings.

    Memory backends need nothing else; Redis backends share one client.
    """
    from process_engine.config import Backend, get_settings
    from process_engine.messaging.memory import MemoryQueue
    from process_engine.storage.memory import MemoryStore

    settings = settings or get_settings()
    registry = registry or DefinitionRegistry()

    client = None
    if Backend.REDIS in (settings.queue.backend, settings.store.backend):
        from process_engine.storage.redis.connection import get_redis

        client = get_redis()

    if settings.queue.backend == Backend.REDIS:
        from process_engine.messaging.redis_queue import RedisQueue

        queue = RedisQueue(client, settings=settings)
    else:
        queue = MemoryQueue()

    if settings.store.backend == Backend.REDIS:
        from process_engine.storage.redis.store import RedisStore

        store = RedisStore(client, settings=settings)
    else:
        store = MemoryStore()

    logger.info(
        f"Engine context created - queue: {settings.queue.backend.value}, "
        f"store: {settings.store.backend.value}"
    )

    return EngineContext(queue=queue, store=store, registry=registry)

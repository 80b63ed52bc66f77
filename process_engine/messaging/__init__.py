"""Work queue collaborators."""

from process_engine.messaging.base import WorkQueue
from process_engine.messaging.memory import MemoryQueue
from process_engine.messaging.models import Lane, QueueItem

__all__ = ["WorkQueue", "MemoryQueue", "Lane", "QueueItem"]

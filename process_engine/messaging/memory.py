"""
In-memory work queue.
"""

import threading
from collections import deque
from typing import Optional

from process_engine.messaging.base import WorkQueue
from process_engine.messaging.models import Lane, QueueItem


class MemoryQueue(WorkQueue):
    """Thread-safe deques, one per lane."""

    def __init__(self) -> None:
        self._lanes: dict[Lane, deque[QueueItem]] = {lane: deque() for lane in Lane}
        self._lock = threading.Lock()

    def push(self, item: QueueItem) -> QueueItem:
        with self._lock:
            self._lanes[item.lane].append(item)
        return item

    def pop(self, lane: Lane) -> Optional[QueueItem]:
        with self._lock:
            items = self._lanes[lane]
            return items.popleft() if items else None

    def pending(self, lane: Lane) -> int:
        with self._lock:
            return len(self._lanes[lane])

    def items(self, lane: Lane) -> list[QueueItem]:
        """Snapshot of a lane, oldest first."""
        with self._lock:
            return list(self._lanes[lane])

    @property
    def processes(self) -> list[QueueItem]:
        return self.items(Lane.PROCESSES)

    @property
    def tasks(self) -> list[QueueItem]:
        return self.items(Lane.TASKS)

    @property
    def jobs(self) -> list[QueueItem]:
        return self.items(Lane.JOBS)

    def clear(self) -> None:
        with self._lock:
            for items in self._lanes.values():
                items.clear()

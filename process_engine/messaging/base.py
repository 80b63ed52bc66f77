"""
Work queue collaborator.

The engine only needs to place items and, for diagnostics, count what is
pending. Workers additionally pull items back out in FIFO order per lane.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from process_engine.messaging.models import Lane, QueueItem

if TYPE_CHECKING:
    from process_engine.core.process import Process
    from process_engine.core.task import Task


class WorkQueue(ABC):
    """Base work queue with one FIFO lane per item kind."""

    def enqueue_task(self, task: "Task") -> QueueItem:
        """Place a task reference for later dispatch."""
        return self.push(QueueItem(lane=Lane.TASKS, uuid=task.uuid, queue=task.queue))

    def enqueue_job(
        self,
        job: str,
        args: Any,
        *,
        task_uuid: str,
        queue: Optional[str] = None,
    ) -> QueueItem:
        """Place a background-job request for the task that owns it."""
        return self.push(
            QueueItem(lane=Lane.JOBS, uuid=task_uuid, job=job, args=args, queue=queue)
        )

    def enqueue_process(self, process: "Process") -> QueueItem:
        """Place a process reference; a worker will start it."""
        return self.push(
            QueueItem(
                lane=Lane.PROCESSES,
                uuid=process.uuid,
                queue=process.options.get("queue"),
            )
        )

    @abstractmethod
    def push(self, item: QueueItem) -> QueueItem:
        """Append an item to its lane."""

    @abstractmethod
    def pop(self, lane: Lane) -> Optional[QueueItem]:
        """Take the oldest item of a lane, or None if it is empty."""

    def acknowledge(self, item: QueueItem) -> None:
        """Mark an item as processed. Transports without receipts ignore this."""

    @abstractmethod
    def pending(self, lane: Lane) -> int:
        """Count items waiting in a lane."""

    def stats(self) -> dict[str, int]:
        """Pending counts for every lane."""
        return {lane.value: self.pending(lane) for lane in Lane}

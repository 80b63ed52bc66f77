"""
Processes: sequential or concurrent compositions of tasks.

A process decides what runs next when a child task completes and folds
child outcomes into its own state machine. It satisfies the same
completable contract as a task so it can be nested inside a SubProcessTask.
"""

import logging
import threading
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable
from uuid import uuid4

from process_engine.core.exceptions import ProcessDefinitionError
from process_engine.core.state_machine import (
    Event,
    ProcessStateMachine,
    State,
    StateTransition,
)
from process_engine.persistence.visitor import FieldKind, Persistable

if TYPE_CHECKING:
    from process_engine.core.context import EngineContext
    from process_engine.core.definition import Definition
    from process_engine.core.task import Task

logger = logging.getLogger(__name__)


@runtime_checkable
class Completable(Protocol):
    """Contract shared by tasks and processes."""

    def start(self) -> None: ...

    @property
    def completed(self) -> bool: ...

    @property
    def failed(self) -> bool: ...

    @property
    def paused(self) -> bool: ...

    @property
    def cancelled(self) -> bool: ...


class Process(Persistable):
    """
    Base process.

    The composition type is fixed by the subclass; the task list is frozen
    once the process leaves the initial state.
    """

    FIELDS = (
        (FieldKind.TYPE, "definition"),
        (FieldKind.ATTRIBUTE, "uuid"),
        (FieldKind.TASK_REFERENCE, "parent"),
        (FieldKind.ARGS, "options"),
        (FieldKind.TASKS, "tasks"),
    )

    def __init__(
        self,
        definition: "Definition",
        options: Optional[dict[str, Any]] = None,
        *,
        context: Optional["EngineContext"] = None,
        uuid: Optional[str] = None,
    ):
        self._uuid = uuid or uuid4().hex
        self.definition = definition
        self.options: dict[str, Any] = dict(options or {})
        self.parent: Optional["Task"] = None
        self._context = context
        self._tasks: list["Task"] = []
        self._init_runtime()

    def _init_runtime(self, state: State = State.INITIAL) -> None:
        # Serializes child notifications delivered to this instance
        self._lock = threading.RLock()
        self._state_machine = ProcessStateMachine(state, on_transition=self._on_transition)

    def _restore(
        self,
        values: dict[str, Any],
        record: dict[str, str],
        context: Optional["EngineContext"] = None,
    ) -> None:
        """Populate a bare instance from values read by a ReaderVisitor."""
        self._uuid = values["uuid"]
        self.definition = values.get("definition")
        self.parent = values.get("parent")
        self.options = dict(values.get("options") or {})
        self._tasks = list(values.get("tasks") or [])
        self._context = context
        self._init_runtime(State(record.get("state", State.INITIAL.value)))

    def _reload_from(self, record: dict[str, str]) -> None:
        if "state" in record:
            self._state_machine.restore(State(record["state"]))

    # ==================== Identity ====================

    @property
    def uuid(self) -> str:
        return self._uuid

    def __eq__(self, other: object) -> bool:
        uuid = getattr(other, "uuid", None)
        if uuid is None:
            return NotImplemented
        return self.uuid == uuid

    def __hash__(self) -> int:
        return hash(self.uuid)

    def __str__(self) -> str:
        return f"#<{type(self).__name__}:{self.uuid}>"

    __repr__ = __str__

    @property
    def context(self) -> Optional["EngineContext"]:
        return self._context

    @context.setter
    def context(self, context: Optional["EngineContext"]) -> None:
        self._context = context

    @property
    def root_key(self) -> str:
        """Uuid of the outermost process."""
        if self.parent is None:
            return self.uuid
        return self.parent.process.root_key

    # ==================== Composition ====================

    @property
    def tasks(self) -> tuple["Task", ...]:
        return tuple(self._tasks)

    def add_task(self, task: "Task") -> "Task":
        """Append a task. Only allowed while the process is being built."""
        if self.current_state is not State.INITIAL:
            raise ProcessDefinitionError(
                f"Cannot add tasks to {self} in state {self.current_state.value}"
            )
        if task.process is not self:
            raise ProcessDefinitionError(f"{task} belongs to another process")
        self._tasks.append(task)
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    # ==================== State ====================

    @property
    def current_state(self) -> State:
        return self._state_machine.state

    @property
    def history(self) -> list[StateTransition]:
        return self._state_machine.history

    @property
    def completed(self) -> bool:
        return self.current_state is State.COMPLETED

    @property
    def failed(self) -> bool:
        return self.current_state is State.FAILED

    @property
    def paused(self) -> bool:
        """Paused itself, or nested under a paused process."""
        if self.current_state is State.PAUSED:
            return True
        return self.parent is not None and bool(self.parent.paused)

    @property
    def cancelled(self) -> bool:
        """Cancelled itself, or nested under a cancelled process."""
        if self.current_state is State.CANCELLED:
            return True
        return self.parent is not None and bool(self.parent.cancelled)

    def _on_transition(self, transition: StateTransition) -> None:
        logger.debug(
            f"{self}: {transition.from_state} -> {transition.to_state} ({transition.event})"
        )
        store = self.store
        if store is not None:
            store.persist_state(self)

    # ==================== Transitions ====================

    def enqueue(self) -> None:
        """initial -> enqueued; places the process on the work queue."""
        self._state_machine.ensure(Event.ENQUEUE)
        context = self.context
        if context is None or context.queue is None:
            raise RuntimeError(f"{self} has no work queue configured")
        context.queue.enqueue_process(self)
        self._state_machine.fire(Event.ENQUEUE)

    def start(self) -> None:
        """-> processing, then enqueue the first eligible task(s)."""
        self._state_machine.fire(Event.START)
        logger.info(f"{self} started with {len(self._tasks)} tasks")

        if not self._tasks:
            self.complete()
            return

        self._start_tasks()

    def pause(self) -> None:
        """Stop enqueuing new tasks until resumed."""
        self._state_machine.fire(Event.PAUSE)
        logger.info(f"{self} paused")

    def resume(self) -> None:
        """
        paused -> processing, picking traversal up where it stopped.

        Nested processes held back by this pause are re-driven too.
        """
        with self._lock:
            self._state_machine.fire(Event.RESUME)
            logger.info(f"{self} resumed")
            self._redrive()

    def redrive(self) -> None:
        """Pick traversal up again after an ancestor resumed."""
        with self._lock:
            self.reload()
            if self.current_state is not State.PROCESSING:
                # Paused on its own, or already finished
                return
            self._redrive()

    def cancel(self) -> None:
        """Stop enqueuing new tasks for good. In-flight tasks still finish."""
        self._state_machine.fire(Event.CANCEL)
        logger.info(f"{self} cancelled")

    def complete(self) -> None:
        """processing -> completed, notifying the owning SubProcessTask."""
        self._state_machine.fire(Event.COMPLETE)
        logger.info(f"{self} completed")

        if self.parent is not None:
            self.parent.complete()

    def fail(self, error: Optional[BaseException] = None) -> None:
        """-> failed, notifying the owning SubProcessTask."""
        if self.current_state is State.FAILED:
            return
        self._state_machine.fire(
            Event.FAIL,
            reason=repr(error) if error is not None else None,
        )
        logger.warning(f"{self} failed: {error!r}")

        if self.parent is not None:
            self.parent.fail(error)

    # ==================== Child notifications ====================

    def task_completed(self, task: "Task") -> None:
        """A child task completed; decide what runs next."""
        with self._lock:
            self.reload()
            if self.current_state not in (State.PROCESSING, State.PAUSED):
                logger.info(
                    f"{task} completed while {self} is {self.current_state.value}; "
                    f"nothing further is scheduled"
                )
                return
            self._on_task_completed(task)

    def task_failed(self, task: "Task", error: Optional[BaseException]) -> None:
        """A child task failed; the first failure fails the process."""
        with self._lock:
            self.reload()
            if self.current_state in (State.FAILED, State.CANCELLED, State.COMPLETED):
                logger.info(
                    f"{task} failed while {self} is {self.current_state.value}; "
                    f"failure recorded on the task only"
                )
                return
            self.fail(error)

    def _enqueue_task(self, task: "Task") -> bool:
        if self.paused or self.cancelled:
            reason = "paused" if self.paused else "cancelled"
            logger.info(f"Not enqueuing {task}: {self} is {reason}")
            return False
        task.enqueue()
        return True

    def _redrive(self) -> None:
        """Re-drive nested processes first, then this one's own tasks."""
        for task in self._tasks:
            task.reload()
            task.redrive()
            if self.current_state is not State.PROCESSING:
                return
        self._redrive_tasks()

    def _start_tasks(self) -> None:
        raise NotImplementedError

    def _on_task_completed(self, task: "Task") -> None:
        raise NotImplementedError

    def _redrive_tasks(self) -> None:
        raise NotImplementedError


class SequentialProcess(Process):
    """Runs its tasks one after another, following the ``next`` links."""

    def add_task(self, task: "Task") -> "Task":
        super().add_task(task)
        if len(self._tasks) > 1:
            self._tasks[-2].next = task
        return task

    def _start_tasks(self) -> None:
        self._enqueue_task(self._tasks[0])

    def _on_task_completed(self, task: "Task") -> None:
        next_task = task.next
        if next_task is None:
            if self.paused:
                # Completed by resume() on this process or an ancestor
                return
            self.complete()
            return
        self._enqueue_task(next_task)

    def _redrive_tasks(self) -> None:
        pending = next((task for task in self._tasks if not task.completed), None)
        if pending is None:
            self.complete()
        elif pending.current_state is State.INITIAL:
            self._enqueue_task(pending)


class ConcurrentProcess(Process):
    """Runs all of its tasks at once and completes when every one has."""

    def _init_runtime(self, state: State = State.INITIAL) -> None:
        super()._init_runtime(state)
        self._completed_count = 0

    def _start_tasks(self) -> None:
        for task in self._tasks:
            self._enqueue_task(task)

    def _increment_completed(self) -> int:
        store = self.store
        if store is not None:
            return store.increment_completed(self)
        with self._lock:
            self._completed_count += 1
            return self._completed_count

    def _on_task_completed(self, task: "Task") -> None:
        count = self._increment_completed()
        total = len(self._tasks)

        if count < total:
            logger.debug(f"{task} complete for {self}, waiting for {total - count} more")
            return
        if count > total:
            logger.warning(f"{self} counted {count} completions for {total} tasks")
            return
        if self.paused:
            # Completed by resume() on this process or an ancestor
            return
        self.complete()

    def _redrive_tasks(self) -> None:
        if all(task.completed for task in self._tasks):
            self.complete()
            return

        for task in self._tasks:
            if task.current_state is State.INITIAL:
                self._enqueue_task(task)

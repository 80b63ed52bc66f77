"""
Tasks: the units of work a process is composed of.

A task owns its state machine and runs its variant's execution when a
worker starts it. Outcomes are reported to the owning process, which decides
what runs next. Paused and cancelled are never recorded on a task; they are
read from the owning process.
"""

import logging
from functools import total_ordering
from typing import TYPE_CHECKING, Any, Callable, Optional
from uuid import uuid4

from process_engine.core.executor import Executor
from process_engine.core.registry import qualified_name
from process_engine.core.state_machine import (
    Event,
    State,
    StateTransition,
    TaskStateMachine,
)
from process_engine.persistence.visitor import FieldKind, Persistable

if TYPE_CHECKING:
    from process_engine.core.context import EngineContext
    from process_engine.core.process import Process
    from process_engine.messaging.base import WorkQueue

logger = logging.getLogger(__name__)

# Callable receiving (job, args) that runs a background job to completion
JobRunnerFunc = Callable[[Any, Any], Any]


@total_ordering
class Task(Persistable):
    """
    Base task.

    Equality and ordering use the uuid only; ordering exists for set and
    collection membership, not for scheduling.
    """

    FIELDS = (
        (FieldKind.ATTRIBUTE, "uuid"),
        (FieldKind.PROCESS_REFERENCE, "process"),
        (FieldKind.TASK_REFERENCE, "next"),
        (FieldKind.ARGS, "options"),
    )

    def __init__(
        self,
        process: "Process",
        options: Optional[dict[str, Any]] = None,
        *,
        uuid: Optional[str] = None,
    ):
        if process is None:
            raise ValueError("A task requires an owning process")
        self._uuid = uuid or uuid4().hex
        self.process = process
        self.next: Optional[Task] = None
        self.options: dict[str, Any] = dict(options or {})
        self._init_runtime()

    def _init_runtime(self, state: State = State.INITIAL, error: Any = None) -> None:
        """Set up the fields that are not part of the visitor protocol."""
        self.error = error
        self._state_machine = TaskStateMachine(state, on_transition=self._on_transition)

    def _restore(self, values: dict[str, Any], record: dict[str, str]) -> None:
        """Populate a bare instance from values read by a ReaderVisitor."""
        self._uuid = values.pop("uuid")
        for name, value in values.items():
            setattr(self, name, value)
        self.options = dict(self.options or {})
        self._init_runtime(
            State(record.get("state", State.INITIAL.value)),
            record.get("error") or None,
        )

    def _reload_from(self, record: dict[str, str]) -> None:
        if "state" in record:
            self._state_machine.restore(State(record["state"]))
        if record.get("error"):
            self.error = record["error"]

    # ==================== Identity ====================

    @property
    def uuid(self) -> str:
        return self._uuid

    def __eq__(self, other: object) -> bool:
        uuid = getattr(other, "uuid", None)
        if uuid is None:
            return NotImplemented
        return self.uuid == uuid

    def __lt__(self, other: object) -> bool:
        uuid = getattr(other, "uuid", None)
        if uuid is None:
            return NotImplemented
        return self.uuid < uuid

    def __hash__(self) -> int:
        return hash(self.uuid)

    def __str__(self) -> str:
        return f"#<{type(self).__name__}:{self.uuid}>"

    __repr__ = __str__

    # ==================== Collaborators ====================

    @property
    def context(self) -> Optional["EngineContext"]:
        return self.process.context

    @property
    def queue(self) -> Optional[str]:
        """Target queue name, if one was configured."""
        return self.options.get("queue")

    @property
    def root_key(self) -> str:
        """Uuid of the outermost process this task belongs to."""
        return self.process.root_key

    def _work_queue(self) -> "WorkQueue":
        context = self.context
        if context is None or context.queue is None:
            raise RuntimeError(f"{self} has no work queue configured")
        return context.queue

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
        return bool(self.process.paused)

    @property
    def cancelled(self) -> bool:
        return bool(self.process.cancelled)

    def _on_transition(self, transition: StateTransition) -> None:
        logger.debug(
            f"{self}: {transition.from_state} -> {transition.to_state} ({transition.event})"
        )
        store = self.store
        if store is not None:
            store.persist_state(self)

    def can_complete_task(self) -> bool:
        """Whether the task's work is finished. Defined by each variant."""
        raise NotImplementedError(f"{type(self).__name__} must implement can_complete_task")

    def redrive(self) -> None:
        """Resume work held back by an ancestor's pause. Only nested processes have any."""

    # ==================== Transitions ====================

    def enqueue(self) -> None:
        """initial -> enqueued; places the task on the work queue."""
        self._state_machine.ensure(Event.ENQUEUE)
        self._enqueue(self._work_queue())
        self._state_machine.fire(Event.ENQUEUE)

    def _enqueue(self, queue: "WorkQueue") -> None:
        queue.enqueue_task(self)

    def start(self) -> None:
        """
        -> processing, then run the variant's execution.

        Errors raised by the execution are routed to ``fail`` and never
        propagate to the caller.
        """
        self._state_machine.fire(Event.START)
        try:
            self.execute()
        except Exception as error:
            logger.warning(f"{self} failed during execution: {error!r}", exc_info=True)
            self.fail(error)
            return
        self._executed()

    def execute(self) -> None:
        """Variant execution. The base task has nothing to run."""

    def _executed(self) -> None:
        """Hook run after ``execute`` returned normally."""

    def complete(self) -> bool:
        """
        processing -> completed, if the variant says the work is done.

        Returns:
            False (and leaves the state alone) when completion is not yet
            warranted, True once the task completed
        """
        if not self.can_complete_task():
            logger.debug(f"{self} cannot complete yet")
            return False
        self._state_machine.fire(Event.COMPLETE)
        self.process.task_completed(self)
        return True

    def fail(self, error: Optional[BaseException] = None) -> None:
        """processing -> failed; a repeated call on a failed task is a no-op."""
        if self.current_state is State.FAILED:
            logger.debug(f"{self} already failed")
            return
        self.error = error
        self._state_machine.fire(
            Event.FAIL,
            reason=repr(error) if error is not None else None,
        )
        self.process.task_failed(self, error)


class StepTask(Task):
    """Invokes a named method of the process definition."""

    FIELDS = (
        ((FieldKind.TYPE, "definition"),)
        + Task.FIELDS
        + ((FieldKind.ATTRIBUTE, "method"), (FieldKind.ARGS, "args"))
    )

    def __init__(
        self,
        process: "Process",
        method: str,
        args: Optional[list[Any]] = None,
        options: Optional[dict[str, Any]] = None,
        *,
        uuid: Optional[str] = None,
    ):
        super().__init__(process, options, uuid=uuid)
        self.definition = process.definition
        self.method = method
        self.args: list[Any] = list(args) if args is not None else []

    def _init_runtime(self, state: State = State.INITIAL, error: Any = None) -> None:
        super()._init_runtime(state, error)
        self._invoked = False

    def _restore(self, values: dict[str, Any], record: dict[str, str]) -> None:
        super()._restore(values, record)
        self.args = list(self.args or [])

    @property
    def executor(self) -> Executor:
        """A fresh executor bound to this task."""
        return Executor(self.definition, self)

    def execute(self) -> None:
        getattr(self.executor, self.method)(*self.args)
        self._invoked = True

    def _executed(self) -> None:
        self.complete()

    def can_complete_task(self) -> bool:
        return self._invoked


class JobTask(Task):
    """
    Hands a job type and its arguments to the background-job lane.

    Completion is signalled from outside through ``job_finished`` once the
    job has run.
    """

    FIELDS = (
        ((FieldKind.TYPE, "definition"),)
        + Task.FIELDS
        + ((FieldKind.TYPE, "job"), (FieldKind.ARGS, "args"))
    )

    def __init__(
        self,
        process: "Process",
        job: Any,
        args: Any = None,
        options: Optional[dict[str, Any]] = None,
        *,
        uuid: Optional[str] = None,
    ):
        super().__init__(process, options, uuid=uuid)
        self.definition = process.definition
        self.job = job
        self.args = args

    def _init_runtime(self, state: State = State.INITIAL, error: Any = None) -> None:
        super()._init_runtime(state, error)
        self._finished = False

    @property
    def job_name(self) -> str:
        context = self.context
        if context is not None:
            return context.registry.job_name(self.job)
        return qualified_name(self.job)

    def _enqueue(self, queue: "WorkQueue") -> None:
        queue.enqueue_job(self.job_name, self.args, task_uuid=self.uuid, queue=self.queue)

    def execute(self) -> None:
        logger.debug(f"{self} picked up job {self.job_name}")

    def perform(self, runner: JobRunnerFunc) -> bool:
        """
        Run the job through ``runner(job, args)`` and signal the outcome.

        Returns:
            True if the job ran and the task completed
        """
        try:
            runner(self.job, self.args)
        except Exception as error:
            logger.warning(f"{self} job raised: {error!r}", exc_info=True)
            self.fail(error)
            return False
        return self.job_finished()

    def job_finished(self) -> bool:
        """External completion signal: the job has actually finished."""
        self._finished = True
        return self.complete()

    def can_complete_task(self) -> bool:
        return self._finished


class SubProcessTask(Task):
    """Delegates to an owned, nested process."""

    FIELDS = Task.FIELDS + ((FieldKind.PROCESS, "sub_process"),)

    def __init__(
        self,
        process: "Process",
        sub_process: "Process",
        options: Optional[dict[str, Any]] = None,
        *,
        uuid: Optional[str] = None,
    ):
        super().__init__(process, options, uuid=uuid)
        self.sub_process = sub_process
        sub_process.parent = self
        if sub_process.context is None:
            sub_process.context = process.context

    def execute(self) -> None:
        self.sub_process.start()

    def redrive(self) -> None:
        if self.current_state is State.PROCESSING:
            self.sub_process.redrive()

    def can_complete_task(self) -> bool:
        return bool(self.sub_process.completed)

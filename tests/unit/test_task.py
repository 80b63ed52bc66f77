"""
Unit tests for tasks.
"""

import pytest

from process_engine.core.exceptions import UnknownMethodError
from process_engine.core.process import ConcurrentProcess, SequentialProcess
from process_engine.core.state_machine import InvalidTransition, State
from process_engine.core.task import JobTask, StepTask, SubProcessTask, Task
from process_engine.messaging.models import Lane
from process_engine.persistence.visitor import FieldKind, RecordingVisitor


class TestTaskIdentity:
    """Tests for task identity and comparison."""

    def test_requires_process(self):
        """Test a task cannot exist without a process."""
        with pytest.raises(ValueError):
            StepTask(None, "reserve")

    def test_uuid_is_unique(self, definition):
        """Test each task gets its own identifier."""
        process = SequentialProcess(definition)

        first = StepTask(process, "reserve")
        second = StepTask(process, "reserve")

        assert first.uuid != second.uuid
        assert first != second

    def test_equality_by_uuid(self, definition):
        """Test equality and hashing use the uuid only."""
        process = SequentialProcess(definition)

        task = StepTask(process, "reserve", [1], uuid="abc")
        twin = JobTask(process, object, uuid="abc")

        assert task == twin
        assert hash(task) == hash(twin)
        assert len({task, twin}) == 1

    def test_ordering_by_uuid(self, definition):
        """Test tasks order by uuid."""
        process = SequentialProcess(definition)

        a = StepTask(process, "reserve", uuid="a")
        b = StepTask(process, "reserve", uuid="b")

        assert a < b
        assert b > a
        assert a <= a
        assert sorted([b, a]) == [a, b]

    def test_str_contains_class_and_uuid(self, definition):
        """Test the string form names the variant and the uuid."""
        task = StepTask(SequentialProcess(definition), "reserve", uuid="xyz")

        assert "StepTask" in str(task)
        assert "xyz" in str(task)

    def test_queue_option(self, definition):
        """Test the queue option is exposed as an attribute."""
        process = SequentialProcess(definition)

        assert StepTask(process, "reserve").queue is None
        assert StepTask(process, "reserve", options={"queue": "billing"}).queue == "billing"


class TestVisitorOrder:
    """Tests for the fixed field emission order."""

    def _calls(self, entity):
        visitor = RecordingVisitor()
        entity.accept(visitor)
        return visitor.calls

    def test_base_task(self, definition):
        """Test base task fields."""
        task = Task(SequentialProcess(definition))

        assert self._calls(task) == [
            (FieldKind.ATTRIBUTE, "uuid"),
            (FieldKind.PROCESS_REFERENCE, "process"),
            (FieldKind.TASK_REFERENCE, "next"),
            (FieldKind.ARGS, "options"),
        ]

    def test_step_task(self, definition):
        """Test step tasks wrap the base fields."""
        task = StepTask(SequentialProcess(definition), "reserve", [1])

        assert self._calls(task) == [
            (FieldKind.TYPE, "definition"),
            (FieldKind.ATTRIBUTE, "uuid"),
            (FieldKind.PROCESS_REFERENCE, "process"),
            (FieldKind.TASK_REFERENCE, "next"),
            (FieldKind.ARGS, "options"),
            (FieldKind.ATTRIBUTE, "method"),
            (FieldKind.ARGS, "args"),
        ]

    def test_job_task(self, definition, job):
        """Test job tasks record the job type after the base fields."""
        task = JobTask(SequentialProcess(definition), job, [1])

        assert self._calls(task) == [
            (FieldKind.TYPE, "definition"),
            (FieldKind.ATTRIBUTE, "uuid"),
            (FieldKind.PROCESS_REFERENCE, "process"),
            (FieldKind.TASK_REFERENCE, "next"),
            (FieldKind.ARGS, "options"),
            (FieldKind.TYPE, "job"),
            (FieldKind.ARGS, "args"),
        ]

    def test_sub_process_task(self, definition):
        """Test sub-process tasks embed their process last."""
        outer = SequentialProcess(definition)
        task = SubProcessTask(outer, ConcurrentProcess(definition))

        assert self._calls(task)[-1] == (FieldKind.PROCESS, "sub_process")
        assert len(self._calls(task)) == 5

    def test_order_is_stable(self, definition):
        """Test two walks of the same entity emit the same sequence."""
        task = StepTask(SequentialProcess(definition), "reserve")

        assert self._calls(task) == self._calls(task)


class TestTask:
    """Tests for behaviour shared by all task variants."""

    def test_can_complete_task_is_abstract(self, definition):
        """Test the base task does not decide completion."""
        task = Task(SequentialProcess(definition))

        with pytest.raises(NotImplementedError):
            task.can_complete_task()

    def test_paused_and_cancelled_follow_process(self, definition, bare_context):
        """Test paused and cancelled are read from the owning process."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(StepTask(process, "reserve", [1]))

        assert not task.paused
        process.pause()
        assert task.paused
        assert task.current_state == State.INITIAL

        process.cancel()
        assert task.cancelled
        assert not task.paused

    def test_paused_and_cancelled_follow_ancestors(self, definition, bare_context):
        """Test a task in a nested process follows the outermost process."""
        outer = SequentialProcess(definition, context=bare_context)
        inner = SequentialProcess(definition, context=bare_context)
        task = inner.add_task(StepTask(inner, "reserve", [1]))
        outer.add_task(SubProcessTask(outer, inner))

        assert not task.paused
        outer.pause()
        assert task.paused
        assert inner.current_state == State.INITIAL

        outer.cancel()
        assert task.cancelled
        assert not task.paused

    def test_enqueue_without_queue(self, definition):
        """Test enqueueing needs a configured queue."""
        process = SequentialProcess(definition)
        task = process.add_task(StepTask(process, "reserve", [1]))

        with pytest.raises(RuntimeError):
            task.enqueue()
        assert task.current_state == State.INITIAL

    def test_enqueue_places_task_reference(self, definition, bare_context):
        """Test enqueue puts the task's uuid on the tasks lane."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(StepTask(process, "reserve", [1], {"queue": "fast"}))

        task.enqueue()

        items = bare_context.queue.tasks
        assert task.current_state == State.ENQUEUED
        assert [item.uuid for item in items] == [task.uuid]
        assert items[0].queue == "fast"

    def test_fail_twice_is_noop(self, definition, bare_context):
        """Test a repeated failure is ignored."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(StepTask(process, "explode"))
        process.start()

        task.start()
        first_error = task.error
        task.fail(RuntimeError("again"))

        assert task.failed
        assert task.error is first_error
        assert len([t for t in task.history if t.to_state == "failed"]) == 1

    def test_complete_from_initial_rejected(self, definition, bare_context, job):
        """Test completing a task that never started raises."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(JobTask(process, job))
        task._finished = True

        with pytest.raises(InvalidTransition):
            task.complete()


class TestStepTask:
    """Tests for step tasks."""

    def test_start_invokes_method_and_completes(self, definition, bare_context, calls):
        """Test a started step runs its method and completes."""
        process = SequentialProcess(definition, context=bare_context)
        first = process.add_task(StepTask(process, "reserve", [7]))
        second = process.add_task(StepTask(process, "charge", [7]))
        process.start()

        first.start()

        assert calls == [("reserve", 7)]
        assert first.completed
        # The process moved on to the next step
        assert second.current_state == State.ENQUEUED

    def test_method_sees_executor(self, definition, bare_context, calls):
        """Test step methods can read the task through the executor."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(StepTask(process, "whoami"))
        process.start()

        task.start()

        assert calls == [("whoami", task.uuid, process.uuid)]

    def test_error_routes_to_fail(self, definition, bare_context):
        """Test an exception raised by the method fails the task and process."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(StepTask(process, "explode"))
        process.start()

        task.start()  # does not raise

        assert task.failed
        assert isinstance(task.error, RuntimeError)
        assert process.failed

    def test_failure_notifies_process_once(self, definition, bare_context, monkeypatch):
        """Test the process hears about a failure once, with the raised error."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(StepTask(process, "explode"))
        process.start()
        notifications = []
        original = process.task_failed

        def record(failed_task, error):
            notifications.append((failed_task, error))
            original(failed_task, error)

        monkeypatch.setattr(process, "task_failed", record)

        task.start()
        task.fail(RuntimeError("again"))

        assert notifications == [(task, task.error)]
        assert str(task.error) == "step exploded"

    def test_unknown_method_fails_task(self, definition, bare_context):
        """Test calling an undeclared method fails with UnknownMethodError."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(StepTask(process, "missing"))
        process.start()

        task.start()

        assert task.failed
        assert isinstance(task.error, UnknownMethodError)

    def test_cannot_complete_before_invocation(self, definition):
        """Test a step is not complete until its method ran."""
        task = StepTask(SequentialProcess(definition), "reserve")

        assert task.can_complete_task() is False

    def test_args_default_to_empty_list(self, definition):
        task = StepTask(SequentialProcess(definition), "reserve")
        assert task.args == []


class TestJobTask:
    """Tests for background-job tasks."""

    def test_enqueue_submits_job(self, definition, bare_context, job):
        """Test enqueueing places the job on the jobs lane."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(JobTask(process, job, {"a": 1, "b": 2}))

        task.enqueue()

        queue = bare_context.queue
        assert queue.pending(Lane.JOBS) == 1
        assert queue.pending(Lane.TASKS) == 0
        item = queue.jobs[0]
        assert item.uuid == task.uuid
        assert item.args == {"a": 1, "b": 2}
        assert task.current_state == State.ENQUEUED
        assert item.job == bare_context.registry.job_name(job)

    def test_start_does_not_complete(self, definition, bare_context, job):
        """Test picking up a job leaves the task processing."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(JobTask(process, job, [1]))
        process.start()

        task.start()

        assert task.current_state == State.PROCESSING
        assert task.complete() is False
        assert task.current_state == State.PROCESSING

    def test_perform_runs_job_and_completes(self, definition, bare_context, job):
        """Test perform runs the job, then the task completes."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(JobTask(process, job, [1, 2]))
        process.start()
        task.start()

        assert task.perform(lambda j, args: j().perform(*args)) is True

        assert job.performed == [(1, 2)]
        assert task.completed
        assert process.completed

    def test_perform_failure_fails_task(self, definition, bare_context, failing_job):
        """Test a job that raises fails the task."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(JobTask(process, failing_job))
        process.start()
        task.start()

        assert task.perform(lambda j, args: j().perform()) is False

        assert task.failed
        assert process.failed

    def test_job_finished_signal(self, definition, bare_context, job):
        """Test the external completion signal completes the task."""
        process = SequentialProcess(definition, context=bare_context)
        task = process.add_task(JobTask(process, job))
        process.start()
        task.start()

        assert task.job_finished() is True
        assert task.completed


class TestSubProcessTask:
    """Tests for sub-process tasks."""

    def test_links_sub_process(self, definition, bare_context):
        """Test the sub-process points back at its task and shares the context."""
        outer = SequentialProcess(definition, context=bare_context)
        inner = SequentialProcess(definition)

        task = outer.add_task(SubProcessTask(outer, inner))

        assert inner.parent is task
        assert inner.context is bare_context
        assert inner.root_key == outer.uuid

    def test_start_starts_sub_process(self, definition, bare_context):
        """Test starting the task starts the nested process."""
        outer = SequentialProcess(definition, context=bare_context)
        inner = SequentialProcess(definition)
        inner_step = inner.add_task(StepTask(inner, "reserve", [1]))
        task = outer.add_task(SubProcessTask(outer, inner))
        outer.start()

        task.start()

        assert inner.current_state == State.PROCESSING
        assert inner_step.current_state == State.ENQUEUED
        assert task.current_state == State.PROCESSING
        assert not task.can_complete_task()

    def test_completes_with_sub_process(self, definition, bare_context):
        """Test completion of the nested process completes the task and outer process."""
        outer = SequentialProcess(definition, context=bare_context)
        inner = SequentialProcess(definition)
        inner_step = inner.add_task(StepTask(inner, "reserve", [1]))
        task = outer.add_task(SubProcessTask(outer, inner))
        outer.start()
        task.start()

        inner_step.start()

        assert inner.completed
        assert task.completed
        assert outer.completed

    def test_fails_with_sub_process(self, definition, bare_context):
        """Test failure of the nested process fails the task and outer process."""
        outer = SequentialProcess(definition, context=bare_context)
        inner = ConcurrentProcess(definition)
        inner.add_task(StepTask(inner, "reserve", [1]))
        failing = inner.add_task(StepTask(inner, "explode"))
        task = outer.add_task(SubProcessTask(outer, inner))
        outer.start()
        task.start()

        failing.start()

        assert inner.failed
        assert task.failed
        assert outer.failed

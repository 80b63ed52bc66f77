"""
Unit tests for definitions and the process builder.
"""

import pytest

from process_engine.core.definition import Definition
from process_engine.core.exceptions import ProcessDefinitionError, UnknownMethodError
from process_engine.core.process import ConcurrentProcess, SequentialProcess
from process_engine.core.task import JobTask, StepTask, SubProcessTask


class TestDefinition:
    """Tests for step method registration."""

    def test_requires_name(self):
        with pytest.raises(ValueError):
            Definition("")

    def test_step_decorator(self, definition):
        """Test decorated functions become step methods."""
        assert definition.has_method("reserve")
        assert "charge" in definition.methods

    def test_named_step(self, definition):
        """Test a step registered under an explicit name."""
        assert definition.has_method("whoami")
        assert not definition.has_method("who_am_i")

    def test_unknown_method(self, definition):
        """Test looking up an undeclared method."""
        with pytest.raises(UnknownMethodError) as exc_info:
            definition.get_method("refund")

        assert exc_info.value.method == "refund"
        assert exc_info.value.definition_name == "orders"

    def test_register_requires_callable(self, definition):
        with pytest.raises(TypeError):
            definition.register("broken", 42)

    def test_build_without_declaration(self, definition):
        """Test building needs a declared process."""
        with pytest.raises(ProcessDefinitionError):
            definition.build_process(1)


class TestProcessBuilder:
    """Tests for the builder DSL."""

    def test_sequential_steps(self, definition):
        """Test a sequential process of steps using the builder args."""
        @definition.define_process
        def build(process, order_id):
            process.task("reserve")
            process.task("charge", [order_id * 10])

        process = definition.build_process(4)

        assert isinstance(process, SequentialProcess)
        reserve, charge = process.tasks
        assert (reserve.method, reserve.args) == ("reserve", [4])
        assert (charge.method, charge.args) == ("charge", [40])
        assert reserve.next is charge
        assert reserve.definition is definition

    def test_concurrent_declaration(self, definition):
        """Test a definition declaring a concurrent process."""
        @definition.define_concurrent_process
        def build(process, order_id):
            process.task("reserve")
            process.task("charge")

        assert isinstance(definition.build_process(1), ConcurrentProcess)

    def test_task_options(self, definition):
        """Test keyword options end up on the task."""
        @definition.define_process
        def build(process, order_id):
            process.task("reserve", queue="inventory")

        task = definition.build_process(1).tasks[0]

        assert task.queue == "inventory"

    def test_unknown_step_rejected(self, definition):
        """Test referencing an undeclared method fails at build time."""
        @definition.define_process
        def build(process, order_id):
            process.task("refund")

        with pytest.raises(ProcessDefinitionError):
            definition.build_process(1)

    def test_job(self, definition, job):
        """Test adding a background job."""
        @definition.define_process
        def build(process, order_id):
            process.job(job)
            process.job(job, {"order": order_id})

        first, second = definition.build_process(3).tasks

        assert isinstance(first, JobTask)
        assert first.job is job
        assert first.args == [3]
        assert second.args == {"order": 3}

    def test_job_requires_perform(self, definition):
        @definition.define_process
        def build(process, order_id):
            process.job(object)

        with pytest.raises(ProcessDefinitionError):
            definition.build_process(1)

    def test_nested_compositions(self, definition):
        """Test nested sequential and concurrent blocks become sub-processes."""
        @definition.define_process
        def build(process, order_id):
            process.task("reserve")
            process.concurrent(lambda branch: (branch.task("charge"), branch.task("ship")))
            process.sequential(lambda branch: branch.task("ship"))

        process = definition.build_process(1)
        reserve, concurrent, sequential = process.tasks

        assert isinstance(concurrent, SubProcessTask)
        assert isinstance(concurrent.sub_process, ConcurrentProcess)
        assert len(concurrent.sub_process.tasks) == 2
        assert isinstance(sequential.sub_process, SequentialProcess)
        assert concurrent.sub_process.parent is concurrent
        assert reserve.next is concurrent

    def test_empty_nested_block_skipped(self, definition):
        """Test a nested block that adds nothing leaves no task behind."""
        @definition.define_process
        def build(process, order_id):
            process.task("reserve")
            assert process.concurrent(lambda branch: None) is None

        assert len(definition.build_process(1).tasks) == 1

    def test_sub_process_from_other_definition(self, definition, calls):
        """Test embedding another definition's process with the same args."""
        shipping = Definition("shipping")

        @shipping.step
        def pack(self, order_id):
            calls.append(("pack", order_id))

        @shipping.define_process
        def build_shipping(process, order_id):
            process.task("pack")

        @definition.define_process
        def build(process, order_id):
            process.task("reserve")
            process.sub_process(shipping)

        process = definition.build_process(9)
        sub_task = process.tasks[1]

        assert sub_task.sub_process.definition is shipping
        assert sub_task.sub_process.tasks[0].args == [9]

    def test_for_each(self, definition):
        """Test fanning out over the items a step method returns."""
        @definition.define_process
        def build(process, order_id):
            process.for_each("line_items", lambda item: item.task("ship"))

        process = definition.build_process(5)

        assert [task.args for task in process.tasks] == [[5, 1], [5, 2]]

    def test_for_each_method_sees_process_under_construction(self, definition):
        """Test the item method reads uuid, options and root key of the process being built."""
        seen = []

        @definition.step
        def lines_for(self, order_id):
            seen.append((self.uuid, self.options, self.root_key))
            return [[order_id, 1]]

        @definition.define_process
        def build(process, order_id):
            process.concurrent(
                lambda branch: branch.for_each("lines_for", lambda item: item.task("ship")),
                queue="fast",
            )

        process = definition.build_process(5)
        sub_process = process.tasks[0].sub_process

        assert seen == [(sub_process.uuid, {"queue": "fast"}, process.uuid)]
        assert sub_process.tasks[0].args == [5, 1]


class TestCreateProcess:
    """Tests for building and persisting in one step."""

    def test_create_persists_graph(self, definition, context):
        """Test the whole graph is saved and the definition registered."""
        @definition.define_process
        def build(process, order_id):
            process.task("reserve")
            process.concurrent(lambda branch: branch.task("charge"))

        process = definition.create_process(1, context=context, queue="orders")

        assert process.options == {"queue": "orders"}
        assert process.context is context
        assert "orders" in context.registry.definitions
        assert context.store.exists(process.uuid)
        for task in process.tasks:
            assert context.store.exists(task.uuid)
        assert context.store.exists(process.tasks[1].sub_process.uuid)

    def test_create_without_store(self, definition, bare_context):
        """Test a context without a store still builds the process."""
        @definition.define_process
        def build(process, order_id):
            process.task("reserve")

        process = definition.create_process(1, context=bare_context)

        assert isinstance(process.tasks[0], StepTask)

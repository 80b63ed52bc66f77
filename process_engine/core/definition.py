"""
Process definitions.

A definition declares the step methods its tasks may invoke and a builder
function describing the shape of the process. ``create_process`` turns the
declaration into a persisted process graph.

Example:
    >>> order = Definition("order")
    >>> @order.step
    ... def charge(self, order_id): ...
    >>> @order.define_process
    ... def build(process, order_id):
    ...     process.task("charge")
    ...     process.concurrent(lambda branch: branch.job(EmailJob))
    >>> order.create_process(42, context=context)
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from process_engine.core.exceptions import ProcessDefinitionError, UnknownMethodError
from process_engine.core.executor import Executor
from process_engine.core.process import ConcurrentProcess, Process, SequentialProcess
from process_engine.core.task import JobTask, StepTask, SubProcessTask

if TYPE_CHECKING:
    from process_engine.core.context import EngineContext

logger = logging.getLogger(__name__)

StepMethod = Callable[..., Any]
BuildFunc = Callable[..., None]


class Definition:
    """Named set of step methods plus the rules for building a process."""

    def __init__(self, name: str):
        if not name:
            raise ValueError("A definition needs a name")
        self.name = name
        self._methods: dict[str, StepMethod] = {}
        self._build: Optional[BuildFunc] = None
        self._process_class: type[Process] = SequentialProcess

    def __repr__(self) -> str:
        return f"<Definition {self.name}>"

    # ==================== Step methods ====================

    def step(
        self,
        func: Optional[StepMethod] = None,
        *,
        name: Optional[str] = None,
    ) -> Any:
        """
        Register a step method. Usable as ``@definition.step`` or
        ``@definition.step(name="...")``.

        The method receives the task's Executor as its first argument.
        """
        def decorator(method: StepMethod) -> StepMethod:
            self.register(name or method.__name__, method)
            return method

        if func is not None:
            return decorator(func)
        return decorator

    def register(self, name: str, method: StepMethod) -> None:
        if not callable(method):
            raise TypeError(f"Step method '{name}' is not callable")
        self._methods[name] = method

    def has_method(self, name: str) -> bool:
        return name in self._methods

    def get_method(self, name: str) -> StepMethod:
        try:
            return self._methods[name]
        except KeyError:
            raise UnknownMethodError(self.name, name) from None

    @property
    def methods(self) -> list[str]:
        return sorted(self._methods)

    # ==================== Process building ====================

    def define_process(self, func: BuildFunc) -> BuildFunc:
        """Declare a sequential process; ``func(builder, *args)`` adds the tasks."""
        self._build = func
        self._process_class = SequentialProcess
        return func

    def define_concurrent_process(self, func: BuildFunc) -> BuildFunc:
        """Declare a concurrent process; ``func(builder, *args)`` adds the tasks."""
        self._build = func
        self._process_class = ConcurrentProcess
        return func

    def build_process(
        self,
        *args: Any,
        context: Optional["EngineContext"] = None,
        options: Optional[dict[str, Any]] = None,
        root: Optional[Process] = None,
    ) -> Process:
        """
        Build an unsaved process graph from the declared builder.

        ``root`` is the outermost process when this one is built as a
        nested sub-process.
        """
        if self._build is None:
            raise ProcessDefinitionError(f"Definition '{self.name}' declares no process")

        process = self._process_class(self, options, context=context)
        self._build(ProcessBuilder(process, self, list(args), root), *args)
        return process

    def create_process(
        self,
        *args: Any,
        context: "EngineContext",
        **options: Any,
    ) -> Process:
        """Build a process and persist it immediately."""
        if context.store is not None:
            context.registry.definition_name(self)

        process = self.build_process(*args, context=context, options=options)

        if context.store is not None:
            process.save()

        logger.info(
            f"Created {process} from definition '{self.name}' "
            f"with {len(process.tasks)} tasks"
        )
        return process


class ProcessBuilder:
    """Adds tasks to one process on behalf of a definition's builder function."""

    def __init__(
        self,
        process: Process,
        definition: Definition,
        args: list[Any],
        root: Optional[Process] = None,
    ):
        self.process = process
        self.definition = definition
        self.args = args
        # Outermost process of the graph being built
        self.root = root or process

    def task(
        self,
        method: str,
        args: Optional[list[Any]] = None,
        **options: Any,
    ) -> StepTask:
        """Add a step invoking ``method``; the builder's args are used by default."""
        if not self.definition.has_method(method):
            raise ProcessDefinitionError(
                f"Definition '{self.definition.name}' has no step method '{method}'"
            )
        task = StepTask(
            self.process,
            method,
            self.args if args is None else args,
            options,
        )
        return self.process.add_task(task)

    def job(self, job: Any, args: Any = None, **options: Any) -> JobTask:
        """Add a background job; the builder's args are used by default."""
        if not hasattr(job, "perform"):
            raise ProcessDefinitionError(f"Job {job!r} has no perform method")
        task = JobTask(self.process, job, self.args if args is None else args, options)
        return self.process.add_task(task)

    def sequential(self, func: Callable[["ProcessBuilder"], None], **options: Any) -> Optional[SubProcessTask]:
        """Add a nested sequential process built by ``func``."""
        return self._nested(SequentialProcess, func, options)

    def concurrent(self, func: Callable[["ProcessBuilder"], None], **options: Any) -> Optional[SubProcessTask]:
        """Add a nested concurrent process built by ``func``."""
        return self._nested(ConcurrentProcess, func, options)

    def sub_process(self, definition: Definition, **options: Any) -> Optional[SubProcessTask]:
        """Add the process declared by another definition, built with the same args."""
        sub_process = definition.build_process(
            *self.args,
            context=self.process.context,
            options=options,
            root=self.root,
        )
        return self._wrap(sub_process, options)

    def for_each(
        self,
        method: str,
        func: Callable[["ProcessBuilder"], None],
    ) -> None:
        """
        Call the step method ``method`` with the builder's args and run
        ``func`` once per item it returns, with that item as the args.
        """
        executor = Executor(self.definition, self.process, root_key=self.root.uuid)
        items = getattr(executor, method)(*self.args)
        for item in items:
            item_args = list(item) if isinstance(item, (list, tuple)) else [item]
            func(ProcessBuilder(self.process, self.definition, item_args, self.root))

    def _nested(
        self,
        process_class: type[Process],
        func: Callable[["ProcessBuilder"], None],
        options: dict[str, Any],
    ) -> Optional[SubProcessTask]:
        sub_process = process_class(self.definition, options, context=self.process.context)
        func(ProcessBuilder(sub_process, self.definition, self.args, self.root))
        return self._wrap(sub_process, options)

    def _wrap(self, sub_process: Process, options: dict[str, Any]) -> Optional[SubProcessTask]:
        if not sub_process.tasks:
            logger.debug(f"Skipping empty sub-process of {self.process}")
            return None
        task = SubProcessTask(self.process, sub_process, options)
        return self.process.add_task(task)

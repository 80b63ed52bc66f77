"""
Executor binding a definition's step methods to one task.
"""

from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

if TYPE_CHECKING:
    from process_engine.core.definition import Definition
    from process_engine.core.process import Process
    from process_engine.core.task import Task


class Executor:
    """
    Call target exposing exactly the definition's declared methods.

    ``executor.<method>(*args)`` calls the registered callable with the
    executor as its first argument, so step methods read ``self.uuid`` or
    ``self.options`` as if they were methods of the task itself. While a
    process is being built the executor is bound to that process instead,
    with the root key of the outermost process under construction.
    """

    def __init__(
        self,
        definition: "Definition",
        task: Optional[Union["Task", "Process"]] = None,
        root_key: Optional[str] = None,
    ):
        self.definition = definition
        self.task = task
        self._root_key = root_key

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name.startswith("_") or name in ("definition", "task"):
            raise AttributeError(name)
        return partial(self.definition.get_method(name), self)

    @property
    def root_key(self) -> str:
        if self._root_key is None:
            self._root_key = self.task.root_key
        return self._root_key

    @property
    def uuid(self) -> str:
        return self.task.uuid

    @property
    def options(self) -> dict[str, Any]:
        return self.task.options

    def __repr__(self) -> str:
        return f"<Executor {self.definition.name} task={self.task.uuid if self.task else None}>"

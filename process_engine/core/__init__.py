"""Core domain: state machine, tasks, processes and definitions."""

from process_engine.core.context import EngineContext, create_context
from process_engine.core.definition import Definition, ProcessBuilder
from process_engine.core.exceptions import (
    EngineError,
    EntityNotFoundError,
    ExecutionError,
    ProcessDefinitionError,
    UnknownMethodError,
    UnknownTypeError,
)
from process_engine.core.executor import Executor
from process_engine.core.process import (
    Completable,
    ConcurrentProcess,
    Process,
    SequentialProcess,
)
from process_engine.core.registry import DefinitionRegistry, UnknownType
from process_engine.core.state_machine import (
    Event,
    InvalidStateTransitionError,
    InvalidTransition,
    ProcessStateMachine,
    State,
    StateTransition,
    TaskStateMachine,
)
from process_engine.core.task import JobTask, StepTask, SubProcessTask, Task

__all__ = [
    "EngineContext",
    "create_context",
    "Definition",
    "ProcessBuilder",
    "EngineError",
    "EntityNotFoundError",
    "ExecutionError",
    "ProcessDefinitionError",
    "UnknownMethodError",
    "UnknownTypeError",
    "Executor",
    "Completable",
    "ConcurrentProcess",
    "Process",
    "SequentialProcess",
    "DefinitionRegistry",
    "UnknownType",
    "Event",
    "InvalidStateTransitionError",
    "InvalidTransition",
    "ProcessStateMachine",
    "State",
    "StateTransition",
    "TaskStateMachine",
    "JobTask",
    "StepTask",
    "SubProcessTask",
    "Task",
]

"""
Exception hierarchy for the process engine.

State machine errors live in ``core.state_machine``; everything else the
engine raises is defined here.
"""


class EngineError(Exception):
    """Base class for all process engine errors."""


class ExecutionError(EngineError):
    """Raised while executing the work behind a task."""


class UnknownMethodError(ExecutionError, AttributeError):
    """Raised when a definition does not declare the requested step method."""
    
    def __init__(self, definition_name: str, method: str):
        self.definition_name = definition_name
        self.method = method
        super().__init__(
            f"Definition '{definition_name}' has no step method '{method}'"
        )


class UnknownTypeError(EngineError):
    """Raised when a persisted type tag could not be resolved on load."""
    
    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"Unknown type '{type_name}'")


class EntityNotFoundError(EngineError, KeyError):
    """Raised when nothing is persisted for an entity identifier."""
    
    def __init__(self, uuid: str):
        self.uuid = uuid
        super().__init__(f"No persisted entity with uuid '{uuid}'")
    
    def __str__(self) -> str:
        return self.args[0]


class ProcessDefinitionError(EngineError):
    """Raised when a process cannot be built or modified."""

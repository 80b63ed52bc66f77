"""
Registry resolving persisted type tags back to definitions and job types.

Type tags are written by name. Workers loading entities must have the same
definitions and jobs registered under the same names; anything that cannot
be resolved loads as an ``UnknownType`` placeholder.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional, Union

from process_engine.core.exceptions import UnknownTypeError

if TYPE_CHECKING:
    from process_engine.core.definition import Definition

logger = logging.getLogger(__name__)


def qualified_name(obj: Any) -> str:
    """Default registry name for a job type."""
    module = getattr(obj, "__module__", None) or type(obj).__module__
    name = getattr(obj, "__qualname__", None) or type(obj).__qualname__
    return f"{module}.{name}"


class UnknownType:
    """
    Stand-in for a type tag that could not be resolved on load.

    Loading succeeds so the rest of the graph stays usable; any use of the
    placeholder raises ``UnknownTypeError``.
    """

    def __init__(self, name: str):
        self.name = name

    def __getattr__(self, attr: str) -> Any:
        if attr.startswith("__"):
            raise AttributeError(attr)
        raise UnknownTypeError(self.name)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        raise UnknownTypeError(self.name)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UnknownType) and other.name == self.name

    def __hash__(self) -> int:
        return hash(("unknown", self.name))

    def __repr__(self) -> str:
        return f"<UnknownType {self.name}>"


class DefinitionRegistry:
    """
    Maps names to definitions and job types.

    Definitions are keyed by ``Definition.name``; jobs by an explicit name or
    their qualified name.
    """

    def __init__(self) -> None:
        self._definitions: dict[str, "Definition"] = {}
        self._jobs: dict[str, Any] = {}
        self._job_names: dict[int, str] = {}

    def register(self, definition: "Definition") -> "Definition":
        """Register a definition under its name."""
        existing = self._definitions.get(definition.name)
        if existing is not None and existing is not definition:
            raise ValueError(f"Definition '{definition.name}' is already registered")
        self._definitions[definition.name] = definition
        return definition

    def register_job(self, job: Any, name: Optional[str] = None) -> Any:
        """Register a job type. Usable as a class decorator."""
        name = name or qualified_name(job)
        self._jobs[name] = job
        self._job_names[id(job)] = name
        return job

    def get_definition(self, name: str) -> Union["Definition", UnknownType]:
        """Resolve a definition by name, or a placeholder if unknown."""
        definition = self._definitions.get(name)
        if definition is None:
            logger.warning(f"Definition '{name}' is not registered")
            return UnknownType(name)
        return definition

    def get_job(self, name: str) -> Any:
        """Resolve a job type by name, or a placeholder if unknown."""
        job = self._jobs.get(name)
        if job is None:
            logger.warning(f"Job '{name}' is not registered")
            return UnknownType(name)
        return job

    def definition_name(self, definition: Any) -> str:
        """Name under which a definition is persisted; registers it if new."""
        if isinstance(definition, UnknownType):
            return definition.name
        if definition.name not in self._definitions:
            self.register(definition)
        return definition.name

    def job_name(self, job: Any) -> str:
        """Name under which a job type is persisted; registers it if new."""
        if isinstance(job, UnknownType):
            return job.name
        name = self._job_names.get(id(job))
        if name is None:
            name = qualified_name(job)
            self.register_job(job, name)
        return name

    def name_for(self, kind: str, value: Any) -> str:
        """Name a value for a ``visit_type`` field."""
        if kind == "definition":
            return self.definition_name(value)
        if kind == "job":
            return self.job_name(value)
        raise ValueError(f"Unknown type field '{kind}'")

    def resolve(self, kind: str, name: str) -> Any:
        """Resolve a ``visit_type`` field back to its value."""
        if kind == "definition":
            return self.get_definition(name)
        if kind == "job":
            return self.get_job(name)
        raise ValueError(f"Unknown type field '{kind}'")

    @property
    def definitions(self) -> list[str]:
        """Names of registered definitions."""
        return sorted(self._definitions)

    @property
    def jobs(self) -> list[str]:
        """Names of registered jobs."""
        return sorted(self._jobs)

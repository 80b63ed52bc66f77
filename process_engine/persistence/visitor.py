"""
Visitor protocol for walking persistable entities.

Every task and process declares an ordered tuple of ``(FieldKind, name)``
pairs. ``accept`` replays that tuple against a visitor, calling one
``visit_<kind>(name)`` handler per field. Writers, readers and graph walkers
react differently to the same call sequence, so entities never know the
storage format and visitors never switch on entity classes.
"""

from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Optional

if TYPE_CHECKING:
    from process_engine.core.context import EngineContext
    from process_engine.storage.base import Store


class FieldKind(str, Enum):
    """Kinds of persistable fields."""

    TYPE = "type"                              # discriminator resolved by name on load
    ATTRIBUTE = "attribute"                    # scalar stored verbatim
    ARGS = "args"                              # opaque serializable blob
    PROCESS_REFERENCE = "process_reference"    # process stored by uuid only
    TASK_REFERENCE = "task_reference"          # task stored by uuid only
    PROCESS = "process"                        # owned process, embedded
    TASKS = "tasks"                            # owned ordered task collection


FieldSpec = tuple[FieldKind, str]


class Visitor:
    """Base visitor; every handler is a no-op."""

    def visit_type(self, name: str) -> None:
        pass

    def visit_attribute(self, name: str) -> None:
        pass

    def visit_args(self, name: str) -> None:
        pass

    def visit_process_reference(self, name: str) -> None:
        pass

    def visit_task_reference(self, name: str) -> None:
        pass

    def visit_process(self, name: str) -> None:
        pass

    def visit_tasks(self, name: str) -> None:
        pass


def dispatch(visitor: Visitor, kind: FieldKind, name: str) -> None:
    """Call the handler for ``kind`` on ``visitor``."""
    getattr(visitor, f"visit_{kind.value}")(name)


class RecordingVisitor(Visitor):
    """Records the call sequence it receives, for inspection and diffing."""

    def __init__(self) -> None:
        self.calls: list[FieldSpec] = []

    def visit_type(self, name: str) -> None:
        self.calls.append((FieldKind.TYPE, name))

    def visit_attribute(self, name: str) -> None:
        self.calls.append((FieldKind.ATTRIBUTE, name))

    def visit_args(self, name: str) -> None:
        self.calls.append((FieldKind.ARGS, name))

    def visit_process_reference(self, name: str) -> None:
        self.calls.append((FieldKind.PROCESS_REFERENCE, name))

    def visit_task_reference(self, name: str) -> None:
        self.calls.append((FieldKind.TASK_REFERENCE, name))

    def visit_process(self, name: str) -> None:
        self.calls.append((FieldKind.PROCESS, name))

    def visit_tasks(self, name: str) -> None:
        self.calls.append((FieldKind.TASKS, name))


class Persistable:
    """
    Mixin for entities that take part in the visitor protocol.

    Subclasses set ``FIELDS`` and expose ``uuid`` and ``context``.
    """

    FIELDS: ClassVar[tuple[FieldSpec, ...]] = ()

    uuid: str

    @property
    def context(self) -> Optional["EngineContext"]:
        raise NotImplementedError

    @classmethod
    def fields(cls) -> tuple[FieldSpec, ...]:
        """Ordered field specs emitted by ``accept``."""
        return cls.FIELDS

    def accept(self, visitor: Visitor) -> None:
        """Walk the persistable fields in their fixed emission order."""
        for kind, name in self.fields():
            dispatch(visitor, kind, name)

    @property
    def store(self) -> Optional["Store"]:
        context = self.context
        return context.store if context is not None else None

    def save(self) -> None:
        """Persist this entity and everything it owns."""
        store = self.store
        if store is None:
            raise RuntimeError(f"{self} has no store configured")
        store.save(self)

    def reload(self) -> bool:
        """
        Re-read the persisted state of this entity.

        Returns False when nothing is persisted for it.
        """
        store = self.store
        if store is None:
            return False
        return store.reload(self)

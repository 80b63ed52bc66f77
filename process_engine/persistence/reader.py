"""
Reader visitor: rebuilds entities from the records a WriterVisitor produced.

Loading replays an entity class's field sequence against its record.
References are resolved lazily through ``LazyReference`` proxies; owned
entities are loaded eagerly. A ``LoadSession`` keeps an identity map so the
rebuilt graph holds exactly one object per uuid.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from process_engine.core.exceptions import EntityNotFoundError, UnknownTypeError
from process_engine.core.process import ConcurrentProcess, Process, SequentialProcess
from process_engine.core.task import JobTask, StepTask, SubProcessTask, Task
from process_engine.persistence.visitor import Visitor
from process_engine.persistence.writer import ENTITY_FIELD, Record

if TYPE_CHECKING:
    from process_engine.storage.base import Store

logger = logging.getLogger(__name__)

ENTITY_TYPES: dict[str, type] = {
    cls.__name__: cls
    for cls in (StepTask, JobTask, SubProcessTask, SequentialProcess, ConcurrentProcess)
}


def load_args(raw: Optional[str]) -> Any:
    if raw is None or raw == "":
        return None
    return json.loads(raw)


class LazyReference:
    """
    Proxy for a referenced entity, loaded on first attribute access.

    The uuid is known without loading, so equality, hashing and writing the
    reference back never touch the store.
    """

    __slots__ = ("_uuid", "_loader", "_target")

    def __init__(self, uuid: str, loader: Callable[[str], Any]):
        object.__setattr__(self, "_uuid", uuid)
        object.__setattr__(self, "_loader", loader)
        object.__setattr__(self, "_target", None)

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def loaded(self) -> bool:
        return self._target is not None

    def resolve(self) -> Any:
        """Load (once) and return the referenced entity."""
        if self._target is None:
            object.__setattr__(self, "_target", self._loader(self._uuid))
        return self._target

    def __getattr__(self, name: str) -> Any:
        return getattr(self.resolve(), name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self.resolve(), name, value)

    def __eq__(self, other: object) -> bool:
        uuid = getattr(other, "uuid", None)
        if uuid is None:
            return NotImplemented
        return self._uuid == uuid

    def __hash__(self) -> int:
        return hash(self._uuid)

    def __repr__(self) -> str:
        state = "loaded" if self._target is not None else "unloaded"
        return f"<LazyReference {self._uuid} ({state})>"


class LoadSession:
    """One load operation: resolves uuids against a store with an identity map."""

    def __init__(self, store: "Store"):
        self.store = store
        self._identity_map: dict[str, Any] = {}

    def reference(self, uuid: str) -> Any:
        """An already loaded entity, or a lazy proxy for it."""
        if uuid in self._identity_map:
            return self._identity_map[uuid]
        return LazyReference(uuid, self.resolve)

    def resolve(self, uuid: str) -> Any:
        """Load an entity now, reusing the instance if it was loaded before."""
        if uuid in self._identity_map:
            return self._identity_map[uuid]

        record = self.store.read_record(uuid)
        if not record:
            raise EntityNotFoundError(uuid)

        type_name = record.get(ENTITY_FIELD, "")
        cls = ENTITY_TYPES.get(type_name)
        if cls is None:
            raise UnknownTypeError(type_name)

        instance = cls.__new__(cls)
        self._identity_map[uuid] = instance

        reader = ReaderVisitor(self, record)
        instance.accept(reader)

        if isinstance(instance, Process):
            instance._restore(reader.values, record, self.store.context)
        else:
            instance._restore(reader.values, record)

        logger.debug(f"Loaded {instance}")
        return instance


class ReaderVisitor(Visitor):
    """Reads one record back into field values, in field emission order."""

    def __init__(self, session: LoadSession, record: Record):
        self.session = session
        self.record = record
        self.values: dict[str, Any] = {}

    @property
    def registry(self):
        return self.session.store.registry

    def visit_type(self, name: str) -> None:
        self.values[name] = self.registry.resolve(name, self.record.get(name, ""))

    def visit_attribute(self, name: str) -> None:
        self.values[name] = self.record.get(name)

    def visit_args(self, name: str) -> None:
        self.values[name] = load_args(self.record.get(name))

    def visit_process_reference(self, name: str) -> None:
        self._read_reference(name)

    def visit_task_reference(self, name: str) -> None:
        self._read_reference(name)

    def visit_process(self, name: str) -> None:
        self.values[name] = self.session.resolve(self.record[name])

    def visit_tasks(self, name: str) -> None:
        uuids = load_args(self.record.get(name)) or []
        self.values[name] = [self.session.resolve(uuid) for uuid in uuids]

    def _read_reference(self, name: str) -> None:
        uuid = self.record.get(name)
        self.values[name] = self.session.reference(uuid) if uuid else None


def is_task(entity: Any) -> bool:
    """Whether a loaded entity (or a proxy for one) is a task."""
    if isinstance(entity, LazyReference):
        entity = entity.resolve()
    return isinstance(entity, Task)

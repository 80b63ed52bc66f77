"""Persistence visitor protocol."""

from process_engine.persistence.visitor import (
    FieldKind,
    Persistable,
    RecordingVisitor,
    Visitor,
)

__all__ = ["FieldKind", "Persistable", "RecordingVisitor", "Visitor"]

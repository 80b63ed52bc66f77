"""Storage layer for persisted process graphs."""

from process_engine.storage.base import Store
from process_engine.storage.memory import MemoryStore

__all__ = ["Store", "MemoryStore"]

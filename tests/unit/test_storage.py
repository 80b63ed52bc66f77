"""
Unit tests for the store backends.
"""

from unittest.mock import MagicMock

import pytest

from process_engine.core.context import EngineContext
from process_engine.core.exceptions import EntityNotFoundError
from process_engine.core.process import ConcurrentProcess
from process_engine.core.task import StepTask
from process_engine.storage.memory import MemoryStore
from process_engine.storage.redis.store import RedisStore


class TestMemoryStore:
    """Tests for the in-memory store."""

    def test_write_merges_records(self):
        """Test writes merge into existing records."""
        store = MemoryStore()
        store.write_records({"a": {"x": "1", "y": "2"}})
        store.update_fields("a", {"y": "3"})

        assert store.read_record("a") == {"x": "1", "y": "3"}

    def test_read_returns_copy(self):
        store = MemoryStore()
        store.update_fields("a", {"x": "1"})

        store.read_record("a")["x"] = "changed"

        assert store.read_record("a") == {"x": "1"}

    def test_missing_record(self):
        store = MemoryStore()

        assert store.read_record("missing") is None
        assert not store.exists("missing")

    def test_increment_field(self):
        store = MemoryStore()

        assert store.increment_field("a", "n") == 1
        assert store.increment_field("a", "n") == 2
        assert store.read_record("a")["n"] == "2"

    def test_delete_records(self):
        store = MemoryStore()
        store.write_records({"a": {"x": "1"}, "b": {"x": "2"}})

        assert store.delete_records(["a", "c"]) == 1
        assert len(store) == 1

        store.clear()
        assert len(store) == 0

    def test_resave_keeps_counter(self, definition, registry):
        """Test saving again leaves the completion counter alone."""
        store = MemoryStore()
        context = EngineContext(store=store, registry=registry)
        process = ConcurrentProcess(definition, context=context)
        process.add_task(StepTask(process, "reserve", [1]))
        process.save()

        store.increment_completed(process)
        process.save()

        assert store.completed_count(process) == 1


class TestRedisStore:
    """Tests for the Redis store against a mocked client."""

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def store(self, client, test_settings):
        return RedisStore(client, settings=test_settings)

    def test_key_prefix(self, store, client):
        """Test records live under the configured prefix."""
        client.hgetall.return_value = {"entity": "StepTask"}

        assert store.read_record("abc") == {"entity": "StepTask"}
        client.hgetall.assert_called_once_with("pe:entity:abc")

    def test_missing_record(self, store, client):
        client.hgetall.return_value = {}

        assert store.read_record("abc") is None

    def test_write_records_in_pipeline(self, store, client):
        """Test a graph is written in one transaction."""
        pipe = client.pipeline.return_value.__enter__.return_value

        store.write_records({"a": {"x": "1"}, "b": {"y": "2"}})

        client.pipeline.assert_called_once_with(transaction=True)
        pipe.hset.assert_any_call("pe:entity:a", mapping={"x": "1"})
        pipe.hset.assert_any_call("pe:entity:b", mapping={"y": "2"})
        pipe.execute.assert_called_once()

    def test_update_fields(self, store, client):
        store.update_fields("a", {"state": "processing"})

        client.hset.assert_called_once_with("pe:entity:a", mapping={"state": "processing"})

    def test_increment_uses_script(self, store, client):
        """Test increments run through the registered Lua script."""
        script = client.register_script.return_value
        script.return_value = 3

        assert store.increment_field("a", "completed_count") == 3
        script.assert_called_once_with(keys=["pe:entity:a"], args=["completed_count"])

        store.increment_field("a", "completed_count")
        client.register_script.assert_called_once()

    def test_increment_missing_entity(self, store, client):
        """Test incrementing a counter of an unsaved entity."""
        client.register_script.return_value.return_value = -1

        with pytest.raises(EntityNotFoundError):
            store.increment_field("a", "completed_count")

    def test_delete_records(self, store, client):
        client.delete.return_value = 2

        assert store.delete_records(["a", "b"]) == 2
        client.delete.assert_called_once_with("pe:entity:a", "pe:entity:b")

    def test_delete_nothing(self, store, client):
        assert store.delete_records([]) == 0
        client.delete.assert_not_called()

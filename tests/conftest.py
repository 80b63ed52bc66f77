"""
Pytest fixtures and configuration for tests.
"""

import pytest

from process_engine.config import Environment, Settings
from process_engine.core.context import EngineContext
from process_engine.core.definition import Definition
from process_engine.core.registry import DefinitionRegistry
from process_engine.messaging.memory import MemoryQueue
from process_engine.storage.memory import MemoryStore
from process_engine.workers.worker import Worker


class RecordingJob:
    """Background job that records every call to ``perform``."""

    performed: list[tuple] = []

    def perform(self, *args):
        RecordingJob.performed.append(args)


class FailingJob:
    """Background job that always raises."""

    def perform(self, *args):
        raise RuntimeError("job exploded")


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        environment=Environment.TEST,
        debug=True,
        log_level="DEBUG",
    )


@pytest.fixture
def registry() -> DefinitionRegistry:
    return DefinitionRegistry()


@pytest.fixture
def context(registry) -> EngineContext:
    """Engine context over in-memory queue and store."""
    return EngineContext(queue=MemoryQueue(), store=MemoryStore(), registry=registry)


@pytest.fixture
def bare_context(registry) -> EngineContext:
    """Engine context with a queue but no store."""
    return EngineContext(queue=MemoryQueue(), registry=registry)


@pytest.fixture
def calls() -> list:
    """Log of step method invocations."""
    return []


@pytest.fixture
def definition(calls) -> Definition:
    """Order definition with a handful of step methods."""
    orders = Definition("orders")

    @orders.step
    def reserve(self, order_id):
        calls.append(("reserve", order_id))

    @orders.step
    def charge(self, order_id):
        calls.append(("charge", order_id))

    @orders.step
    def ship(self, order_id, line=None):
        calls.append(("ship", order_id, line))

    @orders.step
    def explode(self, *args):
        raise RuntimeError("step exploded")

    @orders.step
    def line_items(self, order_id):
        return [[order_id, 1], [order_id, 2]]

    @orders.step(name="whoami")
    def who_am_i(self, *args):
        calls.append(("whoami", self.uuid, self.root_key))

    return orders


@pytest.fixture
def job():
    """The recording job class, with an empty log."""
    RecordingJob.performed = []
    return RecordingJob


@pytest.fixture
def failing_job():
    return FailingJob


@pytest.fixture
def worker(context, test_settings) -> Worker:
    return Worker(context, worker_id="worker-test", settings=test_settings)

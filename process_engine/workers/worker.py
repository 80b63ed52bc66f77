"""
Worker loop.

Pulls items off the work queue, loads the entity each item names and drives
its next transition. Anything raised while handling an item is logged and
the loop carries on; failure semantics live in the state machine, not here.
"""

import importlib
import logging
import signal
import threading
import time
import uuid
from typing import Optional

from process_engine.config import Settings, get_settings
from process_engine.core.context import EngineContext, create_context
from process_engine.core.registry import DefinitionRegistry
from process_engine.core.state_machine import State
from process_engine.messaging.models import Lane, QueueItem
from process_engine.workers.jobs import JobRunner

logger = logging.getLogger(__name__)


class Worker:
    """
    Processes queue items one at a time.

    Lanes are polled in order, so by default new processes are started
    before tasks and jobs are picked up.
    """

    def __init__(
        self,
        context: EngineContext,
        worker_id: Optional[str] = None,
        lanes: Optional[list[Lane]] = None,
        job_runner: Optional[JobRunner] = None,
        settings: Optional[Settings] = None,
    ):
        if context.queue is None or context.store is None:
            raise ValueError("A worker needs a context with a queue and a store")

        self.context = context
        self.settings = settings or get_settings()
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.lanes = lanes or [Lane(name) for name in self.settings.worker.lanes]
        self.job_runner = job_runner or JobRunner()

        self._running = False
        self.processed = 0
        self.errors = 0

    # ==================== Item handling ====================

    def process_item(self, item: QueueItem) -> bool:
        """
        Handle one item.

        Returns:
            False if handling raised (the error is logged, not propagated)
        """
        logger.debug(f"{self.worker_id} handling {item.lane.value} item {item.uuid}")

        try:
            if item.lane is Lane.PROCESSES:
                self._start_process(item)
            elif item.lane is Lane.TASKS:
                self._start_task(item)
            else:
                self._run_job(item)
        except Exception as e:
            self.errors += 1
            logger.error(
                f"{self.worker_id} failed to handle {item.lane.value} item {item.uuid}: {e}",
                exc_info=True,
            )
            return False
        finally:
            self.context.queue.acknowledge(item)
            self.processed += 1

        return True

    def _start_process(self, item: QueueItem) -> None:
        process = self.context.load(item.uuid)
        if process.cancelled:
            logger.info(f"Skipping cancelled {process}")
            return
        process.start()

    def _start_task(self, item: QueueItem) -> None:
        task = self.context.load(item.uuid)
        if task.cancelled:
            logger.info(f"Skipping {task}: its process was cancelled")
            return
        task.start()

    def _run_job(self, item: QueueItem) -> None:
        task = self.context.load(item.uuid)
        if task.cancelled:
            logger.info(f"Skipping {task}: its process was cancelled")
            return
        task.start()
        if task.current_state is State.PROCESSING:
            task.perform(self.job_runner)

    # ==================== Loop ====================

    def work_once(self) -> bool:
        """Handle the first available item across lanes. False if all were empty."""
        for lane in self.lanes:
            item = self.context.queue.pop(lane)
            if item is not None:
                self.process_item(item)
                return True
        return False

    def drain(self, max_items: Optional[int] = None) -> int:
        """Handle items until every lane is empty (or ``max_items`` is reached)."""
        handled = 0
        while max_items is None or handled < max_items:
            if not self.work_once():
                break
            handled += 1
        return handled

    def run(self) -> None:
        """Run until stopped."""
        logger.info(f"Starting worker {self.worker_id} on lanes {[l.value for l in self.lanes]}")
        self._running = True
        self._setup_signal_handlers()

        poll_interval = self.settings.worker.poll_interval

        while self._running:
            if not self.work_once():
                time.sleep(poll_interval)

        logger.info(
            f"Worker {self.worker_id} stopped after {self.processed} items "
            f"({self.errors} errors)"
        )

    def stop(self) -> None:
        """Stop after the current item."""
        self._running = False

    def _setup_signal_handlers(self) -> None:
        """Setup graceful shutdown signal handlers."""
        if threading.current_thread() is not threading.main_thread():
            return

        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, self._signal_handler)

    def _signal_handler(self, signum: int, frame: object) -> None:
        """Handle shutdown signal."""
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down...")
        self.stop()


def load_registry(modules: list[str]) -> DefinitionRegistry:
    """
    Import definition modules and let each register itself.

    Every module must expose ``register(registry)``.
    """
    registry = DefinitionRegistry()
    for name in modules:
        module = importlib.import_module(name)
        module.register(registry)
        logger.info(f"Registered definitions from {name}")
    return registry


def run_worker(settings: Optional[Settings] = None) -> None:
    """Entry point for running a worker."""
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    registry = load_registry(settings.worker.definition_modules)
    context = create_context(settings, registry)

    worker = Worker(context, settings=settings)

    try:
        worker.run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted")


if __name__ == "__main__":
    run_worker()

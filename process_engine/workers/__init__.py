"""
Workers that drain the work queue.
"""

from process_engine.workers.jobs import JobRunner
from process_engine.workers.worker import Worker, load_registry, run_worker

__all__ = [
    "JobRunner",
    "Worker",
    "load_registry",
    "run_worker",
]

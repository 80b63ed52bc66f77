"""
Background-job runner.

Runs a job type's ``perform`` with the arguments stored on a JobTask.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Calls ``perform`` on a job type.

    Classes are instantiated without arguments first. Mapping arguments are
    passed as keywords, sequences as positionals, anything else as a single
    argument; ``None`` means no arguments.
    """

    def __call__(self, job: Any, args: Any) -> Any:
        target = job() if isinstance(job, type) else job

        logger.debug(f"Performing job {job!r}")

        if args is None:
            return target.perform()
        if isinstance(args, dict):
            return target.perform(**args)
        if isinstance(args, (list, tuple)):
            return target.perform(*args)
        return target.perform(args)

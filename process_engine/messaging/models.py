"""
Work queue items.

Items carry identifiers only; workers load the entity they point at from
the store.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class Lane(str, Enum):
    """Queue lanes; each is FIFO on its own."""

    PROCESSES = "processes"
    TASKS = "tasks"
    JOBS = "jobs"


class QueueItem(BaseModel):
    """An enqueued process, task or job."""

    id: str = Field(default_factory=lambda: uuid4().hex, description="Unique item ID")
    lane: Lane = Field(..., description="Lane the item was placed on")
    uuid: str = Field(..., description="Process or task uuid")
    queue: Optional[str] = Field(default=None, description="Target queue name option")

    # Job lane only
    job: Optional[str] = Field(default=None, description="Registered job name")
    args: Any = Field(default=None, description="Job arguments")

    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Transport receipt (e.g. a stream message id), not serialized
    receipt: Optional[str] = Field(default=None, exclude=True)

"""
FastAPI routes for the process engine admin API.

Implements:
- GET /health - Health check
- GET /v1/processes/:uuid - Inspect a process and its tasks
- POST /v1/processes/:uuid/pause - Pause a process
- POST /v1/processes/:uuid/resume - Resume a paused process
- POST /v1/processes/:uuid/cancel - Cancel a process
- GET /v1/queues - Pending item counts per lane

Processes are created by application code through their definitions, not
over HTTP.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from process_engine.core.context import EngineContext
from process_engine.core.exceptions import EntityNotFoundError, UnknownTypeError
from process_engine.core.process import Process
from process_engine.core.state_machine import InvalidTransition, StateTransition

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["processes"])
health_router = APIRouter(tags=["health"])


# ==================== Response Models ====================

class TaskSummary(BaseModel):
    """One task of a process."""

    uuid: str
    type: str
    state: str
    error: Optional[str] = None
    sub_process: Optional[str] = None


class ProcessDetailResponse(BaseModel):
    """Current status of a process."""

    uuid: str
    type: str
    definition: str
    state: str
    root_key: str
    parent: Optional[str] = None
    options: dict[str, Any] = Field(default_factory=dict)
    tasks: list[TaskSummary] = Field(default_factory=list)
    history: list[StateTransition] = Field(default_factory=list)


class QueueStatsResponse(BaseModel):
    """Pending items per lane."""

    lanes: dict[str, int]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    services: dict[str, str]


# ==================== Dependency Injection ====================

def get_context(request: Request) -> EngineContext:
    """Get the engine context from app state."""
    return request.app.state.context


def load_process(uuid: str, context: EngineContext = Depends(get_context)) -> Process:
    """Load a process or answer 404."""
    try:
        entity = context.load(uuid)
    except EntityNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Process not found: {uuid}",
        )
    except UnknownTypeError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    if not isinstance(entity, Process):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Process not found: {uuid}",
        )
    return entity


# ==================== Serialization ====================

def _definition_name(process: Process, context: EngineContext) -> str:
    return context.registry.name_for("definition", process.definition)


def _task_summary(task: Any) -> TaskSummary:
    sub_process = getattr(task, "sub_process", None)
    return TaskSummary(
        uuid=task.uuid,
        type=type(task).__name__,
        state=task.current_state.value,
        error=str(task.error) if task.error is not None else None,
        sub_process=sub_process.uuid if sub_process is not None else None,
    )


def process_detail(process: Process, context: EngineContext) -> ProcessDetailResponse:
    parent = process.parent
    return ProcessDetailResponse(
        uuid=process.uuid,
        type=type(process).__name__,
        definition=_definition_name(process, context),
        state=process.current_state.value,
        root_key=process.root_key,
        parent=parent.uuid if parent is not None else None,
        options=process.options,
        tasks=[_task_summary(task) for task in process.tasks],
        history=process.history,
    )


def _transition(process: Process, action: str, context: EngineContext) -> ProcessDetailResponse:
    try:
        getattr(process, action)()
    except InvalidTransition as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    logger.info(f"{action} requested for {process} over the API")
    return process_detail(process, context)


# ==================== Routes ====================

@router.get(
    "/processes/{uuid}",
    response_model=ProcessDetailResponse,
    summary="Get process status",
    description="Retrieve the current state of a process and its tasks.",
)
def get_process(
    process: Process = Depends(load_process),
    context: EngineContext = Depends(get_context),
) -> ProcessDetailResponse:
    return process_detail(process, context)


@router.post(
    "/processes/{uuid}/pause",
    response_model=ProcessDetailResponse,
    summary="Pause a process",
    description="Stop enqueuing new tasks. Tasks already queued still run.",
)
def pause_process(
    process: Process = Depends(load_process),
    context: EngineContext = Depends(get_context),
) -> ProcessDetailResponse:
    return _transition(process, "pause", context)


@router.post(
    "/processes/{uuid}/resume",
    response_model=ProcessDetailResponse,
    summary="Resume a process",
    description="Resume a paused process where its traversal stopped.",
)
def resume_process(
    process: Process = Depends(load_process),
    context: EngineContext = Depends(get_context),
) -> ProcessDetailResponse:
    return _transition(process, "resume", context)


@router.post(
    "/processes/{uuid}/cancel",
    response_model=ProcessDetailResponse,
    summary="Cancel a process",
    description="Stop the process for good. Tasks already queued are skipped.",
)
def cancel_process(
    process: Process = Depends(load_process),
    context: EngineContext = Depends(get_context),
) -> ProcessDetailResponse:
    return _transition(process, "cancel", context)


@router.get(
    "/queues",
    response_model=QueueStatsResponse,
    summary="Queue statistics",
)
def queue_stats(context: EngineContext = Depends(get_context)) -> QueueStatsResponse:
    if context.queue is None:
        return QueueStatsResponse(lanes={})
    return QueueStatsResponse(lanes=context.queue.stats())


# ==================== Health Check Routes ====================

@health_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the engine's backends.",
)
def health_check(request: Request) -> HealthResponse:
    """Check health of all services."""
    from process_engine import __version__
    from process_engine.config import Backend, get_settings

    settings = getattr(request.app.state, "settings", None) or get_settings()
    services = {
        "queue": settings.queue.backend.value,
        "store": settings.store.backend.value,
    }

    if Backend.REDIS in (settings.queue.backend, settings.store.backend):
        import redis

        from process_engine.storage.redis.connection import get_redis_connection

        try:
            healthy = get_redis_connection().health_check()
        except redis.RedisError as e:
            logger.warning(f"Redis unreachable: {e}")
            healthy = False
        services["redis"] = "healthy" if healthy else "unhealthy"

    overall = "unhealthy" if "unhealthy" in services.values() else "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        services=services,
    )

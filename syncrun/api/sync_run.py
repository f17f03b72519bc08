"""
Sync Run API Routes.

Provides endpoints for starting a sync run and for inspecting the status and
logs of the tasks it dispatches.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from syncrun.sync.controller import SyncControllerClient
from syncrun.sync.credentials import OAuthCredentialResolver
from syncrun.sync.dispatcher import RunDispatcher, RunResult
from syncrun.sync.gateway.auth import AuthPrincipal, sync_auth_handler
from syncrun.sync.tasks import TaskRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/{workspace_id}/sources", tags=["sources"])

FULL_SYNC_VALUES = ("true", "1")


# ============================================================================
# Response Models
# ============================================================================

class TaskResponse(BaseModel):
    """Response model for a sync task."""
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    task_id: str = Field(..., alias="taskId")
    sync_id: str = Field(..., alias="syncId")
    status: str
    package: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    started_at: Optional[datetime] = Field(None, alias="startedAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class TaskLogEntry(BaseModel):
    """One task log line."""
    timestamp: datetime
    level: str
    logger: Optional[str] = None
    message: str


class TaskLogsResponse(BaseModel):
    """Response model for task logs."""
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    task_id: str = Field(..., alias="taskId")
    logs: List[TaskLogEntry] = Field(default_factory=list)


# ============================================================================
# Dependencies
# ============================================================================

# Shared so OAuth access tokens are cached across requests
_credential_resolver = OAuthCredentialResolver.from_settings()


def get_run_dispatcher() -> RunDispatcher:
    """FastAPI dependency building the run dispatcher from settings."""
    controller = SyncControllerClient.from_settings()
    if controller is None:
        raise HTTPException(
            status_code=503,
            detail="env SYNCCTL_URL is not set. Sync Controller is required to run sources"
        )
    return RunDispatcher(controller=controller, credentials=_credential_resolver)


def get_task_repository() -> TaskRepository:
    """FastAPI dependency for task records."""
    return TaskRepository()


# ============================================================================
# API Endpoints
# ============================================================================

@router.get("/run", response_model=RunResult, response_model_exclude_none=True)
async def run_sync(
    workspace_id: str,
    request: Request,
    sync_id: str = Query(..., alias="syncId"),
    full_sync: Optional[str] = Query(None, alias="fullSync"),
    auth: AuthPrincipal = Depends(sync_auth_handler.require_workspace_access()),
    dispatcher: RunDispatcher = Depends(get_run_dispatcher)
):
    """
    Start a sync run.

    Returns the task handle with status and logs URLs, or an error. A sync
    that already has a running task is not started again.
    """
    logger.info(
        f"Run requested for sync {sync_id} in workspace {workspace_id} "
        f"by {auth.user_id or auth.auth_method.value}"
    )
    return await dispatcher.run_sync(
        workspace_id=workspace_id,
        sync_id=sync_id,
        full_sync=full_sync in FULL_SYNC_VALUES,
        base_url=str(request.base_url),
    )


@router.get("/tasks", response_model=TaskResponse)
async def get_task(
    workspace_id: str,
    task_id: str = Query(..., alias="taskId"),
    sync_id: str = Query(..., alias="syncId"),
    auth: AuthPrincipal = Depends(sync_auth_handler.require_workspace_access()),
    tasks: TaskRepository = Depends(get_task_repository)
):
    """Get the status of a sync task."""
    task = tasks.get_task(sync_id, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task {task_id} not found")

    return TaskResponse(
        task_id=task.task_id,
        sync_id=task.sync_id,
        status=task.status.value,
        package=task.package,
        version=task.version,
        description=task.description,
        started_at=task.started_at,
        updated_at=task.updated_at,
    )


@router.get("/logs", response_model=TaskLogsResponse)
async def get_task_logs(
    workspace_id: str,
    task_id: str = Query(..., alias="taskId"),
    sync_id: str = Query(..., alias="syncId"),
    limit: int = Query(1000, ge=1, le=10000),
    auth: AuthPrincipal = Depends(sync_auth_handler.require_workspace_access()),
    tasks: TaskRepository = Depends(get_task_repository)
):
    """Get the log lines of a sync task."""
    lines = tasks.get_task_logs(sync_id, task_id, limit=limit)
    return TaskLogsResponse(
        task_id=task_id,
        logs=[
            TaskLogEntry(timestamp=l.timestamp, level=l.level, logger=l.logger, message=l.message)
            for l in lines
        ],
    )

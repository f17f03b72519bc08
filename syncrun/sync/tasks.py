"""
Sync task records.

Tasks and their logs are written by the sync controller; this module reads
them for the running-task check and the status/logs endpoints.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode

from sqlalchemy import select

from syncrun.database.connection import DatabaseManager, db_manager
from syncrun.sync.models import SourceTaskModel, TaskLogModel, TaskStatus

logger = logging.getLogger(__name__)


@dataclass
class TaskRecord:
    """A dispatched read task."""
    task_id: str
    sync_id: str
    status: TaskStatus
    package: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class TaskLogLine:
    """One log line of a task."""
    timestamp: datetime
    level: str
    logger: Optional[str]
    message: str


def task_status_url(base_url: str, workspace_id: str, task_id: str, sync_id: str) -> str:
    """URL of the task status endpoint."""
    query = urlencode({"taskId": task_id, "syncId": sync_id})
    return f"{base_url.rstrip('/')}/api/{workspace_id}/sources/tasks?{query}"


def task_logs_url(base_url: str, workspace_id: str, task_id: str, sync_id: str) -> str:
    """URL of the task logs endpoint."""
    query = urlencode({"taskId": task_id, "syncId": sync_id})
    return f"{base_url.rstrip('/')}/api/{workspace_id}/sources/logs?{query}"


def _to_record(row: SourceTaskModel) -> TaskRecord:
    return TaskRecord(
        task_id=row.task_id,
        sync_id=row.sync_id,
        status=row.status,
        package=row.package,
        version=row.version,
        description=row.description,
        started_at=row.started_at,
        updated_at=row.updated_at,
    )


class TaskRepository:
    """Read access to sync tasks and task logs."""

    def __init__(self, database: Optional[DatabaseManager] = None):
        self.database = database or db_manager

    def find_running_task(self, sync_id: str) -> Optional[TaskRecord]:
        """Get a task of the sync that is currently RUNNING, if any."""
        with self.database.get_session() as session:
            stmt = (
                select(SourceTaskModel)
                .where(
                    SourceTaskModel.sync_id == sync_id,
                    SourceTaskModel.status == TaskStatus.RUNNING,
                )
                .order_by(SourceTaskModel.started_at.desc())
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return _to_record(row) if row else None

    def get_task(self, sync_id: str, task_id: str) -> Optional[TaskRecord]:
        """Get a task by ID within a sync."""
        with self.database.get_session() as session:
            stmt = select(SourceTaskModel).where(
                SourceTaskModel.task_id == task_id,
                SourceTaskModel.sync_id == sync_id,
            )
            row = session.execute(stmt).scalar_one_or_none()
            return _to_record(row) if row else None

    def get_task_logs(self, sync_id: str, task_id: str, limit: int = 1000) -> List[TaskLogLine]:
        """Get log lines of a task in emission order."""
        with self.database.get_session() as session:
            stmt = (
                select(TaskLogModel)
                .where(
                    TaskLogModel.task_id == task_id,
                    TaskLogModel.sync_id == sync_id,
                )
                .order_by(TaskLogModel.timestamp, TaskLogModel.id)
                .limit(limit)
            )
            return [
                TaskLogLine(
                    timestamp=row.timestamp,
                    level=row.level,
                    logger=row.logger,
                    message=row.message,
                )
                for row in session.execute(stmt).scalars()
            ]

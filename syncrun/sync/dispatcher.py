"""
Run Dispatcher.

Orchestrates one sync run: refuses to start a sync that already has a
RUNNING task, assembles the read request (credentials, configured catalog,
checkpoint state) and hands it to the sync controller.

The running-task check and the dispatch are not atomic. Two concurrent runs
of the same sync can both pass the check before the controller records
either task, which results in two dispatches.
"""

from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from syncrun.config.settings import settings
from syncrun.sync.catalog import CatalogResolver, select_configured_streams
from syncrun.sync.controller import SyncControllerClient
from syncrun.sync.credentials import (
    CredentialResolver,
    PassthroughCredentialResolver,
    RequestContext,
)
from syncrun.sync.errors import CredentialResolutionError, DispatchError
from syncrun.sync.state import CheckpointStateRepository
from syncrun.sync.store import ConfigurationStore
from syncrun.sync.tasks import TaskRepository, task_logs_url, task_status_url
from syncrun.system.logging_config import get_logger

logger = get_logger(__name__, service_name="sync-run")

CATALOG_NOT_FOUND_ERROR = "Catalog not found. Please run Refresh Catalog in Sync settings"
ALREADY_RUNNING_ERROR = "Sync is already running"


class RunningTask(BaseModel):
    """Handle of the task that blocks a new run."""
    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(..., alias="taskId")
    status: str
    logs: str


class RunResult(BaseModel):
    """Outcome of a run request."""
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    error: Optional[str] = None
    task_id: Optional[str] = Field(None, alias="taskId")
    status: Optional[str] = None
    logs: Optional[str] = None
    running_task: Optional[RunningTask] = Field(None, alias="runningTask")

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RunDispatcher:
    """
    Sync run orchestration.

    Collaborators default to database-backed implementations sharing the
    global database manager; the controller client is required.
    """

    def __init__(
        self,
        controller: SyncControllerClient,
        store: Optional[ConfigurationStore] = None,
        tasks: Optional[TaskRepository] = None,
        states: Optional[CheckpointStateRepository] = None,
        catalogs: Optional[CatalogResolver] = None,
        credentials: Optional[CredentialResolver] = None,
        base_url: Optional[str] = None
    ):
        self.controller = controller
        self.store = store or ConfigurationStore()
        self.tasks = tasks or TaskRepository()
        self.states = states or CheckpointStateRepository()
        self.catalogs = catalogs or CatalogResolver()
        self.credentials = credentials or PassthroughCredentialResolver()
        self.base_url = base_url or settings.app.app_base_url

    async def run_sync(
        self,
        workspace_id: str,
        sync_id: str,
        full_sync: bool = False,
        base_url: Optional[str] = None
    ) -> RunResult:
        """
        Start a sync run.

        Args:
            workspace_id: Workspace owning the sync
            sync_id: Sync link ID
            full_sync: Discard checkpoint state and replicate from scratch
            base_url: Request base URL, used for status/logs links when no
                public base URL is configured

        Returns:
            RunResult; failures are reported in the result, never raised
        """
        base_url = self.base_url or base_url or ""
        try:
            return await self._run_sync(workspace_id, sync_id, full_sync, base_url)
        except Exception as e:
            logger.exception(
                f"Error running sync. sync: {sync_id} workspace: {workspace_id}",
                extra={"workspace_id": workspace_id, "sync_id": sync_id}
            )
            return RunResult(ok=False, error=f"Error running sync: {e}")

    async def _run_sync(self, workspace_id: str, sync_id: str, full_sync: bool, base_url: str) -> RunResult:
        sync = self.store.get_sync_link(workspace_id, sync_id)
        if sync is None:
            return RunResult(ok=False, error=f"Sync {sync_id} not found")

        running = self.tasks.find_running_task(sync_id)
        if running is not None:
            logger.info(f"Sync {sync_id} already has running task {running.task_id}")
            return RunResult(
                ok=False,
                error=ALREADY_RUNNING_ERROR,
                running_task=RunningTask(
                    task_id=running.task_id,
                    status=task_status_url(base_url, workspace_id, running.task_id, sync_id),
                    logs=task_logs_url(base_url, workspace_id, running.task_id, sync_id),
                ),
            )

        service = sync.service
        if service is None:
            return RunResult(ok=False, error=f"Service {sync.from_id} not found")

        state = self.states.load_checkpoint_state(sync_id, full_sync=full_sync)

        catalog = self.catalogs.resolve_catalog(service.package, service.version, sync.storage_key)
        if catalog is None:
            return RunResult(ok=False, error=CATALOG_NOT_FOUND_ERROR)

        configured_catalog = select_configured_streams(catalog, sync.selected_streams)

        task_id = str(uuid4())

        try:
            config = await self.credentials.resolve_credentials(
                service, RequestContext(workspace_id=workspace_id, sync_id=sync_id, base_url=base_url)
            )

            body = {
                "config": config,
                "catalog": configured_catalog.to_wire(),
            }
            wire_state = state.to_wire() if state is not None else None
            if wire_state is not None:
                body["state"] = wire_state

            response = await self.controller.read(
                package=service.package,
                version=service.version,
                task_id=task_id,
                sync_id=sync_id,
                body=body,
            )
        except (CredentialResolutionError, DispatchError) as e:
            logger.error(
                f"Dispatch of task {task_id} for sync {sync_id} failed: {e}",
                extra={"workspace_id": workspace_id, "sync_id": sync_id, "task_id": task_id}
            )
            return RunResult(ok=False, error=str(e), task_id=task_id)

        if not response.ok:
            logger.warning(
                f"Sync controller rejected task {task_id} for sync {sync_id}: {response.error}",
                extra={"workspace_id": workspace_id, "sync_id": sync_id, "task_id": task_id}
            )
            return RunResult(ok=False, error=response.error or "unknown error", task_id=task_id)

        logger.info(
            f"Started task {task_id} for sync {sync_id}: "
            f"{len(configured_catalog.streams)} streams, state={state.type.value if state else None}"
        )
        return RunResult(
            ok=True,
            task_id=task_id,
            status=task_status_url(base_url, workspace_id, task_id, sync_id),
            logs=task_logs_url(base_url, workspace_id, task_id, sync_id),
        )

"""
Shared fixtures for sync run tests.

Each test gets its own SQLite database under ``tmp_path`` with all tables
created, plus small helpers to seed configuration, state, catalogs and tasks.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import pytest

from syncrun.database.connection import DatabaseManager
from syncrun.sync.models import (
    ConfigObjectType,
    ConfigurationObjectLinkModel,
    ConfigurationObjectModel,
    LinkType,
    SourceCatalogModel,
    SourceStateModel,
    SourceTaskModel,
    TaskLogModel,
    TaskStatus,
    WorkspaceAccessModel,
)


WORKSPACE_ID = "ws-1"
SYNC_ID = "sync-1"
SERVICE_ID = "svc-1"
PACKAGE = "airbyte/source-postgres"
VERSION = "1.2.0"
STORAGE_KEY = "catalog-key-1"

CATALOG = {
    "streams": [
        {"name": "users", "namespace": "public", "json_schema": {}, "supported_sync_modes": ["full_refresh", "incremental"]},
        {"name": "orders", "json_schema": {}, "supported_sync_modes": ["full_refresh"]},
        {"name": "events", "namespace": "analytics", "json_schema": {}, "supported_sync_modes": ["incremental"]},
    ]
}


@pytest.fixture
def database(tmp_path):
    """Isolated SQLite database with all tables created."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'syncrun.db'}")
    manager.create_tables()
    yield manager
    manager.close()


@pytest.fixture
def add_service(database):
    def _add(
        service_id: str = SERVICE_ID,
        workspace_id: str = WORKSPACE_ID,
        config: Optional[Dict[str, Any]] = None,
        deleted: bool = False,
        object_type: str = ConfigObjectType.SERVICE.value
    ):
        if config is None:
            config = {
                "package": PACKAGE,
                "version": VERSION,
                "protocol": "airbyte",
                "credentials": {"host": "db.internal", "password": "s3cret"},
            }
        with database.get_session() as session:
            session.add(ConfigurationObjectModel(
                id=service_id,
                workspace_id=workspace_id,
                type=object_type,
                config=config,
                deleted=deleted,
            ))
    return _add


@pytest.fixture
def add_sync(database):
    def _add(
        sync_id: str = SYNC_ID,
        workspace_id: str = WORKSPACE_ID,
        from_id: str = SERVICE_ID,
        streams: Optional[Dict[str, Any]] = None,
        storage_key: str = STORAGE_KEY,
        deleted: bool = False,
        link_type: str = LinkType.SYNC.value
    ):
        if streams is None:
            streams = {
                "public.users": {"sync_mode": "incremental", "cursor_field": ["updated_at"]},
                "orders": {"sync_mode": "full_refresh"},
            }
        with database.get_session() as session:
            session.add(ConfigurationObjectLinkModel(
                id=sync_id,
                workspace_id=workspace_id,
                type=link_type,
                from_id=from_id,
                to_id="dst-1",
                data={"storageKey": storage_key, "streams": streams},
                deleted=deleted,
            ))
    return _add


@pytest.fixture
def add_catalog(database):
    def _add(
        catalog: Optional[Dict[str, Any]] = None,
        package: str = PACKAGE,
        version: str = VERSION,
        storage_key: str = STORAGE_KEY
    ):
        with database.get_session() as session:
            session.add(SourceCatalogModel(
                key=storage_key,
                package=package,
                version=version,
                catalog=catalog if catalog is not None else CATALOG,
                status="SUCCESS",
            ))
    return _add


@pytest.fixture
def add_state_rows(database):
    def _add(rows: List[Tuple[str, Any]], sync_id: str = SYNC_ID):
        with database.get_session() as session:
            for stream, state in rows:
                session.add(SourceStateModel(sync_id=sync_id, stream=stream, state=state))
    return _add


@pytest.fixture
def add_task(database):
    def _add(
        task_id: str,
        sync_id: str = SYNC_ID,
        status: TaskStatus = TaskStatus.RUNNING,
        started_at: Optional[datetime] = None
    ):
        with database.get_session() as session:
            session.add(SourceTaskModel(
                task_id=task_id,
                sync_id=sync_id,
                package=PACKAGE,
                version=VERSION,
                status=status,
                started_at=started_at or datetime(2024, 1, 1, 12, 0, 0),
            ))
    return _add


@pytest.fixture
def add_task_log(database):
    def _add(task_id: str, message: str, timestamp: datetime, sync_id: str = SYNC_ID, level: str = "INFO"):
        with database.get_session() as session:
            session.add(TaskLogModel(
                task_id=task_id,
                sync_id=sync_id,
                timestamp=timestamp,
                level=level,
                logger="source",
                message=message,
            ))
    return _add


@pytest.fixture
def grant_access(database):
    def _grant(user_id: str, workspace_id: str = WORKSPACE_ID):
        with database.get_session() as session:
            session.add(WorkspaceAccessModel(workspace_id=workspace_id, user_id=user_id))
    return _grant


@pytest.fixture
def seeded_sync(add_service, add_sync, add_catalog):
    """A live sync with its service and stored catalog."""
    add_service()
    add_sync()
    add_catalog()

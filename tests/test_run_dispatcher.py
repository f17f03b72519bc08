"""
Tests for sync run orchestration.

Runs go through the database-backed collaborators and a sync controller
client on a mock transport, so the dispatched request is checked end to end.
"""

import asyncio
import json
import logging
from unittest.mock import AsyncMock

import httpx
import pytest

from syncrun.sync.catalog import CatalogResolver
from syncrun.sync.controller import SyncControllerClient
from syncrun.sync.credentials import CredentialResolver, RequestContext
from syncrun.sync.dispatcher import (
    ALREADY_RUNNING_ERROR,
    CATALOG_NOT_FOUND_ERROR,
    RunDispatcher,
)
from syncrun.sync.errors import CredentialResolutionError
from syncrun.sync.models import TaskStatus
from syncrun.sync.state import GLOBAL_STATE_KEY, LEGACY_STATE_KEY, CheckpointStateRepository
from syncrun.sync.store import ConfigurationStore
from syncrun.sync.tasks import TaskRepository


BASE_URL = "https://console.example.com"


class FakeController:
    """Records read requests and answers with a fixed response."""

    def __init__(self, response=None, status_code=200):
        self.requests = []
        self.response = response if response is not None else {"ok": True}
        self.status_code = status_code

    def handler(self, request):
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.response)

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


class FailingCredentialResolver(CredentialResolver):
    async def resolve_credentials(self, service, context):
        raise CredentialResolutionError(f"OAuth token refresh for service {service.id} failed with status 400")


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def make_dispatcher(database, controller):
    def _make(credentials=None):
        return RunDispatcher(
            controller=SyncControllerClient("http://syncctl", transport=httpx.MockTransport(controller.handler)),
            store=ConfigurationStore(database),
            tasks=TaskRepository(database),
            states=CheckpointStateRepository(database),
            catalogs=CatalogResolver(database),
            credentials=credentials,
            base_url=BASE_URL,
        )
    return _make


@pytest.fixture
def dispatcher(make_dispatcher):
    return make_dispatcher()


class TestRunPreconditions:
    """Tests for runs that never reach the controller."""

    @pytest.mark.asyncio
    async def test_sync_not_found(self, dispatcher, controller):
        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.to_response() == {"ok": False, "error": "Sync sync-1 not found"}
        assert controller.requests == []

    @pytest.mark.asyncio
    async def test_soft_deleted_sync_not_found(self, dispatcher, controller, add_service, add_sync, add_catalog):
        add_service()
        add_sync(deleted=True)
        add_catalog()

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.error == "Sync sync-1 not found"
        assert controller.requests == []

    @pytest.mark.asyncio
    async def test_sync_of_other_workspace_not_found(self, dispatcher, seeded_sync):
        result = await dispatcher.run_sync("ws-2", "sync-1")

        assert result.error == "Sync sync-1 not found"

    @pytest.mark.asyncio
    async def test_already_running(self, dispatcher, controller, seeded_sync, add_task):
        add_task("t-running")

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.to_response() == {
            "ok": False,
            "error": ALREADY_RUNNING_ERROR,
            "runningTask": {
                "taskId": "t-running",
                "status": f"{BASE_URL}/api/ws-1/sources/tasks?taskId=t-running&syncId=sync-1",
                "logs": f"{BASE_URL}/api/ws-1/sources/logs?taskId=t-running&syncId=sync-1",
            },
        }
        assert controller.requests == []

    @pytest.mark.asyncio
    async def test_concurrent_runs_against_running_task(self, dispatcher, controller, seeded_sync, add_task):
        add_task("t-running")

        results = await asyncio.gather(
            dispatcher.run_sync("ws-1", "sync-1"),
            dispatcher.run_sync("ws-1", "sync-1"),
        )

        assert [r.error for r in results] == [ALREADY_RUNNING_ERROR, ALREADY_RUNNING_ERROR]
        assert {r.running_task.task_id for r in results} == {"t-running"}
        assert controller.requests == []

    @pytest.mark.asyncio
    async def test_finished_tasks_do_not_block(self, dispatcher, controller, seeded_sync, add_task):
        add_task("t-1", status=TaskStatus.SUCCEEDED)
        add_task("t-2", status=TaskStatus.FAILED)
        add_task("t-3", status=TaskStatus.CANCELLED)

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.ok is True
        assert len(controller.requests) == 1

    @pytest.mark.asyncio
    async def test_service_not_found(self, dispatcher, controller, add_sync, add_catalog):
        add_sync(from_id="svc-gone")
        add_catalog()

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.to_response() == {"ok": False, "error": "Service svc-gone not found"}
        assert controller.requests == []

    @pytest.mark.asyncio
    async def test_deleted_service_not_found(self, dispatcher, add_service, add_sync, add_catalog):
        add_service(deleted=True)
        add_sync()
        add_catalog()

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.error == "Service svc-1 not found"

    @pytest.mark.asyncio
    async def test_catalog_not_found(self, dispatcher, controller, add_service, add_sync):
        add_service()
        add_sync()

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.to_response() == {"ok": False, "error": CATALOG_NOT_FOUND_ERROR}
        assert controller.requests == []

    @pytest.mark.asyncio
    async def test_invalid_stream_key_in_state(self, dispatcher, controller, seeded_sync, add_state_rows):
        add_state_rows([("users", {"cursor": 1}), ("a.b.c", {"cursor": 2})])

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.to_response() == {"ok": False, "error": "Error running sync: Invalid stream name a.b.c"}
        assert controller.requests == []


class TestRunDispatch:
    """Tests for the dispatched read request and its outcome."""

    @pytest.mark.asyncio
    async def test_successful_dispatch(self, dispatcher, controller, seeded_sync):
        result = await dispatcher.run_sync("ws-1", "sync-1")

        response = result.to_response()
        task_id = response["taskId"]
        assert response == {
            "ok": True,
            "taskId": task_id,
            "status": f"{BASE_URL}/api/ws-1/sources/tasks?taskId={task_id}&syncId=sync-1",
            "logs": f"{BASE_URL}/api/ws-1/sources/logs?taskId={task_id}&syncId=sync-1",
        }

        request = controller.requests[0]
        assert request.url.path == "/read"
        assert dict(request.url.params) == {
            "package": "airbyte/source-postgres",
            "version": "1.2.0",
            "taskId": task_id,
            "syncId": "sync-1",
        }

    @pytest.mark.asyncio
    async def test_request_body_without_state(self, dispatcher, controller, seeded_sync):
        await dispatcher.run_sync("ws-1", "sync-1")

        body = controller.bodies[0]
        assert "state" not in body
        assert body["config"]["id"] == "svc-1"
        assert body["config"]["credentials"] == {"host": "db.internal", "password": "s3cret"}
        streams = body["catalog"]["streams"]
        assert [s["stream"]["name"] for s in streams] == ["users", "orders"]
        assert streams[0]["sync_mode"] == "incremental"
        assert streams[0]["cursor_field"] == ["updated_at"]
        assert all(s["destination_sync_mode"] == "overwrite" for s in streams)
        assert streams[0]["stream"]["namespace"] == "public"

    @pytest.mark.asyncio
    async def test_stream_state_is_sent(self, dispatcher, controller, seeded_sync, add_state_rows):
        add_state_rows([("public.users", {"cursor": "2024-01-01"}), ("orders", {"id": 42})])

        await dispatcher.run_sync("ws-1", "sync-1")

        state = controller.bodies[0]["state"]
        by_name = {s["stream"]["stream_descriptor"]["name"]: s for s in state}
        assert by_name["users"] == {
            "type": "STREAM",
            "stream": {
                "stream_descriptor": {"name": "users", "namespace": "public"},
                "stream_state": {"cursor": "2024-01-01"},
            },
        }
        assert "namespace" not in by_name["orders"]["stream"]["stream_descriptor"]

    @pytest.mark.asyncio
    async def test_global_state_is_sent(self, dispatcher, controller, seeded_sync, add_state_rows):
        add_state_rows([(GLOBAL_STATE_KEY, {"lsn": 100})])

        await dispatcher.run_sync("ws-1", "sync-1")

        assert controller.bodies[0]["state"] == [{"type": "GLOBAL", "global": {"lsn": 100}}]

    @pytest.mark.asyncio
    async def test_legacy_state_is_sent_verbatim(self, dispatcher, controller, seeded_sync, add_state_rows):
        add_state_rows([(LEGACY_STATE_KEY, {"cursor": 5, "nested": [1, 2]})])

        await dispatcher.run_sync("ws-1", "sync-1")

        assert controller.bodies[0]["state"] == {"cursor": 5, "nested": [1, 2]}

    @pytest.mark.asyncio
    async def test_full_sync_discards_state(self, dispatcher, controller, database, seeded_sync, add_state_rows):
        add_state_rows([("public.users", {"cursor": 1}), ("orders", {"cursor": 2})])

        result = await dispatcher.run_sync("ws-1", "sync-1", full_sync=True)

        assert result.ok is True
        assert "state" not in controller.bodies[0]
        assert CheckpointStateRepository(database).fetch_rows("sync-1") == []

    @pytest.mark.asyncio
    async def test_each_run_gets_a_new_task_id(self, dispatcher, seeded_sync):
        first = await dispatcher.run_sync("ws-1", "sync-1")
        second = await dispatcher.run_sync("ws-1", "sync-1")

        assert first.task_id != second.task_id

    @pytest.mark.asyncio
    async def test_controller_rejection(self, dispatcher, controller, seeded_sync):
        controller.response = {"ok": False, "error": "boom"}

        result = await dispatcher.run_sync("ws-1", "sync-1")

        response = result.to_response()
        assert response["ok"] is False
        assert response["error"] == "boom"
        assert response["taskId"] == controller.requests[0].url.params["taskId"]
        assert "status" not in response

    @pytest.mark.asyncio
    async def test_controller_rejection_without_message(self, dispatcher, controller, seeded_sync):
        controller.response = {"ok": False}

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.error == "unknown error"
        assert result.task_id is not None

    @pytest.mark.asyncio
    async def test_controller_http_error(self, dispatcher, controller, seeded_sync):
        controller.status_code = 500
        controller.response = {"message": "internal"}

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.ok is False
        assert result.error.startswith("POST http://syncctl/read failed with status 500")
        assert result.task_id == controller.requests[0].url.params["taskId"]

    @pytest.mark.asyncio
    async def test_credential_failure(self, make_dispatcher, controller, seeded_sync):
        dispatcher = make_dispatcher(credentials=FailingCredentialResolver())

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.ok is False
        assert result.error == "OAuth token refresh for service svc-1 failed with status 400"
        assert result.task_id is not None
        assert controller.requests == []

    @pytest.mark.asyncio
    async def test_resolved_config_is_dispatched(self, make_dispatcher, controller, seeded_sync):
        credentials = AsyncMock(spec=CredentialResolver)
        credentials.resolve_credentials.return_value = {"id": "svc-1", "credentials": {"oauth": {"access_token": "fresh"}}}
        dispatcher = make_dispatcher(credentials=credentials)

        await dispatcher.run_sync("ws-1", "sync-1")

        service, context = credentials.resolve_credentials.await_args.args
        assert service.id == "svc-1"
        assert context == RequestContext(workspace_id="ws-1", sync_id="sync-1", base_url=BASE_URL)
        assert controller.bodies[0]["config"] == {"id": "svc-1", "credentials": {"oauth": {"access_token": "fresh"}}}

    @pytest.mark.asyncio
    async def test_null_legacy_state_is_not_sent(self, dispatcher, controller, seeded_sync, add_state_rows):
        add_state_rows([(LEGACY_STATE_KEY, None)])

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.ok is True
        assert "state" not in controller.bodies[0]

    @pytest.mark.asyncio
    async def test_stream_selected_without_directive(self, dispatcher, controller, add_service, add_sync, add_catalog):
        add_service()
        add_sync(streams={"orders": True, "public.users": False})
        add_catalog()

        result = await dispatcher.run_sync("ws-1", "sync-1")

        assert result.ok is True
        assert controller.bodies[0]["catalog"]["streams"] == [
            {
                "destination_sync_mode": "overwrite",
                "stream": {"name": "orders", "json_schema": {}, "supported_sync_modes": ["full_refresh"]},
            }
        ]

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_logged_with_task_context(self, dispatcher, controller, seeded_sync, caplog):
        controller.status_code = 503
        controller.response = {"message": "unavailable"}

        with caplog.at_level(logging.ERROR, logger="syncrun.sync.dispatcher"):
            result = await dispatcher.run_sync("ws-1", "sync-1")

        record = [r for r in caplog.records if r.name == "syncrun.sync.dispatcher"][-1]
        assert record.task_id == result.task_id
        assert record.sync_id == "sync-1"
        assert record.workspace_id == "ws-1"
        assert record.service_name == "sync-run"

"""
Sync Controller Client.

Dispatches read tasks to the external sync controller. A dispatch starts an
asynchronous remote job; the client only waits for the controller to accept it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from syncrun.config.settings import settings
from syncrun.sync.errors import DispatchError

logger = logging.getLogger(__name__)

MAX_RESPONSE_LEN = 300


@dataclass
class DispatchResponse:
    """Controller answer to a read request."""
    ok: bool
    error: Optional[str] = None


def _truncate(text: str) -> str:
    if len(text) > MAX_RESPONSE_LEN:
        return f"{text[:MAX_RESPONSE_LEN]}...(truncated, total length: {len(text)})"
    return text


class SyncControllerClient:
    """HTTP client for the sync controller ``/read`` endpoint."""

    def __init__(
        self,
        base_url: str,
        auth_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_key = auth_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> Optional["SyncControllerClient"]:
        """Client configured from settings, or None when SYNCCTL_URL is not set."""
        if not settings.sync_controller.syncctl_url:
            return None
        return cls(
            base_url=settings.sync_controller.syncctl_url,
            auth_key=settings.sync_controller.syncctl_auth_key,
            timeout=settings.sync_controller.syncctl_timeout,
        )

    @property
    def headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.auth_key:
            headers["Authorization"] = f"Bearer {self.auth_key}"
        return headers

    async def read(
        self,
        package: str,
        version: str,
        task_id: str,
        sync_id: str,
        body: Dict[str, Any]
    ) -> DispatchResponse:
        """
        Issue one read request.

        Args:
            package: Source connector package
            version: Source connector version
            task_id: Newly generated task ID
            sync_id: Sync link ID
            body: ``config``, ``catalog`` and optional ``state``

        Returns:
            DispatchResponse as reported by the controller

        Raises:
            DispatchError: If the controller is unreachable, answers with a
                non-2xx status or an unparseable body
        """
        url = f"{self.base_url}/read"
        params = {
            "package": package,
            "version": version,
            "taskId": task_id,
            "syncId": sync_id,
        }

        logger.info(f"Dispatching read task {task_id} for sync {sync_id} ({package}@{version})")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, params=params, json=body, headers=self.headers)
        except httpx.HTTPError as e:
            raise DispatchError(f"POST {url} failed: {e}") from e

        if not response.is_success:
            raise DispatchError(
                f"POST {url} failed with status {response.status_code} "
                f"{response.reason_phrase}: {_truncate(response.text)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DispatchError(f"POST {url} returned invalid JSON: {_truncate(response.text)}") from e

        if not isinstance(payload, dict):
            raise DispatchError(f"POST {url} returned unexpected response: {_truncate(response.text)}")

        return DispatchResponse(ok=bool(payload.get("ok")), error=payload.get("error"))

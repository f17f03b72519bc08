"""
Credential Resolver.

Materializes live service credentials before a read is dispatched. The
resolver is a capability interface so alternate auth schemes can be plugged
into the dispatcher without touching it.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import httpx

from syncrun.config.settings import settings
from syncrun.sync.errors import CredentialResolutionError
from syncrun.sync.store import ServiceConfig

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Request-scoped information available to credential resolvers."""
    workspace_id: str
    sync_id: str
    base_url: str


class CredentialResolver(ABC):
    """Turns a stored service configuration into the config sent to a read."""

    @abstractmethod
    async def resolve_credentials(self, service: ServiceConfig, context: RequestContext) -> Dict[str, Any]:
        """
        Resolve the request config for a service.

        Returns:
            Service config with live credentials and the service ``id``

        Raises:
            CredentialResolutionError: If credentials cannot be materialized
        """
        pass


class PassthroughCredentialResolver(CredentialResolver):
    """Sends stored credentials as they are."""

    async def resolve_credentials(self, service: ServiceConfig, context: RequestContext) -> Dict[str, Any]:
        return service.to_request_config()


class OAuthCredentialResolver(CredentialResolver):
    """
    Refreshes platform-managed OAuth credentials.

    A service is OAuth-managed when its credentials carry an ``oauth`` object
    with a ``refresh_token``. Access tokens are cached per service and
    stored refresh token until ``refresh_margin_seconds`` before they expire,
    so a re-authorized service never reuses the old grant. Other services
    pass through unchanged.
    """

    def __init__(
        self,
        token_url: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        refresh_margin_seconds: int = 60,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_margin_seconds = refresh_margin_seconds
        self.timeout = timeout
        self._transport = transport
        # (service id, stored refresh token) -> (access token, refresh token, expires at)
        self._tokens: Dict[Tuple[str, str], Tuple[str, str, datetime]] = {}

    @classmethod
    def from_settings(cls) -> "OAuthCredentialResolver":
        return cls(
            token_url=settings.oauth.oauth_token_url,
            client_id=settings.oauth.oauth_client_id,
            client_secret=settings.oauth.oauth_client_secret,
            refresh_margin_seconds=settings.oauth.oauth_refresh_margin_seconds,
        )

    async def resolve_credentials(self, service: ServiceConfig, context: RequestContext) -> Dict[str, Any]:
        config = service.to_request_config()
        credentials = config.get("credentials")
        if isinstance(credentials, str):
            try:
                credentials = json.loads(credentials)
            except ValueError:
                return config

        oauth = credentials.get("oauth") if isinstance(credentials, dict) else None
        if not isinstance(oauth, dict) or not oauth.get("refresh_token"):
            return config

        access_token, refresh_token = await self._get_access_token(service.id, oauth["refresh_token"])
        logger.info(f"Resolved OAuth credentials for service {service.id} (sync {context.sync_id})")
        config["credentials"] = {
            **credentials,
            "oauth": {**oauth, "access_token": access_token, "refresh_token": refresh_token},
        }
        return config

    async def _get_access_token(self, service_id: str, refresh_token: str) -> Tuple[str, str]:
        """Get a cached access token or refresh it."""
        cache_key = (service_id, refresh_token)
        cached = self._tokens.get(cache_key)
        if cached and datetime.utcnow() < cached[2]:
            return cached[0], cached[1]

        if not self.token_url:
            raise CredentialResolutionError(
                f"Service {service_id} uses managed OAuth but OAUTH_TOKEN_URL is not set"
            )

        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        if self.client_id:
            data["client_id"] = self.client_id
        if self.client_secret:
            data["client_secret"] = self.client_secret

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.token_url, data=data)
                response.raise_for_status()
                token_data = response.json()
        except httpx.HTTPStatusError as e:
            raise CredentialResolutionError(
                f"OAuth token refresh for service {service_id} failed with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise CredentialResolutionError(f"OAuth token refresh for service {service_id} failed: {e}") from e

        access_token = token_data.get("access_token")
        if not access_token:
            raise CredentialResolutionError(f"OAuth token response for service {service_id} has no access_token")

        new_refresh_token = token_data.get("refresh_token") or refresh_token
        expires_in = int(token_data.get("expires_in", 3600))
        expires_at = datetime.utcnow() + timedelta(seconds=max(expires_in - self.refresh_margin_seconds, 0))
        self._tokens[cache_key] = (access_token, new_refresh_token, expires_at)

        return access_token, new_refresh_token

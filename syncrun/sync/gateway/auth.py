"""
Sync Gateway Authentication and Authorization.

Run requests are accepted from two kinds of callers:
- services presenting the shared sync controller secret as a bearer token
- console users presenting a JWT, who must have access to the workspace

The shared secret is checked first; user authentication is the fallback.
"""

import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import jwt
from fastapi import Request
from pydantic import BaseModel
from sqlalchemy import select

from syncrun.config.settings import settings
from syncrun.database.connection import DatabaseManager, db_manager
from syncrun.sync.errors import UnauthorizedError
from syncrun.sync.models import WorkspaceAccessModel

logger = logging.getLogger(__name__)


class AuthMethod(str, Enum):
    """Authentication method types."""
    SERVICE_TOKEN = "service_token"
    JWT = "jwt"


@dataclass
class AuthPrincipal:
    """Authenticated caller."""
    auth_method: AuthMethod
    user_id: Optional[str] = None


class AuthConfig(BaseModel):
    """Authentication configuration."""
    service_token: Optional[str] = None
    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"

    @classmethod
    def from_settings(cls) -> "AuthConfig":
        return cls(
            service_token=settings.sync_controller.syncctl_auth_key,
            jwt_secret_key=settings.security.jwt_secret_key,
            jwt_algorithm=settings.security.jwt_algorithm,
        )


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return authorization.strip() or None


class SyncAuthHandler:
    """Authentication handler for sync run endpoints."""

    def __init__(self, config: Optional[AuthConfig] = None, database: Optional[DatabaseManager] = None):
        self._config = config
        self.database = database or db_manager

    @property
    def config(self) -> AuthConfig:
        return self._config or AuthConfig.from_settings()

    def validate_service_token(self, token: Optional[str]) -> bool:
        """Check a bearer token against the shared sync controller secret."""
        secret = self.config.service_token
        if not token or not secret:
            return False
        return hmac.compare_digest(token.encode(), secret.encode())

    def validate_jwt_token(self, token: Optional[str]) -> Optional[str]:
        """Validate a user JWT and return the user ID."""
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self.config.jwt_secret_key,
                algorithms=[self.config.jwt_algorithm]
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {e}")
            return None
        return payload.get("sub")

    def has_workspace_access(self, user_id: str, workspace_id: str) -> bool:
        """Check that a user is a member of a workspace."""
        with self.database.get_session() as session:
            stmt = select(WorkspaceAccessModel).where(
                WorkspaceAccessModel.workspace_id == workspace_id,
                WorkspaceAccessModel.user_id == user_id,
            )
            return session.execute(stmt).first() is not None

    def authorize(self, authorization: Optional[str], workspace_id: str) -> AuthPrincipal:
        """
        Authorize a caller for a workspace.

        Raises:
            UnauthorizedError: If neither the shared secret nor a user with
                workspace access validates
        """
        token = _bearer_token(authorization)
        if self.validate_service_token(token):
            return AuthPrincipal(auth_method=AuthMethod.SERVICE_TOKEN)

        user_id = self.validate_jwt_token(token)
        if not user_id:
            raise UnauthorizedError("Authorization Required")

        if not self.has_workspace_access(user_id, workspace_id):
            logger.warning(f"User {user_id} has no access to workspace {workspace_id}")
            raise UnauthorizedError(f"User {user_id} has no access to workspace {workspace_id}", status_code=403)

        return AuthPrincipal(auth_method=AuthMethod.JWT, user_id=user_id)

    def require_workspace_access(self):
        """
        Dependency for requiring service or workspace-user authentication.

        Rejections propagate as UnauthorizedError and are rendered by the
        application exception handler.

        Usage:
            @router.get("/{workspace_id}/run")
            async def run(auth: AuthPrincipal = Depends(auth_handler.require_workspace_access())):
                pass
        """
        async def dependency(workspace_id: str, request: Request) -> AuthPrincipal:
            return self.authorize(request.headers.get("Authorization"), workspace_id)

        return dependency


# Global auth handler instance
sync_auth_handler = SyncAuthHandler()

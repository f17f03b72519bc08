"""
Sync Gateway Module.

Authentication for sync run endpoints.
"""

from syncrun.sync.gateway.auth import (
    AuthMethod,
    AuthPrincipal,
    AuthConfig,
    SyncAuthHandler,
    sync_auth_handler,
)

__all__ = [
    "AuthMethod",
    "AuthPrincipal",
    "AuthConfig",
    "SyncAuthHandler",
    "sync_auth_handler",
]

"""
Sync Run Orchestration.

Dispatches source reads to the sync controller:
- Checkpoint state loading across legacy, global and per-stream encodings
- Catalog lookup and stream selection
- Credential resolution before dispatch
- At most one running task per sync (point-in-time check)
"""

from syncrun.sync.catalog import (
    Catalog,
    CatalogResolver,
    ConfiguredCatalog,
    select_configured_streams,
)
from syncrun.sync.controller import DispatchResponse, SyncControllerClient
from syncrun.sync.credentials import (
    CredentialResolver,
    OAuthCredentialResolver,
    PassthroughCredentialResolver,
    RequestContext,
)
from syncrun.sync.dispatcher import RunDispatcher, RunResult, RunningTask
from syncrun.sync.errors import (
    CredentialResolutionError,
    DispatchError,
    InvalidStreamKey,
    SyncRunError,
    UnauthorizedError,
)
from syncrun.sync.state import (
    CheckpointState,
    CheckpointStateRepository,
    GlobalState,
    LegacyState,
    StreamDescriptor,
    StreamState,
    StreamStates,
)

__all__ = [
    # Catalog
    "Catalog",
    "CatalogResolver",
    "ConfiguredCatalog",
    "select_configured_streams",
    # Controller
    "DispatchResponse",
    "SyncControllerClient",
    # Credentials
    "CredentialResolver",
    "OAuthCredentialResolver",
    "PassthroughCredentialResolver",
    "RequestContext",
    # Dispatcher
    "RunDispatcher",
    "RunResult",
    "RunningTask",
    # Errors
    "CredentialResolutionError",
    "DispatchError",
    "InvalidStreamKey",
    "SyncRunError",
    "UnauthorizedError",
    # State
    "CheckpointState",
    "CheckpointStateRepository",
    "GlobalState",
    "LegacyState",
    "StreamDescriptor",
    "StreamState",
    "StreamStates",
]

"""
Checkpoint State Repository.

Translates between the persisted ``source_state`` rows of a sync and one
canonical in-memory checkpoint state. Three encodings exist at rest:

- legacy: a single ``_LEGACY_STATE`` row whose blob is sent verbatim
- global: a single ``_GLOBAL_STATE`` row
- per-stream: one row per stream keyed ``name`` or ``namespace.name``
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import delete, select

from syncrun.database.connection import DatabaseManager, db_manager
from syncrun.sync.errors import InvalidStreamKey
from syncrun.sync.models import SourceStateModel

logger = logging.getLogger(__name__)

LEGACY_STATE_KEY = "_LEGACY_STATE"
GLOBAL_STATE_KEY = "_GLOBAL_STATE"
RESERVED_STATE_KEYS = (LEGACY_STATE_KEY, GLOBAL_STATE_KEY)


class StateType(str, Enum):
    """Checkpoint state encoding."""
    LEGACY = "LEGACY"
    GLOBAL = "GLOBAL"
    STREAM = "STREAM"


@dataclass(frozen=True)
class StreamDescriptor:
    """Identifies a stream by name and optional namespace."""
    name: str
    namespace: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    def to_wire(self) -> Dict[str, Any]:
        descriptor = {"name": self.name}
        if self.namespace is not None:
            descriptor["namespace"] = self.namespace
        return descriptor


@dataclass
class LegacyState:
    """Opaque single-blob state from before typed states existed."""
    blob: Any
    type: StateType = field(default=StateType.LEGACY, init=False)

    def to_wire(self) -> Any:
        return self.blob


@dataclass
class GlobalState:
    """One state shared by all streams of the sync."""
    blob: Any
    type: StateType = field(default=StateType.GLOBAL, init=False)

    def to_wire(self) -> List[Dict[str, Any]]:
        return [{"type": StateType.GLOBAL.value, "global": self.blob}]


@dataclass
class StreamState:
    """State of a single stream."""
    descriptor: StreamDescriptor
    blob: Any

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": StateType.STREAM.value,
            "stream": {
                "stream_descriptor": self.descriptor.to_wire(),
                "stream_state": self.blob,
            },
        }


@dataclass
class StreamStates:
    """Per-stream states of a sync."""
    streams: List[StreamState] = field(default_factory=list)
    type: StateType = field(default=StateType.STREAM, init=False)

    def to_wire(self) -> List[Dict[str, Any]]:
        return [s.to_wire() for s in self.streams]


CheckpointState = Union[LegacyState, GlobalState, StreamStates]


# ============================================================================
# Codec
# ============================================================================

def parse_stream_key(stream_key: str) -> StreamDescriptor:
    """Parse ``name`` or ``namespace.name`` into a stream descriptor."""
    parts = stream_key.split(".")
    if len(parts) == 1:
        return StreamDescriptor(name=parts[0])
    if len(parts) == 2:
        return StreamDescriptor(name=parts[1], namespace=parts[0])
    raise InvalidStreamKey(stream_key)


def decode_legacy_state(row: Tuple[str, Any]) -> LegacyState:
    return LegacyState(blob=row[1])


def decode_global_state(row: Tuple[str, Any]) -> GlobalState:
    return GlobalState(blob=row[1])


def decode_stream_states(rows: Iterable[Tuple[str, Any]]) -> StreamStates:
    """Decode per-stream rows; a single malformed key fails the whole batch."""
    return StreamStates(streams=[
        StreamState(descriptor=parse_stream_key(stream), blob=state)
        for stream, state in rows
        if stream not in RESERVED_STATE_KEYS
    ])


def decode_state_rows(rows: List[Tuple[str, Any]]) -> Optional[CheckpointState]:
    """
    Decode ``(stream, state)`` rows of one sync into a checkpoint state.

    Returns None when there are no rows (fresh sync).
    """
    if not rows:
        return None
    if len(rows) == 1 and rows[0][0] == LEGACY_STATE_KEY:
        return decode_legacy_state(rows[0])
    if len(rows) == 1 and rows[0][0] == GLOBAL_STATE_KEY:
        return decode_global_state(rows[0])
    return decode_stream_states(rows)


def encode_state_rows(state: CheckpointState) -> List[Tuple[str, Any]]:
    """Encode a checkpoint state into ``(stream, state)`` rows."""
    if isinstance(state, LegacyState):
        return [(LEGACY_STATE_KEY, state.blob)]
    if isinstance(state, GlobalState):
        return [(GLOBAL_STATE_KEY, state.blob)]
    return [(s.descriptor.key, s.blob) for s in state.streams]


# ============================================================================
# Repository
# ============================================================================

class CheckpointStateRepository:
    """Reads and writes persisted checkpoint state rows for syncs."""

    def __init__(self, database: Optional[DatabaseManager] = None):
        self.database = database or db_manager

    def load_checkpoint_state(self, sync_id: str, full_sync: bool = False) -> Optional[CheckpointState]:
        """
        Load the checkpoint state of a sync.

        Args:
            sync_id: Sync link ID
            full_sync: Discard all persisted state and start from scratch

        Returns:
            Decoded checkpoint state, or None for a fresh or full sync

        Raises:
            InvalidStreamKey: If any per-stream row has a malformed key
        """
        if full_sync:
            deleted = self.clear(sync_id)
            logger.info(f"Full sync requested, removed {deleted} state rows for sync {sync_id}")
            return None

        rows = self.fetch_rows(sync_id)
        state = decode_state_rows(rows)
        if state is not None:
            logger.debug(f"Loaded {state.type.value} state for sync {sync_id} from {len(rows)} rows")
        return state

    def fetch_rows(self, sync_id: str) -> List[Tuple[str, Any]]:
        """Fetch raw ``(stream, state)`` rows for a sync."""
        with self.database.get_session() as session:
            stmt = select(SourceStateModel.stream, SourceStateModel.state).where(
                SourceStateModel.sync_id == sync_id
            )
            return [(row.stream, row.state) for row in session.execute(stmt)]

    def save_checkpoint_state(self, sync_id: str, state: CheckpointState) -> None:
        """Replace the persisted state of a sync with the encoding of ``state``."""
        with self.database.get_session() as session:
            session.execute(delete(SourceStateModel).where(SourceStateModel.sync_id == sync_id))
            for stream, blob in encode_state_rows(state):
                session.add(SourceStateModel(sync_id=sync_id, stream=stream, state=blob))

    def clear(self, sync_id: str) -> int:
        """Delete all state rows of a sync, returning the number removed."""
        with self.database.get_session() as session:
            result = session.execute(delete(SourceStateModel).where(SourceStateModel.sync_id == sync_id))
            return result.rowcount or 0

"""
SQLAlchemy ORM models for the sync run service.

These models define the tables the run orchestration reads and writes:
configuration objects and links (owned by the console), checkpoint state,
captured catalogs, and the task/log records written by the sync controller.
"""

from datetime import datetime
from sqlalchemy import (
    String, Text, Integer, DateTime, ForeignKey,
    Enum as SQLEnum, JSON, Boolean, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, Mapped, mapped_column
from sqlalchemy.sql import func
import enum
from typing import Any, Optional

from syncrun.database.connection import Base


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite)
JsonType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# Enumerations
# ============================================================================

class ConfigObjectType(str, enum.Enum):
    """Configuration object type enumeration."""
    SERVICE = "service"
    DESTINATION = "destination"
    STREAM = "stream"
    FUNCTION = "function"


class LinkType(str, enum.Enum):
    """Configuration link type enumeration."""
    SYNC = "sync"
    PUSH = "push"


class TaskStatus(str, enum.Enum):
    """Sync task status enumeration."""
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# ============================================================================
# Configuration Models
# ============================================================================

class ConfigurationObjectModel(Base):
    """
    Configuration object table.

    Stores workspace-owned configuration such as source services. The
    ``config`` payload of a service carries package, version and credentials.
    """
    __tablename__ = "configuration_objects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    config: Mapped[dict] = mapped_column(JsonType, nullable=False, default=dict)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ConfigurationObjectLinkModel(Base):
    """
    Configuration link table.

    A link of type ``sync`` relates a source service (``from_id``) to a
    destination. Its ``data`` payload holds the catalog storage key and the
    selected streams with their sync-mode directives.
    """
    __tablename__ = "configuration_object_links"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default=LinkType.PUSH.value)
    from_id: Mapped[str] = mapped_column(String(64), ForeignKey("configuration_objects.id"), nullable=False)
    to_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    data: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True, default=dict)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    from_object: Mapped["ConfigurationObjectModel"] = relationship("ConfigurationObjectModel", foreign_keys=[from_id])

    __table_args__ = (
        Index('idx_links_workspace_type', 'workspace_id', 'type'),
    )


class WorkspaceAccessModel(Base):
    """Workspace membership used to authorize console users."""
    __tablename__ = "workspace_access"

    workspace_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ============================================================================
# Source Sync Models
# ============================================================================

class SourceStateModel(Base):
    """
    Checkpoint state rows for a sync.

    ``stream`` is either a reserved sentinel (``_LEGACY_STATE``,
    ``_GLOBAL_STATE``) or a ``name`` / ``namespace.name`` stream key.
    """
    __tablename__ = "source_state"

    sync_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    stream: Mapped[str] = mapped_column(String(512), primary_key=True)
    state: Mapped[Any] = mapped_column(JsonType, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SourceCatalogModel(Base):
    """Stream catalogs captured by discovery, keyed by storage key, package and version."""
    __tablename__ = "source_catalog"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    package: Mapped[str] = mapped_column(String(256), primary_key=True)
    version: Mapped[str] = mapped_column(String(64), primary_key=True)
    catalog: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class SourceTaskModel(Base):
    """
    Sync task table.

    One row per dispatched read, written and updated by the sync controller.
    """
    __tablename__ = "source_task"

    task_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sync_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    package: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[TaskStatus] = mapped_column(SQLEnum(TaskStatus), default=TaskStatus.RUNNING)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_source_task_sync_status', 'sync_id', 'status'),
    )


class TaskLogModel(Base):
    """Log lines emitted by a running sync task."""
    __tablename__ = "task_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sync_id: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    level: Mapped[str] = mapped_column(String(16), default="INFO")
    logger: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)

"""
Configuration store access for sync runs.

Read-only view over configuration objects and links owned by the console.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy import select

from syncrun.database.connection import DatabaseManager, db_manager
from syncrun.sync.models import (
    ConfigObjectType,
    ConfigurationObjectLinkModel,
    LinkType,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceConfig:
    """A source connector configuration."""
    id: str
    workspace_id: str
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def package(self) -> Optional[str]:
        return self.config.get("package")

    @property
    def version(self) -> Optional[str]:
        return self.config.get("version")

    @property
    def protocol(self) -> Optional[str]:
        return self.config.get("protocol")

    @property
    def credentials(self) -> Any:
        return self.config.get("credentials")

    def to_request_config(self) -> Dict[str, Any]:
        """Config payload sent to the sync controller, tagged with the service id."""
        return {**self.config, "id": self.id}


@dataclass
class SyncLink:
    """A sync between a source service and a destination."""
    id: str
    workspace_id: str
    from_id: str
    to_id: Optional[str]
    data: Dict[str, Any] = field(default_factory=dict)
    service: Optional[ServiceConfig] = None

    @property
    def storage_key(self) -> Optional[str]:
        return self.data.get("storageKey")

    @property
    def selected_streams(self) -> Dict[str, Any]:
        return self.data.get("streams") or {}


class ConfigurationStore:
    """Looks up sync links and the services they read from."""

    def __init__(self, database: Optional[DatabaseManager] = None):
        self.database = database or db_manager

    def get_sync_link(self, workspace_id: str, sync_id: str) -> Optional[SyncLink]:
        """
        Get a live sync link in a workspace, with its source service resolved.

        Deleted links and links of other types are not returned. ``service``
        is None when the referenced service is missing or deleted.
        """
        with self.database.get_session() as session:
            stmt = select(ConfigurationObjectLinkModel).where(
                ConfigurationObjectLinkModel.id == sync_id,
                ConfigurationObjectLinkModel.workspace_id == workspace_id,
                ConfigurationObjectLinkModel.deleted.is_(False),
                ConfigurationObjectLinkModel.type == LinkType.SYNC.value,
            )
            link = session.execute(stmt).scalar_one_or_none()
            if link is None:
                return None

            service = None
            source = link.from_object
            if source is not None and not source.deleted and source.type == ConfigObjectType.SERVICE.value:
                service = ServiceConfig(
                    id=source.id,
                    workspace_id=source.workspace_id,
                    config=dict(source.config or {}),
                )

            return SyncLink(
                id=link.id,
                workspace_id=link.workspace_id,
                from_id=link.from_id,
                to_id=link.to_id,
                data=dict(link.data or {}),
                service=service,
            )

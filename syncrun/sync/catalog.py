"""
Catalog Resolver.

Looks up the stream catalog captured by discovery for a source package and
version, and narrows it down to the streams selected in a sync.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from syncrun.database.connection import DatabaseManager, db_manager
from syncrun.sync.models import SourceCatalogModel

logger = logging.getLogger(__name__)

DESTINATION_SYNC_MODE = "overwrite"


def stream_key(stream: Dict[str, Any]) -> str:
    """Key of a catalog stream: ``namespace.name`` or ``name``."""
    namespace = stream.get("namespace")
    return f"{namespace}.{stream['name']}" if namespace else stream["name"]


@dataclass
class Catalog:
    """All streams a source package/version exposes."""
    streams: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Catalog":
        return cls(streams=list(data.get("streams") or []))

    def to_json(self) -> Dict[str, Any]:
        return {"streams": self.streams}


@dataclass
class ConfiguredCatalog:
    """Catalog filtered to selected streams with sync-mode directives attached."""
    streams: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def stream_keys(self) -> List[str]:
        return [stream_key(s["stream"]) for s in self.streams]

    def to_wire(self) -> Dict[str, Any]:
        return {"streams": self.streams}


def _is_selected(directive: Any) -> bool:
    """Empty directive objects still select a stream; false, 0, "" and null do not."""
    if isinstance(directive, (dict, list)):
        return True
    return bool(directive)


def select_configured_streams(
    catalog: Catalog,
    selection: Optional[Dict[str, Any]]
) -> ConfiguredCatalog:
    """
    Select the streams of ``catalog`` that have an entry in ``selection``.

    Un-selected streams are dropped. Output follows catalog order. Each entry
    carries the selection directive (when it is an object), the fixed
    destination sync mode and the full catalog stream descriptor.
    """
    selection = selection or {}
    configured = []
    for stream in catalog.streams:
        directive = selection.get(stream_key(stream))
        if not _is_selected(directive):
            continue
        configured.append({
            **(directive if isinstance(directive, dict) else {}),
            "destination_sync_mode": DESTINATION_SYNC_MODE,
            "stream": stream,
        })
    return ConfiguredCatalog(streams=configured)


class CatalogResolver:
    """Stored catalog lookup by ``(storage_key, package, version)``."""

    def __init__(self, database: Optional[DatabaseManager] = None):
        self.database = database or db_manager

    def resolve_catalog(self, package: str, version: str, storage_key: str) -> Optional[Catalog]:
        """
        Look up a captured catalog.

        Returns:
            The catalog, or None if discovery has not stored one for this key
        """
        with self.database.get_session() as session:
            stmt = select(SourceCatalogModel.catalog).where(
                SourceCatalogModel.key == storage_key,
                SourceCatalogModel.package == package,
                SourceCatalogModel.version == version,
            )
            data = session.execute(stmt).scalar_one_or_none()

        if data is None:
            logger.info(f"No catalog for {package}@{version} key={storage_key}")
            return None
        return Catalog.from_json(data)

    def save_catalog(
        self,
        package: str,
        version: str,
        storage_key: str,
        catalog: Catalog,
        status: str = "SUCCESS",
        description: Optional[str] = None
    ) -> None:
        """Store a discovered catalog, replacing any previous capture for the key."""
        with self.database.get_session() as session:
            row = session.get(SourceCatalogModel, (storage_key, package, version))
            if row is None:
                row = SourceCatalogModel(key=storage_key, package=package, version=version)
                session.add(row)
            row.catalog = catalog.to_json()
            row.status = status
            row.description = description
        logger.info(f"Stored catalog for {package}@{version} key={storage_key}: {len(catalog.streams)} streams")

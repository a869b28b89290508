"""Drive-scoped document store operations over the Graph drive-item API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlparse

from sharepoint_bridge.errors import RemoteStoreError
from sharepoint_bridge.graph.client import GRAPH_BASE_URL, GraphClient
from sharepoint_bridge.graph.models import (
    CONFLICT_RENAME,
    CONFLICT_REPLACE,
    FIELD_CONFLICT_BEHAVIOR,
    FIELD_FOLDER,
    FIELD_ID,
    FIELD_NAME,
    FIELD_WEB_URL,
    ODATA_NEXT_LINK,
    ODATA_VALUE,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriveReference:
    """The one document library drive every operation runs against."""

    site_id: str
    drive_id: str
    name: str
    web_url: str = ""


def is_folder(raw: dict[str, Any]) -> bool:
    """Graph marks folders with a ``folder`` facet; everything else is a file."""
    return FIELD_FOLDER in raw


def resolve_drive(graph: GraphClient, site_url: str, drive_name: str) -> DriveReference:
    """Resolve a SharePoint site URL and drive name to a DriveReference.

    Calls GET /sites/{hostname}:/{site path} for the site ID, then
    GET /sites/{site_id}/drives. The drive whose name matches ``drive_name``
    (case-insensitive) is chosen; otherwise the site's first drive.

    Raises:
        RemoteStoreError: If the site exposes no drives.
    """
    parsed = urlparse(site_url)
    site_path = parsed.path.strip("/")
    site = graph.get(f"/sites/{parsed.netloc}:/{quote(site_path)}")
    site_id = site[FIELD_ID]
    logger.info("[resolve_drive] resolved site; site_id:%s", site_id)

    drives = graph.get(f"/sites/{site_id}/drives").get(ODATA_VALUE, [])
    if not drives:
        raise RemoteStoreError(404, f"No drives available on site {site_url}")
    chosen = next(
        (d for d in drives if d.get(FIELD_NAME, "").lower() == drive_name.lower()),
        drives[0],
    )
    if chosen.get(FIELD_NAME, "").lower() != drive_name.lower():
        logger.warning(
            "[resolve_drive] drive not found, using first drive; requested:%s;using:%s",
            drive_name,
            chosen.get(FIELD_NAME, ""),
        )
    reference = DriveReference(
        site_id=site_id,
        drive_id=chosen[FIELD_ID],
        name=chosen.get(FIELD_NAME, ""),
        web_url=chosen.get(FIELD_WEB_URL, ""),
    )
    logger.info(
        "[resolve_drive] resolved drive; drive_id:%s;name:%s;drive_count:%d",
        reference.drive_id,
        reference.name,
        len(drives),
    )
    return reference


class DriveClient:
    """Thin typed client for the five drive-item operations.

    Paths are relative to the drive root, already normalized by the caller
    (no leading, trailing or doubled slashes); an empty path means the root.
    """

    def __init__(self, graph: GraphClient, drive: DriveReference) -> None:
        self._graph = graph
        self._drive = drive

    @property
    def drive(self) -> DriveReference:
        return self._drive

    def _item(self, path: str) -> str:
        base = f"/drives/{self._drive.drive_id}/root"
        return f"{base}:/{quote(path)}:" if path else base

    def list_children(self, path: str) -> list[dict[str, Any]]:
        """List every child of a folder, following @odata.nextLink pagination."""
        children: list[dict[str, Any]] = []
        next_path: str | None = f"{self._item(path)}/children"
        while next_path is not None:
            response = self._graph.get(next_path)
            children.extend(response.get(ODATA_VALUE, []))
            next_link = response.get(ODATA_NEXT_LINK)
            next_path = self._relative_path(next_link) if next_link else None
        logger.debug("[list_children] listed folder; path:%s;count:%d", path or "/", len(children))
        return children

    def get_content(self, path: str) -> bytes:
        return self._graph.get_content(f"{self._item(path)}/content")

    def put_content(self, path: str, content: bytes, overwrite: bool = True) -> dict[str, Any]:
        """Upload bytes to ``path``, replacing an existing file unless ``overwrite`` is False."""
        behaviour = CONFLICT_REPLACE if overwrite else CONFLICT_RENAME
        return self._graph.put_content(
            f"{self._item(path)}/content?{FIELD_CONFLICT_BEHAVIOR}={behaviour}", content
        )

    def create_folder(self, parent_path: str, name: str) -> dict[str, Any]:
        """Create a folder; on a name clash Graph renames the new folder instead of failing."""
        return self._graph.post(
            f"{self._item(parent_path)}/children",
            {
                FIELD_NAME: name,
                FIELD_FOLDER: {},
                FIELD_CONFLICT_BEHAVIOR: CONFLICT_RENAME,
            },
        )

    def delete_item(self, path: str) -> None:
        """Delete a file or folder.

        Raises:
            NotFoundError: If no item exists at ``path``.
        """
        if not path:
            raise RemoteStoreError(400, "Refusing to delete the drive root")
        self._graph.delete(self._item(path))

    @staticmethod
    def _relative_path(full_url: str) -> str:
        """Convert a full Graph API URL to a relative path for GraphClient.get()."""
        if full_url.startswith(GRAPH_BASE_URL):
            return full_url[len(GRAPH_BASE_URL) :]
        return full_url

"""Caller-facing shapes for drive items and folder trees."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sharepoint_bridge.graph.drive import is_folder
from sharepoint_bridge.graph.models import (
    FIELD_FILE,
    FIELD_LAST_MODIFIED,
    FIELD_MIME_TYPE,
    FIELD_NAME,
    FIELD_SIZE,
    FIELD_WEB_URL,
)

KIND_FOLDER = "folder"
KIND_FILE = "file"


@dataclass(frozen=True)
class ResourceItem:
    """A normalized file or folder.

    Attributes:
        name: Item name ("Unknown" when Graph omits it).
        kind: "folder" or "file".
        size_bytes: Size reported by Graph (folders report the size of their contents).
        web_url: Browser URL of the item.
        last_modified: ISO-8601 timestamp string as reported by Graph.
        mime_type: MIME type for files, None for folders.
    """

    name: str
    kind: str
    size_bytes: int
    web_url: str
    last_modified: str
    mime_type: str | None = None

    @property
    def is_folder(self) -> bool:
        return self.kind == KIND_FOLDER

    @classmethod
    def from_graph(cls, raw: dict[str, Any]) -> ResourceItem:
        """Build an item from a raw Graph driveItem record."""
        folder = is_folder(raw)
        return cls(
            name=raw.get(FIELD_NAME) or "Unknown",
            kind=KIND_FOLDER if folder else KIND_FILE,
            size_bytes=int(raw.get(FIELD_SIZE) or 0),
            web_url=raw.get(FIELD_WEB_URL) or "",
            last_modified=raw.get(FIELD_LAST_MODIFIED) or "",
            mime_type=None if folder else (raw.get(FIELD_FILE) or {}).get(FIELD_MIME_TYPE, ""),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "type": self.kind,
            "size": self.size_bytes,
            "webUrl": self.web_url,
            "lastModified": self.last_modified,
        }
        if self.mime_type is not None:
            result["mimeType"] = self.mime_type
        return result


@dataclass(frozen=True)
class TreeResult:
    """One level of a folder tree.

    ``truncated`` is True when the depth budget ran out before this level was
    fetched; ``error`` is set when this level's listing failed.
    """

    items: tuple[TreeNode, ...] = ()
    truncated: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "items": [node.to_dict() for node in self.items],
            "truncated": self.truncated,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class TreeNode:
    """An item in a folder tree; folders carry their own subtree."""

    item: ResourceItem
    children: TreeResult | None = None

    def to_dict(self) -> dict[str, Any]:
        result = self.item.to_dict()
        if self.children is not None:
            result["children"] = self.children.to_dict()
        return result

"""Document library operations exposed to every transport."""

from __future__ import annotations

import base64
import binascii
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sharepoint_bridge.errors import InvalidRequestError, NotFoundError
from sharepoint_bridge.graph.client import graph_client_from_config
from sharepoint_bridge.graph.drive import DriveClient, resolve_drive
from sharepoint_bridge.graph.token import token_provider_from_config
from sharepoint_bridge.resources.models import ResourceItem, TreeNode, TreeResult
from sharepoint_bridge.resources.paths import join_path, resolve_path, split_path

if TYPE_CHECKING:
    from sharepoint_bridge.config import AppConfig

logger = logging.getLogger(__name__)

DEFAULT_TREE_DEPTH = 3
MAX_TREE_DEPTH = 15
TREE_MAX_WORKERS = 8

CONTENT_TEXT = "text"
CONTENT_BINARY = "binary"


def _require(value: str | None, name: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidRequestError(f"{name} is required")
    return str(value)


def decode_upload(content: str, is_base64: bool) -> bytes:
    """Turn caller-supplied upload content into bytes.

    Raises:
        InvalidRequestError: If ``is_base64`` is set and the content is not valid base64.
    """
    if not is_base64:
        return content.encode("utf-8")
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidRequestError("content is not valid base64") from exc


def classify_content(data: bytes) -> tuple[str, str]:
    """Return (content, type) for downloaded bytes.

    Bytes that decode as strict UTF-8 are returned as text; anything else is
    base64-encoded and labelled binary. This is a heuristic, not a MIME check:
    binary formats whose bytes happen to be valid UTF-8 are reported as text.
    """
    try:
        return data.decode("utf-8"), CONTENT_TEXT
    except UnicodeDecodeError:
        return base64.b64encode(data).decode("ascii"), CONTENT_BINARY


def read_local_file(file_path: str) -> tuple[Path, bytes]:
    """Read a file from the local filesystem for upload.

    Raises:
        InvalidRequestError: If the path is missing, not a file, or unreadable.
    """
    source = Path(_require(file_path, "file_path")).expanduser()
    if not source.is_file():
        raise InvalidRequestError(f"Local file not found: {source}")
    try:
        return source, source.read_bytes()
    except OSError as exc:
        raise InvalidRequestError(f"Cannot read local file {source}: {exc.strerror or exc}") from exc


def write_local_file(local_path: str, file_name: str, data: bytes) -> Path:
    """Write downloaded bytes to ``local_path`` (or into it, when it is a directory)."""
    target = Path(_require(local_path, "local_path")).expanduser()
    if target.is_dir():
        target = target / file_name
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    except OSError as exc:
        raise InvalidRequestError(f"Cannot write local file {target}: {exc.strerror or exc}") from exc
    return target


class ResourceOperations:
    """Resolves caller paths against the base library and shapes store results."""

    def __init__(
        self,
        drive: DriveClient,
        base_library: str = "",
        default_tree_depth: int = DEFAULT_TREE_DEPTH,
        max_tree_depth: int = MAX_TREE_DEPTH,
    ) -> None:
        """Initialise the operations layer.

        Args:
            drive: Drive client bound to the resolved document library drive.
            base_library: Path prefix under which all caller paths are resolved.
            default_tree_depth: Tree depth used when the caller passes none.
            max_tree_depth: Upper bound on any requested tree depth.
        """
        self._drive = drive
        self._base_library = base_library
        self._default_tree_depth = default_tree_depth
        self._max_tree_depth = max_tree_depth

    def resolve(self, path: str | None) -> str:
        """Map a caller-visible path to a drive path."""
        return resolve_path(self._base_library, path)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _list_items(self, folder: str | None) -> list[ResourceItem]:
        drive_path = self.resolve(folder)
        return [ResourceItem.from_graph(raw) for raw in self._drive.list_children(drive_path)]

    def list_folders(self, parent_folder: str | None = "") -> dict[str, Any]:
        """List the sub-folders of ``parent_folder`` (the base library when empty)."""
        folders = [item for item in self._list_items(parent_folder) if item.is_folder]
        logger.info(
            "[list_folders] listed folders; path:%s;count:%d",
            self.resolve(parent_folder) or "/",
            len(folders),
        )
        return {"success": True, "items": [f.to_dict() for f in folders], "count": len(folders)}

    def list_documents(self, folder_name: str | None = "") -> dict[str, Any]:
        """List the files directly inside ``folder_name``."""
        files = [item for item in self._list_items(folder_name) if not item.is_folder]
        logger.info(
            "[list_documents] listed documents; path:%s;count:%d",
            self.resolve(folder_name) or "/",
            len(files),
        )
        return {"success": True, "items": [f.to_dict() for f in files], "count": len(files)}

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    def get_folder_tree(
        self, parent_folder: str | None = "", max_depth: int | None = None
    ) -> dict[str, Any]:
        """Build a recursive view of ``parent_folder``.

        Depth defaults to the configured default and is clamped to the
        configured maximum. A subtree whose listing fails is reported with an
        ``error`` and empty items; its siblings are unaffected.
        """
        depth = self._default_tree_depth if max_depth is None else int(max_depth)
        depth = max(0, min(depth, self._max_tree_depth))
        drive_path = self.resolve(parent_folder)
        logger.info("[get_folder_tree] building tree; path:%s;depth:%d", drive_path or "/", depth)
        tree = self._build_tree(drive_path, depth)
        return {"success": True, "folder": parent_folder or "root", "tree": tree.to_dict()}

    def _build_tree(self, drive_path: str, depth: int) -> TreeResult:
        if depth <= 0:
            return TreeResult(truncated=True)

        try:
            raw_children = self._drive.list_children(drive_path)
        except Exception as exc:
            logger.warning(
                "[_build_tree] subtree listing failed; path:%s;error:%s", drive_path or "/", exc
            )
            return TreeResult(error=str(exc))

        items = [ResourceItem.from_graph(raw) for raw in raw_children]
        folders = [item for item in items if item.is_folder]
        files = [item for item in items if not item.is_folder]

        if not folders:
            subtrees: list[TreeResult] = []
        elif depth == 1:
            subtrees = [TreeResult(truncated=True) for _ in folders]
        else:
            workers = min(len(folders), TREE_MAX_WORKERS)
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(self._build_tree, join_path(drive_path, folder.name), depth - 1)
                    for folder in folders
                ]
                subtrees = [future.result() for future in futures]

        nodes = [TreeNode(item=f, children=t) for f, t in zip(folders, subtrees, strict=True)]
        nodes.extend(TreeNode(item=f) for f in files)
        return TreeResult(items=tuple(nodes))

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def get_document_content(self, folder_name: str | None, file_name: str) -> dict[str, Any]:
        """Download a file and return it as text or base64 (see classify_content)."""
        _require(file_name, "file_name")
        caller_path = join_path(folder_name, file_name)
        try:
            data = self._drive.get_content(self.resolve(caller_path))
        except NotFoundError as exc:
            raise NotFoundError(f"File '{file_name}' not found") from exc
        content, content_type = classify_content(data)
        logger.info(
            "[get_document_content] read document; path:%s;bytes:%d;type:%s",
            caller_path,
            len(data),
            content_type,
        )
        return {
            "success": True,
            "content": content,
            "file": {"name": file_name, "path": caller_path},
            "type": content_type,
        }

    def get_document_content_by_path(self, document_path: str) -> dict[str, Any]:
        """Same as get_document_content, addressed by a single ``folder/name`` path."""
        folder, name = split_path(_require(document_path, "document_path"))
        return self.get_document_content(folder, name)

    def download_document(
        self, folder_name: str | None, file_name: str, local_path: str
    ) -> dict[str, Any]:
        """Save a document to the local filesystem of the process running the tool channel."""
        _require(file_name, "file_name")
        _require(local_path, "local_path")
        caller_path = join_path(folder_name, file_name)
        try:
            data = self._drive.get_content(self.resolve(caller_path))
        except NotFoundError as exc:
            raise NotFoundError(f"File '{file_name}' not found") from exc
        target = write_local_file(local_path, file_name, data)
        logger.info(
            "[download_document] saved document; path:%s;local_path:%s;bytes:%d",
            caller_path,
            target,
            len(data),
        )
        return {
            "success": True,
            "message": f"Downloaded '{file_name}' to {target}",
            "localPath": str(target),
            "size": len(data),
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _put(
        self, folder_name: str | None, file_name: str, data: bytes, action: str
    ) -> dict[str, Any]:
        caller_path = join_path(folder_name, file_name)
        metadata = self._drive.put_content(self.resolve(caller_path), data)
        logger.info(
            "[_put] wrote document; action:%s;path:%s;bytes:%d", action, caller_path, len(data)
        )
        return {
            "success": True,
            "message": f"{action} '{file_name}'",
            "path": caller_path,
            "file": ResourceItem.from_graph(metadata).to_dict(),
        }

    def upload_document(
        self,
        folder_name: str | None,
        file_name: str,
        content: str,
        is_base64: bool = False,
    ) -> dict[str, Any]:
        """Create (or replace) a file from text or base64 content."""
        _require(file_name, "file_name")
        if content is None:
            raise InvalidRequestError("content is required")
        return self._put(folder_name, file_name, decode_upload(content, is_base64), "Uploaded")

    def update_document(
        self,
        folder_name: str | None,
        file_name: str,
        content: str,
        is_base64: bool = False,
    ) -> dict[str, Any]:
        """Replace the content of a file from text or base64 content."""
        _require(file_name, "file_name")
        if content is None:
            raise InvalidRequestError("content is required")
        return self._put(folder_name, file_name, decode_upload(content, is_base64), "Updated")

    def upload_document_from_path(
        self,
        folder_name: str | None,
        file_path: str,
        new_file_name: str | None = None,
    ) -> dict[str, Any]:
        """Upload a file read from the local filesystem."""
        source, data = read_local_file(file_path)
        return self._put(folder_name, new_file_name or source.name, data, "Uploaded")

    def create_folder(self, folder_name: str, parent_folder: str | None = "") -> dict[str, Any]:
        """Create a folder; the store renames it if the name is already taken."""
        _require(folder_name, "folder_name")
        metadata = self._drive.create_folder(self.resolve(parent_folder), folder_name.strip("/"))
        item = ResourceItem.from_graph(metadata)
        logger.info(
            "[create_folder] created folder; parent:%s;name:%s",
            self.resolve(parent_folder) or "/",
            item.name,
        )
        return {
            "success": True,
            "message": f"Created folder '{item.name}'",
            "path": join_path(parent_folder, item.name),
            "folder": item.to_dict(),
        }

    def delete_item(self, item_path: str) -> dict[str, Any]:
        """Delete the file or folder at ``item_path``."""
        caller_path = join_path(_require(item_path, "item_path"))
        try:
            self._drive.delete_item(self.resolve(caller_path))
        except NotFoundError as exc:
            raise NotFoundError(f"Item '{caller_path}' not found") from exc
        logger.info("[delete_item] deleted item; path:%s", caller_path)
        return {"success": True, "message": f"Deleted '{caller_path}'"}

    def delete_document(self, folder_name: str | None, file_name: str) -> dict[str, Any]:
        return self.delete_item(join_path(folder_name, _require(file_name, "file_name")))

    def delete_folder(self, folder_path: str) -> dict[str, Any]:
        """Delete a folder, refusing when it still has children."""
        caller_path = join_path(_require(folder_path, "folder_path"))
        try:
            children = self._drive.list_children(self.resolve(caller_path))
        except NotFoundError as exc:
            raise NotFoundError(f"Folder '{caller_path}' not found") from exc
        if children:
            raise InvalidRequestError(
                f"Folder '{caller_path}' is not empty ({len(children)} items)"
            )
        return self.delete_item(caller_path)


def resource_operations_from_config(config: AppConfig) -> ResourceOperations:
    """Construct ResourceOperations from application configuration.

    Builds the token provider and GraphClient, resolves the site drive once
    (network calls happen here), and wires a DriveClient into the operations.

    Args:
        config: Application configuration instance.

    Returns:
        Configured ResourceOperations instance.
    """
    tokens = token_provider_from_config(config)
    graph = graph_client_from_config(tokens, config)
    drive = resolve_drive(graph, config.site_url, config.drive_name)
    return ResourceOperations(
        drive=DriveClient(graph, drive),
        base_library=config.doc_library,
        default_tree_depth=config.tree_default_depth,
        max_tree_depth=config.tree_max_depth,
    )

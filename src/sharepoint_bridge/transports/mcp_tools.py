"""MCP tool channel over stdio.

Tools run against local Graph operations or, in api-client mode, against a
remote bridge reached over HTTP.

Every tool hands its operation to a worker thread and returns the result as
JSON text. Bridge errors are raised as ``ToolError`` so the tool response
carries the error flag along with a ``{success: false, message}`` payload.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

import anyio.to_thread
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from sharepoint_bridge.errors import BridgeError, StoreNotInitializedError
from sharepoint_bridge.remote.operations import RemoteOperations
from sharepoint_bridge.resources.operations import ResourceOperations

logger = logging.getLogger(__name__)

# Initialize MCP Server
mcp = FastMCP("SharePoint Bridge")

Operations = ResourceOperations | RemoteOperations

_operations: Operations | None = None


def set_operations(operations: Operations | None) -> None:
    """Install the operations instance every tool call uses."""
    global _operations
    _operations = operations


def get_operations() -> Operations:
    """Return the installed operations.

    Raises:
        StoreNotInitializedError: If the entry point has not initialized the store.
    """
    if _operations is None:
        raise StoreNotInitializedError("SharePoint client not initialized")
    return _operations


async def _run(tool: str, call: Callable[[Operations], dict[str, Any]]) -> str:
    operations = get_operations()
    try:
        result = await anyio.to_thread.run_sync(call, operations)
    except BridgeError as exc:
        logger.error("[%s] tool failed; error:%s", tool, exc.message)
        payload = {"success": False, "message": f"Tool execution failed: {exc.message}"}
        raise ToolError(json.dumps(payload, indent=2)) from exc
    return json.dumps(result, indent=2)


async def list_sharepoint_folders(parent_folder: str = "") -> str:
    """List folders in a SharePoint directory, or in the library root if none is given.

    Args:
        parent_folder: Parent folder path, relative to the document library.
    """
    return await _run("list_sharepoint_folders", lambda ops: ops.list_folders(parent_folder))


async def list_sharepoint_documents(folder_name: str = "") -> str:
    """List the documents in a SharePoint folder.

    Args:
        folder_name: Folder path, relative to the document library.
    """
    return await _run("list_sharepoint_documents", lambda ops: ops.list_documents(folder_name))


async def get_sharepoint_tree(parent_folder: str = "", max_depth: int | None = None) -> str:
    """Get the recursive folder tree below a SharePoint folder.

    Args:
        parent_folder: Folder to start from (library root if empty).
        max_depth: Levels to descend; defaults to the server setting and is capped.
    """
    return await _run(
        "get_sharepoint_tree", lambda ops: ops.get_folder_tree(parent_folder, max_depth)
    )


async def get_document_content(file_name: str, folder_name: str = "") -> str:
    """Read a document; text files come back as text, anything else as base64.

    Args:
        file_name: Name of the document.
        folder_name: Folder containing the document.
    """
    return await _run(
        "get_document_content", lambda ops: ops.get_document_content(folder_name, file_name)
    )


async def create_folder(folder_name: str, parent_folder: str = "") -> str:
    """Create a folder. If the name is taken the store picks a new one.

    Args:
        folder_name: Name of the new folder.
        parent_folder: Folder to create it in.
    """
    return await _run("create_folder", lambda ops: ops.create_folder(folder_name, parent_folder))


async def upload_document(
    file_name: str, content: str, folder_name: str = "", is_base64: bool = False
) -> str:
    """Upload a document from text or base64 content, replacing any existing file.

    Args:
        file_name: Name of the document.
        content: Document content.
        folder_name: Destination folder.
        is_base64: Set when ``content`` is base64-encoded binary data.
    """
    return await _run(
        "upload_document",
        lambda ops: ops.upload_document(folder_name, file_name, content, is_base64),
    )


async def upload_document_from_path(
    file_path: str, folder_name: str = "", new_file_name: str | None = None
) -> str:
    """Upload a file from the local filesystem.

    Args:
        file_path: Local path of the file to upload.
        folder_name: Destination folder.
        new_file_name: Name to store it under; defaults to the local file name.
    """
    return await _run(
        "upload_document_from_path",
        lambda ops: ops.upload_document_from_path(folder_name, file_path, new_file_name),
    )


async def update_document(
    file_name: str, content: str, folder_name: str = "", is_base64: bool = False
) -> str:
    """Replace the content of an existing document.

    Args:
        file_name: Name of the document.
        content: New content.
        folder_name: Folder containing the document.
        is_base64: Set when ``content`` is base64-encoded binary data.
    """
    return await _run(
        "update_document",
        lambda ops: ops.update_document(folder_name, file_name, content, is_base64),
    )


async def delete_document(file_name: str, folder_name: str = "") -> str:
    """Delete a document.

    Args:
        file_name: Name of the document.
        folder_name: Folder containing the document.
    """
    return await _run("delete_document", lambda ops: ops.delete_document(folder_name, file_name))


async def delete_folder(folder_path: str) -> str:
    """Delete an empty folder.

    Args:
        folder_path: Path of the folder, relative to the document library.
    """
    return await _run("delete_folder", lambda ops: ops.delete_folder(folder_path))


async def download_document(file_name: str, local_path: str, folder_name: str = "") -> str:
    """Download a document to the local filesystem.

    Args:
        file_name: Name of the document.
        local_path: Destination file, or an existing directory to save into.
        folder_name: Folder containing the document.
    """
    return await _run(
        "download_document",
        lambda ops: ops.download_document(folder_name, file_name, local_path),
    )


TOOLS: dict[str, Callable[..., Any]] = {
    "List_SharePoint_Folders": list_sharepoint_folders,
    "List_SharePoint_Documents": list_sharepoint_documents,
    "Get_SharePoint_Tree": get_sharepoint_tree,
    "Get_Document_Content": get_document_content,
    "Create_Folder": create_folder,
    "Upload_Document": upload_document,
    "Upload_Document_From_Path": upload_document_from_path,
    "Update_Document": update_document,
    "Delete_Document": delete_document,
    "Delete_Folder": delete_folder,
    "Download_Document": download_document,
}

for _name, _fn in TOOLS.items():
    mcp.tool(name=_name)(_fn)

"""Unit tests for transports/mcp_tools.py."""

import asyncio
import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from fastmcp.exceptions import ToolError

from sharepoint_bridge.errors import InvalidRequestError, NotFoundError, StoreNotInitializedError
from sharepoint_bridge.graph.drive import DriveClient
from sharepoint_bridge.resources.operations import ResourceOperations
from sharepoint_bridge.transports import mcp_tools


@pytest.fixture
def operations(mock_operations: MagicMock) -> Iterator[MagicMock]:
    mcp_tools.set_operations(mock_operations)
    yield mock_operations
    mcp_tools.set_operations(None)


class TestTools:
    def test_list_folders_returns_json_text(self, operations: MagicMock) -> None:
        operations.list_folders.return_value = {"success": True, "items": [], "count": 0}

        text = asyncio.run(mcp_tools.list_sharepoint_folders("Docs"))

        assert json.loads(text) == {"success": True, "items": [], "count": 0}
        operations.list_folders.assert_called_once_with("Docs")

    def test_tree_passes_depth(self, operations: MagicMock) -> None:
        operations.get_folder_tree.return_value = {"success": True}

        asyncio.run(mcp_tools.get_sharepoint_tree("Docs", 2))

        operations.get_folder_tree.assert_called_once_with("Docs", 2)

    def test_get_document_content(self, operations: MagicMock) -> None:
        operations.get_document_content.return_value = {"success": True, "content": "hello"}

        text = asyncio.run(mcp_tools.get_document_content("a.txt", "Docs"))

        assert json.loads(text)["content"] == "hello"
        operations.get_document_content.assert_called_once_with("Docs", "a.txt")

    def test_upload_from_path(self, operations: MagicMock) -> None:
        operations.upload_document_from_path.return_value = {"success": True}

        asyncio.run(mcp_tools.upload_document_from_path("/tmp/a.txt", "Docs", "b.txt"))

        operations.upload_document_from_path.assert_called_once_with("Docs", "/tmp/a.txt", "b.txt")

    def test_download_document(self, operations: MagicMock) -> None:
        operations.download_document.return_value = {"success": True}

        asyncio.run(mcp_tools.download_document("a.txt", "/tmp/out", "Docs"))

        operations.download_document.assert_called_once_with("Docs", "a.txt", "/tmp/out")

    def test_delete_folder(self, operations: MagicMock) -> None:
        operations.delete_folder.return_value = {"success": True}

        asyncio.run(mcp_tools.delete_folder("Docs/Old"))

        operations.delete_folder.assert_called_once_with("Docs/Old")


class TestToolErrors:
    def test_bridge_error_becomes_tool_error(self, operations: MagicMock) -> None:
        operations.delete_document.side_effect = NotFoundError("Item 'Docs/a.txt' not found")

        with pytest.raises(ToolError) as exc_info:
            asyncio.run(mcp_tools.delete_document("a.txt", "Docs"))

        payload = json.loads(str(exc_info.value))
        assert payload["success"] is False
        assert "Item 'Docs/a.txt' not found" in payload["message"]

    def test_invalid_request_becomes_tool_error(self, operations: MagicMock) -> None:
        operations.create_folder.side_effect = InvalidRequestError("folder_name is required")

        with pytest.raises(ToolError, match="folder_name is required"):
            asyncio.run(mcp_tools.create_folder(""))

    def test_local_file_failure_becomes_tool_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        drive = MagicMock(spec=DriveClient)
        drive.get_content.return_value = b"data"
        mcp_tools.set_operations(ResourceOperations(drive=drive))
        try:
            with pytest.raises(ToolError) as exc_info:
                asyncio.run(mcp_tools.download_document("a.txt", str(blocker / "out.txt"), "Docs"))
        finally:
            mcp_tools.set_operations(None)

        payload = json.loads(str(exc_info.value))
        assert payload["success"] is False
        assert "Cannot write local file" in payload["message"]

    def test_uninitialized_store_is_not_a_tool_error(self) -> None:
        mcp_tools.set_operations(None)

        with pytest.raises(StoreNotInitializedError):
            asyncio.run(mcp_tools.list_sharepoint_documents())


def test_all_tools_registered() -> None:
    assert set(mcp_tools.TOOLS) == {
        "List_SharePoint_Folders",
        "List_SharePoint_Documents",
        "Get_SharePoint_Tree",
        "Get_Document_Content",
        "Create_Folder",
        "Upload_Document",
        "Upload_Document_From_Path",
        "Update_Document",
        "Delete_Document",
        "Delete_Folder",
        "Download_Document",
    }

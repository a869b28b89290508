"""Unit tests for graph/drive.py: site/drive resolution and drive-item addressing."""

from unittest.mock import MagicMock

import pytest

from sharepoint_bridge.errors import RemoteStoreError
from sharepoint_bridge.graph.drive import DriveClient, DriveReference, is_folder, resolve_drive

_DRIVE = DriveReference(site_id="site-1", drive_id="drive-1", name="Documents")


def _drive_client() -> tuple[DriveClient, MagicMock]:
    graph = MagicMock()
    return DriveClient(graph, _DRIVE), graph


class TestResolveDrive:
    def test_picks_named_drive_case_insensitively(self) -> None:
        graph = MagicMock()
        graph.get.side_effect = [
            {"id": "site-1"},
            {
                "value": [
                    {"id": "drive-a", "name": "Archive"},
                    {"id": "drive-d", "name": "Documents", "webUrl": "https://x/Shared%20Documents"},
                ]
            },
        ]

        ref = resolve_drive(graph, "https://contoso.sharepoint.com/sites/eng", "documents")

        assert ref == DriveReference("site-1", "drive-d", "Documents", "https://x/Shared%20Documents")
        assert graph.get.call_args_list[0].args[0] == "/sites/contoso.sharepoint.com:/sites/eng"
        assert graph.get.call_args_list[1].args[0] == "/sites/site-1/drives"

    def test_falls_back_to_first_drive(self) -> None:
        graph = MagicMock()
        graph.get.side_effect = [{"id": "site-1"}, {"value": [{"id": "drive-a", "name": "Archive"}]}]

        ref = resolve_drive(graph, "https://contoso.sharepoint.com/sites/eng", "Documents")

        assert ref.drive_id == "drive-a"

    def test_no_drives_raises(self) -> None:
        graph = MagicMock()
        graph.get.side_effect = [{"id": "site-1"}, {"value": []}]

        with pytest.raises(RemoteStoreError, match="No drives"):
            resolve_drive(graph, "https://contoso.sharepoint.com/sites/eng", "Documents")


class TestDriveClient:
    def test_list_children_of_root(self) -> None:
        client, graph = _drive_client()
        graph.get.return_value = {"value": [{"name": "a"}]}

        assert client.list_children("") == [{"name": "a"}]
        graph.get.assert_called_once_with("/drives/drive-1/root/children")

    def test_list_children_quotes_path(self) -> None:
        client, graph = _drive_client()
        graph.get.return_value = {"value": []}

        client.list_children("Shared/Q1 Reports")

        graph.get.assert_called_once_with("/drives/drive-1/root:/Shared/Q1%20Reports:/children")

    def test_list_children_follows_next_link(self) -> None:
        client, graph = _drive_client()
        graph.get.side_effect = [
            {
                "value": [{"name": "a"}],
                "@odata.nextLink": "https://graph.microsoft.com/v1.0/drives/drive-1/root/children?$skiptoken=x",
            },
            {"value": [{"name": "b"}]},
        ]

        children = client.list_children("")

        assert [c["name"] for c in children] == ["a", "b"]
        assert graph.get.call_args_list[1].args[0] == "/drives/drive-1/root/children?$skiptoken=x"

    def test_put_content_replaces_by_default(self) -> None:
        client, graph = _drive_client()
        graph.put_content.return_value = {"name": "a.txt"}

        client.put_content("Docs/a.txt", b"hello")

        graph.put_content.assert_called_once_with(
            "/drives/drive-1/root:/Docs/a.txt:/content?@microsoft.graph.conflictBehavior=replace",
            b"hello",
        )

    def test_put_content_can_rename_on_conflict(self) -> None:
        client, graph = _drive_client()

        client.put_content("a.txt", b"x", overwrite=False)

        assert graph.put_content.call_args.args[0].endswith("conflictBehavior=rename")

    def test_create_folder_posts_rename_conflict_behaviour(self) -> None:
        client, graph = _drive_client()

        client.create_folder("Docs", "Reports")

        graph.post.assert_called_once_with(
            "/drives/drive-1/root:/Docs:/children",
            {"name": "Reports", "folder": {}, "@microsoft.graph.conflictBehavior": "rename"},
        )

    def test_get_content_addresses_content_endpoint(self) -> None:
        client, graph = _drive_client()
        graph.get_content.return_value = b"data"

        assert client.get_content("a.txt") == b"data"
        graph.get_content.assert_called_once_with("/drives/drive-1/root:/a.txt:/content")

    def test_delete_item(self) -> None:
        client, graph = _drive_client()

        client.delete_item("Docs/old.txt")

        graph.delete.assert_called_once_with("/drives/drive-1/root:/Docs/old.txt:")

    def test_delete_root_is_refused(self) -> None:
        client, graph = _drive_client()

        with pytest.raises(RemoteStoreError):
            client.delete_item("")
        graph.delete.assert_not_called()


class TestIsFolder:
    def test_folder_facet(self) -> None:
        assert is_folder({"folder": {"childCount": 0}}) is True
        assert is_folder({"file": {"mimeType": "text/plain"}}) is False

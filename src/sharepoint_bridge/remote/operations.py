"""Operations that call a remote bridge's ``/api`` routes instead of Microsoft Graph.

``RemoteOperations`` offers the same methods as ``ResourceOperations``, so the
MCP tool channel can serve either one. The calling machine holds only a caller
token; the certificate stays with the bridge.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from sharepoint_bridge.errors import (
    AuthorizationError,
    BridgeError,
    InvalidRequestError,
    NotFoundError,
    RemoteStoreError,
    StoreNotInitializedError,
)
from sharepoint_bridge.gate.authorization import REASON_INVALID
from sharepoint_bridge.resources.operations import (
    CONTENT_BINARY,
    read_local_file,
    write_local_file,
)
from sharepoint_bridge.resources.paths import join_path

if TYPE_CHECKING:
    from sharepoint_bridge.config import RemoteApiConfig

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def _error_from_response(response: httpx.Response) -> BridgeError:
    try:
        message = str(response.json().get("message") or response.reason_phrase)
    except (ValueError, AttributeError):
        message = response.reason_phrase or f"HTTP {response.status_code}"
    status = response.status_code
    if status == 400:
        return InvalidRequestError(message)
    if status == 401:
        return AuthorizationError(REASON_INVALID, f"Authentication failed, check SHAREPOINT_API_TOKEN: {message}")
    if status == 404:
        return NotFoundError(message)
    if status == 503:
        return StoreNotInitializedError(message)
    return RemoteStoreError(status, message)


class RemoteOperations:
    """Document library operations served by a bridge running in api or dual mode."""

    def __init__(self, client: httpx.Client) -> None:
        """Initialise the proxy.

        Args:
            client: httpx client whose base URL and Authorization header point at the bridge.
        """
        self._client = client

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Call one ``/api`` route and return its JSON body.

        Raises:
            BridgeError: The subclass matching the bridge's error status, or
                RemoteStoreError with status 0 when the bridge is unreachable.
        """
        try:
            response = self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.error("[_request] bridge unreachable; method:%s;path:%s;error:%s", method, path, exc)
            raise RemoteStoreError(0, f"Bridge API unreachable: {exc}") from exc
        if response.is_error:
            logger.warning(
                "[_request] bridge request failed; method:%s;path:%s;status:%d",
                method,
                path,
                response.status_code,
            )
            raise _error_from_response(response)
        try:
            return response.json()  # type: ignore[no-any-return]
        except ValueError as exc:
            raise RemoteStoreError(response.status_code, "Bridge API returned a non-JSON body") from exc

    @staticmethod
    def _item_path(*parts: str | None) -> str:
        return quote(join_path(*parts), safe="/")

    def validate(self) -> dict[str, Any]:
        """Check that the bridge accepts the configured token."""
        return self._request("GET", "/auth/validate")

    def list_folders(self, parent_folder: str | None = "") -> dict[str, Any]:
        return self._request("GET", "/folders", params={"parentFolder": parent_folder or ""})

    def list_documents(self, folder_name: str | None = "") -> dict[str, Any]:
        return self._request("GET", "/documents", params={"folderName": folder_name or ""})

    def get_folder_tree(
        self, parent_folder: str | None = "", max_depth: int | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"folderPath": parent_folder or ""}
        if max_depth is not None:
            params["maxDepth"] = int(max_depth)
        return self._request("GET", "/tree", params=params)

    def get_document_content(self, folder_name: str | None, file_name: str) -> dict[str, Any]:
        if not file_name:
            raise InvalidRequestError("file_name is required")
        return self._request("GET", f"/document/{self._item_path(folder_name, file_name)}/content")

    def download_document(
        self, folder_name: str | None, file_name: str, local_path: str
    ) -> dict[str, Any]:
        """Fetch a document through the bridge and save it on this machine."""
        result = self.get_document_content(folder_name, file_name)
        content = result.get("content", "")
        if result.get("type") == CONTENT_BINARY:
            try:
                data = base64.b64decode(content)
            except (binascii.Error, ValueError) as exc:
                raise RemoteStoreError(0, "Bridge API returned invalid base64 content") from exc
        else:
            data = content.encode("utf-8")
        target = write_local_file(local_path, file_name, data)
        logger.info("[download_document] saved document; local_path:%s;bytes:%d", target, len(data))
        return {
            "success": True,
            "message": f"Downloaded '{file_name}' to {target}",
            "localPath": str(target),
            "size": len(data),
        }

    def upload_document(
        self,
        folder_name: str | None,
        file_name: str,
        content: str,
        is_base64: bool = False,
    ) -> dict[str, Any]:
        body = {
            "fileName": file_name,
            "content": content,
            "folderPath": folder_name or "",
            "isBase64": is_base64,
        }
        return self._request("POST", "/upload", json=body)

    def update_document(
        self,
        folder_name: str | None,
        file_name: str,
        content: str,
        is_base64: bool = False,
    ) -> dict[str, Any]:
        if not file_name:
            raise InvalidRequestError("file_name is required")
        return self._request(
            "PUT",
            f"/document/{self._item_path(folder_name, file_name)}",
            json={"content": content, "isBase64": is_base64},
        )

    def upload_document_from_path(
        self,
        folder_name: str | None,
        file_path: str,
        new_file_name: str | None = None,
    ) -> dict[str, Any]:
        """Read a file on this machine and upload it through the bridge."""
        source, data = read_local_file(file_path)
        encoded = base64.b64encode(data).decode("ascii")
        return self.upload_document(folder_name, new_file_name or source.name, encoded, True)

    def create_folder(self, folder_name: str, parent_folder: str | None = "") -> dict[str, Any]:
        return self._request(
            "POST", "/folder", json={"folderName": folder_name, "parentPath": parent_folder or ""}
        )

    def delete_document(self, folder_name: str | None, file_name: str) -> dict[str, Any]:
        if not file_name:
            raise InvalidRequestError("file_name is required")
        return self._request("DELETE", f"/item/{self._item_path(folder_name, file_name)}")

    def delete_folder(self, folder_path: str) -> dict[str, Any]:
        """Delete a folder through the bridge, refusing when it still has children."""
        if not folder_path or not folder_path.strip("/"):
            raise InvalidRequestError("folder_path is required")
        count = self.list_folders(folder_path)["count"] + self.list_documents(folder_path)["count"]
        if count:
            raise InvalidRequestError(f"Folder '{join_path(folder_path)}' is not empty ({count} items)")
        return self._request("DELETE", f"/item/{self._item_path(folder_path)}")


def remote_operations_from_config(config: RemoteApiConfig) -> RemoteOperations:
    """Construct RemoteOperations and confirm the bridge accepts the token.

    Args:
        config: api-client configuration.

    Returns:
        Configured RemoteOperations instance.

    Raises:
        BridgeError: If the bridge is unreachable or rejects the token.
    """
    client = httpx.Client(
        base_url=config.base_url,
        headers={"Authorization": f"Bearer {config.api_token}"},
        timeout=config.timeout,
    )
    operations = RemoteOperations(client)
    try:
        operations.validate()
    except BridgeError:
        client.close()
        raise
    logger.info("[remote_operations_from_config] bridge accepted caller token; base_url:%s", config.base_url)
    return operations

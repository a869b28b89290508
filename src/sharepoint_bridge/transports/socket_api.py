"""WebSocket transport: JSON {action, params, id} messages over /ws."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

import anyio
import anyio.to_thread
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from sharepoint_bridge.errors import (
    AuthorizationError,
    InvalidRequestError,
    StoreNotInitializedError,
)
from sharepoint_bridge.gate.authorization import TOKEN_QUERY_PARAM, AuthorizationGate
from sharepoint_bridge.resources.operations import ResourceOperations
from sharepoint_bridge.resources.paths import split_path
from sharepoint_bridge.transports.errors import describe_error

logger = logging.getLogger(__name__)

SOCKET_PATH = "/ws"

router = APIRouter()

Handler = Callable[[ResourceOperations, dict[str, Any]], dict[str, Any]]


def _text(params: dict[str, Any], *names: str) -> str:
    for name in names:
        value = params.get(name)
        if value is not None:
            return str(value)
    return ""


def _max_depth(params: dict[str, Any]) -> int | None:
    value = params.get("maxDepth")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"maxDepth must be an integer, got {value!r}") from exc


def _document_target(params: dict[str, Any]) -> tuple[str, str]:
    if params.get("documentPath"):
        return split_path(str(params["documentPath"]))
    return _text(params, "folderName", "folderPath"), _text(params, "fileName")


def _get_document_content(ops: ResourceOperations, params: dict[str, Any]) -> dict[str, Any]:
    folder, name = _document_target(params)
    return ops.get_document_content(folder, name)


def _update_document(ops: ResourceOperations, params: dict[str, Any]) -> dict[str, Any]:
    folder, name = _document_target(params)
    return ops.update_document(
        folder, name, params.get("content"), bool(params.get("isBase64", False))
    )


ACTIONS: dict[str, Handler] = {
    "listFolders": lambda ops, p: ops.list_folders(_text(p, "parentFolder")),
    "listDocuments": lambda ops, p: ops.list_documents(_text(p, "folderName")),
    "getFolderTree": lambda ops, p: ops.get_folder_tree(_text(p, "folderPath"), _max_depth(p)),
    "getDocumentContent": _get_document_content,
    "uploadDocument": lambda ops, p: ops.upload_document(
        _text(p, "folderPath"),
        _text(p, "fileName"),
        p.get("content"),
        bool(p.get("isBase64", False)),
    ),
    "createFolder": lambda ops, p: ops.create_folder(
        _text(p, "folderName"), _text(p, "parentPath")
    ),
    "updateDocument": _update_document,
    "deleteItem": lambda ops, p: ops.delete_item(_text(p, "itemPath", "path")),
}


def handle_message(operations: ResourceOperations | None, raw: str) -> dict[str, Any]:
    """Decode one client message, run its action, and encode the reply.

    Never raises: every failure becomes an ``{error, message, status}`` reply
    carrying the request ``id`` when the message had one.
    """
    request_id = None
    try:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise InvalidRequestError(f"Invalid JSON message: {exc.msg}") from exc
        if not isinstance(message, dict):
            raise InvalidRequestError("Message must be a JSON object")
        request_id = message.get("id")

        action = message.get("action")
        handler = ACTIONS.get(action) if isinstance(action, str) else None
        if handler is None:
            raise InvalidRequestError(f"Unknown action: {action}")
        params = message.get("params") or {}
        if not isinstance(params, dict):
            raise InvalidRequestError("params must be a JSON object")
        if operations is None:
            raise StoreNotInitializedError("SharePoint client not initialized")

        logger.debug("[handle_message] dispatching; action:%s;id:%s", action, request_id)
        reply: dict[str, Any] = {"action": action, **handler(operations, params)}
    except Exception as exc:  # noqa: BLE001
        code, body = describe_error(exc)
        reply = {**body, "status": code}

    if request_id is not None:
        reply["id"] = request_id
    return reply


async def _respond(websocket: WebSocket, raw: str, send_lock: anyio.Lock) -> None:
    reply = await anyio.to_thread.run_sync(handle_message, websocket.app.state.operations, raw)
    async with send_lock:
        try:
            await websocket.send_json(reply)
        except (WebSocketDisconnect, RuntimeError, OSError):
            logger.debug("[_respond] connection closed; reply discarded; id:%s", reply.get("id"))


@router.websocket(SOCKET_PATH)
async def socket_endpoint(websocket: WebSocket) -> None:
    """Authorize the handshake, then serve messages concurrently until the client leaves."""
    gate: AuthorizationGate = websocket.app.state.gate
    client = websocket.client.host if websocket.client else None
    try:
        gate.authorize(
            websocket.query_params.get(TOKEN_QUERY_PARAM), transport="websocket", client=client
        )
    except AuthorizationError as exc:
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION, reason=f"Unauthorized - {exc.reason}"
        )
        return

    await websocket.accept()
    logger.info("[socket_endpoint] client connected; client:%s", client)
    send_lock = anyio.Lock()
    async with anyio.create_task_group() as tasks:
        while True:
            try:
                raw = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            tasks.start_soon(_respond, websocket, raw, send_lock)
    logger.info("[socket_endpoint] client disconnected; client:%s", client)

"""HTTP transport: health check plus token-gated document library routes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import anyio.to_thread
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sharepoint_bridge import __version__
from sharepoint_bridge.errors import BridgeError, StoreNotInitializedError
from sharepoint_bridge.gate.authorization import (
    TOKEN_HEADER,
    TOKEN_QUERY_PARAM,
    AuthorizationGate,
    CallContext,
    extract_candidate_token,
)
from sharepoint_bridge.resources.operations import ResourceOperations
from sharepoint_bridge.resources.paths import split_path
from sharepoint_bridge.transports.errors import describe_error
from sharepoint_bridge.transports.socket_api import router as socket_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api"

ENDPOINTS = {
    "GET /api/auth/validate": "Validate API token",
    "GET /api/folders": "List folders (query: parentFolder)",
    "GET /api/documents": "List documents (query: folderName)",
    "GET /api/tree": "Get folder tree (query: folderPath, maxDepth)",
    "GET /api/document/{path}/content": "Get document content",
    "POST /api/upload": "Upload document (body: fileName, content, folderPath, isBase64)",
    "POST /api/folder": "Create folder (body: folderName, parentPath)",
    "PUT /api/document/{path}": "Update document (body: content, isBase64)",
    "DELETE /api/item/{path}": "Delete file or folder",
    "WS /ws?token=": "WebSocket messages {action, params}",
}


class UploadRequest(BaseModel):
    fileName: str  # noqa: N815
    content: str
    folderPath: str = ""  # noqa: N815
    isBase64: bool = False  # noqa: N815


class FolderRequest(BaseModel):
    folderName: str  # noqa: N815
    parentPath: str = ""  # noqa: N815


class UpdateRequest(BaseModel):
    content: str
    isBase64: bool = False  # noqa: N815


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


def get_operations(request: Request) -> ResourceOperations:
    """Dependency returning the initialized operations, or 503 via StoreNotInitializedError."""
    operations: ResourceOperations | None = request.app.state.operations
    if operations is None:
        raise StoreNotInitializedError("SharePoint client not initialized")
    return operations


def authorize_request(request: Request) -> CallContext:
    """Dependency running the authorization gate for one HTTP request."""
    gate: AuthorizationGate = request.app.state.gate
    client = request.client.host if request.client else None
    candidate = extract_candidate_token(
        authorization=request.headers.get("authorization"),
        token_header=request.headers.get(TOKEN_HEADER),
        query_token=request.query_params.get(TOKEN_QUERY_PARAM),
    )
    context = gate.authorize(candidate, transport="http", client=client)
    request.state.caller = context
    logger.info(
        "[authorize_request] access granted; client:%s;endpoint:%s", client, request.url.path
    )
    return context


router = APIRouter(prefix=API_PREFIX, dependencies=[Depends(authorize_request)])


@router.get("")
def api_index() -> dict[str, Any]:
    return {
        "message": "SharePoint Bridge API",
        "endpoints": ENDPOINTS,
        "authentication": f"Bearer token, {TOKEN_HEADER} header or ?{TOKEN_QUERY_PARAM}= required",
    }


@router.get("/auth/validate")
def validate_token(caller: CallContext = Depends(authorize_request)) -> dict[str, Any]:
    return {
        "valid": True,
        "message": "API token is valid",
        "authenticated": True,
        "token_preview": caller.token_preview,
        "timestamp": _now(),
    }


@router.get("/folders")
def list_folders(
    parent_folder: str = Query("", alias="parentFolder"),
    operations: ResourceOperations = Depends(get_operations),
) -> dict[str, Any]:
    return operations.list_folders(parent_folder)


@router.get("/documents")
def list_documents(
    folder_name: str = Query("", alias="folderName"),
    operations: ResourceOperations = Depends(get_operations),
) -> dict[str, Any]:
    return operations.list_documents(folder_name)


@router.get("/tree")
def get_folder_tree(
    folder_path: str = Query("", alias="folderPath"),
    max_depth: int | None = Query(None, alias="maxDepth"),
    operations: ResourceOperations = Depends(get_operations),
) -> dict[str, Any]:
    return operations.get_folder_tree(folder_path, max_depth)


@router.get("/document/{document_path:path}/content")
def get_document_content(
    document_path: str,
    operations: ResourceOperations = Depends(get_operations),
) -> dict[str, Any]:
    return operations.get_document_content_by_path(document_path)


@router.post("/upload")
def upload_document(
    body: UploadRequest,
    operations: ResourceOperations = Depends(get_operations),
) -> dict[str, Any]:
    return operations.upload_document(body.folderPath, body.fileName, body.content, body.isBase64)


@router.post("/folder")
def create_folder(
    body: FolderRequest,
    operations: ResourceOperations = Depends(get_operations),
) -> dict[str, Any]:
    return operations.create_folder(body.folderName, body.parentPath)


@router.put("/document/{document_path:path}")
def update_document(
    document_path: str,
    body: UpdateRequest,
    operations: ResourceOperations = Depends(get_operations),
) -> dict[str, Any]:
    folder, name = split_path(document_path)
    return operations.update_document(folder, name, body.content, body.isBase64)


@router.delete("/item/{item_path:path}")
def delete_item(
    item_path: str,
    operations: ResourceOperations = Depends(get_operations),
) -> dict[str, Any]:
    return operations.delete_item(item_path)


async def _bridge_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status, body = describe_error(exc)
    return JSONResponse(body, status_code=status)


async def _validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ())[1:]) or 'body'}: {err.get('msg', '')}"
        for err in errors
    )
    return JSONResponse(
        {"error": "Bad Request", "message": details or "Invalid request"}, status_code=400
    )


def create_app(
    gate: AuthorizationGate,
    operations: ResourceOperations | None = None,
    initializer: Callable[[], ResourceOperations] | None = None,
    cors_origins: Sequence[str] = ("*",),
) -> FastAPI:
    """Build the FastAPI application serving HTTP routes and the WebSocket endpoint.

    Args:
        gate: Authorization gate shared by HTTP and WebSocket.
        operations: Ready operations instance, if already initialized.
        initializer: Called once at startup (in a worker thread) when ``operations``
            is None. A failure leaves the server running with the store disconnected.
        cors_origins: Allowed CORS origins.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.operations is None and initializer is not None:
            logger.info("[lifespan] initializing SharePoint client")
            try:
                app.state.operations = await anyio.to_thread.run_sync(initializer)
                logger.info("[lifespan] SharePoint client initialized")
            except Exception:
                logger.error(
                    "[lifespan] SharePoint client initialization failed; serving with store "
                    "disconnected",
                    exc_info=True,
                )
        yield

    app = FastAPI(title="SharePoint Bridge", version=__version__, lifespan=lifespan)
    app.state.gate = gate
    app.state.operations = operations

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(BridgeError, _bridge_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _bridge_error_handler)

    @app.get("/health")
    def health_check() -> dict[str, Any]:
        """Coarse service status; requires no token and reveals no credentials."""
        return {
            "status": "healthy",
            "timestamp": _now(),
            "storeConnectivity": "connected" if app.state.operations is not None else "disconnected",
            "authentication": "required",
            "version": __version__,
        }

    app.include_router(router)
    app.include_router(socket_router)
    return app

"""Mapping from the bridge error taxonomy to transport status codes and bodies."""

from __future__ import annotations

import logging
from typing import Any

from sharepoint_bridge.errors import (
    AuthError,
    AuthorizationError,
    CertificateFormatError,
    InvalidRequestError,
    NotFoundError,
    RemoteStoreError,
    StoreNotInitializedError,
)

logger = logging.getLogger(__name__)

# Ordered: subclasses before their bases.
_STATUS_TABLE: tuple[tuple[type[Exception], int, str], ...] = (
    (InvalidRequestError, 400, "Bad Request"),
    (AuthorizationError, 401, "Unauthorized"),
    (NotFoundError, 404, "Not Found"),
    (StoreNotInitializedError, 503, "Service Unavailable"),
    (AuthError, 503, "Service Unavailable"),
    (CertificateFormatError, 503, "Service Unavailable"),
    (RemoteStoreError, 500, "Internal server error"),
)


def describe_error(exc: Exception) -> tuple[int, dict[str, Any]]:
    """Return (status, {error, message}) for an exception raised by an operation.

    Unexpected exceptions map to 500 with a generic message; their details
    go to the log only.
    """
    for error_type, status, label in _STATUS_TABLE:
        if isinstance(exc, error_type):
            message = getattr(exc, "message", str(exc))
            if error_type in (AuthError, CertificateFormatError):
                message = f"Document store unavailable: {message}"
            return status, {"error": label, "message": message}
    logger.error("[describe_error] unexpected error; type:%s", type(exc).__name__, exc_info=exc)
    return 500, {"error": "Internal server error", "message": "Unexpected server error"}

"""Exception hierarchy shared by every layer of the bridge.

Transports translate these into status codes; nothing below the transport
layer knows about HTTP. Messages must never carry a caller or service token.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors.

    Attributes:
        message: Human-readable error description, safe to return to callers.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(BridgeError):
    """Raised when the environment does not describe a usable configuration."""


class CertificateFormatError(BridgeError):
    """Raised when the certificate container cannot be turned into key material."""


class CertificateCorruptedError(CertificateFormatError):
    """Raised when the container bytes carry the UTF-8 replacement-character signature."""


class AuthError(BridgeError):
    """Raised when the service token exchange with the identity provider fails."""


class AuthorizationError(BridgeError):
    """Raised when a caller presents no token or a token outside the configured set.

    Attributes:
        reason: Short machine-friendly reason ("token required" or "invalid token").
    """

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class InvalidRequestError(BridgeError):
    """Raised when a caller omits a required argument or sends one that cannot be decoded."""


class RemoteStoreError(BridgeError):
    """Raised when the Graph API returns a non-2xx response or cannot be reached."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        return f"Graph API error {self.status_code}: {self.message}"


class NotFoundError(RemoteStoreError):
    """Raised when the addressed drive item does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(404, message)


class StoreNotInitializedError(BridgeError):
    """Raised when an operation is requested before the document library client is ready."""

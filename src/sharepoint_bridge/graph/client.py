"""Microsoft Graph API client authenticated with the cached service token."""

from __future__ import annotations

import json
import logging
from http.client import HTTPException
from typing import TYPE_CHECKING, Any, Protocol
from urllib import request as urllib_request
from urllib.error import HTTPError, URLError

from sharepoint_bridge.errors import NotFoundError, RemoteStoreError

if TYPE_CHECKING:
    from sharepoint_bridge.config import AppConfig
    from sharepoint_bridge.graph.token import ServiceToken

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_TIMEOUT = 30.0


class TokenSource(Protocol):
    def get_valid_token(self) -> ServiceToken: ...

    def invalidate(self) -> None: ...


class GraphClient:
    """Authenticated client for Microsoft Graph API."""

    def __init__(self, token_source: TokenSource, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialise the client.

        Args:
            token_source: Provider of the service bearer token (usually ServiceTokenProvider).
            timeout: Socket timeout in seconds for each Graph request.
        """
        self._tokens = token_source
        self._timeout = timeout

    def _send(
        self,
        method: str,
        path: str,
        data: bytes | None = None,
        content_type: str | None = None,
    ) -> bytes:
        """Perform one authenticated request and return the raw response body.

        Args:
            method: HTTP method.
            path: URL path relative to GRAPH_BASE_URL (must start with '/'), or an
                absolute Graph URL such as an @odata.nextLink.
            data: Optional request body.
            content_type: Content-Type header for the body.

        Raises:
            AuthError / CertificateFormatError: If no service token can be obtained.
            NotFoundError: If Graph answers 404.
            RemoteStoreError: If Graph answers any other non-2xx status or is unreachable.
        """
        token = self._tokens.get_valid_token()
        url = path if path.startswith("https://") else f"{GRAPH_BASE_URL}{path}"
        headers = {
            "Authorization": f"Bearer {token.value}",
            "Accept": "application/json",
        }
        if content_type is not None:
            headers["Content-Type"] = content_type
        req = urllib_request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib_request.urlopen(req, timeout=self._timeout) as resp:
                return resp.read()  # type: ignore[no-any-return]
        except HTTPError as exc:
            raw = exc.read()
            try:
                detail = json.loads(raw).get("error", {}).get("message", exc.reason)
            except (ValueError, AttributeError):
                detail = exc.reason
            logger.warning(
                "[_send] Graph request failed; method:%s;path:%s;status:%d", method, path, exc.code
            )
            if exc.code == 401:
                # Token rejected before its advertised expiry; refresh on the next call.
                self._tokens.invalidate()
            if exc.code == 404:
                raise NotFoundError(str(detail)) from exc
            raise RemoteStoreError(exc.code, str(detail)) from exc
        except URLError as exc:
            logger.error("[_send] Graph unreachable; method:%s;path:%s", method, path)
            raise RemoteStoreError(0, f"Graph API unreachable: {exc.reason}") from exc
        except TimeoutError as exc:
            logger.error("[_send] Graph request timed out; method:%s;path:%s", method, path)
            raise RemoteStoreError(0, "Graph API request timed out") from exc
        except (OSError, HTTPException) as exc:
            logger.error(
                "[_send] Graph connection failed; method:%s;path:%s;error:%s", method, path, exc
            )
            raise RemoteStoreError(0, f"Graph API connection failed: {exc!r}") from exc

    @staticmethod
    def _json(body: bytes) -> dict[str, Any]:
        if not body:
            return {}
        return json.loads(body)  # type: ignore[no-any-return]

    def get(self, path: str) -> dict[str, Any]:
        """Perform an authenticated GET request and parse the JSON body."""
        return self._json(self._send("GET", path))

    def get_content(self, path: str) -> bytes:
        """Perform an authenticated GET request and return the raw bytes (file download)."""
        return self._send("GET", path)

    def put_content(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Upload raw bytes with PUT and return the resulting item metadata."""
        return self._json(self._send("PUT", path, data=content, content_type=content_type))

    def post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON body and return the parsed JSON response."""
        payload = json.dumps(body).encode("utf-8")
        return self._json(self._send("POST", path, data=payload, content_type="application/json"))

    def delete(self, path: str) -> None:
        """Perform an authenticated DELETE request."""
        self._send("DELETE", path)


def graph_client_from_config(token_source: TokenSource, config: AppConfig) -> GraphClient:
    """Construct a GraphClient from application configuration.

    Args:
        token_source: Provider of the service bearer token.
        config: Application configuration instance.

    Returns:
        Configured GraphClient instance.
    """
    return GraphClient(token_source=token_source, timeout=config.graph_timeout)

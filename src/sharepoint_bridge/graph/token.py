"""Service token acquisition with MSAL certificate credentials and a single-flight cache."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import msal

from sharepoint_bridge.errors import AuthError
from sharepoint_bridge.graph.certificate import CertificateMaterial, load_certificate

if TYPE_CHECKING:
    from sharepoint_bridge.config import AppConfig

logger = logging.getLogger(__name__)

GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]
AUTHORITY_BASE_URL = "https://login.microsoftonline.com"
DEFAULT_REFRESH_MARGIN = 120.0
DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class ServiceIdentity:
    """Azure AD application identity used for the client-credential flow."""

    client_id: str
    tenant_id: str

    @property
    def authority(self) -> str:
        return f"{AUTHORITY_BASE_URL}/{self.tenant_id}"


@dataclass(frozen=True)
class ServiceToken:
    """Bearer token for Graph calls. The value never appears in repr or logs."""

    value: str = field(repr=False)
    expires_at: float

    def expires_within(self, seconds: float, now: float) -> bool:
        return self.expires_at - seconds <= now


def build_confidential_client(
    identity: ServiceIdentity, material: CertificateMaterial
) -> msal.ConfidentialClientApplication:
    """Create an MSAL app that signs its client assertion with the certificate."""
    return msal.ConfidentialClientApplication(
        client_id=identity.client_id,
        client_credential={
            "private_key": material.private_key_pem,
            "thumbprint": material.thumbprint,
        },
        authority=identity.authority,
    )


def acquire_service_token(
    app: msal.ConfidentialClientApplication,
    clock: Callable[[], float] = time.time,
) -> ServiceToken:
    """Exchange the certificate assertion for a Graph access token.

    Returns:
        ServiceToken with an absolute expiry derived from ``expires_in``.

    Raises:
        AuthError: If MSAL cannot acquire a token.
    """
    try:
        result: dict[str, Any] = app.acquire_token_for_client(scopes=GRAPH_SCOPES) or {}
    except ValueError as exc:
        # msal raises ValueError for unusable credentials (e.g. key/thumbprint mismatch).
        logger.error("[acquire_service_token] MSAL rejected the client credential")
        raise AuthError(f"Token acquisition failed: {exc}") from exc
    except OSError as exc:
        logger.error("[acquire_service_token] identity provider unreachable; error:%s", exc)
        raise AuthError(f"Token acquisition failed: identity provider unreachable ({exc})") from exc

    if "access_token" not in result:
        error = result.get("error", "unknown_error")
        description = result.get("error_description", "No description provided")
        logger.error("[acquire_service_token] MSAL token acquisition failed; error:%s", error)
        raise AuthError(f"Token acquisition failed: {error}: {description}")

    expires_in = int(result.get("expires_in", DEFAULT_EXPIRES_IN))
    logger.info("[acquire_service_token] acquired service token; expires_in:%d", expires_in)
    return ServiceToken(value=str(result["access_token"]), expires_at=clock() + expires_in)


class TokenCache:
    """Caches one ServiceToken and coalesces concurrent refreshes.

    The first caller that finds the token missing or about to expire becomes
    the leader and runs ``fetch``; callers arriving while that refresh is in
    flight wait on the same future and receive the same token or exception.
    """

    def __init__(
        self,
        fetch: Callable[[], ServiceToken],
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetch = fetch
        self._refresh_margin = refresh_margin
        self._clock = clock
        self._lock = threading.Lock()
        self._token: ServiceToken | None = None
        self._inflight: Future[ServiceToken] | None = None

    def _fresh(self, token: ServiceToken | None) -> bool:
        return token is not None and not token.expires_within(self._refresh_margin, self._clock())

    def get_valid_token(self) -> ServiceToken:
        token = self._token
        if self._fresh(token):
            return token  # type: ignore[return-value]

        with self._lock:
            token = self._token
            if self._fresh(token):
                return token  # type: ignore[return-value]
            future = self._inflight
            leader = future is None
            if future is None:
                future = Future()
                self._inflight = future

        if not leader:
            return future.result()

        try:
            token = self._fetch()
        except Exception as exc:
            with self._lock:
                self._inflight = None
            future.set_exception(exc)
            raise
        with self._lock:
            self._token = token
            self._inflight = None
        future.set_result(token)
        return token

    def invalidate(self) -> None:
        """Drop the cached token so the next caller refreshes."""
        self._token = None


class ServiceTokenProvider:
    """Owns the certificate material, the MSAL app and the token cache."""

    def __init__(
        self,
        identity: ServiceIdentity,
        cert_path: str,
        cert_password: str | None,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialise the provider. Nothing is read or requested until the first token is needed.

        Args:
            identity: Application identity (client and tenant IDs).
            cert_path: Path to the PKCS#12 certificate container.
            cert_password: Password protecting the container.
            refresh_margin: Seconds before expiry at which a cached token is refreshed.
            clock: Time source, injectable for tests.
        """
        self._identity = identity
        self._cert_path = cert_path
        self._cert_password = cert_password
        self._clock = clock
        self._app_lock = threading.Lock()
        self._app: msal.ConfidentialClientApplication | None = None
        self._cache = TokenCache(self._exchange, refresh_margin=refresh_margin, clock=clock)

    def _application(self) -> msal.ConfidentialClientApplication:
        with self._app_lock:
            if self._app is None:
                material = load_certificate(self._cert_path, self._cert_password)
                self._app = build_confidential_client(self._identity, material)
                logger.info(
                    "[_application] confidential client ready; client_id:%s;thumbprint:%s",
                    self._identity.client_id,
                    material.thumbprint,
                )
            return self._app

    def _exchange(self) -> ServiceToken:
        return acquire_service_token(self._application(), clock=self._clock)

    def get_valid_token(self) -> ServiceToken:
        """Return a token valid for at least the refresh margin.

        Raises:
            CertificateFormatError: If the certificate container cannot be used.
            AuthError: If the token exchange fails.
        """
        return self._cache.get_valid_token()

    def invalidate(self) -> None:
        self._cache.invalidate()

    def reload_certificate(self) -> None:
        """Forget the certificate, MSAL app and cached token; the next call re-reads the file."""
        with self._app_lock:
            self._app = None
        self._cache.invalidate()
        logger.info("[reload_certificate] certificate will be re-read on next token request")


def token_provider_from_config(config: AppConfig) -> ServiceTokenProvider:
    """Construct a ServiceTokenProvider from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured ServiceTokenProvider instance.
    """
    return ServiceTokenProvider(
        identity=ServiceIdentity(client_id=config.client_id, tenant_id=config.tenant_id),
        cert_path=config.cert_path,
        cert_password=config.cert_password,
        refresh_margin=config.token_refresh_margin,
    )

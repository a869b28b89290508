"""Caller token extraction and validation, shared by every network transport.

Transports only extract a candidate token from wherever their protocol
carries it; validation always goes through ``AuthorizationGate.authorize``.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sharepoint_bridge.errors import AuthorizationError

if TYPE_CHECKING:
    from sharepoint_bridge.config import AppConfig

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-API-Token"
TOKEN_QUERY_PARAM = "token"
BEARER_PREFIX = "bearer "
PREVIEW_LENGTH = 8

REASON_REQUIRED = "token required"
REASON_INVALID = "invalid token"


def token_preview(token: str) -> str:
    """Return the loggable form of a token: its first 8 characters."""
    return f"{token[:PREVIEW_LENGTH]}..."


def extract_candidate_token(
    authorization: str | None = None,
    token_header: str | None = None,
    query_token: str | None = None,
) -> str | None:
    """Pick the caller token from the sources a transport exposes.

    Priority: ``Authorization: Bearer <token>``, then the X-API-Token header,
    then the ``token`` query/handshake parameter. The first non-empty value wins
    and is returned untrimmed.
    """
    if authorization and authorization[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX:
        bearer = authorization[len(BEARER_PREFIX) :]
        if bearer:
            return bearer
    for candidate in (token_header, query_token):
        if candidate:
            return candidate
    return None


@dataclass(frozen=True)
class CallContext:
    """An authorized call, kept for downstream auditing."""

    token: str | None = field(repr=False)
    transport: str
    client: str | None = None

    @property
    def token_preview(self) -> str:
        return token_preview(self.token) if self.token else ""


class AuthorizationGate:
    """Accepts a call only when its token is an exact member of the configured set."""

    def __init__(self, tokens: Iterable[str]) -> None:
        self._tokens = self._normalize(tokens)
        if not self._tokens:
            logger.warning("[AuthorizationGate] no caller tokens configured; all calls will be rejected")

    @staticmethod
    def _normalize(tokens: Iterable[str]) -> frozenset[bytes]:
        return frozenset(t.encode("utf-8") for t in tokens if t)

    @property
    def token_count(self) -> int:
        return len(self._tokens)

    def reload(self, tokens: Iterable[str]) -> None:
        """Replace the whole token set; calls in flight keep seeing the old or the new set."""
        self._tokens = self._normalize(tokens)
        logger.info("[reload] caller tokens reloaded; token_count:%d", len(self._tokens))

    def _is_member(self, candidate: str) -> bool:
        presented = candidate.encode("utf-8")
        # compare_digest against every member keeps timing independent of where a match is.
        matched = False
        for known in self._tokens:
            matched |= hmac.compare_digest(presented, known)
        return matched

    def authorize(
        self, candidate: str | None, transport: str, client: str | None = None
    ) -> CallContext:
        """Validate a candidate token.

        Args:
            candidate: Token extracted by the transport, or None when absent.
            transport: Transport name for logs and the call context ("http", "websocket").
            client: Remote address, for logs.

        Returns:
            CallContext carrying the validated token.

        Raises:
            AuthorizationError: If the token is missing or not in the configured set.
        """
        if not candidate:
            logger.warning(
                "[authorize] access denied, no token; transport:%s;client:%s", transport, client
            )
            raise AuthorizationError(
                REASON_REQUIRED,
                "API token required. Provide it via the Authorization header, "
                f"the {TOKEN_HEADER} header, or the ?{TOKEN_QUERY_PARAM}= query parameter",
            )
        if not self._is_member(candidate):
            logger.warning(
                "[authorize] access denied, invalid token; transport:%s;client:%s;token:%s",
                transport,
                client,
                token_preview(candidate),
            )
            raise AuthorizationError(REASON_INVALID, "Invalid API token provided")
        logger.debug("[authorize] access granted; transport:%s;client:%s", transport, client)
        return CallContext(token=candidate, transport=transport, client=client)


def authorization_gate_from_config(config: AppConfig) -> AuthorizationGate:
    """Construct an AuthorizationGate from application configuration."""
    return AuthorizationGate(config.auth_tokens)

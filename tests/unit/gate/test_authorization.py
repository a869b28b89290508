"""Unit tests for gate/authorization.py: token extraction and membership checks."""

import logging

import pytest

from sharepoint_bridge.errors import AuthorizationError
from sharepoint_bridge.gate.authorization import (
    REASON_INVALID,
    REASON_REQUIRED,
    AuthorizationGate,
    extract_candidate_token,
    token_preview,
)

_TOKEN = "caller-token-0123456789abcdef0123456789"
_OTHER = "other-token-abcdefghijklmnopqrstuvwxyz0123"


class TestExtractCandidateToken:
    def test_bearer_header_wins(self) -> None:
        assert extract_candidate_token(f"Bearer {_TOKEN}", _OTHER, "query") == _TOKEN

    def test_bearer_scheme_is_case_insensitive(self) -> None:
        assert extract_candidate_token(f"bearer {_TOKEN}") == _TOKEN

    def test_token_header_before_query(self) -> None:
        assert extract_candidate_token(None, _TOKEN, _OTHER) == _TOKEN

    def test_query_parameter_last(self) -> None:
        assert extract_candidate_token(None, None, _TOKEN) == _TOKEN

    def test_non_bearer_authorization_is_ignored(self) -> None:
        assert extract_candidate_token("Basic dXNlcjpwYXNz", None, _TOKEN) == _TOKEN

    def test_empty_sources_give_none(self) -> None:
        assert extract_candidate_token("Bearer ", "", "") is None

    def test_candidate_is_not_trimmed(self) -> None:
        assert extract_candidate_token(None, None, f" {_TOKEN} ") == f" {_TOKEN} "


class TestAuthorizationGate:
    def test_accepts_exact_member(self) -> None:
        gate = AuthorizationGate([_TOKEN, _OTHER])

        context = gate.authorize(_TOKEN, transport="http", client="10.0.0.1")

        assert context.transport == "http"
        assert context.token_preview == token_preview(_TOKEN)
        assert _TOKEN not in repr(context)

    def test_missing_token_is_rejected(self) -> None:
        gate = AuthorizationGate([_TOKEN])

        with pytest.raises(AuthorizationError) as exc_info:
            gate.authorize(None, transport="http")

        assert exc_info.value.reason == REASON_REQUIRED

    @pytest.mark.parametrize(
        "candidate",
        [_TOKEN.upper(), _TOKEN[:-1], _TOKEN + "x", f" {_TOKEN}x", f" {_TOKEN} ", f"{_TOKEN}\n", "unknown"],
    )
    def test_non_members_are_rejected(self, candidate: str) -> None:
        gate = AuthorizationGate([_TOKEN])

        with pytest.raises(AuthorizationError) as exc_info:
            gate.authorize(candidate, transport="websocket")

        assert exc_info.value.reason == REASON_INVALID

    def test_rejection_logs_only_preview(self, caplog: pytest.LogCaptureFixture) -> None:
        gate = AuthorizationGate([_TOKEN])
        presented = "presented-secret-value-that-is-long-enough"

        with caplog.at_level(logging.WARNING), pytest.raises(AuthorizationError):
            gate.authorize(presented, transport="http")

        assert presented not in caplog.text
        assert token_preview(presented) in caplog.text

    def test_error_message_never_contains_token(self) -> None:
        gate = AuthorizationGate([_TOKEN])

        with pytest.raises(AuthorizationError) as exc_info:
            gate.authorize(_OTHER, transport="http")

        assert _OTHER not in exc_info.value.message

    def test_empty_token_set_rejects_everything(self) -> None:
        gate = AuthorizationGate([])

        assert gate.token_count == 0
        with pytest.raises(AuthorizationError):
            gate.authorize(_TOKEN, transport="http")

    def test_reload_replaces_token_set(self) -> None:
        gate = AuthorizationGate([_TOKEN])

        gate.reload([_OTHER])

        gate.authorize(_OTHER, transport="http")
        with pytest.raises(AuthorizationError):
            gate.authorize(_TOKEN, transport="http")


def test_token_preview_shows_first_eight_characters() -> None:
    assert token_preview(_TOKEN) == "caller-t..."

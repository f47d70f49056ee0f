"""Tests for agent bearer authentication and request origin capture."""

from datetime import timedelta
from unittest.mock import MagicMock

import jwt
import pytest

from config.settings import AuthSettings
from domain.errors import Unauthorized
from security.agent_auth import bearer_token, create_agent_token, decode_agent_token
from security.request_context import MAX_USER_AGENT_LENGTH, client_ip, request_context

SECRET = "test-jwt-secret-that-is-at-least-32-characters"


@pytest.fixture
def auth():
    return AuthSettings(jwt_secret=SECRET)


def fake_request(headers=None, host="198.51.100.7"):
    request = MagicMock()
    request.headers = {k.lower(): v for k, v in (headers or {}).items()}
    request.client = MagicMock(host=host) if host else None
    return request


class TestAgentToken:
    """Tests for token creation and validation."""

    def test_round_trip(self, auth):
        token = create_agent_token("agent-1", auth)
        assert decode_agent_token(token, auth) == "agent-1"

    def test_expired(self, auth):
        token = create_agent_token("agent-1", auth, expires_delta=timedelta(seconds=-5))
        with pytest.raises(Unauthorized) as exc_info:
            decode_agent_token(token, auth)
        assert "expired" in exc_info.value.message

    def test_wrong_secret(self, auth):
        token = create_agent_token("agent-1", AuthSettings(jwt_secret="another-secret-that-is-32-characters-long"))
        with pytest.raises(Unauthorized):
            decode_agent_token(token, auth)

    def test_wrong_token_type(self, auth):
        token = create_agent_token("agent-1", auth, extra_claims={"type": "refresh"})
        with pytest.raises(Unauthorized):
            decode_agent_token(token, auth)

    def test_missing_subject(self, auth):
        token = jwt.encode({"exp": 9999999999}, SECRET, algorithm="HS256")
        with pytest.raises(Unauthorized):
            decode_agent_token(token, auth)

    def test_garbage(self, auth):
        with pytest.raises(Unauthorized):
            decode_agent_token("not-a-jwt", auth)

    def test_empty(self, auth):
        with pytest.raises(Unauthorized):
            decode_agent_token("", auth)


class TestBearerToken:
    """Tests for Authorization header parsing."""

    def test_bearer(self):
        assert bearer_token("Bearer abc.def") == "abc.def"

    def test_case_insensitive_scheme(self):
        assert bearer_token("bearer abc") == "abc"

    def test_other_scheme(self):
        assert bearer_token("Basic dXNlcjpwYXNz") is None

    def test_missing(self):
        assert bearer_token(None) is None
        assert bearer_token("Bearer ") is None


class TestRequestContext:
    """Tests for client IP and user agent capture."""

    def test_forwarded_for_first_hop(self):
        request = fake_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})
        assert client_ip(request) == "203.0.113.5"

    def test_real_ip(self):
        assert client_ip(fake_request({"X-Real-IP": " 203.0.113.9 "})) == "203.0.113.9"

    def test_socket_peer(self):
        assert client_ip(fake_request()) == "198.51.100.7"

    def test_no_peer(self):
        assert client_ip(fake_request(host=None)) is None

    def test_user_agent_truncated(self):
        context = request_context(fake_request({"User-Agent": "x" * 2000}))
        assert len(context.user_agent) == MAX_USER_AGENT_LENGTH

    def test_missing_user_agent(self):
        assert request_context(fake_request()).user_agent is None

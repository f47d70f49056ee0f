"""
Agent bearer authentication.

Agent endpoints expect "Authorization: Bearer <jwt>" signed with
AUTH_JWT_SECRET; the "sub" claim is the agent id. Token issuance belongs to
the surrounding CRM; create_agent_token exists for local use and tests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from config.settings import AuthSettings
from domain.errors import Unauthorized

logger = logging.getLogger(__name__)

AGENT_TOKEN_TYPE = "access"
DEFAULT_TOKEN_HOURS = 8


def create_agent_token(
    agent_id: str,
    settings: AuthSettings,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a JWT access token for an agent.

    Args:
        agent_id: Agent's unique identifier
        settings: Signing key and algorithm
        expires_delta: Custom expiration time
        extra_claims: Additional claims to embed
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(agent_id),
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=DEFAULT_TOKEN_HOURS)),
        "type": AGENT_TOKEN_TYPE,
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_agent_token(token: str, settings: AuthSettings) -> str:
    """
    Validate a bearer token and return the agent id.

    Raises:
        Unauthorized: Missing, expired or invalid token
    """
    if not token:
        raise Unauthorized()

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Session expired. Please sign in again.")
    except jwt.InvalidTokenError as e:
        logger.info(f"Rejected agent token: {e}")
        raise Unauthorized()

    if payload.get("type", AGENT_TOKEN_TYPE) != AGENT_TOKEN_TYPE:
        raise Unauthorized()

    agent_id = str(payload["sub"]).strip()
    if not agent_id:
        raise Unauthorized()
    return agent_id


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an Authorization header value."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return credentials.strip() or None

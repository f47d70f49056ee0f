"""Network origin of an incoming request."""

from typing import Optional

from fastapi import Request

from domain.soa import RequestContext

MAX_USER_AGENT_LENGTH = 512


def client_ip(request: Request) -> Optional[str]:
    """First hop of X-Forwarded-For, falling back to the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def request_context(request: Request) -> RequestContext:
    user_agent = request.headers.get("user-agent")
    return RequestContext(
        ip_address=client_ip(request),
        user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
    )

"""
Security module for the Scope of Appointment service.

Provides agent bearer authentication, request origin capture for audit
entries, and the unified API error response system.
"""

from .agent_auth import bearer_token, create_agent_token, decode_agent_token
from .api_errors import (
    ErrorResponse,
    FieldError,
    RequestIDMiddleware,
    register_exception_handlers,
    status_for,
)
from .request_context import client_ip, request_context

__all__ = [
    # Authentication
    "bearer_token",
    "create_agent_token",
    "decode_agent_token",
    # Request origin
    "client_ip",
    "request_context",
    # Errors
    "ErrorResponse",
    "FieldError",
    "RequestIDMiddleware",
    "register_exception_handlers",
    "status_for",
]

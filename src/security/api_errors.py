"""
Unified API Error Response System.

Provides standardized error responses across all agent API endpoints for:
- Consistent client-side error handling
- Proper error logging and monitoring
- Security-conscious error messages (no sensitive data leakage)

Domain failures are raised as SOAError subclasses (domain/errors.py) and
converted here; route handlers never build error responses themselves.
The public signing endpoints return structured results instead and do not
go through these handlers for domain failures.

Usage:
    from security.api_errors import register_exception_handlers, RequestIDMiddleware

    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)
"""

from __future__ import annotations

import logging
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from domain.errors import (
    AlreadyUsed,
    AuditWriteError,
    ConfigurationError,
    DeliveryError,
    InvalidTransition,
    NotFound,
    SOAError,
    StorageError,
    TokenExpired,
    Unauthorized,
    UnsupportedDeliveryMethod,
    ValidationError,
)
from services.logging_config import request_id_var

logger = logging.getLogger(__name__)

SERVER_ERROR_CODE = "SERVER_INTERNAL_ERROR"
GENERIC_SERVER_MESSAGE = "An unexpected error occurred. Please try again later."


# =============================================================================
# ERROR TO HTTP STATUS MAPPING
# =============================================================================

ERROR_STATUS_MAP: Dict[Type[SOAError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    UnsupportedDeliveryMethod: status.HTTP_400_BAD_REQUEST,
    Unauthorized: status.HTTP_401_UNAUTHORIZED,
    NotFound: status.HTTP_404_NOT_FOUND,
    AlreadyUsed: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    TokenExpired: status.HTTP_410_GONE,
    DeliveryError: status.HTTP_502_BAD_GATEWAY,
    StorageError: status.HTTP_502_BAD_GATEWAY,
    AuditWriteError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: SOAError) -> int:
    """HTTP status for a domain error, using the most specific mapped class."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_MAP:
            return ERROR_STATUS_MAP[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# =============================================================================
# ERROR RESPONSE MODELS
# =============================================================================


class FieldError(BaseModel):
    """Individual field validation error."""
    field: str = Field(..., description="Field name that caused the error")
    message: str = Field(..., description="Error message for this field")
    code: str = Field(default="invalid", description="Error code for this field")


class ErrorResponse(BaseModel):
    """
    Standardized API error response.

    All agent API errors return this format for consistent client handling.
    """
    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": True,
            "code": "VALIDATION_ERROR",
            "message": "Typed signature is required",
            "status_code": 400,
            "timestamp": "2026-01-29T12:00:00Z",
            "request_id": "550e8400-e29b-41d4-a716-446655440000",
            "path": "/api/soa/5f0c/countersign",
            "field_errors": [
                {"field": "typed_signature", "message": "Typed signature is required", "code": "invalid"}
            ]
        }
    })

    error: bool = Field(default=True, description="Always true for errors")
    code: str = Field(..., description="Error code, e.g. NOT_FOUND")
    message: str = Field(..., description="Human-readable error message")
    status_code: int = Field(..., description="HTTP status code")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    request_id: str = Field(..., description="Unique request identifier for tracking")
    path: Optional[str] = Field(None, description="Request path that caused the error")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    field_errors: Optional[List[FieldError]] = Field(None, description="Field-specific validation errors")


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_request_id(request: Request) -> str:
    """Get or generate request ID for tracking."""
    request_id = request.headers.get("X-Request-ID")
    if not request_id:
        request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())
    return request_id


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    field_errors: Optional[List[Dict[str, str]]] = None,
) -> JSONResponse:
    """Build the standard error JSON response."""
    request_id = get_request_id(request)
    response = ErrorResponse(
        code=code,
        message=message,
        status_code=status_code,
        timestamp=_timestamp(),
        request_id=request_id,
        path=request.url.path,
        details=details,
        field_errors=[
            FieldError(
                field=fe.get("field", "unknown"),
                message=fe.get("message", "Invalid value"),
                code=fe.get("code", "invalid"),
            )
            for fe in field_errors
        ] if field_errors else None,
    )
    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(),
        headers={"X-Request-ID": request_id},
    )


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Call this in your app initialization:
        from security.api_errors import register_exception_handlers
        register_exception_handlers(app)
    """

    @app.exception_handler(SOAError)
    async def soa_error_handler(request: Request, exc: SOAError) -> JSONResponse:
        """Handle domain errors."""
        request_id = get_request_id(request)
        status_code = status_for(exc)
        log_extra = {
            "request_id": request_id,
            "error_code": exc.code,
            "status_code": status_code,
            "path": request.url.path,
            "method": request.method,
        }

        # Operator problem; the detail goes to the log only
        if isinstance(exc, ConfigurationError):
            logger.error(f"[{request_id}] Configuration error: {exc.message}", extra=log_extra)
            return error_response(
                request, status_code, SERVER_ERROR_CODE, GENERIC_SERVER_MESSAGE,
                details={"support": f"Reference ID: {request_id}"},
            )

        log_level = logging.WARNING if status_code < 500 else logging.ERROR
        logger.log(log_level, f"[{request_id}] {exc.code} - {exc.message}", extra=log_extra)

        details = None
        if isinstance(exc, InvalidTransition) and exc.current_status:
            details = {"current_status": exc.current_status}

        message = exc.user_message if isinstance(exc, DeliveryError) else exc.message
        return error_response(
            request, status_code, exc.code, message,
            details=details,
            field_errors=getattr(exc, "field_errors", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle Pydantic validation errors."""
        request_id = get_request_id(request)

        field_errors = []
        for error in exc.errors():
            field_path = ".".join(str(loc) for loc in error["loc"] if loc != "body")
            field_errors.append({
                "field": field_path or "body",
                "message": error["msg"],
                "code": error["type"],
            })

        logger.warning(
            f"[{request_id}] Validation error: {len(field_errors)} field(s)",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
            }
        )

        return error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ValidationError.code,
            "Request validation failed",
            field_errors=field_errors,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle standard HTTP exceptions."""
        request_id = get_request_id(request)

        status_to_code = {
            400: ValidationError.code,
            401: Unauthorized.code,
            404: NotFound.code,
            409: InvalidTransition.code,
        }
        error_code = status_to_code.get(exc.status_code, SERVER_ERROR_CODE)

        logger.warning(
            f"[{request_id}] HTTP {exc.status_code}: {exc.detail}",
            extra={
                "request_id": request_id,
                "status_code": exc.status_code,
                "path": request.url.path,
                "method": request.method,
            }
        )

        return error_response(
            request,
            exc.status_code,
            error_code,
            str(exc.detail) if exc.detail else "An error occurred",
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global catch-all exception handler.

        SECURITY: Never expose internal error details to clients.
        """
        request_id = get_request_id(request)

        logger.error(
            f"[{request_id}] Unhandled exception: {type(exc).__name__}: {str(exc)}",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
                "traceback": traceback.format_exc(),
            },
            exc_info=True
        )

        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            SERVER_ERROR_CODE,
            GENERIC_SERVER_MESSAGE,
            details={"support": f"Reference ID: {request_id}"},
        )


# =============================================================================
# REQUEST ID MIDDLEWARE
# =============================================================================


class RequestIDMiddleware:
    """
    Middleware to add request ID to all requests.

    The id is also bound to the logging context for the request's duration.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode() or str(uuid.uuid4())

        scope.setdefault("state", {})
        scope["state"]["request_id"] = request_id
        token = request_id_var.set(request_id)

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                response_headers = list(message.get("headers", []))
                if not any(name.lower() == b"x-request-id" for name, _ in response_headers):
                    response_headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = response_headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            request_id_var.reset(token)

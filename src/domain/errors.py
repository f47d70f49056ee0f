"""
SOA error taxonomy.

Every failure the SOA services raise derives from SOAError. The web layer
maps these onto the unified API error response; the public signing
endpoints convert them into structured result values instead.
"""

from typing import Dict, List, Optional


class SOAError(Exception):
    """Base class for SOA domain errors."""

    code = "SOA_ERROR"
    default_message = "Scope of Appointment operation failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SOAError):
    """Bad or missing request fields, with field-level detail."""

    code = "VALIDATION_ERROR"
    default_message = "Request validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        field_errors: Optional[List[Dict[str, str]]] = None,
    ):
        super().__init__(message)
        self.field_errors = field_errors or []

    @classmethod
    def for_fields(cls, field_errors: List[Dict[str, str]]) -> "ValidationError":
        if len(field_errors) == 1:
            return cls(field_errors[0]["message"], field_errors)
        return cls(f"{len(field_errors)} fields are invalid", field_errors)


class Unauthorized(SOAError):
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class NotFound(SOAError):
    """Client, record, or token unknown."""

    code = "NOT_FOUND"
    default_message = "Resource not found"


class InvalidToken(NotFound):
    code = "INVALID_TOKEN"
    default_message = "This link is invalid. Please contact your agent for a new link."


class TokenExpired(SOAError):
    code = "TOKEN_EXPIRED"
    default_message = "This link has expired. Please contact your agent for a new link."


class AlreadyUsed(SOAError):
    code = "ALREADY_USED"
    default_message = "This form has already been signed."


class InvalidTransition(SOAError):
    """The record's status changed underneath the caller (race or replay)."""

    code = "INVALID_TRANSITION"
    default_message = "This Scope of Appointment can no longer be changed this way."

    def __init__(
        self,
        message: Optional[str] = None,
        current_status: Optional[str] = None,
        target_status: Optional[str] = None,
    ):
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status


class UnsupportedDeliveryMethod(SOAError):
    code = "DELIVERY_METHOD_NOT_SUPPORTED"
    default_message = "Only email delivery is currently supported"


class ConfigurationError(SOAError):
    """Missing template or font. Operator-fixable, never shown to end users."""

    code = "CONFIGURATION_ERROR"
    default_message = "Document rendering is not configured"


class DeliveryError(SOAError):
    """The notification transport rejected or failed the message."""

    code = "DELIVERY_FAILED"
    default_message = "The notification could not be delivered"

    SUPPRESSED_HINT = (
        "This email address is suppressed and cannot receive emails. "
        "Please contact your administrator."
    )

    def __init__(self, message: Optional[str] = None, suppressed: bool = False):
        super().__init__(message)
        self.suppressed = suppressed

    @property
    def user_message(self) -> str:
        return self.SUPPRESSED_HINT if self.suppressed else self.message


class StorageError(SOAError):
    code = "STORAGE_ERROR"
    default_message = "The signed document could not be stored"


class AuditWriteError(SOAError):
    """A compliance-critical audit entry could not be written."""

    code = "AUDIT_WRITE_FAILED"
    default_message = "The audit trail could not be updated"

"""
Domain layer for the Scope of Appointment service.

This module contains the core domain models, the error taxonomy and the
repository interfaces following Domain-Driven Design principles.
"""

from .soa import (
    SOARecord,
    SOAStatus,
    SOAProduct,
    DeliveryMethod,
    SignerType,
    AuditAction,
    AuditLogEntry,
    ClientContact,
    RequestContext,
    SigningProjection,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    USED_STATUSES,
    SIGNABLE_STATUSES,
    EXPIRABLE_STATUSES,
    PRODUCT_LABELS,
    INITIAL_CONTACT_METHODS,
    SYSTEM_ACTOR,
    CLIENT_ACTOR,
)
from .errors import (
    SOAError,
    ValidationError,
    Unauthorized,
    NotFound,
    InvalidToken,
    TokenExpired,
    AlreadyUsed,
    InvalidTransition,
    UnsupportedDeliveryMethod,
    ConfigurationError,
    DeliveryError,
    StorageError,
    AuditWriteError,
)
from .repositories import (
    ISOARepository,
    IAuditLogRepository,
    IClientContactRepository,
    IAgentDirectory,
    IUnitOfWork,
)

__all__ = [
    # Models
    "SOARecord",
    "SOAStatus",
    "SOAProduct",
    "DeliveryMethod",
    "SignerType",
    "AuditAction",
    "AuditLogEntry",
    "ClientContact",
    "RequestContext",
    "SigningProjection",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "USED_STATUSES",
    "SIGNABLE_STATUSES",
    "EXPIRABLE_STATUSES",
    "PRODUCT_LABELS",
    "INITIAL_CONTACT_METHODS",
    "SYSTEM_ACTOR",
    "CLIENT_ACTOR",
    # Errors
    "SOAError",
    "ValidationError",
    "Unauthorized",
    "NotFound",
    "InvalidToken",
    "TokenExpired",
    "AlreadyUsed",
    "InvalidTransition",
    "UnsupportedDeliveryMethod",
    "ConfigurationError",
    "DeliveryError",
    "StorageError",
    "AuditWriteError",
    # Repositories
    "ISOARepository",
    "IAuditLogRepository",
    "IClientContactRepository",
    "IAgentDirectory",
    "IUnitOfWork",
]

"""Repository implementations for the SOA service."""

from .soa_repository import SOARepository
from .audit_log_repository import AuditLogRepository
from .client_contact_repository import ClientContactRepository, SQLAgentDirectory

__all__ = [
    "SOARepository",
    "AuditLogRepository",
    "ClientContactRepository",
    "SQLAgentDirectory",
]

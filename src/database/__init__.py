"""
Database Layer for the Scope of Appointment service.

This module provides:
- SQLAlchemy ORM models for SOA records and their audit trail
- Async database engine with connection pooling
- Unit of Work pattern coordinating record and audit writes
"""

from .models import (
    Base,
    AgentModel,
    ClientModel,
    ClientEmailModel,
    SOARecordModel,
    SOAAuditLogModel,
)

from .async_engine import (
    create_engine,
    create_schema,
    get_async_engine,
    get_async_session_factory,
    get_session_factory,
    init_database,
    close_database,
)

from .unit_of_work import (
    UnitOfWork,
    UnitOfWorkFactory,
)

from .repositories import (
    SOARepository,
    AuditLogRepository,
    ClientContactRepository,
    SQLAgentDirectory,
)

__all__ = [
    # Models
    "Base",
    "AgentModel",
    "ClientModel",
    "ClientEmailModel",
    "SOARecordModel",
    "SOAAuditLogModel",
    # Async Engine
    "create_engine",
    "create_schema",
    "get_async_engine",
    "get_async_session_factory",
    "get_session_factory",
    "init_database",
    "close_database",
    # Unit of Work
    "UnitOfWork",
    "UnitOfWorkFactory",
    # Repositories
    "SOARepository",
    "AuditLogRepository",
    "ClientContactRepository",
    "SQLAgentDirectory",
]

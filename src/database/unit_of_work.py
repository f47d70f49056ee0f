"""Unit of Work Pattern Implementation.

Coordinates SOA record, audit trail and client lookups as a single
transaction. A compliance-critical audit entry is only durable if the
state change it describes is, and vice versa.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import (
    IAuditLogRepository,
    IClientContactRepository,
    ISOARepository,
    IUnitOfWork,
)
from database.async_engine import get_async_session_factory
from database.repositories.audit_log_repository import AuditLogRepository
from database.repositories.client_contact_repository import ClientContactRepository
from database.repositories.soa_repository import SOARepository

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


class UnitOfWork(IUnitOfWork):
    """
    Unit of Work implementation using SQLAlchemy async sessions.

    Usage:
        async with UnitOfWork() as uow:
            await uow.soas.insert(record)
            await uow.audit_log.append(entry)
            await uow.commit()

    The context manager automatically handles:
    - Creating a database session
    - Committing on clean exit
    - Rolling back on exception
    - Closing the session
    """

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        """
        Initialize the unit of work.

        Args:
            session: Optional existing session. If None, creates a new one.
            session_factory: Factory used when no session is given.
                Defaults to the global async session factory.
        """
        self._session: Optional[AsyncSession] = session
        self._session_factory = session_factory
        self._owns_session: bool = session is None
        self._committed: bool = False

        # Lazy-initialized repositories
        self._soas: Optional[SOARepository] = None
        self._audit_log: Optional[AuditLogRepository] = None
        self._clients: Optional[ClientContactRepository] = None

    def _require_session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork not initialized. Use 'async with' context.")
        return self._session

    @property
    def soas(self) -> ISOARepository:
        """Get the SOA record repository."""
        if self._soas is None:
            self._soas = SOARepository(self._require_session())
        return self._soas

    @property
    def audit_log(self) -> IAuditLogRepository:
        """Get the audit trail repository."""
        if self._audit_log is None:
            self._audit_log = AuditLogRepository(self._require_session())
        return self._audit_log

    @property
    def clients(self) -> IClientContactRepository:
        """Get the client contact repository."""
        if self._clients is None:
            self._clients = ClientContactRepository(self._require_session())
        return self._clients

    @property
    def session(self) -> AsyncSession:
        """Get the underlying session."""
        return self._require_session()

    async def commit(self) -> None:
        """Commit all changes."""
        session = self._require_session()

        if self._committed:
            return

        await session.commit()
        self._committed = True
        logger.debug("UnitOfWork committed")

    async def rollback(self) -> None:
        """Rollback all changes."""
        if self._session is None:
            return

        await self._session.rollback()
        logger.debug("UnitOfWork rolled back")

    async def __aenter__(self) -> "UnitOfWork":
        """Enter the async context."""
        if self._session is None:
            factory = self._session_factory or get_async_session_factory()
            self._session = factory()
            self._owns_session = True
        self._committed = False
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """
        Exit the async context.

        Commits if no exception, rolls back otherwise.
        Always closes the session if we own it.
        """
        try:
            if exc_type is not None:
                await self.rollback()
                logger.debug(f"UnitOfWork rolled back due to: {exc_type.__name__}")
            elif not self._committed:
                await self.commit()
        finally:
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None
                self._soas = None
                self._audit_log = None
                self._clients = None


class UnitOfWorkFactory:
    """
    Factory for creating unit of work instances.

    Services receive one of these instead of a session so that each
    operation gets its own transaction.

    Usage:
        async with uow_factory() as uow:
            ...
    """

    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory

    def create(self) -> UnitOfWork:
        """Create a new unit of work."""
        return UnitOfWork(session_factory=self._session_factory)

    def __call__(self) -> UnitOfWork:
        return self.create()

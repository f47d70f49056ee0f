"""
Repository Interfaces for the Scope of Appointment service.

Repository interfaces define the contract for data access, following the
Repository pattern from Domain-Driven Design. Implementations are provided
in the infrastructure layer (database.repositories).

This abstraction allows:
1. Swapping storage backends (SQLite -> PostgreSQL)
2. Testing with in-memory implementations
3. Clear separation between domain and infrastructure
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .soa import AuditLogEntry, ClientContact, SOARecord, SOAStatus


class ISOARepository(ABC):
    """
    Repository interface for SOA records.

    There is deliberately no delete and no free status setter: status only
    moves through compare_and_set_status, which the Lifecycle Manager owns.
    """

    @abstractmethod
    async def get(self, soa_id: str) -> Optional[SOARecord]:
        """Retrieve a record by ID."""
        pass

    @abstractmethod
    async def get_for_agent(self, agent_id: str, soa_id: str) -> Optional[SOARecord]:
        """Retrieve a record only if it belongs to the given agent."""
        pass

    @abstractmethod
    async def get_by_token(self, token: str) -> Optional[SOARecord]:
        """Retrieve a record by its secure signing token."""
        pass

    @abstractmethod
    async def list_for_client(self, agent_id: str, client_id: str) -> List[SOARecord]:
        """All records for one of the agent's clients, newest first."""
        pass

    @abstractmethod
    async def list_expirable(self, now: datetime, limit: int = 500) -> List[SOARecord]:
        """Unsigned, non-terminal records whose token horizon has passed."""
        pass

    @abstractmethod
    async def insert(self, record: SOARecord) -> None:
        """Persist a newly created record."""
        pass

    @abstractmethod
    async def get_status(self, soa_id: str) -> Optional[SOAStatus]:
        """Fresh read of the current status (no caching)."""
        pass

    @abstractmethod
    async def compare_and_set_status(
        self,
        soa_id: str,
        expected: Iterable[SOAStatus],
        target: SOAStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Atomically move status from one of `expected` to `target`.

        Args:
            soa_id: Record identifier
            expected: Statuses the record must currently be in
            target: New status
            fields: Additional columns written in the same statement

        Returns:
            True if exactly one row changed, False if the precondition failed
        """
        pass

    @abstractmethod
    async def update_fields(self, soa_id: str, fields: Dict[str, Any]) -> bool:
        """Update non-lifecycle fields (edits, artifact path)."""
        pass


class IAuditLogRepository(ABC):
    """Append-only audit trail storage. No update or delete path exists."""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> None:
        """Append one entry."""
        pass

    @abstractmethod
    async def list_for_soa(self, soa_id: str) -> List[AuditLogEntry]:
        """Entries for a record in ascending creation order."""
        pass


class IClientContactRepository(ABC):
    """Read-only access to CRM client contact data."""

    @abstractmethod
    async def get_contact(self, agent_id: str, client_id: str) -> Optional[ClientContact]:
        """Client with its email addresses (preferred first), if owned by the agent."""
        pass


class IAgentDirectory(ABC):
    """Lookup of agent notification addresses."""

    @abstractmethod
    async def get_agent_email(self, agent_id: str) -> Optional[str]:
        pass


class IUnitOfWork(ABC):
    """
    Unit of Work Interface.

    Coordinates multiple repository operations as a single transaction.
    """

    @property
    @abstractmethod
    def soas(self) -> ISOARepository:
        """SOA record repository."""
        pass

    @property
    @abstractmethod
    def audit_log(self) -> IAuditLogRepository:
        """Audit trail repository."""
        pass

    @property
    @abstractmethod
    def clients(self) -> IClientContactRepository:
        """Client contact repository."""
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Commit all changes."""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback all changes."""
        pass

    @abstractmethod
    async def __aenter__(self) -> 'IUnitOfWork':
        """Enter async context."""
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context (commit or rollback)."""
        pass

"""Read-only CRM lookups used by the SOA workflow.

ClientContactRepository runs inside a unit of work; SQLAgentDirectory is a
standalone collaborator that opens its own short-lived session because the
agent notice is sent outside any request transaction.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IAgentDirectory, IClientContactRepository
from domain.soa import ClientContact
from database.models import AgentModel, ClientEmailModel, ClientModel

logger = logging.getLogger(__name__)

_clients = ClientModel.__table__
_emails = ClientEmailModel.__table__
_agents = AgentModel.__table__


class ClientContactRepository(IClientContactRepository):
    """Client contact data scoped to the owning agent."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_contact(self, agent_id: str, client_id: str) -> Optional[ClientContact]:
        result = await self._session.execute(
            select(_clients).where(
                _clients.c.client_id == client_id,
                _clients.c.agent_id == agent_id,
            )
        )
        row = result.fetchone()
        if row is None:
            return None

        email_result = await self._session.execute(
            select(_emails.c.value)
            .where(_emails.c.client_id == client_id)
            .order_by(_emails.c.is_preferred.desc(), _emails.c.email_id)
        )
        emails = [value for (value,) in email_result.fetchall() if value]

        m = row._mapping
        return ClientContact(
            client_id=m["client_id"],
            agent_id=m["agent_id"],
            first_name=m["first_name"],
            emails=emails,
        )


class SQLAgentDirectory(IAgentDirectory):
    """Agent notification addresses read from the agents table."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def get_agent_email(self, agent_id: str) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(_agents.c.email).where(_agents.c.agent_id == agent_id)
            )
            row = result.fetchone()
        return row[0] if row is not None and row[0] else None

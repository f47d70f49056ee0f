"""Async SOA Audit Log Repository.

Append-only storage for the SOA audit trail. There is no update or delete
path; entries are read back in insertion order using the seq column.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.repositories import IAuditLogRepository
from domain.soa import AuditAction, AuditLogEntry
from database.models import SOAAuditLogModel

logger = logging.getLogger(__name__)

_table = SOAAuditLogModel.__table__


def _row_to_entry(row) -> AuditLogEntry:
    """Convert a soa_audit_log row to an AuditLogEntry."""
    m = row._mapping
    created_at = m["created_at"]
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)

    return AuditLogEntry(
        id=m["id"],
        soa_id=m["soa_id"],
        action=AuditAction(m["action"]),
        performed_by=m["performed_by"],
        ip_address=m["ip_address"],
        user_agent=m["user_agent"],
        metadata=m["metadata"] or {},
        created_at=created_at,
    )


class AuditLogRepository(IAuditLogRepository):
    """Async implementation of IAuditLogRepository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: AuditLogEntry) -> None:
        await self._session.execute(
            insert(_table).values(
                id=entry.id,
                soa_id=entry.soa_id,
                action=entry.action.value,
                performed_by=entry.performed_by,
                ip_address=entry.ip_address,
                user_agent=entry.user_agent,
                metadata=entry.metadata,
                created_at=entry.created_at,
            )
        )
        logger.debug(f"Appended audit entry {entry.action.value} for SOA {entry.soa_id}")

    async def list_for_soa(self, soa_id: str) -> List[AuditLogEntry]:
        result = await self._session.execute(
            select(_table)
            .where(_table.c.soa_id == soa_id)
            .order_by(_table.c.seq.asc())
        )
        return [_row_to_entry(row) for row in result.fetchall()]

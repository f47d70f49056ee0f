"""
SOA Audit Logger

Append-only audit trail for Scope of Appointment records.

Compliance-critical actions are written inside the caller's unit of work so
the entry commits or rolls back with the state change it describes. The
remaining actions (opened, resent) are informational and written in their
own transaction; a failure there is logged and never surfaces to the caller.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import uuid4

from domain.errors import AuditWriteError, NotFound
from domain.repositories import IUnitOfWork
from domain.soa import AuditAction, AuditLogEntry, RequestContext

logger = logging.getLogger(__name__)


CRITICAL_ACTIONS: FrozenSet[AuditAction] = frozenset({
    AuditAction.CREATED,
    AuditAction.SENT,
    AuditAction.CLIENT_SIGNED,
    AuditAction.AGENT_COUNTERSIGNED,
    AuditAction.EDITED,
    AuditAction.PDF_GENERATED,
    AuditAction.VOIDED,
    AuditAction.EXPIRED,
})


class SOAAuditLogger:
    """
    Writes and reads the SOA audit trail.

    Usage:
        async with uow_factory() as uow:
            ...state change...
            await audit.record(uow, soa_id, AuditAction.SENT, performed_by=agent_id)
    """

    def __init__(self, uow_factory):
        """
        Args:
            uow_factory: Callable returning a new unit of work, used for
                best-effort entries and trail reads.
        """
        self._uow_factory = uow_factory

    @staticmethod
    def build_entry(
        soa_id: str,
        action: AuditAction,
        performed_by: Optional[str] = None,
        context: Optional[RequestContext] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        return AuditLogEntry(
            id=str(uuid4()),
            soa_id=soa_id,
            action=action,
            performed_by=performed_by,
            ip_address=context.ip_address if context else None,
            user_agent=context.user_agent if context else None,
            metadata=metadata or {},
            created_at=datetime.now(timezone.utc),
        )

    async def record(
        self,
        uow: IUnitOfWork,
        soa_id: str,
        action: AuditAction,
        performed_by: Optional[str] = None,
        context: Optional[RequestContext] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """
        Append an entry inside the caller's transaction.

        Raises:
            AuditWriteError: If the entry could not be written. The caller's
                unit of work rolls back with it.
        """
        entry = self.build_entry(soa_id, action, performed_by, context, metadata)
        try:
            await uow.audit_log.append(entry)
        except Exception as e:
            logger.error(
                f"Failed to write audit entry {action.value} for SOA {soa_id}: {e}",
                exc_info=True,
            )
            raise AuditWriteError() from e
        return entry

    async def record_best_effort(
        self,
        soa_id: str,
        action: AuditAction,
        performed_by: Optional[str] = None,
        context: Optional[RequestContext] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Append an informational entry in its own transaction.

        Returns:
            True if the entry was written, False if the write failed
        """
        if action in CRITICAL_ACTIONS:
            raise ValueError(f"{action.value} must be recorded in the state-change transaction")

        entry = self.build_entry(soa_id, action, performed_by, context, metadata)
        try:
            async with self._uow_factory() as uow:
                await uow.audit_log.append(entry)
            return True
        except Exception as e:
            logger.warning(f"Best-effort audit entry {action.value} for SOA {soa_id} not written: {e}")
            return False

    async def trail(self, agent_id: str, soa_id: str) -> List[AuditLogEntry]:
        """
        Audit trail for a record owned by the agent, oldest first.

        Raises:
            NotFound: If the record does not exist or belongs to another agent
        """
        async with self._uow_factory() as uow:
            record = await uow.soas.get_for_agent(agent_id, soa_id)
            if record is None:
                raise NotFound("Scope of Appointment not found")
            return await uow.audit_log.list_for_soa(soa_id)

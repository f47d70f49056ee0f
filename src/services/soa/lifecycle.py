"""
SOA Lifecycle Manager

The only writer of SOARecord.status. Every transition:

1. re-reads the current status
2. checks it against ALLOWED_TRANSITIONS
3. writes with UPDATE ... WHERE status IN (allowed sources)

and raises InvalidTransition if either check fails, leaving the record
untouched. Compliance-critical audit entries are appended in the same unit
of work as the status change.

    draft -> sent -> opened -> client_signed -> completed
    draft / sent / opened -> expired
    draft / sent / opened / client_signed -> voided
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from audit.soa_audit_logger import SOAAuditLogger
from domain.errors import InvalidTransition, NotFound
from domain.repositories import IUnitOfWork
from domain.soa import (
    ALLOWED_TRANSITIONS,
    CLIENT_ACTOR,
    EXPIRABLE_STATUSES,
    SYSTEM_ACTOR,
    AuditAction,
    RequestContext,
    SOARecord,
    SOAStatus,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleManager:
    """Guarded status transitions for SOA records."""

    def __init__(
        self,
        audit: SOAAuditLogger,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._audit = audit
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    async def transition(
        self,
        uow: IUnitOfWork,
        soa_id: str,
        target: SOAStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> SOAStatus:
        """
        Move a record to `target` if its current status allows it.

        Returns:
            The status the record was in before the change

        Raises:
            NotFound: Unknown record
            InvalidTransition: Precondition failed on read or on write
        """
        allowed = ALLOWED_TRANSITIONS[target]

        current = await uow.soas.get_status(soa_id)
        if current is None:
            raise NotFound("Scope of Appointment not found")
        if current not in allowed:
            raise InvalidTransition(
                f"Cannot move from {current.value} to {target.value}",
                current_status=current.value,
                target_status=target.value,
            )

        changed = await uow.soas.compare_and_set_status(soa_id, allowed, target, fields)
        if not changed:
            latest = await uow.soas.get_status(soa_id)
            logger.info(
                f"Lost transition race on SOA {soa_id}: {current.value} -> {target.value}"
            )
            raise InvalidTransition(
                f"Status changed before {target.value} could be recorded",
                current_status=latest.value if latest else None,
                target_status=target.value,
            )

        logger.info(f"SOA {soa_id}: {current.value} -> {target.value}")
        return current

    async def create(
        self,
        uow: IUnitOfWork,
        record: SOARecord,
        performed_by: str,
        context: Optional[RequestContext] = None,
    ) -> SOARecord:
        """Insert a new draft record with its created entry."""
        if record.status != SOAStatus.DRAFT:
            raise InvalidTransition(
                "New Scope of Appointment records start as draft",
                current_status=record.status.value,
            )
        await uow.soas.insert(record)
        await self._audit.record(
            uow,
            record.id,
            AuditAction.CREATED,
            performed_by=performed_by,
            context=context,
            metadata={"delivery_method": record.delivery_method.value},
        )
        return record

    async def mark_sent(
        self,
        uow: IUnitOfWork,
        soa_id: str,
        performed_by: str,
        metadata: Optional[Dict[str, Any]] = None,
        context: Optional[RequestContext] = None,
    ) -> None:
        await self.transition(uow, soa_id, SOAStatus.SENT)
        await self._audit.record(
            uow, soa_id, AuditAction.SENT,
            performed_by=performed_by, context=context, metadata=metadata,
        )

    async def mark_opened(self, uow: IUnitOfWork, soa_id: str) -> None:
        """
        sent -> opened. The opened audit entry is informational and written
        separately by the caller.
        """
        await self.transition(uow, soa_id, SOAStatus.OPENED)

    async def mark_client_signed(
        self,
        uow: IUnitOfWork,
        soa_id: str,
        fields: Dict[str, Any],
        context: Optional[RequestContext] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.transition(uow, soa_id, SOAStatus.CLIENT_SIGNED, fields)
        await self._audit.record(
            uow, soa_id, AuditAction.CLIENT_SIGNED,
            performed_by=CLIENT_ACTOR, context=context, metadata=metadata,
        )

    async def mark_completed(
        self,
        uow: IUnitOfWork,
        soa_id: str,
        performed_by: str,
        fields: Dict[str, Any],
        context: Optional[RequestContext] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.transition(uow, soa_id, SOAStatus.COMPLETED, fields)
        await self._audit.record(
            uow, soa_id, AuditAction.AGENT_COUNTERSIGNED,
            performed_by=performed_by, context=context, metadata=metadata,
        )

    async def void(
        self,
        uow: IUnitOfWork,
        soa_id: str,
        performed_by: str,
        reason: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> None:
        previous = await self.transition(uow, soa_id, SOAStatus.VOIDED)
        metadata: Dict[str, Any] = {"previous_status": previous.value}
        if reason:
            metadata["reason"] = reason
        await self._audit.record(
            uow, soa_id, AuditAction.VOIDED,
            performed_by=performed_by, context=context, metadata=metadata,
        )

    def is_due_for_expiry(self, record: SOARecord, now: Optional[datetime] = None) -> bool:
        return (
            record.status in EXPIRABLE_STATUSES
            and not record.is_signed
            and record.is_token_expired(now or self.now())
        )

    async def expire_if_due(self, uow: IUnitOfWork, record: SOARecord) -> bool:
        """
        Expire an unsigned record whose token horizon has passed.

        Returns:
            True if this call expired the record
        """
        if not self.is_due_for_expiry(record):
            return False

        await self.transition(uow, record.id, SOAStatus.EXPIRED)
        await self._audit.record(
            uow, record.id, AuditAction.EXPIRED,
            performed_by=SYSTEM_ACTOR,
            metadata={
                "previous_status": record.status.value,
                "token_expires_at": record.token_expires_at.isoformat(),
            },
        )
        return True

    async def expire_overdue(self, uow_factory, limit: int = 500) -> int:
        """
        Sweep: expire every overdue record, one transaction per record.

        Records that change underneath the sweep are skipped.
        """
        async with uow_factory() as uow:
            candidates = await uow.soas.list_expirable(self.now(), limit=limit)

        expired = 0
        for record in candidates:
            try:
                async with uow_factory() as uow:
                    if await self.expire_if_due(uow, record):
                        expired += 1
            except InvalidTransition:
                logger.debug(f"SOA {record.id} changed during expiry sweep; skipped")

        if expired:
            logger.info(f"Expired {expired} overdue Scope of Appointment records")
        return expired

"""Tests for the SOA audit trail."""

from unittest.mock import patch

import pytest

from audit.soa_audit_logger import CRITICAL_ACTIONS, SOAAuditLogger
from conftest import AGENT_ID, OTHER_AGENT_ID, make_record
from domain.errors import AuditWriteError, NotFound
from domain.soa import AuditAction, RequestContext


@pytest.fixture
def audit(uow_factory):
    return SOAAuditLogger(uow_factory)


class TestBuildEntry:
    """Tests for entry construction."""

    def test_context_is_copied(self):
        entry = SOAAuditLogger.build_entry(
            "soa-1", AuditAction.SENT, performed_by=AGENT_ID,
            context=RequestContext(ip_address="10.0.0.1", user_agent="curl/8"),
        )
        assert entry.ip_address == "10.0.0.1"
        assert entry.user_agent == "curl/8"
        assert entry.metadata == {}

    def test_ids_are_unique(self):
        first = SOAAuditLogger.build_entry("soa-1", AuditAction.SENT)
        second = SOAAuditLogger.build_entry("soa-1", AuditAction.SENT)
        assert first.id != second.id

    def test_informational_actions(self):
        assert AuditAction.OPENED not in CRITICAL_ACTIONS
        assert AuditAction.RESENT not in CRITICAL_ACTIONS
        assert AuditAction.CLIENT_SIGNED in CRITICAL_ACTIONS


class TestRecord:
    """Tests for in-transaction entries."""

    @pytest.mark.asyncio
    async def test_entries_read_back_in_order(self, audit, uow_factory, insert_record):
        record = await insert_record(make_record())
        async with uow_factory() as uow:
            for action in (AuditAction.CREATED, AuditAction.SENT, AuditAction.CLIENT_SIGNED):
                await audit.record(uow, record.id, action, performed_by=AGENT_ID)

        trail = await audit.trail(AGENT_ID, record.id)
        assert [e.action for e in trail] == [
            AuditAction.CREATED, AuditAction.SENT, AuditAction.CLIENT_SIGNED,
        ]

    @pytest.mark.asyncio
    async def test_metadata_round_trips(self, audit, uow_factory, insert_record):
        record = await insert_record(make_record())
        metadata = {"fields_changed": {"agent_name": {"before": "A", "after": "B"}}}
        async with uow_factory() as uow:
            await audit.record(uow, record.id, AuditAction.EDITED, performed_by=AGENT_ID, metadata=metadata)

        trail = await audit.trail(AGENT_ID, record.id)
        assert trail[0].metadata == metadata
        assert trail[0].created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_write_failure_raises(self, audit, uow_factory, insert_record):
        record = await insert_record(make_record())
        with patch(
            "database.repositories.audit_log_repository.AuditLogRepository.append",
            side_effect=RuntimeError("disk full"),
        ):
            with pytest.raises(AuditWriteError):
                async with uow_factory() as uow:
                    await audit.record(uow, record.id, AuditAction.SENT)


class TestRecordBestEffort:
    """Tests for informational entries."""

    @pytest.mark.asyncio
    async def test_written_in_own_transaction(self, audit, insert_record):
        record = await insert_record(make_record())
        assert await audit.record_best_effort(record.id, AuditAction.OPENED, performed_by="client")
        assert [e.action for e in await audit.trail(AGENT_ID, record.id)] == [AuditAction.OPENED]

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, audit):
        """Unknown SOA violates the foreign key; the caller only gets False."""
        assert not await audit.record_best_effort("missing-soa", AuditAction.RESENT)

    @pytest.mark.asyncio
    async def test_critical_action_rejected(self, audit):
        with pytest.raises(ValueError):
            await audit.record_best_effort("soa-1", AuditAction.CLIENT_SIGNED)


class TestTrail:
    """Tests for trail reads."""

    @pytest.mark.asyncio
    async def test_other_agents_record_is_not_found(self, audit, insert_record):
        record = await insert_record(make_record())
        with pytest.raises(NotFound):
            await audit.trail(OTHER_AGENT_ID, record.id)

    @pytest.mark.asyncio
    async def test_empty_trail(self, audit, insert_record):
        record = await insert_record(make_record())
        assert await audit.trail(AGENT_ID, record.id) == []

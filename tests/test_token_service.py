"""Tests for signing link issue and verification."""

from datetime import timedelta

import pytest

from conftest import T0, make_record, signed_record
from domain.errors import AlreadyUsed, InvalidToken, TokenExpired
from domain.soa import SOAStatus
from services.soa import TokenService, token_hint


@pytest.fixture
def tokens(uow_factory, soa_settings, clock):
    return TokenService(uow_factory, soa_settings, clock=clock)


class TestIssue:
    """Tests for token minting."""

    def test_token_is_url_safe_and_long(self, tokens):
        """Token carries 256 bits, URL-safe base64."""
        token, _ = tokens.issue()
        assert len(token) >= 43
        assert all(c.isalnum() or c in "-_" for c in token)

    def test_tokens_are_unique(self, tokens):
        """Two issues never collide."""
        assert tokens.issue()[0] != tokens.issue()[0]

    def test_expiry_is_ttl_from_now(self, tokens):
        """Expiry is 72 hours after issue by default."""
        _, expires_at = tokens.issue()
        assert expires_at == T0 + timedelta(hours=72)

    def test_signing_url(self, tokens):
        """Trailing slash on the base URL is dropped."""
        assert tokens.signing_url("abc") == "https://soa.example.com/soa/sign/abc"

    def test_token_hint_never_logs_whole_token(self):
        assert token_hint("abcdefghijk") == "abcdef..."
        assert token_hint("") == "<empty>"


class TestVerify:
    """Tests for TokenService.verify."""

    @pytest.mark.asyncio
    async def test_sent_record_is_valid(self, tokens, insert_record):
        record = await insert_record(make_record())
        verified = await tokens.verify(record.secure_token)
        assert verified.id == record.id

    @pytest.mark.asyncio
    async def test_opened_record_is_valid(self, tokens, insert_record):
        record = await insert_record(make_record(status=SOAStatus.OPENED))
        assert (await tokens.verify(record.secure_token)).status == SOAStatus.OPENED

    @pytest.mark.asyncio
    async def test_unknown_token(self, tokens):
        with pytest.raises(InvalidToken):
            await tokens.verify("does-not-exist")

    @pytest.mark.asyncio
    async def test_empty_token(self, tokens):
        with pytest.raises(InvalidToken):
            await tokens.verify("")

    @pytest.mark.asyncio
    async def test_expired_by_time_even_while_sent(self, tokens, insert_record, uow_factory, clock):
        """Past the horizon fails, and verify does not change the status."""
        record = await insert_record(make_record())
        clock.advance(hours=72, seconds=1)

        with pytest.raises(TokenExpired):
            await tokens.verify(record.secure_token)

        async with uow_factory() as uow:
            assert await uow.soas.get_status(record.id) == SOAStatus.SENT

    @pytest.mark.asyncio
    async def test_exactly_at_expiry_is_still_valid(self, tokens, insert_record, clock):
        record = await insert_record(make_record())
        clock.advance(hours=72)
        assert (await tokens.verify(record.secure_token)).id == record.id

    @pytest.mark.asyncio
    async def test_expired_status(self, tokens, insert_record):
        record = await insert_record(make_record(status=SOAStatus.EXPIRED))
        with pytest.raises(TokenExpired):
            await tokens.verify(record.secure_token)

    @pytest.mark.asyncio
    async def test_signed_record_is_already_used(self, tokens, insert_record):
        record = await insert_record(signed_record())
        with pytest.raises(AlreadyUsed) as exc_info:
            await tokens.verify(record.secure_token)
        assert exc_info.value.message == "This form has already been signed."

    @pytest.mark.asyncio
    async def test_completed_record_is_already_used(self, tokens, insert_record):
        record = await insert_record(signed_record(status=SOAStatus.COMPLETED))
        with pytest.raises(AlreadyUsed):
            await tokens.verify(record.secure_token)

    @pytest.mark.asyncio
    async def test_voided_record_is_no_longer_valid(self, tokens, insert_record):
        record = await insert_record(make_record(status=SOAStatus.VOIDED))
        with pytest.raises(AlreadyUsed) as exc_info:
            await tokens.verify(record.secure_token)
        assert exc_info.value.message == "This link is no longer valid."

    @pytest.mark.asyncio
    async def test_draft_record_cannot_be_signed(self, tokens, insert_record):
        """A draft's link was never delivered."""
        record = await insert_record(make_record(status=SOAStatus.DRAFT))
        with pytest.raises(InvalidToken):
            await tokens.verify(record.secure_token)

    @pytest.mark.asyncio
    async def test_repeated_verify_is_stable(self, tokens, insert_record, uow_factory):
        """Reloading the signing page many times changes nothing."""
        record = await insert_record(make_record())
        for _ in range(5):
            await tokens.verify(record.secure_token)

        async with uow_factory() as uow:
            stored = await uow.soas.get(record.id)
            trail = await uow.audit_log.list_for_soa(record.id)
        assert stored.status == SOAStatus.SENT
        assert trail == []

"""
Signing link tokens.

A token is 32 random bytes, URL-safe base64 encoded (256 bits of entropy),
minted once when the SOA is created and stored as-is. Whether a token still
grants access is decided entirely by the record it points to: its expiry
horizon and its status.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from config.settings import SOASettings
from domain.errors import AlreadyUsed, InvalidToken, TokenExpired
from domain.soa import SIGNABLE_STATUSES, SOARecord, SOAStatus, USED_STATUSES

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def token_hint(token: str) -> str:
    """Loggable prefix of a token."""
    return f"{token[:6]}..." if token else "<empty>"


class TokenService:
    """
    Issues and verifies signing link tokens.

    verify() only reads. It never moves a record to expired or opened, so it
    is safe to call any number of times for any input.
    """

    def __init__(
        self,
        uow_factory,
        settings: SOASettings,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._uow_factory = uow_factory
        self._settings = settings
        self._clock = clock or _utcnow

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self._settings.token_ttl_hours)

    def issue(self) -> Tuple[str, datetime]:
        """Mint a new token and its fixed expiry."""
        return secrets.token_urlsafe(TOKEN_BYTES), self._clock() + self.ttl

    def signing_url(self, token: str) -> str:
        return self._settings.signing_url(token)

    def check(self, record: SOARecord) -> SOARecord:
        """
        Apply the token rules to an already loaded record.

        Raises:
            TokenExpired: Token horizon passed, or the record was expired
            AlreadyUsed: Signed, completed or voided
            InvalidToken: Record is not in a signable state (e.g. still draft)
        """
        if record.status == SOAStatus.EXPIRED or record.is_token_expired(self._clock()):
            raise TokenExpired()
        if record.status in USED_STATUSES:
            if record.status == SOAStatus.VOIDED:
                raise AlreadyUsed("This link is no longer valid.")
            raise AlreadyUsed()
        if record.status not in SIGNABLE_STATUSES:
            raise InvalidToken("This link is no longer valid.")
        return record

    async def verify(self, token: str) -> SOARecord:
        """
        Resolve a token to its record if it may still be used for signing.

        Raises:
            InvalidToken: Unknown token
            TokenExpired: Token horizon passed
            AlreadyUsed: Token already consumed or revoked
        """
        if not token:
            raise InvalidToken()

        async with self._uow_factory() as uow:
            record = await uow.soas.get_by_token(token)

        if record is None:
            logger.info(f"Unknown signing token {token_hint(token)}")
            raise InvalidToken()
        return self.check(record)

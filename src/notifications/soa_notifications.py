"""
SOA Notification Dispatcher

Delivers the two SOA notifications through the injected EmailProvider:

- send_sign_request: the client's signing link. Failure raises DeliveryError
  and the caller must not advance the record past draft.
- notify_agent_signed: the agent's countersignature prompt. Best-effort;
  usually run in the background via schedule_agent_notice.

Providers are blocking, so every send runs in a worker thread.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Set
from zoneinfo import ZoneInfo

from config.settings import SOASettings
from domain.errors import DeliveryError
from domain.repositories import IAgentDirectory
from domain.soa import PRODUCT_LABELS, SOARecord

from .email_provider import DeliveryResult, EmailProvider
from .soa_emails import agent_signed_email, sign_request_email

logger = logging.getLogger(__name__)


def _mask_email(address: str) -> str:
    local, _, domain = address.partition("@")
    return f"{local[:1]}***@{domain}" if domain else "***"


class SOANotificationDispatcher:
    """Sends SOA emails and tracks background agent notices."""

    def __init__(
        self,
        provider: EmailProvider,
        settings: SOASettings,
        agent_directory: Optional[IAgentDirectory] = None,
    ):
        self._provider = provider
        self._settings = settings
        self._agent_directory = agent_directory
        self._pending: Set[asyncio.Task] = set()

    @property
    def provider(self) -> EmailProvider:
        return self._provider

    async def send_sign_request(
        self,
        record: SOARecord,
        to: str,
        client_first_name: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Email the signing link to the client.

        Raises:
            DeliveryError: If the provider did not accept the message
        """
        message = sign_request_email(
            to=to,
            client_first_name=client_first_name,
            agent_name=record.agent_name,
            agent_phone=record.agent_phone,
            sign_url=self._settings.signing_url(record.secure_token),
            language=record.language,
            ttl_hours=self._settings.token_ttl_hours,
            from_email=self._settings.from_email,
            from_name=self._settings.from_name,
        )

        try:
            result = await asyncio.to_thread(self._provider.send, message)
        except Exception as e:
            logger.error(f"Sign request for SOA {record.id} raised in provider: {e}")
            raise DeliveryError(str(e) or None) from e

        if not result.success:
            logger.warning(
                f"Sign request for SOA {record.id} not delivered to {_mask_email(to)}: "
                f"{result.error_message}",
                extra={"extra_data": {"provider": result.provider, "error_code": result.error_code}},
            )
            raise DeliveryError(result.error_message, suppressed=result.suppressed)

        logger.info(f"Sign request for SOA {record.id} sent via {result.provider}")
        return result

    def _format_signed_at(self, signed_at: Optional[datetime]) -> str:
        if signed_at is None:
            return "-"
        local = signed_at.astimezone(ZoneInfo(self._settings.display_timezone))
        return local.strftime("%b %d, %Y, %I:%M %p").replace(" 0", " ")

    async def notify_agent_signed(
        self,
        record: SOARecord,
        agent_email: Optional[str] = None,
    ) -> bool:
        """
        Tell the agent the client has signed.

        Never raises; returns whether the notice was delivered.
        """
        try:
            if agent_email is None and self._agent_directory is not None:
                agent_email = await self._agent_directory.get_agent_email(record.agent_id)
            if not agent_email:
                logger.info(f"No email on file for agent {record.agent_id}; skipping signed notice")
                return False

            message = agent_signed_email(
                to=agent_email,
                beneficiary_name=record.beneficiary_name,
                product_labels=[PRODUCT_LABELS[p] for p in record.products_selected],
                signed_at=self._format_signed_at(record.client_signed_at),
                profile_url=self._settings.client_profile_url(record.client_id),
                from_email=self._settings.from_email,
                from_name=self._settings.from_name,
            )
            result = await asyncio.to_thread(self._provider.send, message)
        except Exception as e:
            logger.warning(f"Agent notice for SOA {record.id} failed: {e}")
            return False

        if not result.success:
            logger.warning(f"Agent notice for SOA {record.id} not delivered: {result.error_message}")
            return False
        return True

    def schedule_agent_notice(self, record: SOARecord) -> asyncio.Task:
        """Run notify_agent_signed in the background."""
        task = asyncio.create_task(self.notify_agent_signed(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for all outstanding background notices."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

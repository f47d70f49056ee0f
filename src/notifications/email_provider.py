"""
Email Provider Abstraction

Unified interface for email delivery providers.

Supports:
- SendGrid (recommended for production)
- SMTP (for testing/self-hosted)
- Null (development: logs instead of sending)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from config.settings import EmailSettings, get_email_settings

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    """Email delivery status."""
    SENT = "sent"
    BOUNCED = "bounced"
    SUPPRESSED = "suppressed"
    FAILED = "failed"


@dataclass
class EmailMessage:
    """Email message to be sent."""
    to: str
    subject: str
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    reply_to: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)

    def validate(self) -> bool:
        """Validate message has required fields."""
        if not self.to:
            raise ValueError("Recipient email (to) is required")
        if not self.subject:
            raise ValueError("Subject is required")
        if not self.body_html and not self.body_text:
            raise ValueError("Either body_html or body_text is required")
        return True


@dataclass
class DeliveryResult:
    """Result of email delivery attempt."""
    success: bool
    status: DeliveryStatus
    message_id: Optional[str] = None
    provider: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def suppressed(self) -> bool:
        """True when the provider refused the recipient as suppressed."""
        if self.status == DeliveryStatus.SUPPRESSED:
            return True
        return bool(self.error_message and "suppress" in self.error_message.lower())


class EmailProvider(ABC):
    """Abstract base class for email providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return provider name for logging."""
        pass

    @abstractmethod
    def send(self, message: EmailMessage) -> DeliveryResult:
        """
        Send an email message.

        Blocking; async callers run it with asyncio.to_thread.

        Args:
            message: Email message to send

        Returns:
            DeliveryResult with success/failure status
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if provider is properly configured."""
        pass


class NullEmailProvider(EmailProvider):
    """
    Null provider for testing/development.

    Logs emails but doesn't send them.
    """

    @property
    def provider_name(self) -> str:
        return "null"

    def send(self, message: EmailMessage) -> DeliveryResult:
        """Log email without sending."""
        message.validate()
        logger.info(
            f"[NULL PROVIDER] Would send email to {message.to}: {message.subject}"
        )
        return DeliveryResult(
            success=True,
            status=DeliveryStatus.SENT,
            message_id=f"null-{datetime.now(timezone.utc).timestamp()}",
            provider=self.provider_name,
        )

    def is_configured(self) -> bool:
        """Always configured (it's a null provider)."""
        return True


def build_email_provider(
    settings: Optional[EmailSettings] = None,
    from_email: Optional[str] = None,
    from_name: Optional[str] = None,
) -> EmailProvider:
    """
    Build the configured email provider.

    Provider selection order for provider="auto":
    1. EMAIL_SENDGRID_API_KEY → SendGrid
    2. EMAIL_SMTP_HOST → SMTP
    3. None → Null provider (logging only)
    """
    settings = settings or get_email_settings()
    choice = settings.provider

    if choice == "auto":
        if settings.sendgrid_api_key:
            choice = "sendgrid"
        elif settings.smtp_host:
            choice = "smtp"
        else:
            choice = "null"

    if choice == "sendgrid":
        from .sendgrid_provider import SendGridProvider
        logger.info("Email provider: SendGrid")
        return SendGridProvider(
            api_key=settings.sendgrid_api_key,
            from_email=from_email,
            from_name=from_name,
        )

    if choice == "smtp":
        from .smtp_provider import SMTPProvider
        logger.info("Email provider: SMTP")
        return SMTPProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            use_ssl=settings.smtp_use_ssl,
            from_email=from_email,
            from_name=from_name,
        )

    logger.warning(
        "No email provider configured. Emails will be logged but not sent. "
        "Set EMAIL_SENDGRID_API_KEY or EMAIL_SMTP_HOST to enable email delivery."
    )
    return NullEmailProvider()

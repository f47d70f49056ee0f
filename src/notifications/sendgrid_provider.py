"""
SendGrid Email Provider

Production SendGrid integration for SOA notifications.

Configuration:
    EMAIL_SENDGRID_API_KEY: Your SendGrid API key (required)
"""

import logging
from typing import Optional

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Category, Content, Email, Header, Mail, ReplyTo, To

from .email_provider import (
    EmailProvider,
    EmailMessage,
    DeliveryResult,
    DeliveryStatus,
)

logger = logging.getLogger(__name__)


class SendGridProvider(EmailProvider):
    """
    SendGrid email provider.

    Rejections come back as HTTPError; a body mentioning suppression (bounce,
    block or unsubscribe lists) is reported as DeliveryStatus.SUPPRESSED.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        client: Optional[SendGridAPIClient] = None,
    ):
        """
        Initialize SendGrid provider.

        Args:
            api_key: SendGrid API key
            from_email: Default sender email
            from_name: Default sender name
            client: Preconfigured API client (tests)
        """
        self.api_key = api_key
        self.from_email = from_email or "noreply@example.com"
        self.from_name = from_name or "Scope of Appointment"
        self._client = client

    @property
    def provider_name(self) -> str:
        return "sendgrid"

    def _get_client(self) -> SendGridAPIClient:
        """Lazy-load SendGrid client."""
        if self._client is None:
            self._client = SendGridAPIClient(api_key=self.api_key)
        return self._client

    def is_configured(self) -> bool:
        """Check if SendGrid is properly configured."""
        return bool(self.api_key) or self._client is not None

    def _build_mail(self, message: EmailMessage) -> Mail:
        mail = Mail(
            from_email=Email(
                message.from_email or self.from_email,
                message.from_name or self.from_name,
            ),
            to_emails=To(message.to),
            subject=message.subject,
        )
        if message.body_text:
            mail.add_content(Content("text/plain", message.body_text))
        if message.body_html:
            mail.add_content(Content("text/html", message.body_html))

        if message.reply_to:
            mail.reply_to = ReplyTo(message.reply_to)

        for key, value in message.headers.items():
            mail.add_header(Header(key, value))

        for tag in message.tags[:10]:  # SendGrid max 10 categories
            mail.add_category(Category(tag))

        return mail

    def send(self, message: EmailMessage) -> DeliveryResult:
        """
        Send email via SendGrid.

        Args:
            message: Email message to send

        Returns:
            DeliveryResult with SendGrid message ID
        """
        if not self.is_configured():
            return DeliveryResult(
                success=False,
                status=DeliveryStatus.FAILED,
                provider=self.provider_name,
                error_message="SendGrid API key not configured",
                error_code="NOT_CONFIGURED",
            )

        message.validate()

        try:
            response = self._get_client().send(self._build_mail(message))
        except HTTPError as e:
            body = e.body.decode("utf-8", "replace") if isinstance(e.body, bytes) else str(e.body or "")
            suppressed = "suppress" in body.lower()
            logger.error(f"SendGrid rejected message: status={e.status_code}, body={body}")
            return DeliveryResult(
                success=False,
                status=DeliveryStatus.SUPPRESSED if suppressed else DeliveryStatus.FAILED,
                provider=self.provider_name,
                error_message=body or f"SendGrid returned status {e.status_code}",
                error_code=str(e.status_code),
            )
        except Exception as e:
            logger.exception(f"SendGrid send error: {e}")
            return DeliveryResult(
                success=False,
                status=DeliveryStatus.FAILED,
                provider=self.provider_name,
                error_message=str(e),
                error_code="SEND_ERROR",
            )

        if response.status_code in (200, 201, 202):
            message_id = response.headers.get("X-Message-Id", "")
            logger.info(f"SendGrid: Email sent, message_id={message_id}")
            return DeliveryResult(
                success=True,
                status=DeliveryStatus.SENT,
                message_id=message_id,
                provider=self.provider_name,
            )

        error_msg = f"SendGrid returned status {response.status_code}"
        logger.error(f"SendGrid error: {error_msg}")
        return DeliveryResult(
            success=False,
            status=DeliveryStatus.FAILED,
            provider=self.provider_name,
            error_message=error_msg,
            error_code=str(response.status_code),
        )

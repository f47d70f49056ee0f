"""
SMTP Email Provider

Standard SMTP delivery for self-hosted mail servers and local testing
(e.g. MailHog on port 1025 with TLS off).

Configuration:
    EMAIL_SMTP_HOST, EMAIL_SMTP_PORT, EMAIL_SMTP_USERNAME,
    EMAIL_SMTP_PASSWORD, EMAIL_SMTP_USE_TLS, EMAIL_SMTP_USE_SSL
"""

import logging
import smtplib
import ssl
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

from .email_provider import (
    EmailProvider,
    EmailMessage,
    DeliveryResult,
    DeliveryStatus,
)

logger = logging.getLogger(__name__)


class SMTPProvider(EmailProvider):
    """SMTP email provider with STARTTLS or implicit TLS."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        use_ssl: bool = False,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.from_email = from_email or "noreply@example.com"
        self.from_name = from_name or "Scope of Appointment"
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return "smtp"

    def is_configured(self) -> bool:
        """Check if SMTP is properly configured."""
        return bool(self.host)

    def _build_mime(self, message: EmailMessage, from_email: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((message.from_name or self.from_name, from_email))
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg["Message-ID"] = f"<{uuid.uuid4()}@{self.host}>"

        if message.reply_to:
            msg["Reply-To"] = message.reply_to

        # Sanitize against CRLF injection
        for key, value in message.headers.items():
            if any(c in str(key) + str(value) for c in ('\r', '\n')):
                logger.warning(f"Rejected email header with CRLF: {key!r}")
                continue
            msg[key] = value

        if message.body_text:
            msg.attach(MIMEText(message.body_text, "plain", "utf-8"))
        if message.body_html:
            msg.attach(MIMEText(message.body_html, "html", "utf-8"))
        return msg

    def _connect(self) -> smtplib.SMTP:
        if self.use_ssl:
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
        if self.username and self.password:
            server.login(self.username, self.password)
        return server

    def send(self, message: EmailMessage) -> DeliveryResult:
        """
        Send email via SMTP.

        Args:
            message: Email message to send

        Returns:
            DeliveryResult with status
        """
        if not self.is_configured():
            return DeliveryResult(
                success=False,
                status=DeliveryStatus.FAILED,
                provider=self.provider_name,
                error_message="SMTP not configured (missing EMAIL_SMTP_HOST)",
                error_code="NOT_CONFIGURED",
            )

        message.validate()
        from_email = message.from_email or self.from_email
        mime = self._build_mime(message, from_email)

        try:
            with self._connect() as server:
                server.sendmail(from_email, [message.to], mime.as_string())
        except smtplib.SMTPRecipientsRefused as e:
            detail = "; ".join(
                f"{code} {reason.decode('utf-8', 'replace') if isinstance(reason, bytes) else reason}"
                for code, reason in e.recipients.values()
            )
            logger.error(f"SMTP recipients refused: {detail}")
            return DeliveryResult(
                success=False,
                status=DeliveryStatus.SUPPRESSED if "suppress" in detail.lower() else DeliveryStatus.BOUNCED,
                provider=self.provider_name,
                error_message=f"Recipient refused: {detail}",
                error_code="RECIPIENTS_REFUSED",
            )
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP auth error: {e}")
            return DeliveryResult(
                success=False,
                status=DeliveryStatus.FAILED,
                provider=self.provider_name,
                error_message=f"SMTP authentication failed: {e}",
                error_code="AUTH_ERROR",
            )
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error: {e}")
            return DeliveryResult(
                success=False,
                status=DeliveryStatus.FAILED,
                provider=self.provider_name,
                error_message=str(e),
                error_code="SMTP_ERROR",
            )

        logger.info("SMTP: Email sent")
        return DeliveryResult(
            success=True,
            status=DeliveryStatus.SENT,
            message_id=mime["Message-ID"],
            provider=self.provider_name,
        )

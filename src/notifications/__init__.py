"""
Notification Delivery System

Email delivery for the Scope of Appointment workflow.

Provides:
- Multi-provider email delivery (SendGrid, SMTP, Null)
- SOA email content (client signing request, agent signed notice)
- The SOA notification dispatcher with background agent notices

Usage:
    from notifications import SOANotificationDispatcher, build_email_provider

    dispatcher = SOANotificationDispatcher(
        provider=build_email_provider(),
        settings=get_soa_settings(),
        agent_directory=directory,
    )
    await dispatcher.send_sign_request(record, to="client@example.com")
"""

from .email_provider import (
    EmailProvider,
    EmailMessage,
    DeliveryResult,
    DeliveryStatus,
    NullEmailProvider,
    build_email_provider,
)

from .sendgrid_provider import SendGridProvider
from .smtp_provider import SMTPProvider

from .soa_emails import agent_signed_email, sign_request_email
from .soa_notifications import SOANotificationDispatcher

__all__ = [
    "EmailProvider",
    "EmailMessage",
    "DeliveryResult",
    "DeliveryStatus",
    "NullEmailProvider",
    "build_email_provider",
    "SendGridProvider",
    "SMTPProvider",
    "agent_signed_email",
    "sign_request_email",
    "SOANotificationDispatcher",
]

"""
Tests for email provider functionality.

Tests:
- Provider selection
- SendGrid send and rejection handling
- SMTP send and refused recipients
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest
from python_http_client.exceptions import HTTPError

from config.settings import EmailSettings
from notifications.email_provider import (
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
    NullEmailProvider,
    build_email_provider,
)
from notifications.sendgrid_provider import SendGridProvider
from notifications.smtp_provider import SMTPProvider


@pytest.fixture
def message():
    return EmailMessage(
        to="mary@example.com",
        subject="Scope of Appointment",
        body_text="Sign here: https://soa.example.com/soa/sign/abc",
        body_html="<p>Sign here</p>",
        tags=["soa", "sign_request"],
    )


class TestProviderSelection:
    """Tests for build_email_provider."""

    def test_null_when_nothing_configured(self):
        provider = build_email_provider(EmailSettings(provider="auto"))
        assert isinstance(provider, NullEmailProvider)

    def test_sendgrid_preferred(self):
        provider = build_email_provider(
            EmailSettings(provider="auto", sendgrid_api_key="SG.test", smtp_host="localhost"),
            from_email="soa@example.com",
        )
        assert isinstance(provider, SendGridProvider)
        assert provider.from_email == "soa@example.com"

    def test_smtp_fallback(self):
        provider = build_email_provider(EmailSettings(provider="auto", smtp_host="localhost"))
        assert isinstance(provider, SMTPProvider)
        assert provider.is_configured()

    def test_explicit_null(self):
        provider = build_email_provider(EmailSettings(provider="null", sendgrid_api_key="SG.test"))
        assert provider.provider_name == "null"

    def test_invalid_provider_rejected(self):
        with pytest.raises(ValueError):
            EmailSettings(provider="pigeon")


class TestMessageValidation:
    """Tests for EmailMessage.validate."""

    def test_valid(self, message):
        assert message.validate()

    def test_recipient_required(self, message):
        message.to = ""
        with pytest.raises(ValueError):
            message.validate()

    def test_body_required(self, message):
        message.body_text = None
        message.body_html = None
        with pytest.raises(ValueError):
            message.validate()


class TestDeliveryResult:
    """Tests for the suppressed flag."""

    def test_suppressed_status(self):
        assert DeliveryResult(success=False, status=DeliveryStatus.SUPPRESSED).suppressed

    def test_suppression_in_message(self):
        result = DeliveryResult(
            success=False, status=DeliveryStatus.FAILED,
            error_message="Address is on the Suppression list",
        )
        assert result.suppressed

    def test_plain_failure(self):
        assert not DeliveryResult(success=False, status=DeliveryStatus.FAILED).suppressed


class TestSendGridProvider:
    """Tests for SendGridProvider."""

    def test_send_success(self, message):
        client = MagicMock()
        client.send.return_value = MagicMock(status_code=202, headers={"X-Message-Id": "sg-123"})
        provider = SendGridProvider(api_key="SG.test", client=client)

        result = provider.send(message)

        assert result.success
        assert result.message_id == "sg-123"
        client.send.assert_called_once()

    def test_not_configured(self, message):
        result = SendGridProvider().send(message)
        assert not result.success
        assert result.error_code == "NOT_CONFIGURED"

    def test_suppressed_rejection(self, message):
        client = MagicMock()
        client.send.side_effect = HTTPError(
            400, "Bad Request", b'{"errors":[{"message":"Email is on a suppression list"}]}', {},
        )
        result = SendGridProvider(api_key="SG.test", client=client).send(message)

        assert not result.success
        assert result.status == DeliveryStatus.SUPPRESSED
        assert result.error_code == "400"

    def test_other_rejection(self, message):
        client = MagicMock()
        client.send.side_effect = HTTPError(401, "Unauthorized", b'{"errors":[]}', {})
        result = SendGridProvider(api_key="SG.test", client=client).send(message)

        assert result.status == DeliveryStatus.FAILED
        assert not result.suppressed

    def test_unexpected_status(self, message):
        client = MagicMock()
        client.send.return_value = MagicMock(status_code=500, headers={})
        result = SendGridProvider(api_key="SG.test", client=client).send(message)
        assert not result.success
        assert result.error_code == "500"


class TestSMTPProvider:
    """Tests for SMTPProvider."""

    def test_send_success(self, message):
        provider = SMTPProvider(host="localhost", port=1025, use_tls=False)
        with patch("notifications.smtp_provider.smtplib.SMTP") as smtp:
            server = smtp.return_value.__enter__.return_value
            result = provider.send(message)

        assert result.success
        server.sendmail.assert_called_once()
        assert server.sendmail.call_args[0][1] == ["mary@example.com"]

    def test_not_configured(self, message):
        assert SMTPProvider().send(message).error_code == "NOT_CONFIGURED"

    def test_refused_suppressed_recipient(self, message):
        provider = SMTPProvider(host="localhost", port=1025, use_tls=False)
        refused = smtplib.SMTPRecipientsRefused({"mary@example.com": (550, b"5.7.1 Recipient suppressed")})
        with patch("notifications.smtp_provider.smtplib.SMTP") as smtp:
            smtp.return_value.__enter__.return_value.sendmail.side_effect = refused
            result = provider.send(message)

        assert result.status == DeliveryStatus.SUPPRESSED
        assert result.suppressed

    def test_connection_failure(self, message):
        provider = SMTPProvider(host="localhost", port=1025, use_tls=False)
        with patch("notifications.smtp_provider.smtplib.SMTP", side_effect=OSError("refused")):
            result = provider.send(message)
        assert result.error_code == "SMTP_ERROR"

    def test_crlf_headers_dropped(self, message):
        message.headers = {"X-Ok": "yes", "X-Bad": "a\r\nBcc: evil@example.com"}
        mime = SMTPProvider(host="localhost")._build_mime(message, "soa@example.com")
        assert mime["X-Ok"] == "yes"
        assert mime["X-Bad"] is None

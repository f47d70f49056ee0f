"""Pytest configuration and fixtures for the SOA test suite."""

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pytest
import pytest_asyncio

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("DB_DRIVER", "sqlite+aiosqlite")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

import reportlab  # noqa: E402
from reportlab.pdfgen import canvas  # noqa: E402
from sqlalchemy import insert  # noqa: E402

from config.database import DatabaseSettings  # noqa: E402
from config.settings import AuthSettings, SOASettings  # noqa: E402
from database.async_engine import create_engine, create_schema, get_session_factory  # noqa: E402
from database.models import AgentModel, ClientEmailModel, ClientModel  # noqa: E402
from database.unit_of_work import UnitOfWorkFactory  # noqa: E402
from domain.soa import SignerType, SOAProduct, SOARecord, SOAStatus  # noqa: E402
from export.soa_pdf_renderer import RendererConfig  # noqa: E402
from notifications.email_provider import (  # noqa: E402
    DeliveryResult,
    DeliveryStatus,
    EmailMessage,
    EmailProvider,
)
from storage.document_store import FilesystemDocumentStore  # noqa: E402
from web.dependencies import build_container  # noqa: E402


AGENT_ID = "agent-1"
OTHER_AGENT_ID = "agent-2"
CLIENT_ID = "client-1"
CLIENT_NO_EMAIL_ID = "client-2"
OTHER_AGENTS_CLIENT_ID = "client-9"

AGENT_EMAIL = "agent@example.com"
PREFERRED_EMAIL = "mary@example.com"
SECONDARY_EMAIL = "mary.alt@example.com"

JWT_SECRET = "test-jwt-secret-that-is-at-least-32-characters"
T0 = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _reset_db_modules():
    """Reset database module globals to ensure clean state."""
    import database.async_engine as module
    module._async_engine = None
    module._async_session_factory = None


@pytest.fixture(autouse=True)
def reset_database_globals():
    _reset_db_modules()
    yield
    _reset_db_modules()


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FakeClock:
    """Settable time source shared by token issue and lifecycle stamps."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingEmailProvider(EmailProvider):
    """Keeps every message; returns `result` when set, success otherwise."""

    def __init__(self):
        self.sent: List[EmailMessage] = []
        self.result: Optional[DeliveryResult] = None

    @property
    def provider_name(self) -> str:
        return "recording"

    def send(self, message: EmailMessage) -> DeliveryResult:
        message.validate()
        self.sent.append(message)
        if self.result is not None:
            return self.result
        return DeliveryResult(
            success=True,
            status=DeliveryStatus.SENT,
            message_id=f"msg-{len(self.sent)}",
            provider=self.provider_name,
        )

    def is_configured(self) -> bool:
        return True

    def fail(self, message: str = "Mailbox unavailable", status=DeliveryStatus.FAILED) -> None:
        self.result = DeliveryResult(
            success=False, status=status, provider=self.provider_name, error_message=message,
        )

    def messages_with_tag(self, tag: str) -> List[EmailMessage]:
        return [m for m in self.sent if tag in m.tags]


def make_record(**overrides) -> SOARecord:
    """A sent SOA owned by AGENT_ID, expiring 72h after T0."""
    values = dict(
        agent_id=AGENT_ID,
        client_id=CLIENT_ID,
        status=SOAStatus.SENT,
        secure_token=f"tok-{os.urandom(8).hex()}",
        token_expires_at=T0 + timedelta(hours=72),
        products_preselected=[SOAProduct.PART_D, SOAProduct.PART_C],
        agent_name="Alex Agent",
        agent_phone="555-0100",
        agent_npn="1234567",
        beneficiary_name="Mary Smith",
        beneficiary_phone="555-0199",
        beneficiary_address="1 Main St, Springfield",
        created_at=T0,
        updated_at=T0,
    )
    values.update(overrides)
    return SOARecord(**values)


def signed_record(**overrides) -> SOARecord:
    values = dict(
        status=SOAStatus.CLIENT_SIGNED,
        products_selected=[SOAProduct.PART_D],
        signer_type=SignerType.BENEFICIARY,
        client_typed_signature="Mary Smith",
        client_signed_at=T0 + timedelta(hours=1),
    )
    values.update(overrides)
    return make_record(**values)


def completed_record(**overrides) -> SOARecord:
    values = dict(
        status=SOAStatus.COMPLETED,
        agent_typed_signature="Alex Agent",
        agent_signed_at=T0 + timedelta(hours=2),
        initial_contact_method="Phone",
    )
    values.update(overrides)
    return signed_record(**values)


# =============================================================================
# DATABASE
# =============================================================================

async def seed_contacts(engine) -> None:
    async with engine.begin() as conn:
        await conn.execute(insert(AgentModel.__table__), [
            {"agent_id": AGENT_ID, "email": AGENT_EMAIL, "full_name": "Alex Agent"},
            {"agent_id": OTHER_AGENT_ID, "email": "other@example.com", "full_name": "Olive Other"},
        ])
        await conn.execute(insert(ClientModel.__table__), [
            {"client_id": CLIENT_ID, "agent_id": AGENT_ID, "first_name": "Mary", "last_name": "Smith"},
            {"client_id": CLIENT_NO_EMAIL_ID, "agent_id": AGENT_ID, "first_name": "Nora", "last_name": "None"},
            {"client_id": OTHER_AGENTS_CLIENT_ID, "agent_id": OTHER_AGENT_ID, "first_name": "Oscar", "last_name": "O"},
        ])
        await conn.execute(insert(ClientEmailModel.__table__), [
            {"email_id": "e-1", "client_id": CLIENT_ID, "value": SECONDARY_EMAIL, "is_preferred": False},
            {"email_id": "e-2", "client_id": CLIENT_ID, "value": PREFERRED_EMAIL, "is_preferred": True},
            {"email_id": "e-3", "client_id": OTHER_AGENTS_CLIENT_ID, "value": "oscar@example.com", "is_preferred": True},
        ])


@pytest.fixture
def db_settings(tmp_path) -> DatabaseSettings:
    return DatabaseSettings(driver="sqlite+aiosqlite", sqlite_path=tmp_path / "soa.db")


@pytest_asyncio.fixture
async def engine(db_settings):
    engine = create_engine(db_settings)
    await create_schema(engine)
    await seed_contacts(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory) -> UnitOfWorkFactory:
    return UnitOfWorkFactory(session_factory)


@pytest.fixture
def insert_record(uow_factory):
    """Insert a record directly, bypassing the lifecycle."""
    async def _insert(record: SOARecord) -> SOARecord:
        async with uow_factory() as uow:
            await uow.soas.insert(record)
        return record
    return _insert


# =============================================================================
# RENDERING
# =============================================================================

@pytest.fixture
def template_path(tmp_path) -> Path:
    """Blank single-page US Letter template."""
    path = tmp_path / "soa-template.pdf"
    c = canvas.Canvas(str(path), pagesize=(612, 792))
    c.setFont("Helvetica", 8)
    c.drawString(28, 760, "Scope of Sales Appointment Confirmation Form")
    c.showPage()
    c.save()
    return path


@pytest.fixture
def signature_font_path() -> Path:
    return Path(reportlab.__file__).parent / "fonts" / "Vera.ttf"


@pytest.fixture
def renderer_config(template_path, signature_font_path) -> RendererConfig:
    return RendererConfig.load(template_path, signature_font_path, "America/New_York")


# =============================================================================
# SERVICES
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def email_provider() -> RecordingEmailProvider:
    return RecordingEmailProvider()


@pytest.fixture
def soa_settings(tmp_path, template_path, signature_font_path) -> SOASettings:
    return SOASettings(
        app_base_url="https://soa.example.com/",
        template_path=template_path,
        signature_font_path=signature_font_path,
        storage_root=tmp_path / "documents",
    )


@pytest.fixture
def auth_settings() -> AuthSettings:
    return AuthSettings(jwt_secret=JWT_SECRET)


@pytest.fixture
def document_store(soa_settings, auth_settings) -> FilesystemDocumentStore:
    return FilesystemDocumentStore(
        soa_settings.storage_root,
        base_url=soa_settings.app_base_url,
        signing_secret=auth_settings.jwt_secret,
    )


@pytest.fixture
def container(
    session_factory, soa_settings, auth_settings, email_provider,
    document_store, renderer_config, clock,
):
    return build_container(
        session_factory=session_factory,
        settings=soa_settings,
        auth_settings=auth_settings,
        email_provider=email_provider,
        store=document_store,
        renderer_config=renderer_config,
        clock=clock,
    )


@pytest.fixture
def run():
    """Run a coroutine from a synchronous test."""
    return lambda coro: asyncio.run(coro)

"""
FastAPI Dependency Injection for the SOA services.

The object graph is built once per application by build_container() and
stored on app.state.soa; request dependencies only look it up.

Usage in endpoints:
    @router.post("/api/soa/send")
    async def send(
        agent_id: str = Depends(get_current_agent),
        service: SOAService = Depends(get_soa_service),
    ):
        ...

Tests build their own container (temporary database, mock email provider)
and pass it to create_app().
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, Header, Request

from audit.soa_audit_logger import SOAAuditLogger
from config.settings import (
    AuthSettings,
    SOASettings,
    get_auth_settings,
    get_email_settings,
    get_soa_settings,
)
from database.repositories.client_contact_repository import SQLAgentDirectory
from database.unit_of_work import SessionFactory, UnitOfWorkFactory
from domain.errors import ConfigurationError, Unauthorized
from domain.repositories import IAgentDirectory
from domain.soa import RequestContext
from export.soa_pdf_renderer import RendererConfig, SOADocumentRenderer
from notifications.email_provider import EmailProvider, build_email_provider
from notifications.soa_notifications import SOANotificationDispatcher
from security.agent_auth import bearer_token, decode_agent_token
from security.request_context import request_context
from services.logging_config import agent_id_var
from services.soa import LifecycleManager, SigningSessionController, SOAService, TokenService
from storage.document_store import DocumentStore, build_document_store

logger = logging.getLogger(__name__)


@dataclass
class SOAContainer:
    """Everything the SOA endpoints need, wired together."""
    settings: SOASettings
    auth_settings: AuthSettings
    uow_factory: UnitOfWorkFactory
    audit: SOAAuditLogger
    tokens: TokenService
    lifecycle: LifecycleManager
    notifier: SOANotificationDispatcher
    store: DocumentStore
    renderer: SOADocumentRenderer
    service: SOAService
    signing: SigningSessionController


def load_renderer_config(settings: SOASettings, strict: bool = False) -> Optional[RendererConfig]:
    """
    Validate the template and signature font.

    Raises:
        ConfigurationError: Only when strict; otherwise the problem is logged
            and rendering stays disabled
    """
    try:
        return RendererConfig.from_settings(settings)
    except ConfigurationError as e:
        if strict:
            raise
        logger.error(f"Document rendering disabled: {e.message}")
        return None


def build_container(
    session_factory: Optional[SessionFactory] = None,
    settings: Optional[SOASettings] = None,
    auth_settings: Optional[AuthSettings] = None,
    email_provider: Optional[EmailProvider] = None,
    store: Optional[DocumentStore] = None,
    renderer_config: Optional[RendererConfig] = None,
    agent_directory: Optional[IAgentDirectory] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> SOAContainer:
    """
    Build the SOA object graph.

    Args:
        session_factory: Async session factory; defaults to the global one
        settings: SOA settings; defaults to the environment
        auth_settings: Agent auth settings; defaults to the environment
        email_provider: Transport; defaults to build_email_provider()
        store: Document store; defaults to build_document_store()
        renderer_config: Validated template/font; None disables rendering
        agent_directory: Agent email lookup; defaults to the agents table
        clock: Time source shared by token issue and lifecycle stamps
    """
    settings = settings or get_soa_settings()
    auth_settings = auth_settings or get_auth_settings()

    uow_factory = UnitOfWorkFactory(session_factory)
    audit = SOAAuditLogger(uow_factory)
    tokens = TokenService(uow_factory, settings, clock=clock)
    lifecycle = LifecycleManager(audit, clock=clock)

    if email_provider is None:
        email_provider = build_email_provider(
            get_email_settings(),
            from_email=settings.from_email,
            from_name=settings.from_name,
        )
    if agent_directory is None and session_factory is not None:
        agent_directory = SQLAgentDirectory(session_factory)
    notifier = SOANotificationDispatcher(email_provider, settings, agent_directory)

    store = store or build_document_store(settings, auth_settings)
    renderer = SOADocumentRenderer(renderer_config, store, uow_factory, audit)

    return SOAContainer(
        settings=settings,
        auth_settings=auth_settings,
        uow_factory=uow_factory,
        audit=audit,
        tokens=tokens,
        lifecycle=lifecycle,
        notifier=notifier,
        store=store,
        renderer=renderer,
        service=SOAService(uow_factory, settings, tokens, lifecycle, audit, notifier, renderer),
        signing=SigningSessionController(uow_factory, tokens, lifecycle, audit, notifier),
    )


# =============================================================================
# REQUEST DEPENDENCIES
# =============================================================================

def get_container(request: Request) -> SOAContainer:
    container = getattr(request.app.state, "soa", None)
    if container is None:
        raise RuntimeError("SOA services are not initialized")
    return container


def get_soa_service(container: SOAContainer = Depends(get_container)) -> SOAService:
    return container.service


def get_signing_session(
    container: SOAContainer = Depends(get_container),
) -> SigningSessionController:
    return container.signing


def get_request_context(request: Request) -> RequestContext:
    return request_context(request)


async def get_current_agent(
    authorization: Optional[str] = Header(default=None),
    container: SOAContainer = Depends(get_container),
) -> str:
    """
    Authenticated agent id from the bearer token.

    Raises:
        Unauthorized: Missing or invalid credentials
    """
    token = bearer_token(authorization)
    if token is None:
        raise Unauthorized()
    agent_id = decode_agent_token(token, container.auth_settings)
    agent_id_var.set(agent_id)
    return agent_id

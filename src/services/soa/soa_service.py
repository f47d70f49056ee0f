"""
SOA Service - Agent-side application service for Scope of Appointment records.

Orchestrates the Lifecycle Manager, Token Service, Notification Dispatcher
and Document Renderer for the authenticated agent endpoints:

- create: insert a draft, email the signing link, then draft -> sent
- get / list_for_client: reads, with lazy expiry of overdue links
- resend / void / countersign / edit / render / signed_url
- audit_trail

Every method takes the authenticated agent id and only ever touches that
agent's records; anything else is reported as NotFound.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from audit.soa_audit_logger import SOAAuditLogger
from config.settings import SOASettings
from domain.errors import (
    AuditWriteError,
    InvalidTransition,
    NotFound,
    SOAError,
    UnsupportedDeliveryMethod,
    ValidationError,
)
from domain.soa import (
    AuditAction,
    DeliveryMethod,
    RequestContext,
    SOARecord,
    SOAStatus,
    AuditLogEntry,
    normalize_contact_method,
    normalize_language,
    parse_products,
)
from export.soa_pdf_renderer import SOADocumentRenderer
from notifications.soa_notifications import SOANotificationDispatcher
from services.logging_config import get_logger

from .lifecycle import LifecycleManager
from .token_service import TokenService

logger = get_logger(__name__)

RESENDABLE_STATUSES = frozenset({SOAStatus.DRAFT, SOAStatus.SENT, SOAStatus.OPENED})


class CreateSOARequest(BaseModel):
    """Body of POST /api/soa/send."""
    client_id: str = ""
    email: Optional[str] = None
    beneficiary_name: str = ""
    agent_name: str = ""
    agent_phone: Optional[str] = None
    agent_npn: Optional[str] = None
    language: Optional[str] = "en"
    products_preselected: List[str] = Field(default_factory=list)
    beneficiary_phone: Optional[str] = None
    beneficiary_address: Optional[str] = None
    initial_contact_method: Optional[str] = None
    appointment_date: Optional[date] = None
    delivery_method: str = DeliveryMethod.EMAIL.value


class CountersignRequest(BaseModel):
    typed_signature: str = ""
    initial_contact_method: Optional[str] = None
    appointment_date: Optional[date] = None


class EditSOARequest(BaseModel):
    """Only the fields actually sent are applied."""
    agent_name: Optional[str] = None
    appointment_date: Optional[date] = None
    initial_contact_method: Optional[str] = None


@dataclass
class SOAResult:
    """A record plus a non-fatal problem to show the agent."""
    record: SOARecord
    warning: Optional[str] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _jsonable(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value


class SOAService:
    """
    Agent-facing operations on Scope of Appointment records.

    All collaborators are injected; see web.dependencies for the wiring.
    """

    def __init__(
        self,
        uow_factory,
        settings: SOASettings,
        tokens: TokenService,
        lifecycle: LifecycleManager,
        audit: SOAAuditLogger,
        notifier: SOANotificationDispatcher,
        renderer: SOADocumentRenderer,
    ):
        self._uow_factory = uow_factory
        self._settings = settings
        self._tokens = tokens
        self._lifecycle = lifecycle
        self._audit = audit
        self._notifier = notifier
        self._renderer = renderer

    # =========================================================================
    # CREATE
    # =========================================================================

    @staticmethod
    def validate_create(request: CreateSOARequest) -> DeliveryMethod:
        """
        Check required fields and the delivery method.

        Raises:
            ValidationError: Missing fields or unknown delivery method
            UnsupportedDeliveryMethod: A reserved, unimplemented channel
        """
        field_errors = []
        if not request.client_id.strip():
            field_errors.append({"field": "client_id", "message": "Client is required"})
        if not request.agent_name.strip():
            field_errors.append({"field": "agent_name", "message": "Agent name is required"})
        if not request.beneficiary_name.strip():
            field_errors.append({"field": "beneficiary_name", "message": "Beneficiary name is required"})

        try:
            method = DeliveryMethod(request.delivery_method)
        except ValueError:
            method = None
            field_errors.append({
                "field": "delivery_method",
                "message": f"Unknown delivery method: {request.delivery_method}",
            })

        if field_errors:
            raise ValidationError.for_fields(field_errors)
        if method != DeliveryMethod.EMAIL:
            raise UnsupportedDeliveryMethod()
        return method

    async def create(
        self,
        agent_id: str,
        request: CreateSOARequest,
        context: Optional[RequestContext] = None,
    ) -> SOARecord:
        """
        Create an SOA and email the signing link.

        The record is committed as draft before delivery is attempted. If
        delivery fails it stays draft (and can be resent) and DeliveryError
        propagates.

        Raises:
            ValidationError, UnsupportedDeliveryMethod, NotFound, DeliveryError
        """
        method = self.validate_create(request)

        async with self._uow_factory() as uow:
            contact = await uow.clients.get_contact(agent_id, request.client_id)
            if contact is None:
                raise NotFound("Client not found")
            if not contact.emails:
                raise ValidationError.for_fields([
                    {"field": "email", "message": "Client has no email address on file"},
                ])
            to = contact.resolve_email(_clean(request.email))
            if to is None:
                raise ValidationError.for_fields([
                    {"field": "email", "message": "Selected email is not on file for this client"},
                ])

            token, expires_at = self._tokens.issue()
            now = self._lifecycle.now()
            record = SOARecord(
                agent_id=agent_id,
                client_id=request.client_id,
                status=SOAStatus.DRAFT,
                delivery_method=method,
                secure_token=token,
                token_expires_at=expires_at,
                language=normalize_language(request.language),
                products_preselected=parse_products(request.products_preselected),
                agent_name=request.agent_name.strip(),
                agent_phone=_clean(request.agent_phone),
                agent_npn=_clean(request.agent_npn),
                beneficiary_name=request.beneficiary_name.strip(),
                beneficiary_phone=_clean(request.beneficiary_phone),
                beneficiary_address=_clean(request.beneficiary_address),
                initial_contact_method=normalize_contact_method(request.initial_contact_method),
                appointment_date=request.appointment_date,
                created_at=now,
                updated_at=now,
            )
            await self._lifecycle.create(uow, record, performed_by=agent_id, context=context)

        logger.info(
            f"Created SOA {record.id}",
            extra={'extra_data': {'agent_id': agent_id, 'client_id': record.client_id}},
        )

        await self._notifier.send_sign_request(record, to, contact.first_name)

        async with self._uow_factory() as uow:
            await self._lifecycle.mark_sent(
                uow,
                record.id,
                performed_by=agent_id,
                metadata={"delivery_method": method.value, "to": to},
                context=context,
            )
            return await uow.soas.get(record.id)

    def signing_url(self, record: SOARecord) -> str:
        return self._tokens.signing_url(record.secure_token)

    # =========================================================================
    # READS
    # =========================================================================

    async def _expire_lazily(self, record: SOARecord) -> SOARecord:
        if not self._lifecycle.is_due_for_expiry(record):
            return record
        try:
            async with self._uow_factory() as uow:
                await self._lifecycle.expire_if_due(uow, record)
        except (InvalidTransition, AuditWriteError) as e:
            logger.warning(f"Lazy expiry of SOA {record.id} skipped: {e}")
        async with self._uow_factory() as uow:
            return await uow.soas.get(record.id)

    async def get(self, agent_id: str, soa_id: str) -> SOARecord:
        """
        Raises:
            NotFound: Unknown record or not the agent's
        """
        async with self._uow_factory() as uow:
            record = await uow.soas.get_for_agent(agent_id, soa_id)
        if record is None:
            raise NotFound("Scope of Appointment not found")
        return await self._expire_lazily(record)

    async def list_for_client(self, agent_id: str, client_id: str) -> List[SOARecord]:
        """The agent's SOAs for a client, newest first."""
        async with self._uow_factory() as uow:
            records = await uow.soas.list_for_client(agent_id, client_id)
        return [await self._expire_lazily(record) for record in records]

    async def audit_trail(self, agent_id: str, soa_id: str) -> List[AuditLogEntry]:
        return await self._audit.trail(agent_id, soa_id)

    # =========================================================================
    # AGENT ACTIONS
    # =========================================================================

    async def resend(
        self,
        agent_id: str,
        soa_id: str,
        context: Optional[RequestContext] = None,
    ) -> SOARecord:
        """
        Email the existing signing link again.

        A draft (first delivery failed) moves to sent on success; for sent
        and opened records an informational resent entry is written.
        The token and its expiry are not changed.
        """
        record = await self.get(agent_id, soa_id)
        if record.status not in RESENDABLE_STATUSES:
            raise InvalidTransition(
                f"Cannot resend a Scope of Appointment that is {record.status.value}",
                current_status=record.status.value,
                target_status=SOAStatus.SENT.value,
            )

        async with self._uow_factory() as uow:
            contact = await uow.clients.get_contact(agent_id, record.client_id)
        to = contact.resolve_email() if contact else None
        if to is None:
            raise ValidationError.for_fields([
                {"field": "email", "message": "Client has no email address on file"},
            ])

        await self._notifier.send_sign_request(record, to, contact.first_name)

        if record.status == SOAStatus.DRAFT:
            async with self._uow_factory() as uow:
                await self._lifecycle.mark_sent(
                    uow,
                    record.id,
                    performed_by=agent_id,
                    metadata={"delivery_method": record.delivery_method.value, "to": to},
                    context=context,
                )
        else:
            await self._audit.record_best_effort(
                record.id, AuditAction.RESENT,
                performed_by=agent_id, context=context, metadata={"to": to},
            )

        async with self._uow_factory() as uow:
            return await uow.soas.get(record.id)

    async def void(
        self,
        agent_id: str,
        soa_id: str,
        reason: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> SOARecord:
        record = await self.get(agent_id, soa_id)
        async with self._uow_factory() as uow:
            await self._lifecycle.void(
                uow, record.id, performed_by=agent_id, reason=_clean(reason), context=context,
            )
            return await uow.soas.get(record.id)

    async def _render_with_warning(self, record: SOARecord, prefix: str) -> SOAResult:
        try:
            rendered = await self._renderer.render_and_store(record)
        except SOAError as e:
            logger.error(f"Rendering SOA {record.id} failed: {e.code}: {e.message}")
            return SOAResult(record=record, warning=f"{prefix}: {e.message}")
        return SOAResult(record=rendered)

    async def countersign(
        self,
        agent_id: str,
        soa_id: str,
        request: CountersignRequest,
        context: Optional[RequestContext] = None,
    ) -> SOAResult:
        """
        client_signed -> completed, then render the document.

        A rendering failure does not undo the countersignature; it is
        returned as a warning and the document can be regenerated later.
        """
        record = await self.get(agent_id, soa_id)
        if record.status != SOAStatus.CLIENT_SIGNED:
            raise InvalidTransition(
                "The client must sign before the agent can countersign",
                current_status=record.status.value,
                target_status=SOAStatus.COMPLETED.value,
            )

        signature = request.typed_signature.strip()
        if not signature:
            raise ValidationError.for_fields([
                {"field": "typed_signature", "message": "Typed signature is required"},
            ])

        now = self._lifecycle.now()
        fields: Dict[str, Any] = {
            "agent_typed_signature": signature,
            "agent_signed_at": now,
            "updated_at": now,
        }
        if request.initial_contact_method is not None:
            fields["initial_contact_method"] = normalize_contact_method(request.initial_contact_method)
        if request.appointment_date is not None:
            fields["appointment_date"] = request.appointment_date

        async with self._uow_factory() as uow:
            await self._lifecycle.mark_completed(
                uow, record.id, performed_by=agent_id, fields=fields, context=context,
            )
            completed = await uow.soas.get(record.id)

        return await self._render_with_warning(completed, "Countersigned, but the PDF could not be generated")

    async def edit(
        self,
        agent_id: str,
        soa_id: str,
        request: EditSOARequest,
        context: Optional[RequestContext] = None,
    ) -> SOAResult:
        """
        Correct agent-entered details on a completed SOA and re-render.

        The edited entry records before/after values for each changed field.
        """
        record = await self.get(agent_id, soa_id)
        if record.status != SOAStatus.COMPLETED:
            raise InvalidTransition(
                "Only completed Scope of Appointment forms can be edited",
                current_status=record.status.value,
            )

        provided = request.model_fields_set
        after: Dict[str, Any] = {}
        if "agent_name" in provided:
            name = (request.agent_name or "").strip()
            if not name:
                raise ValidationError.for_fields([
                    {"field": "agent_name", "message": "Agent name cannot be empty"},
                ])
            after["agent_name"] = name
        if "appointment_date" in provided:
            after["appointment_date"] = request.appointment_date
        if "initial_contact_method" in provided:
            after["initial_contact_method"] = normalize_contact_method(request.initial_contact_method)

        changes = {
            name: {"before": _jsonable(getattr(record, name)), "after": _jsonable(value)}
            for name, value in after.items()
            if getattr(record, name) != value
        }
        if not changes:
            return SOAResult(record=record)

        updates = {name: after[name] for name in changes}
        updates["updated_at"] = self._lifecycle.now()

        async with self._uow_factory() as uow:
            if await uow.soas.get_status(record.id) != SOAStatus.COMPLETED:
                raise InvalidTransition("Scope of Appointment changed while editing")
            await uow.soas.update_fields(record.id, updates)
            await self._audit.record(
                uow, record.id, AuditAction.EDITED,
                performed_by=agent_id, context=context,
                metadata={"fields_changed": changes},
            )
            edited = await uow.soas.get(record.id)

        logger.info(f"Edited SOA {record.id}: {', '.join(sorted(changes))}")
        return await self._render_with_warning(edited, "Saved, but the PDF could not be updated")

    async def render(self, agent_id: str, soa_id: str) -> SOARecord:
        """
        (Re)generate the stored document of a completed SOA.

        Raises:
            InvalidTransition, ConfigurationError, StorageError
        """
        record = await self.get(agent_id, soa_id)
        if record.status != SOAStatus.COMPLETED:
            raise InvalidTransition(
                "Documents are only generated for completed Scope of Appointment forms",
                current_status=record.status.value,
            )
        return await self._renderer.render_and_store(record)

    async def signed_url(self, agent_id: str, soa_id: str) -> str:
        """Time-limited download link, rendering first if the artifact is missing."""
        record = await self.get(agent_id, soa_id)
        if record.status != SOAStatus.COMPLETED:
            raise InvalidTransition(
                "The PDF is only available for completed Scope of Appointment forms",
                current_status=record.status.value,
            )
        if await self._renderer.needs_render(record):
            logger.info(f"Artifact for SOA {record.id} missing; rendering")
            record = await self._renderer.render_and_store(record)
        return await self._renderer.signed_url(record, self._settings.signed_url_ttl_seconds)

"""
Signing Session Controller

The unauthenticated half of the SOA workflow. The only credential is the
signing token; the only data ever returned is the SigningProjection.

All public operations return structured results instead of raising, so the
HTTP layer can hand them straight back to the signing page.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from audit.soa_audit_logger import SOAAuditLogger
from domain.errors import AlreadyUsed, InvalidTransition, SOAError, ValidationError
from domain.soa import (
    AuditAction,
    CLIENT_ACTOR,
    RequestContext,
    SigningProjection,
    SignerType,
    SOAProduct,
    SOAStatus,
)
from notifications.soa_notifications import SOANotificationDispatcher

from .lifecycle import LifecycleManager
from .token_service import TokenService, token_hint

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again or contact your agent."
INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


class VerifyResult(BaseModel):
    valid: bool
    soa: Optional[SigningProjection] = None
    error: Optional[str] = None
    code: Optional[str] = None


class SubmitResult(BaseModel):
    ok: bool
    error: Optional[str] = None
    code: Optional[str] = None
    field_errors: Optional[List[Dict[str, str]]] = None


class ClientSubmission(BaseModel):
    """What the signing page posts."""
    token: str = ""
    typed_signature: str = ""
    products_selected: List[str] = Field(default_factory=list)
    signer_type: str = SignerType.BENEFICIARY.value
    rep_name: Optional[str] = None
    rep_relationship: Optional[str] = None


def validate_submission(submission: ClientSubmission) -> List[Dict[str, str]]:
    """Field-level problems with a submission; empty when it is acceptable."""
    errors: List[Dict[str, str]] = []

    if not submission.typed_signature.strip():
        errors.append({"field": "typed_signature", "message": "Typed signature is required"})

    known = {p.value for p in SOAProduct}
    if not submission.products_selected:
        errors.append({"field": "products_selected", "message": "Select at least one product"})
    else:
        unknown = [p for p in submission.products_selected if p not in known]
        if unknown:
            errors.append({
                "field": "products_selected",
                "message": f"Unknown products: {', '.join(sorted(set(unknown)))}",
            })

    if submission.signer_type not in {s.value for s in SignerType}:
        errors.append({
            "field": "signer_type",
            "message": "Signer must be the beneficiary or an authorized representative",
        })
    elif submission.signer_type == SignerType.REPRESENTATIVE.value:
        if not (submission.rep_name or "").strip():
            errors.append({"field": "rep_name", "message": "Representative name is required"})
        if not (submission.rep_relationship or "").strip():
            errors.append({
                "field": "rep_relationship",
                "message": "Relationship to the beneficiary is required",
            })

    return errors


def token_from_payload(payload: Any) -> str:
    """The token from a raw request body, or "" when missing or not a string."""
    if isinstance(payload, dict) and isinstance(payload.get("token"), str):
        return payload["token"]
    return ""


def parse_submission(payload: Any) -> Tuple[Optional[ClientSubmission], List[Dict[str, str]]]:
    """
    Build a ClientSubmission from a raw request body.

    Wrong types (null signature, products as a string, a non-object body)
    are reported as field errors instead of raising.
    """
    try:
        return ClientSubmission.model_validate(payload if payload is not None else {}), []
    except PydanticValidationError as e:
        field_errors = []
        for error in e.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            field_errors.append({"field": field_path or "body", "message": error["msg"]})
        return None, field_errors


class SigningSessionController:
    """Verify and submit for the public signing page."""

    def __init__(
        self,
        uow_factory,
        tokens: TokenService,
        lifecycle: LifecycleManager,
        audit: SOAAuditLogger,
        notifier: SOANotificationDispatcher,
    ):
        self._uow_factory = uow_factory
        self._tokens = tokens
        self._lifecycle = lifecycle
        self._audit = audit
        self._notifier = notifier

    async def verify(self, token: str) -> VerifyResult:
        """Check a token and return the signing projection. Read-only."""
        try:
            record = await self._tokens.verify(token)
        except SOAError as e:
            return VerifyResult(valid=False, error=e.message, code=e.code)
        except Exception as e:
            logger.exception(f"Verify failed for token {token_hint(token)}: {e}")
            return VerifyResult(valid=False, error=GENERIC_ERROR, code=INTERNAL_ERROR_CODE)

        return VerifyResult(valid=True, soa=SigningProjection.from_record(record))

    async def record_opened(self, token: str, context: Optional[RequestContext] = None) -> bool:
        """
        Best-effort sent -> opened when the signing page loads.

        Returns:
            True if this call moved the record to opened
        """
        try:
            record = await self._tokens.verify(token)
            if record.status != SOAStatus.SENT:
                return False
            async with self._uow_factory() as uow:
                await self._lifecycle.mark_opened(uow, record.id)
        except SOAError as e:
            logger.debug(f"Not marking token {token_hint(token)} opened: {e.code}")
            return False
        except Exception as e:
            logger.warning(f"Could not mark token {token_hint(token)} opened: {e}")
            return False

        await self._audit.record_best_effort(
            record.id, AuditAction.OPENED, performed_by=CLIENT_ACTOR, context=context,
        )
        return True

    async def submit_payload(
        self,
        payload: Any,
        context: Optional[RequestContext] = None,
    ) -> SubmitResult:
        """Submit from a raw request body; malformed fields become field errors."""
        submission, field_errors = parse_submission(payload)
        if submission is not None:
            return await self.submit(submission, context)

        # Token problems are reported ahead of field problems
        token = token_from_payload(payload)
        try:
            await self._tokens.verify(token)
        except SOAError as e:
            return SubmitResult(ok=False, error=e.message, code=e.code)
        except Exception as e:
            logger.exception(f"Submit verify failed for token {token_hint(token)}: {e}")
            return SubmitResult(ok=False, error=GENERIC_ERROR, code=INTERNAL_ERROR_CODE)

        error = ValidationError.for_fields(field_errors)
        return SubmitResult(ok=False, error=error.message, code=error.code, field_errors=field_errors)

    async def submit(
        self,
        submission: ClientSubmission,
        context: Optional[RequestContext] = None,
    ) -> SubmitResult:
        """
        Accept the client's signature.

        Exactly one submit per token can succeed; later or concurrent ones
        get ALREADY_USED and cause no audit entry or notification.
        """
        context = context or RequestContext()

        try:
            record = await self._tokens.verify(submission.token)
        except SOAError as e:
            return SubmitResult(ok=False, error=e.message, code=e.code)
        except Exception as e:
            logger.exception(f"Submit verify failed for token {token_hint(submission.token)}: {e}")
            return SubmitResult(ok=False, error=GENERIC_ERROR, code=INTERNAL_ERROR_CODE)

        field_errors = validate_submission(submission)
        if field_errors:
            error = ValidationError.for_fields(field_errors)
            return SubmitResult(
                ok=False, error=error.message, code=error.code, field_errors=field_errors,
            )

        is_rep = submission.signer_type == SignerType.REPRESENTATIVE.value
        products = [p for p in SOAProduct if p.value in set(submission.products_selected)]
        signed_at = self._lifecycle.now()

        fields: Dict[str, Any] = {
            "client_typed_signature": submission.typed_signature.strip(),
            "client_signed_at": signed_at,
            "client_ip_address": context.ip_address,
            "client_user_agent": context.user_agent,
            "products_selected": products,
            "signer_type": SignerType(submission.signer_type),
            "rep_name": submission.rep_name.strip() if is_rep else None,
            "rep_relationship": submission.rep_relationship.strip() if is_rep else None,
            "updated_at": signed_at,
        }
        metadata = {
            "products_selected": [p.value for p in products],
            "signer_type": submission.signer_type,
            "ip_address": context.ip_address,
            "user_agent": context.user_agent,
        }

        try:
            async with self._uow_factory() as uow:
                await self._lifecycle.mark_client_signed(
                    uow, record.id, fields, context=context, metadata=metadata,
                )
                signed = await uow.soas.get(record.id)
        except InvalidTransition:
            used = AlreadyUsed()
            return SubmitResult(ok=False, error=used.message, code=used.code)
        except SOAError as e:
            return SubmitResult(ok=False, error=e.message, code=e.code)
        except Exception as e:
            logger.exception(f"Submit failed for SOA {record.id}: {e}")
            return SubmitResult(ok=False, error=GENERIC_ERROR, code=INTERNAL_ERROR_CODE)

        logger.info(f"SOA {record.id} signed by {submission.signer_type}")
        self._notifier.schedule_agent_notice(signed)
        return SubmitResult(ok=True)

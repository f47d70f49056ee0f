"""
Scope of Appointment Routes - Agent endpoints

All routes require an agent bearer token. Domain errors propagate to the
handlers registered in security.api_errors.

Routes:
- POST  /api/soa/send                  - Create and email a signing link
- GET   /api/soa?client_id=            - List a client's SOAs (newest first)
- GET   /api/soa/{soa_id}              - Get one SOA
- GET   /api/soa/{soa_id}/audit        - Audit trail (oldest first)
- POST  /api/soa/{soa_id}/resend       - Email the signing link again
- POST  /api/soa/{soa_id}/void         - Cancel
- POST  /api/soa/{soa_id}/countersign  - Agent countersignature, then render
- PATCH /api/soa/{soa_id}              - Edit a completed SOA, then re-render
- POST  /api/soa/{soa_id}/render       - (Re)generate the PDF
- GET   /api/soa/{soa_id}/signed-url   - Time-limited PDF download link
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from domain.soa import RequestContext, SOARecord
from services.soa import (
    CountersignRequest,
    CreateSOARequest,
    EditSOARequest,
    SOAResult,
    SOAService,
)
from web.dependencies import get_current_agent, get_request_context, get_soa_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/soa", tags=["Scope of Appointment"])


class VoidRequest(BaseModel):
    reason: Optional[str] = None


def _result_body(result: SOAResult) -> Dict[str, Any]:
    body: Dict[str, Any] = {"soa": result.record.summary()}
    if result.warning:
        body["warning"] = result.warning
    return body


def _record_body(record: SOARecord) -> Dict[str, Any]:
    return {"soa": record.summary()}


@router.post("/send")
async def send_soa(
    request: CreateSOARequest,
    agent_id: str = Depends(get_current_agent),
    context: RequestContext = Depends(get_request_context),
    service: SOAService = Depends(get_soa_service),
):
    """Create an SOA for one of the agent's clients and email the signing link."""
    record = await service.create(agent_id, request, context)
    sign_url = service.signing_url(record)
    return {"soa": {**record.summary(), "sign_url": sign_url}, "sign_url": sign_url}


@router.get("")
async def list_soas(
    client_id: str = Query(..., min_length=1),
    agent_id: str = Depends(get_current_agent),
    service: SOAService = Depends(get_soa_service),
):
    records = await service.list_for_client(agent_id, client_id)
    return {"soas": [r.summary() for r in records], "count": len(records)}


@router.get("/{soa_id}")
async def get_soa(
    soa_id: str,
    agent_id: str = Depends(get_current_agent),
    service: SOAService = Depends(get_soa_service),
):
    return _record_body(await service.get(agent_id, soa_id))


@router.get("/{soa_id}/audit")
async def get_audit_trail(
    soa_id: str,
    agent_id: str = Depends(get_current_agent),
    service: SOAService = Depends(get_soa_service),
):
    entries = await service.audit_trail(agent_id, soa_id)
    return {"entries": [e.model_dump(mode="json") for e in entries], "count": len(entries)}


@router.post("/{soa_id}/resend")
async def resend_soa(
    soa_id: str,
    agent_id: str = Depends(get_current_agent),
    context: RequestContext = Depends(get_request_context),
    service: SOAService = Depends(get_soa_service),
):
    record = await service.resend(agent_id, soa_id, context)
    return {"ok": True, **_record_body(record)}


@router.post("/{soa_id}/void")
async def void_soa(
    soa_id: str,
    request: Optional[VoidRequest] = Body(default=None),
    agent_id: str = Depends(get_current_agent),
    context: RequestContext = Depends(get_request_context),
    service: SOAService = Depends(get_soa_service),
):
    reason = request.reason if request else None
    record = await service.void(agent_id, soa_id, reason=reason, context=context)
    return {"ok": True, **_record_body(record)}


@router.post("/{soa_id}/countersign")
async def countersign_soa(
    soa_id: str,
    request: CountersignRequest,
    agent_id: str = Depends(get_current_agent),
    context: RequestContext = Depends(get_request_context),
    service: SOAService = Depends(get_soa_service),
):
    """Record the agent countersignature; a PDF failure is returned as a warning."""
    return _result_body(await service.countersign(agent_id, soa_id, request, context))


@router.patch("/{soa_id}")
async def edit_soa(
    soa_id: str,
    request: EditSOARequest,
    agent_id: str = Depends(get_current_agent),
    context: RequestContext = Depends(get_request_context),
    service: SOAService = Depends(get_soa_service),
):
    return _result_body(await service.edit(agent_id, soa_id, request, context))


@router.post("/{soa_id}/render")
async def render_soa(
    soa_id: str,
    agent_id: str = Depends(get_current_agent),
    service: SOAService = Depends(get_soa_service),
):
    return _record_body(await service.render(agent_id, soa_id))


@router.get("/{soa_id}/signed-url")
async def get_signed_url(
    soa_id: str,
    agent_id: str = Depends(get_current_agent),
    service: SOAService = Depends(get_soa_service),
):
    return {"url": await service.signed_url(agent_id, soa_id)}

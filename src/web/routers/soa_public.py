"""
Scope of Appointment Routes - Public signing endpoints

No agent authentication: the signing token is the only credential. Domain
failures come back as structured values ({valid: false, ...} or
{ok: false, ...}), never as error responses.

Routes:
- GET|POST /api/soa/verify            - Check a token, return the signing view
- POST     /api/soa/opened            - Signing page loaded (best-effort)
- POST     /api/soa/client-sign       - Submit the client's signature
- GET      /api/soa/documents/{token} - Download a signed PDF (filesystem store)
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel

from domain.errors import NotFound
from domain.soa import RequestContext
from services.soa import SigningSessionController, token_from_payload
from storage.document_store import PDF_CONTENT_TYPE, FilesystemDocumentStore
from web.dependencies import SOAContainer, get_container, get_request_context, get_signing_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/soa", tags=["Scope of Appointment - Signing"])


def _dump(result: BaseModel) -> dict:
    return result.model_dump(mode="json", exclude_none=True)


@router.get("/verify")
async def verify_token_get(
    token: str = Query(default=""),
    signing: SigningSessionController = Depends(get_signing_session),
):
    return _dump(await signing.verify(token))


@router.post("/verify")
async def verify_token_post(
    payload: Any = Body(default=None),
    signing: SigningSessionController = Depends(get_signing_session),
):
    return _dump(await signing.verify(token_from_payload(payload)))


@router.post("/opened")
async def mark_opened(
    payload: Any = Body(default=None),
    context: RequestContext = Depends(get_request_context),
    signing: SigningSessionController = Depends(get_signing_session),
):
    opened = await signing.record_opened(token_from_payload(payload), context)
    return {"ok": opened}


@router.post("/client-sign")
async def client_sign(
    payload: Any = Body(default=None),
    context: RequestContext = Depends(get_request_context),
    signing: SigningSessionController = Depends(get_signing_session),
):
    return _dump(await signing.submit_payload(payload, context))


@router.get("/documents/{token}")
async def download_document(
    token: str,
    container: SOAContainer = Depends(get_container),
):
    """Serve a signed PDF for a download link issued by the filesystem store."""
    store = container.store
    if not isinstance(store, FilesystemDocumentStore):
        raise NotFound("Document not found")

    key = store.resolve_download(token)
    data = await asyncio.to_thread(store.read, key)
    filename = key.rsplit("/", 1)[-1]
    return Response(
        content=data,
        media_type=PDF_CONTENT_TYPE,
        headers={
            "Content-Disposition": f'inline; filename="{filename}"',
            "Cache-Control": "private, no-store",
        },
    )

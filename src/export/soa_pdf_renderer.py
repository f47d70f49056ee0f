"""
SOA PDF Renderer - Burns a signed Scope of Appointment onto the CMS template.

The template is a fixed single-page US Letter form (612 x 792 pt, origin at
bottom-left). A ReportLab canvas draws every field at its anchor on a blank
overlay page, which pypdf then merges onto the template page.

Fonts:
- Helvetica / Helvetica-Bold (standard, WinAnsi): all plain fields
- Signature font (TrueType, registered once at startup): typed signatures

Only Latin-1 text is drawn; anything else is replaced with "?", and the
checkbox mark is a plain "X" because WinAnsi has no check glyph.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont, TTFError
from reportlab.pdfgen import canvas

from audit.soa_audit_logger import SOAAuditLogger
from config.settings import SOASettings
from domain.errors import ConfigurationError, InvalidTransition, NotFound
from domain.soa import (
    AuditAction,
    SOAProduct,
    SOARecord,
    SOAStatus,
    SignerType,
    SYSTEM_ACTOR,
)
from services.logging_config import log_performance
from storage.document_store import DocumentStore

logger = logging.getLogger(__name__)


# =============================================================================
# LAYOUT
# =============================================================================

PAGE_SIZE = (612.0, 792.0)

CHECKMARK = "X"
MISSING = "-"

REGULAR_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"

SIGNATURE_COLOR = (0.106, 0.165, 0.29)
TEXT_COLOR = (0.2, 0.2, 0.2)

PRODUCT_ANCHORS = {
    SOAProduct.PART_D: (60, 642),
    SOAProduct.PART_C: (60, 618),
    SOAProduct.DENTAL_VISION_HEARING: (60, 594),
    SOAProduct.HOSPITAL_INDEMNITY: (60, 570),
    SOAProduct.MEDIGAP: (60, 547),
}

CLIENT_SIGNATURE = (80, 427)
CLIENT_SIGNATURE_DATE = (460, 427)
REP_NAME = (28, 384)
REP_RELATIONSHIP = (322, 384)
AGENT_NAME = (95, 330)
AGENT_PHONE = (390, 330)
BENEFICIARY_NAME = (120, 302)
BENEFICIARY_PHONE = (410, 302)
BENEFICIARY_ADDRESS = (130, 274)
INITIAL_CONTACT_METHOD = (28, 241)
AGENT_SIGNATURE = (120, 214)
DATE_APPOINTMENT_COMPLETED = (465, 184)

RENDERABLE_STATUSES = frozenset({SOAStatus.CLIENT_SIGNED, SOAStatus.COMPLETED})


@dataclass(frozen=True)
class OverlayText:
    """One string drawn on the overlay page."""
    text: str
    x: float
    y: float
    font: str
    size: float
    color: Tuple[float, float, float] = TEXT_COLOR


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class RendererConfig:
    """
    Validated rendering inputs, loaded once at startup and shared read-only.

    Usage:
        config = RendererConfig.from_settings(get_soa_settings())
    """
    template_bytes: bytes
    signature_font: str
    display_timezone: ZoneInfo

    @classmethod
    def load(
        cls,
        template_path: Path,
        signature_font_path: Path,
        display_timezone: str = "America/New_York",
        font_name: str = "SOASignature",
    ) -> "RendererConfig":
        """
        Read the template, register the signature font, resolve the timezone.

        Raises:
            ConfigurationError: If any input is missing or unusable
        """
        template_path = Path(template_path)
        signature_font_path = Path(signature_font_path)

        if not template_path.is_file():
            raise ConfigurationError(
                f"SOA template not found at {template_path}. "
                "Add the CMS-approved blank template."
            )
        if not signature_font_path.is_file():
            raise ConfigurationError(
                f"Signature font not found at {signature_font_path}. "
                "Add the signature TrueType font."
            )

        template_bytes = template_path.read_bytes()
        try:
            page_count = len(PdfReader(BytesIO(template_bytes)).pages)
        except PdfReadError as e:
            raise ConfigurationError(f"SOA template is not a readable PDF: {e}") from e
        if page_count == 0:
            raise ConfigurationError("SOA template has no pages")
        if page_count > 1:
            logger.warning(f"SOA template has {page_count} pages; only the first is filled")

        try:
            pdfmetrics.registerFont(TTFont(font_name, str(signature_font_path)))
        except (TTFError, OSError) as e:
            raise ConfigurationError(f"Signature font could not be loaded: {e}") from e

        try:
            tz = ZoneInfo(display_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigurationError(f"Unknown display timezone: {display_timezone}") from e

        logger.info(
            "SOA renderer configured",
            extra={"extra_data": {
                "template": str(template_path),
                "font": str(signature_font_path),
                "timezone": display_timezone,
            }},
        )
        return cls(template_bytes=template_bytes, signature_font=font_name, display_timezone=tz)

    @classmethod
    def from_settings(cls, settings: SOASettings) -> "RendererConfig":
        return cls.load(
            settings.template_path,
            settings.signature_font_path,
            settings.display_timezone,
        )


# =============================================================================
# FIELD LAYOUT
# =============================================================================

def to_latin1(text: str) -> str:
    """Replace characters the standard fonts cannot encode with '?'."""
    return text.encode("latin-1", "replace").decode("latin-1")


def _value(text: Optional[str]) -> str:
    text = (text or "").strip()
    return to_latin1(text) if text else MISSING


def format_date(value, tz: ZoneInfo) -> str:
    """MM/DD/YYYY. Calendar dates print as-is; timestamps convert to tz first."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.astimezone(tz).strftime("%m/%d/%Y")
    if isinstance(value, date):
        return value.strftime("%m/%d/%Y")
    return ""


def overlay_fields(record: SOARecord, config: RendererConfig) -> List[OverlayText]:
    """Everything drawn for a record, in drawing order."""
    fields: List[OverlayText] = []
    tz = config.display_timezone
    sig_font = config.signature_font

    for product in record.products_selected:
        x, y = PRODUCT_ANCHORS[product]
        fields.append(OverlayText(CHECKMARK, x, y, BOLD_FONT, 14))

    if record.signer_type == SignerType.REPRESENTATIVE and (record.rep_name or record.rep_relationship):
        fields.append(OverlayText(_value(record.rep_name), *REP_NAME, REGULAR_FONT, 10))
        fields.append(OverlayText(_value(record.rep_relationship), *REP_RELATIONSHIP, REGULAR_FONT, 10))

    fields.append(OverlayText(
        _value(record.client_typed_signature), *CLIENT_SIGNATURE, sig_font, 22, SIGNATURE_COLOR,
    ))
    fields.append(OverlayText(
        format_date(record.client_signed_at, tz), *CLIENT_SIGNATURE_DATE, REGULAR_FONT, 10,
    ))

    fields.append(OverlayText(_value(record.agent_name), *AGENT_NAME, REGULAR_FONT, 10))
    fields.append(OverlayText(_value(record.agent_phone), *AGENT_PHONE, REGULAR_FONT, 10))
    fields.append(OverlayText(_value(record.beneficiary_name), *BENEFICIARY_NAME, REGULAR_FONT, 10))
    fields.append(OverlayText(_value(record.beneficiary_phone), *BENEFICIARY_PHONE, REGULAR_FONT, 10))
    fields.append(OverlayText(_value(record.beneficiary_address), *BENEFICIARY_ADDRESS, REGULAR_FONT, 10))
    fields.append(OverlayText(
        _value(record.initial_contact_method), *INITIAL_CONTACT_METHOD, REGULAR_FONT, 10,
    ))

    # Agent name rather than the typed signature so edits to the name show up
    agent_signature = record.agent_name or record.agent_typed_signature
    fields.append(OverlayText(_value(agent_signature), *AGENT_SIGNATURE, sig_font, 18, SIGNATURE_COLOR))

    agent_date = record.appointment_date or record.agent_signed_at
    fields.append(OverlayText(
        format_date(agent_date, tz), *DATE_APPOINTMENT_COMPLETED, REGULAR_FONT, 9,
    ))

    return [f for f in fields if f.text]


def _make_overlay(page_w: float, page_h: float, fields: List[OverlayText]) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=(page_w, page_h))
    for field in fields:
        c.setFillColorRGB(*field.color)
        c.setFont(field.font, field.size)
        c.drawString(field.x, field.y, field.text)
    c.save()
    return buf.getvalue()


@log_performance("render_soa_pdf")
def render_soa_pdf(record: SOARecord, config: RendererConfig) -> bytes:
    """Fill the template for a record and return the PDF bytes."""
    reader = PdfReader(BytesIO(config.template_bytes))
    writer = PdfWriter()

    for i, page in enumerate(reader.pages):
        # merge into the writer's copy; merging before add_page is deprecated in pypdf
        page = writer.add_page(page)
        if i == 0:
            box = page.mediabox
            overlay = _make_overlay(
                float(box.width), float(box.height), overlay_fields(record, config),
            )
            page.merge_page(PdfReader(BytesIO(overlay)).pages[0])

    out = BytesIO()
    writer.write(out)
    return out.getvalue()


# =============================================================================
# RENDER + STORE
# =============================================================================

class SOADocumentRenderer:
    """
    Renders signed SOAs and keeps the stored artifact in sync with the record.

    Storage keys follow "{agent_id}/{soa_id}.pdf". Replacing an artifact is a
    delete followed by an upload; a crash between the two leaves the record
    pointing at a missing object, which needs_render() reports.
    """

    def __init__(
        self,
        config: Optional[RendererConfig],
        store: DocumentStore,
        uow_factory,
        audit: SOAAuditLogger,
    ):
        """
        Args:
            config: Validated template and font. None when startup validation
                failed; every render then raises ConfigurationError.
        """
        self._config = config
        self._store = store
        self._uow_factory = uow_factory
        self._audit = audit

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def is_configured(self) -> bool:
        return self._config is not None

    async def render(self, record: SOARecord) -> bytes:
        """Render without storing."""
        if record.status not in RENDERABLE_STATUSES:
            raise InvalidTransition(
                "Only signed Scope of Appointment forms can be rendered",
                current_status=record.status.value,
            )
        if self._config is None:
            raise ConfigurationError("SOA template or signature font failed to load at startup")
        return await asyncio.to_thread(render_soa_pdf, record, self._config)

    async def render_and_store(self, record: SOARecord) -> SOARecord:
        """
        Render, replace the stored artifact and record its location.

        Raises:
            InvalidTransition: If the record is not signed
            StorageError: If the upload failed (signed_artifact_path unchanged)
            AuditWriteError: If pdf_generated could not be recorded
        """
        pdf_bytes = await self.render(record)
        key = record.canonical_artifact_path

        stale = {key}
        if record.signed_artifact_path:
            stale.add(record.signed_artifact_path)
        for old_key in sorted(stale):
            try:
                await asyncio.to_thread(self._store.delete, old_key)
            except Exception as e:
                logger.warning(f"Could not delete previous artifact {old_key}: {e}")

        await asyncio.to_thread(self._store.put, key, pdf_bytes)

        async with self._uow_factory() as uow:
            if not await uow.soas.update_fields(record.id, {"signed_artifact_path": key}):
                raise NotFound("Scope of Appointment not found")
            await self._audit.record(
                uow,
                record.id,
                AuditAction.PDF_GENERATED,
                performed_by=SYSTEM_ACTOR,
                metadata={"path": key, "bytes": len(pdf_bytes)},
            )
            updated = await uow.soas.get(record.id)

        logger.info(f"Rendered SOA {record.id} to {key}")
        return updated

    async def needs_render(self, record: SOARecord) -> bool:
        """True if the record has no artifact or its recorded artifact is gone."""
        if record.status not in RENDERABLE_STATUSES:
            return False
        if not record.signed_artifact_path:
            return True
        return not await asyncio.to_thread(self._store.exists, record.signed_artifact_path)

    async def signed_url(self, record: SOARecord, ttl_seconds: int) -> str:
        if not record.signed_artifact_path:
            raise NotFound("Signed document not found")
        return await asyncio.to_thread(self._store.signed_url, record.signed_artifact_path, ttl_seconds)

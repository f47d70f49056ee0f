"""Export Module.

PDF generation for signed Scope of Appointment documents.
"""

from export.soa_pdf_renderer import (
    OverlayText,
    RendererConfig,
    SOADocumentRenderer,
    overlay_fields,
    render_soa_pdf,
)

__all__ = [
    "OverlayText",
    "RendererConfig",
    "SOADocumentRenderer",
    "overlay_fields",
    "render_soa_pdf",
]

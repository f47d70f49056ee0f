"""
Scope of Appointment email content.

Builds the client signing request (English or Spanish) and the agent
"ready for countersignature" notice. Pure functions returning EmailMessage;
delivery is the dispatcher's job.
"""

from html import escape
from typing import Dict, List, Optional

from .email_provider import EmailMessage


_SIGN_REQUEST_COPY: Dict[str, Dict[str, str]] = {
    "en": {
        "subject": "Scope of Appointment — Action Required Before Your Medicare Appointment",
        "greeting": "Hi {name},",
        "greeting_fallback": "there",
        "intro": (
            "Before your Medicare appointment, we need you to review and sign a "
            "Scope of Appointment (SOA) form. This document lets us know which "
            "products you'd like to discuss."
        ),
        "agent": "Your agent {agent} is ready to meet with you. If you have questions, call {phone}.",
        "phone_fallback": "your agent",
        "button": "Review & Sign Your Scope of Appointment",
        "sign_here": "Sign here: {url}",
        "compliance": (
            "The Centers for Medicare and Medicaid Services requires agents to "
            "document the scope of a marketing appointment prior to any individual "
            "sales meeting. All information provided is confidential. This link "
            "expires in {hours} hours."
        ),
        "important": "Important:",
        "fallback_link": "If the button doesn't work, copy and paste this link into your browser:",
    },
    "es": {
        "subject": "Alcance de la Cita — Acción requerida antes de su cita de Medicare",
        "greeting": "Hola {name},",
        "greeting_fallback": "",
        "intro": (
            "Antes de su cita de Medicare, necesitamos que revise y firme el "
            "formulario de Alcance de la Cita (Scope of Appointment, SOA). Este "
            "documento nos indica qué productos desea considerar."
        ),
        "agent": (
            "Su agente {agent} está listo para reunirse con usted. Si tiene "
            "preguntas, llame al {phone}."
        ),
        "phone_fallback": "su agente",
        "button": "Revisar y firmar su Alcance de la Cita",
        "sign_here": "Firme aquí: {url}",
        "compliance": (
            "Los Centros de Servicios de Medicare y Medicaid exigen que los agentes "
            "documenten el alcance de una cita de mercadeo antes de cualquier "
            "reunión de ventas individual. Toda la información proporcionada es "
            "confidencial. Este enlace vence en {hours} horas."
        ),
        "important": "Importante:",
        "fallback_link": "Si el botón no funciona, copie y pegue este enlace en su navegador:",
    },
}

_BUTTON_STYLE = (
    "display:inline-block;background:#2563eb;color:white;padding:14px 28px;"
    "text-decoration:none;border-radius:8px;font-weight:600;"
)
_BODY_STYLE = (
    "font-family:system-ui,sans-serif;line-height:1.6;color:#333;"
    "max-width:560px;margin:0 auto;padding:24px;"
)


def _greeting(copy: Dict[str, str], first_name: Optional[str]) -> str:
    name = (first_name or "").strip() or copy["greeting_fallback"]
    if not name:
        return copy["greeting"].replace(" {name}", "")
    return copy["greeting"].format(name=name)


def sign_request_email(
    *,
    to: str,
    client_first_name: Optional[str],
    agent_name: str,
    agent_phone: Optional[str],
    sign_url: str,
    language: str = "en",
    ttl_hours: int = 72,
    from_email: Optional[str] = None,
    from_name: Optional[str] = None,
) -> EmailMessage:
    """Signing request sent to the client, in the record's language."""
    copy = _SIGN_REQUEST_COPY.get(language, _SIGN_REQUEST_COPY["en"])
    greeting = _greeting(copy, client_first_name)
    phone = (agent_phone or "").strip() or copy["phone_fallback"]
    compliance = copy["compliance"].format(hours=ttl_hours)

    text = "\n\n".join([
        greeting,
        copy["intro"],
        copy["agent"].format(agent=agent_name, phone=phone),
        copy["sign_here"].format(url=sign_url),
        f"{copy['important']} {compliance}",
    ])

    url = escape(sign_url, quote=True)
    html = f"""<!DOCTYPE html>
<html lang="{language}">
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1"></head>
<body style="{_BODY_STYLE}">
  <p>{escape(greeting)}</p>
  <p>{escape(copy['intro'])}</p>
  <p>{escape(copy['agent'].format(agent=agent_name, phone=phone))}</p>
  <p style="margin:32px 0;">
    <a href="{url}" style="{_BUTTON_STYLE}">{escape(copy['button'])}</a>
  </p>
  <p style="font-size:13px;color:#666;">
    <strong>{escape(copy['important'])}</strong> {escape(compliance)}
  </p>
  <hr style="border:none;border-top:1px solid #eee;margin:24px 0;">
  <p style="font-size:12px;color:#888;">{escape(copy['fallback_link'])}<br><a href="{url}" style="word-break:break-all;">{url}</a></p>
</body>
</html>
"""

    return EmailMessage(
        to=to,
        subject=copy["subject"],
        body_text=text,
        body_html=html,
        from_email=from_email,
        from_name=(agent_name or "").strip() or from_name,
        tags=["soa", "sign_request"],
    )


def agent_signed_email(
    *,
    to: str,
    beneficiary_name: str,
    product_labels: List[str],
    signed_at: str,
    profile_url: str,
    from_email: Optional[str] = None,
    from_name: Optional[str] = None,
) -> EmailMessage:
    """Notice to the agent that the client has signed."""
    products = ", ".join(product_labels) if product_labels else "No products selected"

    text = (
        f"{beneficiary_name} has signed their Scope of Appointment.\n\n"
        f"Products selected: {products}\n"
        f"Signed: {signed_at}\n\n"
        f"Countersign here: {profile_url}"
    )

    url = escape(profile_url, quote=True)
    html = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width,initial-scale=1"></head>
<body style="{_BODY_STYLE}">
  <p><strong>{escape(beneficiary_name)}</strong> has signed their Scope of Appointment and is ready for your countersignature.</p>
  <p><strong>Products selected:</strong> {escape(products)}</p>
  <p><strong>Signed:</strong> {escape(signed_at)}</p>
  <p style="margin:32px 0;">
    <a href="{url}" style="{_BUTTON_STYLE}">Review &amp; Countersign</a>
  </p>
</body>
</html>
"""

    return EmailMessage(
        to=to,
        subject=f"SOA Signed — {beneficiary_name} is ready for your countersignature",
        body_text=text,
        body_html=html,
        from_email=from_email,
        from_name=from_name,
        tags=["soa", "agent_notice"],
    )

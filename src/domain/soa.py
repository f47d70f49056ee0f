"""
Scope of Appointment (SOA) domain models.

An SOA is the CMS-required consent a Medicare agent obtains from a
prospective client before a sales meeting. The record below is the single
aggregate root; the audit entry is an append-only satellite.

Invariants enforced elsewhere (Lifecycle Manager / repositories):
- secure_token is minted once, at creation
- client_signed_at and client_typed_signature are written together, once
- status only changes through the transitions in ALLOWED_TRANSITIONS
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


# =============================================================================
# ENUMERATIONS
# =============================================================================

class SOAStatus(str, Enum):
    """Lifecycle states of a Scope of Appointment."""
    DRAFT = "draft"
    SENT = "sent"
    OPENED = "opened"
    CLIENT_SIGNED = "client_signed"
    COMPLETED = "completed"
    EXPIRED = "expired"
    VOIDED = "voided"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class SOAProduct(str, Enum):
    """Products a client may agree to discuss. Order matches the template."""
    PART_D = "part_d"
    PART_C = "part_c"
    DENTAL_VISION_HEARING = "dental_vision_hearing"
    HOSPITAL_INDEMNITY = "hospital_indemnity"
    MEDIGAP = "medigap"


class DeliveryMethod(str, Enum):
    """How the signing link reaches the client. Only EMAIL is implemented."""
    EMAIL = "email"
    SMS = "sms"
    PRINT = "print"
    FACE_TO_FACE = "face_to_face"


class SignerType(str, Enum):
    BENEFICIARY = "beneficiary"
    REPRESENTATIVE = "representative"


class AuditAction(str, Enum):
    """Actions recorded in the SOA audit trail."""
    CREATED = "created"
    SENT = "sent"
    RESENT = "resent"
    OPENED = "opened"
    CLIENT_SIGNED = "client_signed"
    AGENT_COUNTERSIGNED = "agent_countersigned"
    EDITED = "edited"
    PDF_GENERATED = "pdf_generated"
    EXPIRED = "expired"
    VOIDED = "voided"


TERMINAL_STATUSES: FrozenSet[SOAStatus] = frozenset({
    SOAStatus.COMPLETED,
    SOAStatus.EXPIRED,
    SOAStatus.VOIDED,
})

# Statuses in which the signing link has already been consumed or revoked
USED_STATUSES: FrozenSet[SOAStatus] = frozenset({
    SOAStatus.CLIENT_SIGNED,
    SOAStatus.COMPLETED,
    SOAStatus.VOIDED,
})

SIGNABLE_STATUSES: FrozenSet[SOAStatus] = frozenset({
    SOAStatus.SENT,
    SOAStatus.OPENED,
})

# Statuses that lapse to EXPIRED once the token horizon passes
EXPIRABLE_STATUSES: FrozenSet[SOAStatus] = frozenset({
    SOAStatus.DRAFT,
    SOAStatus.SENT,
    SOAStatus.OPENED,
})

ALLOWED_TRANSITIONS: Dict[SOAStatus, FrozenSet[SOAStatus]] = {
    SOAStatus.SENT: frozenset({SOAStatus.DRAFT}),
    SOAStatus.OPENED: frozenset({SOAStatus.SENT}),
    SOAStatus.CLIENT_SIGNED: SIGNABLE_STATUSES,
    SOAStatus.COMPLETED: frozenset({SOAStatus.CLIENT_SIGNED}),
    SOAStatus.EXPIRED: EXPIRABLE_STATUSES,
    SOAStatus.VOIDED: frozenset({
        SOAStatus.DRAFT,
        SOAStatus.SENT,
        SOAStatus.OPENED,
        SOAStatus.CLIENT_SIGNED,
    }),
}

PRODUCT_LABELS: Dict[SOAProduct, str] = {
    SOAProduct.PART_D: "Part D (PDP)",
    SOAProduct.PART_C: "Part C (MAPD)",
    SOAProduct.DENTAL_VISION_HEARING: "Dental/Vision/Hearing",
    SOAProduct.HOSPITAL_INDEMNITY: "Hospital Indemnity",
    SOAProduct.MEDIGAP: "Medigap",
}

INITIAL_CONTACT_METHODS = (
    "Phone",
    "Email",
    "Mail",
    "In-Person/Walk-in",
    "Internet/Website",
    "Referral",
)

SUPPORTED_LANGUAGES = ("en", "es")

# performed_by sentinels for actors without an account
SYSTEM_ACTOR = "system"
CLIENT_ACTOR = "client"


def normalize_language(value: Optional[str]) -> str:
    """Map any requested language onto a supported one (default English)."""
    return value if value in SUPPORTED_LANGUAGES else "en"


def normalize_contact_method(value: Optional[str]) -> Optional[str]:
    """Keep only recognised initial-contact methods."""
    return value if value in INITIAL_CONTACT_METHODS else None


def parse_products(values: Optional[List[str]]) -> List[SOAProduct]:
    """Filter raw strings down to known products, preserving template order."""
    wanted = set(values or [])
    return [product for product in SOAProduct if product.value in wanted]


# =============================================================================
# AGGREGATE
# =============================================================================

class SOARecord(BaseModel):
    """
    Scope of Appointment aggregate root.

    Built only by the repository translation layer; services treat it as a
    read model and route every status change through the Lifecycle Manager.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    agent_id: str
    client_id: str
    status: SOAStatus = SOAStatus.DRAFT
    delivery_method: DeliveryMethod = DeliveryMethod.EMAIL

    secure_token: str
    token_expires_at: datetime

    language: str = "en"
    products_preselected: List[SOAProduct] = Field(default_factory=list)
    products_selected: List[SOAProduct] = Field(default_factory=list)

    # Client signature block
    signer_type: Optional[SignerType] = None
    client_typed_signature: Optional[str] = None
    client_signed_at: Optional[datetime] = None
    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None
    rep_name: Optional[str] = None
    rep_relationship: Optional[str] = None

    # Agent and beneficiary details
    agent_name: str = ""
    agent_phone: Optional[str] = None
    agent_npn: Optional[str] = None
    beneficiary_name: str = ""
    beneficiary_phone: Optional[str] = None
    beneficiary_address: Optional[str] = None

    # Agent countersignature block
    agent_typed_signature: Optional[str] = None
    agent_signed_at: Optional[datetime] = None
    initial_contact_method: Optional[str] = None
    appointment_date: Optional[date] = None

    signed_artifact_path: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    def is_token_expired(self, now: datetime) -> bool:
        return now > self.token_expires_at

    @property
    def is_signed(self) -> bool:
        return self.client_signed_at is not None

    @property
    def canonical_artifact_path(self) -> str:
        """Storage key for the rendered document: {agent_id}/{soa_id}.pdf"""
        return f"{self.agent_id}/{self.id}.pdf"

    def summary(self) -> Dict[str, Any]:
        """Agent-facing summary used by the HTTP layer."""
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "client_id": self.client_id,
            "status": self.status.value,
            "delivery_method": self.delivery_method.value,
            "token_expires_at": self.token_expires_at.isoformat(),
            "language": self.language,
            "products_preselected": [p.value for p in self.products_preselected],
            "products_selected": [p.value for p in self.products_selected],
            "signer_type": self.signer_type.value if self.signer_type else None,
            "client_signed_at": self.client_signed_at.isoformat() if self.client_signed_at else None,
            "rep_name": self.rep_name,
            "rep_relationship": self.rep_relationship,
            "agent_name": self.agent_name,
            "agent_phone": self.agent_phone,
            "agent_npn": self.agent_npn,
            "beneficiary_name": self.beneficiary_name,
            "beneficiary_phone": self.beneficiary_phone,
            "beneficiary_address": self.beneficiary_address,
            "agent_signed_at": self.agent_signed_at.isoformat() if self.agent_signed_at else None,
            "initial_contact_method": self.initial_contact_method,
            "appointment_date": self.appointment_date.isoformat() if self.appointment_date else None,
            "signed_artifact_path": self.signed_artifact_path,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class SigningProjection(BaseModel):
    """The only view of an SOA an unauthenticated signer ever receives."""
    beneficiary_name: str
    agent_name: str
    agent_phone: Optional[str] = None
    products_preselected: List[SOAProduct] = Field(default_factory=list)
    language: str = "en"

    @classmethod
    def from_record(cls, record: SOARecord) -> "SigningProjection":
        return cls(
            beneficiary_name=record.beneficiary_name,
            agent_name=record.agent_name,
            agent_phone=record.agent_phone,
            products_preselected=list(record.products_preselected),
            language=record.language,
        )


class AuditLogEntry(BaseModel):
    """Immutable audit trail entry."""
    id: str
    soa_id: str
    action: AuditAction
    performed_by: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class RequestContext(BaseModel):
    """Network origin of a request, recorded on audit entries and signatures."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class ClientContact(BaseModel):
    """Minimal view of a CRM client needed to deliver a signing link."""
    client_id: str
    agent_id: str
    first_name: Optional[str] = None
    emails: List[str] = Field(default_factory=list)  # preferred first

    def resolve_email(self, requested: Optional[str] = None) -> Optional[str]:
        if requested:
            return requested if requested in self.emails else None
        return self.emails[0] if self.emails else None

"""
SQLAlchemy ORM Models for the Scope of Appointment service.

Tables:
- scope_of_appointments: one row per SOA (never deleted, regulatory retention)
- soa_audit_log: append-only audit trail, ordered by a monotonic sequence
- agents / clients / client_emails: CRM collaborator data, read-only here

Architecture:
- Primary Keys: string UUIDs (portable between SQLite and PostgreSQL)
- secure_token: unique, indexed, written once at creation
- Timestamps: timezone-aware UTC
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator


# Cross-database compatible JSON type
# Uses JSONB on PostgreSQL, JSON on SQLite/others
class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        else:
            return dialect.type_descriptor(JSON())


Base = declarative_base()


def _uuid_str() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# CRM COLLABORATOR TABLES
# =============================================================================

class AgentModel(Base):
    """Licensed agent account (owned by the identity system)."""
    __tablename__ = "agents"

    agent_id = Column(String(36), primary_key=True, default=_uuid_str)
    email = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)


class ClientModel(Base):
    """Prospective client record (owned by the CRM)."""
    __tablename__ = "clients"

    client_id = Column(String(36), primary_key=True, default=_uuid_str)
    agent_id = Column(String(36), ForeignKey("agents.agent_id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)


class ClientEmailModel(Base):
    """Email addresses on file for a client."""
    __tablename__ = "client_emails"

    email_id = Column(String(36), primary_key=True, default=_uuid_str)
    client_id = Column(String(36), ForeignKey("clients.client_id"), nullable=False, index=True)
    value = Column(String(255), nullable=False)
    is_preferred = Column(Boolean, nullable=False, default=False)


# =============================================================================
# SCOPE OF APPOINTMENT
# =============================================================================

class SOARecordModel(Base):
    """Scope of Appointment record."""
    __tablename__ = "scope_of_appointments"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    agent_id = Column(String(36), nullable=False, index=True)
    client_id = Column(String(36), nullable=False, index=True)

    status = Column(String(20), nullable=False, default="draft")
    delivery_method = Column(String(20), nullable=False, default="email")

    secure_token = Column(String(128), nullable=False, unique=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)

    language = Column(String(5), nullable=False, default="en")
    products_preselected = Column(JSONB, nullable=False, default=list)
    products_selected = Column(JSONB, nullable=False, default=list)

    # Client signature block
    signer_type = Column(String(20), nullable=True)
    client_typed_signature = Column(Text, nullable=True)
    client_signed_at = Column(DateTime(timezone=True), nullable=True)
    client_ip_address = Column(String(64), nullable=True)
    client_user_agent = Column(Text, nullable=True)
    rep_name = Column(String(200), nullable=True)
    rep_relationship = Column(String(100), nullable=True)

    # Agent / beneficiary
    agent_name = Column(String(200), nullable=False, default="")
    agent_phone = Column(String(40), nullable=True)
    agent_npn = Column(String(40), nullable=True)
    beneficiary_name = Column(String(200), nullable=False, default="")
    beneficiary_phone = Column(String(40), nullable=True)
    beneficiary_address = Column(Text, nullable=True)

    # Agent countersignature block
    agent_typed_signature = Column(Text, nullable=True)
    agent_signed_at = Column(DateTime(timezone=True), nullable=True)
    initial_contact_method = Column(String(40), nullable=True)
    appointment_date = Column(Date, nullable=True)

    signed_artifact_path = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_soa_secure_token", "secure_token", unique=True),
        Index("ix_soa_agent_client", "agent_id", "client_id"),
        Index("ix_soa_status_expiry", "status", "token_expires_at"),
    )


class SOAAuditLogModel(Base):
    """Append-only SOA audit trail."""
    __tablename__ = "soa_audit_log"

    # Monotonic sequence gives a stable order for entries sharing a timestamp
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True, default=_uuid_str)
    soa_id = Column(
        String(36),
        ForeignKey("scope_of_appointments.id"),
        nullable=False,
        index=True,
    )
    action = Column(String(40), nullable=False)
    performed_by = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_soa_audit_soa_seq", "soa_id", "seq"),
    )

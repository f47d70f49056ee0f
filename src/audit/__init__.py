"""
Audit Trail Module.

Append-only audit trail for Scope of Appointment records:

    from audit import SOAAuditLogger

    audit = SOAAuditLogger(uow_factory)
    await audit.record(uow, soa_id, AuditAction.SENT, performed_by=agent_id)
"""

from audit.soa_audit_logger import CRITICAL_ACTIONS, SOAAuditLogger

__all__ = [
    "CRITICAL_ACTIONS",
    "SOAAuditLogger",
]

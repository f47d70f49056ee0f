"""
Scope of Appointment services.

- TokenService: signing link issue and verification
- LifecycleManager: guarded status transitions
- SigningSessionController: public verify / submit
- SOAService: agent-side orchestration
"""

from .lifecycle import LifecycleManager
from .signing_session import (
    ClientSubmission,
    SigningSessionController,
    SubmitResult,
    VerifyResult,
    parse_submission,
    token_from_payload,
    validate_submission,
)
from .soa_service import (
    CountersignRequest,
    CreateSOARequest,
    EditSOARequest,
    SOAResult,
    SOAService,
)
from .token_service import TokenService, token_hint

__all__ = [
    "LifecycleManager",
    "TokenService",
    "token_hint",
    "SigningSessionController",
    "ClientSubmission",
    "VerifyResult",
    "SubmitResult",
    "validate_submission",
    "parse_submission",
    "token_from_payload",
    "SOAService",
    "SOAResult",
    "CreateSOARequest",
    "CountersignRequest",
    "EditSOARequest",
]

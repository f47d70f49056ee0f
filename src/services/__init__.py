"""
Services Module - Business logic services for the Scope of Appointment service.

Application Services (orchestration):
- SOAService: agent-side create / resend / void / countersign / edit / render
- SigningSessionController: unauthenticated client verify and submit

Domain Services (business logic):
- LifecycleManager: guarded status transitions
- TokenService: signing link issue and verification

Infrastructure Services:
- Logging and observability (logging_config)

Service classes live in services.soa and are wired together in
web.dependencies; nothing is imported here eagerly so that low-level
modules can use services.logging_config.
"""

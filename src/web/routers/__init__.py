"""
FastAPI Routers - Modular endpoint organization.

Router modules:
- soa: agent-side Scope of Appointment endpoints
- soa_public: unauthenticated signing endpoints
- health: health checks
"""

from .health import router as health_router
from .soa import router as soa_router
from .soa_public import router as soa_public_router

__all__ = [
    "health_router",
    "soa_router",
    "soa_public_router",
]

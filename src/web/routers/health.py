"""
Health Check Endpoints

Provides:
1. /health - Database and document rendering status
2. /health/live - Simple liveness probe (for k8s)
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from web.dependencies import SOAContainer, get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


async def _check_database(container: SOAContainer) -> Dict[str, Any]:
    """Check database connectivity."""
    try:
        start = time.time()
        async with container.uow_factory() as uow:
            await uow.session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "error": "Database unavailable"}


def _check_rendering(container: SOAContainer) -> Dict[str, Any]:
    if container.renderer.is_configured:
        return {"status": "healthy"}
    return {"status": "unhealthy", "error": "Template or signature font not loaded"}


@router.get("/health")
async def health(container: SOAContainer = Depends(get_container)):
    checks = {
        "database": await _check_database(container),
        "rendering": _check_rendering(container),
        "email": {"provider": container.notifier.provider.provider_name},
    }
    healthy = all(
        check.get("status", "healthy") == "healthy" for check in checks.values()
    )
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": checks,
        },
    )


@router.get("/health/live")
async def liveness():
    return {"status": "alive"}

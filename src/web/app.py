"""
FastAPI application for the Scope of Appointment service.

Routes:
- /api/soa/...        : agent endpoints (bearer token), see web.routers.soa
- /api/soa/verify,
  /api/soa/opened,
  /api/soa/client-sign,
  /api/soa/documents  : public signing endpoints, see web.routers.soa_public
- /health             : health checks

Startup (lifespan):
1. configure logging
2. validate production security settings
3. initialize the database
4. validate the SOA template and signature font
5. wire the services onto app.state.soa
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.database import get_database_settings
from config.settings import Settings, get_settings, get_soa_settings, validate_startup_security
from database.async_engine import close_database, get_async_session_factory, init_database
from security.api_errors import RequestIDMiddleware, register_exception_handlers
from services.logging_config import configure_logging
from web.dependencies import SOAContainer, build_container, load_renderer_config
from web.routers import health_router, soa_public_router, soa_router

logger = logging.getLogger(__name__)


def create_app(
    container: Optional[SOAContainer] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        container: Pre-built services (tests). When omitted, the lifespan
            builds them from the environment and owns the database engine.
        settings: Application settings; defaults to the environment
    """
    settings = settings or get_settings()
    owns_container = container is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_container:
            configure_logging(level=settings.log_level, json_output=settings.log_json)
            validate_startup_security(settings)

            db_settings = get_database_settings()
            await init_database(db_settings)

            soa_settings = get_soa_settings()
            renderer_config = load_renderer_config(soa_settings, strict=settings.is_production)
            app.state.soa = build_container(
                session_factory=get_async_session_factory(db_settings),
                settings=soa_settings,
                renderer_config=renderer_config,
            )
            logger.info(f"{settings.name} {settings.version} started ({settings.environment})")

        try:
            yield
        finally:
            await app.state.soa.notifier.drain()
            if owns_container:
                await close_database()
                logger.info(f"{settings.name} stopped")

    app = FastAPI(
        title=settings.name,
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.soa = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)
    register_exception_handlers(app)

    # Public routes first: /api/soa/verify must not be captured by /api/soa/{soa_id}
    app.include_router(soa_public_router)
    app.include_router(soa_router)
    app.include_router(health_router)

    return app

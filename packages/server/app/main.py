"""
Nuclio API Server

Entry point for the FastAPI application.
"""

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.auth import Authenticator, build_authenticator
from app.core.config import Settings, get_settings
from app.core.database import Database
from app.core.email import EmailSender, build_email_sender
from app.core.errors import register_error_handlers
from app.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware, StagingGateMiddleware
from app.core.redis import RevocationList, build_revocation_list
from app.api.routes import router as api_router

log = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    email_sender: Optional[EmailSender] = None,
    authenticator: Optional[Authenticator] = None,
    revocations: Optional[RevocationList] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators are built here from settings unless the caller passes them in.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Nuclio",
        description="Team to-dos with org-wide and per-person sharing.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.database = database or Database(settings.database_url, echo=settings.debug)
    app.state.email_sender = email_sender or build_email_sender(settings)
    app.state.revocations = revocations or build_revocation_list(settings)
    app.state.authenticator = authenticator or build_authenticator(settings, app.state.revocations)

    register_error_handlers(app)

    # Middleware (last added runs outermost)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.environment == "production")
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(StagingGateMiddleware, enabled=settings.staging_gate_enabled)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    )

    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check(request: Request):
        """Readiness check endpoint: the database must answer."""
        try:
            await request.app.state.database.ping()
        except Exception as exc:
            log.error("ready.database_unavailable", error=str(exc))
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info(
            "Nuclio starting",
            environment=settings.environment,
            auth_mode=settings.auth_mode,
            email_backend=settings.email_backend,
        )
        if settings.environment == "development" and settings.database_url.startswith("sqlite"):
            await app.state.database.create_all()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("Nuclio shutting down")
        await app.state.email_sender.close()
        await app.state.database.dispose()
        await app.state.revocations.close()

    return app


app = create_app()

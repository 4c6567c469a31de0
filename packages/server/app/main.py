"""
Hive API Server

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.core.config import get_settings
from app.core.database import engine, init_db
from app.core.errors import register_exception_handlers
from app.core.logs import configure_logging
from app.core.mailer import build_email_sender
from app.core.middleware import CSRFMiddleware, RequestContextMiddleware, SecurityHeadersMiddleware
from app.core.notifier import EventNotifier
from app.core.redis import close_redis, ping_redis
from app.permissions.policies import build_permission_engine
from app.api.v1 import router as api_v1_router
from app.api.v1.auth import router as auth_router

settings = get_settings()
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Hive API starting", debug=settings.debug)
    if settings.debug:
        await init_db()
    yield
    log.info("Hive API shutting down")
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant organizations, memberships, projects and tasks.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Long-lived services, constructed once per app
    app.state.permissions = build_permission_engine()
    app.state.notifier = EventNotifier(settings.sse_ping_interval_seconds, settings.sse_retry_ms)
    app.state.mailer = build_email_sender(settings)

    register_exception_handlers(app)

    # Middleware (last added runs outermost)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "X-CSRF-Token", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    # Auth routes (no session required)
    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database and redis reachable."""
        checks = {"database": "ok", "redis": "ok"}
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:  # noqa: BLE001 - reported in the probe body
            log.warning("ready.database_failed", error=str(exc))
            checks["database"] = "unavailable"
        try:
            await ping_redis()
        except Exception as exc:  # noqa: BLE001 - reported in the probe body
            log.warning("ready.redis_failed", error=str(exc))
            checks["redis"] = "unavailable"
        ready = all(v == "ok" for v in checks.values())
        status = "ready" if ready else "not_ready"
        return JSONResponse(status_code=200 if ready else 503, content={"status": status, "checks": checks})

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port, reload=settings.debug)

# consultbook/main.py
from __future__ import annotations

# Load .env early so os.getenv works everywhere
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from consultbook.core.business import utc_now
from consultbook.core.config import Settings, settings as default_settings
from consultbook.core.errors import AppError, ErrorSeverity, UnauthorizedError, error_aggregator, log_error
from consultbook.core.logging import LoggingMiddleware, get_logger, setup_logging
from consultbook.db.base import init_db
from consultbook.db.session import engine as default_engine, make_session_factory
from consultbook.services.cache import AvailabilityCache
from consultbook.services.container import build_services
from consultbook.services.ledger import Clock
from consultbook.services.notifications import Notifier

from consultbook.api.routes.admin import router as admin_router
from consultbook.api.routes.auth import router as auth_router
from consultbook.api.routes.bookings import router as bookings_router
from consultbook.api.routes.contact import router as contact_router

setup_logging(
    debug=default_settings.is_development,
    max_log_length=default_settings.MAX_LOG_LENGTH,
    level=default_settings.LOG_LEVEL,
)
error_aggregator.log_threshold = default_settings.ERROR_AGGREGATION_THRESHOLD
logger = get_logger(__name__)


def _endpoint(request: Request) -> str:
    """Route template (/api/bookings/{token}) so error fingerprints don't vary per token."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _error_response(status_code: int, message: str, details=None) -> JSONResponse:
    body = {"message": message, "status": status_code}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def create_app(settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None,
               notifier: Optional[Notifier] = None, cache: Optional[AvailabilityCache] = None,
               clock: Clock = utc_now, create_tables: Optional[bool] = None) -> FastAPI:
    """
    Wire the API around one engine and one services bundle. Tests pass their
    own engine, notifier and clock; production uses the module defaults.
    """
    settings = settings or default_settings
    engine = engine or default_engine
    session_factory = make_session_factory(engine)
    if create_tables is None:
        # production schema comes from alembic
        create_tables = settings.is_development

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app_startup", env=settings.APP_ENV)
        if create_tables:
            await init_db(engine)
        services = build_services(session_factory, settings, notifier=notifier, cache=cache, clock=clock)
        app.state.services = services
        await services.auth.ensure_admin_user(settings.ADMIN_EMAIL, settings.ADMIN_INITIAL_PASSWORD)
        yield
        logger.info("app_shutdown", notification_failures=services.dispatcher.failures)
        await services.close()

    app = FastAPI(title="Consultbook", description="Consultation booking API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials="*" not in settings.allowed_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(LoggingMiddleware(
        log_requests=settings.LOG_REQUESTS or settings.is_development,
        slow_threshold=settings.SLOW_REQUEST_THRESHOLD,
    ))

    # -------- Error envelopes --------
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        headers = {"WWW-Authenticate": "Basic"} if isinstance(exc, UnauthorizedError) else None
        if exc.status_code >= 500:
            log_error(exc, {"endpoint": _endpoint(request)}, ErrorSeverity.MEDIUM)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        logger.info("validation_failed", errors=len(details))
        return _error_response(400, "Invalid request", details)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        log_error(exc, {"endpoint": _endpoint(request), "component": "api"}, ErrorSeverity.HIGH)
        return _error_response(500, "Internal server error")

    # -------- Health / readiness (public) --------
    @app.get("/healthz", include_in_schema=False)
    async def healthz():
        return {"ok": True}

    @app.get("/readyz", include_in_schema=False)
    async def readyz():
        async with session_factory() as db:
            await db.execute(sa.text("SELECT 1"))
        return {"db": "ok"}

    @app.get("/api/health")
    async def api_health():
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            async with session_factory() as db:
                await db.execute(sa.text("SELECT 1"))
        except Exception as e:
            log_error(e, {"endpoint": "/api/health", "component": "db"}, ErrorSeverity.HIGH)
            return JSONResponse(status_code=500, content={
                "status": "error", "message": "Health check failed", "timestamp": timestamp,
            })
        return {"status": "ok", "timestamp": timestamp, "environment": settings.APP_ENV}

    app.include_router(bookings_router)
    app.include_router(admin_router)
    app.include_router(auth_router)
    app.include_router(contact_router)
    return app


app = create_app()

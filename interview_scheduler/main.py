"""FastAPI application factory with middleware, routers, and lifespan."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from pathlib import Path

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import settings, setup_logging
from .database.base import SessionLocal, get_db
from .dependencies import AuthRequired
from .errors import SchedulingError
from .integrations.locks import create_lock_service
from .interview.service import SchedulingService
from .notifications.dispatch import NotificationDispatcher, create_dispatcher
from .notifications.service import send_due_reminders
from .rate_limit import limiter

logger = logging.getLogger(__name__)

_startup_time: float = 0.0


def _run_migrations() -> None:
    """Run Alembic migrations (upgrade head) on startup."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(Path(__file__).parent.parent / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.effective_database_url)
    command.upgrade(alembic_cfg, "head")


def _reminder_sweep(dispatcher: NotificationDispatcher) -> int:
    db = SessionLocal()
    try:
        return send_due_reminders(db, dispatcher)
    finally:
        db.close()


async def _reminder_loop(dispatcher: NotificationDispatcher) -> None:
    """Run the reminder sweep every ``reminder_interval_seconds`` until cancelled."""
    while True:
        try:
            sent = await asyncio.to_thread(_reminder_sweep, dispatcher)
            if sent:
                logger.info("Reminder sweep sent %d reminders", sent)
        except Exception:
            logger.exception("Reminder sweep failed")
        await asyncio.sleep(settings.reminder_interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    global _startup_time
    _startup_time = time.time()

    setup_logging()
    if settings.run_migrations_on_startup:
        _run_migrations()

    app.state.dispatcher = create_dispatcher()
    app.state.scheduler = SchedulingService(create_lock_service(), app.state.dispatcher)

    reminders = asyncio.create_task(_reminder_loop(app.state.dispatcher))
    try:
        yield
    finally:
        reminders.cancel()
        with suppress(asyncio.CancelledError):
            await reminders


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    retry_after = "60"
    return JSONResponse(
        {"error": "Too many requests", "detail": str(exc.detail), "retry_after": int(retry_after)},
        status_code=429,
        headers={"Retry-After": retry_after},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Interview Scheduler",
        lifespan=lifespan,
    )

    # --- Exception handlers ---
    @app.exception_handler(AuthRequired)
    async def auth_required_handler(request: Request, exc: AuthRequired):
        return JSONResponse({"error": "Authentication required"}, status_code=401)

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    # --- Middleware stack (LIFO: last added = outermost) ---

    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        max_age=86400 * 7,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    if settings.trusted_hosts_list != ["*"]:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=settings.trusted_hosts_list,
        )

    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response

    # --- API v1 (all JSON endpoints) ---
    from .api_v1 import api_v1_router

    app.include_router(api_v1_router)

    # --- Health check ---
    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        db_status = "ok"
        try:
            db.execute(text("SELECT 1"))
        except Exception:
            db_status = "unreachable"

        status = "ok" if db_status == "ok" else "degraded"
        uptime = round(time.time() - _startup_time, 1) if _startup_time else 0.0

        return {
            "status": status,
            "db": db_status,
            "version": "1.0.0",
            "uptime_seconds": uptime,
        }

    return app


app = create_app()

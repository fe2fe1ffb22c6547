"""
api/main.py -- FastAPI application entry point for the enrollment portal.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the configured client origin
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every process-wide resource once (database handle, stores,
session store, notification service, identity strategies), hangs them on
app.state, and tears them down symmetrically on shutdown. Nothing is
re-initialized implicitly.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.catalog import router as catalog_router
from api.routes.notifications import router as notifications_router
from api.routes.reports import router as reports_router
from api.routes.students import router as students_router
from auth.dependencies import build_identity_strategies, require_admin
from auth.models import User
from auth.store import UserStore
from core.config import get_settings
from core.database import Database
from notifications.service import NotificationService
from registrar.store import RegistrarStore
from sessions.store import DEFAULT_DB_PATH as DEFAULT_SESSION_DB
from sessions.store import SessionStore

API_VERSION = "1.0.0"

_PURGE_INTERVAL_SECONDS = 6 * 60 * 60

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("enrollment.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired sessions every 6 hours.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        removed = app.state.sessions.purge_expired()
        if removed:
            logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Database first -- every store registers its tables on it.
      2. Stores second -- user_store and registrar share the one Database.
      3. Sessions and strategies -- strategies hold the session store.
      4. Notification service -- writes its audit rows through registrar.
      5. Purge task last -- references app.state.sessions.
    """
    logger.info("Enrollment API starting up (environment=%s)", settings.environment)
    db = Database(settings.database_url)
    app.state.db = db
    app.state.user_store = UserStore(db)
    app.state.registrar = RegistrarStore(db)
    app.state.sessions = SessionStore(
        settings.session_secret,
        db_path=settings.session_db_path or DEFAULT_SESSION_DB,
        ttl=settings.session_ttl_seconds,
    )
    app.state.identity_strategies = build_identity_strategies(
        app.state.sessions,
        session_enabled=settings.session_auth_enabled,
        token_enabled=settings.token_auth_enabled,
    )
    app.state.notifier = NotificationService(settings, app.state.registrar)
    if app.state.user_store.count_admins() == 0:
        logger.warning("No admin account exists. Create one with: python main.py create-admin")
    logger.info(
        "Auth initialized (strategies=%s)",
        ",".join(s.name for s in app.state.identity_strategies) or "none",
    )
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    app.state.notifier.close()
    app.state.sessions.close()
    db.close()
    logger.info("Enrollment API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Enrollment Portal API",
    description="Student registration, enrollment and administration.",
    version=API_VERSION,
    lifespan=lifespan,
    # Disable built-in /docs and /redoc so we can add auth protection.
    # Admin-only equivalents are registered below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.client_origin],
    # Any localhost port in development (Vite, CRA, etc.).
    allow_origin_regex=None if settings.is_production else r"^http://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Pattern: Interceptor / Chain of Responsibility. Every request passes through
# this coroutine before reaching any route handler.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(students_router, prefix="/api", tags=["Students"])
app.include_router(catalog_router, prefix="/api", tags=["Catalog"])
app.include_router(notifications_router, prefix="/api", tags=["Notifications"])
app.include_router(reports_router, prefix="/api", tags=["Reports"])


# ---------------------------------------------------------------------------
# Admin-only API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(require_admin)):
    """Swagger UI -- admin only."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Enrollment Portal API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(require_admin)):
    """ReDoc UI -- admin only."""
    return get_redoc_html(openapi_url="/openapi.json", title="Enrollment Portal API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

_DEFAULT_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc.detail),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with field-level issues when the body or query params fail validation."""
    issues = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                issues=issues,
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=_DEFAULT_CODES.get(exc.status_code, f"http_{exc.status_code}"),
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged server-side only, never written to the
    response body. The client receives only a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return liveness plus a database round-trip check."""
    db_ok = request.app.state.db.ping()
    body = HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "unavailable"},
    )
    return JSONResponse(status_code=200 if db_ok else 503, content=body.model_dump())

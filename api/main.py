"""
api/main.py -- FastAPI application entry point for authcore.

Run with:      uvicorn asgi:app --reload
Migrate only:  python -m db.migrate

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- credentialed CORS for configured browser origins
  2. log_requests   -- one log line per request with latency

Lifespan handles startup (engine, migrations, session service, purge task)
and shutdown (cancel purge task, dispose engine) symmetrically. A migration
failure aborts startup: the server never listens with an unknown schema.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.service import ConflictError, InvalidCredentialsError, SessionService, UnauthorizedError
from core.config import get_settings
from db.engine import create_db_engine, probe_database
from db.errors import ServiceUnavailableError, is_service_unavailable, service_unavailable_response
from db.migrate import run_migrations

__version__ = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authcore.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired session rows every interval_seconds.

    Lookups already ignore expired rows; this only keeps the table small.
    A failed pass is logged and retried on the next tick.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(app.state.sessions.purge_expired)
        except Exception:
            logger.warning("Expired session purge failed", exc_info=True)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage the pooled engine and dependent services for the server lifetime.

    Startup order matters:
      1. Engine first -- everything else talks to the database through it.
      2. Migrations second -- schema must be current before any query.
      3. Session service and purge task last.
    """
    settings = get_settings()
    logger.info("authcore API starting up (env=%s)", settings.app_env)
    engine = create_db_engine(settings)
    try:
        if settings.auto_migrate_on_boot:
            applied = run_migrations(engine)
            logger.info("Migrations complete (%d applied)", len(applied))
    except Exception:
        engine.dispose()
        raise

    app.state.db = engine
    app.state.sessions = SessionService(engine, session_days=settings.session_days)
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))
    logger.info("Session service initialized (session_days=%d)", settings.session_days)

    yield

    # Shutdown
    app.state.purge_task.cancel()
    app.state.db.dispose()
    logger.info("authcore API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="authcore API",
    description="Email/password registration, login, and cookie sessions.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

if _settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_settings.cors_origins,
        allow_credentials=True,  # the sid cookie must travel with cross-origin calls
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
        max_age=3600,
    )


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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same ErrorResponse envelope ({"error": "..."}).
# Domain errors map to fixed messages; storage internals never reach clients.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return _error(409, "Email already registered")


@app.exception_handler(InvalidCredentialsError)
async def invalid_credentials_handler(request: Request, exc: InvalidCredentialsError) -> JSONResponse:
    resp = _error(401, "Invalid credentials")
    resp.headers["Cache-Control"] = "no-store"
    return resp


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
    return _error(401, "Unauthorized")


@app.exception_handler(ServiceUnavailableError)
async def service_unavailable_handler(request: Request, exc: ServiceUnavailableError) -> JSONResponse:
    logger.warning("Service unavailable on %s %s: %r", request.method, request.url.path, exc.__cause__)
    return JSONResponse(status_code=503, content=service_unavailable_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the request body fails validation.

    Only the failing field locations are logged. Full error detail echoes the
    submitted input, which can include the password.
    """
    logger.debug("Validation failed on %s: %s", request.url.path, [err.get("loc") for err in exc.errors()])
    return _error(422, "Request validation failed.")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    Consults the failure classifier first: a transient storage fault that
    escaped translate_storage_errors() still becomes a 503. The raw exception
    is logged server-side only.
    """
    if is_service_unavailable(exc):
        logger.warning("Service unavailable on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content=service_unavailable_response())
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# The database probe has a hard timeout so a hung pool cannot hang the check.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> JSONResponse:
    """Return liveness plus a bounded database probe."""
    database = "ok"
    try:
        await probe_database(request.app.state.db, get_settings().db_probe_timeout_ms)
    except Exception as exc:
        logger.warning("Database probe failed: %s", exc)
        database = "error"

    healthy = database == "ok"
    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        components={"app": "ok", "database": database},
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())

"""
api/main.py -- FastAPI application entry point for TaskNest.

Run with:      uvicorn asgi:app --reload
               tasknest serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. log_requests          -- one log line per request with latency
  4. enforce_timeout       -- bounds each request to REQUEST_TIMEOUT_SECONDS
  5. hydrate_session       -- builds the per-request AuthContext from the
                              session cookie and writes cookie changes back

Lifespan handles startup (engine, stores, session store, purge task) and
shutdown (cancel purge task, close session store, dispose engine)
symmetrically.

Every error leaves through the exception handlers at the bottom of this file
and is rendered as {"success": false, "message": ...}.
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
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.folders import router as folders_router
from api.routes.v1.tasks import router as tasks_router
from api.routes.v1.users import router as users_router
from auth.service import AuthService
from auth.sessions import build_session_store
from auth.store import UserStore
from auth.tokens import clear_session_cookie, set_session_cookie
from core.config import get_settings
from core.database import create_db_engine
from core.errors import ApiError, ServerError
from tasks.store import TaskStore

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tasknest.api")

settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired sessions every SESSION_PURGE_INTERVAL_SECONDS.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine. A database error in one pass is
    logged and the loop keeps going.
    """
    while True:
        await asyncio.sleep(settings.session_purge_interval_seconds)
        try:
            purged = await run_in_threadpool(app.state.sessions.purge_expired)
        except SQLAlchemyError:
            logger.exception("Session purge failed")
            continue
        if purged:
            logger.info("Purged %d expired session(s)", purged)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def init_state(app: FastAPI, engine) -> None:
    """Build the stores and the AuthService on app.state around one engine.

    Called by lifespan on startup; tests call it directly with an in-memory
    engine.
    """
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.task_store = TaskStore(engine)
    app.state.sessions = build_session_store(
        settings.session_backend,
        settings.session_expire_seconds,
        engine=engine,
    )
    app.state.auth_service = AuthService(app.state.user_store, app.state.sessions)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters: the engine before the stores, the stores before
    the AuthService, the session store before the purge task that uses it.
    """
    # Startup
    logger.info("TaskNest API starting up")
    init_state(app, create_db_engine(settings.database_url))
    logger.info("Database ready; session backend=%s", settings.session_backend)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    app.state.sessions.close()
    app.state.engine.dispose()
    logger.info("TaskNest API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TaskNest API",
    description="Personal task management: folders, tasks, and cookie-backed sessions.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Session hydration middleware
#
# Resolves the session cookie once per request into an AuthContext on
# request.state.auth. On the way out it writes whatever the handler decided:
# a freshly issued token (login, password change) or an expired cookie
# (logout, account deletion, stale or unknown token). Route handlers never
# touch the session cookie themselves.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def hydrate_session(request: Request, call_next):
    service: AuthService = request.app.state.auth_service
    token = request.cookies.get(settings.session_cookie_name)
    ctx = await run_in_threadpool(service.hydrate, token)
    request.state.auth = ctx

    response = await call_next(request)

    if ctx.issued_token:
        set_session_cookie(response, ctx.issued_token)
    elif ctx.clear_cookie:
        clear_session_cookie(response)
    return response


# ---------------------------------------------------------------------------
# Request timeout middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def enforce_timeout(request: Request, call_next):
    try:
        return await asyncio.wait_for(call_next(request), timeout=settings.request_timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(
            "Request timed out after %.1fs: %s %s",
            settings.request_timeout_seconds,
            request.method,
            request.url.path,
        )
        return _error_response(ServerError())


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time is captured around call_next so latency is
# reported on every response.
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
# Outer middleware
#
# add_middleware() wraps everything registered before it, so these two end
# up outermost: bad Host headers and CORS preflights never reach hydration.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts,
)

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])
app.include_router(folders_router, tags=["Folders"])
app.include_router(tasks_router, tags=["Tasks"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {success, message} envelope so API clients can
# parse errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render any ApiError raised by a handler, dependency or service."""
    return _error_response(exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render routing errors (unknown path -> 404, wrong method -> 405).

    Headers are preserved so a 405 still carries its Allow header.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail)).model_dump(exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when a path or query parameter fails type validation."""
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())[1:]]
        errors.setdefault(".".join(loc) or "request", []).append(err.get("msg", "Invalid value."))
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(message="Validation failed.", errors=errors).model_dump(),
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Database failures: full detail to the log, generic message to the client."""
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error_response(ServerError())


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(ServerError())


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. Public: load balancers probe it
# without a session.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Return API liveness, version, and database reachability."""
    database = "ok"
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "unavailable"
    body = HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": database},
    )
    return JSONResponse(status_code=200 if database == "ok" else 503, content=body.model_dump())

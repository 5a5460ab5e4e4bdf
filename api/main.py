"""
api/main.py -- FastAPI application entry point for the billing auth service.

Run with:  uvicorn api.main:app --reload
           python main.py

Middleware stack (outermost to innermost):
  1. log_requests   -- one log line per request (method, path, status, latency),
                       written even when the handler raises (logged as 500)
  2. CORSMiddleware -- adds CORS headers for the configured browser origins

Lifespan builds the long-lived objects once and parks them on app.state:
  settings, credential_store, mailer, token_service, otp_engine,
  session_manager, provisioning
then runs the first-admin bootstrap before the server accepts traffic, and
disposes the DB engine on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, HealthResponse, MessageResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError
from auth.otp import OtpEngine
from auth.provisioning import AdminProvisioning, ensure_first_admin
from auth.sessions import SessionManager
from auth.store import CredentialStore
from auth.tokens import TokenService
from core.config import get_settings
from core.mailer import build_mailer

_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("billingauth.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Store first -- everything else reads or writes through it.
      2. Services next -- OtpEngine needs the mailer, AdminProvisioning
         needs the OtpEngine.
      3. Bootstrap last -- may insert the first Admin. A database that cannot
         be reached fails here and the server never starts serving.
    """
    settings = get_settings()
    logger.info("Billing auth API starting up")

    store = CredentialStore(settings.database_url)
    mailer = build_mailer(settings)
    tokens = TokenService(settings)
    otp_engine = OtpEngine(store, mailer, ttl_minutes=settings.otp_expire_min)

    app.state.settings = settings
    app.state.credential_store = store
    app.state.mailer = mailer
    app.state.token_service = tokens
    app.state.otp_engine = otp_engine
    app.state.session_manager = SessionManager(store, tokens)
    app.state.provisioning = AdminProvisioning(store, otp_engine, bcrypt_rounds=settings.bcrypt_rounds)

    ensure_first_admin(store, settings)
    logger.info("Auth initialized (email_backend=%s)", settings.email_backend)

    yield

    store.close()
    logger.info("Billing auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Billing Auth API",
    description="OTP verification, password login and refresh-token sessions for the billing app.",
    version=_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Only method, path, status, latency and client address are logged. Bodies
# carry passwords, codes and tokens and are never echoed.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s %d %.1fms %s",
            request.method,
            request.url.path,
            status,
            ms,
            request.client.host if request.client else "unknown",
        )


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {message, error?} envelope so clients can read
# `message` on any failure without looking at the status code first.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, code: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error=code).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a domain failure with the status and code the error class carries."""
    return _error(exc.status_code, exc.message, exc.code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON or wrongly typed fields are a plain 400 like any other bad input."""
    return _error(400, "Invalid request body", "validation_error")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the envelope for HTTP exceptions raised by dependencies and routing.

    Dependencies raise HTTPException with detail={"error": ..., "message": ...}.
    Use it directly rather than stringifying the dict.
    """
    if isinstance(exc.detail, dict):
        return _error(exc.status_code, str(exc.detail.get("message", "")), exc.detail.get("error"))
    return _error(exc.status_code, str(exc.detail), f"http_{exc.status_code}")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for storage, transport and programming errors.

    The exception goes to the log only. The client gets a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "Server error")


# ---------------------------------------------------------------------------
# Root and health
# ---------------------------------------------------------------------------


@app.get("/", response_model=MessageResponse, tags=["Health"])
async def root() -> MessageResponse:
    return MessageResponse(message="Billing Auth API running")


@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness plus a database round trip. Never requires authentication."""
    database = "ok"
    try:
        request.app.state.credential_store.ping()
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable")
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=_VERSION, components={"app": "ok", "database": database})

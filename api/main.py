"""
api/main.py -- FastAPI application factory for OtpGate.

Run with:      python main.py serve
               uvicorn api.main:create_app --factory --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- adds CORS headers for allowed browser origins; the
                       session rides in a cookie, so credentials are allowed.
  2. log_requests   -- one access-log line per request with latency.

create_app() takes Settings (or reads them once via get_settings()) and pins
them on app.state. Lifespan is the composition root: it builds the engine,
stores, hasher, mailer and session issuer from those settings and hands them
to AuthService. Nothing below this module reaches for global configuration.
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
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import AuthError
from auth.mailer import build_mailer
from auth.passwords import CredentialHasher
from auth.service import AuthService
from auth.store import AccountStore, PendingRegistrationStore, create_db_engine
from auth.tokens import SessionIssuer
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("otpgate.api")

# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def build_auth_service(settings: Settings, engine: Engine) -> AuthService:
    """Wire AuthService and its collaborators from settings."""
    return AuthService(
        accounts=AccountStore(engine),
        pending=PendingRegistrationStore(engine),
        hasher=CredentialHasher(rounds=settings.bcrypt_rounds),
        mailer=build_mailer(settings),
        sessions=SessionIssuer(settings.secret_key, ttl_seconds=settings.token_expire_seconds),
        otp_ttl_seconds=settings.otp_ttl_seconds,
    )


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired pending registrations every interval_seconds.

    This is the cleanup path for signups that were never verified. A
    database error is logged and the loop carries on; CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = app.state.auth_service.pending.purge_expired()
        except SQLAlchemyError:
            logger.exception("Pending registration purge failed")
            continue
        if removed:
            logger.info("Purged %d expired pending registrations", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application resources on startup and release them on shutdown."""
    settings: Settings = app.state.settings
    logger.info("OtpGate API starting up (environment=%s)", settings.environment)
    app.state.engine = create_db_engine(settings.database_url)
    app.state.auth_service = build_auth_service(settings, app.state.engine)
    app.state.secure_cookies = settings.secure_cookies
    logger.info("Auth initialized (mail_mode=%s, secure_cookies=%s)", settings.mail_mode, settings.secure_cookies)
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.pending_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    app.state.engine.dispose()
    logger.info("OtpGate API shutdown complete")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


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
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a domain error with the status code it declares.

    401 responses get Cache-Control: no-store like every other credential
    response.
    """
    response = _error_response(exc.status_code, exc.code, exc.message, exc.detail)
    if exc.status_code == 401:
        response.headers["Cache-Control"] = "no-store"
    return response


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are reported as 400 bad_request, like missing fields."""
    # loc + msg only: the raw input may be a password.
    detail = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
    return _error_response(400, "bad_request", "Request validation failed.", detail)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the OtpGate FastAPI app.

    settings defaults to get_settings(); tests pass their own instance.
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="OtpGate API",
        description="Email/password accounts with OTP email verification and cookie sessions.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.middleware("http")(log_requests)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )

    app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
    app.add_api_route("/api/v1/health", health, methods=["GET"], tags=["Health"])

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    return app

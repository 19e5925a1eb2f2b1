"""
api/main.py -- FastAPI application entry point for St0r Auth.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan opens the account store, creates the bootstrap admin on an empty
database and wires the auth services onto app.state; shutdown closes the store.

Error contract: every non-2xx body is {"error": "<message>"}. AuthError
subclasses carry their own status code; anything unexpected is logged with
its traceback and answered with a bare 500.
"""

from __future__ import annotations

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
from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.profile import router as profile_router
from api.routes.twofa import router as twofa_router
from auth.bootstrap import ensure_bootstrap_account
from auth.dependencies import require_elevated
from auth.errors import AuthError, StorageError
from auth.login import LoginOrchestrator
from auth.models import Claims
from auth.store import AccountStore
from auth.tokens import SessionIssuer
from auth.totp import TOTPEngine
from auth.twofactor import TwoFactorService
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
logger = logging.getLogger("st0r.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def attach_services(app: FastAPI, store: AccountStore, settings: Settings) -> None:
    """Build the auth components around one store and hang them on app.state.

    Shared by the real lifespan and the test lifespan so both wire the same
    graph; only the store differs.
    """
    engine = TOTPEngine(
        issuer=settings.totp_issuer,
        backup_key=settings.secret_key,
        window_steps=settings.totp_valid_window,
    )
    issuer = SessionIssuer(settings.secret_key, settings.token_expire_seconds)
    app.state.account_store = store
    app.state.totp_engine = engine
    app.state.session_issuer = issuer
    app.state.login = LoginOrchestrator(store, engine, issuer)
    app.state.twofactor = TwoFactorService(store, engine, backup_code_count=settings.backup_code_count)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store, bootstrap the first admin, wire services. Close on shutdown."""
    logger.info("St0r Auth API starting up")
    store = AccountStore(_settings.database_url) if _settings.database_url else AccountStore()
    ensure_bootstrap_account(store, _settings)
    attach_services(app, store, _settings)
    logger.info("Auth initialized (token lifetime %ds)", _settings.token_expire_seconds)

    yield

    app.state.account_store.close()
    logger.info("St0r Auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="St0r Auth API",
    description="Credential login, TOTP second factor and bearer sessions for the St0r GUI.",
    version=__version__,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below by elevated-only routes.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
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
app.include_router(twofa_router, prefix="/api", tags=["Two-Factor"])
app.include_router(profile_router, prefix="/api", tags=["Profile"])


# ---------------------------------------------------------------------------
# Elevated-only API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(claims: Claims = Depends(require_elevated)):
    """Swagger UI -- elevated accounts only."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="St0r Auth API")


@app.get("/redoc", include_in_schema=False)
async def redoc(claims: Claims = Depends(require_elevated)):
    """ReDoc UI -- elevated accounts only."""
    return get_redoc_html(openapi_url="/openapi.json", title="St0r Auth API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any auth-core failure. StorageError detail goes to the log only."""
    if isinstance(exc, StorageError):
        logger.error(
            "Storage failure on %s %s: %s",
            request.method,
            request.url.path,
            exc.detail,
            exc_info=exc.__cause__ or exc,
        )
    return _error(exc.status_code, exc.message)


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when the login window is exhausted.

    Plain def: for sync endpoints SlowAPIMiddleware calls the handler without
    awaiting it.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many login attempts, please try again later.")
    response.headers["Retry-After"] = str(retry_after)
    return response


app.add_exception_handler(RateLimitExceeded, rate_limit_handler)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed body or query params. 400, as for any other bad input."""
    # Pydantic error entries carry the rejected input; keep it out of the log.
    errors = [{k: e.get(k) for k in ("loc", "type", "msg")} for e in exc.errors()]
    logger.info("Request validation failed on %s: %s", request.url.path, errors)
    return _error(400, "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No auth and no rate limit.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=__version__)

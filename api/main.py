"""
api/main.py -- FastAPI application entry point for ChatLink.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds every long-lived collaborator exactly once and hangs it on
app.state: the user store, the credential codec, the remote session gateway
and the SyncOrchestrator that composes them. Settings are read here and passed
down by constructor; the sync layer holds no module-level configuration.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from chat.crypto import CredentialCodec
from chat.gateway import RemoteSessionGateway
from chat.sync import SyncOrchestrator
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("chatlink.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application-level resources on startup; release them on shutdown.

    Startup order matters: the codec validates CRYPTO_KEY and the store
    creates the schema before the orchestrator that depends on both exists.
    """
    logger.info("ChatLink API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    codec = CredentialCodec(_settings.crypto_key)
    gateway = RemoteSessionGateway(_settings)
    app.state.sync = SyncOrchestrator(app.state.user_store, codec, gateway, _settings)
    if not (_settings.ccube_app_id and _settings.ccube_auth_key and _settings.ccube_auth_secret):
        logger.warning("Chat platform credentials are not configured -- every remote call will fail")
    logger.info("Sync layer initialized (remote=%s)", _settings.ccube_api_url)

    yield

    app.state.user_store.close()
    logger.info("ChatLink API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ChatLink API",
    description="User accounts mirrored into a real-time chat platform.",
    version=__version__,
    lifespan=lifespan,
    # Built-in docs are disabled; auth-protected equivalents are registered below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key"],
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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="ChatLink API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="ChatLink API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a dict detail; use it directly as
    the error field. Headers (e.g. Retry-After on 503) are carried through.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
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
# No rate limit -- health checks from load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    try:
        db_status = "ok" if request.app.state.user_store.ping() else "error"
    except Exception:
        logger.exception("Health check database ping failed")
        db_status = "error"
    return HealthResponse(version=__version__, components={"app": "ok", "database": db_status})

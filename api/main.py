"""
api/main.py -- FastAPI application entry point for the Bech-Do marketplace API.

Exposes registration, login, profile, listing and category endpoints over
HTTP under /api/v1, plus an unprefixed /health for load balancers.

Run with:      python main.py serve
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan opens the Database, builds the stores, the TokenCodec and both
services, and hands them to routes through app.state. Tests replace the
lifespan and call init_state() with their own Database.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pydantic
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse, HealthStats
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.categories import router as categories_router
from api.routes.v1.products import router as products_router
from api.routes.v1.users import router as users_router
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenCodec
from catalog.service import ListingService
from catalog.store import CatalogStore
from core.config import Settings, get_settings
from core.db import Database
from core.errors import AppError

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("bechdo.api")

# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


def init_state(app: FastAPI, db: Database, settings: Settings) -> None:
    """Build stores, codec and services on top of db and attach them to app.state.

    Every route reads its collaborators from app.state; nothing is imported
    as a module-level singleton, so tests can wire an isolated database.
    """
    accounts = AccountStore(db)
    catalog = CatalogStore(db)
    codec = TokenCodec(settings.secret_key, settings.token_expire_seconds)

    app.state.settings = settings
    app.state.db = db
    app.state.accounts = accounts
    app.state.catalog = catalog
    app.state.token_codec = codec
    app.state.auth_service = AuthService(accounts, codec)
    app.state.listing_service = ListingService(catalog, settings)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the database on startup and dispose of its pool on shutdown.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.
    """
    logger.info("Bech-Do API starting up (version %s)", _settings.app_version)
    db = Database(_settings.database_url)
    init_state(app, db, _settings)
    if _settings.seed_categories:
        app.state.catalog.seed_default_categories()
    logger.info("Database ready at %s", db.engine.url.render_as_string(hide_password=True))

    yield

    db.close()
    logger.info("Bech-Do API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Bech-Do API",
    description="Classifieds marketplace: accounts, listings, categories.",
    version=_settings.app_version,
    lifespan=lifespan,
    # Interactive docs only in development.
    docs_url="/docs" if _settings.debug else None,
    redoc_url="/redoc" if _settings.debug else None,
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
# Every request passes through this coroutine before reaching any route
# handler. Latency covers the whole inner stack. The caller id is present
# only when the authorization gate ran and admitted the request.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    identity = getattr(request.state, "identity", None)
    logger.info(
        "%s %s %d %.1fms %s uid=%s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
        identity.subject_id if identity is not None else "-",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Profile"])
app.include_router(products_router, prefix="/api/v1", tags=["Products"])
app.include_router(categories_router, prefix="/api/v1", tags=["Categories"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {"error": "<message>"} envelope so API clients
# can parse errors uniformly without inspecting status codes to choose a
# schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


def _summarize(errors: list[dict]) -> str:
    """Turn pydantic error dicts into one readable line, e.g. "price: Input should be ..."."""
    parts = []
    for err in errors[:3]:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc)
        parts.append(f"{field}: {err.get('msg', 'invalid')}" if field else err.get("msg", "invalid"))
    if len(errors) > 3:
        parts.append(f"and {len(errors) - 3} more")
    return "; ".join(parts) or "Invalid request."


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error raised by a service or the authorization gate."""
    return _error(exc.status_code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the request body, path or query fails validation."""
    return _error(400, _summarize(list(exc.errors())))


@app.exception_handler(pydantic.ValidationError)
async def model_validation_error_handler(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    """Return 400 for bodies validated inside a handler (PUT /products/{id})."""
    return _error(400, _summarize(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods and any HTTPException a route raises."""
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Store failure. The traceback goes to the log, never to the client."""
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(500, "Database error")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to the
    response body. The client receives only a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Report liveness, database reachability and row counts. 503 if the store is down."""
    db: Database = request.app.state.db
    version = request.app.state.settings.app_version
    try:
        if not db.ping():
            raise SQLAlchemyError("ping failed")
        counts = db.count_rows("users", "listings", "categories")
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable")
        body = HealthResponse(status="error", version=version, database="disconnected")
        return JSONResponse(status_code=503, content=body.model_dump())

    body = HealthResponse(
        version=version,
        stats=HealthStats(
            users=counts["users"],
            products=counts["listings"],
            categories=counts["categories"],
        ),
    )
    return JSONResponse(status_code=200, content=body.model_dump())

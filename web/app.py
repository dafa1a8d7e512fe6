"""
FastAPI application for the barter match engine.

Production deployment configuration via environment variables.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.errors import (
    AuthorizationError,
    BarterEngineError,
    InvalidTransitionError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from web.api_routes import router as api_router


logger = logging.getLogger(__name__)

# =============================================================================
# Environment Configuration
# =============================================================================

# Production mode detection
IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration - locked down for production
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]

# Debug mode - NEVER enabled in production
DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true" and not IS_PRODUCTION


# =============================================================================
# Error Mapping
# =============================================================================

# Checked in order; the first matching class wins
ERROR_STATUS = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (StoreUnavailableError, 503),
)


def status_for(exc: BarterEngineError) -> int:
    for error_cls, status_code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return status_code
    return 500


async def handle_engine_error(request: Request, exc: BarterEngineError) -> JSONResponse:
    """Translate engine errors into JSON error responses."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    body = {
        "error": type(exc).__name__,
        "detail": exc.message,
        "retryable": exc.retryable,
    }
    field = getattr(exc, "field", None)
    if field:
        body["field"] = field
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(body, status_code=status_code, headers=headers)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Barter Match Engine",
        description="Matching & negotiation engine for a barter marketplace",
        version="0.1.0",
        # Production settings: disable docs/redoc for private deployment
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=DEBUG_MODE,
    )

    # ==========================================================================
    # Healthcheck endpoints are registered first. They perform no IO.
    # ==========================================================================
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok"}

    @app.get("/api/health", include_in_schema=False)
    def health():
        return {"status": "healthy"}

    # CORS middleware - locked down for production
    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE"],
            allow_headers=["*"],
        )

    app.add_exception_handler(BarterEngineError, handle_engine_error)

    app.include_router(api_router)

    return app


app = create_app()

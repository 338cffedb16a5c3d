"""Main FastAPI application for the referral engine."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from referral_engine.api.rate_limit import limiter
from referral_engine.api.v1.referrals import router as referrals_router
from referral_engine.logging_config import configure_logging, get_logger
from referral_engine.referral.service import ReferralService
from referral_engine.settings import settings
from referral_engine.storage.db import Database

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # API only serves JSON
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response


def create_app(database: Database | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        database: Database to serve from (defaults to settings.database_url)

    Returns:
        Configured FastAPI app
    """
    database = database or Database()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app_starting", env=settings.env)
        database.create_tables()

        yield

        logger.info("app_shutting_down")
        database.dispose()

    # Hide API docs in production
    is_production = settings.env == "production"

    app = FastAPI(
        title="Referral Engine API",
        description="Referral codes, program rules, rewards and credits",
        version="1.0.0",
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.referral_service = ReferralService(database)

    # Security Headers middleware (must be added before CORS)
    app.add_middleware(SecurityHeadersMiddleware)

    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    # Block wildcard in production
    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=3600,
    )

    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please try again later."},
        )

    app.include_router(referrals_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": "1.0.0",
            "env": settings.env,
        }

    return app


def run() -> FastAPI:
    """App factory for ``uvicorn --factory``."""
    configure_logging()
    return create_app()

"""AcoomH API entry point: logging, lifespan and the application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.auth_config import AuthConfig
from app.core.clock import Clock, utcnow
from app.core.config import Settings, get_settings
from app.core.middleware import (
    catch_exceptions_middleware,
    register_exception_handlers,
    request_logging_middleware,
    security_headers_middleware,
)
from app.core.rate_limiter import RateLimiter
from app.db import init_db, close_db
from app.api.routes import api_router, health
from app.services.auth_service import build_auth_service

# ─────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────
settings = get_settings()

# Set log level based on environment
log_level = logging.DEBUG if settings.debug else logging.INFO

logging.basicConfig(
    level=log_level,
    format="%(asctime)s | %(levelname)-8s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("acoomh")

# Suppress verbose SQLAlchemy logs in production
if not settings.debug:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logging.getLogger("passlib").setLevel(logging.ERROR)


# ─────────────────────────────────────────────────────────────
# Lifespan: Startup + Shutdown
# ─────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    # ─── Startup ───
    logger.info(f"Starting up {app.title} v{app.version}...")

    # Initialize DB tables (auto-creates if not using migrations)
    await init_db()
    logger.info("Database tables initialized")

    logger.info("Application startup complete")
    yield

    # ─── Shutdown ───
    logger.info("Shutting down application...")
    await close_db()
    logger.info("Database connections closed")


# ─────────────────────────────────────────────────────────────
# FastAPI App
# ─────────────────────────────────────────────────────────────
def create_app(app_settings: Optional[Settings] = None, clock: Clock = utcnow) -> FastAPI:
    """
    Build the application.

    Raises:
        ConfigurationError: if no JWT signing key is configured.
    """
    app_settings = app_settings or settings
    auth_config = AuthConfig.from_settings(app_settings)

    app = FastAPI(
        title=app_settings.app_name,
        description="Venue and event discovery and reservation API for AcoomH",
        version="1.0.0",
        docs_url="/docs" if app_settings.debug else None,  # Hide docs in prod
        redoc_url="/redoc" if app_settings.debug else None,
        openapi_url="/openapi.json" if app_settings.debug else None,
        lifespan=lifespan,
        default_response_class=JSONResponse,
    )

    app.state.settings = app_settings
    app.state.auth_service = build_auth_service(auth_config, clock)
    app.state.rate_limiter = RateLimiter.from_settings(app_settings)

    # ─────────────────────────────────────────────────────────
    # Security & Performance Middleware (last added runs first)
    # ─────────────────────────────────────────────────────────
    app.add_middleware(BaseHTTPMiddleware, dispatch=catch_exceptions_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_logging_middleware)
    app.add_middleware(BaseHTTPMiddleware, dispatch=security_headers_middleware)

    # Trusted hosts (prevent DNS rebinding, host header attacks)
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=app_settings.allowed_hosts_list,
    )

    # CORS: only the configured frontend origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )

    register_exception_handlers(app)

    # ─────────────────────────────────────────────────────────
    # API Router
    # ─────────────────────────────────────────────────────────
    app.include_router(api_router, prefix="/api/v1")
    # Unversioned health routes for load balancers
    app.include_router(health.router, tags=["Health"])

    return app


# ─────────────────────────────────────────────────────────────
# Run with Uvicorn (only when running directly)
# ─────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug",
    )

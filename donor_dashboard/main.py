"""Kiosk Donor Dashboard — FastAPI application factory."""


import logging
import sys
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from donor_dashboard.core.config import Settings, settings as default_settings
from donor_dashboard.core.exceptions import register_exception_handlers
from donor_dashboard.core.security import SessionAuthority
from donor_dashboard.db.base import build_engine, build_session_factory
from donor_dashboard.middleware.audit import AuditMiddleware
from donor_dashboard.routers.dashboard import router as dashboard_router
from donor_dashboard.schemas.common import HealthResponse


def _configure_logging(settings: Settings) -> None:
    """Set up structured logging for the application."""
    level = logging.DEBUG if settings.app_env == "development" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> FastAPI:
    """Build the app with explicit dependencies; tests pass an in-memory store."""
    settings = settings or default_settings
    _configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url="/docs" if settings.app_env == "development" else None,
        redoc_url="/redoc" if settings.app_env == "development" else None,
    )

    app.state.settings = settings
    app.state.authority = SessionAuthority(settings)
    app.state.session_factory = session_factory or build_session_factory(build_engine(settings))

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # --- Audit middleware ---
    app.add_middleware(AuditMiddleware)

    # --- Global exception handlers ---
    register_exception_handlers(app)

    # --- Dashboard API (/api/dashboard/*) ---
    app.include_router(dashboard_router)

    # --- Health check ---
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health():
        return HealthResponse(app=settings.app_name, env=settings.app_env)

    return app


app = create_app()

"""
FastAPI application for the care-team service.

Routes:
- /clients, /staff                  : directory (identity only)
- /clients/{id}/staff-preferences   : preferred staff
- /clients/{id}/staff-restrictions  : restricted staff
- /clients/{id}/assignments         : care-team roster
- /clients/{id}/status[-logs]       : status changes and their history
- /clients/{id}/eligibility         : verdicts and candidate ranking
- /clients/{id}/activity            : tamper-evident activity trail
- /health, /health/ready            : health checks
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from config.database import DatabaseSettings, get_database_settings
from config.settings import Settings, get_settings
from database.async_engine import (
    close_database,
    get_async_engine,
    get_async_session_factory,
    init_database,
)
from domain.event_bus import get_event_bus
from security.api_errors import RequestIDMiddleware, register_exception_handlers
from services.logging_config import configure_logging

from web.care_team_api import router as care_team_router
from web.directory_api import router as directory_router
from web.health_checks import router as health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    configure_logging(
        level=settings.log_level,
        json_output=settings.use_json_logs,
        log_file=settings.log_file,
    )

    # An injected session factory belongs to the caller
    owns_database = app.state.session_factory is None
    if owns_database:
        db_settings: DatabaseSettings = app.state.database_settings
        await init_database(db_settings)
        app.state.engine = get_async_engine(db_settings)
        app.state.session_factory = get_async_session_factory(db_settings)

    logger.info(f"{settings.name} {settings.version} started ({settings.environment})")
    try:
        yield
    finally:
        if owns_database:
            await close_database()
        logger.info(f"{settings.name} stopped")


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    engine: Optional[AsyncEngine] = None,
    database_settings: Optional[DatabaseSettings] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings; loaded from the environment if omitted
        session_factory: Session factory to use instead of opening the
            configured database at startup
        engine: Engine behind ``session_factory``, used by the readiness check
        database_settings: Database settings used when no factory is given
    """
    settings = settings or get_settings()

    app = FastAPI(title=settings.name, version=settings.version, lifespan=lifespan)
    app.state.settings = settings
    app.state.database_settings = database_settings or get_database_settings()
    app.state.session_factory = session_factory
    app.state.engine = engine or (session_factory.kw.get("bind") if session_factory else None)
    app.state.event_bus = get_event_bus()

    # Last added runs first: request ids wrap everything else
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(directory_router)
    app.include_router(care_team_router)

    return app


app = create_app()

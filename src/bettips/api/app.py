"""FastAPI application factory."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..db.engine import Database, init_db
from ..settings import Settings, configure_logging, load_settings
from ..subscriptions import ensure_default_plans
from .responses import register_error_handlers
from .routes import (
    auth_router,
    bookmakers_router,
    leagues_router,
    parlays_router,
    sports_router,
    subscriptions_router,
    tips_router,
    users_router,
)

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    When `database` is given the app uses it as is and leaves closing it to
    the caller; otherwise one is opened on startup from the settings.
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.db is None
        if owned:
            app.state.db = init_db(settings.database_url)
        session = app.state.db.session()
        try:
            ensure_default_plans(session)
        finally:
            session.close()
        logger.info("BetTips API started (%s)", settings.environment)
        yield
        if owned:
            app.state.db.close()

    app = FastAPI(
        title="BetTips API",
        description=(
            "Sports tips and parlays from tipsters, gated by subscription tier, "
            "with success-rate statistics and leaderboards."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Lock down in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
        return response

    register_error_handlers(app, show_stack=not settings.is_production)

    # Register route modules
    for router in (
        auth_router,
        users_router,
        tips_router,
        parlays_router,
        subscriptions_router,
        sports_router,
        leagues_router,
        bookmakers_router,
    ):
        app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "bettips-api"}

    return app


# Entry point for `uvicorn bettips.api.app:app`
app = create_app()

"""
Expense Tracker Backend — FastAPI Application Factory
======================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() wires settings, the shared QuotaCounter, the AI and file
       services, middleware, exception handlers and routers.
Who:   uvicorn (`uvicorn expense_tracker.main:app`) and the test suite.

Request pipeline:
    CORS → RequestID → Logging → RateLimit → GZip → router
         → identity dependency (require_user / optional_user / require_identity)
         → handler
    Any failure on the way is turned into the error envelope by the
    handlers registered in error_handlers.py.

Lifecycle:
    Startup:  logging, configuration validation (fatal in production),
              tables + default categories (when AUTO_CREATE_TABLES), storage dir
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from expense_tracker import __version__
from expense_tracker.config import Settings, settings
from expense_tracker.database import dispose_engine, init_database
from expense_tracker.error_handlers import register_exception_handlers
from expense_tracker.middleware.logging import RequestLoggingMiddleware
from expense_tracker.middleware.rate_limit import RateLimitMiddleware
from expense_tracker.middleware.request_id import RequestIDMiddleware
from expense_tracker.ratelimit.counter import QuotaCounter
from expense_tracker.ratelimit.policies import build_policies
from expense_tracker.routes import ai, auth, categories, expenses, health, upload
from expense_tracker.services.ai_base import AIService
from expense_tracker.services.file_service import FileService, file_service
from expense_tracker.services.gemini_service import gemini_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings
    setup_logging(app_settings.log_level)
    logger.info("Expense Tracker backend %s starting (%s)", __version__, app_settings.environment)

    try:
        app_settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        if app_settings.is_production:
            raise

    if app_settings.auto_create_tables:
        await init_database()
        logger.info("Database tables ready, default categories seeded")

    storage = Path(app_settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())

    yield

    logger.info("Expense Tracker backend shutting down...")
    await dispose_engine()


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    app_settings: Optional[Settings] = None,
    counter: Optional[QuotaCounter] = None,
    ai_service: Optional[AIService] = None,
    files: Optional[FileService] = None,
) -> FastAPI:
    """
    Args:
        app_settings:  defaults to the process-wide settings
        counter:       QuotaCounter shared by the middleware and per-route
                       limiters; tests pass one with a fake clock
        ai_service:    defaults to the Gemini singleton
        files:         defaults to the FileService singleton
    """
    app_settings = app_settings or settings
    counter = counter or QuotaCounter()
    policies = build_policies(app_settings)

    app = FastAPI(
        title="Expense Tracker API",
        description="Expense tracking with authenticated, rate-limited access and AI assistance.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.quota_counter = counter
    app.state.quota_policies = policies
    app.state.trust_proxy_headers = app_settings.trust_proxy_headers
    app.state.ai_service = ai_service or gemini_service
    app.state.file_service = files or file_service

    # Last added runs first
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RateLimitMiddleware, counter=counter, policies=policies)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
        ],
    )

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(expenses.router)
    app.include_router(categories.router)
    app.include_router(ai.router)
    app.include_router(upload.router)
    app.include_router(health.router)

    return app


app = create_app()

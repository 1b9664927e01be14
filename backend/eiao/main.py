"""
Everything Is An Ordeal: FastAPI Application Factory
=======================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() builds the store, image pipeline, hit counter and
       OrdealService, registers middleware, exception handlers, routes and
       static mounts, and returns the app.
Who:   uvicorn (`eiao.main:app`), the CLI (`python -m eiao serve`) and tests
       (`create_app(settings=..., store=InMemoryOrdealStore())`).

Application Layout:
    ┌─────────────────────────────────────────────────────┐
    │  Middleware: Request ID → Logging → GZip            │
    │                                                     │
    │  Routes, in matching order:                         │
    │    /api/ordeal/create, /api/ordeal/delete/{path},   │
    │    /api/ordeal/{path}, /api/health                  │
    │    /, /leaderboard, /manage                         │
    │    /static/*, /uploads/*            (static mounts) │
    │    /{ordeal}                        (catch-all)     │
    │                                                     │
    │  Exception Handlers:                                │
    │    ValidationError→400 │ NotFound→404 │ DB/File→500 │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → schema (SQL store, DB_AUTO_CREATE) → image dirs → hit counter
    Shutdown: drain hit counter → close store (dispose engine)
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from eiao import __version__
from eiao.config import Settings, settings as default_settings
from eiao.database import Database
from eiao.exceptions import (
    DatabaseError,
    FileStorageError,
    NotFoundError,
    OrdealError,
    ValidationError,
)
from eiao.middleware.logging import RequestLoggingMiddleware
from eiao.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware, request_id_var
from eiao.routes import api, health, pages
from eiao.services.hit_counter import HitCounter
from eiao.services.image_service import ImageService
from eiao.services.ordeal_service import OrdealService
from eiao.services.ordeal_store import OrdealStore, SqlOrdealStore

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s,
    to stdout. The request ID comes from RequestIDLogFilter on the handler, so
    third-party records carry it too. Third-party loggers that log every
    operation are raised to WARNING.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup sequence:
        1. Setup logging
        2. Ensure the schema exists (SQL store with DB_AUTO_CREATE only)
        3. Create the uploads and staging directories
        4. Start the hit counter consumer

    Shutdown sequence:
        1. Drain pending hit increments
        2. Close the store (disposes the database engine)
    """
    config: Settings = app.state.settings
    store: OrdealStore = app.state.store
    hit_counter: HitCounter = app.state.hit_counter

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("Everything Is An Ordeal starting up...")

    if isinstance(store, SqlOrdealStore) and config.db_auto_create:
        await store.database.ensure_schema(
            max_attempts=config.db_retry_max_attempts,
            min_wait=config.db_retry_min_wait,
            max_wait=config.db_retry_max_wait,
        )

    app.state.image_service.ensure_directories()
    hit_counter.start()

    logger.info("Uploads directory: %s", app.state.image_service.uploads_dir)
    logger.info("Keeping track of life, one ordeal at a time (port %d).", config.port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Shutting down...")
    await hit_counter.stop()
    await store.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(status_code: int, error: str, message: str, details: Optional[dict] = None) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        ValidationError   → 400 Bad Request
        NotFoundError     → 404 Not Found
        FileStorageError  → 500 Internal Server Error
        DatabaseError     → 500 Internal Server Error
        OrdealError       → 500 (any other application error)
        Exception         → 500 (unexpected; stack trace logged)

    Responses never carry internal details (paths, SQL, driver errors);
    those go to the server log with the request ID.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("Validation error: %s", exc.message)
        details = {"field": exc.field} if exc.field else None
        return _error_response(400, "validation_error", exc.message, details)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "File storage error: %s | Context: %s", exc.message, exc.context,
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "Database error: %s | Context: %s", exc.message, exc.context,
        )
        return _error_response(
            500, "server_error", "An internal error occurred. Please try again later."
        )

    @app.exception_handler(OrdealError)
    async def handle_ordeal_error(request: Request, exc: OrdealError):
        logger.error("Application error: %s", exc.message)
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def build_store(config: Settings) -> SqlOrdealStore:
    """SQL store for the configured DATABASE_URL."""
    return SqlOrdealStore(Database(config.database_url, config.engine_options()))


def build_image_service(config: Settings) -> ImageService:
    return ImageService(
        uploads_dir=config.uploads_dir,
        staging_dir=Path(config.staging_dir),
        max_dimension=config.max_image_dimension,
        max_file_size=config.max_file_size,
        prefix=config.resized_prefix,
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[OrdealStore] = None,
    image_service: Optional[ImageService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings:      Configuration; defaults to the process-wide settings.
        store:         Ordeal store; defaults to a SqlOrdealStore on DATABASE_URL.
        image_service: Image pipeline; defaults to one built from settings.

    Returns:
        Fully configured FastAPI instance. Its services are on app.state.
    """
    config = settings or default_settings
    store = store or build_store(config)
    image_service = image_service or build_image_service(config)
    hit_counter = HitCounter(store)

    app = FastAPI(
        title="Everything Is An Ordeal",
        description="Turn any URL into an ordeal: an image and a hit counter.",
        version=__version__,
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.store = store
    app.state.image_service = image_service
    app.state.hit_counter = hit_counter
    app.state.ordeal_service = OrdealService(
        store=store,
        images=image_service,
        hit_counter=hit_counter,
        leaderboard_size=config.leaderboard_size,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added = first to execute: Request ID → Logging → GZip
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes (order is matching order) ─────────────────────────
    app.include_router(api.router)
    app.include_router(health.router)
    app.include_router(pages.router)
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
    # The uploads directory is created at startup, not when the app is built
    app.mount(
        "/uploads",
        StaticFiles(directory=str(image_service.uploads_dir), check_dir=False),
        name="uploads",
    )
    app.include_router(pages.catch_all_router)

    return app


# uvicorn expects `eiao.main:app` to be importable
app = create_app()

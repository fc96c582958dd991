"""FastAPI application for productsync server.

This module creates and configures the FastAPI application with:
- REST API for products and optimistic-concurrency operations
- Envelope-shaped error responses ({success: false, data: null, message})

Usage:
    uvicorn productsync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from productsync.server.api.router import router as api_router
from productsync.server.database import Database
from productsync.server.schemas import describe_validation_errors

# Configuration from environment variables with defaults
DB_PATH = Path(os.environ.get("PRODUCTSYNC_DB_PATH", "productsync.db"))
LOG_PATH = Path(os.environ.get("PRODUCTSYNC_LOG_PATH", "productsync-server.log"))


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for productsync
    root_logger = logging.getLogger("productsync")
    root_logger.setLevel(logging.INFO)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


logger = logging.getLogger(__name__)


def _envelope_error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "data": None, "message": message},
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render HTTP errors in the response envelope."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return _envelope_error(exc.status_code, str(exc.detail))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation failures as 400 in the response envelope."""
    problems = describe_validation_errors(exc.errors())
    logger.info("Rejected %s %s: %s", request.method, request.url.path, problems)
    return _envelope_error(status.HTTP_400_BAD_REQUEST, f"Validation failed: {problems}")


def create_app(db: Database) -> FastAPI:
    """Create FastAPI application with a custom database.

    This is primarily used for testing with isolated databases.

    Args:
        db: Database instance.

    Returns:
        Configured FastAPI application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        db_path = getattr(db, "_db_path", "in-memory")
        logger.info("=" * 60)
        logger.info("productsync Server Starting")
        logger.info("=" * 60)
        logger.info("  Database: %s", db_path)
        logger.info("  Logs:     %s", LOG_PATH.absolute())
        logger.info("=" * 60)

        yield

        # Shutdown
        logger.info("productsync Server shutting down")

    application = FastAPI(
        title="productsync Server",
        description="Product management API with optimistic concurrency control",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.state.db = db

    application.add_exception_handler(StarletteHTTPException, http_exception_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    setup_logging(LOG_PATH)
    return create_app(db=Database(DB_PATH))

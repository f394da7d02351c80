"""FastAPI application for File Tracker."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from file_tracker import __version__
from file_tracker.config import ConfigLoader, SystemConfig
from file_tracker.context import build_context
from file_tracker.errors import ConflictError, NotFoundError, ValidationError

from .backup_routes import router as backup_router
from .dependencies import get_context
from .record_routes import router as record_router

logger = logging.getLogger(__name__)


def create_app(config: Optional[SystemConfig] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: System configuration; loaded from config/system.yaml at
            startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        system_config = config or ConfigLoader().load_system_config()
        logger.info("Starting File Tracker...")
        context = await build_context(system_config)
        app.state.context = context
        try:
            yield
        finally:
            logger.info("Shutting down File Tracker...")
            context.close()

    app = FastAPI(
        title="File Tracker API",
        description="Document tracking with scanned attachments, backup and restore",
        version=__version__,
        lifespan=lifespan
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.get("/api/health")
    async def health(request: Request):
        """Report store revision and whether it runs degraded."""
        context = get_context(request)
        report = context.migration_report
        return {
            "status": "degraded" if report and report.degraded else "ok",
            "version": __version__,
            "schema_revision": report.revision if report else None,
            "master_link_enabled": context.database.master_link_enabled,
        }

    app.include_router(record_router)
    app.include_router(backup_router)
    return app


app = create_app()

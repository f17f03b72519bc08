"""
FastAPI application for the sync run service.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from syncrun.config.settings import settings
from syncrun.database.connection import init_database, test_database_connection, close_database
from syncrun.api.sync_run import router as sync_run_router
from syncrun.sync.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"Starting {settings.app.app_name} v{settings.app.app_version}")
    init_database()
    if not test_database_connection():
        logger.warning("Database connection test failed at startup")
    try:
        yield
    finally:
        logger.info("Shutting down application")
        close_database()


async def unauthorized_exception_handler(request: Request, exc: UnauthorizedError):
    """Render rejected callers in the ``{ok, error}`` response shape."""
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": str(exc)},
        headers={"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Convert unhandled faults into the ``{ok, error}`` response shape."""
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": str(exc) if settings.app.debug else "Internal server error",
        }
    )


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title=settings.app.app_name,
        description="Sync run orchestration API",
        version=settings.app.app_version,
        debug=settings.app.debug,
        lifespan=lifespan if use_lifespan else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(UnauthorizedError, unauthorized_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    app.include_router(sync_run_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        healthy = test_database_connection()
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "healthy" if healthy else "unhealthy", "database": healthy}
        )

    return app


app = create_app()

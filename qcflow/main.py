"""
QCFlow Workflow Engine - Main FastAPI Application

This is the entry point for the FastAPI application.
It configures middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .bootstrap import get_container
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.sweeper_scheduler import is_scheduler_running, start_scheduler, stop_scheduler
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)

APP_VERSION = "1.0.0"


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Creates MongoDB indexes (mongo storage only)
        - Starts the timeout sweeper

    Shutdown:
        - Stops the sweeper
        - Closes database connections
    """
    logger.info(f"Starting QCFlow (storage={settings.storage_backend})...")

    if settings.uses_mongo:
        try:
            create_indexes()
        except Exception as e:
            logger.error(f"Failed to create indexes: {e}")

    if settings.sweeper_enabled:
        try:
            start_scheduler(get_container().engine)
        except Exception as e:
            logger.error(f"Failed to start sweeper: {e}")

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    stop_scheduler()
    if settings.uses_mongo:
        close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    show_docs = settings.debug and not settings.is_production
    application = FastAPI(
        title="QCFlow Workflow Engine",
        description="Multi-step approval workflows and file QC revision ladder",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if show_docs else None,
        redoc_url="/api/redoc" if show_docs else None,
        openapi_url="/api/openapi.json" if show_docs else None,
    )

    _configure_middleware(application)
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    """Configure application middleware."""
    # allow_credentials must be False when allowing all origins
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )

    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes."""
    app.include_router(api_router, prefix="/api/v1")

    # Health check endpoint (no identity headers required)
    @app.get("/health", tags=["Health"])
    def health():
        """
        Health check endpoint.

        Reports database connectivity when the mongo store is in use.
        """
        body = {
            "status": "healthy",
            "version": APP_VERSION,
            "environment": settings.environment,
            "storage": settings.storage_backend,
            "sweeper": "running" if is_scheduler_running() else "stopped"
        }
        if settings.uses_mongo:
            mongo_health = health_check()
            body["mongo"] = mongo_health
            if mongo_health.get("status") != "healthy":
                body["status"] = "degraded"
        return body

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "QCFlow Workflow Engine",
            "version": APP_VERSION,
            "docs": app.docs_url
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()

"""
Asset Lifecycle Service - Main FastAPI Application

This is the entry point for the FastAPI application.
It configures middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config.settings import settings
from .api.deps import get_store_dep
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories import get_store, reset_store
from .repositories.base import LifecycleStore
from .utils.health import degraded_signal
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Creates store indexes

    Shutdown:
        - Closes store connections
    """
    logger.info("Starting Asset Lifecycle Service...")

    try:
        get_store().ensure_indexes()
        logger.info("Store indexes ready")
    except Exception as e:
        logger.error(f"Failed to create indexes: {e}")

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    reset_store()
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
    application = FastAPI(
        title="Asset Lifecycle Service",
        description="Approval-driven lifecycle workflows for configuration items",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
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

    # Health check endpoint (no identity required)
    @app.get("/health", tags=["Health"])
    async def health(store: LifecycleStore = Depends(get_store_dep)):
        """
        Health check endpoint.

        Reports store connectivity and whether any committed transition is
        missing its audit entry.
        """
        store_health = store.health_check()
        signal = degraded_signal.snapshot()
        healthy = store_health.get("status") == "healthy" and not signal["degraded"]
        return {
            "status": "healthy" if healthy else "degraded",
            "version": __version__,
            "environment": settings.environment,
            "store": store_health,
            "degraded_mode": signal
        }

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Asset Lifecycle Service",
            "version": __version__,
            "docs": "/api/docs" if settings.debug else None
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()

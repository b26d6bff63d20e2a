"""
apiflow - Request-time API flow execution

FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from apiflow import __version__
from apiflow.app.dependencies import get_settings, initialize_services, shutdown_services
from apiflow.app.gateway import router as gateway_router
from apiflow.engine import get_metrics

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting apiflow services...")
    try:
        await initialize_services()
        logger.info("apiflow services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down apiflow services...")
    try:
        await shutdown_services()
        logger.info("apiflow services shut down successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


def create_app() -> FastAPI:
    settings = get_settings()

    application = FastAPI(
        title="apiflow",
        description="Executes visually authored API flows against tenant databases",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    application.include_router(gateway_router)

    @application.get("/health", tags=["health"])
    async def health_check() -> dict[str, Any]:
        """Service health and execution counters."""
        return {
            "status": "healthy",
            "service": settings.service_name,
            "version": __version__,
            "executions": get_metrics().get_stats()["executions"],
        }

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "apiflow.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug,
    )

"""Main application module for the face score service."""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facescore.api import router as api_v1_router
from facescore.core.config import settings
from facescore.core.container import container
from facescore.core.logging import get_logger, setup_logging
from facescore.infrastructure.dependencies import get_extraction_client
from facescore.services.extraction.client import ExtractionClient

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[Any, None]:
    """Handle application startup and shutdown events.

    Args:
        app: FastAPI application instance

    Returns:
        AsyncGenerator[Any, None]: Async context manager for app lifecycle
    """
    logger.info(
        "Starting up face score service",
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
    )

    await container.initialize()
    logger.info("Initialized application services")

    yield

    logger.info("Shutting down face score service")
    await container.cleanup()
    logger.info("Cleaned up application resources")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check(
    extraction_client: ExtractionClient = Depends(get_extraction_client),
) -> dict:
    """Liveness plus the health of the feature extraction backend.

    Returns:
        dict: Health status
    """
    logger.debug("Health check requested")
    return {
        "status": "healthy",
        "extraction": extraction_client.health_state.value,
    }

"""FastAPI dependency providers."""
from typing import AsyncGenerator

from fastapi import Depends

from facescore.core.container import ServiceContainer, container
from facescore.core.exceptions import ServiceNotInitializedError
from facescore.services.extraction.client import ExtractionClient
from facescore.services.scoring import ScoringOrchestrator


async def get_container() -> ServiceContainer:
    """Dependency provider for the global ServiceContainer instance."""
    if not container.initialized:
        # Attempt to initialize if not already done (e.g., during testing)
        try:
            await container.initialize()
        except Exception as e:
            raise ServiceNotInitializedError(f"Service container could not be initialized: {e}")
    return container


async def get_scoring_orchestrator(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[ScoringOrchestrator, None]:
    """Provide the scoring orchestrator.

    Yields:
        ScoringOrchestrator: Initialized orchestrator

    Raises:
        ServiceNotInitializedError: If the orchestrator is not initialized
    """
    if container.scoring_orchestrator is None:
        raise ServiceNotInitializedError("Scoring orchestrator not initialized")
    yield container.scoring_orchestrator


async def get_extraction_client(
    container: ServiceContainer = Depends(get_container),
) -> AsyncGenerator[ExtractionClient, None]:
    """Dependency provider for the extraction client."""
    if container.extraction_client is None:
        raise ServiceNotInitializedError("Extraction client not initialized")
    yield container.extraction_client

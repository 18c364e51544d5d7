"""Service container for dependency injection."""
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from facescore.core.config import Settings, settings
from facescore.core.logging import get_logger
from facescore.domain.interfaces.extraction.backend import ExtractionBackend
from facescore.domain.interfaces.storage.population import PopulationRepository
from facescore.infrastructure.database.population import SqlPopulationRepository
from facescore.infrastructure.database.session import create_session_factory, init_models
from facescore.infrastructure.storage.memory import InMemoryPopulationRepository
from facescore.services.eligibility import EligibilityGate
from facescore.services.extraction import (
    ExtractionClient,
    HealthTracker,
    HttpExtractionBackend,
    SimulatedExtractor,
)
from facescore.services.population import PopulationStore
from facescore.services.scoring import ScoringOrchestrator
from facescore.services.validation import FeatureValidator, QualityThresholds
from facescore.services.vibes import VibeTagger

logger = get_logger(__name__)


class ServiceContainer:
    """Container for application services.

    This container manages the lifecycle and dependencies of all services in the application.
    It ensures proper initialization order and provides a single source of truth for service instances.

    Example:
        ```python
        container = ServiceContainer()
        await container.initialize()

        orchestrator = container.scoring_orchestrator
        ```
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        backend: Optional[ExtractionBackend] = None,
        repository: Optional[PopulationRepository] = None,
    ) -> None:
        """Initialize empty container.

        Args:
            config: Settings to build services from, the global settings when omitted
            backend: Extraction backend to use instead of the HTTP backend
            repository: Population repository to use instead of the configured one
        """
        self.config = config or settings
        self._backend_override = backend
        self._repository_override = repository
        self._engine: Optional[AsyncEngine] = None

        # Infrastructure
        self.repository: Optional[PopulationRepository] = None
        self.extraction_client: Optional[ExtractionClient] = None

        # Domain services
        self.population_store: Optional[PopulationStore] = None
        self.scoring_orchestrator: Optional[ScoringOrchestrator] = None

    @property
    def initialized(self) -> bool:
        return self.scoring_orchestrator is not None

    async def _build_repository(self) -> PopulationRepository:
        if self._repository_override is not None:
            return self._repository_override
        if not self.config.DATABASE_URL:
            logger.info("No database configured, population is kept in memory")
            return InMemoryPopulationRepository()

        self._engine, session_factory = create_session_factory(self.config.DATABASE_URL)
        await init_models(self._engine)
        return SqlPopulationRepository(session_factory)

    async def initialize(self) -> None:
        """Initialize all services in the correct order."""
        config = self.config

        self.repository = await self._build_repository()
        self.population_store = PopulationStore(
            repository=self.repository,
            embedding_dim=config.EMBEDDING_DIM,
        )
        await self.population_store.load()

        backend = self._backend_override or HttpExtractionBackend(
            detection_url=config.FACE_DETECTION_URL,
            embedding_url=config.FACE_EMBEDDING_URL,
            timeout=config.EXTRACTION_TIMEOUT_SECONDS,
        )
        self.extraction_client = ExtractionClient(
            backend=backend,
            fallback=SimulatedExtractor(embedding_dim=config.EMBEDDING_DIM),
            timeout=config.EXTRACTION_TIMEOUT_SECONDS,
            max_attempts=config.EXTRACTION_MAX_ATTEMPTS,
            backoff_base=config.EXTRACTION_BACKOFF_BASE_SECONDS,
            backoff_max=config.EXTRACTION_BACKOFF_MAX_SECONDS,
            fallback_enabled=config.EXTRACTION_FALLBACK_ENABLED,
            health=HealthTracker(
                failure_threshold=config.EXTRACTION_FAILURE_THRESHOLD,
                recovery_seconds=config.EXTRACTION_RECOVERY_SECONDS,
            ),
            embedding_dim=config.EMBEDDING_DIM,
        )

        self.scoring_orchestrator = ScoringOrchestrator(
            store=self.population_store,
            extraction_client=self.extraction_client,
            validator=FeatureValidator(QualityThresholds.from_settings(config)),
            gate=EligibilityGate(
                self.population_store,
                validity=timedelta(days=config.SCORE_VALIDITY_DAYS),
                require_nft=config.REQUIRE_NFT_VERIFICATION,
                require_identity=config.REQUIRE_IDENTITY_VERIFICATION,
            ),
            tagger=VibeTagger(),
            max_image_bytes=config.MAX_IMAGE_BYTES,
            confidence_full_population=config.CONFIDENCE_FULL_POPULATION,
        )
        logger.info("Services initialized", population_size=self.population_store.size)

    async def cleanup(self) -> None:
        """Cleanup all services in reverse order of initialization."""
        self.scoring_orchestrator = None

        if self.extraction_client:
            await self.extraction_client.close()
            self.extraction_client = None

        self.population_store = None
        self.repository = None

        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None


# Global container instance
container = ServiceContainer()

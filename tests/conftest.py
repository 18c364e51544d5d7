"""Shared fixtures for the face score test suite."""
from datetime import timedelta
from typing import Optional

import pytest

from facescore.domain.interfaces.extraction.backend import ExtractionBackend
from facescore.infrastructure.storage.memory import InMemoryPopulationRepository
from facescore.services.eligibility import EligibilityGate
from facescore.services.extraction import ExtractionClient, HealthTracker, SimulatedExtractor
from facescore.services.population import PopulationStore
from facescore.services.scoring import ScoringOrchestrator
from facescore.services.validation import FeatureValidator, QualityThresholds
from tests.fakes import EMBEDDING_DIM, FakeBackend, FixedClock, MonotonicClock, RecordingSleep


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def monotonic() -> MonotonicClock:
    return MonotonicClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def repository() -> InMemoryPopulationRepository:
    return InMemoryPopulationRepository()


@pytest.fixture
def store(repository, clock) -> PopulationStore:
    return PopulationStore(repository=repository, embedding_dim=EMBEDDING_DIM, clock=clock)


@pytest.fixture
def make_client(monotonic, sleep):
    """Build an ExtractionClient around a backend with fast, observable retries."""

    def _make(backend: Optional[ExtractionBackend], **kwargs) -> ExtractionClient:
        options = dict(
            timeout=1.0,
            max_attempts=3,
            backoff_base=1.0,
            backoff_max=5.0,
            fallback_enabled=True,
            health=HealthTracker(failure_threshold=3, recovery_seconds=30.0, clock=monotonic),
            embedding_dim=EMBEDDING_DIM,
            sleep=sleep,
        )
        options.update(kwargs)
        return ExtractionClient(backend, SimulatedExtractor(EMBEDDING_DIM), **options)

    return _make


@pytest.fixture
def make_orchestrator(store, clock, make_client):
    """Build a ScoringOrchestrator over the shared store."""

    def _make(backend: Optional[ExtractionBackend] = None, **kwargs) -> ScoringOrchestrator:
        population = kwargs.pop("store", store)
        client = kwargs.pop("client", None) or make_client(backend if backend is not None else FakeBackend())
        gate = EligibilityGate(
            population,
            validity=timedelta(days=30),
            require_nft=kwargs.pop("require_nft", False),
            require_identity=kwargs.pop("require_identity", False),
            clock=clock,
        )
        return ScoringOrchestrator(
            store=population,
            extraction_client=client,
            validator=FeatureValidator(QualityThresholds()),
            gate=gate,
            max_image_bytes=kwargs.pop("max_image_bytes", 2 * 1024 * 1024),
            confidence_full_population=kwargs.pop("confidence_full_population", 1000),
        )

    return _make

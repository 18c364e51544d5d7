"""Tests for the scoring orchestrator."""
import asyncio
from datetime import timedelta

import pytest

from facescore.core.exceptions import (
    DuplicateScoreError,
    ExtractionBackendError,
    InvalidSubmissionError,
    NoFaceDetectedError,
    ProcessingError,
    QualityTooLowError,
    UserNotFoundError,
)
from facescore.domain.value_objects.scoring import Submission, VerificationFlags
from facescore.infrastructure.storage.memory import InMemoryPopulationRepository
from facescore.services.population import PopulationStore
from facescore.services.scoring import calculate_confidence
from tests.fakes import FakeBackend, good_metrics, make_image, random_vector


class FailingRepository(InMemoryPopulationRepository):
    def __init__(self) -> None:
        super().__init__()
        self.fail = True

    async def save(self, record, scores):
        if self.fail:
            raise RuntimeError("connection reset")
        await super().save(record, scores)


class GatedRepository(InMemoryPopulationRepository):
    def __init__(self) -> None:
        super().__init__()
        self.entered = False
        self.release = asyncio.Event()

    async def save(self, record, scores):
        self.entered = True
        await self.release.wait()
        await super().save(record, scores)


def submission(user_id: str = "user-1", seed: int = 1, **kwargs) -> Submission:
    return Submission(user_id=user_id, image=make_image(seed), **kwargs)


def backend_errors(count: int):
    return [ExtractionBackendError("upstream 503 from detector-7", status_code=503) for _ in range(count)]


async def seed_population(store: PopulationStore, count: int) -> None:
    for i in range(count):
        await store.add(f"member-{i:02d}", random_vector(100 + i), good_metrics())


class TestScoreSubmission:
    """Test suite for the scoring flow."""

    async def test_first_user_completes(self, make_orchestrator, store):
        result = await make_orchestrator().score(submission())

        assert result.user_id == "user-1"
        assert result.score == 100
        assert result.percentile == 1.0
        assert result.rank == 1
        assert result.total_population_size == 1
        assert not result.degraded
        assert result.vibe_tags
        assert result.distribution.population_size == 1
        assert result.confidence == calculate_confidence(result.quality_metrics, 1, 1000)
        assert store.contains("user-1")

    async def test_population_grows_by_one(self, make_orchestrator, store):
        await seed_population(store, 9)
        result = await make_orchestrator().score(submission())

        assert result.total_population_size == 10
        assert store.size == 10
        assert 0 < result.percentile <= 1
        assert result.score == round(result.percentile * 100)
        assert 1 <= result.rank <= 10

    async def test_profile_face_is_rejected(self, make_orchestrator, store):
        orchestrator = make_orchestrator(FakeBackend(frontality=0.05))

        with pytest.raises(QualityTooLowError) as exc_info:
            await orchestrator.score(submission())

        error = exc_info.value
        assert error.reason == "quality_too_low"
        assert "frontal" in error.message
        assert error.state == "quality_checked"
        assert store.size == 0

    async def test_no_face(self, make_orchestrator, store):
        with pytest.raises(NoFaceDetectedError) as exc_info:
            await make_orchestrator(FakeBackend(faces=[])).score(submission())

        assert exc_info.value.reason == "no_face_detected"
        assert exc_info.value.state == "extracted"
        assert store.size == 0

    async def test_duplicate_within_validity(self, make_orchestrator, store, clock):
        backend = FakeBackend()
        orchestrator = make_orchestrator(backend)
        await orchestrator.score(submission())
        clock.advance(days=29)

        with pytest.raises(DuplicateScoreError) as exc_info:
            await orchestrator.score(submission(seed=2))

        assert exc_info.value.state == "received"
        assert backend.detect_calls == 1
        assert store.size == 1

    async def test_resubmission_after_expiry(self, make_orchestrator, store, clock):
        orchestrator = make_orchestrator()
        first = await orchestrator.score(submission())
        clock.advance(days=31)

        second = await orchestrator.score(submission(seed=2))

        assert store.size == 1
        assert second.submitted_at == first.submitted_at + timedelta(days=31)

    @pytest.mark.parametrize("user_id,image", [
        ("", make_image(1)),
        ("   ", make_image(1)),
        ("user-1", b""),
        ("user-1", b"definitely not an image"),
    ])
    async def test_invalid_input(self, make_orchestrator, user_id, image):
        with pytest.raises(InvalidSubmissionError) as exc_info:
            await make_orchestrator().score(Submission(user_id=user_id, image=image))

        assert exc_info.value.reason == "validation_error"
        assert exc_info.value.state == "received"

    async def test_undecodable_image_message(self, make_orchestrator):
        with pytest.raises(InvalidSubmissionError, match="Only JPEG and PNG"):
            await make_orchestrator().score(Submission(user_id="user-1", image=b"GIF89a...."))

    async def test_oversized_image(self, make_orchestrator):
        with pytest.raises(InvalidSubmissionError, match="maximum size"):
            await make_orchestrator(max_image_bytes=100).score(submission())

    async def test_nft_verification_policy(self, make_orchestrator):
        orchestrator = make_orchestrator(require_nft=True)

        with pytest.raises(InvalidSubmissionError, match="NFT"):
            await orchestrator.score(submission())

        result = await orchestrator.score(submission(flags=VerificationFlags(nft_verified=True)))
        assert result.score == 100

    async def test_backend_outage_degrades(self, make_orchestrator, store):
        result = await make_orchestrator(FakeBackend(errors=backend_errors(3))).score(submission())

        assert result.degraded
        assert store.get("user-1").degraded

    async def test_outage_without_fallback_hides_backend_detail(self, make_orchestrator, make_client, store):
        client = make_client(FakeBackend(errors=backend_errors(3)), fallback_enabled=False)

        with pytest.raises(ProcessingError) as exc_info:
            await make_orchestrator(client=client).score(submission())

        assert exc_info.value.state == "extracted"
        assert "503" not in exc_info.value.message
        assert "detector" not in exc_info.value.message
        assert store.size == 0

    async def test_store_failure(self, make_orchestrator, clock):
        repository = FailingRepository()
        store = PopulationStore(repository=repository, clock=clock)
        orchestrator = make_orchestrator(store=store)

        with pytest.raises(ProcessingError, match="Failed to store score"):
            await orchestrator.score(submission())
        assert store.size == 0

        repository.fail = False
        result = await orchestrator.score(submission())
        assert result.total_population_size == 1

    async def test_concurrent_submissions_for_same_user(self, make_orchestrator, store):
        orchestrator = make_orchestrator(FakeBackend(delay=0.05))

        results = await asyncio.gather(
            orchestrator.score(submission(seed=1)),
            orchestrator.score(submission(seed=2)),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateScoreError)
        assert store.size == 1

    async def test_concurrent_submissions_for_distinct_users(self, make_orchestrator, store):
        orchestrator = make_orchestrator(FakeBackend(delay=0.01))

        results = await asyncio.gather(*(
            orchestrator.score(submission(user_id=f"user-{i}", seed=i)) for i in range(10)
        ))

        assert store.size == 10
        assert {r.user_id for r in results} == {f"user-{i}" for i in range(10)}
        assert sorted(r.rank for r in orchestrator.leaderboard(10)) == list(range(1, 11))

    async def test_store_write_survives_cancellation(self, make_orchestrator, clock):
        repository = GatedRepository()
        store = PopulationStore(repository=repository, clock=clock)
        orchestrator = make_orchestrator(store=store)

        task = asyncio.ensure_future(orchestrator.score(submission()))
        for _ in range(100):
            if repository.entered:
                break
            await asyncio.sleep(0)
        assert repository.entered

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        repository.release.set()
        for _ in range(100):
            if store.size:
                break
            await asyncio.sleep(0)
        assert store.contains("user-1")


class TestQueries:
    """Test suite for standing, leaderboard, similarity and statistics queries."""

    async def test_standing_of_unknown_user(self, make_orchestrator):
        assert make_orchestrator().standing("ghost") is None

    async def test_standing_matches_store(self, make_orchestrator, store):
        await seed_population(store, 5)
        orchestrator = make_orchestrator()
        result = orchestrator.standing("member-03")
        record = store.get("member-03")

        assert result.score == record.score
        assert result.rank == store.rank("member-03")
        assert result.total_population_size == 5

    async def test_leaderboard(self, make_orchestrator, store):
        await seed_population(store, 12)
        board = make_orchestrator().leaderboard(5)

        assert [entry.rank for entry in board] == [1, 2, 3, 4, 5]
        assert board[0].score == 100
        assert [e.score for e in board] == sorted((e.score for e in board), reverse=True)

    async def test_similar_users(self, make_orchestrator, store):
        await seed_population(store, 6)
        similar = make_orchestrator().similar_users("member-00", limit=3)

        assert len(similar) == 3
        assert "member-00" not in {s.user_id for s in similar}

    async def test_similar_users_unknown(self, make_orchestrator):
        with pytest.raises(UserNotFoundError):
            make_orchestrator().similar_users("ghost")

    async def test_stats(self, make_orchestrator, store):
        await seed_population(store, 20)
        stats = make_orchestrator().stats()
        distribution = store.distribution()

        assert stats.total_users == 20
        assert stats.average_score == round(distribution.mean, 1)
        assert stats.top_1_percent == distribution.percentiles.p99
        assert stats.top_5_percent == distribution.percentiles.p95
        assert stats.top_10_percent == distribution.percentiles.p90

    async def test_stats_of_empty_population(self, make_orchestrator):
        stats = make_orchestrator().stats()

        assert stats.total_users == 0
        assert stats.average_score == 0


class TestCalculateConfidence:
    """Test suite for confidence calculation."""

    def test_small_population(self):
        metrics = good_metrics(quality=1.0, frontality=1.0, resolution=1.0, symmetry=1.0)

        assert calculate_confidence(metrics, 0, 1000) == 0.7

    def test_saturates_at_full_population(self):
        metrics = good_metrics(quality=1.0, frontality=1.0, resolution=1.0, symmetry=1.0)

        assert calculate_confidence(metrics, 5000, 1000) == 1.0

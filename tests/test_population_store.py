"""Tests for the population store: scoring, distribution, ranking and concurrency."""
import asyncio
from datetime import timedelta

import numpy as np
import pytest

from facescore.core.exceptions import StoreError
from facescore.domain.entities.user import UserRecord
from facescore.infrastructure.storage.memory import InMemoryPopulationRepository
from facescore.services.population import PopulationStore, compute_distribution, compute_percentiles
from tests.fakes import START, good_metrics, random_vector


class FailingRepository(InMemoryPopulationRepository):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    async def save(self, record, scores):
        if self.fail:
            raise RuntimeError("disk full")
        await super().save(record, scores)


class BlockingRepository(InMemoryPopulationRepository):
    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def save(self, record, scores):
        await self.release.wait()
        await super().save(record, scores)


async def populate(store: PopulationStore, count: int, offset: int = 0) -> None:
    for i in range(count):
        await store.add(f"user-{offset + i:03d}", random_vector(offset + i), good_metrics())


class TestComputeDistribution:
    """Test suite for distribution statistics."""

    def test_empty_population(self):
        distribution = compute_distribution([])

        assert distribution.population_size == 0
        assert distribution.mean == 0
        assert distribution.std == 0
        assert distribution.percentiles.p50 == 0

    def test_nearest_rank_percentiles(self):
        distribution = compute_distribution([40, 10, 30, 20])

        assert distribution.mean == pytest.approx(25)
        assert distribution.std == pytest.approx(np.std([10, 20, 30, 40]))
        assert distribution.percentiles.p10 == 10
        assert distribution.percentiles.p25 == 10
        assert distribution.percentiles.p50 == 20
        assert distribution.percentiles.p75 == 30
        assert distribution.percentiles.p99 == 40

    def test_single_member(self):
        distribution = compute_distribution([100])

        assert distribution.percentiles.p10 == 100
        assert distribution.percentiles.p99 == 100
        assert distribution.std == 0


class TestComputePercentiles:
    """Test suite for rank-based percentiles."""

    def test_percentiles_are_ranks(self):
        matrix = np.vstack([random_vector(i) for i in range(10)])
        percentiles = compute_percentiles(matrix)

        assert sorted(percentiles) == pytest.approx([k / 10 for k in range(1, 11)])

    def test_identical_members_share_top_percentile(self):
        vector = random_vector(1)
        percentiles = compute_percentiles(np.vstack([vector, vector, vector]))

        assert list(percentiles) == [1.0, 1.0, 1.0]


class TestPopulationStore:
    """Test suite for PopulationStore."""

    async def test_empty_store(self, store):
        assert store.size == 0
        assert store.get("nobody") is None
        assert store.leaderboard(10) == []
        assert store.similar(random_vector(0)) == []
        assert store.distribution().population_size == 0

    async def test_first_member_scores_100(self, store):
        score = await store.add("user-1", random_vector(1), good_metrics())
        record = store.get("user-1")

        assert score == 100
        assert record.percentile == 1.0
        assert record.submitted_at == START
        assert np.linalg.norm(record.embedding) == pytest.approx(1.0)
        assert store.rank("user-1") == 1

    async def test_every_member_is_rescored(self, store):
        await populate(store, 25)
        records = store.records()
        matrix = np.vstack([r.embedding for r in records])
        expected = compute_percentiles(matrix)

        for record, percentile in zip(records, expected):
            assert 0 < record.percentile <= 1
            assert record.percentile == pytest.approx(percentile)
            assert record.score == round(record.percentile * 100)

    async def test_distribution_is_monotone(self, store):
        await populate(store, 40)
        distribution = store.distribution()
        buckets = distribution.percentiles
        scores = [r.score for r in store.records()]

        assert distribution.population_size == 40
        assert distribution.mean == pytest.approx(np.mean(scores))
        assert buckets.p10 <= buckets.p25 <= buckets.p50 <= buckets.p75 <= buckets.p90 <= buckets.p95 <= buckets.p99

    async def test_resubmission_replaces_member(self, store):
        await populate(store, 5)
        await store.add("user-002", random_vector(99), good_metrics())

        assert store.size == 5
        assert np.allclose(store.get("user-002").embedding, random_vector(99))

    async def test_invalid_vectors_are_rejected(self, store):
        with pytest.raises(ValueError):
            await store.add("user-1", np.ones(10), good_metrics())

        vector = random_vector(1)
        vector[3] = np.nan
        with pytest.raises(ValueError):
            await store.add("user-1", vector, good_metrics())
        assert store.size == 0

    async def test_leaderboard_ordering(self, store):
        vector = random_vector(7)
        await store.add("carol", vector, good_metrics(), submitted_at=START + timedelta(hours=2))
        await store.add("bob", vector, good_metrics(), submitted_at=START)
        await store.add("alice", vector, good_metrics(), submitted_at=START + timedelta(hours=2))

        board = store.leaderboard(10)

        assert [r.user_id for r in board] == ["bob", "alice", "carol"]
        assert all(r.score == 100 for r in board)
        assert store.rank("alice") == 2

    async def test_leaderboard_sorted_by_score(self, store):
        await populate(store, 30)
        board = store.leaderboard(10)
        scores = [r.score for r in board]

        assert len(board) == 10
        assert scores == sorted(scores, reverse=True)
        assert scores[0] == 100
        assert store.leaderboard(0) == []

    async def test_similar_users(self, store):
        anchor = random_vector(1)
        twin = anchor + 0.01 * random_vector(2)
        await store.add("anchor", anchor, good_metrics())
        await store.add("twin", twin, good_metrics())
        await populate(store, 10, offset=10)

        similar = store.similar(anchor, limit=5, exclude_user_id="anchor")
        similarities = [s.similarity for s in similar]

        assert len(similar) == 5
        assert similar[0].user_id == "twin"
        assert similar[0].similarity > 0.99
        assert "anchor" not in [s.user_id for s in similar]
        assert similarities == sorted(similarities, reverse=True)

    async def test_similar_rejects_wrong_dimension(self, store):
        await populate(store, 2)

        with pytest.raises(ValueError):
            store.similar(np.ones(8))

    async def test_concurrent_adds(self, store):
        await asyncio.gather(*(
            store.add(f"user-{i}", random_vector(i), good_metrics()) for i in range(50)
        ))
        scores = [r.score for r in store.records()]

        assert store.size == 50
        assert store.distribution().population_size == 50
        assert store.distribution().mean == pytest.approx(np.mean(scores))
        assert max(scores) == 100

    async def test_readers_do_not_see_unpersisted_write(self, clock):
        repository = BlockingRepository()
        store = PopulationStore(repository=repository, clock=clock)

        task = asyncio.ensure_future(store.add("user-1", random_vector(1), good_metrics()))
        for _ in range(5):
            await asyncio.sleep(0)
        assert store.size == 0
        assert not store.contains("user-1")

        repository.release.set()
        await task
        assert store.size == 1

    async def test_failed_persistence_keeps_previous_state(self, clock):
        repository = FailingRepository()
        store = PopulationStore(repository=repository, clock=clock)
        await populate(store, 3)
        before = {r.user_id: r.score for r in store.records()}

        repository.fail = True
        with pytest.raises(StoreError):
            await store.add("user-new", random_vector(50), good_metrics())

        assert store.size == 3
        assert not store.contains("user-new")
        assert {r.user_id: r.score for r in store.records()} == before

    async def test_store_without_repository(self, clock):
        store = PopulationStore(repository=None, clock=clock)
        await populate(store, 3)

        assert store.size == 3
        assert await store.load() == 3

    async def test_load_rebuilds_population(self, store, repository, clock):
        await populate(store, 8)
        expected = {r.user_id: r.score for r in store.records()}

        restored = PopulationStore(repository=repository, clock=clock)
        assert await restored.load() == 8
        assert {r.user_id: r.score for r in restored.records()} == expected
        assert restored.distribution() == store.distribution()

    async def test_load_skips_invalid_embeddings(self, store, repository, clock):
        await populate(store, 2)
        broken = UserRecord(
            user_id="broken",
            embedding=[0.5, 0.5],
            metrics=good_metrics(),
            submitted_at=START.replace(tzinfo=None),
        )
        await repository.save(broken, {})

        restored = PopulationStore(repository=repository, clock=clock)

        assert await restored.load() == 2
        assert not restored.contains("broken")
        assert all(r.submitted_at.tzinfo is not None for r in restored.records())

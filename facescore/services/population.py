"""
Population store: the scored users, their score distribution and rankings.

Scoring model
-------------
Each member's raw scalar is the dot product of its unit embedding with the
population centroid, which orders members exactly like their mean cosine
similarity to everybody else. A member's percentile is the fraction of the
population whose raw scalar is less than or equal to its own, so it lies in
(0, 1]; its score is ``round(percentile * 100)``. Every membership change
re-scores the whole population, which is O(n) in population size.

Concurrency
-----------
Writers are serialised by one lock. A write builds a complete new snapshot
(records, ranking, distribution, similarity matrix), persists it, and only then
replaces the published snapshot. Readers use whichever snapshot is published
and therefore never see a half-applied write.
"""
import asyncio
import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from facescore.core.exceptions import StoreError
from facescore.core.logging import get_logger
from facescore.core.utils.clock import ensure_utc, utc_now
from facescore.domain.entities.user import QualityMetrics, UserRecord, as_feature_vector
from facescore.domain.interfaces.storage.population import PopulationRepository
from facescore.domain.value_objects.scoring import PercentileBuckets, ScoreDistribution, SimilarUser

logger = get_logger(__name__)

PERCENTILE_BUCKETS = {
    "p10": 0.10,
    "p25": 0.25,
    "p50": 0.50,
    "p75": 0.75,
    "p90": 0.90,
    "p95": 0.95,
    "p99": 0.99,
}


def compute_percentiles(matrix: np.ndarray) -> np.ndarray:
    """Rank-based percentile of every row of ``matrix`` (unit embeddings, one per member)."""
    n = matrix.shape[0]
    if n == 0:
        return np.zeros(0)
    centroid = matrix.mean(axis=0)
    raw = matrix @ centroid
    at_or_below = np.searchsorted(np.sort(raw), raw, side="right")
    return at_or_below / n


def compute_distribution(scores: Sequence[float]) -> ScoreDistribution:
    """Mean, population standard deviation and nearest-rank percentiles of ``scores``."""
    if len(scores) == 0:
        return ScoreDistribution()

    ordered = np.sort(np.asarray(scores, dtype=np.float64))
    n = ordered.shape[0]

    def nearest_rank(p: float) -> float:
        index = math.ceil(round(n * p, 9)) - 1
        return float(ordered[max(0, index)])

    return ScoreDistribution(
        mean=float(ordered.mean()),
        std=float(ordered.std()),
        percentiles=PercentileBuckets(**{name: nearest_rank(p) for name, p in PERCENTILE_BUCKETS.items()}),
        population_size=n,
    )


def _unit(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    return vector / norm if norm > 0 else vector


@dataclass(frozen=True)
class _Snapshot:
    records: Mapping[str, UserRecord] = field(default_factory=lambda: MappingProxyType({}))
    ranking: Tuple[str, ...] = ()
    ranks: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    distribution: ScoreDistribution = field(default_factory=ScoreDistribution)
    ids: Tuple[str, ...] = ()
    matrix: Optional[np.ndarray] = None


class PopulationStore:
    """Owns the scored population and answers ranking and similarity queries.

    Example:
        ```python
        store = PopulationStore(repository=InMemoryPopulationRepository())
        await store.load()
        score = await store.add("user-1", vector, metrics)
        top = store.leaderboard(10)
        ```
    """

    def __init__(
        self,
        repository: Optional[PopulationRepository] = None,
        embedding_dim: int = 512,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize an empty store.

        Args:
            repository: Durable storage; ``None`` keeps the population in memory only
            embedding_dim: Required embedding length
            clock: Source of submission timestamps
        """
        self._repository = repository
        self.embedding_dim = embedding_dim
        self._clock = clock
        self._write_lock = asyncio.Lock()
        self._snapshot = _Snapshot()

    # Reads

    @property
    def size(self) -> int:
        return len(self._snapshot.records)

    def contains(self, user_id: str) -> bool:
        return user_id in self._snapshot.records

    def get(self, user_id: str) -> Optional[UserRecord]:
        return self._snapshot.records.get(user_id)

    def distribution(self) -> ScoreDistribution:
        return self._snapshot.distribution

    def rank(self, user_id: str) -> Optional[int]:
        """1-based leaderboard position of ``user_id``."""
        return self._snapshot.ranks.get(user_id)

    def leaderboard(self, limit: int = 100) -> List[UserRecord]:
        """Records by score descending, ties resolved by earliest submission."""
        snapshot = self._snapshot
        return [snapshot.records[user_id] for user_id in snapshot.ranking[:max(0, limit)]]

    def records(self) -> List[UserRecord]:
        return list(self._snapshot.records.values())

    def similar(
        self,
        vector: np.ndarray,
        limit: int = 10,
        exclude_user_id: Optional[str] = None,
    ) -> List[SimilarUser]:
        """Members most similar to ``vector`` by cosine similarity, descending.

        Args:
            vector: Query embedding
            limit: Maximum number of neighbours
            exclude_user_id: Member to leave out, usually the querying user
        """
        snapshot = self._snapshot
        if snapshot.matrix is None or limit <= 0:
            return []

        query = _unit(np.asarray(vector, dtype=np.float64).reshape(-1))
        if query.shape[0] != snapshot.matrix.shape[1]:
            raise ValueError(
                f"Query vector must have {snapshot.matrix.shape[1]} elements, got {query.shape[0]}"
            )
        similarities = snapshot.matrix @ query

        candidates = [
            (float(sim), user_id)
            for user_id, sim in zip(snapshot.ids, similarities)
            if user_id != exclude_user_id
        ]
        candidates.sort(key=lambda item: (-item[0], item[1]))

        results = []
        for similarity, user_id in candidates[:limit]:
            record = snapshot.records[user_id]
            results.append(SimilarUser(
                user_id=user_id,
                similarity=similarity,
                score=record.score,
                vibe_tags=list(record.vibe_tags),
            ))
        return results

    # Writes

    async def add(
        self,
        user_id: str,
        vector: np.ndarray,
        metrics: QualityMetrics,
        vibe_tags: Iterable[str] = (),
        submitted_at: Optional[datetime] = None,
        degraded: bool = False,
    ) -> float:
        """Insert or replace a member and re-score the population.

        Args:
            user_id: Member identifier
            vector: Feature vector; stored L2-normalised
            metrics: Quality metrics of the extraction
            vibe_tags: Descriptive tags stored with the record
            submitted_at: Submission time, now when omitted
            degraded: Whether the vector came from the simulated fallback

        Returns:
            The member's new score (0-100)

        Raises:
            ValueError: If the vector has the wrong shape or non-finite values
            StoreError: If persistence fails; the published population is unchanged
        """
        embedding = as_feature_vector(_unit(np.asarray(vector, dtype=np.float64)), self.embedding_dim)
        record = UserRecord(
            user_id=user_id,
            embedding=embedding,
            metrics=metrics,
            vibe_tags=list(vibe_tags),
            submitted_at=ensure_utc(submitted_at or self._clock()),
            degraded=degraded,
        )

        async with self._write_lock:
            records = dict(self._snapshot.records)
            replaced = user_id in records
            records[user_id] = record
            snapshot, scores = self._build_snapshot(records)

            if self._repository is not None:
                try:
                    await self._repository.save(snapshot.records[user_id], scores)
                except Exception as e:
                    logger.error(
                        "Failed to persist population",
                        user_id=user_id,
                        error=str(e),
                        exc_info=True,
                    )
                    if isinstance(e, StoreError):
                        raise
                    raise StoreError(f"Failed to persist population: {str(e)}")

            self._snapshot = snapshot

        stored = snapshot.records[user_id]
        logger.info(
            "Population updated",
            user_id=user_id,
            replaced=replaced,
            score=stored.score,
            population_size=len(snapshot.records),
        )
        return stored.score

    async def load(self) -> int:
        """Rebuild the population from the repository.

        Returns:
            Number of members loaded
        """
        if self._repository is None:
            return self.size

        async with self._write_lock:
            try:
                loaded = await self._repository.load_all()
            except Exception as e:
                logger.error("Failed to load population", error=str(e), exc_info=True)
                if isinstance(e, StoreError):
                    raise
                raise StoreError(f"Failed to load population: {str(e)}")

            records: Dict[str, UserRecord] = {}
            for record in loaded:
                if record.embedding.shape != (self.embedding_dim,):
                    logger.warning(
                        "Skipping stored record with invalid embedding",
                        user_id=record.user_id,
                        shape=record.embedding.shape,
                    )
                    continue
                records[record.user_id] = record.model_copy(
                    update={"submitted_at": ensure_utc(record.submitted_at)}
                )

            self._snapshot, _ = self._build_snapshot(records)

        logger.info("Population loaded", population_size=self.size)
        return self.size

    def _build_snapshot(
        self, records: Dict[str, UserRecord]
    ) -> Tuple[_Snapshot, Dict[str, Tuple[float, float]]]:
        if not records:
            return _Snapshot(), {}

        ids = tuple(records)
        matrix = np.vstack([records[user_id].embedding for user_id in ids])
        matrix.flags.writeable = False
        percentiles = compute_percentiles(matrix)

        scores: Dict[str, Tuple[float, float]] = {}
        scored: Dict[str, UserRecord] = {}
        for user_id, percentile in zip(ids, percentiles):
            percentile = float(percentile)
            score = float(round(percentile * 100))
            scores[user_id] = (score, percentile)
            scored[user_id] = records[user_id].model_copy(update={"score": score, "percentile": percentile})

        ranking = tuple(
            record.user_id
            for record in sorted(
                scored.values(),
                key=lambda r: (-r.score, r.submitted_at, r.user_id),
            )
        )
        snapshot = _Snapshot(
            records=MappingProxyType(scored),
            ranking=ranking,
            ranks=MappingProxyType({user_id: i + 1 for i, user_id in enumerate(ranking)}),
            distribution=compute_distribution([r.score for r in scored.values()]),
            ids=ids,
            matrix=matrix,
        )
        return snapshot, scores

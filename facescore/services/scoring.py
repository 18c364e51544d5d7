"""
Scoring orchestrator.

Composes eligibility, extraction, quality validation, vibe tagging and the
population store into the public "score this submission" operation, plus the
read-only standing, leaderboard, similarity and statistics queries.

A scoring attempt moves through
``received -> validated -> extracted -> quality_checked -> stored -> completed``
and ends in ``rejected`` when input, eligibility, extraction or quality checks
fail. Rejections are raised as ``ScoringError`` subclasses whose ``state``
records the stage that rejected the attempt.
"""
import asyncio
from typing import List, Optional, Set

from facescore.core.config import settings
from facescore.core.exceptions import (
    DuplicateScoreError,
    ExtractionError,
    InvalidSubmissionError,
    NoFaceDetectedError,
    ProcessingError,
    QualityTooLowError,
    ScoringError,
    StoreError,
    UserNotFoundError,
)
from facescore.core.logging import get_logger
from facescore.core.utils.image import bytes_to_numpy_array, image_digest
from facescore.domain.entities.user import QualityMetrics, UserRecord
from facescore.domain.value_objects.scoring import (
    LeaderboardEntry,
    PopulationStats,
    ScoringResult,
    ScoringState,
    SimilarUser,
    Submission,
)
from facescore.services.eligibility import EligibilityGate
from facescore.services.extraction.client import ExtractionClient
from facescore.services.population import PopulationStore
from facescore.services.validation import FeatureValidator
from facescore.services.vibes import VibeTagger

logger = get_logger(__name__)


class _Attempt:
    """State tracker for one scoring attempt."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.state = ScoringState.RECEIVED
        self.history: List[ScoringState] = [ScoringState.RECEIVED]

    def advance(self, state: ScoringState, **context) -> None:
        logger.debug(
            "Scoring state changed",
            user_id=self.user_id,
            previous=self.state.value,
            current=state.value,
            **context,
        )
        self.state = state
        self.history.append(state)

    def reject(self, stage: ScoringState, error: ScoringError) -> ScoringError:
        error.state = stage.value
        logger.warning(
            "Scoring rejected",
            user_id=self.user_id,
            stage=stage.value,
            reason=error.reason,
            message=error.message,
        )
        self.state = ScoringState.REJECTED
        self.history.append(ScoringState.REJECTED)
        return error


def calculate_confidence(metrics: QualityMetrics, population_size: int, full_population: int) -> float:
    """Confidence in a standing, from face quality and how large the population is."""
    face_confidence = (
        metrics.quality * 0.4
        + metrics.frontality * 0.3
        + metrics.resolution * 0.2
        + metrics.symmetry * 0.1
    )
    population_factor = min(1.0, population_size / max(1, full_population))
    return round(face_confidence * 0.7 + population_factor * 0.3, 2)


class ScoringOrchestrator:
    """Scores submissions and answers standing queries.

    Example:
        ```python
        orchestrator = ScoringOrchestrator(store, client, validator, gate)
        result = await orchestrator.score(Submission(user_id="u1", image=image_bytes))
        print(result.score, result.rank, result.total_population_size)
        ```
    """

    def __init__(
        self,
        store: PopulationStore,
        extraction_client: ExtractionClient,
        validator: FeatureValidator,
        gate: EligibilityGate,
        tagger: Optional[VibeTagger] = None,
        max_image_bytes: Optional[int] = None,
        confidence_full_population: Optional[int] = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Population store shared by all requests
            extraction_client: Feature extraction client
            validator: Feature quality gate
            gate: Eligibility gate
            tagger: Vibe tag generator
            max_image_bytes: Largest accepted encoded image
            confidence_full_population: Population size at which confidence saturates
        """
        self.store = store
        self.extraction_client = extraction_client
        self.validator = validator
        self.gate = gate
        self.tagger = tagger or VibeTagger()
        self.max_image_bytes = max_image_bytes or settings.MAX_IMAGE_BYTES
        self.confidence_full_population = confidence_full_population or settings.CONFIDENCE_FULL_POPULATION
        self._in_flight: Set[str] = set()

    def _check_input(self, submission: Submission) -> None:
        if not submission.user_id or not submission.user_id.strip():
            raise InvalidSubmissionError("A user id is required")
        if not submission.image:
            raise InvalidSubmissionError("An image is required")
        if len(submission.image) > self.max_image_bytes:
            raise InvalidSubmissionError(
                f"Image exceeds the maximum size of {self.max_image_bytes} bytes",
                details={"size": len(submission.image)},
            )
        try:
            bytes_to_numpy_array(submission.image)
        except ValueError:
            raise InvalidSubmissionError("Invalid image format. Only JPEG and PNG are supported.")

    async def score(self, submission: Submission) -> ScoringResult:
        """Score one submission.

        Args:
            submission: User id, image and verification metadata

        Returns:
            ScoringResult describing the user's new standing

        Raises:
            InvalidSubmissionError: Malformed input or missing required verification
            DuplicateScoreError: Existing unexpired score, or a submission already in flight
            NoFaceDetectedError: The backend found no face
            QualityTooLowError: The features fail the quality floors
            ProcessingError: Extraction or storage failed
        """
        user_id = submission.user_id
        attempt = _Attempt(user_id)

        try:
            self._check_input(submission)
        except InvalidSubmissionError as e:
            raise attempt.reject(ScoringState.RECEIVED, e)

        if user_id in self._in_flight:
            raise attempt.reject(
                ScoringState.RECEIVED,
                DuplicateScoreError("A submission for this user is already being processed"),
            )

        eligibility = self.gate.check(user_id, submission.flags)
        if not eligibility.eligible:
            error_cls = (
                DuplicateScoreError
                if eligibility.reason_code == DuplicateScoreError.reason
                else InvalidSubmissionError
            )
            raise attempt.reject(ScoringState.RECEIVED, error_cls(eligibility.reason))

        self._in_flight.add(user_id)
        store_task: Optional[asyncio.Future] = None
        try:
            attempt.advance(ScoringState.VALIDATED)

            try:
                extraction = await self.extraction_client.extract(
                    submission.image, user_id, image_digest(submission.image)
                )
            except NoFaceDetectedError as e:
                raise attempt.reject(ScoringState.EXTRACTED, e)
            except ExtractionError as e:
                logger.error("Feature extraction failed", user_id=user_id, error=str(e))
                raise attempt.reject(
                    ScoringState.EXTRACTED,
                    ProcessingError("Face analysis is temporarily unavailable"),
                )

            attempt.advance(ScoringState.EXTRACTED, degraded=extraction.degraded, source=extraction.source)
            if extraction.degraded:
                logger.warning("Scoring with degraded extraction", user_id=user_id, attempts=extraction.attempts)

            validation = self.validator.validate(extraction.metrics)
            if not validation.accepted:
                raise attempt.reject(
                    ScoringState.QUALITY_CHECKED,
                    QualityTooLowError(
                        "Face quality too low for scoring: " + "; ".join(validation.reasons),
                        details={"reasons": validation.reasons},
                    ),
                )
            attempt.advance(ScoringState.QUALITY_CHECKED, overall_quality=round(validation.quality.overall, 3))

            vibe_tags = self.tagger.tags(extraction.vector, extraction.metrics)

            # A started population write must finish even if the caller goes away
            store_task = asyncio.ensure_future(self.store.add(
                user_id,
                extraction.vector,
                extraction.metrics,
                vibe_tags=vibe_tags,
                degraded=extraction.degraded,
            ))
            try:
                await asyncio.shield(store_task)
            except (StoreError, ValueError) as e:
                logger.error("Failed to store score", user_id=user_id, error=str(e))
                raise attempt.reject(
                    ScoringState.QUALITY_CHECKED,
                    ProcessingError("Failed to store score"),
                )
            attempt.advance(ScoringState.STORED)

            result = self._standing(self.store.get(user_id), degraded=extraction.degraded)
            attempt.advance(ScoringState.COMPLETED, score=result.score, rank=result.rank)
            return result
        finally:
            if store_task is not None and not store_task.done():
                store_task.add_done_callback(lambda _: self._in_flight.discard(user_id))
            else:
                self._in_flight.discard(user_id)

    def _standing(self, record: UserRecord, degraded: Optional[bool] = None) -> ScoringResult:
        total = self.store.size
        return ScoringResult(
            user_id=record.user_id,
            score=record.score,
            percentile=record.percentile,
            vibe_tags=list(record.vibe_tags),
            quality_metrics=record.metrics,
            total_population_size=total,
            rank=self.store.rank(record.user_id),
            confidence=calculate_confidence(record.metrics, total, self.confidence_full_population),
            distribution=self.store.distribution(),
            submitted_at=record.submitted_at,
            degraded=record.degraded if degraded is None else degraded,
        )

    def standing(self, user_id: str) -> Optional[ScoringResult]:
        """Current standing of ``user_id``, or None when the user has no score."""
        record = self.store.get(user_id)
        if record is None or not record.is_scored:
            return None
        return self._standing(record)

    def leaderboard(self, limit: int = 100) -> List[LeaderboardEntry]:
        return [
            LeaderboardEntry(
                user_id=record.user_id,
                score=record.score,
                percentile=record.percentile,
                vibe_tags=list(record.vibe_tags),
                rank=index,
                submitted_at=record.submitted_at,
            )
            for index, record in enumerate(self.store.leaderboard(limit), start=1)
        ]

    def similar_users(self, user_id: str, limit: int = 10) -> List[SimilarUser]:
        """Members whose embeddings are closest to ``user_id``'s.

        Raises:
            UserNotFoundError: If ``user_id`` has no score
        """
        record = self.store.get(user_id)
        if record is None:
            raise UserNotFoundError("User has no score")
        return self.store.similar(record.embedding, limit=limit, exclude_user_id=user_id)

    def stats(self) -> PopulationStats:
        distribution = self.store.distribution()
        return PopulationStats(
            total_users=self.store.size,
            average_score=round(distribution.mean, 1),
            distribution=distribution,
            top_1_percent=distribution.percentiles.p99,
            top_5_percent=distribution.percentiles.p95,
            top_10_percent=distribution.percentiles.p90,
        )

"""
Resilient feature extraction client.

The client calls the real backend while it is believed to be reachable,
retries transient failures with exponential backoff, and substitutes the
simulated fallback once the attempt budget is spent or the backend has been
marked unhealthy. Callers always receive an ``ExtractionResult``; the
``degraded`` flag tells them which path produced it.

Health state machine:
    healthy   -> degraded   after one failure
    degraded  -> unhealthy  once consecutive failures reach the threshold
    any state -> healthy    after one success

An unhealthy client skips the backend entirely until the recovery interval has
passed, then spends a single health probe to decide whether to try it again.
"""
import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

import numpy as np

from facescore.core.config import settings
from facescore.core.exceptions import ExtractionBackendError, ExtractionError, ExtractionTimeoutError, NoFaceDetectedError
from facescore.core.logging import get_logger
from facescore.core.utils.image import image_digest
from facescore.domain.entities.face import DetectedFace
from facescore.domain.entities.user import QualityMetrics, as_feature_vector
from facescore.domain.interfaces.extraction.backend import ExtractionBackend
from facescore.domain.value_objects.extraction import EmbeddingResponse, ExtractionResult, HealthState
from facescore.services.extraction.simulated import SimulatedExtractor

logger = get_logger(__name__)

T = TypeVar("T")

# Face edge length, in pixels, at which resolution is considered full
TARGET_FACE_PIXELS = 224.0


def _clamp(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


class HealthTracker:
    """Tracks backend health with hysteresis."""

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.recovery_seconds = recovery_seconds
        self._clock = clock
        self._state = HealthState.HEALTHY
        self.consecutive_failures = 0
        self._last_failure_at: Optional[float] = None

    @property
    def state(self) -> HealthState:
        return self._state

    def _transition(self, new_state: HealthState) -> None:
        if new_state != self._state:
            logger.info(
                "Extraction backend health changed",
                previous=self._state.value,
                current=new_state.value,
                consecutive_failures=self.consecutive_failures,
            )
            self._state = new_state

    def record_success(self) -> None:
        self.consecutive_failures = 0
        self._transition(HealthState.HEALTHY)

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        self._last_failure_at = self._clock()
        if self.consecutive_failures >= self.failure_threshold:
            self._transition(HealthState.UNHEALTHY)
        elif self._state == HealthState.HEALTHY:
            self._transition(HealthState.DEGRADED)

    def recovery_due(self) -> bool:
        """True when an unhealthy backend has rested long enough to be probed again."""
        if self._state != HealthState.UNHEALTHY or self._last_failure_at is None:
            return False
        return self._clock() - self._last_failure_at >= self.recovery_seconds


class ExtractionClient:
    """Extracts a feature vector and quality metrics from an image.

    Example:
        ```python
        client = ExtractionClient(HttpExtractionBackend(), SimulatedExtractor())
        result = await client.extract(image_bytes, user_id="user-1")
        if result.degraded:
            ...
        ```
    """

    def __init__(
        self,
        backend: Optional[ExtractionBackend],
        fallback: SimulatedExtractor,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        fallback_enabled: Optional[bool] = None,
        health: Optional[HealthTracker] = None,
        embedding_dim: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            backend: Real extraction backend; ``None`` always uses the fallback
            fallback: Deterministic simulated extractor
            timeout: Seconds allowed for each backend call
            max_attempts: Backend attempts per extraction before falling back
            backoff_base: Delay before the second attempt, doubled each retry
            backoff_max: Upper bound of the retry delay
            fallback_enabled: Whether the simulated fallback may be used
            health: Health tracker, built from settings when omitted
            embedding_dim: Required embedding length
            sleep: Coroutine used to wait between retries
        """
        self.backend = backend
        self.fallback = fallback
        self.timeout = timeout if timeout is not None else settings.EXTRACTION_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts if max_attempts is not None else settings.EXTRACTION_MAX_ATTEMPTS)
        self.backoff_base = backoff_base if backoff_base is not None else settings.EXTRACTION_BACKOFF_BASE_SECONDS
        self.backoff_max = backoff_max if backoff_max is not None else settings.EXTRACTION_BACKOFF_MAX_SECONDS
        self.fallback_enabled = (
            fallback_enabled if fallback_enabled is not None else settings.EXTRACTION_FALLBACK_ENABLED
        )
        self.health = health or HealthTracker(
            failure_threshold=settings.EXTRACTION_FAILURE_THRESHOLD,
            recovery_seconds=settings.EXTRACTION_RECOVERY_SECONDS,
        )
        self.embedding_dim = embedding_dim or settings.EMBEDDING_DIM
        self._sleep = sleep

    @property
    def health_state(self) -> HealthState:
        return self.health.state

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ExtractionTimeoutError(f"Extraction backend call exceeded {self.timeout}s")

    async def probe(self) -> HealthState:
        """Run an explicit backend health check and update the health state."""
        if self.backend is None:
            return self.health.state
        try:
            healthy = await self._call(self.backend.health_check())
        except ExtractionError as e:
            logger.warning("Extraction backend probe failed", error=str(e))
            healthy = False

        if healthy:
            self.health.record_success()
        else:
            self.health.record_failure()
        return self.health.state

    async def _backend_available(self) -> bool:
        if self.backend is None:
            return False
        if self.health.state != HealthState.UNHEALTHY:
            return True
        if self.health.recovery_due():
            return await self.probe() == HealthState.HEALTHY
        return False

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)

    async def extract(
        self,
        image_bytes: bytes,
        user_id: str,
        image_hash: Optional[str] = None,
    ) -> ExtractionResult:
        """Extract features, degrading to the simulated fallback when needed.

        Args:
            image_bytes: Raw encoded image
            user_id: Submitting user, part of the fallback seed
            image_hash: Digest of ``image_bytes``; computed when omitted

        Returns:
            ExtractionResult with ``degraded`` set when the fallback produced it

        Raises:
            NoFaceDetectedError: If the real backend found no face
            ExtractionError: If the backend failed and the fallback is disabled
        """
        image_hash = image_hash or image_digest(image_bytes)
        attempts = 0
        last_error: Optional[ExtractionError] = None

        if await self._backend_available():
            while attempts < self.max_attempts:
                attempts += 1
                try:
                    result = await self._extract_from_backend(image_bytes, attempts)
                except NoFaceDetectedError:
                    # The backend answered; an empty detection is not an outage
                    self.health.record_success()
                    raise
                except ExtractionError as e:
                    last_error = e
                    self.health.record_failure()
                    logger.warning(
                        "Extraction attempt failed",
                        user_id=user_id,
                        attempt=attempts,
                        max_attempts=self.max_attempts,
                        error=str(e),
                        health=self.health.state.value,
                    )
                    if attempts < self.max_attempts and self.health.state != HealthState.UNHEALTHY:
                        await self._sleep(self._backoff(attempts))
                        continue
                    break
                self.health.record_success()
                return result

        return self._fallback(user_id, image_hash, attempts, last_error)

    async def _extract_from_backend(self, image_bytes: bytes, attempt: int) -> ExtractionResult:
        faces = await self._call(self.backend.detect_faces(image_bytes))
        if not faces:
            raise NoFaceDetectedError("No face detected in the image")
        face = max(faces, key=lambda f: f.bounding_box.area)

        embedding = await self._call(self.backend.extract_embedding(image_bytes))
        try:
            vector = embedding.vector.astype(np.float64).reshape(-1)
            norm = np.linalg.norm(vector)
            vector = as_feature_vector(vector / norm if norm > 0 else vector, self.embedding_dim)
        except ValueError as e:
            raise ExtractionBackendError(f"Backend returned an unusable embedding: {e}")

        return ExtractionResult(
            vector=vector,
            metrics=self._derive_metrics(face, embedding),
            degraded=False,
            source="backend",
            attempts=attempt,
        )

    @staticmethod
    def _derive_metrics(face: DetectedFace, embedding: EmbeddingResponse) -> QualityMetrics:
        """Combine backend-reported metrics with ones derived from the detection geometry.

        Without landmarks, frontality and symmetry fall back to the detection
        confidence.
        """
        box = face.bounding_box
        marks = face.landmarks
        frontality = symmetry = face.confidence

        if marks is not None:
            eye_center_x = (marks.left_eye[0] + marks.right_eye[0]) / 2
            nose_deviation = abs(marks.nose[0] - eye_center_x) / box.width
            eye_height_diff = abs(marks.left_eye[1] - marks.right_eye[1]) / box.height
            frontality = 1.0 - min(1.0, (nose_deviation + eye_height_diff) * 1.5)

            center_x = box.center_x
            eye_balance = abs(abs(marks.left_eye[0] - center_x) - abs(marks.right_eye[0] - center_x))
            mouth_balance = abs(abs(marks.left_mouth[0] - center_x) - abs(marks.right_mouth[0] - center_x))
            eye_symmetry = 1 - eye_balance / (box.width * 1.5)
            mouth_symmetry = 1 - mouth_balance / (box.width * 1.5)
            nose_symmetry = 1 - abs(marks.nose[0] - center_x) / box.width
            symmetry = (eye_symmetry + mouth_symmetry + nose_symmetry) / 3

        resolution = min(box.width, box.height) / TARGET_FACE_PIXELS

        def pick(reported: Optional[float], derived: float) -> float:
            return _clamp(reported if reported is not None else derived)

        return QualityMetrics(
            quality=_clamp(embedding.quality),
            frontality=pick(embedding.frontality, frontality),
            symmetry=pick(embedding.symmetry, symmetry),
            resolution=pick(embedding.resolution, resolution),
            confidence=pick(embedding.confidence, face.confidence),
        )

    def _fallback(
        self,
        user_id: str,
        image_hash: str,
        attempts: int,
        last_error: Optional[ExtractionError],
    ) -> ExtractionResult:
        if not self.fallback_enabled:
            raise last_error or ExtractionError("Extraction backend unavailable and fallback disabled")

        vector, metrics = self.fallback.extract(user_id, image_hash)
        logger.warning(
            "Using simulated extraction fallback",
            user_id=user_id,
            attempts=attempts,
            health=self.health.state.value,
            error=str(last_error) if last_error else None,
        )
        return ExtractionResult(
            vector=vector,
            metrics=metrics,
            degraded=True,
            source="simulated",
            attempts=attempts,
        )

    async def close(self) -> None:
        if self.backend is not None:
            await self.backend.close()

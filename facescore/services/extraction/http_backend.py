"""HTTP implementation of the extraction backend."""
import base64
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from facescore.core.config import settings
from facescore.core.exceptions import ExtractionBackendError, ExtractionTimeoutError
from facescore.core.logging import get_logger
from facescore.domain.entities.face import BoundingBox, DetectedFace, Landmarks
from facescore.domain.interfaces.extraction.backend import ExtractionBackend
from facescore.domain.value_objects.extraction import EmbeddingResponse

logger = get_logger(__name__)

_OPTIONAL_METRICS = ("confidence", "frontality", "symmetry", "resolution")


class HttpExtractionBackend(ExtractionBackend):
    """Talks to the face detection and face embedding services over HTTP.

    Detection: ``POST {detection_url}/detect`` with ``{"image_base64": ...}``,
    answered by ``{"faces": [{"bbox": {...}, "landmarks": {...}, "confidence": ...}]}``.

    Embedding: ``POST {embedding_url}/embed`` with the same body, answered by
    ``{"embedding": [...], "quality": ..., "confidence": ..., ...}``.
    """

    def __init__(
        self,
        detection_url: Optional[str] = None,
        embedding_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the backend.

        Args:
            detection_url: Base URL of the face detection service
            embedding_url: Base URL of the face embedding service
            timeout: Per-request timeout in seconds
            client: Pre-built HTTP client, mostly for tests
        """
        self.detection_url = (detection_url or settings.FACE_DETECTION_URL).rstrip("/")
        self.embedding_url = (embedding_url or settings.FACE_EMBEDDING_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or settings.EXTRACTION_TIMEOUT_SECONDS)
        )

    async def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            raise ExtractionTimeoutError(f"Request to {url} timed out", details={"error": str(e)})
        except httpx.HTTPStatusError as e:
            raise ExtractionBackendError(
                f"Backend returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            )
        except httpx.RequestError as e:
            raise ExtractionBackendError(f"Backend request failed: {e}")
        except ValueError as e:
            raise ExtractionBackendError(f"Backend returned invalid JSON: {e}")

        if not isinstance(body, dict):
            raise ExtractionBackendError(f"Malformed response from {url}: expected a JSON object")
        return body

    @staticmethod
    def _encode(image_bytes: bytes) -> Dict[str, str]:
        return {"image_base64": base64.b64encode(image_bytes).decode("ascii")}

    @staticmethod
    def _parse_face(data: Dict[str, Any]) -> DetectedFace:
        bbox = data["bbox"]
        landmarks = data.get("landmarks")
        return DetectedFace(
            bounding_box=BoundingBox(
                left=bbox["x"], top=bbox["y"], width=bbox["width"], height=bbox["height"]
            ),
            confidence=data["confidence"],
            landmarks=Landmarks(**landmarks) if landmarks else None,
        )

    async def detect_faces(self, image_bytes: bytes) -> List[DetectedFace]:
        """Detect faces through the detection service."""
        body = await self._post(f"{self.detection_url}/detect", self._encode(image_bytes))
        try:
            faces = [self._parse_face(face) for face in body.get("faces") or []]
        except (KeyError, TypeError, ValidationError) as e:
            raise ExtractionBackendError(f"Malformed detection response: {e}")

        logger.debug("Backend detection completed", faces_found=len(faces))
        return faces

    async def extract_embedding(self, image_bytes: bytes) -> EmbeddingResponse:
        """Extract the primary face embedding through the embedding service."""
        body = await self._post(f"{self.embedding_url}/embed", self._encode(image_bytes))
        try:
            return EmbeddingResponse(
                vector=body["embedding"],
                quality=body["quality"],
                **{name: body.get(name) for name in _OPTIONAL_METRICS},
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise ExtractionBackendError(f"Malformed embedding response: {e}")

    async def health_check(self) -> bool:
        """Both services must answer their health endpoint with a 2xx status."""
        for base_url in (self.detection_url, self.embedding_url):
            try:
                response = await self._client.get(f"{base_url}/health")
            except httpx.HTTPError as e:
                logger.warning("Backend health check failed", url=base_url, error=str(e))
                return False
            if response.is_error:
                logger.warning("Backend reported unhealthy", url=base_url, status=response.status_code)
                return False
        return True

    async def close(self) -> None:
        await self._client.aclose()

"""Feature extraction backend interface."""
from abc import ABC, abstractmethod
from typing import List

from ...entities.face import DetectedFace
from ...value_objects.extraction import EmbeddingResponse


class ExtractionBackend(ABC):
    """Interface for the remote face detection and embedding capability."""

    @abstractmethod
    async def detect_faces(self, image_bytes: bytes) -> List[DetectedFace]:
        """
        Detect faces in the provided image.

        Args:
            image_bytes: Raw encoded image data

        Returns:
            Detected faces; an empty list when the image contains none

        Raises:
            ExtractionTimeoutError: If the call does not complete in time
            ExtractionBackendError: If the backend answers with an error
        """
        pass

    @abstractmethod
    async def extract_embedding(self, image_bytes: bytes) -> EmbeddingResponse:
        """
        Extract the embedding of the primary face.

        Args:
            image_bytes: Raw encoded image data

        Returns:
            EmbeddingResponse with the vector and the quality scalars the backend reports

        Raises:
            ExtractionTimeoutError: If the call does not complete in time
            ExtractionBackendError: If the backend answers with an error
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the backend reports itself healthy."""
        pass

    async def close(self) -> None:
        """Release network resources held by the backend."""
        return None

"""Custom exceptions for the face score service."""
from typing import Optional


class FaceScoreError(Exception):
    """Base exception for face score operations."""

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize face score error.

        Args:
            message: Error description
            details: Additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ScoringError(FaceScoreError):
    """Base exception for rejections surfaced to the caller.

    Every subclass carries a stable ``reason`` code. The message is meant for
    end users and must not leak backend identity or exception detail.
    """
    reason: str = "processing_error"

    def __init__(self, message: str, details: Optional[dict] = None, state: Optional[str] = None):
        super().__init__(message, details)
        self.state = state


class InvalidSubmissionError(ScoringError):
    """Raised when the submission is malformed, oversized or unverified."""
    reason = "validation_error"


class DuplicateScoreError(ScoringError):
    """Raised when the user already holds a score inside the validity window."""
    reason = "duplicate_score_error"


class NoFaceDetectedError(ScoringError):
    """Raised when no face is detected in the image."""
    reason = "no_face_detected"


class QualityTooLowError(ScoringError):
    """Raised when the extracted features fail the quality floors."""
    reason = "quality_too_low"


class ProcessingError(ScoringError):
    """Raised when scoring fails for an internal reason."""
    reason = "processing_error"


class ExtractionError(FaceScoreError):
    """Base exception for extraction backend failures."""
    pass


class ExtractionTimeoutError(ExtractionError):
    """Raised when a backend call exceeds its timeout."""
    pass


class ExtractionBackendError(ExtractionError):
    """Raised when the backend answers with a non-success status or bad payload."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.status_code = status_code


class StoreError(FaceScoreError):
    """Raised when the population store cannot persist or load records."""
    pass


class ServiceNotInitializedError(FaceScoreError):
    """Raised when a service is requested before the container is initialized."""
    pass


class UserNotFoundError(ScoringError):
    """Raised when a lookup needs a scored user that does not exist."""
    reason = "not_found"

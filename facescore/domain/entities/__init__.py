"""Domain entities package."""
from .face import BoundingBox, DetectedFace, Landmarks
from .user import QualityMetrics, UserRecord, as_feature_vector

__all__ = [
    "BoundingBox",
    "DetectedFace",
    "Landmarks",
    "QualityMetrics",
    "UserRecord",
    "as_feature_vector",
]

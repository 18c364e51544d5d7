"""Feature extraction services."""
from .client import ExtractionClient, HealthTracker
from .http_backend import HttpExtractionBackend
from .simulated import SimulatedExtractor

__all__ = ["ExtractionClient", "HealthTracker", "HttpExtractionBackend", "SimulatedExtractor"]

"""Service interfaces package."""
from .extraction import ExtractionBackend
from .storage import PopulationRepository

__all__ = ["ExtractionBackend", "PopulationRepository"]

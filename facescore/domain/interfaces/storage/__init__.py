from .population import PopulationRepository

__all__ = ["PopulationRepository"]

"""Population persistence interface."""
from abc import ABC, abstractmethod
from typing import List, Mapping, Tuple

from ...entities.user import UserRecord


class PopulationRepository(ABC):
    """Durable storage for scored user records.

    The population store keeps the authoritative in-memory snapshot; the
    repository only has to reproduce it on load.
    """

    @abstractmethod
    async def load_all(self) -> List[UserRecord]:
        """
        Load every stored record.

        Raises:
            StoreError: If the storage backend is unavailable
        """
        pass

    @abstractmethod
    async def save(self, record: UserRecord, scores: Mapping[str, Tuple[float, float]]) -> None:
        """
        Insert or replace ``record`` and rewrite the scores of the population.

        Both writes belong to one transaction: either all of them are applied or none.

        Args:
            record: The new or replacing record
            scores: ``user_id -> (score, percentile)`` for every member

        Raises:
            StoreError: If the write fails
        """
        pass

"""In-memory population repository."""
from typing import Dict, List, Mapping, Tuple

from facescore.domain.entities.user import UserRecord
from facescore.domain.interfaces.storage.population import PopulationRepository


class InMemoryPopulationRepository(PopulationRepository):
    """Keeps records in a dict. Used when no database is configured and in tests."""

    def __init__(self) -> None:
        self._records: Dict[str, UserRecord] = {}

    async def load_all(self) -> List[UserRecord]:
        return list(self._records.values())

    async def save(self, record: UserRecord, scores: Mapping[str, Tuple[float, float]]) -> None:
        records = dict(self._records)
        records[record.user_id] = record
        for user_id, (score, percentile) in scores.items():
            if user_id in records:
                records[user_id] = records[user_id].model_copy(
                    update={"score": score, "percentile": percentile}
                )
        self._records = records

"""SQLAlchemy implementation of the population repository."""
from typing import List, Mapping, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from facescore.core.exceptions import StoreError
from facescore.core.logging import get_logger
from facescore.domain.entities.user import UserRecord
from facescore.domain.interfaces.storage.population import PopulationRepository
from facescore.infrastructure.database.repositories import UserScoreRepository
from facescore.infrastructure.database.session import get_db_session
from facescore.infrastructure.database.unit_of_work import UnitOfWork

logger = get_logger(__name__)


class SqlPopulationRepository(PopulationRepository):
    """Stores one ``user_scores`` row per user."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def load_all(self) -> List[UserRecord]:
        try:
            async with get_db_session(self._session_factory) as session:
                rows = await UserScoreRepository(session).list_all()
                return [UserScoreRepository.to_record(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load user scores: {str(e)}")

    async def save(self, record: UserRecord, scores: Mapping[str, Tuple[float, float]]) -> None:
        try:
            async with get_db_session(self._session_factory) as session:
                async with UnitOfWork(session) as uow:
                    await uow.scores.upsert(record)
                    await uow.scores.update_scores(scores)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to save user score: {str(e)}")

        logger.debug("Persisted user score", user_id=record.user_id, population_size=len(scores))

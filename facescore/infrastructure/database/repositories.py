"""Database repositories for the face score service."""
from typing import List, Mapping, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from facescore.domain.entities.user import QualityMetrics, UserRecord
from facescore.infrastructure.database.models import UserScore


class UserScoreRepository:
    """Repository for user score rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository.

        Args:
            session: Database session
        """
        self._session = session

    async def get(self, user_id: str) -> Optional[UserScore]:
        return await self._session.get(UserScore, user_id)

    async def list_all(self) -> List[UserScore]:
        result = await self._session.execute(select(UserScore))
        return list(result.scalars().all())

    async def upsert(self, record: UserRecord) -> UserScore:
        """Insert ``record`` or overwrite the existing row of the same user.

        Args:
            record: Scored user record

        Returns:
            UserScore: The stored row
        """
        values = dict(
            embedding=[float(v) for v in record.embedding],
            quality=record.metrics.quality,
            frontality=record.metrics.frontality,
            symmetry=record.metrics.symmetry,
            resolution=record.metrics.resolution,
            confidence=record.metrics.confidence,
            score=record.score,
            percentile=record.percentile,
            vibe_tags=list(record.vibe_tags),
            degraded=record.degraded,
            submitted_at=record.submitted_at,
        )
        row = await self.get(record.user_id)
        if row is None:
            row = UserScore(user_id=record.user_id, **values)
            self._session.add(row)
        else:
            for key, value in values.items():
                setattr(row, key, value)
        await self._session.flush()
        return row

    async def update_scores(self, scores: Mapping[str, Tuple[float, float]]) -> None:
        """Bulk update ``user_id -> (score, percentile)`` by primary key."""
        if not scores:
            return
        await self._session.execute(
            update(UserScore),
            [
                {"user_id": user_id, "score": score, "percentile": percentile}
                for user_id, (score, percentile) in scores.items()
            ],
        )

    @staticmethod
    def to_record(row: UserScore) -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            embedding=row.embedding,
            metrics=QualityMetrics(
                quality=row.quality,
                frontality=row.frontality,
                symmetry=row.symmetry,
                resolution=row.resolution,
                confidence=row.confidence,
            ),
            score=row.score,
            percentile=row.percentile,
            vibe_tags=list(row.vibe_tags or []),
            submitted_at=row.submitted_at,
            degraded=bool(row.degraded),
        )

"""SQLAlchemy models for the face score service."""
from datetime import datetime
from typing import List

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from facescore.core.utils.clock import utc_now


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class UserScore(Base):
    """One scored user: embedding, quality metrics and current standing."""

    __tablename__ = "user_scores"
    __table_args__ = (
        Index("idx_user_scores_score", "score"),
    )

    user_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="External system user identifier"
    )
    embedding: Mapped[List[float]] = mapped_column(
        JSON,
        nullable=False,
        comment="L2-normalised face embedding"
    )
    quality: Mapped[float] = mapped_column(Float)
    frontality: Mapped[float] = mapped_column(Float)
    symmetry: Mapped[float] = mapped_column(Float)
    resolution: Mapped[float] = mapped_column(Float)
    confidence: Mapped[float] = mapped_column(Float)
    score: Mapped[float] = mapped_column(Float, nullable=True)
    percentile: Mapped[float] = mapped_column(Float, nullable=True)
    vibe_tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    degraded: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Embedding produced by the simulated fallback"
    )
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now
    )

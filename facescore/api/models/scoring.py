"""API specific scoring models."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from facescore.domain.entities.user import QualityMetrics
from facescore.domain.value_objects.scoring import (
    LeaderboardEntry,
    PopulationStats,
    ScoreDistribution,
    ScoringResult,
    SimilarUser,
)


class SubmissionMetadata(BaseModel):
    """Verification metadata supplied by the calling system."""
    nft_verified: bool = Field(False, description="Whether the user holds a verified NFT")
    identity_verified: bool = Field(False, description="Whether the user passed identity verification")


class ScoreRequest(BaseModel):
    """Request model for the /scores endpoint."""
    user_id: str = Field(
        ...,
        description="External system user identifier",
        min_length=1, max_length=255
    )
    image_base64: str = Field(
        ...,
        description="Base64 encoded JPEG or PNG, optionally with a data URL prefix",
        min_length=1
    )
    metadata: SubmissionMetadata = Field(default_factory=SubmissionMetadata)


class ScoreResponse(BaseModel):
    """Response model describing a user's standing."""
    user_id: str
    score: float = Field(..., description="Score from 0 to 100", ge=0.0, le=100.0)
    percentile: float = Field(..., description="Fraction of the population at or below this user", ge=0.0, le=1.0)
    rank: int = Field(..., description="1-based leaderboard position")
    total_population_size: int
    confidence: float = Field(..., description="Confidence in the standing", ge=0.0, le=1.0)
    vibe_tags: List[str] = Field(default_factory=list)
    quality_metrics: QualityMetrics
    distribution: ScoreDistribution
    submitted_at: datetime
    degraded: bool = Field(False, description="Features came from the simulated fallback")

    @classmethod
    def from_service_response(cls, result: ScoringResult) -> "ScoreResponse":
        """Convert the service layer result to the API response model."""
        return cls(**result.model_dump())


class StandingResponse(BaseModel):
    """Response model for standing lookups; ``standing`` is absent when not found."""
    found: bool
    standing: Optional[ScoreResponse] = None


class LeaderboardResponse(BaseModel):
    entries: List[LeaderboardEntry]
    total_population_size: int


class SimilarUsersResponse(BaseModel):
    user_id: str
    similar_users: List[SimilarUser]


class StatsResponse(BaseModel):
    """Population statistics."""
    total_users: int
    average_score: float
    distribution: ScoreDistribution
    top_1_percent: float = Field(..., description="Score needed to be in the top 1%")
    top_5_percent: float = Field(..., description="Score needed to be in the top 5%")
    top_10_percent: float = Field(..., description="Score needed to be in the top 10%")

    @classmethod
    def from_service_response(cls, stats: PopulationStats) -> "StatsResponse":
        return cls(**stats.model_dump())


class ErrorResponse(BaseModel):
    """Error body returned for rejected requests."""
    error: str = Field(..., description="Stable reason code")
    message: str = Field(..., description="Human readable explanation")

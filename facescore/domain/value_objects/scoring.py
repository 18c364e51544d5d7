"""Scoring value objects."""
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from facescore.domain.entities.user import QualityMetrics


class ScoringState(str, Enum):
    """States of a single scoring attempt."""
    RECEIVED = "received"
    VALIDATED = "validated"
    EXTRACTED = "extracted"
    QUALITY_CHECKED = "quality_checked"
    STORED = "stored"
    COMPLETED = "completed"
    REJECTED = "rejected"


class VerificationFlags(BaseModel):
    """Caller-supplied verification metadata."""
    nft_verified: bool = False
    identity_verified: bool = False


class Submission(BaseModel):
    """A request to score one face image."""
    user_id: str
    image: bytes
    flags: VerificationFlags = Field(default_factory=VerificationFlags)


class QualitySummary(BaseModel):
    """Composite quality scores."""
    face: float
    embedding: float
    overall: float


class ValidationResult(BaseModel):
    """Outcome of the feature quality gate."""
    accepted: bool
    reasons: List[str] = Field(default_factory=list)
    quality: QualitySummary


class EligibilityState(BaseModel):
    """Derived per-request eligibility facts."""
    has_existing_record: bool
    record_age: Optional[timedelta] = None
    nft_verified: bool = False
    identity_verified: bool = False


class EligibilityResult(BaseModel):
    """Outcome of the eligibility gate."""
    eligible: bool
    reason: Optional[str] = None
    reason_code: Optional[str] = None
    state: EligibilityState


class PercentileBuckets(BaseModel):
    """Score values at fixed population percentiles."""
    p10: float = 0.0
    p25: float = 0.0
    p50: float = 0.0
    p75: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


class ScoreDistribution(BaseModel):
    """Statistics of the current population's scores."""
    mean: float = 0.0
    std: float = 0.0
    percentiles: PercentileBuckets = Field(default_factory=PercentileBuckets)
    population_size: int = 0


class SimilarUser(BaseModel):
    """A neighbour found by cosine similarity."""
    user_id: str
    similarity: float
    score: Optional[float] = None
    vibe_tags: List[str] = Field(default_factory=list)


class LeaderboardEntry(BaseModel):
    """One leaderboard row."""
    user_id: str
    score: float
    percentile: float
    vibe_tags: List[str] = Field(default_factory=list)
    rank: int
    submitted_at: datetime


class ScoringResult(BaseModel):
    """A user's standing, returned after scoring or on lookup."""
    user_id: str
    score: float = Field(..., ge=0.0, le=100.0)
    percentile: float = Field(..., ge=0.0, le=1.0)
    vibe_tags: List[str] = Field(default_factory=list)
    quality_metrics: QualityMetrics
    total_population_size: int
    rank: int
    confidence: float
    distribution: ScoreDistribution
    submitted_at: datetime
    degraded: bool = False


class PopulationStats(BaseModel):
    """Aggregate statistics about the scored population."""
    total_users: int
    average_score: float
    distribution: ScoreDistribution
    top_1_percent: float
    top_5_percent: float
    top_10_percent: float

"""Value objects package."""
from .extraction import EmbeddingResponse, ExtractionResult, HealthState
from .scoring import (
    EligibilityResult,
    EligibilityState,
    LeaderboardEntry,
    PercentileBuckets,
    PopulationStats,
    QualitySummary,
    ScoreDistribution,
    ScoringResult,
    ScoringState,
    SimilarUser,
    Submission,
    ValidationResult,
    VerificationFlags,
)

__all__ = [
    "EligibilityResult",
    "EligibilityState",
    "EmbeddingResponse",
    "ExtractionResult",
    "HealthState",
    "LeaderboardEntry",
    "PercentileBuckets",
    "PopulationStats",
    "QualitySummary",
    "ScoreDistribution",
    "ScoringResult",
    "ScoringState",
    "SimilarUser",
    "Submission",
    "ValidationResult",
    "VerificationFlags",
]

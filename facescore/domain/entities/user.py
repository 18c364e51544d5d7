"""Scored user entities."""
from datetime import datetime
from typing import Iterable, List, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_feature_vector(values: Union[np.ndarray, Iterable[float]], dim: int) -> np.ndarray:
    """Build an immutable feature vector.

    Args:
        values: Embedding values
        dim: Required vector length

    Returns:
        np.ndarray: Read-only float64 copy of ``values``

    Raises:
        ValueError: If the length is wrong or any value is not finite
    """
    vector = np.array(values, dtype=np.float64).reshape(-1)
    if vector.shape[0] != dim:
        raise ValueError(f"Feature vector must have {dim} elements, got {vector.shape[0]}")
    if not np.all(np.isfinite(vector)):
        raise ValueError("Feature vector contains non-finite values")
    vector.flags.writeable = False
    return vector


class QualityMetrics(BaseModel):
    """Quality scalars produced alongside an embedding."""
    quality: float = Field(..., ge=0.0, le=1.0, description="Embedding quality")
    frontality: float = Field(..., ge=0.0, le=1.0, description="How frontal the face is")
    symmetry: float = Field(..., ge=0.0, le=1.0, description="Face symmetry")
    resolution: float = Field(..., ge=0.0, le=1.0, description="Effective face resolution")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Detector confidence")

    model_config = ConfigDict(frozen=True)


class UserRecord(BaseModel):
    """A scored member of the population.

    ``score`` and ``percentile`` are set together, and only once the record has
    been incorporated into the population distribution.
    """
    user_id: str = Field(..., min_length=1, description="Opaque user identifier")
    embedding: np.ndarray = Field(..., description="L2-normalised face embedding")
    metrics: QualityMetrics
    score: Optional[float] = Field(None, ge=0.0, le=100.0, description="Percentile score (0-100)")
    percentile: Optional[float] = Field(None, ge=0.0, le=1.0, description="Decimal percentile (0-1)")
    vibe_tags: List[str] = Field(default_factory=list)
    submitted_at: datetime
    degraded: bool = Field(False, description="Embedding produced by the simulated fallback")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @field_validator("embedding", mode="before")
    @classmethod
    def validate_embedding(cls, v: Union[np.ndarray, list]) -> np.ndarray:
        """Convert embedding to a read-only numpy array."""
        array = np.array(v, dtype=np.float64)
        array.flags.writeable = False
        return array

    @property
    def is_scored(self) -> bool:
        return self.score is not None

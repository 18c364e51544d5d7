"""Feature extraction value objects."""
from enum import Enum
from typing import Literal, Optional, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from facescore.domain.entities.user import QualityMetrics


class HealthState(str, Enum):
    """Extraction backend health as seen by the client."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class EmbeddingResponse(BaseModel):
    """Embedding returned by the backend's embedding call.

    Metrics the backend does not report are left as ``None`` and derived from
    the detection geometry by the client.
    """
    vector: np.ndarray
    quality: float = Field(..., ge=0.0, le=1.0)
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    frontality: Optional[float] = Field(None, ge=0.0, le=1.0)
    symmetry: Optional[float] = Field(None, ge=0.0, le=1.0)
    resolution: Optional[float] = Field(None, ge=0.0, le=1.0)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("vector", mode="before")
    @classmethod
    def validate_vector(cls, v: Union[np.ndarray, list]) -> np.ndarray:
        """Convert the embedding to a numpy array."""
        return np.asarray(v, dtype=np.float64)


class ExtractionResult(BaseModel):
    """Uniform extraction result, whichever path produced it."""
    vector: np.ndarray = Field(..., description="Feature vector")
    metrics: QualityMetrics
    degraded: bool = Field(False, description="Produced by the simulated fallback")
    source: Literal["backend", "simulated"] = "backend"
    attempts: int = Field(0, ge=0, description="Backend attempts made before this result")

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

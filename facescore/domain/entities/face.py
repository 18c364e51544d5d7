"""Face detection entities returned by the extraction backend."""
from typing import Optional, Tuple

from pydantic import BaseModel, Field

Point = Tuple[float, float]


class BoundingBox(BaseModel):
    """Face bounding box in pixel coordinates."""
    left: float = Field(..., description="Left coordinate of the bounding box")
    top: float = Field(..., description="Top coordinate of the bounding box")
    width: float = Field(..., gt=0, description="Width of the bounding box")
    height: float = Field(..., gt=0, description="Height of the bounding box")

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center_x(self) -> float:
        return self.left + self.width / 2


class Landmarks(BaseModel):
    """Five-point facial landmarks in pixel coordinates."""
    left_eye: Point
    right_eye: Point
    nose: Point
    left_mouth: Point
    right_mouth: Point


class DetectedFace(BaseModel):
    """Face detection result."""
    bounding_box: BoundingBox = Field(..., description="Bounding box coordinates")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score of the detection")
    landmarks: Optional[Landmarks] = Field(None, description="Facial landmarks, when the detector provides them")

"""API v1 router initialization."""
from fastapi import APIRouter

from .scoring import router as scoring_router

# Create v1 router
router = APIRouter()

# Include scoring endpoints
router.include_router(
    scoring_router,
    tags=["scoring"]
)

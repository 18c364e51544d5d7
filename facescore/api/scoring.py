"""Scoring API endpoints."""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from facescore.api.models.scoring import (
    ErrorResponse,
    LeaderboardResponse,
    ScoreRequest,
    ScoreResponse,
    SimilarUsersResponse,
    StandingResponse,
    StatsResponse,
)
from facescore.core.config import settings
from facescore.core.exceptions import InvalidSubmissionError, ScoringError
from facescore.core.logging import get_logger
from facescore.core.utils.image import decode_base64_image
from facescore.domain.value_objects.scoring import Submission, VerificationFlags
from facescore.infrastructure.dependencies import get_scoring_orchestrator
from facescore.services.scoring import ScoringOrchestrator

logger = get_logger(__name__)
router = APIRouter(
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        500: {"model": ErrorResponse, "description": "Internal server error"}
    }
)

STATUS_CODES = {
    "validation_error": 400,
    "not_found": 404,
    "duplicate_score_error": 409,
    "no_face_detected": 422,
    "quality_too_low": 422,
    "processing_error": 500,
}


def error_response(error: ScoringError) -> JSONResponse:
    """Render a scoring rejection as ``{"error", "message"}`` with its status code."""
    return JSONResponse(
        status_code=STATUS_CODES.get(error.reason, 500),
        content={"error": error.reason, "message": error.message},
    )


def unexpected_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "processing_error", "message": "Failed to process request"},
    )


@router.post(
    "/scores",
    response_model=ScoreResponse,
    summary="Score a face image",
    description="Extracts face features, checks quality and eligibility, and ranks the user in the population.",
    responses={
        200: {
            "description": "Submission scored",
            "content": {
                "application/json": {
                    "example": {
                        "user_id": "user-123",
                        "score": 72.0,
                        "percentile": 0.72,
                        "rank": 14,
                        "total_population_size": 50,
                        "confidence": 0.66,
                        "vibe_tags": ["Bold", "Mysterious"],
                        "degraded": False,
                    }
                }
            },
        },
        400: {
            "model": ErrorResponse,
            "description": "Invalid request",
            "content": {
                "application/json": {
                    "example": {
                        "error": "validation_error",
                        "message": "Invalid image format. Only JPEG and PNG are supported."
                    }
                }
            },
        },
        409: {
            "model": ErrorResponse,
            "description": "User already has a valid score",
            "content": {
                "application/json": {
                    "example": {
                        "error": "duplicate_score_error",
                        "message": "User already has an existing valid score"
                    }
                }
            },
        },
        422: {
            "model": ErrorResponse,
            "description": "No face detected or face quality too low",
            "content": {
                "application/json": {
                    "example": {
                        "error": "quality_too_low",
                        "message": "Face quality too low for scoring: Face not frontal enough: 5.0%"
                    }
                }
            },
        },
        500: {
            "model": ErrorResponse,
            "description": "Internal server error",
            "content": {
                "application/json": {
                    "example": {"error": "processing_error", "message": "Failed to store score"}
                }
            },
        },
    },
)
async def score_face(
    request: ScoreRequest,
    orchestrator: ScoringOrchestrator = Depends(get_scoring_orchestrator)
):
    """Score a submitted face image.

    Args:
        request: User id, base64 image and verification metadata
        orchestrator: Scoring orchestrator provided by dependency injection

    Returns:
        ScoreResponse with the user's new standing, or an error body
    """
    try:
        try:
            image = decode_base64_image(request.image_base64)
        except ValueError:
            raise InvalidSubmissionError("Image must be valid base64")

        result = await orchestrator.score(Submission(
            user_id=request.user_id,
            image=image,
            flags=VerificationFlags(
                nft_verified=request.metadata.nft_verified,
                identity_verified=request.metadata.identity_verified,
            ),
        ))
        return ScoreResponse.from_service_response(result)

    except ScoringError as e:
        logger.info(
            "Score request rejected",
            user_id=request.user_id,
            reason=e.reason,
            state=e.state,
        )
        return error_response(e)
    except Exception as e:
        logger.error(
            "Unexpected error while scoring",
            user_id=request.user_id,
            error=str(e),
            exc_info=True
        )
        return unexpected_error_response()


@router.get(
    "/scores/{user_id}",
    response_model=StandingResponse,
    response_model_exclude_none=True,
    summary="Look up a user's standing",
)
async def get_standing(
    user_id: str,
    orchestrator: ScoringOrchestrator = Depends(get_scoring_orchestrator)
) -> StandingResponse:
    """Return the current standing of ``user_id``; ``found`` is false when unscored."""
    result = orchestrator.standing(user_id)
    if result is None:
        return StandingResponse(found=False)
    return StandingResponse(found=True, standing=ScoreResponse.from_service_response(result))


@router.get(
    "/scores/{user_id}/similar",
    response_model=SimilarUsersResponse,
    summary="Find users with similar faces",
    responses={404: {"model": ErrorResponse, "description": "User has no score"}},
)
async def get_similar_users(
    user_id: str,
    limit: int = Query(10, ge=1, le=settings.MAX_SIMILAR_USERS),
    orchestrator: ScoringOrchestrator = Depends(get_scoring_orchestrator)
):
    try:
        similar = orchestrator.similar_users(user_id, limit=limit)
    except ScoringError as e:
        return error_response(e)
    return SimilarUsersResponse(user_id=user_id, similar_users=similar)


@router.get(
    "/leaderboard",
    response_model=LeaderboardResponse,
    summary="Top scored users",
)
async def get_leaderboard(
    limit: int = Query(settings.MAX_LEADERBOARD_SIZE, ge=1, le=settings.MAX_LEADERBOARD_SIZE),
    orchestrator: ScoringOrchestrator = Depends(get_scoring_orchestrator)
) -> LeaderboardResponse:
    return LeaderboardResponse(
        entries=orchestrator.leaderboard(limit),
        total_population_size=orchestrator.store.size,
    )


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Population statistics",
)
async def get_stats(
    orchestrator: ScoringOrchestrator = Depends(get_scoring_orchestrator)
) -> StatsResponse:
    return StatsResponse.from_service_response(orchestrator.stats())

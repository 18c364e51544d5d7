"""CLI tool for scoring a local face image."""
import argparse
import asyncio
import sys
from pathlib import Path

from facescore.core.container import ServiceContainer
from facescore.core.exceptions import ScoringError
from facescore.core.logging import get_logger, setup_logging
from facescore.domain.value_objects.scoring import Submission, VerificationFlags

logger = get_logger(__name__)


async def score_image(
    image_path: str,
    user_id: str,
    nft_verified: bool = False,
    identity_verified: bool = False,
) -> int:
    """Score an image file and log the resulting standing.

    Args:
        image_path: Path to a JPEG or PNG file
        user_id: Identifier to score the image under
        nft_verified: Mark the submission as NFT verified
        identity_verified: Mark the submission as identity verified

    Returns:
        Process exit code
    """
    image_file = Path(image_path)
    if not image_file.exists():
        logger.error("Image file not found", path=image_path)
        return 1

    image_bytes = image_file.read_bytes()

    container = ServiceContainer()
    await container.initialize()
    try:
        result = await container.scoring_orchestrator.score(Submission(
            user_id=user_id,
            image=image_bytes,
            flags=VerificationFlags(nft_verified=nft_verified, identity_verified=identity_verified),
        ))
    except ScoringError as e:
        logger.error("Scoring rejected", reason=e.reason, message=e.message, state=e.state)
        return 2
    finally:
        await container.cleanup()

    logger.info(
        "Scoring completed",
        user_id=result.user_id,
        score=result.score,
        percentile=f"{result.percentile:.3f}",
        rank=result.rank,
        population=result.total_population_size,
        confidence=result.confidence,
        vibe_tags=result.vibe_tags,
        degraded=result.degraded,
    )
    print(result.model_dump_json(indent=2))
    return 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Score a face image against the population")
    parser.add_argument("image_path", help="Path to the image file")
    parser.add_argument("--user-id", required=True, help="User identifier to score the image under")
    parser.add_argument("--nft-verified", action="store_true", help="Mark the user as NFT verified")
    parser.add_argument("--identity-verified", action="store_true", help="Mark the user as identity verified")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(score_image(
        args.image_path,
        args.user_id,
        nft_verified=args.nft_verified,
        identity_verified=args.identity_verified,
    )))


if __name__ == "__main__":
    main()

"""Submission eligibility rules."""
from datetime import datetime, timedelta
from typing import Callable, Optional

from facescore.core.exceptions import DuplicateScoreError, InvalidSubmissionError
from facescore.core.logging import get_logger
from facescore.core.utils.clock import ensure_utc, utc_now
from facescore.domain.value_objects.scoring import EligibilityResult, EligibilityState, VerificationFlags
from facescore.services.population import PopulationStore

logger = get_logger(__name__)


class EligibilityGate:
    """Enforces one score per validity window and the verification policy.

    Verification flags are only enforced when the deployment asks for it.
    """

    def __init__(
        self,
        store: PopulationStore,
        validity: timedelta = timedelta(days=30),
        require_nft: bool = False,
        require_identity: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.validity = validity
        self.require_nft = require_nft
        self.require_identity = require_identity
        self._clock = clock

    def check(self, user_id: str, flags: Optional[VerificationFlags] = None) -> EligibilityResult:
        """Decide whether ``user_id`` may submit now.

        Args:
            user_id: Submitting user
            flags: Verification metadata supplied by the caller

        Returns:
            EligibilityResult with the decision, reason and derived state
        """
        flags = flags or VerificationFlags()
        record = self.store.get(user_id)
        age = ensure_utc(self._clock()) - record.submitted_at if record is not None else None

        state = EligibilityState(
            has_existing_record=record is not None,
            record_age=age,
            nft_verified=flags.nft_verified,
            identity_verified=flags.identity_verified,
        )

        if age is not None and age < self.validity:
            return EligibilityResult(
                eligible=False,
                reason="User already has an existing valid score",
                reason_code=DuplicateScoreError.reason,
                state=state,
            )
        if self.require_nft and not flags.nft_verified:
            return EligibilityResult(
                eligible=False,
                reason="NFT verification required",
                reason_code=InvalidSubmissionError.reason,
                state=state,
            )
        if self.require_identity and not flags.identity_verified:
            return EligibilityResult(
                eligible=False,
                reason="Identity verification required",
                reason_code=InvalidSubmissionError.reason,
                state=state,
            )

        if record is not None:
            logger.info("Existing score expired, resubmission allowed", user_id=user_id, record_age=str(age))
        return EligibilityResult(eligible=True, state=state)

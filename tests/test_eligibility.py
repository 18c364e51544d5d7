"""Tests for the eligibility gate."""
from datetime import timedelta

import pytest

from facescore.domain.value_objects.scoring import VerificationFlags
from facescore.services.eligibility import EligibilityGate
from tests.fakes import good_metrics, random_vector


@pytest.fixture
def gate(store, clock):
    return EligibilityGate(store, validity=timedelta(days=30), clock=clock)


class TestEligibilityGate:
    """Test suite for EligibilityGate."""

    async def test_new_user_is_eligible(self, gate):
        result = gate.check("newcomer")

        assert result.eligible
        assert result.reason is None
        assert not result.state.has_existing_record
        assert result.state.record_age is None

    async def test_recent_score_blocks_resubmission(self, gate, store, clock):
        await store.add("user-1", random_vector(1), good_metrics())
        clock.advance(days=29)

        result = gate.check("user-1")

        assert not result.eligible
        assert result.reason_code == "duplicate_score_error"
        assert "existing valid score" in result.reason
        assert result.state.record_age == timedelta(days=29)

    async def test_expired_score_allows_resubmission(self, gate, store, clock):
        await store.add("user-1", random_vector(1), good_metrics())
        clock.advance(days=31)

        result = gate.check("user-1")

        assert result.eligible
        assert result.state.has_existing_record

    async def test_validity_boundary(self, gate, store, clock):
        await store.add("user-1", random_vector(1), good_metrics())
        clock.advance(days=30)

        assert gate.check("user-1").eligible

    async def test_verification_not_required_by_default(self, gate):
        assert gate.check("user-1", VerificationFlags()).eligible

    async def test_nft_verification_required(self, store, clock):
        gate = EligibilityGate(store, require_nft=True, clock=clock)

        missing = gate.check("user-1", VerificationFlags(identity_verified=True))
        assert not missing.eligible
        assert missing.reason_code == "validation_error"
        assert "NFT" in missing.reason

        assert gate.check("user-1", VerificationFlags(nft_verified=True)).eligible

    async def test_identity_verification_required(self, store, clock):
        gate = EligibilityGate(store, require_identity=True, clock=clock)

        result = gate.check("user-1", VerificationFlags(nft_verified=True))

        assert not result.eligible
        assert "Identity" in result.reason
        assert result.state.nft_verified

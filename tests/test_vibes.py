"""Tests for vibe tag generation."""
import numpy as np
import pytest

from facescore.services.vibes import FALLBACK_TAG, MAX_TAGS, SIGNATURE_VIBES, VIBE_CENTERS, VibeTagger
from tests.fakes import good_metrics, random_vector

KNOWN_TAGS = {name.capitalize() for name in VIBE_CENTERS} | {name for name, _ in SIGNATURE_VIBES} | {FALLBACK_TAG}


@pytest.fixture
def tagger():
    return VibeTagger()


class TestVibeTagger:
    """Test suite for VibeTagger."""

    @pytest.mark.parametrize("seed", range(10))
    def test_tags_are_bounded_and_known(self, tagger, seed):
        tags = tagger.tags(random_vector(seed), good_metrics())

        assert 1 <= len(tags) <= MAX_TAGS
        assert len(set(tags)) == len(tags)
        assert set(tags) <= KNOWN_TAGS

    def test_tags_are_deterministic(self, tagger):
        vector = random_vector(3)

        assert tagger.tags(vector, good_metrics()) == tagger.tags(vector.copy(), good_metrics())

    def test_features_are_bounded(self, tagger):
        features = tagger.features(random_vector(4), good_metrics())

        assert features.shape == (8,)
        assert np.all(np.abs(features) < 1)

    def test_affinities_cover_every_vibe(self, tagger):
        affinities = tagger.affinities(tagger.features(random_vector(5), good_metrics()))

        assert set(affinities) == set(VIBE_CENTERS)
        assert all(0 < value <= 1 for value in affinities.values())

    def test_top_vibe_is_tagged(self, tagger):
        vector = random_vector(6)
        affinities = tagger.affinities(tagger.features(vector, good_metrics()))
        top = max(affinities, key=affinities.get)

        assert top.capitalize() in tagger.tags(vector, good_metrics())

    def test_smaller_embeddings_are_supported(self, tagger):
        vector = np.random.default_rng(0).normal(size=128)
        vector /= np.linalg.norm(vector)

        assert tagger.tags(vector, good_metrics())

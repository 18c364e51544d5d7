"""
Vibe tag generation.

The embedding is projected onto eight hand-built "vibe" features (intensity,
warmth, softness, style, energy, sophistication, naturalness, uniqueness).
Affinity to each vibe cluster is ``exp(-2 * distance)`` from the cluster centre
in that space. The top vibe is always kept, the runner-up when it is close
enough and compatible, and a signature vibe is prepended when enough of its
traits are strongly present. Tagging is deterministic.
"""
from typing import Dict, List, Optional, Tuple

import numpy as np

from facescore.core.logging import get_logger
from facescore.domain.entities.user import QualityMetrics

logger = get_logger(__name__)

MAX_TAGS = 3
FALLBACK_TAG = "Authentic"

VIBE_CENTERS: Dict[str, Tuple[float, ...]] = {
    "mysterious": (0.3, -0.4, 0.2, -0.1, -0.2, 0.6, 0.1, 0.4),
    "confident": (0.6, 0.2, -0.3, 0.1, 0.5, 0.3, -0.1, 0.2),
    "gentle": (-0.4, 0.5, 0.6, -0.2, -0.3, 0.1, 0.4, -0.2),
    "sophisticated": (0.1, -0.2, -0.1, -0.4, 0.2, 0.7, -0.3, 0.1),
    "natural": (-0.2, 0.3, 0.4, 0.0, 0.1, -0.1, 0.8, -0.3),
    "artistic": (0.2, 0.0, 0.1, 0.5, 0.3, 0.2, 0.1, 0.7),
    "radiant": (0.4, 0.6, -0.2, 0.2, 0.7, 0.1, 0.2, 0.0),
    "serene": (-0.5, 0.1, 0.5, -0.3, -0.4, 0.2, 0.6, -0.1),
    "intense": (0.8, -0.3, -0.4, 0.1, 0.4, 0.2, -0.2, 0.3),
    "playful": (0.1, 0.4, 0.3, 0.3, 0.6, -0.2, 0.2, 0.1),
}

# (name, traits) in order of precedence
SIGNATURE_VIBES: List[Tuple[str, Tuple[str, ...]]] = [
    ("Mystic", ("mysterious", "sophisticated", "cool")),
    ("Radiant", ("confident", "vibrant", "warm")),
    ("Ethereal", ("soft", "serene", "natural")),
    ("Bold", ("intense", "modern", "confident")),
    ("Classic", ("elegant", "sophisticated", "timeless")),
    ("Artistic", ("creative", "unique", "authentic")),
    ("Luminous", ("radiant", "bright", "energetic")),
    ("Refined", ("polished", "cultured", "classic")),
    ("Magnetic", ("powerful", "commanding", "intense")),
    ("Gentle", ("kind", "tender", "soft")),
    ("Enigmatic", ("intriguing", "deep", "mysterious")),
    ("Spirited", ("fun", "charming", "playful")),
    ("Serene", ("peaceful", "balanced", "calm")),
    ("Dynamic", ("energetic", "lively", "vibrant")),
]

CONFLICTING_VIBES = {
    frozenset(("gentle", "intense")),
    frozenset(("mysterious", "radiant")),
    frozenset(("serene", "playful")),
    frozenset(("sophisticated", "natural")),
}

SECONDARY_MIN_AFFINITY = 0.3
SIGNATURE_TRAIT_AFFINITY = 0.4
SIGNATURE_MIN_MEAN = 0.5
SIGNATURE_MIN_COVERAGE = 0.6


def _regions(dim: int) -> List[slice]:
    """Eye, nose, mouth, face-shape and general regions, scaled from a 512-d layout."""
    bounds = [0] + [round(dim * b / 512) for b in (100, 200, 300, 400)] + [dim]
    return [slice(start, end) for start, end in zip(bounds[:-1], bounds[1:])]


class VibeTagger:
    """Derives up to three descriptive tags from an embedding."""

    def features(self, embedding: np.ndarray, metrics: QualityMetrics) -> np.ndarray:
        """Project ``embedding`` onto the eight vibe dimensions, each in (-1, 1)."""
        e = np.asarray(embedding, dtype=np.float64)
        eyes, nose, mouth, shape, general = (e[r] for r in _regions(e.shape[0]))

        alternating = np.where(np.arange(eyes.shape[0]) % 2 == 0, 1.0, -1.0)
        intensity = np.sum(np.abs(eyes) * alternating) / 100 + (1 - metrics.symmetry) * 0.3
        warmth = np.sum(mouth) / 100 + (metrics.quality - 0.5) * 0.4
        softness = np.sum(shape * np.sin(np.arange(shape.shape[0]) * 0.1)) / 100 + metrics.frontality * 0.2
        style_weights = np.where(np.arange(general.shape[0]) % 3 == 0, 1.0, -0.5)
        style = np.sum(general * style_weights) / max(1, general.shape[0]) + (metrics.resolution - 0.5) * 0.3
        energy = (np.mean(np.abs(eyes)) + np.mean(np.abs(mouth))) / 2 + (metrics.quality + metrics.frontality) * 0.15
        sophistication = np.sum(nose * np.cos(np.arange(nose.shape[0]) * 0.05)) / 100 + metrics.symmetry * 0.4
        naturalness = (1 - min(1.0, np.mean(np.abs(e)) * 2)) + (1 - abs(metrics.quality - 0.7) * 2) * 0.3
        uniqueness = min(1.0, float(np.var(e)) * 10) + (1 - metrics.symmetry) * 0.2

        return np.tanh(np.array([
            intensity, warmth, softness, style, energy, sophistication, naturalness, uniqueness,
        ], dtype=np.float64))

    def affinities(self, features: np.ndarray) -> Dict[str, float]:
        return {
            vibe: float(np.exp(-2 * np.linalg.norm(features - np.asarray(center))))
            for vibe, center in VIBE_CENTERS.items()
        }

    @staticmethod
    def _signature(affinities: Dict[str, float]) -> Optional[str]:
        for name, traits in SIGNATURE_VIBES:
            matched = [affinities[t] for t in traits if affinities.get(t, 0.0) > SIGNATURE_TRAIT_AFFINITY]
            if not matched:
                continue
            if np.mean(matched) > SIGNATURE_MIN_MEAN and len(matched) / len(traits) >= SIGNATURE_MIN_COVERAGE:
                return name
        return None

    def tags(self, embedding: np.ndarray, metrics: QualityMetrics) -> List[str]:
        """Return at most three unique vibe tags for ``embedding``."""
        try:
            affinities = self.affinities(self.features(embedding, metrics))
        except (ValueError, FloatingPointError) as e:
            logger.warning("Vibe tagging failed", error=str(e))
            return [FALLBACK_TAG]

        ranked = sorted(affinities.items(), key=lambda item: (-item[1], item[0]))
        selected = [ranked[0][0].capitalize()]
        if len(ranked) > 1 and ranked[1][1] > SECONDARY_MIN_AFFINITY:
            if frozenset((ranked[0][0], ranked[1][0])) not in CONFLICTING_VIBES:
                selected.append(ranked[1][0].capitalize())

        signature = self._signature(affinities)
        if signature:
            selected.insert(0, signature)

        unique = list(dict.fromkeys(selected))
        return unique[:MAX_TAGS]

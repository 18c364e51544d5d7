"""Feature quality gate."""
from dataclasses import dataclass

from facescore.core.config import Settings
from facescore.domain.entities.user import QualityMetrics
from facescore.domain.value_objects.scoring import QualitySummary, ValidationResult


@dataclass(frozen=True)
class QualityThresholds:
    """Minimum acceptable value for each quality scalar."""
    min_quality: float = 0.6
    min_frontality: float = 0.5
    min_symmetry: float = 0.4
    min_resolution: float = 0.4
    min_confidence: float = 0.7

    @classmethod
    def from_settings(cls, settings: Settings) -> "QualityThresholds":
        return cls(
            min_quality=settings.MIN_QUALITY,
            min_frontality=settings.MIN_FRONTALITY,
            min_symmetry=settings.MIN_SYMMETRY,
            min_resolution=settings.MIN_RESOLUTION,
            min_confidence=settings.MIN_CONFIDENCE,
        )


class FeatureValidator:
    """Decides whether extracted features are good enough to score.

    Every violated floor is reported, not only the first one.

    Example:
        ```python
        validator = FeatureValidator(QualityThresholds())
        result = validator.validate(metrics)
        if not result.accepted:
            print("; ".join(result.reasons))
        ```
    """

    def __init__(self, thresholds: QualityThresholds) -> None:
        self.thresholds = thresholds

    def validate(self, metrics: QualityMetrics) -> ValidationResult:
        """Check ``metrics`` against the configured floors.

        Args:
            metrics: Quality scalars of one extraction

        Returns:
            ValidationResult with the acceptance decision, every failure reason
            and the composite quality summary
        """
        t = self.thresholds
        reasons = []

        if metrics.quality < t.min_quality:
            reasons.append(f"Embedding quality too low: {metrics.quality * 100:.1f}%")
        if metrics.frontality < t.min_frontality:
            reasons.append(f"Face not frontal enough: {metrics.frontality * 100:.1f}%")
        if metrics.symmetry < t.min_symmetry:
            reasons.append(f"Face symmetry too low: {metrics.symmetry * 100:.1f}%")
        if metrics.resolution < t.min_resolution:
            reasons.append(f"Face resolution too low: {metrics.resolution * 100:.1f}%")
        if metrics.confidence < t.min_confidence:
            reasons.append(f"Detection confidence too low: {metrics.confidence * 100:.1f}%")

        summary = QualitySummary(
            face=(metrics.frontality + metrics.symmetry + metrics.resolution) / 3,
            embedding=metrics.quality,
            overall=(
                metrics.quality
                + metrics.frontality
                + metrics.symmetry
                + metrics.resolution
                + metrics.confidence
            ) / 5,
        )
        return ValidationResult(accepted=not reasons, reasons=reasons, quality=summary)

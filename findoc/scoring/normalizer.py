"""Confidence normalization and display-tier bucketing.

Scores enter the core here and nowhere else. The scoring model may answer on
a 0-100 or a 0-1 scale; after ``normalize`` every value is a 0-1 fraction and
nothing downstream inspects the scale again.
"""

import logging

from findoc.scoring.schema import (
    ConfidenceBand,
    ConfidenceScore,
    RawFieldScore,
    RawScoreResponse,
    ScoreSet,
)
from findoc.shared.fields import canonical_name, expand_aliases

logger = logging.getLogger(__name__)

HIGH_THRESHOLD = 0.8
MEDIUM_THRESHOLD = 0.6


def normalize_confidence(value: float) -> float:
    """Convert a confidence on either scale to a 0-1 fraction.

    Values above 1 are read as percentages. The result is clamped to [0, 1].
    """
    normalized = value / 100 if value > 1 else value
    return min(1.0, max(0.0, normalized))


def confidence_band(value: float) -> ConfidenceBand:
    """Bucket a normalized confidence (inclusive lower bounds)."""
    if value >= HIGH_THRESHOLD:
        return ConfidenceBand.HIGH
    if value >= MEDIUM_THRESHOLD:
        return ConfidenceBand.MEDIUM
    return ConfidenceBand.LOW


class ScoreNormalizer:
    """Turns a raw scoring reply into a ScoreSet on the validation field names."""

    def normalize(self, raw: RawScoreResponse) -> ScoreSet:
        """Normalize all scores and expose them under canonical and alias names.

        If the model scored a field under an alias only, the score is moved to
        the canonical name. When both names were scored, the canonical one wins.

        Args:
            raw: Scoring model reply

        Returns:
            ScoreSet with 0-1 confidences and display bands
        """
        canonical: dict[str, ConfidenceScore] = {}
        for name, score in raw.field_scores.items():
            target = canonical_name(name)
            if target in canonical and name != target:
                continue
            canonical[target] = self._to_score(score)

        overall = raw.overall_confidence
        if overall is not None:
            overall = normalize_confidence(overall)

        logger.debug(f"Normalized {len(canonical)} field scores (overall={overall})")
        return ScoreSet(
            field_scores=expand_aliases(canonical),  # type: ignore[arg-type]
            overall_confidence=overall,
            overall_band=confidence_band(overall) if overall is not None else None,
        )

    @staticmethod
    def _to_score(raw: RawFieldScore) -> ConfidenceScore:
        confidence = normalize_confidence(raw.confidence)
        return ConfidenceScore(
            confidence=confidence, reasoning=raw.reasoning, band=confidence_band(confidence)
        )

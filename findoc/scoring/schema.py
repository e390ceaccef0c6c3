"""Confidence score models.

Raw* models describe what the scoring model returns (scale unknown: 0-1 or
0-100). ConfidenceScore and ScoreSet hold normalized 0-1 values only.
"""

from enum import Enum

from pydantic import BaseModel, Field

from findoc.shared.fields import canonical_name


class RawFieldScore(BaseModel):
    """Per-field score as returned by the scoring model."""

    confidence: float
    reasoning: str = ""


class RawScoreResponse(BaseModel):
    """Scoring model reply before normalization."""

    field_scores: dict[str, RawFieldScore]
    overall_confidence: float | None = None


class ConfidenceBand(str, Enum):
    """Display tier for a normalized confidence."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ConfidenceScore(BaseModel):
    """Normalized confidence for one field."""

    confidence: float = Field(ge=0, le=1)
    reasoning: str = ""
    band: ConfidenceBand


class ScoreSet(BaseModel):
    """Normalized scores keyed by canonical and alias field names."""

    field_scores: dict[str, ConfidenceScore] = Field(default_factory=dict)
    overall_confidence: float | None = Field(None, ge=0, le=1)
    overall_band: ConfidenceBand | None = None

    def get(self, field: str) -> ConfidenceScore | None:
        """Look up a score by canonical or alias name."""
        return self.field_scores.get(field) or self.field_scores.get(canonical_name(field))

"""Caller-facing pipeline result models."""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from findoc.extraction.schema import ExtractedFieldSet
from findoc.governor.service import UsageRecord
from findoc.scoring.schema import ScoreSet
from findoc.shared.errors import ErrorKind
from findoc.validation.schema import ValidationResult, ValidationSummary

ScoringStatus = Literal["completed", "skipped", "failed"]


class AggregateUsage(UsageRecord):
    """Combined usage over all stages that called a model.

    Token counts and cost are summed. ``daily_total`` and ``remaining_budget``
    come from the most recent stage; each stage's own record (as of its own
    call time) is kept in ``stages``.
    """

    stages: dict[str, UsageRecord]

    @classmethod
    def from_stages(cls, stages: dict[str, UsageRecord]) -> "AggregateUsage | None":
        if not stages:
            return None
        records = list(stages.values())
        latest = records[-1]
        return cls(
            input_tokens=sum(r.input_tokens for r in records),
            output_tokens=sum(r.output_tokens for r in records),
            cost=sum(r.cost for r in records),
            daily_total=latest.daily_total,
            daily_limit=latest.daily_limit,
            remaining_budget=latest.remaining_budget,
            stages=dict(stages),
        )


class PipelineRecord(BaseModel):
    """Extracted, validated and (when available) scored document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    extracted: ExtractedFieldSet
    validation: dict[str, ValidationResult]
    validation_summary: ValidationSummary
    scores: ScoreSet | None = None
    scoring_status: ScoringStatus
    scoring_error: str | None = None
    scoring_error_type: ErrorKind | None = None


class PipelineResult(BaseModel):
    """Outcome of one pipeline run.

    Attributes:
        success: False only when no usable record was produced
        data: Record (present whenever extraction succeeded, unless the
            scoring failure policy is 'fatal' and scoring failed)
        usage: Aggregate usage of the stages that called a model
        error: Error message for a failed run
        error_type: Error category for a failed run
        stage: Stage that failed
        current_usage: Spend at denial time (admission denial only)
        daily_limit: Configured limit (admission denial only)
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    data: PipelineRecord | None = None
    usage: AggregateUsage | None = None
    error: str | None = None
    error_type: ErrorKind | None = None
    stage: str | None = None
    current_usage: float | None = None
    daily_limit: float | None = None

"""Pipeline orchestration: admission -> extraction -> validation -> admission -> scoring.

The run is a linear chain with no loops and no retries:

1. Admission check for extraction; denial ends the run.
2. Extraction call; a classified failure ends the run.
3. Extraction usage recorded (also for malformed replies, which were billed).
4. Validation (local, synchronous).
5. Admission check for scoring; denial keeps the validated record.
6. Scoring call; failure handling depends on ``scoring_failure_policy``:
   'preserve' keeps the validated record and flags the scoring failure,
   'fatal' fails the whole run.
7. Scoring usage recorded, scores normalized, usage aggregated.
"""

import logging
import time

from prometheus_client import Counter, Histogram

from findoc.extraction.schema import ExtractedFieldSet
from findoc.extraction.service import ExtractionGateway
from findoc.governor.service import (
    CostGovernor,
    PricingTable,
    UsageRecord,
    extraction_pricing,
    scoring_pricing,
)
from findoc.pipeline.schema import AggregateUsage, PipelineRecord, PipelineResult, ScoringStatus
from findoc.scoring.normalizer import ScoreNormalizer
from findoc.scoring.schema import ScoreSet
from findoc.scoring.service import ScoringGateway
from findoc.shared.config import Settings
from findoc.shared.errors import AdmissionDenied, MalformedUpstreamResponse, PipelineError
from findoc.validation.engine import get_summary, validate_document
from findoc.validation.schema import ValidationResultSet

logger = logging.getLogger(__name__)


# Prometheus metrics for pipeline runs
pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total pipeline runs by outcome",
    ["status"],  # success, partial, failed
)

pipeline_stage_failures_total = Counter(
    "pipeline_stage_failures_total",
    "Stage failures by stage and error type",
    ["stage", "error_type"],
)

pipeline_stage_duration_seconds = Histogram(
    "pipeline_stage_duration_seconds",
    "Upstream stage duration in seconds",
    ["stage"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
)


class PipelineOrchestrator:
    """Runs one document through extraction, validation and scoring.

    Stateless apart from the shared CostGovernor, so one instance can serve
    concurrent runs.
    """

    def __init__(
        self,
        governor: CostGovernor,
        extraction_gateway: ExtractionGateway,
        scoring_gateway: ScoringGateway,
        settings: Settings,
        normalizer: ScoreNormalizer | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            governor: Shared cost governor
            extraction_gateway: Extraction stage collaborator
            scoring_gateway: Scoring stage collaborator
            settings: Application settings (pricing, scoring failure policy)
            normalizer: Score normalizer (default instance if omitted)
        """
        self.governor = governor
        self.extraction_gateway = extraction_gateway
        self.scoring_gateway = scoring_gateway
        self.settings = settings
        self.normalizer = normalizer or ScoreNormalizer()
        self.extraction_pricing = extraction_pricing(settings)
        self.scoring_pricing = scoring_pricing(settings)

    def run(self, image: bytes, media_type: str | None = None) -> PipelineResult:
        """Process one document image.

        Args:
            image: Raw image bytes
            media_type: Declared image media type, if known

        Returns:
            PipelineResult; never raises for classified stage failures
        """
        stages: dict[str, UsageRecord] = {}

        try:
            self.governor.require_admission("extraction")
        except AdmissionDenied as e:
            return self._failed(e, "extraction", stages)

        start = time.time()
        try:
            extraction = self.extraction_gateway.extract(image, media_type)
        except PipelineError as e:
            self._charge_malformed(e, "extraction", self.extraction_pricing, stages)
            return self._failed(e, "extraction", stages)
        finally:
            pipeline_stage_duration_seconds.labels(stage="extraction").observe(time.time() - start)

        stages["extraction"] = self.governor.record_usage(
            extraction.usage.input_tokens, extraction.usage.output_tokens, self.extraction_pricing
        )

        fields = extraction.fields
        validation = validate_document(fields)

        try:
            self.governor.require_admission("scoring")
        except AdmissionDenied as e:
            logger.warning("Scoring skipped: daily budget exhausted after extraction")
            return self._completed(fields, validation, None, "skipped", e, stages)

        start = time.time()
        try:
            scoring = self.scoring_gateway.score(fields, validation)
        except PipelineError as e:
            self._charge_malformed(e, "scoring", self.scoring_pricing, stages)
            if self.settings.scoring_failure_policy == "fatal":
                return self._failed(e, "scoring", stages)
            logger.warning(f"Scoring failed, keeping validated record: {e.message}")
            return self._completed(fields, validation, None, "failed", e, stages)
        finally:
            pipeline_stage_duration_seconds.labels(stage="scoring").observe(time.time() - start)

        stages["scoring"] = self.governor.record_usage(
            scoring.usage.input_tokens, scoring.usage.output_tokens, self.scoring_pricing
        )
        scores = self.normalizer.normalize(scoring.raw)

        return self._completed(fields, validation, scores, "completed", None, stages)

    def _charge_malformed(
        self,
        error: PipelineError,
        stage: str,
        pricing: PricingTable,
        stages: dict[str, UsageRecord],
    ) -> None:
        # A malformed reply was still produced (and billed) by the model
        if isinstance(error, MalformedUpstreamResponse) and (
            error.input_tokens or error.output_tokens
        ):
            stages[stage] = self.governor.record_usage(
                error.input_tokens, error.output_tokens, pricing
            )

    def _failed(
        self, error: PipelineError, stage: str, stages: dict[str, UsageRecord]
    ) -> PipelineResult:
        pipeline_stage_failures_total.labels(stage=stage, error_type=error.error_kind.value).inc()
        pipeline_runs_total.labels(status="failed").inc()
        logger.error(f"Pipeline failed at {stage}: [{error.error_kind.value}] {error.message}")

        result = PipelineResult(
            success=False,
            usage=AggregateUsage.from_stages(stages),
            error=error.message,
            error_type=error.error_kind,
            stage=stage,
        )
        if isinstance(error, AdmissionDenied):
            result.current_usage = error.current_usage
            result.daily_limit = error.limit
        return result

    def _completed(
        self,
        fields: ExtractedFieldSet,
        validation: ValidationResultSet,
        scores: ScoreSet | None,
        scoring_status: ScoringStatus,
        scoring_error: PipelineError | None,
        stages: dict[str, UsageRecord],
    ) -> PipelineResult:
        if scoring_error is not None:
            pipeline_stage_failures_total.labels(
                stage="scoring", error_type=scoring_error.error_kind.value
            ).inc()
        pipeline_runs_total.labels(status="success" if scores is not None else "partial").inc()

        summary = get_summary(validation)
        logger.info(
            f"Pipeline complete: {summary.valid}/{summary.total} fields valid, "
            f"{summary.errors} errors, {summary.warnings} warnings, scoring {scoring_status}"
        )

        record = PipelineRecord(
            extracted=fields,
            validation=dict(validation.items()),
            validation_summary=summary,
            scores=scores,
            scoring_status=scoring_status,
            scoring_error=scoring_error.message if scoring_error else None,
            scoring_error_type=scoring_error.error_kind if scoring_error else None,
        )
        return PipelineResult(success=True, data=record, usage=AggregateUsage.from_stages(stages))

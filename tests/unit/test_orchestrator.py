"""Unit tests for the pipeline orchestrator.

Gateways are mocked; the cost governor is real (fixed clock) so admission
and usage accounting are exercised end to end.
"""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from findoc.extraction.schema import ExtractedFieldSet
from findoc.extraction.service import ExtractionGateway, ExtractionResult
from findoc.governor.service import CostGovernor
from findoc.llm.base import TokenUsage
from findoc.pipeline.orchestrator import PipelineOrchestrator
from findoc.scoring.schema import ConfidenceBand, RawFieldScore, RawScoreResponse
from findoc.scoring.service import ScoringGateway, ScoringResult
from findoc.shared.config import Settings
from findoc.shared.errors import (
    ErrorKind,
    InvalidDocument,
    MalformedUpstreamResponse,
    UpstreamAuthFailure,
    UpstreamError,
)

NOW = datetime.now(UTC)
IMAGE = b"\x89PNG fake image bytes"


@pytest.fixture
def settings() -> Settings:
    # 1 USD per million tokens on both stages keeps the arithmetic readable
    return Settings(
        daily_cost_limit_usd=1.0,
        extraction_input_per_million=1.0,
        extraction_output_per_million=1.0,
        scoring_input_per_million=1.0,
        scoring_output_per_million=1.0,
    )


@pytest.fixture
def governor() -> CostGovernor:
    return CostGovernor(daily_limit=1.0, clock=lambda: NOW)


@pytest.fixture
def fields() -> ExtractedFieldSet:
    return ExtractedFieldSet(
        vendor_name="Acme Supplies",
        invoice_number="INV-1001",
        transaction_date=NOW.date().isoformat(),
        total_amount="250.00",
        currency="USD",
        customer_name="Jane Doe",
    )


@pytest.fixture
def extraction_gateway(fields: ExtractedFieldSet) -> MagicMock:
    gateway = MagicMock(spec=ExtractionGateway)
    gateway.extract.return_value = ExtractionResult(
        fields=fields,
        usage=TokenUsage(input_tokens=100_000, output_tokens=100_000),
        provider="anthropic",
        model="vision",
    )
    return gateway


@pytest.fixture
def scoring_gateway() -> MagicMock:
    gateway = MagicMock(spec=ScoringGateway)
    gateway.score.return_value = ScoringResult(
        raw=RawScoreResponse(
            field_scores={
                "vendor_name": RawFieldScore(confidence=95, reasoning="Clear"),
                "invoice_number": RawFieldScore(confidence=55, reasoning="Smudged"),
            },
            overall_confidence=81,
        ),
        usage=TokenUsage(input_tokens=50_000, output_tokens=50_000),
        provider="anthropic",
        model="scorer",
    )
    return gateway


@pytest.fixture
def orchestrator(
    governor: CostGovernor,
    extraction_gateway: MagicMock,
    scoring_gateway: MagicMock,
    settings: Settings,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(governor, extraction_gateway, scoring_gateway, settings)


def spend(governor: CostGovernor, usd: float) -> None:
    """Pre-load the ledger with ``usd`` of spend."""
    governor.ledger.total_cost_usd = usd


class TestSuccessfulRun:
    """Test the full seven-step path."""

    def test_full_run(self, orchestrator: PipelineOrchestrator) -> None:
        result = orchestrator.run(IMAGE, "image/png")

        assert result.success is True
        assert result.error is None
        assert result.data is not None
        assert result.data.scoring_status == "completed"
        assert result.data.extracted.reference_number == "INV-1001"
        assert result.data.validation_summary.all_valid is True

    def test_scores_are_normalized_and_aliased(self, orchestrator: PipelineOrchestrator) -> None:
        result = orchestrator.run(IMAGE)

        assert result.data is not None and result.data.scores is not None
        scores = result.data.scores
        assert scores.field_scores["vendor_name"].confidence == pytest.approx(0.95)
        assert scores.field_scores["reference_number"].band == ConfidenceBand.LOW
        assert scores.field_scores["invoice_number"].band == ConfidenceBand.LOW
        assert scores.overall_band == ConfidenceBand.HIGH

    def test_validation_exposed_under_alias(self, orchestrator: PipelineOrchestrator) -> None:
        result = orchestrator.run(IMAGE)

        assert result.data is not None
        validation = result.data.validation
        assert validation["invoice_number"] == validation["reference_number"]
        assert validation["amount_due"].numeric_value == pytest.approx(250.0)

    def test_aggregate_usage(self, orchestrator: PipelineOrchestrator) -> None:
        """Tokens and cost are summed; budget fields come from the last stage."""
        result = orchestrator.run(IMAGE)

        usage = result.usage
        assert usage is not None
        assert usage.input_tokens == 150_000
        assert usage.output_tokens == 150_000
        assert usage.cost == pytest.approx(0.3)
        assert usage.daily_total == pytest.approx(0.3)
        assert usage.remaining_budget == pytest.approx(0.7)
        assert usage.stages["extraction"].remaining_budget == pytest.approx(0.8)
        assert usage.stages["scoring"].remaining_budget == pytest.approx(0.7)

    def test_usage_recorded_in_ledger(
        self, orchestrator: PipelineOrchestrator, governor: CostGovernor
    ) -> None:
        orchestrator.run(IMAGE)
        orchestrator.run(IMAGE)

        assert governor.ledger.total_cost_usd == pytest.approx(0.6)

    def test_scoring_receives_extraction_and_validation(
        self,
        orchestrator: PipelineOrchestrator,
        scoring_gateway: MagicMock,
        fields: ExtractedFieldSet,
    ) -> None:
        orchestrator.run(IMAGE)

        scored_fields, validation = scoring_gateway.score.call_args.args
        assert scored_fields == fields
        assert validation["reference_number"].valid is True

    def test_serializes_camel_case(self, orchestrator: PipelineOrchestrator) -> None:
        dumped = orchestrator.run(IMAGE).model_dump(mode="json", by_alias=True, exclude_none=True)

        assert dumped["success"] is True
        assert dumped["data"]["scoringStatus"] == "completed"
        assert dumped["data"]["validationSummary"]["allValid"] is True
        assert "remainingBudget" in dumped["usage"]
        assert "error" not in dumped


class TestExtractionFailures:
    """Failures before a record exists end the run."""

    def test_admission_denied_before_extraction(
        self,
        orchestrator: PipelineOrchestrator,
        governor: CostGovernor,
        extraction_gateway: MagicMock,
    ) -> None:
        spend(governor, 1.0)

        result = orchestrator.run(IMAGE)

        assert result.success is False
        assert result.error_type == ErrorKind.RATE_LIMIT
        assert result.stage == "extraction"
        assert result.current_usage == 1.0
        assert result.daily_limit == 1.0
        assert result.usage is None
        assert "Daily API cost limit reached" in (result.error or "")
        extraction_gateway.extract.assert_not_called()

    def test_auth_failure(
        self, orchestrator: PipelineOrchestrator, extraction_gateway: MagicMock
    ) -> None:
        extraction_gateway.extract.side_effect = UpstreamAuthFailure("API authentication failed")

        result = orchestrator.run(IMAGE)

        assert result.success is False
        assert result.error_type == ErrorKind.AUTHENTICATION
        assert result.stage == "extraction"
        assert result.current_usage is None

    def test_invalid_document(
        self, orchestrator: PipelineOrchestrator, extraction_gateway: MagicMock
    ) -> None:
        extraction_gateway.extract.side_effect = InvalidDocument("Unreadable document image")

        result = orchestrator.run(IMAGE)

        assert result.error_type == ErrorKind.INVALID_REQUEST

    def test_malformed_extraction_is_still_charged(
        self,
        orchestrator: PipelineOrchestrator,
        extraction_gateway: MagicMock,
        scoring_gateway: MagicMock,
        governor: CostGovernor,
    ) -> None:
        extraction_gateway.extract.side_effect = MalformedUpstreamResponse(
            "Extraction response could not be parsed", input_tokens=200_000, output_tokens=0
        )

        result = orchestrator.run(IMAGE)

        assert result.success is False
        assert result.error_type == ErrorKind.MALFORMED_RESPONSE
        assert result.usage is not None
        assert result.usage.cost == pytest.approx(0.2)
        assert governor.ledger.total_cost_usd == pytest.approx(0.2)
        scoring_gateway.score.assert_not_called()


class TestScoringFailures:
    """Failures after extraction keep the validated record by default."""

    def test_admission_denied_before_scoring_skips(
        self,
        orchestrator: PipelineOrchestrator,
        governor: CostGovernor,
        scoring_gateway: MagicMock,
    ) -> None:
        # Extraction (0.2) pushes the ledger from 0.85 past the limit
        spend(governor, 0.85)

        result = orchestrator.run(IMAGE)

        assert result.success is True
        assert result.data is not None
        assert result.data.scoring_status == "skipped"
        assert result.data.scores is None
        assert result.data.scoring_error_type == ErrorKind.RATE_LIMIT
        assert result.data.validation_summary.total == 6
        assert result.usage is not None
        assert set(result.usage.stages) == {"extraction"}
        scoring_gateway.score.assert_not_called()

    def test_scoring_failure_preserves_record(
        self, orchestrator: PipelineOrchestrator, scoring_gateway: MagicMock
    ) -> None:
        scoring_gateway.score.side_effect = UpstreamError("Upstream error (HTTP 500): overloaded")

        result = orchestrator.run(IMAGE)

        assert result.success is True
        assert result.data is not None
        assert result.data.scoring_status == "failed"
        assert result.data.scoring_error == "Upstream error (HTTP 500): overloaded"
        assert result.data.scoring_error_type == ErrorKind.SERVER
        assert result.data.extracted.vendor_name == "Acme Supplies"

    def test_scoring_failure_fatal_policy(
        self,
        governor: CostGovernor,
        extraction_gateway: MagicMock,
        scoring_gateway: MagicMock,
        settings: Settings,
    ) -> None:
        fatal = settings.model_copy(update={"scoring_failure_policy": "fatal"})
        orchestrator = PipelineOrchestrator(governor, extraction_gateway, scoring_gateway, fatal)
        scoring_gateway.score.side_effect = UpstreamAuthFailure("API authentication failed")

        result = orchestrator.run(IMAGE)

        assert result.success is False
        assert result.data is None
        assert result.stage == "scoring"
        assert result.error_type == ErrorKind.AUTHENTICATION
        assert result.usage is not None
        assert set(result.usage.stages) == {"extraction"}

    def test_fatal_policy_still_preserves_on_admission_denial(
        self,
        governor: CostGovernor,
        extraction_gateway: MagicMock,
        scoring_gateway: MagicMock,
        settings: Settings,
    ) -> None:
        fatal = settings.model_copy(update={"scoring_failure_policy": "fatal"})
        orchestrator = PipelineOrchestrator(governor, extraction_gateway, scoring_gateway, fatal)
        spend(governor, 0.9)

        result = orchestrator.run(IMAGE)

        assert result.success is True
        assert result.data is not None
        assert result.data.scoring_status == "skipped"

    def test_malformed_scoring_is_charged(
        self,
        orchestrator: PipelineOrchestrator,
        scoring_gateway: MagicMock,
        governor: CostGovernor,
    ) -> None:
        scoring_gateway.score.side_effect = MalformedUpstreamResponse(
            "Scoring response could not be parsed", input_tokens=50_000, output_tokens=50_000
        )

        result = orchestrator.run(IMAGE)

        assert result.data is not None
        assert result.data.scoring_status == "failed"
        assert result.data.scoring_error_type == ErrorKind.MALFORMED_RESPONSE
        assert result.usage is not None
        assert set(result.usage.stages) == {"extraction", "scoring"}
        assert governor.ledger.total_cost_usd == pytest.approx(0.3)

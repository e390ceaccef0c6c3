"""Scoring gateway: field set + validation results -> raw confidence scores."""

import json
import logging

from pydantic import BaseModel, ValidationError

from findoc.extraction.schema import ExtractedFieldSet
from findoc.llm.base import LLMProvider, TokenUsage
from findoc.llm.json_tools import parse_json_object
from findoc.scoring.schema import RawScoreResponse
from findoc.shared.config import Settings
from findoc.shared.errors import MalformedUpstreamResponse
from findoc.validation.schema import ValidationResultSet

logger = logging.getLogger(__name__)

SCORING_PROMPT = """You are a confidence scoring assistant. Review the extracted \
financial document data below together with the rule-based validation results \
and rate how trustworthy each extracted field is.

Extracted Data:
{extracted}

Validation Results:
{validation}

For each field in the extracted data, provide:
1. A confidence score from 0 to 100
2. Brief reasoning (1-2 sentences)

Return ONLY valid JSON with this structure:
{{
  "field_scores": {{
    "vendor_name": {{"confidence": 95, "reasoning": "Business name clearly printed in the header"}},
    "reference_number": {{"confidence": 90, "reasoning": "Invoice number is clearly labeled"}}
  }},
  "overall_confidence": 92
}}"""


class ScoringResult(BaseModel):
    """Raw scoring reply plus token usage."""

    raw: RawScoreResponse
    usage: TokenUsage
    provider: str
    model: str


class ScoringGateway:
    """Asks the scoring model to rate an extracted, validated field set."""

    def __init__(self, provider: LLMProvider, settings: Settings) -> None:
        """Initialize gateway.

        Args:
            provider: LLM provider serving the scoring model
            settings: Application settings (model, token cap)
        """
        self.provider = provider
        self.settings = settings

    def score(self, fields: ExtractedFieldSet, validation: ValidationResultSet) -> ScoringResult:
        """Request per-field confidence scores.

        Args:
            fields: Extracted document fields
            validation: Validation results for those fields

        Returns:
            ScoringResult with un-normalized scores and token usage

        Raises:
            MalformedUpstreamResponse: Reply is not the expected JSON shape
            PipelineError: Any other classified upstream failure
        """
        prompt = SCORING_PROMPT.format(
            extracted=json.dumps(fields.model_dump(mode="json"), indent=2),
            validation=json.dumps(validation.to_dict(include_aliases=False), indent=2),
        )
        logger.info(f"Scoring extracted fields via {self.provider.provider_name}")

        response = self.provider.complete(
            prompt,
            model=self.settings.scoring_model,
            max_tokens=self.settings.scoring_max_tokens,
        )
        usage = TokenUsage(
            input_tokens=response.input_tokens, output_tokens=response.output_tokens
        )

        try:
            raw = RawScoreResponse.model_validate(parse_json_object(response.text))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Failed to parse scoring response: {e}")
            raise MalformedUpstreamResponse(
                f"Scoring response could not be parsed: {e}",
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
            ) from e

        return ScoringResult(
            raw=raw, usage=usage, provider=response.provider, model=response.model
        )

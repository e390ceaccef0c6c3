"""Unit tests for LLM provider selection and shared helpers.

Tests cover:
- Per-stage provider creation from settings
- Rejection of unknown provider names
- Status code classification and JSON reply parsing
"""

import json
import logging
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from findoc.llm.anthropic_provider import AnthropicProvider
from findoc.llm.base import classify_status
from findoc.llm.factory import PROVIDERS, create_provider
from findoc.llm.json_tools import parse_json_object
from findoc.llm.openai_provider import OpenAIProvider
from findoc.shared.config import Settings
from findoc.shared.errors import UpstreamAuthFailure, UpstreamError, UpstreamRateLimit


def test_providers_cover_configurable_names() -> None:
    assert PROVIDERS == {"anthropic": AnthropicProvider, "openai": OpenAIProvider}


@patch.dict("os.environ", {"ANTHROPIC_API_KEY": "sk-test"})
def test_create_provider_per_stage() -> None:
    """Each stage gets the provider named in its own setting."""
    settings = Settings(extraction_provider="anthropic", scoring_provider="openai")

    assert isinstance(create_provider(settings, "extraction"), AnthropicProvider)
    assert isinstance(create_provider(settings, "scoring"), OpenAIProvider)


def test_stages_get_separate_instances() -> None:
    settings = Settings(extraction_provider="anthropic", scoring_provider="anthropic")

    assert create_provider(settings, "extraction") is not create_provider(settings, "scoring")


@patch.dict("os.environ", {}, clear=True)
def test_create_provider_warns_when_unavailable(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        provider = create_provider(Settings(), "scoring")

    assert provider.provider_name == "anthropic"
    assert "'anthropic' for scoring is not fully available" in caplog.text


def test_unknown_provider_rejected_by_settings() -> None:
    with pytest.raises(ValidationError):
        Settings(extraction_provider="bedrock")  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "status_code,expected",
    [
        (401, UpstreamAuthFailure),
        (403, UpstreamAuthFailure),
        (429, UpstreamRateLimit),
        (400, UpstreamError),
        (500, UpstreamError),
        (503, UpstreamError),
    ],
)
def test_classify_status(status_code: int, expected: type[Exception]) -> None:
    error = classify_status(status_code, "detail")

    assert type(error) is expected
    assert "detail" in error.message


class TestParseJsonObject:
    """Test JSON extraction from model replies."""

    def test_plain_json(self) -> None:
        assert parse_json_object('{"vendor_name": "Acme"}') == {"vendor_name": "Acme"}

    def test_json_in_markdown(self) -> None:
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_json_in_bare_fence(self) -> None:
        assert parse_json_object('```\n{"a": 1}\n```') == {"a": 1}

    def test_json_with_surrounding_text(self) -> None:
        text = 'Here is the result: {"a": {"b": 2}} Done.'

        assert parse_json_object(text) == {"a": {"b": 2}}

    def test_invalid_json_raises(self) -> None:
        with pytest.raises(json.JSONDecodeError):
            parse_json_object("not json at all")

    def test_non_object_raises(self) -> None:
        with pytest.raises(ValueError, match="Expected a JSON object"):
            parse_json_object("[1, 2, 3]")

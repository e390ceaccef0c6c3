"""OpenAI-based provider for extraction and scoring.

Uses the OpenAI Chat Completions API in JSON mode. The document image is
sent as a base64 data URL. Requires OPENAI_API_KEY environment variable.

The SDK's own retry loop is disabled; only connection errors are retried
here, so auth failures and rate limits reach the pipeline unchanged.
Remember to point APP_EXTRACTION_MODEL / APP_SCORING_MODEL at OpenAI models
(e.g. gpt-4o, gpt-4o-mini) when selecting this provider.
"""

import base64
import logging
import os
from typing import Any

import openai
from openai import OpenAI
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from findoc.llm.base import ImageInput, LLMProvider, ProviderResponse, classify_status
from findoc.shared.config import Settings
from findoc.shared.errors import MalformedUpstreamResponse, UpstreamAuthFailure, UpstreamError

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI chat models (vision-capable, e.g. gpt-4o / gpt-4o-mini)."""

    def __init__(self, settings: Settings) -> None:
        """Initialize OpenAI provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._client: OpenAI | None = None

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'openai'
        """
        return "openai"

    def is_available(self) -> bool:
        """Check if OpenAI API key is configured.

        Returns:
            True if OPENAI_API_KEY environment variable is set
        """
        return os.getenv("OPENAI_API_KEY") is not None

    def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        image: ImageInput | None = None,
    ) -> ProviderResponse:
        """Send a prompt (and optional image) to OpenAI.

        Args:
            prompt: User prompt text
            model: OpenAI model identifier
            max_tokens: Completion token cap
            image: Optional document image

        Returns:
            ProviderResponse with output text and token usage

        Raises:
            UpstreamAuthFailure: Missing key or authentication/permission error
            UpstreamRateLimit: HTTP 429
            MalformedUpstreamResponse: Completion has no text content
            UpstreamError: Any other API or connection failure
        """
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise UpstreamAuthFailure("OPENAI_API_KEY environment variable not set")

        # Initialize client if not already done
        if self._client is None or self._client.api_key != api_key:
            self._client = OpenAI(
                api_key=api_key,
                max_retries=0,
                timeout=self.settings.upstream_timeout_seconds,
            )

        try:
            response = self._call_openai_with_retry(
                self._build_messages(prompt, image), model, max_tokens
            )
        except openai.APIStatusError as e:
            logger.warning(f"OpenAI returned HTTP {e.status_code} for model {model}")
            raise classify_status(e.status_code, e.message) from e
        except openai.APIConnectionError as e:
            logger.error(f"OpenAI connection failure after retries: {e}")
            raise UpstreamError(f"Upstream connection failed: {e}") from e

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise MalformedUpstreamResponse(
                "No message content in API response",
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        return ProviderResponse(
            text=text,
            model=response.model or model,
            provider=self.provider_name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    @retry(
        retry=retry_if_exception_type(openai.APIConnectionError),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _call_openai_with_retry(
        self, messages: list[dict[str, Any]], model: str, max_tokens: int
    ) -> Any:
        """Call OpenAI API, retrying connection-level failures only.

        Args:
            messages: Chat messages
            model: Model identifier
            max_tokens: Completion token cap

        Returns:
            OpenAI API response
        """
        if self._client is None:
            raise RuntimeError("OpenAI client not initialized")

        return self._client.chat.completions.create(  # type: ignore[call-overload]
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=0,  # Deterministic output
            response_format={"type": "json_object"},
        )

    def _build_messages(self, prompt: str, image: ImageInput | None) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        if image is not None:
            encoded = base64.b64encode(image.data).decode("ascii")
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{image.media_type};base64,{encoded}"},
                }
            )
        return [{"role": "user", "content": content}]

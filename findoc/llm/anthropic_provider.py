"""Anthropic Messages API provider.

Calls the Messages API directly over httpx with the document image passed as
a base64 content block. Requires ANTHROPIC_API_KEY environment variable.

Connection-level failures (connect errors, timeouts) are retried by the
transport with exponential backoff. HTTP error statuses are never retried
here: they are classified and raised to the caller.
"""

import base64
import logging
import os
from typing import Any

import httpx
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


class AnthropicProvider(LLMProvider):
    """Claude models via the Anthropic Messages API."""

    def __init__(self, settings: Settings) -> None:
        """Initialize Anthropic provider.

        Args:
            settings: Application settings
        """
        super().__init__(settings)
        self._base_url = settings.anthropic_base_url.rstrip("/")
        self._client = httpx.Client(timeout=settings.upstream_timeout_seconds)

    @property
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier 'anthropic'
        """
        return "anthropic"

    def is_available(self) -> bool:
        """Check if Anthropic API key is configured.

        Returns:
            True if ANTHROPIC_API_KEY environment variable is set
        """
        return bool(os.getenv("ANTHROPIC_API_KEY"))

    def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        image: ImageInput | None = None,
    ) -> ProviderResponse:
        """Send a prompt (and optional image) to the Messages API.

        Args:
            prompt: User prompt text
            model: Claude model identifier
            max_tokens: Completion token cap
            image: Optional document image

        Returns:
            ProviderResponse with output text and token usage

        Raises:
            UpstreamAuthFailure: Missing key or HTTP 401/403
            UpstreamRateLimit: HTTP 429
            MalformedUpstreamResponse: Response body lacks the expected shape
            UpstreamError: Any other HTTP or transport failure
        """
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise UpstreamAuthFailure("ANTHROPIC_API_KEY environment variable not set")

        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": 0,
            "messages": [{"role": "user", "content": self._build_content(prompt, image)}],
        }

        try:
            response = self._post_with_retry(payload, api_key)
        except httpx.TransportError as e:
            logger.error(f"Anthropic transport failure after retries: {e}")
            raise UpstreamError(f"Upstream connection failed: {e}") from e

        if response.is_error:
            logger.warning(f"Anthropic returned HTTP {response.status_code} for model {model}")
            raise classify_status(response.status_code, self._error_detail(response))

        return self._parse_response(response, model)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential_jitter(initial=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _post_with_retry(self, payload: dict[str, Any], api_key: str) -> httpx.Response:
        """POST to the Messages API, retrying only connection-level failures.

        Args:
            payload: Request JSON body
            api_key: Anthropic API key

        Returns:
            Raw HTTP response (any status)
        """
        return self._client.post(
            f"{self._base_url}/v1/messages",
            headers={
                "x-api-key": api_key,
                "anthropic-version": self.settings.anthropic_version,
                "content-type": "application/json",
            },
            json=payload,
        )

    def _build_content(self, prompt: str, image: ImageInput | None) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = []
        if image is not None:
            content.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.media_type,
                        "data": base64.b64encode(image.data).decode("ascii"),
                    },
                }
            )
        content.append({"type": "text", "text": prompt})
        return content

    def _parse_response(self, response: httpx.Response, model: str) -> ProviderResponse:
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedUpstreamResponse(f"Upstream body is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedUpstreamResponse("Upstream body is not a JSON object")

        input_tokens, output_tokens = self._token_counts(data.get("usage"))

        content = data.get("content") or []
        if not isinstance(content, list):
            raise MalformedUpstreamResponse(
                "Upstream content is not a list",
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )
        text_blocks = [
            block["text"]
            for block in content
            if isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        ]
        if not text_blocks:
            raise MalformedUpstreamResponse(
                "No text content in API response",
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        return ProviderResponse(
            text="".join(text_blocks),
            model=str(data.get("model") or model),
            provider=self.provider_name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    @staticmethod
    def _token_counts(usage: Any) -> tuple[int, int]:
        """Read billed token counts; absent or null counts are 0.

        Raises:
            MalformedUpstreamResponse: Usage is not an object or a count is not numeric
        """
        if usage is None:
            return 0, 0
        if not isinstance(usage, dict):
            raise MalformedUpstreamResponse("Upstream usage is not a JSON object")
        try:
            input_tokens = int(usage.get("input_tokens") or 0)
            output_tokens = int(usage.get("output_tokens") or 0)
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedUpstreamResponse(f"Upstream usage counts are not numeric: {e}") from e
        return max(input_tokens, 0), max(output_tokens, 0)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason_phrase
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return response.reason_phrase

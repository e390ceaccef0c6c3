"""Abstract base class for LLM providers.

Both AI-calling stages (extraction and scoring) talk to a model through this
interface, so either stage can be switched between providers via settings.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from findoc.shared.config import Settings
from findoc.shared.errors import (
    PipelineError,
    UpstreamAuthFailure,
    UpstreamError,
    UpstreamRateLimit,
)


class ImageInput(BaseModel):
    """Document image sent alongside a prompt."""

    data: bytes
    media_type: str


class TokenUsage(BaseModel):
    """Tokens billed for one model call."""

    input_tokens: int = 0
    output_tokens: int = 0


class ProviderResponse(BaseModel):
    """Raw text completion plus token accounting.

    Attributes:
        text: Model output text
        model: Model that produced the output
        provider: Provider name (e.g., 'anthropic', 'openai')
        input_tokens: Prompt tokens billed
        output_tokens: Completion tokens billed
    """

    text: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProvider(ABC):
    """Abstract base class for model providers.

    Implementations raise the pipeline error taxonomy
    (UpstreamAuthFailure, UpstreamRateLimit, MalformedUpstreamResponse,
    UpstreamError) instead of provider-specific exceptions.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        image: ImageInput | None = None,
    ) -> ProviderResponse:
        """Send a single-turn prompt, optionally with one image.

        Args:
            prompt: User prompt text
            model: Model identifier
            max_tokens: Completion token cap
            image: Optional document image

        Returns:
            ProviderResponse with the model text and token usage

        Raises:
            PipelineError: Classified upstream failure
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured (e.g., API key present).

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'anthropic', 'openai')
        """
        pass


def classify_status(status_code: int, detail: str) -> PipelineError:
    """Map an upstream HTTP status code to the pipeline error taxonomy.

    Args:
        status_code: HTTP status returned by the provider
        detail: Provider error message

    Returns:
        Exception instance to raise
    """
    if status_code in (401, 403):
        return UpstreamAuthFailure(f"API authentication failed: {detail}")
    if status_code == 429:
        return UpstreamRateLimit(f"API rate limit exceeded: {detail}")
    return UpstreamError(f"Upstream error (HTTP {status_code}): {detail}")

"""Provider selection for the two model-backed pipeline stages.

Each stage names its provider in settings (APP_EXTRACTION_PROVIDER,
APP_SCORING_PROVIDER); settings validation restricts both to the keys of
PROVIDERS. The same provider class may back both stages.
"""

import logging
from typing import Literal

from findoc.llm.anthropic_provider import AnthropicProvider
from findoc.llm.base import LLMProvider
from findoc.llm.openai_provider import OpenAIProvider
from findoc.shared.config import Settings

logger = logging.getLogger(__name__)

Stage = Literal["extraction", "scoring"]

PROVIDERS: dict[str, type[LLMProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def create_provider(settings: Settings, stage: Stage) -> LLMProvider:
    """Create the provider configured for a pipeline stage.

    Logs a warning if the provider is not available (e.g., missing API key);
    the call itself will then fail with UpstreamAuthFailure.

    Args:
        settings: Application settings
        stage: "extraction" or "scoring"

    Returns:
        Configured provider instance

    Example:
        >>> provider = create_provider(Settings(), "extraction")
    """
    name = settings.extraction_provider if stage == "extraction" else settings.scoring_provider
    provider = PROVIDERS[name](settings)

    if not provider.is_available():
        logger.warning(
            f"LLM provider '{name}' for {stage} is not fully available. "
            f"Check configuration (e.g., API keys)."
        )

    logger.info(f"Created LLM provider for {stage}: {name}")
    return provider

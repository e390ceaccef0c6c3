"""Shared configuration management for the document pipeline.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_DAILY_COST_LIMIT_USD=5.0

    API keys are read from the provider's own variables
    (ANTHROPIC_API_KEY, OPENAI_API_KEY), not from APP_ settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="findoc-pipeline",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Provider selection per AI-calling stage
    extraction_provider: Literal["anthropic", "openai"] = Field(
        default="anthropic",
        description="LLM provider used for document field extraction",
    )
    scoring_provider: Literal["anthropic", "openai"] = Field(
        default="anthropic",
        description="LLM provider used for confidence scoring",
    )
    extraction_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Vision-capable model for extraction",
    )
    scoring_model: str = Field(
        default="claude-3-5-haiku-20241022",
        description="Cheaper model for confidence scoring",
    )
    extraction_max_tokens: int = Field(default=2000, gt=0)
    scoring_max_tokens: int = Field(default=1500, gt=0)

    # Anthropic transport
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com",
        description="Anthropic Messages API base URL",
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        description="Value of the anthropic-version header",
    )
    upstream_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="HTTP timeout for a single upstream model call",
    )

    # Cost governance
    daily_cost_limit_usd: float = Field(
        default=1.0,
        ge=0,
        description="Daily spend limit shared by extraction and scoring (soft cap)",
    )
    extraction_input_per_million: float = Field(
        default=3.00,
        ge=0,
        description="Extraction model input price, USD per million tokens",
    )
    extraction_output_per_million: float = Field(
        default=15.00,
        ge=0,
        description="Extraction model output price, USD per million tokens",
    )
    scoring_input_per_million: float = Field(
        default=0.80,
        ge=0,
        description="Scoring model input price, USD per million tokens",
    )
    scoring_output_per_million: float = Field(
        default=4.00,
        ge=0,
        description="Scoring model output price, USD per million tokens",
    )

    # Pipeline behavior
    scoring_failure_policy: Literal["preserve", "fatal"] = Field(
        default="preserve",
        description=(
            "preserve: keep extraction+validation output when scoring fails; "
            "fatal: fail the whole run when the scoring call fails"
        ),
    )
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Maximum accepted document image size",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()

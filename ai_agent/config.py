"""AI agent configuration.

Centralised, typed configuration for the generation pipeline.  All settings
use Pydantic v2 models so they can be validated at construction time and
serialised to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from .models import PipelineStage
from .retry import RetryPolicy

HAIKU = "claude-3-haiku-20240307"
SONNET = "claude-sonnet-4-20250514"

ModelTier = Literal["fast", "balanced", "quality"]

#: Model used for each stage, per cost/quality tier.
MODEL_TIERS: dict[str, dict[PipelineStage, str]] = {
    # Haiku everywhere; cheapest, leans hardest on output repair.
    "fast": {
        PipelineStage.INTENT: HAIKU,
        PipelineStage.ARCHITECTURE: HAIKU,
        PipelineStage.CODE: HAIKU,
        PipelineStage.CONTEXT: HAIKU,
    },
    "balanced": {
        PipelineStage.INTENT: HAIKU,
        PipelineStage.ARCHITECTURE: HAIKU,
        PipelineStage.CODE: SONNET,
        PipelineStage.CONTEXT: HAIKU,
    },
    "quality": {
        PipelineStage.INTENT: SONNET,
        PipelineStage.ARCHITECTURE: SONNET,
        PipelineStage.CODE: SONNET,
        PipelineStage.CONTEXT: SONNET,
    },
}

DEFAULT_MODEL_TIER: ModelTier = "balanced"

_TRUTHY = {"1", "true", "yes", "on"}


class ProviderConfig(BaseModel):
    """Connection settings for the generative-text provider."""

    name: Literal["anthropic", "ollama"] = Field(default="anthropic")
    api_key: str = Field(default="", repr=False)
    base_url: str = Field(default="")
    timeout: float = Field(default=120.0, gt=0, description="Per-request timeout in seconds")
    model: str = Field(
        default="",
        description="Force one model for every stage; empty means use the tier table",
    )

    @property
    def resolved_base_url(self) -> str:
        if self.base_url:
            return self.base_url.rstrip("/")
        if self.name == "ollama":
            return "http://localhost:11434"
        return "https://api.anthropic.com"


class GenerationConfig(BaseModel):
    """Tuning knobs for a generation run."""

    model_tier: ModelTier = Field(default=DEFAULT_MODEL_TIER)
    log_token_usage: bool = Field(default=False, description="Print the usage summary after a run")
    track_globally: bool = Field(
        default=True, description="Mirror usage records into the process-wide tracker"
    )
    default_project_name: str = Field(default="MyApp")


class Config(BaseModel):
    """Global AI agent configuration.

    Instances are typically created once by :func:`generate_project` or by
    the CLI entry point and then passed to :class:`ProjectPipeline`.
    """

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)

    def model_for(self, stage: PipelineStage | str) -> str:
        """Model id used for *stage* under the configured tier."""
        if self.provider.model:
            return self.provider.model
        return MODEL_TIERS[self.generation.model_tier][PipelineStage(stage)]

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file.

        The API key is left out so saved configs can be shared.

        Returns:
            The resolved path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            self.model_dump_json(indent=2, exclude={"provider": {"api_key"}}),
            encoding="utf-8",
        )
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            AI_AGENT_PROVIDER, ANTHROPIC_API_KEY, AI_AGENT_BASE_URL,
            AI_AGENT_MODEL, AI_AGENT_TIMEOUT, AI_AGENT_MODEL_TIER,
            AI_AGENT_MAX_RETRIES, AI_AGENT_BASE_DELAY_MS,
            AI_AGENT_BACKOFF_MULTIPLIER, AI_AGENT_LOG_USAGE.
        """
        provider_kwargs: dict[str, Any] = {}
        if os.environ.get("AI_AGENT_PROVIDER"):
            provider_kwargs["name"] = os.environ["AI_AGENT_PROVIDER"]
        if os.environ.get("ANTHROPIC_API_KEY"):
            provider_kwargs["api_key"] = os.environ["ANTHROPIC_API_KEY"]
        if os.environ.get("AI_AGENT_BASE_URL"):
            provider_kwargs["base_url"] = os.environ["AI_AGENT_BASE_URL"]
        if os.environ.get("AI_AGENT_MODEL"):
            provider_kwargs["model"] = os.environ["AI_AGENT_MODEL"]
        if os.environ.get("AI_AGENT_TIMEOUT"):
            provider_kwargs["timeout"] = float(os.environ["AI_AGENT_TIMEOUT"])

        retry_kwargs: dict[str, Any] = {}
        if os.environ.get("AI_AGENT_MAX_RETRIES"):
            retry_kwargs["max_retries"] = int(os.environ["AI_AGENT_MAX_RETRIES"])
        if os.environ.get("AI_AGENT_BASE_DELAY_MS"):
            retry_kwargs["base_delay_ms"] = int(os.environ["AI_AGENT_BASE_DELAY_MS"])
        if os.environ.get("AI_AGENT_BACKOFF_MULTIPLIER"):
            retry_kwargs["backoff_multiplier"] = float(os.environ["AI_AGENT_BACKOFF_MULTIPLIER"])

        generation_kwargs: dict[str, Any] = {}
        if os.environ.get("AI_AGENT_MODEL_TIER"):
            generation_kwargs["model_tier"] = os.environ["AI_AGENT_MODEL_TIER"]
        if os.environ.get("AI_AGENT_LOG_USAGE"):
            generation_kwargs["log_token_usage"] = (
                os.environ["AI_AGENT_LOG_USAGE"].strip().lower() in _TRUTHY
            )

        return cls(
            provider=ProviderConfig(**provider_kwargs),
            retry=RetryPolicy(**retry_kwargs),
            generation=GenerationConfig(**generation_kwargs),
        )

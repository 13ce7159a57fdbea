"""Generative-text providers.

Modules:
    base       - CompletionRequest / CompletionResponse and the LLMProvider protocol
    anthropic  - Anthropic Messages API over httpx
    ollama     - Local Ollama server over httpx
"""

from __future__ import annotations

from ..config import ProviderConfig
from .anthropic import AnthropicProvider
from .base import CompletionRequest, CompletionResponse, LLMProvider
from .ollama import OllamaProvider


def create_provider(config: ProviderConfig) -> LLMProvider:
    """Build the provider named by *config*."""
    if config.name == "anthropic":
        return AnthropicProvider(
            api_key=config.api_key,
            base_url=config.resolved_base_url,
            timeout=config.timeout,
        )
    if config.name == "ollama":
        return OllamaProvider(base_url=config.resolved_base_url, timeout=config.timeout)
    raise ValueError(f"Unknown provider: {config.name!r}")


__all__ = [
    "AnthropicProvider",
    "CompletionRequest",
    "CompletionResponse",
    "LLMProvider",
    "OllamaProvider",
    "create_provider",
]

"""Provider-neutral request/response types and the provider protocol."""

from __future__ import annotations

from typing import Literal, Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, Field

from ..errors import ProviderError
from ..models import PipelineStage


class CompletionRequest(BaseModel):
    """One prompt sent to a generative-text provider."""

    model: str
    system: str = ""
    prompt: str
    max_tokens: int = Field(default=4096, ge=1)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    stage: Optional[PipelineStage] = None
    response_format: Literal["json", "text"] = "json"


class CompletionResponse(BaseModel):
    """Text produced by the provider plus the tokens it billed."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the response")
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    duration_ms: float = Field(default=0.0, description="Wall-clock time of the call in ms")
    cached: bool = False
    stop_reason: Optional[str] = None

    @property
    def truncated(self) -> bool:
        """``True`` when the provider stopped because it hit the token limit."""
        return self.stop_reason in ("max_tokens", "length")


@runtime_checkable
class LLMProvider(Protocol):
    """Anything that can turn a :class:`CompletionRequest` into text.

    Implementations raise :class:`~ai_agent.errors.ProviderError` on failure,
    carrying any usage the provider billed before failing.
    """

    name: str

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        ...


def decode_body(response: httpx.Response, provider: str, model: str) -> dict:
    """Return the JSON object in a successful response body.

    Gateways and proxies sometimes answer ``200`` with an HTML page, so a
    body that is not a JSON object is reported as a retryable
    :class:`~ai_agent.errors.ProviderError`.
    """
    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderError(
            f"{provider} returned an unreadable response body: {response.text[:200]}",
            status_code=response.status_code,
            retryable=True,
            model=model,
        ) from exc
    if not isinstance(data, dict):
        raise ProviderError(
            f"{provider} returned {type(data).__name__} instead of a JSON object",
            status_code=response.status_code,
            retryable=True,
            model=model,
        )
    return data

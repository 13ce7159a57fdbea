"""Anthropic Messages API provider.

Talks to ``POST /v1/messages`` over ``httpx.AsyncClient`` and maps HTTP
failures onto :class:`ProviderError` with a retryable/terminal verdict:

* 408, 409, 429, 5xx and 529 (overloaded) are retryable, as are timeouts
  and connection failures.
* 400, 401, 403, 404 and other 4xx responses are terminal.
"""

from __future__ import annotations

import time

import httpx

from ..errors import ProviderError
from .base import CompletionRequest, CompletionResponse, decode_body

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_BASE_URL = "https://api.anthropic.com"

_RETRYABLE_STATUS = {408, 409, 429, 529}


def is_retryable_status(status_code: int) -> bool:
    return status_code in _RETRYABLE_STATUS or status_code >= 500


class AnthropicProvider:
    """Async client for the Anthropic Messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
    ) -> None:
        if not api_key:
            raise ValueError("An Anthropic API key is required (set ANTHROPIC_API_KEY)")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL, headers and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )

    @staticmethod
    def _payload(request: CompletionRequest) -> dict:
        payload: dict = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system:
            payload["system"] = request.system
        return payload

    @staticmethod
    def _extract_text(data: dict) -> str:
        """Concatenate the ``text`` blocks of a Messages API response."""
        blocks = data.get("content") or []
        return "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )

    @staticmethod
    def _extract_usage(data: dict) -> tuple[int, int, bool]:
        usage = data.get("usage") or {}
        cached = bool(usage.get("cache_read_input_tokens"))
        return int(usage.get("input_tokens", 0)), int(usage.get("output_tokens", 0)), cached

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500]
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return f"{error.get('type', 'error')}: {error['message']}"
        return response.text[:500]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send one prompt and return the generated text.

        Raises:
            ProviderError: On HTTP errors, timeouts and connection failures.
        """
        start = time.monotonic()
        try:
            async with self._client() as client:
                response = await client.post("/v1/messages", json=self._payload(request))
        except httpx.TimeoutException as exc:
            raise ProviderError(
                f"Request to Anthropic timed out after {self.timeout}s",
                retryable=True,
                model=request.model,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                f"Cannot reach Anthropic at {self.base_url}: {exc}",
                retryable=True,
                model=request.model,
            ) from exc

        if response.status_code >= 400:
            raise ProviderError(
                f"Anthropic returned HTTP {response.status_code}: {self._error_message(response)}",
                status_code=response.status_code,
                retryable=is_retryable_status(response.status_code),
                model=request.model,
            )

        data = decode_body(response, "Anthropic", request.model)
        input_tokens, output_tokens, cached = self._extract_usage(data)
        return CompletionResponse(
            text=self._extract_text(data),
            model=data.get("model", request.model),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=(time.monotonic() - start) * 1000.0,
            cached=cached,
            stop_reason=data.get("stop_reason"),
        )

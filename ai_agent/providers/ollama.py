"""Async provider for a local Ollama server.

Wraps ``/api/generate`` (non-streaming, ``format: json`` for structured
stages) and ``/api/tags``.  Token counts come from ``prompt_eval_count`` and
``eval_count``; durations from ``total_duration`` (nanoseconds).

Typical usage::

    provider = OllamaProvider()
    if await provider.is_available():
        resp = await provider.complete(CompletionRequest(model="qwen3:8b", prompt="..."))
        print(resp.text)
"""

from __future__ import annotations

import httpx

from ..errors import ProviderError
from .base import CompletionRequest, CompletionResponse, decode_body

DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaProvider:
    """Async client for the Ollama REST API."""

    name = "ollama"

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 120.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    @staticmethod
    def _extract_text(data: dict) -> str:
        """Ollama's non-streaming response puts the full text in ``"response"``."""
        return data.get("response", "")

    @staticmethod
    def _extract_duration_ms(data: dict) -> float:
        """The API returns ``total_duration`` in **nanoseconds**."""
        ns = data.get("total_duration", 0)
        return ns / 1_000_000.0

    @staticmethod
    def _payload(request: CompletionRequest) -> dict:
        payload: dict = {
            "model": request.model,
            "prompt": request.prompt,
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_tokens,
            },
        }
        if request.system:
            payload["system"] = request.system
        if request.response_format == "json":
            payload["format"] = "json"
        return payload

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Generate text for *request*.

        Raises:
            ProviderError: Connection failures, timeouts and 5xx responses are
                retryable; other HTTP errors (e.g. unknown model) are not.
        """
        try:
            async with self._client() as client:
                response = await client.post("/api/generate", json=self._payload(request))
                response.raise_for_status()
        except httpx.ConnectError as exc:
            raise ProviderError(
                f"Cannot connect to Ollama at {self.base_url}. Is the server running?",
                retryable=True,
                model=request.model,
            ) from exc
        except httpx.TimeoutException as exc:
            raise ProviderError(
                f"Request to Ollama timed out after {self.timeout}s.",
                retryable=True,
                model=request.model,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                f"Connection to Ollama at {self.base_url} failed: {exc}",
                retryable=True,
                model=request.model,
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise ProviderError(
                f"Ollama returned HTTP {status}: {exc.response.text[:500]}",
                status_code=status,
                retryable=status >= 500 or status == 429,
                model=request.model,
            ) from exc

        data = decode_body(response, "Ollama", request.model)
        return CompletionResponse(
            text=self._extract_text(data),
            model=data.get("model", request.model),
            input_tokens=int(data.get("prompt_eval_count", 0)),
            output_tokens=int(data.get("eval_count", 0)),
            duration_ms=self._extract_duration_ms(data),
            stop_reason=data.get("done_reason"),
        )

    async def is_available(self) -> bool:
        """Return ``True`` if the Ollama server responds to ``/api/tags``."""
        try:
            async with self._client() as client:
                response = await client.get("/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def list_models(self) -> list[str]:
        """Return the sorted names of all locally-available models.

        Returns an empty list if the server is unreachable.
        """
        try:
            async with self._client() as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError:
            return []
        models = data.get("models", [])
        return sorted(m.get("name", "") for m in models if m.get("name"))

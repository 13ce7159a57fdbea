"""Error taxonomy for the generation pipeline.

Provider, repair and validation failures are raised inside a stage's retry
loop and handled there.  Once a stage runs out of attempts the orchestrator
records a :class:`StageError` in a :class:`StageOutcome`; only the public
entry point turns that into a raised :class:`StageExhaustedError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar

#: Maximum characters of raw provider output kept on a stage failure.
RAW_OUTPUT_LIMIT = 2000

T = TypeVar("T")


class AgentError(Exception):
    """Base class for every error raised by the pipeline."""


class ProviderError(AgentError):
    """The generative-text provider rejected or failed a request.

    Attributes:
        status_code: HTTP status returned by the provider, if any.
        retryable: ``True`` for rate limits, timeouts and transient server
            errors; ``False`` for authentication and malformed requests.
        input_tokens: Input tokens billed before the failure, when known.
        output_tokens: Output tokens billed before the failure, when known.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
        model: str = "",
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.model = model
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens


class RepairFailure(AgentError):
    """No parseable structure could be recovered from the provider output."""

    def __init__(self, stage: str, diagnostic: str) -> None:
        self.stage = stage
        self.diagnostic = diagnostic
        super().__init__(f"{stage}: {diagnostic}")


class StageValidationError(AgentError):
    """A stage's repaired output still fails its schema contract."""

    def __init__(self, stage: str, errors: list[str]) -> None:
        self.stage = stage
        self.errors = list(errors)
        summary = "; ".join(self.errors[:5])
        if len(self.errors) > 5:
            summary += f" (+{len(self.errors) - 5} more)"
        super().__init__(f"{stage} output failed validation: {summary}")


class StageExhaustedError(AgentError):
    """A stage used up its retry budget.

    This is the only error surfaced to callers of the pipeline.
    """

    def __init__(
        self,
        stage: str,
        last_error: str,
        *,
        last_raw: str = "",
        attempts: int = 0,
    ) -> None:
        self.stage = stage
        self.last_error = last_error
        self.last_raw = truncate_raw(last_raw)
        self.attempts = attempts
        super().__init__(
            f"Stage '{stage}' failed after {attempts} attempt(s): {last_error}"
        )


# ---------------------------------------------------------------------------
# Result values threaded through the orchestrator
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StageError:
    """Terminal failure of one stage."""

    stage: str
    message: str
    attempts: int
    last_raw: str = ""

    def to_exception(self) -> StageExhaustedError:
        return StageExhaustedError(
            self.stage,
            self.message,
            last_raw=self.last_raw,
            attempts=self.attempts,
        )


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """Either the validated output of a stage or the reason it failed."""

    value: Optional[T] = None
    error: Optional[StageError] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, warnings: list[str] | None = None) -> "StageOutcome[T]":
        return cls(value=value, warnings=list(warnings or []))

    @classmethod
    def failure(cls, error: StageError) -> "StageOutcome[T]":
        return cls(error=error)


def truncate_raw(text: str, limit: int = RAW_OUTPUT_LIMIT) -> str:
    """Trim raw provider output for inclusion in error reports."""
    if len(text) <= limit:
        return text
    return text[:limit] + f"... [truncated {len(text) - limit} chars]"

"""Unit tests for the error taxonomy and stage outcomes (ai_agent.errors)."""

from __future__ import annotations

import pytest

from ai_agent.errors import (
    RAW_OUTPUT_LIMIT,
    AgentError,
    ProviderError,
    RepairFailure,
    StageError,
    StageExhaustedError,
    StageOutcome,
    StageValidationError,
    truncate_raw,
)


class TestErrors:
    @pytest.mark.unit
    def test_hierarchy(self):
        for exc in (
            ProviderError("x"),
            RepairFailure("intent", "x"),
            StageValidationError("intent", ["x"]),
            StageExhaustedError("intent", "x"),
        ):
            assert isinstance(exc, AgentError)

    @pytest.mark.unit
    def test_provider_error_attributes(self):
        exc = ProviderError("overloaded", status_code=529, retryable=True, input_tokens=12)
        assert str(exc) == "overloaded"
        assert exc.status_code == 529
        assert exc.retryable is True
        assert exc.input_tokens == 12
        assert exc.output_tokens == 0

    @pytest.mark.unit
    def test_validation_error_summary_is_capped(self):
        exc = StageValidationError("architecture", [f"e{i}" for i in range(7)])
        assert "e4" in str(exc)
        assert "e5" not in str(exc)
        assert "(+2 more)" in str(exc)
        assert len(exc.errors) == 7

    @pytest.mark.unit
    def test_exhausted_error_message(self):
        exc = StageExhaustedError("code", "truncated", last_raw="{", attempts=3)
        assert str(exc) == "Stage 'code' failed after 3 attempt(s): truncated"
        assert exc.last_raw == "{"


class TestTruncateRaw:
    @pytest.mark.unit
    def test_short_text_untouched(self):
        assert truncate_raw("abc") == "abc"

    @pytest.mark.unit
    def test_long_text_trimmed(self):
        text = "x" * (RAW_OUTPUT_LIMIT + 10)
        trimmed = truncate_raw(text)
        assert trimmed.startswith("x" * RAW_OUTPUT_LIMIT)
        assert trimmed.endswith("[truncated 10 chars]")


class TestStageOutcome:
    @pytest.mark.unit
    def test_success(self):
        outcome = StageOutcome.success({"a": 1}, warnings=["w"])
        assert outcome.ok
        assert outcome.value == {"a": 1}
        assert outcome.warnings == ["w"]

    @pytest.mark.unit
    def test_failure_converts_to_exhausted_error(self):
        outcome = StageOutcome.failure(StageError("intent", "bad", attempts=3, last_raw="raw"))
        assert not outcome.ok
        assert outcome.value is None
        exc = outcome.error.to_exception()
        assert isinstance(exc, StageExhaustedError)
        assert exc.stage == "intent"
        assert exc.attempts == 3
        assert exc.last_raw == "raw"

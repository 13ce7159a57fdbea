"""Unit tests for usage tracking (ai_agent.usage).

Tests cover:
- Pricing lookup, default rate and cost rounding
- Per-stage and per-session aggregation, failed calls
- Record immutability and ordering
- export_metrics / export_json
- reset and the process-wide tracker
"""

from __future__ import annotations

import json
import threading

import pytest
from pydantic import ValidationError

from ai_agent.config import HAIKU, SONNET
from ai_agent.models import PipelineStage
from ai_agent.repair import RepairMetrics, get_repair_metrics
from ai_agent.usage import (
    DEFAULT_RATE,
    MODEL_PRICING,
    ModelRate,
    UsageRecord,
    UsageTracker,
    get_global_tracker,
    reset_global_tracker,
)


def _record(stage, input_tokens, output_tokens, model=HAIKU, **kwargs):
    return UsageRecord(
        stage=stage,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        model=model,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


class TestPricing:
    @pytest.mark.unit
    def test_model_rate_cost(self):
        assert ModelRate(input=3.0, output=15.0).cost(1_000_000, 1_000_000) == 18.0

    @pytest.mark.unit
    def test_known_models(self):
        assert MODEL_PRICING[HAIKU] == ModelRate(input=0.25, output=1.25)
        assert MODEL_PRICING[SONNET] == ModelRate(input=3.0, output=15.0)

    @pytest.mark.unit
    def test_unknown_model_uses_default(self, tracker):
        assert tracker.rate_for("llama3.1") == DEFAULT_RATE

    @pytest.mark.unit
    def test_custom_pricing_without_default(self, metrics):
        tracker = UsageTracker(pricing={"local": ModelRate(input=0, output=0)}, metrics=metrics)
        assert tracker.rate_for("local").cost(10, 10) == 0
        assert tracker.rate_for("other") == DEFAULT_RATE


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class TestUsageRecord:
    @pytest.mark.unit
    def test_frozen(self):
        record = _record("intent", 10, 5)
        with pytest.raises(ValidationError):
            record.input_tokens = 99

    @pytest.mark.unit
    def test_negative_tokens_rejected(self):
        with pytest.raises(ValidationError):
            _record("intent", -1, 0)

    @pytest.mark.unit
    def test_timestamp_is_utc(self):
        assert _record("intent", 1, 1).timestamp.utcoffset().total_seconds() == 0


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class TestAggregation:
    @pytest.mark.unit
    def test_session_totals(self, tracker):
        first = _record("intent", 100, 50)
        second = _record("code", 200, 80, model=SONNET)
        tracker.record(first)
        tracker.record(second)

        summary = tracker.session_total()
        assert summary.input == 300
        assert summary.output == 130
        assert summary.calls == 2
        assert tracker.stage_records("code") == [second]
        assert tracker.records() == [first, second]

    @pytest.mark.unit
    def test_stage_total(self, tracker):
        tracker.record(_record("architecture", 1000, 400, success=False))
        tracker.record(_record("architecture", 1000, 500))
        total = tracker.stage_total(PipelineStage.ARCHITECTURE)
        assert total.input == 2000
        assert total.output == 900
        assert total.calls == 2
        assert total.cost == pytest.approx((2000 * 0.25 + 900 * 1.25) / 1_000_000)

    @pytest.mark.unit
    def test_failed_calls_counted(self, tracker):
        tracker.record(_record("intent", 10, 0, success=False))
        tracker.record(_record("intent", 10, 5))
        summary = tracker.session_total()
        assert summary.failed_calls == 1
        assert summary.calls == 2

    @pytest.mark.unit
    def test_by_stage_has_every_stage(self, tracker):
        tracker.record(_record("context", 1, 1))
        by_stage = tracker.session_total().by_stage
        assert set(by_stage) == {"intent", "architecture", "code", "context"}
        assert by_stage["intent"].calls == 0
        assert by_stage["context"].calls == 1

    @pytest.mark.unit
    def test_cost_rounded_to_four_places(self, tracker):
        tracker.record(_record("code", 1234, 567, model=SONNET))
        # 1234 * 3 / 1e6 + 567 * 15 / 1e6 = 0.012207
        assert tracker.session_total().estimated_cost == 0.0122

    @pytest.mark.unit
    def test_records_returns_copy(self, tracker):
        tracker.record(_record("intent", 1, 1))
        tracker.records().clear()
        assert len(tracker.records()) == 1

    @pytest.mark.unit
    def test_repair_snapshot_included(self, tracker, metrics):
        metrics.increment("truncation_repairs")
        assert tracker.session_total().repairs.truncation_repairs == 1

    @pytest.mark.unit
    def test_concurrent_records(self, tracker):
        def add():
            for _ in range(200):
                tracker.record(_record("code", 1, 1))

        threads = [threading.Thread(target=add) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert tracker.session_total().calls == 1000


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


class TestExport:
    @pytest.mark.unit
    def test_export_metrics(self, tracker, metrics):
        tracker.record(_record("intent", 120, 40))
        tracker.record(_record("code", 900, 3000, model=SONNET))
        tracker.record(_record("code", 900, 3100, model=SONNET))
        metrics.increment("enum_normalizations", 2)

        text = tracker.export_metrics()
        lines = text.splitlines()
        assert lines[0] == "[AI Agent] Generation complete:"
        assert any(line.strip().startswith("Intent") and HAIKU in line for line in lines)
        assert any("Code" in line and "2 calls" in line for line in lines)
        assert not any(line.strip().startswith("Architecture") for line in lines)
        assert "Total: 1920 in / 6140 out" in text
        assert "Repairs: 2 enum" in text

    @pytest.mark.unit
    def test_export_metrics_reports_failures(self, tracker):
        tracker.record(_record("intent", 1, 0, success=False))
        assert "Failed calls: 1 of 1" in tracker.export_metrics()

    @pytest.mark.unit
    def test_export_json(self, tracker):
        tracker.record(_record("intent", 100, 50, cached=True, duration_ms=12.5))
        payload = json.loads(tracker.export_json())
        assert payload["sessionId"] == "test-session"
        assert set(payload) == {"sessionId", "startTime", "endTime", "summary", "usage"}
        assert payload["summary"]["input"] == 100
        assert payload["usage"][0]["stage"] == "intent"
        assert payload["usage"][0]["cached"] is True


# ---------------------------------------------------------------------------
# Reset and global tracker
# ---------------------------------------------------------------------------


class TestReset:
    @pytest.mark.unit
    def test_reset_clears_records_only(self, tracker, metrics):
        tracker.record(_record("intent", 1, 1))
        metrics.increment("syntax_fixes")
        tracker.reset()
        assert tracker.records() == []
        assert metrics.snapshot().syntax_fixes == 1

    @pytest.mark.unit
    def test_reset_leaves_shared_metrics_for_other_sessions(self):
        shared = RepairMetrics()
        first = UsageTracker("first", metrics=shared)
        second = UsageTracker("second", metrics=shared)
        first.record(_record("intent", 10, 5))
        second.record(_record("code", 20, 8))
        shared.increment("enum_normalizations", 3)

        first.reset()

        assert first.records() == []
        assert len(second.records()) == 1
        assert second.session_total().repairs.enum_normalizations == 3

    @pytest.mark.unit
    def test_generated_session_id(self):
        assert UsageTracker(metrics=RepairMetrics()).session_id.startswith("session-")


class TestGlobalTracker:
    @pytest.mark.unit
    def test_singleton(self):
        assert get_global_tracker() is get_global_tracker()
        assert get_global_tracker().session_id == "global"

    @pytest.mark.unit
    def test_reset(self):
        tracker = get_global_tracker()
        tracker.record(_record("intent", 1, 1))
        reset_global_tracker()
        assert tracker.records() == []
        assert get_repair_metrics().snapshot().total == 0
        assert get_global_tracker() is tracker

"""Token usage and cost accounting.

Every provider call made by the pipeline, failed attempts included, is
recorded as a :class:`UsageRecord`.  A :class:`UsageTracker` aggregates the
records into per-stage and per-session totals and estimates cost from a
per-model price table (USD per one million tokens).
"""

from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import STAGE_ORDER, PipelineStage
from .repair import RepairCounts, RepairMetrics, get_repair_metrics, reset_repair_metrics


class ModelRate(BaseModel):
    """Price of one million tokens, in USD."""

    model_config = ConfigDict(frozen=True)

    input: float = Field(..., ge=0)
    output: float = Field(..., ge=0)

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens * self.input + output_tokens * self.output) / 1_000_000


DEFAULT_RATE = ModelRate(input=3.0, output=15.0)

MODEL_PRICING: dict[str, ModelRate] = {
    "claude-sonnet-4-20250514": ModelRate(input=3.0, output=15.0),
    "claude-3-5-sonnet-20241022": ModelRate(input=3.0, output=15.0),
    "claude-3-sonnet-20240229": ModelRate(input=3.0, output=15.0),
    "claude-3-haiku-20240307": ModelRate(input=0.25, output=1.25),
    "default": DEFAULT_RATE,
}


class UsageRecord(BaseModel):
    """Tokens consumed by one provider call."""

    model_config = ConfigDict(frozen=True)

    stage: PipelineStage
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    model: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cached: bool = False
    duration_ms: Optional[float] = None
    success: bool = True


class StageUsage(BaseModel):
    input: int = 0
    output: int = 0
    cost: float = 0.0
    calls: int = 0


class UsageSummary(BaseModel):
    """Aggregated usage for a session."""

    input: int = 0
    output: int = 0
    estimated_cost: float = 0.0
    calls: int = 0
    failed_calls: int = 0
    by_stage: dict[str, StageUsage] = Field(
        default_factory=lambda: {stage.value: StageUsage() for stage in STAGE_ORDER}
    )
    repairs: RepairCounts = Field(default_factory=RepairCounts)


class UsageTracker:
    """Append-only store of :class:`UsageRecord` objects for one session.

    Appends and reads are guarded by a lock so a tracker can be shared by
    pipelines running concurrently in different tasks or threads.
    """

    def __init__(
        self,
        session_id: str | None = None,
        pricing: dict[str, ModelRate] | None = None,
        metrics: RepairMetrics | None = None,
    ) -> None:
        self.session_id = session_id or f"session-{int(time.time() * 1000)}"
        self.pricing = dict(MODEL_PRICING if pricing is None else pricing)
        self._metrics = metrics
        self._lock = threading.Lock()
        self._records: list[UsageRecord] = []
        self.start_time = datetime.now(timezone.utc)

    @property
    def metrics(self) -> RepairMetrics:
        return self._metrics if self._metrics is not None else get_repair_metrics()

    def rate_for(self, model: str) -> ModelRate:
        return self.pricing.get(model) or self.pricing.get("default", DEFAULT_RATE)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, usage: UsageRecord) -> None:
        with self._lock:
            self._records.append(usage)

    def records(self) -> list[UsageRecord]:
        """Return a copy of every record, in insertion order."""
        with self._lock:
            return list(self._records)

    def stage_records(self, stage: PipelineStage | str) -> list[UsageRecord]:
        stage = PipelineStage(stage)
        return [r for r in self.records() if r.stage is stage]

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def stage_total(self, stage: PipelineStage | str) -> StageUsage:
        """Token and cost subtotal for one stage."""
        total = StageUsage()
        for r in self.stage_records(stage):
            total.input += r.input_tokens
            total.output += r.output_tokens
            total.cost += self.rate_for(r.model).cost(r.input_tokens, r.output_tokens)
            total.calls += 1
        return total

    def session_total(self) -> UsageSummary:
        """Totals across every recorded call, with a repair-counter snapshot."""
        summary = UsageSummary(repairs=self.metrics.snapshot())
        cost = 0.0
        for r in self.records():
            record_cost = self.rate_for(r.model).cost(r.input_tokens, r.output_tokens)
            stage = summary.by_stage[r.stage.value]
            stage.input += r.input_tokens
            stage.output += r.output_tokens
            stage.cost += record_cost
            stage.calls += 1

            summary.input += r.input_tokens
            summary.output += r.output_tokens
            summary.calls += 1
            if not r.success:
                summary.failed_calls += 1
            cost += record_cost
        summary.estimated_cost = round(cost, 4)
        return summary

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_metrics(self) -> str:
        """Human-readable multi-line usage summary."""
        summary = self.session_total()
        lines = ["[AI Agent] Generation complete:"]
        for stage in STAGE_ORDER:
            records = self.stage_records(stage)
            if not records:
                continue
            totals = summary.by_stage[stage.value]
            model = records[0].model or "unknown"
            retries = f", {totals.calls} calls" if totals.calls > 1 else ""
            lines.append(
                f"  {stage.value.capitalize():<12}: {totals.input:>5} in / "
                f"{totals.output:>5} out ({model}{retries})"
            )
        lines.append("  " + "-" * 40)
        lines.append(
            f"  Total: {summary.input} in / {summary.output} out | "
            f"Est. cost: ${summary.estimated_cost:.4f}"
        )
        if summary.failed_calls:
            lines.append(f"  Failed calls: {summary.failed_calls} of {summary.calls}")

        repairs = summary.repairs
        if repairs.total:
            lines.append(
                f"  Repairs: {repairs.enum_normalizations} enum, "
                f"{repairs.json_extractions} extract, "
                f"{repairs.truncation_repairs} truncation, "
                f"{repairs.bracket_balances} brackets, "
                f"{repairs.syntax_fixes} syntax"
            )
        return "\n".join(lines)

    def export_json(self) -> str:
        """Structured export of the session, its summary and every record."""
        payload = {
            "sessionId": self.session_id,
            "startTime": self.start_time.isoformat(),
            "endTime": datetime.now(timezone.utc).isoformat(),
            "summary": self.session_total().model_dump(mode="json"),
            "usage": [r.model_dump(mode="json") for r in self.records()],
        }
        return json.dumps(payload, indent=2)

    def reset(self) -> None:
        """Drop every record.

        Repair counters may be shared with other sessions and are left alone;
        reset them through :func:`~ai_agent.repair.reset_repair_metrics` or
        :meth:`RepairMetrics.reset`.
        """
        with self._lock:
            self._records.clear()
            self.start_time = datetime.now(timezone.utc)


_global_tracker: UsageTracker | None = None
_global_lock = threading.Lock()


def get_global_tracker() -> UsageTracker:
    """Return the process-wide tracker, creating it on first use."""
    global _global_tracker
    with _global_lock:
        if _global_tracker is None:
            _global_tracker = UsageTracker("global")
        return _global_tracker


def reset_global_tracker() -> None:
    """Clear the process-wide tracker and the process-wide repair counters."""
    get_global_tracker().reset()
    reset_repair_metrics()

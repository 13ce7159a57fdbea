"""Shared pytest fixtures for the AI agent test suite.

Provides reusable fixtures for:
- A scripted fake provider that returns canned output per stage
- Valid sample payloads for every stage
- Isolated repair metrics and usage trackers
- A pipeline config with zero backoff delay
"""

from __future__ import annotations

import copy
import json
from typing import Any
from unittest.mock import AsyncMock

import pytest

from ai_agent.config import Config, GenerationConfig
from ai_agent.models import PipelineStage
from ai_agent.providers.base import CompletionRequest, CompletionResponse
from ai_agent.repair import RepairMetrics
from ai_agent.retry import RetryPolicy
from ai_agent.stages.context import CURSORRULES_DELIMITER, STARTPROMPT_DELIMITER
from ai_agent.usage import UsageTracker


# ---------------------------------------------------------------------------
# Sample stage payloads
# ---------------------------------------------------------------------------

INTENT_PAYLOAD: dict[str, Any] = {
    "category": "saas",
    "confidence": 0.92,
    "reasoning": "Recurring coffee deliveries billed monthly fit a subscription SaaS.",
    "features": ["Subscription plans", "Customer accounts", "Order history"],
    "integrations": {
        "auth": "supabase",
        "db": "supabase",
        "payments": "stripe",
        "email": "resend",
        "ai": None,
        "analytics": None,
        "storage": None,
    },
    "complexity": "moderate",
    "suggestedTemplate": "saas",
}

ARCHITECTURE_PAYLOAD: dict[str, Any] = {
    "template": "saas",
    "pages": [
        {
            "path": "/",
            "name": "Home",
            "description": "Landing page with plan overview",
            "layout": "default",
            "components": ["Hero", "PricingTable"],
        },
        {
            "path": "/dashboard",
            "name": "Dashboard",
            "description": "Subscriber dashboard with upcoming deliveries",
            "layout": "dashboard",
            "components": ["DeliveryList"],
        },
    ],
    "components": [
        {"name": "Hero", "type": "ui", "template": "create-new", "description": "Hero banner"},
        {"name": "PricingTable", "type": "feature", "template": "reuse", "description": "Plan picker"},
        {"name": "DeliveryList", "type": "feature", "template": "create-new", "description": "Upcoming boxes"},
    ],
    "routes": [
        {"path": "/api/checkout", "type": "api", "method": "POST", "description": "Start a Stripe checkout"},
        {"path": "/api/webhooks/stripe", "type": "api", "method": "POST", "description": "Stripe webhook"},
    ],
    "integrations": {"auth": "supabase", "db": "supabase", "payments": "stripe", "email": "resend"},
}

CODE_PAYLOAD: dict[str, Any] = {
    "files": [
        {"path": "app/page.tsx", "content": "export default function Home() { return <main/>; }"},
        {"path": "app/dashboard/page.tsx", "content": "export default function Dashboard() {}", "overwrite": True},
    ],
    "integrationCode": [
        {
            "integration": "stripe",
            "files": [{"path": "lib/stripe.ts", "content": "import Stripe from 'stripe';"}],
        },
    ],
}

CURSORRULES_TEXT = (
    "You are working on a Next.js 14 App Router project for a coffee subscription box. "
    "Use TypeScript, Tailwind CSS and shadcn/ui. Keep Stripe logic in lib/stripe.ts."
)
START_PROMPT_TEXT = (
    "# Getting started\n\nThe landing page, dashboard and Stripe checkout are scaffolded. "
    "Next, wire Supabase auth into the dashboard and add delivery scheduling."
)


def context_text(cursorrules: str = CURSORRULES_TEXT, start_prompt: str = START_PROMPT_TEXT) -> str:
    return f"{CURSORRULES_DELIMITER}\n{cursorrules}\n{STARTPROMPT_DELIMITER}\n{start_prompt}\n"


@pytest.fixture
def intent_payload() -> dict[str, Any]:
    return copy.deepcopy(INTENT_PAYLOAD)


@pytest.fixture
def architecture_payload() -> dict[str, Any]:
    return copy.deepcopy(ARCHITECTURE_PAYLOAD)


@pytest.fixture
def code_payload() -> dict[str, Any]:
    return copy.deepcopy(CODE_PAYLOAD)


# ---------------------------------------------------------------------------
# Fake provider
# ---------------------------------------------------------------------------


class FakeProvider:
    """Provider returning scripted output per stage.

    Each stage maps to a list of items consumed in order; the last item is
    repeated once the list runs out.  An item is either raw text or an
    exception instance to raise.
    """

    name = "fake"

    def __init__(
        self,
        script: dict[str, list[Any]],
        input_tokens: int = 100,
        output_tokens: int = 50,
    ) -> None:
        self.script = {PipelineStage(stage): list(items) for stage, items in script.items()}
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.requests: list[CompletionRequest] = []

    def calls_for(self, stage: str) -> int:
        return sum(1 for r in self.requests if r.stage is PipelineStage(stage))

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        queue = self.script[request.stage]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return CompletionResponse(
            text=item,
            model=request.model,
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            duration_ms=5.0,
        )


def happy_script(**overrides: list[Any]) -> dict[str, list[Any]]:
    """A script where every stage succeeds first time, with per-stage overrides."""
    script: dict[str, list[Any]] = {
        "intent": [json.dumps(INTENT_PAYLOAD)],
        "architecture": [json.dumps(ARCHITECTURE_PAYLOAD, indent=2)],
        "code": [json.dumps(CODE_PAYLOAD)],
        "context": [context_text()],
    }
    script.update(overrides)
    return script


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(happy_script())


# ---------------------------------------------------------------------------
# Isolated state
# ---------------------------------------------------------------------------


@pytest.fixture
def metrics() -> RepairMetrics:
    """Fresh repair counters, independent of the process-wide instance."""
    return RepairMetrics()


@pytest.fixture
def tracker(metrics: RepairMetrics) -> UsageTracker:
    return UsageTracker("test-session", metrics=metrics)


@pytest.fixture
def fast_config() -> Config:
    """Three attempts per stage, no backoff delay, no global usage mirroring."""
    return Config(
        retry=RetryPolicy(max_retries=3, base_delay_ms=0),
        generation=GenerationConfig(track_globally=False),
    )


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def make_provider():
    """Factory: ``make_provider(architecture=[...])`` overrides one stage's script."""

    def factory(**overrides: list[Any]) -> FakeProvider:
        return FakeProvider(happy_script(**overrides))

    return factory


@pytest.fixture
def make_context_text():
    """Factory building delimiter-format context output."""
    return context_text

"""Context stage: generate ``.cursorrules`` and ``START_PROMPT.md``.

Both documents come back from a single call, separated by delimiter lines::

    ---CURSORRULES---
    <.cursorrules content>
    ---STARTPROMPT---
    <START_PROMPT.md content>

This stage is plain text, so it bypasses the JSON repair engine.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ..models import ComponentTemplate, IntegrationRequirements, PipelineStage, ProjectArchitecture
from ..repair import RepairMetrics
from ..validators import validate_context
from .base import PipelineContext, StageHandler, StageResult

CURSORRULES_DELIMITER = "---CURSORRULES---"
STARTPROMPT_DELIMITER = "---STARTPROMPT---"


def parse_delimited(text: str) -> Optional[dict[str, str]]:
    """Split *text* into its two documents, or ``None`` if a delimiter is missing."""
    rules_at = text.find(CURSORRULES_DELIMITER)
    prompt_at = text.find(STARTPROMPT_DELIMITER)
    if rules_at == -1 or prompt_at == -1 or prompt_at < rules_at:
        return None
    return {
        "cursorrules": text[rules_at + len(CURSORRULES_DELIMITER):prompt_at].strip(),
        "startPrompt": text[prompt_at + len(STARTPROMPT_DELIMITER):].strip(),
    }


def build_architecture_summary(architecture: ProjectArchitecture) -> str:
    """Markdown summary of pages, custom components and routes."""
    parts = ["**Pages:**"]
    parts.extend(f"- {page.path}: {page.description}" for page in architecture.pages)

    custom = [c for c in architecture.components if c.template is ComponentTemplate.CREATE_NEW]
    if custom:
        parts.append("\n**Custom Components:**")
        parts.extend(f"- {c.name}: {c.description}" for c in custom)

    if architecture.routes:
        parts.append("\n**API Routes:**")
        parts.extend(
            f"- {route.method.value if route.method else 'GET'} {route.path}: {route.description}"
            for route in architecture.routes
        )
    return "\n".join(parts)


def build_integrations_list(integrations: IntegrationRequirements | Mapping[str, Any]) -> str:
    """Markdown list of active integrations."""
    if isinstance(integrations, IntegrationRequirements):
        active = integrations.active()
    else:
        active = {k: v for k, v in integrations.items() if v}
    if not active:
        return "- No external integrations configured"
    return "\n".join(f"- **{kind}**: {provider}" for kind, provider in active.items())


class ContextStage(StageHandler):
    stage = PipelineStage.CONTEXT
    prompt_name = "context"
    user_message = (
        "Generate both the .cursorrules and START_PROMPT.md files "
        "using the specified delimiter format."
    )
    max_tokens = 8192
    temperature = 0.3
    response_format = "text"

    def build_variables(self, context: PipelineContext) -> dict[str, Any]:
        intent = context.require(PipelineStage.INTENT)
        architecture = context.require(PipelineStage.ARCHITECTURE)
        return {
            "project_name": context.project_name,
            "description": context.request.description or intent.reasoning,
            "template": architecture.template.value,
            "architecture_summary": build_architecture_summary(architecture),
            "integrations": build_integrations_list(architecture.integrations),
            "features": ", ".join(intent.features),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "cursorrules_delimiter": CURSORRULES_DELIMITER,
            "startprompt_delimiter": STARTPROMPT_DELIMITER,
        }

    def parse(
        self, raw_text: str, attempt: int, metrics: RepairMetrics | None = None
    ) -> StageResult:
        documents = parse_delimited(raw_text)
        if documents is None:
            return StageResult(
                stage=self.stage,
                attempt=attempt,
                raw_text=raw_text,
                errors=[
                    f"Delimiters {CURSORRULES_DELIMITER} and {STARTPROMPT_DELIMITER} "
                    "not found in output"
                ],
            )

        outcome = validate_context(documents)
        return StageResult(
            stage=self.stage,
            attempt=attempt,
            raw_text=raw_text,
            data=outcome.value if outcome.ok else None,
            valid=outcome.ok,
            errors=outcome.error_messages(),
            parsed=True,
        )

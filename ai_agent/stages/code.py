"""Code stage: generate source files for the planned architecture."""

from __future__ import annotations

from typing import Any

from ..models import PipelineStage
from .base import JSONStageHandler, PipelineContext
from .context import build_architecture_summary, build_integrations_list


class CodeStage(JSONStageHandler):
    stage = PipelineStage.CODE
    prompt_name = "code"
    user_message = "Generate the project files and respond with the JSON object only."
    max_tokens = 16000
    temperature = 0.2

    def build_variables(self, context: PipelineContext) -> dict[str, Any]:
        intent = context.require(PipelineStage.INTENT)
        architecture = context.require(PipelineStage.ARCHITECTURE)
        return {
            "project_name": context.project_name,
            "description": context.request.description,
            "features": intent.features,
            "architecture_summary": build_architecture_summary(architecture),
            "integrations": build_integrations_list(architecture.integrations),
        }

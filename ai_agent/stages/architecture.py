"""Architecture stage: plan pages, components and routes."""

from __future__ import annotations

import json
from typing import Any

from ..models import (
    Category,
    ComponentTemplate,
    ComponentType,
    HTTPMethod,
    PageLayout,
    PipelineStage,
    RouteType,
)
from .base import JSONStageHandler, PipelineContext, enum_values
from .context import build_integrations_list


class ArchitectureStage(JSONStageHandler):
    stage = PipelineStage.ARCHITECTURE
    prompt_name = "architecture"
    user_message = "Design the project architecture and respond with the JSON object only."
    max_tokens = 4096
    temperature = 0.2

    def build_variables(self, context: PipelineContext) -> dict[str, Any]:
        intent = context.require(PipelineStage.INTENT)
        template = intent.suggested_template or intent.category
        return {
            "description": context.request.description,
            "category": intent.category.value,
            "complexity": intent.complexity.value,
            "features": intent.features,
            "template": template.value,
            "integrations": build_integrations_list(intent.integrations),
            "integrations_json": json.dumps(intent.integrations.to_dict()),
            "categories": enum_values(Category),
            "layouts": enum_values(PageLayout),
            "component_types": enum_values(ComponentType),
            "component_templates": enum_values(ComponentTemplate),
            "route_types": enum_values(RouteType),
            "http_methods": enum_values(HTTPMethod),
        }

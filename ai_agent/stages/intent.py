"""Intent stage: classify the product description."""

from __future__ import annotations

from typing import Any

from ..models import (
    AIProvider,
    AnalyticsProvider,
    AuthProvider,
    Category,
    Complexity,
    DatabaseProvider,
    EmailProvider,
    PaymentsProvider,
    PipelineStage,
    StorageProvider,
)
from .base import JSONStageHandler, PipelineContext, enum_values

INTEGRATION_OPTIONS: dict[str, list[str]] = {
    "auth": enum_values(AuthProvider),
    "db": enum_values(DatabaseProvider),
    "payments": enum_values(PaymentsProvider),
    "email": enum_values(EmailProvider),
    "ai": enum_values(AIProvider),
    "analytics": enum_values(AnalyticsProvider),
    "storage": enum_values(StorageProvider),
}


class IntentStage(JSONStageHandler):
    stage = PipelineStage.INTENT
    prompt_name = "intent"
    user_message = "Classify this product and respond with the JSON object only."
    max_tokens = 1024
    temperature = 0.2

    def build_variables(self, context: PipelineContext) -> dict[str, Any]:
        request = context.request
        inspirations = [
            f"{item.type.value}: {item.value}" + (f" ({item.preview})" if item.preview else "")
            for item in request.inspirations
        ]
        return {
            "description": request.description,
            "project_name": request.project_name,
            "template_hint": request.template_hint,
            "vision": request.vision,
            "mission": request.mission,
            "inspirations": inspirations,
            "categories": enum_values(Category),
            "complexities": enum_values(Complexity),
            "integration_options": INTEGRATION_OPTIONS,
        }

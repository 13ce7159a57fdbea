"""Unit tests for stage contracts (ai_agent.validators).

Tests cover:
- Accepting well-formed payloads for every stage
- Defaulting and alias handling (snake_case and camelCase)
- Field errors on contract violations
- Validating serialised output again yields the same value
- Integration code filtering with dropped counts
- validate_stage dispatch
"""

from __future__ import annotations

import pytest

from ai_agent.models import (
    Category,
    ComponentTemplate,
    Complexity,
    CursorContext,
    GeneratedCode,
    PageLayout,
    PipelineStage,
    ProjectArchitecture,
    ProjectIntent,
)
from ai_agent.validators import (
    FieldError,
    filter_integration_code,
    normalize_code,
    validate_architecture,
    validate_code,
    validate_context,
    validate_intent,
    validate_stage,
)


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------


class TestValidateIntent:
    @pytest.mark.unit
    def test_valid_payload(self, intent_payload):
        outcome = validate_intent(intent_payload)
        assert outcome.ok
        assert isinstance(outcome.value, ProjectIntent)
        assert outcome.value.category is Category.SAAS
        assert outcome.value.integrations.active() == {
            "auth": "supabase",
            "db": "supabase",
            "payments": "stripe",
            "email": "resend",
        }

    @pytest.mark.unit
    def test_defaults_filled(self, intent_payload):
        del intent_payload["complexity"]
        del intent_payload["suggestedTemplate"]
        intent_payload["integrations"] = None
        outcome = validate_intent(intent_payload)
        assert outcome.ok
        assert outcome.value.complexity is Complexity.MODERATE
        assert outcome.value.suggested_template is Category.SAAS
        assert outcome.value.integrations.active() == {}

    @pytest.mark.unit
    def test_snake_case_alias(self, intent_payload):
        intent_payload["suggested_template"] = intent_payload.pop("suggestedTemplate")
        intent_payload["suggested_template"] = "dashboard"
        outcome = validate_intent(intent_payload)
        assert outcome.value.suggested_template is Category.DASHBOARD

    @pytest.mark.unit
    def test_blank_features_removed(self, intent_payload):
        intent_payload["features"] = ["  Plans  ", "", 3, "   "]
        outcome = validate_intent(intent_payload)
        assert outcome.value.features == ["Plans"]

    @pytest.mark.unit
    def test_no_features_is_an_error(self, intent_payload):
        intent_payload["features"] = ["", "  "]
        outcome = validate_intent(intent_payload)
        assert not outcome.ok
        assert any(e.field == "features" for e in outcome.errors)

    @pytest.mark.unit
    def test_confidence_out_of_range(self, intent_payload):
        intent_payload["confidence"] = 1.5
        outcome = validate_intent(intent_payload)
        assert not outcome.ok
        assert outcome.errors[0].field == "confidence"

    @pytest.mark.unit
    def test_unknown_category(self, intent_payload):
        intent_payload["category"] = "spaceship"
        outcome = validate_intent(intent_payload)
        assert not outcome.ok
        assert any(e.field == "category" for e in outcome.errors)

    @pytest.mark.unit
    def test_short_reasoning(self, intent_payload):
        intent_payload["reasoning"] = "   short   "
        assert not validate_intent(intent_payload).ok

    @pytest.mark.unit
    def test_not_an_object(self):
        outcome = validate_intent(["saas"])
        assert not outcome.ok
        assert "expected a JSON object" in outcome.error_messages()[0]

    @pytest.mark.unit
    def test_input_not_mutated(self, intent_payload):
        del intent_payload["suggestedTemplate"]
        snapshot = dict(intent_payload)
        validate_intent(intent_payload)
        assert intent_payload == snapshot


# ---------------------------------------------------------------------------
# Architecture
# ---------------------------------------------------------------------------


class TestValidateArchitecture:
    @pytest.mark.unit
    def test_valid_payload(self, architecture_payload):
        outcome = validate_architecture(architecture_payload)
        assert outcome.ok
        assert isinstance(outcome.value, ProjectArchitecture)
        assert [p.path for p in outcome.value.pages] == ["/", "/dashboard"]
        assert outcome.value.pages[1].layout is PageLayout.DASHBOARD

    @pytest.mark.unit
    def test_inline_component_objects_become_names(self, architecture_payload):
        architecture_payload["pages"][0]["components"] = [
            {"name": "Hero", "type": "ui"},
            "PricingTable",
            {"type": "ui"},
        ]
        outcome = validate_architecture(architecture_payload)
        assert outcome.ok
        assert outcome.value.pages[0].components == ["Hero", "PricingTable"]

    @pytest.mark.unit
    def test_null_defaults(self, architecture_payload):
        architecture_payload["pages"][0]["layout"] = None
        architecture_payload["components"][0]["template"] = None
        architecture_payload["routes"] = None
        architecture_payload["integrations"] = None
        outcome = validate_architecture(architecture_payload)
        assert outcome.ok
        assert outcome.value.pages[0].layout is PageLayout.DEFAULT
        assert outcome.value.components[0].template is ComponentTemplate.CREATE_NEW
        assert outcome.value.routes == []

    @pytest.mark.unit
    def test_pages_required(self, architecture_payload):
        architecture_payload["pages"] = []
        outcome = validate_architecture(architecture_payload)
        assert not outcome.ok
        assert outcome.errors[0].field == "pages"

    @pytest.mark.unit
    def test_component_missing_description(self, architecture_payload):
        del architecture_payload["components"][1]["description"]
        outcome = validate_architecture(architecture_payload)
        assert not outcome.ok
        assert outcome.errors[0].field == "components.1.description"


# ---------------------------------------------------------------------------
# Code
# ---------------------------------------------------------------------------


class TestFilterIntegrationCode:
    @pytest.mark.unit
    def test_keeps_good_and_drops_bad(self):
        entries = [
            {"integration": "stripe", "files": [{"path": "lib/stripe.ts", "content": "x"}]},
            {"integration": "resend"},
        ]
        kept, dropped = filter_integration_code(entries)
        assert dropped == 1
        assert len(kept) == 1
        assert kept[0]["integration"] == "stripe"
        assert kept[0]["files"][0]["overwrite"] is False

    @pytest.mark.unit
    def test_bundle_without_valid_files_dropped(self):
        entries = [
            {"integration": "stripe", "files": [{"path": "", "content": "x"}, {"path": "a.ts"}]},
            "stripe",
            {"integration": "  ", "files": []},
        ]
        kept, dropped = filter_integration_code(entries)
        assert kept == []
        assert dropped == 3

    @pytest.mark.unit
    def test_malformed_files_inside_bundle_removed(self):
        entries = [
            {
                "integration": " supabase ",
                "files": [{"path": "lib/db.ts", "content": ""}, {"content": "orphan"}],
            }
        ]
        kept, dropped = filter_integration_code(entries)
        assert dropped == 0
        assert kept == [
            {"integration": "supabase", "files": [{"path": "lib/db.ts", "content": "", "overwrite": False}]}
        ]

    @pytest.mark.unit
    def test_missing_and_non_list(self):
        assert filter_integration_code(None) == ([], 0)
        assert filter_integration_code({"integration": "stripe"}) == ([], 1)


class TestValidateCode:
    @pytest.mark.unit
    def test_valid_payload(self, code_payload):
        outcome = validate_code(code_payload)
        assert outcome.ok
        assert isinstance(outcome.value, GeneratedCode)
        assert outcome.value.files[0].overwrite is False
        assert outcome.value.files[1].overwrite is True
        assert outcome.value.integration_code[0].integration == "stripe"
        assert outcome.dropped == 0

    @pytest.mark.unit
    def test_dropped_bundles_reported(self, code_payload):
        code_payload["integrationCode"].append({"integration": "resend", "files": "lib/email.ts"})
        outcome = validate_code(code_payload)
        assert outcome.ok
        assert outcome.dropped == 1
        assert len(outcome.value.integration_code) == 1

    @pytest.mark.unit
    def test_snake_case_integration_code(self, code_payload):
        code_payload["integration_code"] = code_payload.pop("integrationCode")
        normalized, dropped = normalize_code(code_payload)
        assert "integration_code" not in normalized
        assert normalized["integrationCode"][0]["integration"] == "stripe"
        assert dropped == 0

    @pytest.mark.unit
    def test_empty_files_is_an_error(self, code_payload):
        code_payload["files"] = []
        outcome = validate_code(code_payload)
        assert not outcome.ok
        assert outcome.errors[0].field == "files"


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class TestValidateContext:
    @pytest.mark.unit
    def test_valid(self):
        outcome = validate_context({"cursorrules": "r" * 120, "start_prompt": "  " + "s" * 100 + "  "})
        assert outcome.ok
        assert isinstance(outcome.value, CursorContext)
        assert outcome.value.start_prompt == "s" * 100

    @pytest.mark.unit
    def test_short_documents(self):
        outcome = validate_context({"cursorrules": "too short", "startPrompt": "also short"})
        assert not outcome.ok
        assert {e.field for e in outcome.errors} == {"cursorrules", "startPrompt"}

    @pytest.mark.unit
    def test_whitespace_padding_does_not_count(self):
        outcome = validate_context({"cursorrules": "x" * 50 + " " * 80, "startPrompt": "y" * 100})
        assert not outcome.ok


# ---------------------------------------------------------------------------
# Round trips and dispatch
# ---------------------------------------------------------------------------


class TestStableRevalidation:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "stage, fixture",
        [
            ("intent", "intent_payload"),
            ("architecture", "architecture_payload"),
            ("code", "code_payload"),
        ],
    )
    def test_serialised_value_validates_to_itself(self, request, stage, fixture):
        first = validate_stage(stage, request.getfixturevalue(fixture))
        assert first.ok
        second = validate_stage(stage, first.value.to_dict())
        assert second.ok
        assert second.value == first.value


class TestValidateStage:
    @pytest.mark.unit
    def test_dispatch_by_string_and_enum(self, intent_payload):
        assert validate_stage("intent", intent_payload).ok
        assert validate_stage(PipelineStage.INTENT, intent_payload).ok

    @pytest.mark.unit
    def test_unknown_stage(self):
        with pytest.raises(ValueError):
            validate_stage("deploy", {})


class TestFieldError:
    @pytest.mark.unit
    def test_str(self):
        assert str(FieldError("pages.0.name", "required")) == "pages.0.name: required"
        assert str(FieldError("", "bad input")) == "bad input"

"""Stage contracts.

Each stage has two pure functions:

* ``normalize_<stage>(data)`` applies defaulting and lenient filtering to
  the raw parsed payload (camelCase aliases, trimming, dropping malformed
  entries of optional arrays).
* ``validate_<stage>(data)`` runs normalization and then strict pydantic
  validation, returning a :class:`ValidationOutcome` instead of raising.

Validating the serialised form of an already-valid value yields the same
value again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .models import (
    CursorContext,
    GeneratedCode,
    PipelineStage,
    ProjectArchitecture,
    ProjectIntent,
)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class FieldError:
    """A single field-level contract violation."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}" if self.field else self.message


@dataclass(frozen=True)
class ValidationOutcome(Generic[M]):
    """Result of validating one stage payload.

    Attributes:
        value: The validated model when ``ok``.
        errors: Field-level errors when not ``ok``.
        dropped: Entries silently filtered out of optional arrays.
    """

    value: Optional[M] = None
    errors: list[FieldError] = field(default_factory=list)
    dropped: int = 0

    @property
    def ok(self) -> bool:
        return self.value is not None and not self.errors

    def error_messages(self) -> list[str]:
        return [str(e) for e in self.errors]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _pop_alias(data: dict[str, Any], camel: str, snake: str) -> Any:
    """Read a key that may be spelled either way, leaving only the camelCase key."""
    if camel in data:
        data.pop(snake, None)
        return data[camel]
    if snake in data:
        data[camel] = data.pop(snake)
        return data[camel]
    return None


def _clean_strings(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


def _component_names(values: Any) -> list[str]:
    # Models sometimes inline component objects where names were asked for.
    if not isinstance(values, list):
        return []
    names = [v.get("name") if isinstance(v, dict) else v for v in values]
    return _clean_strings(names)


def _strip_nulls(entry: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    """Remove ``None`` for keys that have model defaults."""
    return {k: v for k, v in entry.items() if not (k in keys and v is None)}


def _run_model(model: type[M], data: Any, dropped: int = 0) -> ValidationOutcome[M]:
    if not isinstance(data, dict):
        return ValidationOutcome(
            errors=[FieldError("", f"expected a JSON object, got {type(data).__name__}")]
        )
    try:
        value = model.model_validate(data)
    except PydanticValidationError as exc:
        errors = [
            FieldError(".".join(str(part) for part in err["loc"]), err["msg"])
            for err in exc.errors()
        ]
        return ValidationOutcome(errors=errors, dropped=dropped)
    return ValidationOutcome(value=value, dropped=dropped)


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------

def normalize_intent(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    out = dict(data)
    out["features"] = _clean_strings(out.get("features"))
    if isinstance(out.get("reasoning"), str):
        out["reasoning"] = out["reasoning"].strip()
    if out.get("integrations") is None:
        out["integrations"] = {}
    suggested = _pop_alias(out, "suggestedTemplate", "suggested_template")
    if not suggested:
        out["suggestedTemplate"] = out.get("category")
    if out.get("complexity") is None:
        out.pop("complexity", None)
    return out


def validate_intent(data: Any) -> ValidationOutcome[ProjectIntent]:
    return _run_model(ProjectIntent, normalize_intent(data))


# ---------------------------------------------------------------------------
# Architecture
# ---------------------------------------------------------------------------

def normalize_architecture(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    out = dict(data)

    pages = out.get("pages")
    if isinstance(pages, list):
        out["pages"] = [
            {**_strip_nulls(p, ("layout",)), "components": _component_names(p.get("components"))}
            if isinstance(p, dict)
            else p
            for p in pages
        ]
    components = out.get("components")
    if isinstance(components, list):
        out["components"] = [
            _strip_nulls(c, ("type", "template")) if isinstance(c, dict) else c
            for c in components
        ]
    routes = out.get("routes")
    if routes is None:
        out["routes"] = []
    elif isinstance(routes, list):
        out["routes"] = [
            _strip_nulls(r, ("type",)) if isinstance(r, dict) else r for r in routes
        ]
    if out.get("integrations") is None:
        out["integrations"] = {}
    return out


def validate_architecture(data: Any) -> ValidationOutcome[ProjectArchitecture]:
    return _run_model(ProjectArchitecture, normalize_architecture(data))


# ---------------------------------------------------------------------------
# Code
# ---------------------------------------------------------------------------

def _is_file(entry: Any) -> bool:
    return (
        isinstance(entry, dict)
        and isinstance(entry.get("path"), str)
        and bool(entry["path"].strip())
        and isinstance(entry.get("content"), str)
    )


def _normalize_file(entry: Any) -> Any:
    if not isinstance(entry, dict):
        return entry
    out = dict(entry)
    if out.get("overwrite") is None:
        out["overwrite"] = False
    return out


def filter_integration_code(entries: Any) -> tuple[list[dict[str, Any]], int]:
    """Keep well-formed integration bundles; return them with the dropped count.

    A bundle needs a non-empty ``integration`` name and a ``files`` list.
    Malformed files inside a bundle are removed; a bundle left with no
    files is dropped.
    """
    if not isinstance(entries, list):
        return [], (0 if entries is None else 1)

    kept: list[dict[str, Any]] = []
    dropped = 0
    for entry in entries:
        if (
            not isinstance(entry, dict)
            or not isinstance(entry.get("integration"), str)
            or not entry["integration"].strip()
            or not isinstance(entry.get("files"), list)
        ):
            dropped += 1
            continue
        files = [_normalize_file(f) for f in entry["files"] if _is_file(f)]
        if not files:
            dropped += 1
            continue
        kept.append({"integration": entry["integration"].strip(), "files": files})
    return kept, dropped


def normalize_code(data: Any) -> tuple[Any, int]:
    """Normalize a code payload; also return how many bundles were dropped."""
    if not isinstance(data, dict):
        return data, 0
    out = dict(data)
    files = out.get("files")
    if isinstance(files, list):
        out["files"] = [_normalize_file(f) for f in files]
    bundles, dropped = filter_integration_code(
        _pop_alias(out, "integrationCode", "integration_code")
    )
    out["integrationCode"] = bundles
    return out, dropped


def validate_code(data: Any) -> ValidationOutcome[GeneratedCode]:
    normalized, dropped = normalize_code(data)
    return _run_model(GeneratedCode, normalized, dropped)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

def normalize_context(data: Any) -> Any:
    if not isinstance(data, dict):
        return data
    out = dict(data)
    if isinstance(out.get("cursorrules"), str):
        out["cursorrules"] = out["cursorrules"].strip()
    start = _pop_alias(out, "startPrompt", "start_prompt")
    if isinstance(start, str):
        out["startPrompt"] = start.strip()
    return out


def validate_context(data: Any) -> ValidationOutcome[CursorContext]:
    return _run_model(CursorContext, normalize_context(data))


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_VALIDATORS: dict[PipelineStage, Callable[[Any], ValidationOutcome[Any]]] = {
    PipelineStage.INTENT: validate_intent,
    PipelineStage.ARCHITECTURE: validate_architecture,
    PipelineStage.CODE: validate_code,
    PipelineStage.CONTEXT: validate_context,
}


def validate_stage(stage: PipelineStage | str, data: Any) -> ValidationOutcome[Any]:
    """Validate *data* against the contract of *stage*."""
    return _VALIDATORS[PipelineStage(stage)](data)

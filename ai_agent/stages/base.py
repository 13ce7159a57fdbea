"""Shared machinery for pipeline stages.

A stage handler knows three things about its stage: which prompt to render,
which variables the prompt needs (taken from the request and the outputs of
earlier stages), and how to turn the provider's raw text into a validated
value.  Handlers never call the provider themselves; the orchestrator does,
so retries, usage accounting and progress reporting stay in one place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Optional

from pydantic import BaseModel

from ..errors import AgentError, RepairFailure, StageValidationError
from ..models import (
    CursorContext,
    GeneratedCode,
    GenerateProjectResult,
    GenerationRequest,
    PipelineStage,
    ProjectArchitecture,
    ProjectIntent,
    STAGE_ORDER,
)
from ..repair import RepairMetrics, repair_and_parse
from ..validators import validate_stage


@dataclass
class StageResult:
    """Outcome of parsing one provider attempt for a stage.

    Attributes:
        stage: Stage the attempt belongs to.
        attempt: One-based attempt number.
        raw_text: Provider output exactly as received.
        data: Validated model when ``valid``; ``None`` otherwise.
        valid: Whether the output passed the stage contract.
        errors: Repair diagnostic or field-level validation messages.
        repairs: Repairs the engine applied to get parseable output.
        dropped: Malformed optional entries filtered out during validation.
        parsed: Whether any structure was recovered from ``raw_text``.
    """

    stage: PipelineStage
    attempt: int
    raw_text: str
    data: Optional[BaseModel] = None
    valid: bool = False
    errors: list[str] = field(default_factory=list)
    repairs: list[str] = field(default_factory=list)
    dropped: int = 0
    parsed: bool = False

    def to_error(self) -> AgentError:
        """The retryable error describing why this attempt failed."""
        if not self.parsed:
            diagnostic = self.errors[0] if self.errors else "unparseable output"
            return RepairFailure(self.stage.value, diagnostic)
        return StageValidationError(self.stage.value, self.errors)


class PipelineContext:
    """Validated outputs accumulated over one run.

    Each stage's output is set exactly once; setting it twice is a
    programming error.
    """

    def __init__(self, request: GenerationRequest, default_project_name: str = "MyApp") -> None:
        self.request = request
        self.project_name = request.project_name or default_project_name
        self._outputs: dict[PipelineStage, BaseModel] = {}

    def set(self, stage: PipelineStage, value: BaseModel) -> None:
        stage = PipelineStage(stage)
        if stage in self._outputs:
            raise RuntimeError(f"Output for stage '{stage.value}' was already set")
        self._outputs[stage] = value

    def get(self, stage: PipelineStage) -> Optional[BaseModel]:
        return self._outputs.get(PipelineStage(stage))

    def require(self, stage: PipelineStage) -> Any:
        value = self.get(stage)
        if value is None:
            raise RuntimeError(f"Stage '{PipelineStage(stage).value}' has not completed yet")
        return value

    def completed(self) -> tuple[PipelineStage, ...]:
        return tuple(s for s in STAGE_ORDER if s in self._outputs)

    @property
    def intent(self) -> Optional[ProjectIntent]:
        return self._outputs.get(PipelineStage.INTENT)  # type: ignore[return-value]

    @property
    def architecture(self) -> Optional[ProjectArchitecture]:
        return self._outputs.get(PipelineStage.ARCHITECTURE)  # type: ignore[return-value]

    @property
    def code(self) -> Optional[GeneratedCode]:
        return self._outputs.get(PipelineStage.CODE)  # type: ignore[return-value]

    @property
    def context(self) -> Optional[CursorContext]:
        return self._outputs.get(PipelineStage.CONTEXT)  # type: ignore[return-value]

    def to_result(self) -> GenerateProjectResult:
        """Bundle every stage output; all four stages must have completed."""
        return GenerateProjectResult(
            intent=self.require(PipelineStage.INTENT),
            architecture=self.require(PipelineStage.ARCHITECTURE),
            code=self.require(PipelineStage.CODE),
            context=self.require(PipelineStage.CONTEXT),
        )


class StageHandler:
    """Base class for the four stage handlers."""

    stage: ClassVar[PipelineStage]
    prompt_name: ClassVar[str]
    user_message: ClassVar[str]
    max_tokens: ClassVar[int] = 4096
    temperature: ClassVar[float] = 0.2
    response_format: ClassVar[Literal["json", "text"]] = "json"

    def build_variables(self, context: PipelineContext) -> dict[str, Any]:
        raise NotImplementedError

    def parse(
        self, raw_text: str, attempt: int, metrics: RepairMetrics | None = None
    ) -> StageResult:
        raise NotImplementedError


class JSONStageHandler(StageHandler):
    """Stage whose output is a JSON object, run through the repair engine."""

    def parse(
        self, raw_text: str, attempt: int, metrics: RepairMetrics | None = None
    ) -> StageResult:
        repaired = repair_and_parse(raw_text, metrics=metrics)
        if not repaired.success:
            return StageResult(
                stage=self.stage,
                attempt=attempt,
                raw_text=raw_text,
                errors=[repaired.error or "unparseable output"],
                repairs=list(repaired.repairs),
            )

        outcome = validate_stage(self.stage, repaired.data)
        return StageResult(
            stage=self.stage,
            attempt=attempt,
            raw_text=raw_text,
            data=outcome.value if outcome.ok else None,
            valid=outcome.ok,
            errors=outcome.error_messages(),
            repairs=list(repaired.repairs),
            dropped=outcome.dropped,
            parsed=True,
        )


def enum_values(enum_cls: Any) -> list[str]:
    return [member.value for member in enum_cls]

"""Pipeline stage handlers.

Modules:
    base          - StageResult, PipelineContext, StageHandler base classes
    intent        - Product classification
    architecture  - Page / component / route planning
    code          - Source file generation
    context       - .cursorrules and START_PROMPT.md generation
"""

from .architecture import ArchitectureStage
from .base import JSONStageHandler, PipelineContext, StageHandler, StageResult
from .code import CodeStage
from .context import (
    ContextStage,
    build_architecture_summary,
    build_integrations_list,
    parse_delimited,
)
from .intent import IntentStage


def default_handlers() -> list[StageHandler]:
    """One handler per stage, in pipeline order."""
    return [IntentStage(), ArchitectureStage(), CodeStage(), ContextStage()]


__all__ = [
    "ArchitectureStage",
    "CodeStage",
    "ContextStage",
    "IntentStage",
    "JSONStageHandler",
    "PipelineContext",
    "StageHandler",
    "StageResult",
    "build_architecture_summary",
    "build_integrations_list",
    "default_handlers",
    "parse_delimited",
]

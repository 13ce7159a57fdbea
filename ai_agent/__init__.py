"""AI agent: resilient multi-stage project generation.

Modules:
    pipeline       - ProjectPipeline orchestrator, generate_project, CLI
    repair         - Repair engine for near-valid JSON output
    validators     - Per-stage normalize/validate contracts
    retry          - Retry policy and backoff controller
    usage          - Token usage and cost tracking
    providers      - Anthropic and Ollama providers
    prompt_loader  - Jinja2 prompt rendering
    stages         - Per-stage prompt variables and output parsing
    config         - Typed configuration
"""

from .config import MODEL_TIERS, Config, GenerationConfig, ProviderConfig
from .errors import (
    AgentError,
    ProviderError,
    RepairFailure,
    StageExhaustedError,
    StageValidationError,
)
from .models import GenerateProjectResult, GenerationRequest, PipelineStage
from .pipeline import ProgressEvent, ProjectPipeline, generate_project
from .repair import RepairMetrics, get_repair_metrics, repair_and_parse, reset_repair_metrics
from .retry import RetryPolicy, with_retry
from .usage import UsageRecord, UsageTracker, get_global_tracker, reset_global_tracker

__all__ = [
    "AgentError",
    "Config",
    "GenerateProjectResult",
    "GenerationConfig",
    "GenerationRequest",
    "MODEL_TIERS",
    "PipelineStage",
    "ProgressEvent",
    "ProjectPipeline",
    "ProviderConfig",
    "ProviderError",
    "RepairFailure",
    "RepairMetrics",
    "RetryPolicy",
    "StageExhaustedError",
    "StageValidationError",
    "UsageRecord",
    "UsageTracker",
    "generate_project",
    "get_global_tracker",
    "get_repair_metrics",
    "repair_and_parse",
    "reset_global_tracker",
    "reset_repair_metrics",
    "with_retry",
]

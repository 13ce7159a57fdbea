"""AI agent pipeline orchestrator.

Turns a product description into a complete artifact bundle in four
strictly sequential stages:

Stage 1: INTENT        -- Classify the product, its features and integrations.
Stage 2: ARCHITECTURE  -- Plan pages, components and routes.
Stage 3: CODE          -- Generate source files.
Stage 4: CONTEXT       -- Write .cursorrules and START_PROMPT.md.

Each stage renders its prompt, calls the provider through the retry
controller, repairs and validates the output, and only then hands it to the
next stage.  A stage that runs out of attempts ends the run with a
:class:`StageExhaustedError`.

Usage::

    python -m ai_agent.pipeline "A SaaS for freelancers to track invoices"
    python -m ai_agent.pipeline "A recipe blog" --tier fast --output result.json
"""

from __future__ import annotations

import asyncio
import inspect
import json
import sys
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Optional, Union

import httpx
from pydantic import ValidationError
from rich.panel import Panel

from .config import Config
from .errors import AgentError, ProviderError, StageError, StageExhaustedError, StageOutcome, truncate_raw
from .models import GenerateProjectResult, GenerationRequest, PipelineStage
from .prompt_loader import PromptLoader
from .providers import CompletionRequest, LLMProvider, OllamaProvider, create_provider
from .repair import RepairMetrics, get_repair_metrics
from .retry import with_retry
from .stages import PipelineContext, StageHandler, StageResult, default_handlers
from .usage import UsageRecord, UsageTracker, get_global_tracker, reset_global_tracker
from .utils import (
    console,
    format_cost,
    format_duration,
    print_error,
    print_stage_header,
    print_success,
    print_summary_table,
    print_warning,
    save_json,
)

ProgressType = Literal["start", "attempt_failed", "retry", "warning", "complete"]


@dataclass(frozen=True)
class ProgressEvent:
    """Status notification emitted while a run is in flight."""

    stage: PipelineStage
    type: ProgressType
    message: str


ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]

_STAGE_FAILURES = (AgentError, httpx.HTTPError, asyncio.TimeoutError)


# ---------------------------------------------------------------------------
# Pipeline Orchestrator
# ---------------------------------------------------------------------------


class ProjectPipeline:
    """Drives one or more generation runs against a provider.

    Attributes:
        config: Retry policy, model tier and provider settings.
        provider: The generative-text provider.
        tracker: Session usage tracker; every provider call is recorded here.
        metrics: Repair counters updated by the repair engine.
        warnings: Non-fatal stage warnings from the latest run, prefixed with
            the stage name.
    """

    def __init__(
        self,
        config: Config | None,
        provider: LLMProvider,
        *,
        tracker: UsageTracker | None = None,
        metrics: RepairMetrics | None = None,
        prompts: PromptLoader | None = None,
        on_progress: ProgressCallback | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        handlers: list[StageHandler] | None = None,
    ) -> None:
        self.config = config or Config()
        self.provider = provider
        self.metrics = metrics if metrics is not None else get_repair_metrics()
        self.tracker = tracker or UsageTracker(metrics=self.metrics)
        self.prompts = prompts or PromptLoader()
        self.on_progress = on_progress
        self.sleep = sleep
        self.handlers = handlers or default_handlers()
        self._pending: set[asyncio.Future[Any]] = set()
        self.warnings: list[str] = []

        global_tracker = get_global_tracker()
        self._mirror: Optional[UsageTracker] = (
            global_tracker
            if self.config.generation.track_globally and self.tracker is not global_tracker
            else None
        )

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    @property
    def pending_callbacks(self) -> int:
        """Async progress callbacks scheduled but not yet finished."""
        return len(self._pending)

    def _emit(self, stage: PipelineStage, type_: ProgressType, message: str) -> None:
        if self.on_progress is None:
            return
        event = ProgressEvent(stage=stage, type=type_, message=message)
        try:
            result = self.on_progress(event)
        except Exception as exc:  # noqa: BLE001
            print_warning(f"  Progress callback failed on {stage.value}/{type_}: {exc}")
            return
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._pending.add(future)
            future.add_done_callback(self._callback_done)

    def _callback_done(self, future: asyncio.Future[Any]) -> None:
        self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:
            print_warning(f"  Progress callback failed: {future.exception()}")

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    def _record(self, record: UsageRecord) -> None:
        self.tracker.record(record)
        if self._mirror is not None:
            self._mirror.record(record)

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------

    async def run_stage(self, handler: StageHandler, context: PipelineContext) -> StageOutcome[Any]:
        """Run one stage to completion or exhaustion.

        Never raises for provider, repair or validation failures; those end
        up in the returned outcome's ``error``.
        """
        stage = handler.stage
        model = self.config.model_for(stage)
        policy = self.config.retry

        self._emit(stage, "start", f"Running {stage.value} stage with {model}")
        system = self.prompts.load(handler.prompt_name, handler.build_variables(context))
        request = CompletionRequest(
            model=model,
            system=system,
            prompt=handler.user_message,
            max_tokens=handler.max_tokens,
            temperature=handler.temperature,
            stage=stage,
            response_format=handler.response_format,
        )

        attempts = 0
        last_raw = ""

        async def attempt() -> StageResult:
            nonlocal attempts, last_raw
            attempts += 1
            started = time.monotonic()
            try:
                response = await self.provider.complete(request)
            except ProviderError as exc:
                self._record(UsageRecord(
                    stage=stage,
                    input_tokens=exc.input_tokens,
                    output_tokens=exc.output_tokens,
                    model=exc.model or model,
                    duration_ms=(time.monotonic() - started) * 1000.0,
                    success=False,
                ))
                raise
            except (httpx.HTTPError, asyncio.TimeoutError):
                self._record(UsageRecord(
                    stage=stage,
                    model=model,
                    duration_ms=(time.monotonic() - started) * 1000.0,
                    success=False,
                ))
                raise
            except json.JSONDecodeError as exc:
                self._record(UsageRecord(
                    stage=stage,
                    model=model,
                    duration_ms=(time.monotonic() - started) * 1000.0,
                    success=False,
                ))
                raise ProviderError(
                    f"{self.provider.name} returned an unreadable response: {exc}",
                    retryable=True,
                    model=model,
                ) from exc

            last_raw = response.text
            result = handler.parse(response.text, attempts, self.metrics)
            self._record(UsageRecord(
                stage=stage,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
                model=response.model or model,
                cached=response.cached,
                duration_ms=response.duration_ms,
                success=result.valid,
            ))
            if not result.valid:
                if response.truncated:
                    result.errors.append(f"output hit the {handler.max_tokens}-token limit")
                raise result.to_error()
            return result

        def on_retry(failed: int, error: BaseException, delay: float) -> None:
            message = f"Attempt {failed}/{policy.max_retries} failed: {error}"
            print_warning(f"  {message}")
            self._emit(stage, "attempt_failed", message)
            console.print(f"  [dim]Retrying in {delay:.1f}s...[/dim]")
            self._emit(stage, "retry", f"Retrying {stage.value} in {delay:.1f}s")

        try:
            result = await with_retry(attempt, policy, sleep=self.sleep, on_retry=on_retry)
        except _STAGE_FAILURES as exc:
            message = f"Attempt {attempts}/{policy.max_retries} failed: {exc}"
            print_error(f"  {message}")
            self._emit(stage, "attempt_failed", message)
            return StageOutcome.failure(StageError(
                stage=stage.value,
                message=str(exc),
                attempts=attempts,
                last_raw=truncate_raw(last_raw),
            ))

        warnings: list[str] = []
        if result.dropped:
            warning = f"Dropped {result.dropped} malformed integration code entr{'y' if result.dropped == 1 else 'ies'}"
            warnings.append(warning)
            print_warning(f"  {warning}")
            self._emit(stage, "warning", warning)
        if result.repairs:
            console.print(f"  [dim]Repairs: {'; '.join(result.repairs)}[/dim]")

        self._emit(stage, "complete", f"{stage.value.capitalize()} stage complete")
        return StageOutcome.success(result.data, warnings)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    async def generate(self, request: GenerationRequest | dict[str, Any]) -> GenerateProjectResult:
        """Run every stage in order.

        Raises:
            StageExhaustedError: A stage used up its retry budget.
        """
        if not isinstance(request, GenerationRequest):
            request = GenerationRequest.model_validate(request)
        context = PipelineContext(request, self.config.generation.default_project_name)
        run_start = time.monotonic()
        self.warnings = []

        console.print(
            Panel(
                f"[bold bright_cyan]AI Agent Pipeline[/bold bright_cyan]\n"
                f"Project  : {context.project_name}\n"
                f"Provider : {self.provider.name}\n"
                f"Tier     : {self.config.generation.model_tier}\n"
                f"Retries  : {self.config.retry.max_retries} attempts per stage",
                title="[bold]Pipeline Start[/bold]",
                border_style="bright_cyan",
            )
        )

        for index, handler in enumerate(self.handlers, start=1):
            print_stage_header(index, handler.stage, self.config.model_for(handler.stage))
            stage_start = time.monotonic()
            outcome = await self.run_stage(handler, context)
            elapsed = time.monotonic() - stage_start

            if not outcome.ok:
                print_error(
                    f"Stage {index} ({handler.stage.value}) FAILED after "
                    f"{format_duration(elapsed)}"
                )
                self._print_final_summary(time.monotonic() - run_start, context, outcome.error)
                raise outcome.error.to_exception()

            context.set(handler.stage, outcome.value)
            self.warnings.extend(f"{handler.stage.value}: {w}" for w in outcome.warnings)
            print_success(
                f"Stage {index} ({handler.stage.value}) completed in {format_duration(elapsed)}"
            )

        self._print_final_summary(time.monotonic() - run_start, context)
        return context.to_result()

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def _print_final_summary(
        self,
        total_elapsed: float,
        context: PipelineContext,
        error: StageError | None = None,
    ) -> None:
        """Print the final pipeline summary panel."""
        summary = self.tracker.session_total()
        completed = [s.value for s in context.completed()]

        if error is None:
            border_style = "bold green"
            status_text = "[bold green]PIPELINE SUCCEEDED[/bold green]"
        else:
            border_style = "bold red"
            status_text = "[bold red]PIPELINE FAILED[/bold red]"

        detail_lines = [
            status_text,
            "",
            f"Duration  : {format_duration(total_elapsed)}",
            f"Completed : {', '.join(completed) or 'none'}",
        ]
        if error is not None:
            detail_lines.append(f"Failed    : {error.stage} after {error.attempts} attempt(s)")
        detail_lines.extend([
            "",
            f"Tokens    : {summary.input} in / {summary.output} out",
            f"Calls     : {summary.calls} ({summary.failed_calls} failed)",
            f"Est. cost : {format_cost(summary.estimated_cost)}",
            f"Repairs   : {summary.repairs.total}",
        ])
        if self.warnings:
            detail_lines.append(f"Warnings  : {len(self.warnings)}")
            detail_lines.extend(f"  - {w}" for w in self.warnings)

        console.print()
        console.print(
            Panel(
                "\n".join(detail_lines),
                title="[bold]Pipeline Complete[/bold]",
                border_style=border_style,
            )
        )


# ---------------------------------------------------------------------------
# Convenience entry point
# ---------------------------------------------------------------------------


async def generate_project(
    request: GenerationRequest | dict[str, Any],
    config: Config | None = None,
    *,
    provider: LLMProvider | None = None,
    on_progress: ProgressCallback | None = None,
) -> GenerateProjectResult:
    """Generate a complete project from a description.

    Builds the provider from ``config.provider`` unless one is supplied.
    Configuration defaults to :meth:`Config.from_env`.

    Raises:
        StageExhaustedError: A stage used up its retry budget.
    """
    config = config or Config.from_env()
    provider = provider or create_provider(config.provider)
    pipeline = ProjectPipeline(config, provider, on_progress=on_progress)
    try:
        return await pipeline.generate(request)
    finally:
        if config.generation.log_token_usage:
            console.print(pipeline.tracker.export_metrics(), markup=False)


async def preflight(provider: LLMProvider, config: Config) -> bool:
    """Check that a local Ollama server is up before starting a run.

    Hosted providers are not checked.  Models missing from the local server
    only produce a warning since Ollama reports them per request.
    """
    if not isinstance(provider, OllamaProvider):
        return True
    if not await provider.is_available():
        print_error(f"Ollama is not reachable at {provider.base_url}. Is the server running?")
        return False
    models = await provider.list_models()
    console.print(f"  [green]+[/green] Ollama online ({len(models)} model(s) available)")
    missing = sorted({config.model_for(stage) for stage in PipelineStage} - set(models))
    if missing:
        print_warning(f"  Model(s) not pulled locally: {', '.join(missing)}")
    return True


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point for ``python -m ai_agent.pipeline``."""
    import argparse

    parser = argparse.ArgumentParser(
        description="AI Agent -- generate a project plan and code from a description",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  python -m ai_agent.pipeline "A SaaS for freelancers"\n'
            '  python -m ai_agent.pipeline "A recipe blog" --tier fast -o result.json\n'
            '  python -m ai_agent.pipeline "An internal CRM" --provider ollama\n'
        ),
    )

    parser.add_argument("description", help="Free-text product description")
    parser.add_argument("--name", default=None, help="Project name (default: MyApp)")
    parser.add_argument("--template", default=None, help="Preferred starter template")
    parser.add_argument(
        "--tier",
        choices=["fast", "balanced", "quality"],
        default=None,
        help="Model tier (default: balanced, or AI_AGENT_MODEL_TIER)",
    )
    parser.add_argument(
        "--provider",
        choices=["anthropic", "ollama"],
        default=None,
        help="Provider to call (default: anthropic, or AI_AGENT_PROVIDER)",
    )
    parser.add_argument("--model", default=None, help="Use one model for every stage")
    parser.add_argument("--config", default=None, help="Load settings from a saved JSON config")
    parser.add_argument("--output", "-o", default=None, help="Write the result JSON here")
    parser.add_argument(
        "--usage",
        action="store_true",
        help="Print the token usage summary after the run",
    )

    args = parser.parse_args()

    try:
        config = Config.load(args.config) if args.config else Config.from_env()
    except (OSError, ValueError) as exc:
        console.print(f"[bold red]Error:[/bold red] Invalid configuration: {exc}")
        sys.exit(1)

    if args.tier:
        config.generation.model_tier = args.tier
    if args.provider:
        config.provider.name = args.provider
    if args.model:
        config.provider.model = args.model
    if args.usage:
        config.generation.log_token_usage = True

    try:
        request = GenerationRequest(
            description=args.description,
            project_name=args.name,
            template_hint=args.template,
        )
        provider = create_provider(config.provider)
    except (ValidationError, ValueError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    if not asyncio.run(preflight(provider, config)):
        sys.exit(1)

    reset_global_tracker()
    try:
        result = asyncio.run(generate_project(request, config, provider=provider))
    except StageExhaustedError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        if exc.last_raw:
            console.print("[dim]Last output:[/dim]")
            console.print(exc.last_raw, style="dim", markup=False)
        sys.exit(1)

    print_summary_table(
        {
            "Category": result.intent.category.value,
            "Pages": len(result.architecture.pages),
            "Components": len(result.architecture.components),
            "Files": len(result.code.files),
            "Integrations": len(result.code.integration_code),
        },
        title="Generated Project",
    )
    if args.output:
        asyncio.run(save_json(result.to_dict(), args.output))
        print_success(f"Result written to {args.output}")


if __name__ == "__main__":
    main()

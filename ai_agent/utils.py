"""Shared console and I/O helpers for the AI agent.

Rich-based progress reporting used by the pipeline orchestrator and the
CLI, plus small formatting and JSON helpers.  The repair engine and the
retry controller never print; only the orchestrator layer does.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

from .models import PipelineStage

console = Console()

# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------


async def save_json(data: dict[str, Any] | list[Any], path: str | Path) -> None:
    """Save data as pretty-printed JSON.

    Parent directories are created automatically.  The write itself is
    performed in a thread-pool executor to avoid blocking the event loop on
    large files.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(data, indent=2, ensure_ascii=False, default=str)

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, file_path.write_text, content, "utf-8")


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(0.25)   -> "250ms"
        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
    """
    if seconds < 0:
        return "0ms"
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"

    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes > 0:
        return f"{minutes}m {int(secs)}s"
    return f"{secs:.1f}s"


def format_cost(amount: float) -> str:
    return f"${amount:.4f}"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------

STAGE_COLORS: dict[PipelineStage, str] = {
    PipelineStage.INTENT: "bright_cyan",
    PipelineStage.ARCHITECTURE: "bright_green",
    PipelineStage.CODE: "bright_yellow",
    PipelineStage.CONTEXT: "bright_magenta",
}


def print_stage_header(index: int, stage: PipelineStage, model: str = "") -> None:
    """Print a full-width rule announcing a pipeline stage.

    Args:
        index: One-based position of the stage in the run.
        stage: The stage being started.
        model: Model id used for the stage, shown dimmed when given.
    """
    color = STAGE_COLORS.get(stage, "white")
    suffix = f" [dim]({model})[/dim]" if model else ""
    console.print()
    console.print(
        Rule(
            f"[bold {color}] Stage {index}: {stage.value.upper()} [/bold {color}]{suffix}",
            style=color,
        )
    )


def print_summary_table(data: dict[str, Any], title: str = "Summary") -> None:
    """Print a two-column key/value summary table."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")

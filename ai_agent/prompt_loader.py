"""Jinja2 prompt rendering.

Stage prompts live as ``<name>.md.j2`` files under ``ai_agent/prompts/``.
Rendering is strict: referencing a variable that was not supplied raises
``jinja2.UndefinedError`` rather than silently producing an empty string.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"

PROMPT_SUFFIX = ".md.j2"


class PromptLoader:
    """Loads and renders stage prompt templates."""

    def __init__(self, prompt_dir: str | Path | None = None) -> None:
        if prompt_dir is None:
            prompt_dir = _DEFAULT_PROMPT_DIR
        self.prompt_dir = Path(prompt_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.prompt_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["bullets"] = _bullets_filter

    def load(self, name: str, variables: dict[str, Any]) -> str:
        """Render prompt *name* with *variables*.

        Raises:
            FileNotFoundError: If ``<name>.md.j2`` does not exist.
        """
        try:
            template = self.env.get_template(f"{name}{PROMPT_SUFFIX}")
        except TemplateNotFound as exc:
            raise FileNotFoundError(
                f"Prompt '{name}' not found in {self.prompt_dir}"
            ) from exc
        return template.render(**variables).strip()

    def available(self) -> list[str]:
        """Names of every prompt in the prompt directory."""
        return sorted(
            p.name[: -len(PROMPT_SUFFIX)] for p in self.prompt_dir.glob(f"*{PROMPT_SUFFIX}")
        )


def _bullets_filter(items: Any) -> str:
    """Render an iterable as a markdown bullet list."""
    if not items:
        return "- (none)"
    return "\n".join(f"- {item}" for item in items)

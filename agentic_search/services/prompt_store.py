"""Prompt catalog for the research agent and Citation Mode.

Prompts live in ``prompts/prompts.json`` grouped by task. Each task holds a
``system_prompt`` and usually a ``user_prompt``; an entry is either a string or
a list of lines. Lines are joined once when the catalog is loaded, and the
file is reloaded whenever its mtime changes. Placeholders use
``string.Template`` syntax (``$name``; a literal dollar sign is ``$$``).
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any


PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


def _flatten(node: Any, prefix: str, out: dict[str, str]) -> None:
    for name, value in node.items():
        key = f"{prefix}{name}"
        if isinstance(value, dict):
            _flatten(value, f"{key}.", out)
        elif isinstance(value, str):
            out[key] = value
        elif isinstance(value, list) and all(isinstance(line, str) for line in value):
            out[key] = "\n".join(value)
        else:
            raise TypeError(f"Prompt key must map to a string or list of lines: {key}")


class PromptCatalog:
    """Templates keyed by dotted path (``claim_extraction.user_prompt``)."""

    def __init__(self, path: Path):
        self.path = path
        self._templates: dict[str, Template] | None = None
        self._mtime_ns: int | None = None

    def _load(self) -> dict[str, Template]:
        mtime_ns = self.path.stat().st_mtime_ns
        if self._templates is not None and self._mtime_ns == mtime_ns:
            return self._templates

        payload = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError("Prompt catalog must be a JSON object.")
        entries: dict[str, str] = {}
        _flatten(payload, "", entries)
        self._templates = {key: Template(text) for key, text in entries.items()}
        self._mtime_ns = mtime_ns
        return self._templates

    def render(self, key: str, **values: Any) -> str:
        template = self._load().get(key)
        if template is None:
            raise KeyError(f"Prompt key not found: {key}")
        try:
            return template.substitute(**values)
        except KeyError as exc:
            missing = str(exc.args[0])
            raise KeyError(f"Missing template value '{missing}' for prompt '{key}'") from exc

    def render_pair(self, task: str, **values: Any) -> tuple[str, str]:
        """Render a task's system and user prompts with the same values."""
        return (
            self.render(f"{task}.system_prompt", **values),
            self.render(f"{task}.user_prompt", **values),
        )

    def clear(self) -> None:
        self._templates = None
        self._mtime_ns = None


prompts = PromptCatalog(PROMPTS_PATH)


def render_prompt(key: str, **values: Any) -> str:
    return prompts.render(key, **values)


def render_pair(task: str, **values: Any) -> tuple[str, str]:
    return prompts.render_pair(task, **values)

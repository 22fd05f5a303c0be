"""Prompt rendering and reply cleanup shared by the LLM providers."""

from __future__ import annotations

import re
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

_TEMPLATE_DIR = Path(__file__).parent.parent / "templates"

_FENCE_RE = re.compile(r"^```(?:json|html)?\s*(.*?)\s*```$", re.DOTALL)

_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
)


def render(template_name: str, **context: object) -> str:
    """Render a prompt template, trimming surrounding whitespace."""
    return _env.get_template(template_name).render(**context).strip()


def user_message(template_name: str, **context: object) -> list[dict]:
    """Render a template as a single-turn chat message list."""
    return [{"role": "user", "content": render(template_name, **context)}]


def strip_fences(text: str) -> str:
    """Drop a surrounding ```json / ```html code fence from a model reply."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text

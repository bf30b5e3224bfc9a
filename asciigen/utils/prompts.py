"""Loading and rendering of the prompt templates shipped with the package."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"
_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@lru_cache(maxsize=None)
def _read_template(name: str) -> str:
    return (PROMPTS_DIR / f"{name}.txt").read_text(encoding="utf-8")


def load_prompt(name: str, variables: Mapping[str, object] | None = None) -> str:
    """Return the rendered prompt text for ``name``.

    ``{{ key }}`` placeholders are replaced from ``variables``; ``None`` renders
    as an empty string. Unknown placeholders are left in place and logged.
    """
    template = _read_template(name)
    if not variables:
        return template.strip()

    if not isinstance(variables, Mapping):
        raise TypeError("variables must be a mapping of placeholder -> value")

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            logger.warning("Prompt %s has no value for placeholder %s", name, key)
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    rendered = _PLACEHOLDER_PATTERN.sub(_replace, template)
    # Collapse the blank runs left behind by empty optional sections.
    return re.sub(r"\n{3,}", "\n\n", rendered).strip()


__all__ = ["load_prompt", "PROMPTS_DIR"]

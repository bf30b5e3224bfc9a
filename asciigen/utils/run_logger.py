"""Per-generation prompt and response artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .files import atomic_write_text, ensure_dir, write_json


@dataclass(slots=True)
class StepLogPaths:
    """Convenience container with derived log file paths."""

    prompt_path: Path
    response_path: Path


class RunLogger:
    """Persists prompts and responses under ``<base_dir>/<generation_id>``."""

    def __init__(self, base_dir: str | Path = "runs") -> None:
        self._base_dir = ensure_dir(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def step_paths(self, generation_id: str, step_name: str) -> StepLogPaths:
        """Return the paths used for logging a specific step."""
        run_root = ensure_dir(self._base_dir / generation_id)
        return StepLogPaths(
            prompt_path=run_root / f"{step_name}-prompt.txt",
            response_path=run_root / f"{step_name}-response.json",
        )

    def log_prompt(self, generation_id: str, step_name: str, prompt: str) -> None:
        """Persist the raw prompt text."""
        atomic_write_text(self.step_paths(generation_id, step_name).prompt_path, prompt)

    def log_response(self, generation_id: str, step_name: str, response: Any) -> None:
        """Persist the structured response."""
        write_json(self.step_paths(generation_id, step_name).response_path, response)

"""Shared plumbing for the per-generation pipeline steps."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..services.store import GenerationStore
from ..types import ThinkingTrace, TraceCategory
from ..utils.run_logger import RunLogger


@dataclass(slots=True)
class BaseNode:
    """Convenience base for steps that log artifacts and record traces."""

    name: str
    generation_id: str
    store: GenerationStore
    logger: Optional[RunLogger] = None

    def log_prompt(self, prompt: str, step: Optional[str] = None) -> None:
        """Persist the prompt."""
        if self.logger is not None:
            self.logger.log_prompt(self.generation_id, step or self.name, prompt)

    def log_response(self, response: object, step: Optional[str] = None) -> None:
        """Persist the response."""
        if self.logger is not None:
            self.logger.log_response(self.generation_id, step or self.name, response)

    async def trace(
        self,
        text: str,
        category: TraceCategory,
        frame_index: Optional[int] = None,
    ) -> None:
        """Append a thinking trace to the generation record."""
        await self.store.append_trace(
            self.generation_id,
            ThinkingTrace(text=text, category=category, frame_index=frame_index),
        )

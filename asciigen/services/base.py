"""Service protocols shared by the generators and the combination engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol


@dataclass(slots=True)
class PromptSpec:
    """Everything a backend needs to answer one request.

    ``purpose`` and ``hints`` are not sent to real providers; they let mock
    backends and test doubles answer without parsing prompt text.
    """

    prompt: str
    purpose: str
    system: Optional[str] = None
    temperature: float = 0.7
    hints: Dict[str, Any] = field(default_factory=dict)


class LanguageModel(Protocol):
    """Contract the engine requires from a generative backend."""

    async def generate_text(self, spec: PromptSpec) -> str:
        ...

    async def generate_structured(self, spec: PromptSpec, schema: Mapping[str, Any]) -> Dict[str, Any]:
        ...


class ModelFactory(Protocol):
    """Builds a backend client for a model id and credential."""

    def __call__(self, model_id: str, credential: Optional[str]) -> LanguageModel:
        ...

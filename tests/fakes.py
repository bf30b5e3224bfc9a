"""Scripted test doubles for the model backend."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from asciigen.config import EngineConfig
from asciigen.pipeline import AsciiAnimator
from asciigen.services.base import PromptSpec
from asciigen.services.credentials import StaticCredentialResolver
from asciigen.services.openrouter import OpenRouterClient
from asciigen.services.store import InMemoryGenerationStore


def plan_payload(**overrides: Any) -> Dict[str, Any]:
    """Return a valid raw plan object, with ``overrides`` applied."""
    payload: Dict[str, Any] = {
        "interpretation": "Waves rolling across the screen",
        "subject": "ocean waves, rolling towards the shore",
        "style": "organic",
        "movement": "flowing",
        "frameCount": 10,
        "width": 40,
        "height": 20,
        "fps": 12,
        "characters": ["~", "-", "."],
        "thinkingProcess": [
            "The subject is water in motion.",
            "Organic shapes fit best.",
            "Flowing movement from left to right.",
            "Ten frames keep the loop short.",
            "Tildes read as wave crests.",
        ],
    }
    payload.update(overrides)
    return payload


class ScriptedModel:
    """LanguageModel double that answers like the mock backend unless told otherwise.

    ``failing_frames`` makes every primary frame call for those indices raise;
    ``failing_fallback_frames`` does the same for the fallback path.
    ``responses`` maps a purpose to a fixed text answer. When ``gate`` is given,
    planning blocks until it is set.
    """

    def __init__(
        self,
        *,
        plan: Optional[Mapping[str, Any]] = None,
        plan_failures: int = 0,
        failing_frames: Iterable[int] = (),
        failing_fallback_frames: Iterable[int] = (),
        responses: Optional[Mapping[str, str]] = None,
        on_frame: Optional[Callable[[int], None]] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.plan = plan
        self.plan_failures = plan_failures
        self.failing_frames = set(failing_frames)
        self.failing_fallback_frames = set(failing_fallback_frames)
        self.responses = dict(responses or {})
        self.on_frame = on_frame
        self.gate = gate
        self.calls: List[PromptSpec] = []
        self._mock = OpenRouterClient(use_mock=True)

    def purposes(self) -> List[str]:
        return [spec.purpose for spec in self.calls]

    def frame_calls(self, purpose: str = "frame") -> List[PromptSpec]:
        return [spec for spec in self.calls if spec.purpose == purpose]

    async def generate_structured(self, spec: PromptSpec, schema: Mapping[str, Any]) -> Dict[str, Any]:
        self.calls.append(spec)
        if self.gate is not None:
            await self.gate.wait()
        if self.plan_failures > 0:
            self.plan_failures -= 1
            raise ValueError("malformed plan")
        if self.plan is not None:
            return copy.deepcopy(dict(self.plan))
        return await self._mock.generate_structured(spec, schema)

    async def generate_text(self, spec: PromptSpec) -> str:
        self.calls.append(spec)
        index = spec.hints.get("frame_index")
        if spec.purpose == "frame":
            if self.on_frame is not None:
                self.on_frame(index)
            if index in self.failing_frames:
                raise RuntimeError(f"frame {index} unavailable")
        if spec.purpose == "frame_fallback" and index in self.failing_fallback_frames:
            raise RuntimeError(f"fallback frame {index} unavailable")
        if spec.purpose in self.responses:
            return self.responses[spec.purpose]
        return await self._mock.generate_text(spec)


class RecordingFactory:
    """ModelFactory that hands out one model and remembers what it was asked for."""

    def __init__(self, model: ScriptedModel) -> None:
        self.model = model
        self.requests: List[tuple] = []

    def __call__(self, model_id: str, credential: Optional[str]) -> ScriptedModel:
        self.requests.append((model_id, credential))
        return self.model


def make_config(runs_dir: str, **overrides: Any) -> EngineConfig:
    """Config with zero backoff so retries do not slow the suite down."""
    values: Dict[str, Any] = {"runs_dir": runs_dir, "backoff_unit_sec": 0.0}
    values.update(overrides)
    return EngineConfig(**values)


def make_animator(
    model: Optional[ScriptedModel] = None,
    *,
    runs_dir: str,
    credentials: Optional[StaticCredentialResolver] = None,
    **config_overrides: Any,
) -> tuple:
    """Return ``(animator, factory)`` wired to an in-memory store."""
    factory = RecordingFactory(model or ScriptedModel())
    animator = AsciiAnimator(
        make_config(runs_dir, **config_overrides),
        store=InMemoryGenerationStore(),
        credentials=credentials or StaticCredentialResolver(),
        model_factory=factory,
    )
    return animator, factory

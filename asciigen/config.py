"""Configuration containers for the ASCII animation engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import ClassVar, Dict, Optional


@dataclass(slots=True, frozen=True)
class ModelProfile:
    """Describes one selectable generative backend."""

    id: str
    name: str
    provider: str
    api_model: str
    description: str = ""
    context_window: Optional[int] = None
    recommended: bool = False


DEFAULT_MODEL_ID = "openrouter/claude-3.5-sonnet"

DEFAULT_MODELS: Dict[str, ModelProfile] = {
    profile.id: profile
    for profile in (
        ModelProfile(
            id="openrouter/claude-3.5-sonnet",
            name="Claude 3.5 Sonnet",
            provider="anthropic",
            api_model="anthropic/claude-3.5-sonnet",
            description="Best for creative ASCII art",
            context_window=200_000,
            recommended=True,
        ),
        ModelProfile(
            id="openrouter/gpt-4o",
            name="GPT-4o",
            provider="openai",
            api_model="openai/gpt-4o",
            description="Latest multimodal model",
            context_window=128_000,
        ),
        ModelProfile(
            id="openrouter/gpt-4-turbo",
            name="GPT-4 Turbo",
            provider="openai",
            api_model="openai/gpt-4-turbo",
            description="Fast with 128k context",
            context_window=128_000,
        ),
        ModelProfile(
            id="openrouter/claude-3-opus",
            name="Claude 3 Opus",
            provider="anthropic",
            api_model="anthropic/claude-3-opus",
            description="Most capable Claude",
            context_window=200_000,
        ),
        ModelProfile(
            id="openrouter/claude-3-haiku",
            name="Claude 3 Haiku",
            provider="anthropic",
            api_model="anthropic/claude-3-haiku",
            description="Fast and efficient",
            context_window=200_000,
        ),
        ModelProfile(
            id="openrouter/gemini-pro",
            name="Gemini Pro",
            provider="google",
            api_model="google/gemini-pro",
            description="Google's advanced model",
            context_window=32_000,
        ),
        ModelProfile(
            id="openrouter/llama-3.1-405b",
            name="Llama 3.1 405B",
            provider="meta",
            api_model="meta-llama/llama-3.1-405b-instruct",
            description="Open source powerhouse",
            context_window=128_000,
        ),
        ModelProfile(
            id="openrouter/mixtral-8x22b",
            name="Mixtral 8x22B",
            provider="mistral",
            api_model="mistralai/mixtral-8x22b-instruct",
            description="Efficient MoE model",
            context_window=64_000,
        ),
    )
}


@dataclass(slots=True)
class EngineConfig:
    """Static configuration applied to every generation and combination."""

    env_prefix: ClassVar[str] = "ASCIIGEN_"

    runs_dir: Optional[str] = "runs"
    enable_mock_generation: bool = True
    api_key: Optional[str] = None
    api_url: Optional[str] = None
    default_model_id: str = DEFAULT_MODEL_ID
    models: Dict[str, ModelProfile] = field(default_factory=lambda: dict(DEFAULT_MODELS))
    max_attempts: int = 3
    backoff_base: float = 2.0
    backoff_unit_sec: float = 1.0
    context_window: int = 3
    fallback_context_window: int = 1
    request_timeout: int = 120
    plan_temperature: float = 0.7
    frame_temperature: float = 0.7
    blend_temperature: float = 0.8
    enable_frame_thinking: bool = True

    def resolve_model(self, model_id: Optional[str]) -> ModelProfile:
        """Return the registered profile, or a pass-through profile for unknown ids."""
        key = model_id or self.default_model_id
        profile = self.models.get(key)
        if profile is not None:
            return profile
        return ModelProfile(id=key, name=key, provider="custom", api_model=key)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create a config object populated from environment variables."""
        prefix = cls.env_prefix
        runs_dir = os.getenv(f"{prefix}RUNS_DIR", "runs")
        return cls(
            runs_dir=runs_dir or None,
            enable_mock_generation=os.getenv(f"{prefix}ENABLE_MOCKS", "true").lower() == "true",
            api_key=os.getenv("OPENROUTER_API_KEY"),
            api_url=os.getenv("OPENROUTER_API_URL"),
            default_model_id=os.getenv(f"{prefix}DEFAULT_MODEL", DEFAULT_MODEL_ID),
            max_attempts=int(os.getenv(f"{prefix}MAX_ATTEMPTS", "3")),
            backoff_base=float(os.getenv(f"{prefix}BACKOFF_BASE", "2.0")),
            backoff_unit_sec=float(os.getenv(f"{prefix}BACKOFF_UNIT_SEC", "1.0")),
            context_window=int(os.getenv(f"{prefix}CONTEXT_WINDOW", "3")),
            request_timeout=int(os.getenv(f"{prefix}REQUEST_TIMEOUT", "120")),
            enable_frame_thinking=os.getenv(f"{prefix}FRAME_THINKING", "true").lower() == "true",
        )

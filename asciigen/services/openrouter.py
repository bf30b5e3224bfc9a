"""OpenAI-compatible chat client used for every model call (OpenRouter by default)."""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Mapping, Optional

from openai import AsyncOpenAI

from ..utils.frames import blank_frame, clean_json_text
from .base import PromptSpec

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://openrouter.ai/api/v1"


class OpenRouterClient:
    """Generates plans and frames through a chat-completions API with a mock fallback."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: str = "anthropic/claude-3.5-sonnet",
        use_mock: bool = True,
        timeout: int = 120,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url or DEFAULT_API_URL
        self._model = model
        self._use_mock = use_mock
        self._timeout = timeout
        self._client: Optional[AsyncOpenAI] = None

    @property
    def model(self) -> str:
        return self._model

    async def generate_text(self, spec: PromptSpec) -> str:
        """Return the assistant text for ``spec``."""
        if self._use_mock:
            return self._mock_text(spec)
        text = await self._complete(spec, self._messages(spec))
        if not text or not text.strip():
            raise ValueError(f"{self._model} returned an empty response for {spec.purpose}")
        return text

    async def generate_structured(self, spec: PromptSpec, schema: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a JSON object decoded from the model response."""
        if self._use_mock:
            return self._mock_structured(spec)

        schema_text = json.dumps(schema, indent=2)
        system = (spec.system + "\n\n" if spec.system else "") + (
            "Respond with ONLY a JSON object that validates against this JSON schema:\n" + schema_text
        )
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": spec.prompt},
        ]
        text = await self._complete(spec, messages, response_format={"type": "json_object"})
        if not text:
            raise ValueError(f"{self._model} returned an empty response for {spec.purpose}")

        cleaned = clean_json_text(text)
        try:
            payload = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Failed to decode {spec.purpose} response as JSON: {cleaned[:200]}") from exc
        if not isinstance(payload, dict):
            raise ValueError(f"{spec.purpose} response should be a JSON object, got {type(payload).__name__}")
        return payload

    async def _complete(self, spec: PromptSpec, messages: List[dict], **extra: Any) -> Optional[str]:
        client = self._resolve_client()
        logger.debug("Calling %s for %s", self._model, spec.purpose)
        response = await client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=spec.temperature,
            timeout=self._timeout,
            **extra,
        )
        return self._extract_text(response)

    def _resolve_client(self) -> AsyncOpenAI:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ValueError("OpenRouter API key is missing; cannot call service.")
        # Retries are owned by RetryPolicy.
        self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._api_url, max_retries=0)
        return self._client

    @staticmethod
    def _messages(spec: PromptSpec) -> List[dict]:
        messages = []
        if spec.system:
            messages.append({"role": "system", "content": spec.system})
        messages.append({"role": "user", "content": spec.prompt})
        return messages

    @staticmethod
    def _extract_text(response) -> str | None:
        """Extract assistant text content from OpenAI-compatible responses."""
        choices = getattr(response, "choices", None)
        if not choices and isinstance(response, dict):
            choices = response.get("choices")
        if isinstance(choices, list) and choices:
            choice = choices[0]
            message = getattr(choice, "message", None)
            if message is None and isinstance(choice, dict):
                message = choice.get("message")
            if message:
                content = getattr(message, "content", None)
                if content is None and isinstance(message, dict):
                    content = message.get("content")
                if isinstance(content, str):
                    return content
        return None

    # Deterministic local fallbacks used for offline runs and tests.

    def _mock_structured(self, spec: PromptSpec) -> Dict[str, Any]:
        if spec.purpose != "plan":
            raise ValueError(f"Mock backend has no structured response for {spec.purpose}")
        return self._mock_plan(str(spec.hints.get("user_prompt", "")))

    def _mock_text(self, spec: PromptSpec) -> str:
        hints = spec.hints
        if spec.purpose == "frame_thinking":
            index = int(hints.get("frame_index", 0))
            return f"Move the subject a step further along its path for frame {index + 1}."
        if spec.purpose in ("frame", "frame_fallback"):
            return self._mock_frame(hints)
        if spec.purpose in ("blend", "remix"):
            count = max(1, int(hints.get("frame_count", 1)))
            frames = [
                self._mock_frame({**hints, "frame_index": index, "frame_count": count})
                for index in range(count)
            ]
            return json.dumps(frames)
        raise ValueError(f"Mock backend has no text response for {spec.purpose}")

    @staticmethod
    def _mock_plan(user_prompt: str) -> Dict[str, Any]:
        text = user_prompt.strip() or "abstract motion"
        lowered = text.lower()
        if "ocean" in lowered or "wave" in lowered:
            style, movement, characters = "organic", "flowing", ["~", "-", "_", "."]
        elif "heart" in lowered or "pulse" in lowered:
            style, movement, characters = "geometric", "pulsing", ["@", "o", "."]
        elif "rain" in lowered or "matrix" in lowered:
            style, movement, characters = "dense", "linear", ["|", "1", "0", ":"]
        elif "ball" in lowered or "bounce" in lowered:
            style, movement, characters = "geometric", "bouncing", ["O", "_", "."]
        else:
            style, movement, characters = "mixed", "eased", ["*", "+", "."]
        return {
            "interpretation": f"An ASCII animation of {text}",
            "subject": text,
            "style": style,
            "movement": movement,
            "frameCount": 12,
            "width": 80,
            "height": 24,
            "fps": 12,
            "characters": characters,
            "thinkingProcess": [
                f"The request centres on {text}.",
                f"A {style} style keeps the subject readable at terminal size.",
                f"{movement.capitalize()} movement suits the subject.",
                "Twelve frames at 12 fps give a one second loop.",
                f"The palette {''.join(characters)} covers highlights and background.",
            ],
        }

    @staticmethod
    def _mock_frame(hints: Mapping[str, Any]) -> str:
        width = int(hints.get("width", 80))
        height = int(hints.get("height", 24))
        index = int(hints.get("frame_index", 0))
        count = max(1, int(hints.get("frame_count", 1)))
        characters = [str(c) for c in hints.get("characters") or ["*"] if str(c)]
        if width <= 0 or height <= 0:
            return blank_frame(width, height)

        glyph = characters[0][0] if characters else "*"
        filler = characters[-1][0] if characters else "."
        rows = [[" "] * width for _ in range(height)]
        baseline = height // 2
        for column in range(width):
            offset = round(2 * math.sin((column + index * 2) / 4))
            rows[min(height - 1, max(0, baseline + 3 + offset))][column] = filler
        progress = index / (count - 1) if count > 1 else 0.0
        column = round(progress * (width - 1))
        rows[baseline][column] = glyph
        return "\n".join("".join(row) for row in rows)

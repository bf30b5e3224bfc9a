"""Plan generation: turns the user prompt into a validated animation plan."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..errors import PlanGenerationError, PlanValidationError, RetryExhaustedError
from ..services.base import LanguageModel, PromptSpec
from ..services.store import GenerationStore
from ..types import (
    AnimationStyle,
    CustomMovement,
    Movement,
    MovementKind,
    NamedMovement,
    Plan,
    TraceCategory,
)
from ..utils.prompts import load_prompt
from ..utils.retry import RetryPolicy
from ..utils.run_logger import RunLogger
from .base import BaseNode

log = logging.getLogger(__name__)

FRAME_COUNT_RANGE = (10, 60)
WIDTH_RANGE = (40, 120)
HEIGHT_RANGE = (20, 40)
FPS_RANGE = (6, 24)
MIN_THINKING_STEPS = 5

_STYLES = frozenset(style.value for style in AnimationStyle)
_MOVEMENT_KINDS = frozenset(kind.value for kind in MovementKind)

PLAN_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": [
        "interpretation",
        "subject",
        "style",
        "movement",
        "frameCount",
        "width",
        "height",
        "fps",
        "characters",
        "thinkingProcess",
    ],
    "properties": {
        "interpretation": {"type": "string", "description": "What the user wants to see"},
        "subject": {"type": "string", "description": "Main subject of the animation"},
        "style": {"type": "string", "enum": [style.value for style in AnimationStyle]},
        "movement": {
            "type": "string",
            "description": "One of linear, eased, bouncing, flowing, pulsing, or a custom description",
        },
        "frameCount": {"type": "integer", "minimum": FRAME_COUNT_RANGE[0], "maximum": FRAME_COUNT_RANGE[1]},
        "width": {"type": "integer", "minimum": WIDTH_RANGE[0], "maximum": WIDTH_RANGE[1]},
        "height": {"type": "integer", "minimum": HEIGHT_RANGE[0], "maximum": HEIGHT_RANGE[1]},
        "fps": {"type": "integer", "minimum": FPS_RANGE[0], "maximum": FPS_RANGE[1]},
        "characters": {"type": "array", "items": {"type": "string"}, "minItems": 1},
        "colorHints": {"type": "string"},
        "thinkingProcess": {"type": "array", "items": {"type": "string"}, "minItems": MIN_THINKING_STEPS},
    },
}


def _field(payload: Mapping[str, Any], camel: str, snake: str) -> Any:
    return payload[camel] if camel in payload else payload.get(snake)


def _coerce_movement(value: Any) -> Optional[Movement]:
    """Map the loose model output onto the Movement union."""
    if isinstance(value, Mapping):
        kind = str(value.get("type") or value.get("kind") or "").strip().lower()
        description = str(value.get("description") or "").strip()
        if kind in _MOVEMENT_KINDS:
            return NamedMovement(MovementKind(kind))
        if description:
            return CustomMovement(description)
        return None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    lowered = text.lower()
    if lowered in _MOVEMENT_KINDS:
        return NamedMovement(MovementKind(lowered))
    if lowered.startswith("custom"):
        detail = text[len("custom") :].lstrip(" :-")
        return CustomMovement(detail or text)
    return CustomMovement(text)


def _coerce_color_hints(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        return ", ".join(f"{key}: {val}" for key, val in value.items()) or None
    if isinstance(value, list):
        return ", ".join(str(item) for item in value) or None
    return str(value)


def thinking_steps(payload: Mapping[str, Any]) -> List[str]:
    steps = _field(payload, "thinkingProcess", "thinking_process")
    if not isinstance(steps, list):
        return []
    return [step.strip() for step in steps if isinstance(step, str) and step.strip()]


def parse_plan(payload: Any) -> Plan:
    """Validate a raw plan object and convert it into a :class:`Plan`.

    All problems are collected and reported together.
    """
    if not isinstance(payload, Mapping):
        raise PlanValidationError("Plan must be a JSON object.")

    errors: List[str] = []

    def _text(camel: str, snake: str) -> str:
        value = _field(payload, camel, snake)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{camel} must be a non-empty string")
            return ""
        return value.strip()

    def _bounded_int(camel: str, snake: str, bounds: tuple) -> int:
        value = _field(payload, camel, snake)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{camel} must be a number, got {value!r}")
            return 0
        if isinstance(value, float) and not value.is_integer():
            errors.append(f"{camel} must be a whole number, got {value}")
            return 0
        number = int(value)
        low, high = bounds
        if not low <= number <= high:
            errors.append(f"{camel} must be between {low} and {high}, got {number}")
        return number

    interpretation = _text("interpretation", "interpretation")
    subject = _text("subject", "subject")

    raw_style = payload.get("style")
    style: Optional[AnimationStyle] = None
    if isinstance(raw_style, str) and raw_style.strip().lower() in _STYLES:
        style = AnimationStyle(raw_style.strip().lower())
    else:
        allowed = ", ".join(s.value for s in AnimationStyle)
        errors.append(f"style must be one of {allowed}, got {raw_style!r}")

    movement = _coerce_movement(payload.get("movement"))
    if movement is None:
        errors.append(f"movement is missing or malformed: {payload.get('movement')!r}")

    frame_count = _bounded_int("frameCount", "frame_count", FRAME_COUNT_RANGE)
    width = _bounded_int("width", "width", WIDTH_RANGE)
    height = _bounded_int("height", "height", HEIGHT_RANGE)
    fps = _bounded_int("fps", "fps", FPS_RANGE)

    raw_characters = payload.get("characters")
    characters: List[str] = []
    if not isinstance(raw_characters, list) or not raw_characters:
        errors.append("characters must be a non-empty array of strings")
    elif not all(isinstance(item, str) and item for item in raw_characters):
        errors.append("characters must only contain non-empty strings")
    else:
        characters = list(raw_characters)

    steps = thinking_steps(payload)
    if len(steps) < MIN_THINKING_STEPS:
        errors.append(f"thinkingProcess must contain at least {MIN_THINKING_STEPS} steps, got {len(steps)}")

    if errors:
        raise PlanValidationError("Plan validation failed: " + "; ".join(errors))

    return Plan(
        interpretation=interpretation,
        subject=subject,
        style=style,
        movement=movement,
        frame_count=frame_count,
        width=width,
        height=height,
        fps=fps,
        characters=characters,
        color_hints=_coerce_color_hints(_field(payload, "colorHints", "color_hints")),
        thinking_process=steps,
    )


class PlanGenerator(BaseNode):
    """Asks the model for a structured plan, retrying malformed answers."""

    def __init__(
        self,
        generation_id: str,
        store: GenerationStore,
        model: LanguageModel,
        retry: RetryPolicy,
        *,
        logger: Optional[RunLogger] = None,
        temperature: float = 0.7,
    ) -> None:
        super().__init__(name="plan", generation_id=generation_id, store=store, logger=logger)
        self._model = model
        self._retry = retry
        self._temperature = temperature

    async def generate(self, prompt: str) -> Plan:
        """Return a validated plan or raise :class:`PlanGenerationError`."""
        spec = PromptSpec(
            prompt=load_prompt("plan", {"user_prompt": prompt}),
            purpose="plan",
            system=load_prompt("ascii_system"),
            temperature=self._temperature,
            hints={"user_prompt": prompt},
        )
        self.log_prompt(spec.prompt)
        await self.trace("Analyzing prompt and creating animation plan...", TraceCategory.PLANNING)

        async def _attempt() -> Plan:
            payload = await self._model.generate_structured(spec, PLAN_SCHEMA)
            # Reasoning is recorded even when the rest of the object is rejected.
            for step in thinking_steps(payload):
                await self.trace(step, TraceCategory.PLANNING)
            self.log_response(payload)
            return parse_plan(payload)

        try:
            plan = await self._retry.run(_attempt, label="plan", on_retry=self._on_retry)
        except RetryExhaustedError as exc:
            message = f"Failed to create generation plan: {exc.last_error}"
            log.error("Generation %s: %s", self.generation_id, message)
            raise PlanGenerationError(message) from exc

        log.info(
            "Generation %s planned %d frames at %dx%d (%s, %s)",
            self.generation_id,
            plan.frame_count,
            plan.width,
            plan.height,
            plan.style.value,
            plan.movement.describe(),
        )
        self.log_response(plan.to_dict(), step="plan-accepted")
        return plan

    async def _on_retry(self, attempt: int, error: BaseException, delay: float) -> None:
        await self.trace(
            f"Plan attempt {attempt} failed ({error}); retrying in {delay:.1f}s",
            TraceCategory.SYSTEM,
        )

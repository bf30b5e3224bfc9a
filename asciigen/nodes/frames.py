"""Per-frame generation with a trailing context window and a degraded fallback."""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from ..services.base import LanguageModel, PromptSpec
from ..services.store import GenerationStore
from ..types import FrameResult, ParsePath, Plan, TraceCategory
from ..utils.frames import decode_frame_response, normalize_frame
from ..utils.prompts import load_prompt
from ..utils.retry import RetryPolicy
from ..utils.run_logger import RunLogger
from .base import BaseNode

log = logging.getLogger(__name__)

_SUBJECT_SPLIT = re.compile(r"[,.;:(]")


def progress_percent(frame_index: int, frame_count: int) -> int:
    if frame_count <= 1:
        return 100
    return round(frame_index / (frame_count - 1) * 100)


def simplify_subject(subject: str, limit: int = 60) -> str:
    """Keep only the leading clause of a subject description."""
    head = _SUBJECT_SPLIT.split(subject.strip(), maxsplit=1)[0].strip()
    return (head or subject.strip())[:limit]


def build_context(frames: Sequence[str], frame_index: int) -> str:
    """Render previously accepted frames, numbered as they appear in the animation."""
    if not frames:
        return ""
    parts = ["Previous frames for continuity:"]
    for offset, frame in enumerate(frames):
        frame_number = frame_index - len(frames) + offset + 1
        parts.append(f"\nFrame {frame_number}:\n{frame}")
    return "\n".join(parts)


class FrameGenerator(BaseNode):
    """Generates one frame at a time from the plan and the preceding frames."""

    def __init__(
        self,
        generation_id: str,
        store: GenerationStore,
        model: LanguageModel,
        retry: RetryPolicy,
        *,
        logger: Optional[RunLogger] = None,
        temperature: float = 0.7,
        enable_thinking: bool = True,
    ) -> None:
        super().__init__(name="frame", generation_id=generation_id, store=store, logger=logger)
        self._model = model
        self._retry = retry
        self._temperature = temperature
        self._enable_thinking = enable_thinking

    async def generate(self, plan: Plan, frame_index: int, context: Sequence[str]) -> FrameResult:
        """Primary path: thinking call plus frame call, retried as a unit.

        Raises :class:`RetryExhaustedError` when every attempt failed.
        """
        await self.trace(
            f"Generating frame {frame_index + 1}/{plan.frame_count}...",
            TraceCategory.FRAME,
            frame_index,
        )
        context_text = build_context(context, frame_index)

        async def _attempt() -> FrameResult:
            thinking = await self._think(plan, frame_index, context_text)
            variables = self._variables(plan, frame_index, context_text)
            variables["position_note"] = self._position_note(frame_index, plan.frame_count)
            variables["thinking"] = f"Based on thinking: {thinking}" if thinking else ""
            spec = PromptSpec(
                prompt=load_prompt("frame", variables),
                purpose="frame",
                system=load_prompt("ascii_system"),
                temperature=self._temperature,
                hints=self._hints(plan, frame_index),
            )
            return await self._render(spec, plan, frame_index, step=f"frame-{frame_index:03d}", thinking=thinking)

        async def _on_retry(attempt: int, error: BaseException, delay: float) -> None:
            await self.trace(
                f"Frame {frame_index + 1} attempt {attempt} failed ({error}); retrying in {delay:.1f}s",
                TraceCategory.SYSTEM,
                frame_index,
            )

        return await self._retry.run(_attempt, label=f"frame {frame_index + 1}", on_retry=_on_retry)

    async def generate_fallback(self, plan: Plan, frame_index: int, context: Sequence[str]) -> FrameResult:
        """Degraded single attempt with a simplified subject and the given (short) context."""
        subject = simplify_subject(plan.subject)
        await self.trace(
            f"Retrying frame {frame_index + 1} with a simplified prompt for '{subject}'",
            TraceCategory.SYSTEM,
            frame_index,
        )
        variables = self._variables(plan, frame_index, build_context(context, frame_index))
        variables["subject"] = subject
        spec = PromptSpec(
            prompt=load_prompt("frame_fallback", variables),
            purpose="frame_fallback",
            temperature=self._temperature,
            hints=self._hints(plan, frame_index),
        )
        return await self._render(spec, plan, frame_index, step=f"frame-{frame_index:03d}-fallback")

    async def _think(self, plan: Plan, frame_index: int, context_text: str) -> Optional[str]:
        if not self._enable_thinking:
            return None
        variables = self._variables(plan, frame_index, context_text)
        spec = PromptSpec(
            prompt=load_prompt("frame_thinking", variables),
            purpose="frame_thinking",
            temperature=self._temperature,
            hints=self._hints(plan, frame_index),
        )
        thinking = (await self._model.generate_text(spec)).strip()
        if thinking:
            await self.trace(thinking, TraceCategory.FRAME, frame_index)
        return thinking

    async def _render(
        self,
        spec: PromptSpec,
        plan: Plan,
        frame_index: int,
        *,
        step: str,
        thinking: Optional[str] = None,
    ) -> FrameResult:
        self.log_prompt(spec.prompt, step=step)
        text = await self._model.generate_text(spec)
        content, parse_path = decode_frame_response(text)
        if not content.strip():
            raise ValueError(f"Model returned an empty frame for frame {frame_index + 1}")

        if parse_path is ParsePath.STRUCTURED:
            note = f"Frame {frame_index + 1} decoded from structured output"
        else:
            note = f"Frame {frame_index + 1} decoded as raw text (no structured payload)"
        await self.trace(note, TraceCategory.FRAME, frame_index)

        frame = normalize_frame(content, plan.width, plan.height)
        self.log_response({"parse_path": parse_path.value, "raw": text, "frame": frame}, step=step)
        log.debug("Generation %s frame %d accepted via %s", self.generation_id, frame_index, parse_path.value)
        return FrameResult(frame=frame, parse_path=parse_path, thinking=thinking)

    @staticmethod
    def _variables(plan: Plan, frame_index: int, context_text: str) -> dict:
        return {
            "frame_number": frame_index + 1,
            "frame_count": plan.frame_count,
            "subject": plan.subject,
            "interpretation": plan.interpretation,
            "style": plan.style.value,
            "movement": plan.movement.describe(),
            "width": plan.width,
            "height": plan.height,
            "characters": plan.palette,
            "progress": progress_percent(frame_index, plan.frame_count),
            "context": context_text,
        }

    @staticmethod
    def _hints(plan: Plan, frame_index: int) -> dict:
        return {
            "frame_index": frame_index,
            "frame_count": plan.frame_count,
            "width": plan.width,
            "height": plan.height,
            "characters": list(plan.characters),
            "subject": plan.subject,
        }

    @staticmethod
    def _position_note(frame_index: int, frame_count: int) -> str:
        if frame_index == 0:
            return "This is the FIRST frame - establish starting position"
        if frame_index == frame_count - 1:
            return "This is the LAST frame - complete the animation cycle"
        return "Continue smooth motion from previous frame"

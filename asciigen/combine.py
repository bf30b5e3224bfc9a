"""Merging of two finished animations into one, plus AI-assisted remixing."""

from __future__ import annotations

import json
import logging
from typing import List, Optional, Tuple

from .config import EngineConfig
from .errors import BlendError, InvalidCombinationError
from .services.base import LanguageModel, ModelFactory, PromptSpec
from .types import ArtworkSource, CombinationMetadata, CombinationMode, CombinedArtwork
from .utils.frames import clean_json_text, normalize_frame
from .utils.prompts import load_prompt
from .utils.run_logger import RunLogger

logger = logging.getLogger(__name__)

SIDE_BY_SIDE_LIMIT = 120
SPLIT_SEPARATOR = " | "
STACK_RULE = "─"
REMIX_SAMPLE_FRAMES = 3

Layout = Tuple[List[str], int, int, int]


def sequence_frames(first: ArtworkSource, second: ArtworkSource) -> Layout:
    """Play ``first`` then ``second``."""
    frames = list(first.frames) + list(second.frames)
    return frames, max(first.width, second.width), max(first.height, second.height), first.fps


def interleave_frames(first: ArtworkSource, second: ArtworkSource) -> Layout:
    """Alternate frames; once one source runs out the other continues alone."""
    frames: List[str] = []
    for index in range(max(len(first.frames), len(second.frames))):
        if index < len(first.frames):
            frames.append(first.frames[index])
        if index < len(second.frames):
            frames.append(second.frames[index])
    return (
        frames,
        max(first.width, second.width),
        max(first.height, second.height),
        max(first.fps, second.fps),
    )


def split_frames(first: ArtworkSource, second: ArtworkSource) -> Layout:
    """Show both animations at once, side by side when narrow enough, else stacked.

    The shorter animation loops so both play for the length of the longer one.
    """
    side_by_side = first.width + second.width < SIDE_BY_SIDE_LIMIT
    if side_by_side:
        # Reported width counts the separator as 2 columns; rendered rows are
        # first.width + len(SPLIT_SEPARATOR) + second.width, one wider.
        width = first.width + second.width + 2
        height = max(first.height, second.height)
    else:
        width = max(first.width, second.width)
        height = first.height + second.height + 1

    frames: List[str] = []
    for index in range(max(len(first.frames), len(second.frames))):
        frame1 = first.frames[index % len(first.frames)]
        frame2 = second.frames[index % len(second.frames)]
        if side_by_side:
            lines1 = frame1.split("\n")
            lines2 = frame2.split("\n")
            rows = []
            for row in range(height):
                left = lines1[row] if row < len(lines1) else ""
                right = lines2[row] if row < len(lines2) else ""
                rows.append(left.ljust(first.width) + SPLIT_SEPARATOR + right.ljust(second.width))
            frames.append("\n".join(rows))
        else:
            frames.append(f"{frame1}\n{STACK_RULE * width}\n{frame2}")
    return frames, width, height, first.fps


def _parse_frame_array(text: str, purpose: str) -> List[str]:
    cleaned = clean_json_text(text or "")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise BlendError(f"Failed to parse {purpose} frames from AI") from exc
    if not isinstance(payload, list) or not payload:
        raise BlendError(f"Failed to parse {purpose} frames from AI: expected a non-empty JSON array")
    if not all(isinstance(frame, str) for frame in payload):
        raise BlendError(f"Failed to parse {purpose} frames from AI: every frame must be a string")
    return payload


class CombinationEngine:
    """Combines two artworks deterministically, or through one model call for ``blend``."""

    def __init__(
        self,
        config: EngineConfig,
        model_factory: ModelFactory,
        *,
        run_logger: Optional[RunLogger] = None,
    ) -> None:
        self._config = config
        self._model_factory = model_factory
        self._run_logger = run_logger

    async def combine(
        self,
        artwork1: ArtworkSource,
        artwork2: ArtworkSource,
        mode: CombinationMode | str,
        prompt: str,
        *,
        credential: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> CombinedArtwork:
        try:
            mode = CombinationMode(mode)
        except ValueError as exc:
            allowed = ", ".join(m.value for m in CombinationMode)
            raise InvalidCombinationError(f"Unknown combination type {mode!r}; expected one of {allowed}") from exc
        for position, artwork in enumerate((artwork1, artwork2), start=1):
            if not artwork.frames:
                raise InvalidCombinationError(f"Artwork {position} has no frames to combine")

        resolved_model: Optional[str] = None
        if mode is CombinationMode.SEQUENCE:
            frames, width, height, fps = sequence_frames(artwork1, artwork2)
        elif mode is CombinationMode.INTERLEAVE:
            frames, width, height, fps = interleave_frames(artwork1, artwork2)
        elif mode is CombinationMode.SPLIT:
            frames, width, height, fps = split_frames(artwork1, artwork2)
        else:
            resolved_model = self._config.resolve_model(model_id).id
            model = self._model_factory(resolved_model, credential)
            frames, width, height, fps = await self._blend(model, artwork1, artwork2, prompt)

        logger.info("Combined artworks via %s into %d frames (%dx%d)", mode.value, len(frames), width, height)
        return CombinedArtwork(
            frames=frames,
            metadata=CombinationMetadata(
                width=width,
                height=height,
                fps=fps,
                frame_count=len(frames),
                combination_type=mode.value,
                prompt=prompt,
                model_id=resolved_model,
            ),
        )

    async def remix(
        self,
        artwork: ArtworkSource,
        instructions: str,
        *,
        credential: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> CombinedArtwork:
        """Ask the model for a modified version that keeps frame count and size."""
        if not artwork.frames:
            raise InvalidCombinationError("Artwork has no frames to remix")
        resolved_model = self._config.resolve_model(model_id).id
        model = self._model_factory(resolved_model, credential)

        sample = artwork.frames[:REMIX_SAMPLE_FRAMES]
        spec = PromptSpec(
            prompt=load_prompt(
                "remix",
                {
                    "sample_count": len(sample),
                    "sample_frames": "\n\n".join(f"Frame {i + 1}:\n{f}" for i, f in enumerate(sample)),
                    "frame_count": len(artwork.frames),
                    "width": artwork.width,
                    "height": artwork.height,
                    "instructions": instructions,
                },
            ),
            purpose="remix",
            system=load_prompt("ascii_system"),
            temperature=self._config.blend_temperature,
            hints={
                "frame_count": len(artwork.frames),
                "width": artwork.width,
                "height": artwork.height,
                "characters": sorted({c for c in "".join(sample) if not c.isspace()})[:4],
            },
        )
        text = await self._request(model, spec, "remix")
        frames = [normalize_frame(frame, artwork.width, artwork.height) for frame in _parse_frame_array(text, "remix")]
        return CombinedArtwork(
            frames=frames,
            metadata=CombinationMetadata(
                width=artwork.width,
                height=artwork.height,
                fps=artwork.fps,
                frame_count=len(frames),
                combination_type="remix",
                prompt=instructions,
                model_id=resolved_model,
            ),
        )

    async def _blend(
        self,
        model: LanguageModel,
        first: ArtworkSource,
        second: ArtworkSource,
        prompt: str,
    ) -> Layout:
        width = max(first.width, second.width)
        height = max(first.height, second.height)
        frame_count = max(len(first.frames), len(second.frames))
        spec = PromptSpec(
            prompt=load_prompt(
                "blend",
                {
                    "frame_count_1": len(first.frames),
                    "width_1": first.width,
                    "height_1": first.height,
                    "first_frame_1": first.frames[0],
                    "frame_count_2": len(second.frames),
                    "width_2": second.width,
                    "height_2": second.height,
                    "first_frame_2": second.frames[0],
                    "instructions": prompt,
                    "frame_count": frame_count,
                    "width": width,
                    "height": height,
                },
            ),
            purpose="blend",
            system=load_prompt("ascii_system"),
            temperature=self._config.blend_temperature,
            hints={"frame_count": frame_count, "width": width, "height": height},
        )
        text = await self._request(model, spec, "blend")
        frames = [normalize_frame(frame, width, height) for frame in _parse_frame_array(text, "blended")]
        fps = int((first.fps + second.fps) / 2 + 0.5)
        return frames, width, height, fps

    async def _request(self, model: LanguageModel, spec: PromptSpec, step: str) -> str:
        if self._run_logger is not None:
            self._run_logger.log_prompt("combinations", step, spec.prompt)
        try:
            text = await model.generate_text(spec)
        except Exception as exc:
            raise BlendError(f"{step.capitalize()} request failed: {exc}") from exc
        if self._run_logger is not None:
            self._run_logger.log_response("combinations", step, {"raw": text})
        return text

"""Core data models used across the ASCII animation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


class GenerationStatus(str, Enum):
    """Lifecycle states of a Generation record."""

    PENDING = "pending"
    PLANNING = "planning"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (GenerationStatus.PLANNING, GenerationStatus.GENERATING)

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.COMPLETED, GenerationStatus.FAILED)


ALLOWED_TRANSITIONS: Dict[GenerationStatus, frozenset] = {
    GenerationStatus.PENDING: frozenset({GenerationStatus.PLANNING, GenerationStatus.FAILED}),
    GenerationStatus.PLANNING: frozenset({GenerationStatus.GENERATING, GenerationStatus.FAILED}),
    GenerationStatus.GENERATING: frozenset({GenerationStatus.COMPLETED, GenerationStatus.FAILED}),
    GenerationStatus.COMPLETED: frozenset(),
    GenerationStatus.FAILED: frozenset(),
}


def can_transition(current: GenerationStatus, target: GenerationStatus) -> bool:
    """Return True if ``current -> target`` is a legal forward transition."""
    return target in ALLOWED_TRANSITIONS[current]


class TraceCategory(str, Enum):
    SYSTEM = "system"
    PLANNING = "planning"
    FRAME = "frame"


class AnimationStyle(str, Enum):
    DENSE = "dense"
    SPARSE = "sparse"
    GEOMETRIC = "geometric"
    ORGANIC = "organic"
    MIXED = "mixed"


class MovementKind(str, Enum):
    LINEAR = "linear"
    EASED = "eased"
    BOUNCING = "bouncing"
    FLOWING = "flowing"
    PULSING = "pulsing"


@dataclass(slots=True, frozen=True)
class NamedMovement:
    """One of the well-known movement patterns."""

    kind: MovementKind

    def describe(self) -> str:
        return self.kind.value


@dataclass(slots=True, frozen=True)
class CustomMovement:
    """A free-form movement description supplied by the model."""

    description: str

    def describe(self) -> str:
        return f"custom: {self.description}"


Movement = Union[NamedMovement, CustomMovement]


@dataclass(slots=True)
class Plan:
    """Validated animation plan produced once per generation."""

    interpretation: str
    subject: str
    style: AnimationStyle
    movement: Movement
    frame_count: int
    width: int
    height: int
    fps: int
    characters: List[str]
    color_hints: Optional[str] = None
    thinking_process: List[str] = field(default_factory=list)

    @property
    def palette(self) -> str:
        return "".join(self.characters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interpretation": self.interpretation,
            "subject": self.subject,
            "style": self.style.value,
            "movement": self.movement.describe(),
            "frame_count": self.frame_count,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "characters": list(self.characters),
            "color_hints": self.color_hints,
        }


@dataclass(slots=True)
class ThinkingTrace:
    """Append-only diagnostic entry shown to the waiting client."""

    text: str
    category: TraceCategory
    timestamp: datetime = field(default_factory=utc_now)
    frame_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "text": self.text,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.frame_index is not None:
            payload["frame_index"] = self.frame_index
        return payload


@dataclass(slots=True)
class Generation:
    """The central record describing one prompt-to-animation run."""

    id: str
    prompt: str
    model_id: str
    status: GenerationStatus = GenerationStatus.PLANNING
    user_id: Optional[str] = None
    plan: Optional[Plan] = None
    frames: List[str] = field(default_factory=list)
    current_frame: int = 0
    total_frames: int = 0
    thinking_traces: List[ThinkingTrace] = field(default_factory=list)
    error: Optional[str] = None
    retried_from: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_progress(self) -> Dict[str, Any]:
        """Return the polling read model exposed to clients."""
        return {
            "id": self.id,
            "status": self.status.value,
            "plan": self.plan.to_dict() if self.plan else None,
            "frames": list(self.frames),
            "current_frame": self.current_frame,
            "total_frames": self.total_frames,
            "thinking_traces": [trace.to_dict() for trace in self.thinking_traces],
            "error": self.error,
        }


class ParsePath(str, Enum):
    """Which decoding stage produced a frame."""

    STRUCTURED = "structured"
    RAW_TEXT = "raw_text"


@dataclass(slots=True)
class FrameResult:
    """A normalised frame and the decode path that produced it."""

    frame: str
    parse_path: ParsePath
    thinking: Optional[str] = None


class CombinationMode(str, Enum):
    SEQUENCE = "sequence"
    INTERLEAVE = "interleave"
    SPLIT = "split"
    BLEND = "blend"


@dataclass(slots=True)
class ArtworkSource:
    """A finished frame sequence together with its dimensions."""

    frames: List[str]
    width: int
    height: int
    fps: int

    @classmethod
    def from_generation(cls, generation: Generation) -> "ArtworkSource":
        if generation.plan is None:
            raise ValueError(f"Generation {generation.id} has no plan")
        return cls(
            frames=list(generation.frames),
            width=generation.plan.width,
            height=generation.plan.height,
            fps=generation.plan.fps,
        )


@dataclass(slots=True)
class CombinationMetadata:
    width: int
    height: int
    fps: int
    frame_count: int
    combination_type: str
    prompt: str
    generated_at: datetime = field(default_factory=utc_now)
    model_id: Optional[str] = None


@dataclass(slots=True)
class CombinedArtwork:
    """Transient result returned by the combination engine."""

    frames: List[str]
    metadata: CombinationMetadata

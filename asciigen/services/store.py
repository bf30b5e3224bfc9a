"""Record store for Generation entities."""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Protocol

from ..errors import GenerationNotFoundError
from ..types import Generation, ThinkingTrace

logger = logging.getLogger(__name__)

_PATCHABLE_FIELDS = frozenset(
    {
        "status",
        "plan",
        "total_frames",
        "error",
        "started_at",
        "completed_at",
    }
)


class GenerationStore(Protocol):
    """Per-record atomic storage the coordinator writes through."""

    async def create(self, generation: Generation) -> str:
        ...

    async def get(self, generation_id: str) -> Optional[Generation]:
        ...

    async def patch(self, generation_id: str, **fields) -> Generation:
        ...

    async def append_frame(self, generation_id: str, frame: str) -> Generation:
        ...

    async def append_trace(self, generation_id: str, trace: ThinkingTrace) -> None:
        ...

    async def delete(self, generation_id: str) -> None:
        ...

    def transaction(self):
        """Async context manager serialising check-and-set sequences."""
        ...


def new_generation_id() -> str:
    return uuid.uuid4().hex


class InMemoryGenerationStore:
    """Process-local store; reads return copies so callers never alias stored state."""

    def __init__(self) -> None:
        self._records: Dict[str, Generation] = {}
        self._lock = asyncio.Lock()

    async def create(self, generation: Generation) -> str:
        if not generation.id:
            generation.id = new_generation_id()
        if generation.id in self._records:
            raise ValueError(f"Generation {generation.id} already exists")
        self._records[generation.id] = copy.deepcopy(generation)
        logger.debug("Created generation %s (%s)", generation.id, generation.status.value)
        return generation.id

    async def get(self, generation_id: str) -> Optional[Generation]:
        record = self._records.get(generation_id)
        return copy.deepcopy(record) if record is not None else None

    async def patch(self, generation_id: str, **fields) -> Generation:
        unknown = set(fields) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be patched: {', '.join(sorted(unknown))}")
        record = self._require(generation_id)
        for name, value in fields.items():
            setattr(record, name, value)
        return copy.deepcopy(record)

    async def append_frame(self, generation_id: str, frame: str) -> Generation:
        record = self._require(generation_id)
        record.frames.append(frame)
        record.current_frame = len(record.frames)
        return copy.deepcopy(record)

    async def append_trace(self, generation_id: str, trace: ThinkingTrace) -> None:
        self._require(generation_id).thinking_traces.append(copy.deepcopy(trace))

    async def delete(self, generation_id: str) -> None:
        self._records.pop(generation_id, None)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryGenerationStore"]:
        async with self._lock:
            yield self

    def _require(self, generation_id: str) -> Generation:
        record = self._records.get(generation_id)
        if record is None:
            raise GenerationNotFoundError("Generation not found")
        return record

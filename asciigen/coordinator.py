"""State machine that drives one Generation from prompt to a terminal state."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypedDict

from langgraph.graph import END, START, StateGraph

from .errors import (
    GenerationFailedError,
    GenerationNotFoundError,
    InvalidTransitionError,
    PlanGenerationError,
    RetryExhaustedError,
)
from .nodes.frames import FrameGenerator
from .nodes.plan import PlanGenerator
from .services.store import GenerationStore
from .types import (
    Generation,
    GenerationStatus,
    Plan,
    ThinkingTrace,
    TraceCategory,
    can_transition,
    utc_now,
)
from .utils.files import json_default
from .utils.frames import blank_frame
from .utils.retry import NON_RETRYABLE_ERRORS

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Generation cancelled"

NodeFn = Callable[["CoordinatorState"], Awaitable[Dict[str, Any]]]


class CoordinatorState(TypedDict, total=False):
    """Values flowing between graph nodes; the record store stays the source of truth."""

    generation_id: str
    prompt: str
    plan: Plan
    frames_generated: int
    cancelled: bool
    completed: bool
    error: str


class GenerationCoordinator:
    """Single writer for one generation: plan, then frames in order, then finalize."""

    def __init__(
        self,
        generation_id: str,
        store: GenerationStore,
        plan_generator: PlanGenerator,
        frame_generator: FrameGenerator,
        *,
        context_window: int = 3,
        fallback_context_window: int = 1,
        cancel_event: Optional[asyncio.Event] = None,
        non_retryable: Tuple[Type[BaseException], ...] = NON_RETRYABLE_ERRORS,
    ) -> None:
        self.generation_id = generation_id
        self._store = store
        self._plan_generator = plan_generator
        self._frame_generator = frame_generator
        self._context_window = context_window
        self._fallback_context_window = fallback_context_window
        self._cancel_event = cancel_event or asyncio.Event()
        self._non_retryable = non_retryable

    def cancel(self) -> None:
        """Stop after the frame currently in flight has been persisted.

        The generation then ends ``failed`` with the frames generated so far.
        """
        self._cancel_event.set()

    async def run(self) -> Generation:
        """Drive the generation and return its final record.

        Raises :class:`GenerationFailedError` when the generation ends up failed.
        """
        generation = await self._store.get(self.generation_id)
        if generation is None:
            raise GenerationNotFoundError("Generation not found")

        if generation.status is GenerationStatus.PENDING:
            await self._transition(GenerationStatus.PLANNING, started_at=utc_now())
        elif generation.status is GenerationStatus.PLANNING:
            if generation.started_at is None:
                await self._store.patch(self.generation_id, started_at=utc_now())
        else:
            raise InvalidTransitionError(
                f"Generation {self.generation_id} is {generation.status.value}; only pending or planning "
                "generations can be started"
            )

        await self._trace("Initializing ASCII generation...", TraceCategory.SYSTEM)
        app = self.build_graph().compile()
        try:
            final_state = await app.ainvoke({"generation_id": self.generation_id, "prompt": generation.prompt})
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.exception("Generation %s aborted", self.generation_id)
            await self._fail(message)
            raise GenerationFailedError(self.generation_id, message) from exc

        if final_state.get("error"):
            raise GenerationFailedError(self.generation_id, final_state["error"])
        return await self._store.get(self.generation_id)

    def build_graph(self) -> StateGraph:
        """Construct the LangGraph graph: plan -> frames -> finalize."""
        graph = StateGraph(CoordinatorState)
        graph.add_node("plan_animation", self._instrument("plan_animation", self._plan_step))
        graph.add_node("generate_frames", self._instrument("generate_frames", self._frames_step))
        graph.add_node("finalize", self._instrument("finalize", self._finalize_step))

        graph.add_edge(START, "plan_animation")
        graph.add_conditional_edges(
            "plan_animation",
            self._route_after_plan,
            {"generate": "generate_frames", "failed": END},
        )
        graph.add_edge("generate_frames", "finalize")
        graph.add_edge("finalize", END)
        return graph

    async def _plan_step(self, state: CoordinatorState) -> Dict[str, Any]:
        try:
            plan = await self._plan_generator.generate(state["prompt"])
        except PlanGenerationError as exc:
            message = str(exc)
            await self._fail(message)
            return {"error": message}

        await self._transition(GenerationStatus.GENERATING, plan=plan, total_frames=plan.frame_count)
        return {"plan": plan}

    @staticmethod
    def _route_after_plan(state: CoordinatorState) -> str:
        return "generate" if state.get("plan") is not None else "failed"

    async def _frames_step(self, state: CoordinatorState) -> Dict[str, Any]:
        plan = state["plan"]
        generated = 0
        async for frame_index, frame in self._frame_stream(plan):
            record = await self._store.append_frame(self.generation_id, frame)
            generated += 1
            logger.info(
                "Generation %s frame %d/%d persisted",
                self.generation_id,
                record.current_frame,
                record.total_frames,
            )
        cancelled = generated < plan.frame_count
        return {"frames_generated": generated, "cancelled": cancelled}

    async def _finalize_step(self, state: CoordinatorState) -> Dict[str, Any]:
        if state.get("cancelled"):
            # Frames persisted so far are kept; failed makes the record retriable.
            await self._trace("Generation stopped before completion.", TraceCategory.SYSTEM)
            await self._fail(CANCELLED_MESSAGE)
            return {"completed": False, "error": CANCELLED_MESSAGE}
        await self._transition(GenerationStatus.COMPLETED, completed_at=utc_now())
        await self._trace("Generation complete.", TraceCategory.SYSTEM)
        return {"completed": True}

    async def _frame_stream(self, plan: Plan) -> AsyncIterator[Tuple[int, str]]:
        """Yield frames strictly one after another.

        The next frame is not requested until the consumer has resumed the
        generator, i.e. after the previous frame was persisted.
        """
        accepted: List[str] = []
        for frame_index in range(plan.frame_count):
            if self._cancel_event.is_set():
                logger.info("Generation %s cancelled before frame %d", self.generation_id, frame_index)
                return
            frame = await self._produce_frame(plan, frame_index, accepted)
            yield frame_index, frame
            accepted.append(frame)

    async def _produce_frame(self, plan: Plan, frame_index: int, accepted: List[str]) -> str:
        context = self._window(accepted, self._context_window)
        try:
            return (await self._frame_generator.generate(plan, frame_index, context)).frame
        except RetryExhaustedError as exc:
            logger.warning("Generation %s frame %d primary path failed: %s", self.generation_id, frame_index, exc)

        fallback_context = self._window(accepted, self._fallback_context_window)
        try:
            return (await self._frame_generator.generate_fallback(plan, frame_index, fallback_context)).frame
        except self._non_retryable:
            raise
        except Exception as exc:
            logger.warning("Generation %s frame %d fallback failed: %s", self.generation_id, frame_index, exc)
            await self._trace(
                f"Error generating frame {frame_index + 1}: {exc}; using a blank placeholder",
                TraceCategory.SYSTEM,
                frame_index,
            )
        return blank_frame(plan.width, plan.height)

    @staticmethod
    def _window(frames: List[str], size: int) -> List[str]:
        return frames[-size:] if size > 0 else []

    async def _transition(self, target: GenerationStatus, **fields: Any) -> Generation:
        async with self._store.transaction():
            current = await self._store.get(self.generation_id)
            if current is None:
                raise GenerationNotFoundError("Generation not found")
            if not can_transition(current.status, target):
                raise InvalidTransitionError(
                    f"Generation {self.generation_id} cannot move from {current.status.value} to {target.value}"
                )
            logger.info("Generation %s: %s -> %s", self.generation_id, current.status.value, target.value)
            return await self._store.patch(self.generation_id, status=target, **fields)

    async def _fail(self, message: str) -> None:
        async with self._store.transaction():
            current = await self._store.get(self.generation_id)
            if current is None or current.status.is_terminal:
                return
            logger.error("Generation %s failed: %s", self.generation_id, message)
            await self._store.patch(
                self.generation_id,
                status=GenerationStatus.FAILED,
                error=message,
                completed_at=utc_now(),
            )
        await self._trace(f"Generation failed: {message}", TraceCategory.SYSTEM)

    async def _trace(self, text: str, category: TraceCategory, frame_index: Optional[int] = None) -> None:
        await self._store.append_trace(
            self.generation_id,
            ThinkingTrace(text=text, category=category, frame_index=frame_index),
        )

    def _instrument(self, step: str, node: NodeFn) -> NodeFn:
        """Wrap a node so its input and output are logged with timing."""

        async def _run(state: CoordinatorState) -> Dict[str, Any]:
            self._log_step_io(step, "input", state)
            started = time.perf_counter()
            update = await node(state)
            self._log_step_io(step, "output", update, time.perf_counter() - started)
            return update

        return _run

    def _log_step_io(self, step: str, direction: str, payload: Any, elapsed: float | None = None) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        prefix = ">>" if direction == "input" else "<<"
        timing = f" [{elapsed:.2f}s]" if elapsed is not None else ""
        body = json.dumps(self._strip_empty(payload), ensure_ascii=False, default=json_default)
        logger.debug("[%s] %s %s%s: %s", step, prefix, direction, timing, body)

    def _strip_empty(self, value: Any) -> Any:
        """Recursively remove empty values for compact logging."""
        if isinstance(value, dict):
            return {k: self._strip_empty(v) for k, v in value.items() if v not in (None, "", [], {})}
        if isinstance(value, list):
            return [self._strip_empty(item) for item in value if item not in (None, "", [], {})]
        return value

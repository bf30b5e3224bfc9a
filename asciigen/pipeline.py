"""High-level facade exposing generation, retry, progress polling and combination."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

from .combine import CombinationEngine
from .config import EngineConfig
from .coordinator import GenerationCoordinator
from .errors import (
    ActiveGenerationError,
    CredentialRequiredError,
    GenerationFailedError,
    GenerationNotFoundError,
    InvalidCombinationError,
    PreconditionError,
)
from .nodes.frames import FrameGenerator
from .nodes.plan import PlanGenerator
from .services.base import LanguageModel, ModelFactory
from .services.credentials import CredentialResolver, EnvCredentialResolver
from .services.openrouter import OpenRouterClient
from .services.store import GenerationStore, InMemoryGenerationStore, new_generation_id
from .types import (
    ArtworkSource,
    CombinationMode,
    CombinedArtwork,
    Generation,
    GenerationStatus,
    ThinkingTrace,
    TraceCategory,
    utc_now,
)
from .utils.retry import RetryPolicy
from .utils.run_logger import RunLogger

logger = logging.getLogger(__name__)


class AsciiAnimator:
    """Entry points for starting, retrying, polling and combining generations."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        store: GenerationStore | None = None,
        credentials: CredentialResolver | None = None,
        model_factory: ModelFactory | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.config = config or EngineConfig.from_env()
        self.store = store or InMemoryGenerationStore()
        self.credentials = credentials or EnvCredentialResolver()
        self.model_factory = model_factory or self._default_model_factory
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.config.max_attempts,
            backoff_base=self.config.backoff_base,
            backoff_unit=self.config.backoff_unit_sec,
        )
        self.run_logger = RunLogger(self.config.runs_dir) if self.config.runs_dir else None
        self.combiner = CombinationEngine(self.config, self.model_factory, run_logger=self.run_logger)

        self._active: Dict[str, Optional[GenerationCoordinator]] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    async def start_generation(
        self,
        prompt: str,
        model_id: Optional[str] = None,
        credential: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        background: bool = False,
    ) -> str:
        """Create a generation in ``planning`` and drive it.

        With ``background=True`` the id is returned immediately and progress is
        observed through :meth:`get_progress`.
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must not be empty.")
        profile = self.config.resolve_model(model_id)
        credential = self._require_credential(user_id, profile.id, credential)

        generation = Generation(
            id=new_generation_id(),
            prompt=prompt,
            model_id=profile.id,
            status=GenerationStatus.PLANNING,
            user_id=user_id,
            started_at=utc_now(),
        )
        generation_id = await self.store.create(generation)
        logger.info("Started generation %s with %s", generation_id, profile.id)

        if background:
            self._launch(generation_id, credential)
        else:
            await self._drive(generation_id, credential)
        return generation_id

    async def run_generation(self, generation_id: str, credential: Optional[str] = None) -> Generation:
        """Drive an existing ``pending`` or ``planning`` generation to a terminal state."""
        generation = await self._require(generation_id)
        credential = self._require_credential(generation.user_id, generation.model_id, credential)
        return await self._drive(generation_id, credential)

    async def retry_generation(
        self,
        source_id: str,
        *,
        prompt: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> str:
        """Create a fresh ``pending`` generation from a finished or failed one."""
        async with self.store.transaction():
            source = await self.store.get(source_id)
            if source is None:
                raise GenerationNotFoundError("Generation not found")
            if source.status.is_active or source_id in self._active:
                raise ActiveGenerationError("Cannot retry an active generation")
            if not source.status.is_terminal:
                raise PreconditionError(
                    f"Only completed or failed generations can be retried; {source_id} is {source.status.value}"
                )

            retry = Generation(
                id=new_generation_id(),
                prompt=prompt if prompt is not None else source.prompt,
                model_id=model_id if model_id is not None else source.model_id,
                status=GenerationStatus.PENDING,
                user_id=source.user_id,
                retried_from=source.id,
            )
            new_id = await self.store.create(retry)
        await self.store.append_trace(
            new_id,
            ThinkingTrace(text=f"Retry of generation {source_id}", category=TraceCategory.SYSTEM),
        )
        logger.info("Generation %s retried as %s", source_id, new_id)
        return new_id

    async def get_progress(self, generation_id: str) -> Dict[str, Any]:
        return (await self._require(generation_id)).to_progress()

    async def get_generation(self, generation_id: str) -> Generation:
        return await self._require(generation_id)

    def cancel(self, generation_id: str) -> bool:
        """Ask the active coordinator to stop between frames."""
        coordinator = self._active.get(generation_id)
        if coordinator is None:
            return False
        coordinator.cancel()
        return True

    async def wait(self, generation_id: str) -> Generation:
        """Wait for a background generation to finish and return its record."""
        task = self._tasks.get(generation_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return await self._require(generation_id)

    async def combine(
        self,
        artwork1: ArtworkSource,
        artwork2: ArtworkSource,
        mode: CombinationMode | str,
        prompt: str,
        credential: Optional[str] = None,
        *,
        model_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CombinedArtwork:
        if mode == CombinationMode.BLEND:
            profile = self.config.resolve_model(model_id)
            credential = self._require_credential(user_id, profile.id, credential)
        return await self.combiner.combine(
            artwork1,
            artwork2,
            mode,
            prompt,
            credential=credential,
            model_id=model_id,
        )

    async def combine_generations(
        self,
        generation_ids: Sequence[str],
        mode: CombinationMode | str,
        prompt: str,
        credential: Optional[str] = None,
        *,
        model_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CombinedArtwork:
        """Combine exactly two completed generations."""
        if len(generation_ids) != 2:
            raise InvalidCombinationError(
                f"Exactly two artworks are required to combine, got {len(generation_ids)}"
            )
        sources = []
        for generation_id in generation_ids:
            generation = await self._require(generation_id)
            if generation.status is not GenerationStatus.COMPLETED or generation.plan is None:
                raise InvalidCombinationError(
                    f"Generation {generation_id} is {generation.status.value}; only completed generations can be combined"
                )
            sources.append(ArtworkSource.from_generation(generation))
        return await self.combine(
            sources[0],
            sources[1],
            mode,
            prompt,
            credential,
            model_id=model_id,
            user_id=user_id,
        )

    async def remix(
        self,
        artwork: ArtworkSource,
        instructions: str,
        credential: Optional[str] = None,
        *,
        model_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CombinedArtwork:
        profile = self.config.resolve_model(model_id)
        credential = self._require_credential(user_id, profile.id, credential)
        return await self.combiner.remix(artwork, instructions, credential=credential, model_id=profile.id)

    def _launch(self, generation_id: str, credential: Optional[str]) -> asyncio.Task:
        task = asyncio.create_task(self._drive(generation_id, credential), name=f"generation-{generation_id}")
        self._tasks[generation_id] = task
        task.add_done_callback(lambda done, gid=generation_id: self._on_task_done(gid, done))
        return task

    def _on_task_done(self, generation_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(generation_id, None)
        if task.cancelled():
            logger.warning("Background generation %s was cancelled", generation_id)
            return
        error = task.exception()
        if isinstance(error, GenerationFailedError):
            logger.info("Background generation %s failed: %s", generation_id, error.message)
        elif error is not None:
            logger.error("Background generation %s crashed", generation_id, exc_info=error)

    async def _drive(self, generation_id: str, credential: Optional[str]) -> Generation:
        if generation_id in self._active:
            raise ActiveGenerationError(f"Generation {generation_id} already has an active coordinator")
        # Claimed before the first await; concurrent callers see it immediately.
        self._active[generation_id] = None
        try:
            generation = await self._require(generation_id)
            coordinator = self._build_coordinator(generation, credential)
            self._active[generation_id] = coordinator
            return await coordinator.run()
        finally:
            self._active.pop(generation_id, None)

    def _build_coordinator(self, generation: Generation, credential: Optional[str]) -> GenerationCoordinator:
        """Construct the per-generation steps wired with the current services."""
        model = self.model_factory(generation.model_id, credential)
        return GenerationCoordinator(
            generation.id,
            self.store,
            PlanGenerator(
                generation.id,
                self.store,
                model,
                self.retry_policy,
                logger=self.run_logger,
                temperature=self.config.plan_temperature,
            ),
            FrameGenerator(
                generation.id,
                self.store,
                model,
                self.retry_policy,
                logger=self.run_logger,
                temperature=self.config.frame_temperature,
                enable_thinking=self.config.enable_frame_thinking,
            ),
            context_window=self.config.context_window,
            fallback_context_window=self.config.fallback_context_window,
            non_retryable=self.retry_policy.non_retryable,
        )

    def _require_credential(self, user_id: Optional[str], model_id: str, credential: Optional[str]) -> Optional[str]:
        credential = credential or self.credentials.resolve(user_id, model_id)
        if not credential and not self.config.enable_mock_generation:
            raise CredentialRequiredError(f"An API key is required to use {model_id}.")
        return credential

    async def _require(self, generation_id: str) -> Generation:
        generation = await self.store.get(generation_id)
        if generation is None:
            raise GenerationNotFoundError("Generation not found")
        return generation

    def _default_model_factory(self, model_id: str, credential: Optional[str]) -> LanguageModel:
        profile = self.config.resolve_model(model_id)
        return OpenRouterClient(
            api_key=credential or self.config.api_key,
            api_url=self.config.api_url,
            model=profile.api_model,
            use_mock=self.config.enable_mock_generation,
            timeout=self.config.request_timeout,
        )

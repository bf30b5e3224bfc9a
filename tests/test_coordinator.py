"""Tests for the coordinator state machine and the record store."""

from __future__ import annotations

import unittest

from asciigen.coordinator import GenerationCoordinator
from asciigen.errors import GenerationFailedError, GenerationNotFoundError, InvalidTransitionError
from asciigen.nodes.frames import FrameGenerator, build_context, progress_percent, simplify_subject
from asciigen.nodes.plan import PlanGenerator
from asciigen.services.store import InMemoryGenerationStore
from asciigen.types import Generation, GenerationStatus, can_transition
from asciigen.utils.retry import RetryPolicy
from tests.fakes import ScriptedModel, plan_payload


async def _no_sleep(delay: float) -> None:
    return None


class TransitionTableTest(unittest.TestCase):
    def test_forward_transitions_only(self) -> None:
        S = GenerationStatus
        self.assertTrue(can_transition(S.PENDING, S.PLANNING))
        self.assertTrue(can_transition(S.PLANNING, S.GENERATING))
        self.assertTrue(can_transition(S.GENERATING, S.COMPLETED))
        self.assertTrue(can_transition(S.GENERATING, S.FAILED))
        self.assertFalse(can_transition(S.GENERATING, S.PLANNING))
        self.assertFalse(can_transition(S.PLANNING, S.COMPLETED))
        for target in S:
            self.assertFalse(can_transition(S.COMPLETED, target))
            self.assertFalse(can_transition(S.FAILED, target))


class FrameHelpersTest(unittest.TestCase):
    def test_progress_percent(self) -> None:
        self.assertEqual(progress_percent(0, 10), 0)
        self.assertEqual(progress_percent(9, 10), 100)
        self.assertEqual(progress_percent(0, 1), 100)

    def test_simplify_subject(self) -> None:
        self.assertEqual(simplify_subject("a cat, chasing its tail"), "a cat")
        self.assertEqual(simplify_subject("rain"), "rain")

    def test_build_context_numbers_frames(self) -> None:
        context = build_context(["x", "y"], 5)
        self.assertTrue(context.startswith("Previous frames for continuity:"))
        self.assertIn("Frame 4:\nx", context)
        self.assertIn("Frame 5:\ny", context)
        self.assertEqual(build_context([], 0), "")


class GenerationCoordinatorTest(unittest.IsolatedAsyncioTestCase):
    """Drives a coordinator directly against the in-memory store."""

    async def asyncSetUp(self) -> None:
        self.store = InMemoryGenerationStore()
        self.retry = RetryPolicy(max_attempts=3, sleep=_no_sleep)

    def _coordinator(self, generation_id: str, model: ScriptedModel) -> GenerationCoordinator:
        return GenerationCoordinator(
            generation_id,
            self.store,
            PlanGenerator(generation_id, self.store, model, self.retry),
            FrameGenerator(generation_id, self.store, model, self.retry),
        )

    async def test_pending_generation_is_started(self) -> None:
        await self.store.create(
            Generation(id="g1", prompt="ocean waves", model_id="test", status=GenerationStatus.PENDING)
        )
        generation = await self._coordinator("g1", ScriptedModel(plan=plan_payload())).run()

        self.assertIs(generation.status, GenerationStatus.COMPLETED)
        self.assertIsNotNone(generation.started_at)
        self.assertEqual(generation.current_frame, len(generation.frames))

    async def test_terminal_generation_cannot_be_rerun(self) -> None:
        await self.store.create(
            Generation(id="g2", prompt="ocean waves", model_id="test", status=GenerationStatus.COMPLETED)
        )
        with self.assertRaises(InvalidTransitionError):
            await self._coordinator("g2", ScriptedModel()).run()
        self.assertIs((await self.store.get("g2")).status, GenerationStatus.COMPLETED)

    async def test_unknown_generation(self) -> None:
        with self.assertRaises(GenerationNotFoundError):
            await self._coordinator("missing", ScriptedModel()).run()

    async def test_unexpected_error_fails_generation(self) -> None:
        await self.store.create(Generation(id="g3", prompt="ocean waves", model_id="test"))
        model = ScriptedModel(plan=plan_payload())

        async def _broken(spec):
            raise KeyError("backend exploded")

        model.generate_text = _broken
        strict = RetryPolicy(non_retryable=(KeyError,), sleep=_no_sleep)
        coordinator = GenerationCoordinator(
            "g3",
            self.store,
            PlanGenerator("g3", self.store, model, self.retry),
            FrameGenerator("g3", self.store, model, strict),
            non_retryable=strict.non_retryable,
        )

        with self.assertRaises(GenerationFailedError):
            await coordinator.run()
        record = await self.store.get("g3")
        self.assertIs(record.status, GenerationStatus.FAILED)
        self.assertIn("backend exploded", record.error)
        self.assertIsNotNone(record.completed_at)


class InMemoryStoreTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.store = InMemoryGenerationStore()
        await self.store.create(Generation(id="g", prompt="p", model_id="m"))

    async def test_append_frame_keeps_counter_in_sync(self) -> None:
        for count in range(1, 4):
            record = await self.store.append_frame("g", f"frame {count}")
            self.assertEqual(record.current_frame, count)
            self.assertEqual(len(record.frames), count)

    async def test_reads_are_copies(self) -> None:
        record = await self.store.get("g")
        record.frames.append("sneaky")
        self.assertEqual((await self.store.get("g")).frames, [])

    async def test_patch_rejects_frames(self) -> None:
        with self.assertRaises(ValueError):
            await self.store.patch("g", frames=["x"])

    async def test_missing_record(self) -> None:
        with self.assertRaises(GenerationNotFoundError):
            await self.store.append_frame("nope", "x")
        self.assertIsNone(await self.store.get("nope"))


if __name__ == "__main__":
    unittest.main()

"""Tests for the bounded retry policy."""

from __future__ import annotations

import unittest
from typing import List

from asciigen.errors import RetryExhaustedError
from asciigen.utils.retry import RetryPolicy


class RetryPolicyTest(unittest.IsolatedAsyncioTestCase):
    """Attempt counting, backoff and error propagation."""

    def setUp(self) -> None:
        self.delays: List[float] = []

        async def _sleep(delay: float) -> None:
            self.delays.append(delay)

        self.policy = RetryPolicy(max_attempts=3, backoff_base=2.0, backoff_unit=1.0, sleep=_sleep)

    async def test_returns_first_success(self) -> None:
        calls = []

        async def _operation() -> str:
            calls.append(1)
            return "ok"

        self.assertEqual(await self.policy.run(_operation, label="op"), "ok")
        self.assertEqual(len(calls), 1)
        self.assertEqual(self.delays, [])

    async def test_recovers_after_failures(self) -> None:
        outcomes = [ValueError("bad"), ValueError("worse"), "ok"]

        async def _operation() -> str:
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        self.assertEqual(await self.policy.run(_operation, label="op"), "ok")
        self.assertEqual(self.delays, [2.0, 4.0])

    async def test_exhaustion_carries_last_error(self) -> None:
        attempts = []
        retries = []

        async def _operation() -> None:
            attempts.append(1)
            raise RuntimeError(f"failure {len(attempts)}")

        async def _on_retry(attempt: int, error: BaseException, delay: float) -> None:
            retries.append((attempt, str(error), delay))

        with self.assertRaises(RetryExhaustedError) as ctx:
            await self.policy.run(_operation, label="frame 3", on_retry=_on_retry)

        self.assertEqual(len(attempts), 3)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(ctx.exception.label, "frame 3")
        self.assertEqual(str(ctx.exception.last_error), "failure 3")
        self.assertEqual(retries, [(1, "failure 1", 2.0), (2, "failure 2", 4.0)])
        # No sleep after the final attempt.
        self.assertEqual(self.delays, [2.0, 4.0])

    async def test_non_retryable_errors_propagate_immediately(self) -> None:
        policy = RetryPolicy(max_attempts=3, non_retryable=(PermissionError,), sleep=self.policy.sleep)
        attempts = []

        async def _operation() -> None:
            attempts.append(1)
            raise PermissionError("rejected key")

        with self.assertRaises(PermissionError):
            await policy.run(_operation, label="plan")
        self.assertEqual(len(attempts), 1)
        self.assertEqual(self.delays, [])

    def test_delay_grows_exponentially(self) -> None:
        policy = RetryPolicy(backoff_base=2.0, backoff_unit=0.5)
        self.assertEqual([policy.delay_for(n) for n in (1, 2, 3)], [1.0, 2.0, 4.0])


if __name__ == "__main__":
    unittest.main()

"""
Unit tests for per-endpoint execution: timeout, retry and backoff.

Backoff sleeps go through RecordingSleep, so no test waits for real
except the short timeout races.
"""

import asyncio
import unittest

from chains.endpoints import Endpoint
from chains.retry import CallExecutor, Failure, RetryPolicy, Success
from core.exceptions import ConfigurationError, RequestTimeoutError
from fakes import RecordingSleep, ScriptedOperation
from monitoring.metrics import InMemoryMetrics, MetricNames, RPCStats


class TestRetryPolicy(unittest.TestCase):
    """Policy defaults, validation and backoff schedule."""

    def test_defaults(self):
        policy = RetryPolicy()

        self.assertEqual(policy.max_attempts_per_endpoint, 3)
        self.assertEqual(policy.timeout_ms, 30000)
        self.assertEqual(policy.base_delay_ms, 1000)

    def test_backoff_doubles(self):
        policy = RetryPolicy()

        self.assertEqual([policy.backoff_ms(i) for i in range(4)], [1000, 2000, 4000, 8000])

    def test_rejects_non_positive(self):
        for kwargs in (
            {"max_attempts_per_endpoint": 0},
            {"max_attempts_per_endpoint": -2},
            {"timeout_ms": 0},
            {"timeout_ms": 1.5},
            {"base_delay_ms": -1},
        ):
            with self.subTest(**kwargs):
                with self.assertRaises(ConfigurationError):
                    RetryPolicy(**kwargs)


class TestCallExecutor(unittest.IsolatedAsyncioTestCase):
    """CallExecutor.execute against a single endpoint."""

    def setUp(self):
        self.endpoint = Endpoint("https://a.example", 1)
        self.sleep = RecordingSleep()
        self.metrics = InMemoryMetrics()
        self.executor = CallExecutor(sleep=self.sleep, metrics=self.metrics)

    async def test_always_failing_runs_max_attempts_with_backoff(self):
        """3 attempts, 2 backoff waits of 1s and 2s, no trailing wait."""
        operation = ScriptedOperation(always_fail={"https://a.example"})

        outcome = await self.executor.execute(self.endpoint, operation, RetryPolicy())

        self.assertIsInstance(outcome, Failure)
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(len(operation.calls), 3)
        self.assertEqual(self.sleep.delays, [1.0, 2.0])
        self.assertIn("boom #3", str(outcome.last_error))

    async def test_success_after_transient_failure(self):
        operation = ScriptedOperation(failures={"https://a.example": 1}, result=42)

        outcome = await self.executor.execute(self.endpoint, operation, RetryPolicy())

        self.assertIsInstance(outcome, Success)
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.result, 42)
        self.assertEqual(outcome.attempts, 2)
        self.assertEqual(self.sleep.delays, [1.0])

    async def test_first_success_returns_immediately(self):
        operation = ScriptedOperation(result="done")

        outcome = await self.executor.execute(self.endpoint, operation, RetryPolicy())

        self.assertEqual(outcome, Success(result="done", attempts=1))
        self.assertEqual(self.sleep.delays, [])

    async def test_single_attempt_never_sleeps(self):
        operation = ScriptedOperation(always_fail={"https://a.example"})

        outcome = await self.executor.execute(
            self.endpoint, operation, RetryPolicy(max_attempts_per_endpoint=1)
        )

        self.assertEqual(outcome.attempts, 1)
        self.assertEqual(self.sleep.delays, [])

    async def test_custom_base_delay(self):
        operation = ScriptedOperation(always_fail={"https://a.example"})
        policy = RetryPolicy(max_attempts_per_endpoint=4, base_delay_ms=100)

        await self.executor.execute(self.endpoint, operation, policy)

        self.assertEqual(self.sleep.delays, [0.1, 0.2, 0.4])

    async def test_sync_operation_supported(self):
        outcome = await self.executor.execute(
            self.endpoint, lambda endpoint: endpoint.url.upper(), RetryPolicy()
        )

        self.assertEqual(outcome.result, "HTTPS://A.EXAMPLE")

    async def test_timeout_counts_as_failed_attempt(self):
        """A hung operation fails like a raised error, with the timeout message."""
        calls = []

        async def hangs(endpoint):
            calls.append(endpoint.url)
            await asyncio.Event().wait()

        policy = RetryPolicy(max_attempts_per_endpoint=2, timeout_ms=20)
        outcome = await self.executor.execute(self.endpoint, hangs, policy)

        self.assertIsInstance(outcome, Failure)
        self.assertIsInstance(outcome.last_error, RequestTimeoutError)
        self.assertEqual(outcome.last_error.message, "Request timed out after 20ms")
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.sleep.delays, [1.0])
        self.assertEqual(self.metrics.count(MetricNames.ATTEMPT_TIMEOUT), 2)

        self.executor.cancel_abandoned()
        await self.executor.wait_abandoned()

    async def test_late_result_is_discarded_once(self):
        """Abandoned attempt finishes later; its result does not leak."""
        release = asyncio.Event()
        attempts = []

        async def slow_then_fast(endpoint):
            attempts.append(len(attempts) + 1)
            if len(attempts) == 1:
                await release.wait()
                return "late"
            return "fresh"

        policy = RetryPolicy(max_attempts_per_endpoint=2, timeout_ms=20)
        outcome = await self.executor.execute(self.endpoint, slow_then_fast, policy)

        self.assertEqual(outcome.result, "fresh")
        self.assertEqual(self.executor.abandoned_count, 1)

        release.set()
        await self.executor.wait_abandoned()

        self.assertEqual(self.executor.abandoned_count, 0)
        self.assertEqual(self.metrics.count(MetricNames.LATE_RESULTS_DISCARDED), 1)
        self.assertEqual(outcome.result, "fresh")

    async def test_late_error_is_observed(self):
        """An abandoned attempt that later raises does not go unretrieved."""
        release = asyncio.Event()

        async def slow_failure(endpoint):
            await release.wait()
            raise RuntimeError("too late")

        policy = RetryPolicy(max_attempts_per_endpoint=1, timeout_ms=10)
        outcome = await self.executor.execute(self.endpoint, slow_failure, policy)
        self.assertIsInstance(outcome.last_error, RequestTimeoutError)

        release.set()
        await self.executor.wait_abandoned()

        self.assertEqual(self.metrics.count(MetricNames.LATE_RESULTS_DISCARDED), 1)

    async def test_stats_updated_per_attempt(self):
        stats = RPCStats(url=self.endpoint.url)
        operation = ScriptedOperation(failures={"https://a.example": 2})

        await self.executor.execute(self.endpoint, operation, RetryPolicy(), stats=stats)

        self.assertEqual(stats.total_requests, 3)
        self.assertEqual(stats.failed_requests, 2)
        self.assertEqual(stats.successful_requests, 1)
        self.assertIn("boom #2", stats.last_error)
        self.assertIsNotNone(stats.last_success_ts)

    async def test_caller_cancellation_cancels_attempt(self):
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def hangs(endpoint):
            started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.set()
                raise

        task = asyncio.ensure_future(self.executor.execute(self.endpoint, hangs, RetryPolicy()))
        await started.wait()
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task
        await asyncio.wait_for(cancelled.wait(), timeout=1)
        self.assertEqual(self.executor.abandoned_count, 0)


if __name__ == "__main__":
    unittest.main()

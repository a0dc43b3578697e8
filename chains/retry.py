"""
chains/retry.py - Per-endpoint execution with timeout and backoff.

CallExecutor runs one operation against one endpoint:
- every attempt races the operation against policy.timeout_ms
- a failed attempt is followed by base_delay_ms * 2**attempt of backoff,
  except after the last attempt on the endpoint
- the first success returns immediately

A timed-out attempt is abandoned, not cancelled. Its task keeps running;
when it finishes a done-callback observes the outcome once and drops it.
"""

import asyncio
import functools
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from chains.endpoints import Endpoint
from config import RPCProviderConfig
from core.constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_TIMEOUT_MS,
    LOGGER_ROOT,
)
from core.exceptions import ConfigurationError, RequestTimeoutError, error_message
from core.logging import get_logger
from monitoring.metrics import MetricNames, MetricsRecorder, NullMetrics, RPCStats

T = TypeVar("T")

# An operation gets a connected endpoint and returns (an awaitable of) a result
Operation = Callable[[Endpoint], Union[Awaitable[T], T]]

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/timeout policy shared by every endpoint of a pool."""

    max_attempts_per_endpoint: int = DEFAULT_RETRY_ATTEMPTS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS

    def __post_init__(self):
        for name in ("max_attempts_per_endpoint", "timeout_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigurationError(
                    f"{name} must be a positive integer, got {value!r}",
                    details={name: value},
                )
        if self.base_delay_ms < 0:
            raise ConfigurationError(
                f"base_delay_ms must not be negative, got {self.base_delay_ms!r}"
            )

    @classmethod
    def from_config(cls, config: RPCProviderConfig) -> "RetryPolicy":
        return cls(
            max_attempts_per_endpoint=config.retry_attempts,
            timeout_ms=config.timeout_ms,
        )

    def backoff_ms(self, attempt: int) -> int:
        """Delay after failed attempt `attempt` (0-indexed)."""
        return self.base_delay_ms * 2 ** attempt


@dataclass(frozen=True)
class Success(Generic[T]):
    result: T
    attempts: int

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    last_error: BaseException
    attempts: int

    @property
    def ok(self) -> bool:
        return False


CallOutcome = Union[Success, Failure]


async def _invoke(operation: Operation, endpoint: Endpoint) -> Any:
    result = operation(endpoint)
    if inspect.isawaitable(result):
        result = await result
    return result


class CallExecutor:
    """
    Runs operations against a single endpoint with timeout and retry.

    Stateless apart from the set of abandoned attempt tasks, so one executor
    can serve any number of concurrent calls.
    """

    def __init__(
        self,
        sleep: Sleep = asyncio.sleep,
        logger=None,
        metrics: Optional[MetricsRecorder] = None,
    ):
        self._sleep = sleep
        self._logger = logger or get_logger(f"{LOGGER_ROOT}.{__name__}")
        self._metrics = metrics or NullMetrics()
        # Strong refs so abandoned tasks are not garbage collected mid-flight
        self._abandoned: set[asyncio.Task] = set()

    @property
    def abandoned_count(self) -> int:
        """Timed-out attempts still running in the background."""
        return len(self._abandoned)

    async def execute(
        self,
        endpoint: Endpoint,
        operation: Operation,
        policy: RetryPolicy,
        stats: Optional[RPCStats] = None,
    ) -> CallOutcome:
        """
        Execute an operation against one endpoint.

        Args:
            endpoint: Endpoint to run against
            operation: Callable receiving the endpoint
            policy: Attempts, timeout and backoff
            stats: Optional per-endpoint stats to update

        Returns:
            Success(result, attempts) or Failure(last_error, attempts)
        """
        tags = {"endpoint": endpoint.display_url}
        last_error: Optional[BaseException] = None
        attempts = 0

        for attempt in range(policy.max_attempts_per_endpoint):
            attempts += 1
            self._metrics.increment(MetricNames.ATTEMPTS, tags=tags)
            started = time.monotonic()

            try:
                result = await self._run_with_timeout(endpoint, operation, policy.timeout_ms)
            except Exception as e:
                latency_ms = int((time.monotonic() - started) * 1000)
                last_error = e
                timed_out = isinstance(e, RequestTimeoutError)
                if stats is not None:
                    stats.record_failure(error_message(e), timed_out=timed_out)
                self._metrics.increment(MetricNames.ATTEMPT_FAILED, tags=tags)
                if timed_out:
                    self._metrics.increment(MetricNames.ATTEMPT_TIMEOUT, tags=tags)

                is_last = attempt == policy.max_attempts_per_endpoint - 1
                backoff_ms = 0 if is_last else policy.backoff_ms(attempt)
                self._logger.debug(
                    "RPC attempt failed",
                    extra={
                        "context": {
                            "endpoint": endpoint.display_url,
                            "attempt": attempt + 1,
                            "max_attempts": policy.max_attempts_per_endpoint,
                            "latency_ms": latency_ms,
                            "error": error_message(e),
                            "backoff_ms": backoff_ms,
                        }
                    },
                )
                if not is_last:
                    await self._sleep(backoff_ms / 1000)
                continue

            latency_ms = int((time.monotonic() - started) * 1000)
            if stats is not None:
                stats.record_success(latency_ms, int(time.time() * 1000))
            self._metrics.increment(MetricNames.ATTEMPT_SUCCESS, tags=tags)
            self._metrics.timing(MetricNames.ATTEMPT_DURATION, latency_ms, tags=tags)
            return Success(result=result, attempts=attempts)

        return Failure(last_error=last_error, attempts=attempts)

    async def _run_with_timeout(
        self,
        endpoint: Endpoint,
        operation: Operation,
        timeout_ms: int,
    ) -> Any:
        """Race one attempt against the timer."""
        task = asyncio.ensure_future(_invoke(operation, endpoint))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            # The caller went away; nobody is left to observe this attempt
            task.cancel()
            raise

        if task in done:
            return task.result()

        self._abandon(task, endpoint)
        raise RequestTimeoutError(timeout_ms, {"url": endpoint.display_url})

    def _abandon(self, task: asyncio.Task, endpoint: Endpoint) -> None:
        self._abandoned.add(task)
        task.add_done_callback(functools.partial(self._discard_late_result, endpoint))

    def _discard_late_result(self, endpoint: Endpoint, task: asyncio.Task) -> None:
        # Runs exactly once per abandoned task; the result goes nowhere
        self._abandoned.discard(task)
        if task.cancelled():
            outcome = "cancelled"
        elif task.exception() is not None:
            outcome = "error"
        else:
            outcome = "success"
        self._metrics.increment(
            MetricNames.LATE_RESULTS_DISCARDED, tags={"endpoint": endpoint.display_url}
        )
        self._logger.debug(
            "Discarded late RPC result",
            extra={"context": {"endpoint": endpoint.display_url, "outcome": outcome}},
        )

    async def wait_abandoned(self) -> None:
        """Wait until every abandoned attempt has finished and been discarded."""
        while self._abandoned:
            await asyncio.wait(set(self._abandoned))
            # Let the done-callbacks run
            await asyncio.sleep(0)

    def cancel_abandoned(self) -> None:
        """Cancel abandoned attempts still running (used on shutdown)."""
        for task in list(self._abandoned):
            task.cancel()

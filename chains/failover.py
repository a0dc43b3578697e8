"""
chains/failover.py - Ordered failover across an endpoint pool.

Every call walks the pool from the primary: fallbacks only cost latency
when the primary is exhausted, and a transient blip is retried on the same
endpoint before moving on. There is no endpoint affinity between calls.
"""

from typing import Any, Optional

from chains.endpoints import EndpointPool
from chains.retry import CallExecutor, Operation, RetryPolicy, Success
from core.constants import LOGGER_ROOT
from core.exceptions import RPCError, error_message
from core.logging import get_logger
from monitoring.metrics import MetricNames, MetricsRecorder, NullMetrics, RPCStats


class FailoverSequencer:
    """
    Drives a CallExecutor across an EndpointPool in order.

    Pool, policy and stats mapping are fixed at construction; concurrent
    calls share them without locking.
    """

    def __init__(
        self,
        pool: EndpointPool,
        policy: RetryPolicy,
        executor: Optional[CallExecutor] = None,
        logger=None,
        metrics: Optional[MetricsRecorder] = None,
        stats: Optional[dict[str, RPCStats]] = None,
    ):
        self._pool = pool
        self._policy = policy
        self._logger = logger or get_logger(f"{LOGGER_ROOT}.{__name__}")
        self._metrics = metrics or NullMetrics()
        self._executor = executor or CallExecutor(logger=self._logger, metrics=self._metrics)
        self._stats = stats if stats is not None else {
            url: RPCStats(url=url) for url in pool.urls
        }

    @property
    def pool(self) -> EndpointPool:
        return self._pool

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def executor(self) -> CallExecutor:
        return self._executor

    @property
    def stats(self) -> dict[str, RPCStats]:
        return self._stats

    async def call(self, operation: Operation) -> Any:
        """
        Run an operation with retry and failover.

        Args:
            operation: Callable receiving an Endpoint

        Returns:
            Result of the first successful attempt

        Raises:
            RPCError: If every attempt on every endpoint failed
        """
        last_error: Optional[BaseException] = None
        total_attempts = 0

        for index, endpoint in enumerate(self._pool):
            if index > 0:
                self._metrics.increment(MetricNames.FAILOVERS)
                self._logger.warning(
                    "Failing over to next RPC endpoint",
                    extra={
                        "context": {
                            "endpoint": endpoint.display_url,
                            "position": index,
                            "last_error": error_message(last_error),
                        }
                    },
                )

            outcome = await self._executor.execute(
                endpoint,
                operation,
                self._policy,
                stats=self._stats.get(endpoint.url),
            )
            total_attempts += outcome.attempts

            if isinstance(outcome, Success):
                self._metrics.increment(MetricNames.CALL_SUCCESS)
                return outcome.result

            last_error = outcome.last_error

        self._metrics.increment(MetricNames.CALL_FAILED)
        max_attempts = self._policy.max_attempts_per_endpoint
        self._logger.warning(
            "RPC call exhausted all endpoints",
            extra={
                "context": {
                    "endpoints_tried": len(self._pool),
                    "attempts": total_attempts,
                    "last_error": error_message(last_error),
                }
            },
        )
        raise RPCError(
            f"RPC call failed after {max_attempts} attempts: {error_message(last_error)}",
            last_error=last_error,
            attempts=total_attempts,
            details={
                "endpoints_tried": len(self._pool),
                "attempts": total_attempts,
                "max_attempts_per_endpoint": max_attempts,
                "last_error": error_message(last_error),
            },
        ) from last_error

"""
chains/providers.py - RPC provider with failover.

Provides reliable RPC access with:
- Primary + fallback endpoint failover
- Per-attempt timeout and exponential backoff
- Connectivity probe before the provider is usable
- Latency and error tracking per endpoint

Lifecycle:
    UNINITIALIZED -> INITIALIZING -> READY
                                  -> FAILED (terminal, build a new provider)

Only a READY provider accepts calls.
"""

import time
from typing import Any, Optional

from httpx import AsyncBaseTransport

from chains.endpoints import Endpoint, EndpointPool
from chains.failover import FailoverSequencer
from chains.networks import build_endpoint_pool
from chains.retry import CallExecutor, Operation, RetryPolicy
from config import RPCProviderConfig
from core.constants import LOGGER_ROOT, ProviderState
from core.exceptions import ConfigurationError, LicenseKitError, RPCError
from core.logging import get_logger
from monitoring.metrics import MetricNames, MetricsRecorder, NullMetrics, RPCStats


class RPCProvider:
    """
    RPC provider for one chain.

    Logger and metrics are injected; nothing here touches process-wide
    state. The executor can be injected to control backoff sleeping.
    """

    def __init__(
        self,
        config: RPCProviderConfig,
        chain_id: int,
        *,
        logger=None,
        metrics: Optional[MetricsRecorder] = None,
        executor: Optional[CallExecutor] = None,
        transport: Optional[AsyncBaseTransport] = None,
    ):
        self.config = config
        self.chain_id = chain_id
        self._logger = logger or get_logger(f"{LOGGER_ROOT}.rpc", chain_id=chain_id)
        self._metrics = metrics or NullMetrics()
        self._executor = executor or CallExecutor(logger=self._logger, metrics=self._metrics)
        self._transport = transport
        self._state = ProviderState.UNINITIALIZED
        self._sequencer: FailoverSequencer | None = None

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ProviderState.READY

    @property
    def pool(self) -> EndpointPool:
        return self._require_ready().pool

    @property
    def policy(self) -> RetryPolicy:
        return RetryPolicy.from_config(self.config)

    async def initialize(self) -> None:
        """
        Build the endpoint pool and probe it.

        Raises:
            ConfigurationError: Bad config (no network I/O happened), or the
                provider is not in a state that can be initialized
            RPCError: Probe exhausted every endpoint
        """
        if self._state == ProviderState.READY:
            return
        if self._state != ProviderState.UNINITIALIZED:
            raise ConfigurationError(
                f"RPC provider cannot be initialized from state {self._state.value}",
                details={"state": self._state.value},
            )

        self._state = ProviderState.INITIALIZING
        started = time.monotonic()

        try:
            pool = build_endpoint_pool(self.config, self.chain_id, transport=self._transport)
            sequencer = FailoverSequencer(
                pool,
                RetryPolicy.from_config(self.config),
                executor=self._executor,
                logger=self._logger,
                metrics=self._metrics,
            )
        except ConfigurationError:
            self._state = ProviderState.FAILED
            self._metrics.increment(MetricNames.PROVIDER_INIT_FAILED)
            raise

        self._logger.info(
            "Initializing RPC provider",
            extra={
                "context": {
                    "endpoints": [e.display_url for e in pool],
                    "retry_attempts": self.config.retry_attempts,
                    "timeout_ms": self.config.timeout_ms,
                }
            },
        )

        try:
            block_number = await sequencer.call(lambda endpoint: endpoint.get_block_number())
        except RPCError as e:
            await self._fail_initialize(pool)
            self._logger.error(
                "Failed to connect to RPC provider",
                extra={"context": {"error": e.message, "attempts": e.attempts}},
            )
            raise RPCError(
                "Failed to connect to RPC provider",
                last_error=e.last_error,
                attempts=e.attempts,
                details=e.details,
            ) from e
        except BaseException:
            # Cancelled mid-probe: never leave the provider INITIALIZING
            await self._fail_initialize(pool)
            self._logger.warning("RPC provider initialization interrupted")
            raise

        duration_ms = int((time.monotonic() - started) * 1000)
        self._sequencer = sequencer
        self._state = ProviderState.READY
        self._metrics.increment(MetricNames.PROVIDER_INITIALIZED)
        self._metrics.timing(MetricNames.PROVIDER_INIT_DURATION, duration_ms)
        self._logger.info(
            "RPC provider ready",
            extra={"context": {"block_number": block_number, "init_ms": duration_ms}},
        )

    async def _fail_initialize(self, pool: EndpointPool) -> None:
        self._state = ProviderState.FAILED
        self._metrics.increment(MetricNames.PROVIDER_INIT_FAILED)
        await pool.aclose()

    def _require_ready(self) -> FailoverSequencer:
        if self._state != ProviderState.READY or self._sequencer is None:
            raise ConfigurationError(
                "RPC provider not initialized",
                details={"state": self._state.value},
            )
        return self._sequencer

    async def call(self, operation: Operation) -> Any:
        """
        Execute an operation with retry and failover.

        Args:
            operation: Callable receiving an Endpoint, returning a result or
                an awaitable of one

        Raises:
            ConfigurationError: Provider is not READY (no network I/O)
            RPCError: All attempts on all endpoints failed
        """
        return await self._require_ready().call(operation)

    async def get_block_number(self) -> int:
        """Get latest block number."""
        return await self.call(lambda endpoint: endpoint.get_block_number())

    async def get_chain_id(self) -> int:
        """Get chain ID as reported by the node."""
        return await self.call(lambda endpoint: endpoint.get_chain_id())

    def get_underlying_handle(self) -> Endpoint:
        """Primary endpoint, for collaborators that need direct access."""
        return self._require_ready().pool.primary

    def get_stats_summary(self) -> dict:
        """Get statistics summary for all endpoints."""
        if self._sequencer is None:
            return {}
        return {
            url: stats.to_dict() for url, stats in self._stats_by_display_url().items()
        }

    def _stats_by_display_url(self) -> dict[str, RPCStats]:
        rows: dict[str, RPCStats] = {}
        for index, endpoint in enumerate(self._sequencer.pool):
            key = endpoint.display_url
            if key in rows:
                # Distinct keys can mask to the same string
                key = f"{key} #{index}"
            rows[key] = self._sequencer.stats[endpoint.url]
        return rows

    async def close(self) -> None:
        """Close endpoint HTTP clients and drop background attempts."""
        self._executor.cancel_abandoned()
        if self._sequencer is not None:
            await self._sequencer.pool.aclose()


async def connect(
    config: RPCProviderConfig,
    chain_id: int,
    **kwargs: Any,
) -> RPCProvider:
    """
    Create and initialize a provider.

    Raises:
        LicenseKitError: ConfigurationError or RPCError from initialize()
    """
    provider = RPCProvider(config, chain_id, **kwargs)
    try:
        await provider.initialize()
    except LicenseKitError:
        await provider.close()
        raise
    return provider

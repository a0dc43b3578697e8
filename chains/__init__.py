"""
chains/ - Blockchain RPC reliability layer.

Modules:
- networks: provider config -> endpoint URLs (no I/O)
- endpoints: JSON-RPC endpoint handle and immutable endpoint pool
- retry: per-endpoint timeout + exponential backoff
- failover: ordered failover across the pool
- providers: RPCProvider lifecycle and connectivity probe
"""

from chains.endpoints import Endpoint, EndpointPool
from chains.failover import FailoverSequencer
from chains.networks import (
    PROVIDER_NETWORKS,
    build_endpoint_pool,
    resolve_endpoint_urls,
    supported_chains,
)
from chains.providers import RPCProvider, connect
from chains.retry import (
    CallExecutor,
    CallOutcome,
    Failure,
    RetryPolicy,
    Success,
)

__all__ = [
    # Endpoints
    "Endpoint",
    "EndpointPool",
    # Resolution
    "PROVIDER_NETWORKS",
    "build_endpoint_pool",
    "resolve_endpoint_urls",
    "supported_chains",
    # Execution
    "CallExecutor",
    "CallOutcome",
    "Failure",
    "RetryPolicy",
    "Success",
    "FailoverSequencer",
    # Provider
    "RPCProvider",
    "connect",
]

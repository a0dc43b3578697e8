"""
Monitoring package for licensekit.

Metrics recorders injected into the RPC engine and per-endpoint stats.
"""

from monitoring.metrics import (
    InMemoryMetrics,
    MetricNames,
    MetricsRecorder,
    NullMetrics,
    RPCStats,
)

__all__ = [
    "InMemoryMetrics",
    "MetricNames",
    "MetricsRecorder",
    "NullMetrics",
    "RPCStats",
]

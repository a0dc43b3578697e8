"""
monitoring/metrics.py - RPC metrics collection.

The engine never talks to a metrics backend directly. Components receive a
metrics recorder through their constructor:
- NullMetrics: default, records nothing
- InMemoryMetrics: counters and timings kept in memory (tests, CLI summary)

RPCStats is the per-endpoint view, always kept by the provider.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


class MetricNames:
    """Pre-defined metric names."""
    # Initialization
    PROVIDER_INITIALIZED = "licensekit.rpc.initialized"
    PROVIDER_INIT_FAILED = "licensekit.rpc.init_failed"
    PROVIDER_INIT_DURATION = "licensekit.rpc.init_duration"

    # Attempts (one per operation invocation)
    ATTEMPTS = "licensekit.rpc.attempts"
    ATTEMPT_SUCCESS = "licensekit.rpc.attempt_success"
    ATTEMPT_FAILED = "licensekit.rpc.attempt_failed"
    ATTEMPT_TIMEOUT = "licensekit.rpc.attempt_timeout"
    ATTEMPT_DURATION = "licensekit.rpc.attempt_duration"
    LATE_RESULTS_DISCARDED = "licensekit.rpc.late_results_discarded"

    # Calls (one per caller request)
    CALL_SUCCESS = "licensekit.rpc.call_success"
    CALL_FAILED = "licensekit.rpc.call_failed"
    FAILOVERS = "licensekit.rpc.failovers"


class MetricsRecorder(Protocol):
    """What the engine needs from a metrics collaborator."""

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        ...

    def timing(self, name: str, duration_ms: int, tags: Optional[Dict[str, str]] = None) -> None:
        ...


class NullMetrics:
    """No-op recorder."""

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        pass

    def timing(self, name: str, duration_ms: int, tags: Optional[Dict[str, str]] = None) -> None:
        pass


@dataclass
class TimingEntry:
    name: str
    duration_ms: int
    tags: Dict[str, str] = field(default_factory=dict)


class InMemoryMetrics:
    """
    Recorder that keeps everything in memory.

    Counters are aggregated by name regardless of tags; timings keep every
    entry with its tags.
    """

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.timings: List[TimingEntry] = []

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        self.counters[name] += value

    def timing(self, name: str, duration_ms: int, tags: Optional[Dict[str, str]] = None) -> None:
        self.timings.append(TimingEntry(name, duration_ms, dict(tags or {})))

    def count(self, name: str) -> int:
        return self.counters.get(name, 0)

    def timings_for(self, name: str) -> List[int]:
        return [t.duration_ms for t in self.timings if t.name == name]

    def snapshot(self) -> Dict[str, Any]:
        """Counters plus timing count/avg/max per name."""
        grouped: Dict[str, List[int]] = defaultdict(list)
        for t in self.timings:
            grouped[t.name].append(t.duration_ms)

        return {
            "counters": dict(self.counters),
            "timings": {
                name: {
                    "count": len(values),
                    "avg_ms": sum(values) // len(values),
                    "max_ms": max(values),
                }
                for name, values in grouped.items()
            },
        }

    def reset(self) -> None:
        self.counters.clear()
        self.timings.clear()


@dataclass
class RPCStats:
    """Statistics for an RPC endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    timeouts: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def record_success(self, latency_ms: int, now_ms: int) -> None:
        self.total_requests += 1
        self.successful_requests += 1
        self.total_latency_ms += latency_ms
        self.last_success_ts = now_ms

    def record_failure(self, error: str, timed_out: bool = False) -> None:
        self.total_requests += 1
        self.failed_requests += 1
        if timed_out:
            self.timeouts += 1
        self.last_error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "success_rate": round(self.success_rate, 3),
            "avg_latency_ms": self.avg_latency_ms,
            "timeouts": self.timeouts,
            "last_error": self.last_error,
        }

from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any


@dataclass
class _LatencyAgg:
    count: int = 0
    sum_ms: float = 0.0
    max_ms: float = 0.0

    def observe(self, elapsed_ms: float) -> None:
        self.count += 1
        self.sum_ms += float(elapsed_ms)
        self.max_ms = max(self.max_ms, float(elapsed_ms))


class InMemoryMetrics:
    """Thread-safe, process-local counters for requests, access lines and deferred work.

    Access lines are written from the scheduler thread as well as the event loop.
    """

    _COUNTERS = (
        "http_requests_total",
        "access_log_entries_total",
        "access_log_uncorrelated_total",
        "deferred_tasks_total",
    )

    def __init__(self) -> None:
        self._lock = Lock()
        self._zero()

    def _zero(self) -> None:
        for name in self._COUNTERS:
            setattr(self, name, 0)
        self.http_request_ms = _LatencyAgg()

    def observe_http_request(self, elapsed_ms: float) -> None:
        with self._lock:
            self.http_requests_total += 1
            self.http_request_ms.observe(elapsed_ms)

    def observe_access_entry(self, correlated: bool) -> None:
        with self._lock:
            self.access_log_entries_total += 1
            self.access_log_uncorrelated_total += 0 if correlated else 1

    def observe_deferred_task(self) -> None:
        with self._lock:
            self.deferred_tasks_total += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": {name: getattr(self, name) for name in self._COUNTERS},
                "latency_ms": {"http_request_ms": asdict(self.http_request_ms)},
            }

    def reset(self) -> None:
        with self._lock:
            self._zero()


_METRICS: InMemoryMetrics | None = None
_METRICS_LOCK = Lock()


def get_metrics() -> InMemoryMetrics:
    global _METRICS
    with _METRICS_LOCK:
        if _METRICS is None:
            _METRICS = InMemoryMetrics()
        return _METRICS


def reset_metrics() -> None:
    """Zero every counter (tests call this between cases)."""

    get_metrics().reset()

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator, List

from prometheus_client import Counter, Gauge, Histogram


CACHE_SWEEPS_TOTAL = Counter(
    "simplnews_cache_sweeps_total",
    "Total number of expired-entry sweeps run against the cache.",
)

CACHE_EVICTIONS_TOTAL = Counter(
    "simplnews_cache_evictions_total",
    "Number of expired entries evicted by sweeps.",
)

CACHE_SWEEP_LATENCY = Histogram(
    "simplnews_cache_sweep_latency_seconds",
    "Latency of cache sweeps.",
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1),
)

CACHE_ENTRIES = Gauge(
    "simplnews_cache_entries",
    "Entries held by the cache after the most recent sweep.",
)


class Telemetry:
    """Facade around Prometheus metrics helpers."""

    def record_sweep(self, evicted: int, duration_seconds: float) -> None:
        CACHE_SWEEPS_TOTAL.inc()
        CACHE_EVICTIONS_TOTAL.inc(evicted)
        CACHE_SWEEP_LATENCY.observe(duration_seconds)

    def set_cache_size(self, size: int) -> None:
        CACHE_ENTRIES.set(size)

    @contextmanager
    def measure_sweep(self) -> Iterator[List[int]]:
        """Time a sweep; append the eviction count to the yielded list."""
        evicted: List[int] = []
        start = time.monotonic()
        try:
            yield evicted
        finally:
            duration = time.monotonic() - start
            self.record_sweep(sum(evicted), duration)

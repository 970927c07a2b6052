from __future__ import annotations

import threading
import time
import typing as t
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass
class Counter:
    name: str
    help: str
    values: Dict[Tuple, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        key = tuple(sorted(labels.items()))
        with self._lock:
            self.values[key] = self.values.get(key, 0.0) + value

    def get(self, **labels: Any) -> float:
        return self.values.get(tuple(sorted(labels.items())), 0.0)


@dataclass
class Histogram:
    name: str
    help: str
    buckets: List[float]
    counts: Dict[Tuple, List[int]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def observe(self, val: float, **labels: Any) -> None:
        key = tuple(sorted(labels.items()))
        with self._lock:
            if key not in self.counts:
                self.counts[key] = [0 for _ in self.buckets]
            for i, b in enumerate(self.buckets):
                if val <= b:
                    self.counts[key][i] += 1
                    break


# Predefined process-wide metrics
cache_requests_total = Counter("cache_requests_total", "Cache lookups by backend and result")
cache_operation_latency_seconds = Histogram(
    "cache_operation_latency_seconds",
    "Cache operation latency",
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)


@dataclass(frozen=True)
class CacheMetrics:
    hits: int
    misses: int
    hit_rate: float
    miss_rate: float
    total_requests: int
    average_latency_ms: float
    current_size: int
    max_size: int
    backend: str

    def as_dict(self) -> Dict[str, t.Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": self.hit_rate,
            "missRate": self.miss_rate,
            "totalRequests": self.total_requests,
            "averageLatencyMs": self.average_latency_ms,
            "currentSize": self.current_size,
            "maxSize": self.max_size,
            "backend": self.backend,
        }


class MetricsRecorder:
    """Hit/miss counters and a bounded window of recent latencies.

    Counters live for the lifetime of the recorder; clearing a cache does not
    reset them. Only the newest `sample_size` latencies are retained.
    """

    def __init__(self, backend: str, sample_size: int = 1000) -> None:
        self._backend = backend
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._latencies_ms: "deque[float]" = deque(maxlen=sample_size)

    def record_hit(self) -> None:
        with self._lock:
            self._hits += 1
        cache_requests_total.inc(backend=self._backend, result="hit")

    def record_miss(self) -> None:
        with self._lock:
            self._misses += 1
        cache_requests_total.inc(backend=self._backend, result="miss")

    def record_latency(self, operation: str, seconds: float) -> None:
        with self._lock:
            self._latencies_ms.append(seconds * 1000.0)
        cache_operation_latency_seconds.observe(seconds, backend=self._backend, operation=operation)

    @contextmanager
    def timed(self, operation: str) -> t.Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_latency(operation, time.perf_counter() - start)

    def snapshot(self, *, current_size: int, max_size: int, backend: str) -> CacheMetrics:
        with self._lock:
            hits, misses = self._hits, self._misses
            samples = list(self._latencies_ms)
        total = hits + misses
        hit_rate = hits / total if total else 0.0
        return CacheMetrics(
            hits=hits,
            misses=misses,
            hit_rate=hit_rate,
            miss_rate=1.0 - hit_rate if total else 0.0,
            total_requests=total,
            average_latency_ms=sum(samples) / len(samples) if samples else 0.0,
            current_size=current_size,
            max_size=max_size,
            backend=backend,
        )

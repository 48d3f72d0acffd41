"""In-process metrics for HoldGate.

Counters track reservation outcomes (claims created, confirmations won and
lost, sweep expirations, dropped status events). Histograms track timings
(query duration, sweep batch duration). The snapshot is served read-only
at ``/v1/metrics``.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Any, Iterator


@dataclass
class Timing:
    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    def record(self, value_ms: float) -> None:
        self.count += 1
        self.total_ms += value_ms
        self.max_ms = max(self.max_ms, value_ms)

    def snapshot(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "avg_ms": self.total_ms / self.count if self.count else 0.0,
            "max_ms": self.max_ms,
        }


class MetricsRegistry:
    """Thread-safe counters and timings keyed by dotted name."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.counters: dict[str, int] = {}
        self.timings: dict[str, Timing] = {}

    def inc_counter(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + amount

    def observe(self, name: str, value_ms: float) -> None:
        with self._lock:
            self.timings.setdefault(name, Timing()).record(value_ms)

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Record the wall time of the enclosed block."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, (time.perf_counter() - start) * 1000.0)

    def counter(self, name: str) -> int:
        with self._lock:
            return self.counters.get(name, 0)

    def reset(self) -> None:
        with self._lock:
            self.counters.clear()
            self.timings.clear()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self.counters),
                "timings": {name: t.snapshot() for name, t in self.timings.items()},
            }


metrics = MetricsRegistry()

# Copyright (c) 2026 SchemaGate Contributors. All Rights Reserved.

"""
Metrics — Client-side counters, gauges and latency samples.

Names in use:
  backend_request:<operation>    one per HTTP call issued
  backend_error:<code>           one per failed call, keyed by error code
  backend_latency:<operation>    latency samples in ms
  tenant_confirm                 remote confirmations issued by the validator
  tenant_confirm_inflight        gauge, confirmations currently awaiting the backend
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Any, Deque, Dict, Iterator

SAMPLE_LIMIT = 500


class Metrics:
    """In-process metrics for one client."""

    def __init__(self, sample_limit: int = SAMPLE_LIMIT):
        self._sample_limit = sample_limit
        self._counters: Dict[str, int] = defaultdict(int)
        self._gauges: Dict[str, float] = {}
        self._samples: Dict[str, Deque[float]] = {}
        self._since = time.monotonic()

    def inc(self, name: str, amount: int = 1) -> None:
        self._counters[name] += amount

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def counters(self, prefix: str = "") -> Dict[str, int]:
        """Counters whose name starts with prefix, prefix stripped."""
        return {
            name[len(prefix):]: value
            for name, value in self._counters.items()
            if name.startswith(prefix)
        }

    def set_gauge(self, name: str, value: float) -> None:
        self._gauges[name] = value

    def get_gauge(self, name: str) -> float:
        return self._gauges.get(name, 0.0)

    def observe(self, name: str, value: float) -> None:
        """Record one sample; only the most recent sample_limit are kept."""
        series = self._samples.get(name)
        if series is None:
            series = self._samples[name] = deque(maxlen=self._sample_limit)
        series.append(value)

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        """Observe the wall time of the block in ms, also when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, (time.perf_counter() - start) * 1000)

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()
        self._samples.clear()
        self._since = time.monotonic()

    def snapshot(self) -> Dict[str, Any]:
        """Plain-dict view, suitable for logging as JSON."""
        latency = {}
        for name, series in self._samples.items():
            if not series:
                continue
            ordered = sorted(series)
            latency[name] = {
                "count": len(ordered),
                "avg": round(sum(ordered) / len(ordered), 2),
                "p95": round(ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))], 2),
                "max": round(ordered[-1], 2),
            }
        return {
            "uptime_seconds": round(time.monotonic() - self._since, 1),
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "latency": latency,
        }


gate_metrics = Metrics()

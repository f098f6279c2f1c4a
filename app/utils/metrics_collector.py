"""
Request timing collection for the analytics endpoints.

Keeps a bounded window of recent durations per operation and summarizes them
for the health report.
"""
import logging
import statistics
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from threading import Lock
from typing import Any, Deque, Dict, Iterator

logger = logging.getLogger(__name__)


class TimingCollector:
    """Thread-safe per-operation duration tracker."""

    def __init__(self, max_samples: int = 1000):
        self.max_samples = max_samples
        self._samples: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=self.max_samples))
        self._counts: Dict[str, int] = defaultdict(int)
        self._lock = Lock()

    def record(self, name: str, duration_ms: float) -> None:
        with self._lock:
            self._samples[name].append(duration_ms)
            self._counts[name] += 1

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Time the enclosed block and record it under ``name``, also when it raises."""
        start = time.time()
        try:
            yield
        finally:
            duration_ms = (time.time() - start) * 1000.0
            self.record(name, duration_ms)
            logger.debug(f"{name} took {duration_ms:.2f}ms")

    def get_summary(self) -> Dict[str, Dict[str, Any]]:
        """
        Summarize recorded durations.

        Returns:
            {operation: {"count": total calls, "avg_ms": mean over the window, "max_ms": max over the window}}
        """
        with self._lock:
            return {
                name: {
                    "count": self._counts[name],
                    "avg_ms": round(statistics.mean(samples), 3),
                    "max_ms": round(max(samples), 3),
                }
                for name, samples in self._samples.items()
            }

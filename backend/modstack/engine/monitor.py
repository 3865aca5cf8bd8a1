"""Per-modifier timing: rolling sample window per (modifier type, shape)."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class TimingStats:
    count: int
    mean_ms: float
    max_ms: float
    min_ms: float
    last_ms: float


class ModifierPerformanceMonitor:
    def __init__(self, slow_modifier_ms: float = 100.0, max_samples: int = 100) -> None:
        self.slow_modifier_ms = slow_modifier_ms
        self.max_samples = max_samples
        self._samples: dict[str, deque[float]] = {}

    def start_timing(self, modifier_type: str, shape_id: str) -> Callable[[], float]:
        """Start a timer; calling the returned function stops it and returns ms."""
        key = f"{modifier_type}:{shape_id}"
        t0 = time.perf_counter()

        def stop() -> float:
            elapsed = (time.perf_counter() - t0) * 1000
            self._record(key, elapsed)
            if elapsed > self.slow_modifier_ms:
                logger.warning(
                    "Slow modifier %s on shape %s: %.1fms (threshold %.0fms)",
                    modifier_type,
                    shape_id,
                    elapsed,
                    self.slow_modifier_ms,
                )
            return elapsed

        return stop

    def _record(self, key: str, elapsed: float) -> None:
        window = self._samples.get(key)
        if window is None:
            window = deque(maxlen=self.max_samples)
            self._samples[key] = window
        window.append(elapsed)

    def get_stats(self, modifier_type: str | None = None) -> dict[str, TimingStats]:
        stats: dict[str, TimingStats] = {}
        for key, window in self._samples.items():
            if modifier_type is not None and not key.startswith(f"{modifier_type}:"):
                continue
            if not window:
                continue
            arr = np.fromiter(window, dtype=np.float64)
            stats[key] = TimingStats(
                count=len(arr),
                mean_ms=float(np.mean(arr)),
                max_ms=float(np.max(arr)),
                min_ms=float(np.min(arr)),
                last_ms=float(arr[-1]),
            )
        return stats

    def report(self) -> dict[str, TimingStats]:
        stats = self.get_stats()
        for key, s in sorted(stats.items()):
            logger.info(
                "%s: n=%d mean=%.2fms max=%.2fms last=%.2fms",
                key,
                s.count,
                s.mean_ms,
                s.max_ms,
                s.last_ms,
            )
        return stats

    def clear(self) -> None:
        self._samples.clear()

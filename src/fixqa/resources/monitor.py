# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Memory pressure sampling and classification."""

from __future__ import annotations

import logging
import os
import resource
import sys
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import Final

from ..config import ResourceConfig

LOGGER = logging.getLogger(__name__)

MemorySampler = Callable[[], int]
Clock = Callable[[], float]

_STATM: Final[Path] = Path("/proc/self/statm")
# Exhaustion projected within this many horizons still counts as elevated pressure.
_ELEVATED_HORIZON_FACTOR: Final[float] = 3.0


class PressureLevel(str, Enum):
    """Classification of current memory pressure."""

    NORMAL = "normal"
    ELEVATED = "elevated"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class ResourcePressureSample:
    """One observation of process memory.

    Attributes:
        timestamp: Monotonic time the sample was taken.
        rss_bytes: Resident set size in bytes.
        growth_rate: Least-squares growth over the sampling window in bytes/second;
            0 until the window spans at least one sampling interval.
        level: Pressure classification derived from level and trend.
    """

    timestamp: float
    rss_bytes: int
    growth_rate: float
    level: PressureLevel


def read_rss() -> int:
    """Return the resident set size of the current process in bytes.

    Reads ``/proc/self/statm`` where available and falls back to the peak
    resident size reported by :func:`resource.getrusage`.

    Returns:
        int: Resident memory in bytes.
    """

    try:
        fields = _STATM.read_text(encoding="ascii").split()
        return int(fields[1]) * os.sysconf("SC_PAGE_SIZE")
    except (OSError, IndexError, ValueError):
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        # ru_maxrss is reported in bytes on macOS and kilobytes elsewhere.
        return peak if sys.platform == "darwin" else peak * 1024


class ResourceMonitor:
    """Track memory usage and translate pressure into batch sizes and concurrency caps.

    Pressure combines the absolute level against ``memory_limit_mb`` with the
    growth trend: a high but flat level is at most elevated, while a moderate
    level growing fast enough to reach the limit within ``horizon`` seconds is
    critical.
    """

    def __init__(
        self,
        config: ResourceConfig | None = None,
        *,
        sampler: MemorySampler | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        """Create a monitor.

        Args:
            config: Thresholds and sampling settings.
            sampler: Callable returning resident memory in bytes.
            clock: Monotonic clock, injectable for tests.
        """

        self.config = config or ResourceConfig()
        self._sampler = sampler or read_rss
        self._clock = clock
        self._window: deque[tuple[float, int]] = deque(maxlen=self.config.window)
        self._baseline: tuple[float, int] | None = None
        self._latest: ResourcePressureSample | None = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def latest(self) -> ResourcePressureSample:
        """Return the most recent sample, taking one when none exists yet."""

        with self._lock:
            latest = self._latest
        return latest if latest is not None else self.sample()

    def sample(self) -> ResourcePressureSample:
        """Take one observation and classify the resulting pressure.

        Returns:
            ResourcePressureSample: Newly recorded sample.
        """

        rss = self._sampler()
        now = self._clock()
        with self._lock:
            if self._baseline is None:
                self._baseline = (now, rss)
            self._window.append((now, rss))
            growth = _slope(self._window, self.config.interval)
            level = self.classify(rss, growth)
            sample = ResourcePressureSample(timestamp=now, rss_bytes=rss, growth_rate=growth, level=level)
            previous = self._latest
            self._latest = sample
        if previous is not None and previous.level is not level:
            LOGGER.debug("memory pressure %s -> %s (rss=%d)", previous.level.value, level.value, rss)
        return sample

    def next_sample(self) -> ResourcePressureSample:
        """Force a fresh observation before a scheduling decision."""

        return self.sample()

    def classify(self, rss_bytes: int, growth_rate: float) -> PressureLevel:
        """Classify pressure from the absolute level and the growth trend.

        Args:
            rss_bytes: Current resident memory.
            growth_rate: Growth in bytes per second.

        Returns:
            PressureLevel: Pressure classification.
        """

        if not self.config.enabled:
            return PressureLevel.NORMAL
        limit = self.config.memory_limit_bytes
        if rss_bytes >= limit:
            return PressureLevel.CRITICAL
        exhaustion = self.time_to_exhaustion(rss_bytes, growth_rate)
        if exhaustion is not None and exhaustion <= self.config.horizon:
            return PressureLevel.CRITICAL
        if rss_bytes >= self.config.elevated_ratio * limit:
            return PressureLevel.ELEVATED
        if exhaustion is not None and exhaustion <= _ELEVATED_HORIZON_FACTOR * self.config.horizon:
            return PressureLevel.ELEVATED
        return PressureLevel.NORMAL

    def time_to_exhaustion(self, rss_bytes: int, growth_rate: float) -> float | None:
        """Return the projected seconds until the memory limit is reached.

        Args:
            rss_bytes: Current resident memory.
            growth_rate: Growth in bytes per second.

        Returns:
            float | None: Projected seconds, or ``None`` when memory is not growing.
        """

        if growth_rate <= 0:
            return None
        return max(0.0, (self.config.memory_limit_bytes - rss_bytes) / growth_rate)

    def batch_size(self, target: int, minimum: int = 1) -> int:
        """Return the batch size appropriate for the latest pressure level.

        Args:
            target: Batch size under normal pressure.
            minimum: Smallest batch size ever returned.

        Returns:
            int: ``target`` when normal, half of it when elevated, ``minimum`` when critical.
        """

        level = self.latest.level
        if level is PressureLevel.CRITICAL:
            size = minimum
        elif level is PressureLevel.ELEVATED:
            size = target // 2
        else:
            size = target
        return max(minimum, size)

    def concurrency_cap(self, jobs: int) -> int:
        """Return how many engines may run concurrently under the latest pressure."""

        level = self.latest.level
        if level is PressureLevel.CRITICAL:
            return 1
        if level is PressureLevel.ELEVATED:
            return max(1, jobs // 2)
        return max(1, jobs)

    def growth_since_start(self) -> int:
        """Return resident memory growth since the first sample, in bytes."""

        with self._lock:
            if self._baseline is None or self._latest is None:
                return 0
            return self._latest.rss_bytes - self._baseline[1]

    def start(self) -> None:
        """Start sampling in a background thread every ``interval`` seconds."""

        if self._thread is not None:
            return
        self._stop.clear()
        self.sample()
        self._thread = threading.Thread(target=self._loop, name="fixqa-resource-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background sampling thread."""

        thread = self._thread
        if thread is None:
            return
        self._stop.set()
        thread.join(timeout=self.config.interval * 2)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.config.interval):
            self.sample()

    def __enter__(self) -> ResourceMonitor:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.stop()


def _slope(window: deque[tuple[float, int]], min_span: float) -> float:
    count = len(window)
    # A window shorter than one sampling interval carries no trend.
    if count < 2 or window[-1][0] - window[0][0] < min_span:
        return 0.0
    mean_t = sum(point[0] for point in window) / count
    mean_r = sum(point[1] for point in window) / count
    numerator = sum((t - mean_t) * (r - mean_r) for t, r in window)
    denominator = sum((t - mean_t) ** 2 for t, _ in window)
    if denominator == 0:
        return 0.0
    return numerator / denominator


__all__ = [
    "MemorySampler",
    "PressureLevel",
    "ResourceMonitor",
    "ResourcePressureSample",
    "read_rss",
]

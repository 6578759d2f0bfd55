# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Adaptive, priority-aware batching of file sets."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeAlias, TypeVar

from ..cancellation import CancellationToken, TimeoutManager
from ..config import BatchConfig
from ..models import normalize_file
from .monitor import PressureLevel, ResourceMonitor

LOGGER = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")


class BatchPriority(str, Enum):
    """Scheduling priority of a file or batch."""

    CRITICAL = "critical"
    DEFERRABLE = "deferrable"


@dataclass(frozen=True, slots=True)
class FileBatch:
    """Ordered group of files processed together.

    Attributes:
        index: Position of the batch within the run.
        files: Files in processing order.
        priority: ``CRITICAL`` when the batch holds at least one critical file.
        timeout: Wall-clock budget in seconds, or ``None`` when unbounded.
    """

    index: int
    files: tuple[str, ...]
    priority: BatchPriority
    timeout: float | None


@dataclass(slots=True)
class Admission:
    """Outcome of admitting a file set as a single batch.

    Attributes:
        batch: Files admitted for processing.
        deferred: Deferrable files held back because of critical pressure.
    """

    batch: FileBatch
    deferred: list[str] = field(default_factory=list)


@dataclass(slots=True)
class BatchRunReport(Generic[ResultT]):
    """Summary of a batched run over a file set."""

    results: list[ResultT] = field(default_factory=list)
    processed: list[str] = field(default_factory=list)
    omitted: list[str] = field(default_factory=list)
    timed_out: list[int] = field(default_factory=list)
    deferrals: int = 0
    cancelled: bool = False

    @property
    def batches(self) -> int:
        """Return the number of batches whose results were kept."""

        return len(self.results)


@dataclass(slots=True)
class _Entry:
    file: str
    priority: BatchPriority
    deferrals: int = 0


BatchHandler: TypeAlias = Callable[[FileBatch, CancellationToken], ResultT]


def parent_expired(token: CancellationToken) -> bool:
    """Return whether ``token`` is cancelled or has reached its deadline.

    A scope capped by its parent deadline expires together with the parent,
    possibly before the parent timer fires; such a scope is not a timeout of
    its own.
    """

    return token.cancelled or token.remaining() == 0.0


class BatchProcessor:
    """Split file sets into batches sized by current resource pressure.

    Critical files are always scheduled before deferrable ones. Under critical
    pressure deferrable files are re-queued behind the remaining work, or
    omitted once they exhausted ``max_deferrals`` or the run deadline is
    imminent. Critical files are never omitted for pressure reasons.
    """

    def __init__(
        self,
        config: BatchConfig | None = None,
        monitor: ResourceMonitor | None = None,
        *,
        timeouts: TimeoutManager | None = None,
    ) -> None:
        """Create a processor.

        Args:
            config: Batch sizing and timeout settings.
            monitor: Resource monitor consulted before each batch.
            timeouts: Manager creating per-batch deadline tokens.
        """

        self.config = config or BatchConfig()
        self.monitor = monitor
        self.timeouts = timeouts or TimeoutManager()

    def order(
        self,
        files: Iterable[str],
        critical_files: Iterable[str] | None = None,
    ) -> list[tuple[str, BatchPriority]]:
        """Return ``files`` with priorities, critical files first.

        Args:
            files: Files to schedule.
            critical_files: Files that must not be shed; ``None`` marks every file critical.

        Returns:
            list[tuple[str, BatchPriority]]: Stable critical-first ordering.
        """

        normalized = list(dict.fromkeys(normalize_file(file) for file in files))
        if critical_files is None:
            return [(file, BatchPriority.CRITICAL) for file in normalized]
        critical = {normalize_file(file) for file in critical_files}
        head = [(file, BatchPriority.CRITICAL) for file in normalized if file in critical]
        tail = [(file, BatchPriority.DEFERRABLE) for file in normalized if file not in critical]
        return head + tail

    def batch_timeout(self, count: int, token: CancellationToken | None = None) -> float:
        """Return the progressive timeout for a batch of ``count`` files.

        Args:
            count: Number of files in the batch.
            token: Token whose remaining budget caps the timeout.

        Returns:
            float: ``base_timeout + per_file_timeout * count``, capped by the remaining budget.
        """

        timeout = self.config.base_timeout + self.config.per_file_timeout * count
        remaining = token.remaining() if token is not None else None
        return timeout if remaining is None else min(timeout, remaining)

    def deadline_imminent(self, token: CancellationToken, budget: float | None) -> bool:
        """Return whether less than ``imminent_ratio`` of ``budget`` remains on ``token``."""

        remaining = token.remaining()
        if remaining is None or budget is None:
            return False
        return remaining <= self.config.imminent_ratio * budget

    def admit(
        self,
        files: Sequence[str],
        critical_files: Iterable[str] | None,
        token: CancellationToken,
    ) -> Admission:
        """Admit ``files`` as one batch, holding back deferrable files under critical pressure.

        Args:
            files: Files to admit.
            critical_files: Files that must be admitted; ``None`` marks every file critical.
            token: Token bounding the batch timeout.

        Returns:
            Admission: The admitted batch and the deferred files.
        """

        ordered = self.order(files, critical_files)
        admitted = [file for file, _ in ordered]
        deferred: list[str] = []
        if self._pressure() is PressureLevel.CRITICAL:
            admitted = [file for file, priority in ordered if priority is BatchPriority.CRITICAL]
            deferred = [file for file, priority in ordered if priority is BatchPriority.DEFERRABLE]
            if deferred:
                LOGGER.debug("critical memory pressure: deferring %d file(s)", len(deferred))
        priority = BatchPriority.CRITICAL if len(deferred) < len(ordered) else BatchPriority.DEFERRABLE
        batch = FileBatch(
            index=0,
            files=tuple(admitted),
            priority=priority,
            timeout=self.batch_timeout(len(admitted), token),
        )
        return Admission(batch=batch, deferred=deferred)

    def process(
        self,
        files: Sequence[str],
        handler: BatchHandler[ResultT],
        token: CancellationToken,
        *,
        critical_files: Iterable[str] | None = None,
        budget: float | None = None,
    ) -> BatchRunReport[ResultT]:
        """Run ``handler`` over adaptive batches of ``files``.

        Each batch gets a child token bounded by its progressive timeout. A
        batch whose token timed out while the run token is still active has its
        result discarded and its files reported as omitted; processing then
        continues with the next batch.

        Args:
            files: Files to process.
            handler: Callable invoked with each batch and its token.
            token: Run or phase token; cancellation stops scheduling new batches.
            critical_files: Files that must not be shed; ``None`` marks every file critical.
            budget: Total run budget used to detect an imminent deadline.

        Returns:
            BatchRunReport[ResultT]: Kept results, processed and omitted files.
        """

        report: BatchRunReport[ResultT] = BatchRunReport()
        queue = deque(_Entry(file, priority) for file, priority in self.order(files, critical_files))
        index = 0
        while queue:
            if token.cancelled:
                report.cancelled = True
                report.omitted.extend(entry.file for entry in queue)
                break
            level = self._pressure()
            size = self._size()
            taken = [queue.popleft() for _ in range(min(size, len(queue)))]
            if level is PressureLevel.CRITICAL:
                taken = self._shed(taken, queue, report, token, budget)
                if not taken:
                    continue
            batch = FileBatch(
                index=index,
                files=tuple(entry.file for entry in taken),
                priority=(
                    BatchPriority.CRITICAL
                    if any(entry.priority is BatchPriority.CRITICAL for entry in taken)
                    else BatchPriority.DEFERRABLE
                ),
                timeout=self.batch_timeout(len(taken), token),
            )
            index += 1
            batch_token = self.timeouts.scoped(token, batch.timeout)
            try:
                result = handler(batch, batch_token)
            finally:
                self.timeouts.release(batch_token)
            if batch_token.timed_out and not parent_expired(token):
                LOGGER.debug("batch %d timed out after %.2fs", batch.index, batch.timeout or 0.0)
                report.timed_out.append(batch.index)
                report.omitted.extend(batch.files)
                continue
            report.results.append(result)
            report.processed.extend(batch.files)
        return report

    def iter_batches(
        self,
        files: Sequence[str],
        token: CancellationToken,
        *,
        critical_files: Iterable[str] | None = None,
    ) -> list[FileBatch]:
        """Return the batches ``files`` would be split into under the current pressure.

        No files are shed; this is the planning view used for reporting.
        """

        ordered = self.order(files, critical_files)
        size = self._size()
        batches: list[FileBatch] = []
        for index, start in enumerate(range(0, len(ordered), size)):
            chunk = ordered[start : start + size]
            batches.append(
                FileBatch(
                    index=index,
                    files=tuple(file for file, _ in chunk),
                    priority=(
                        BatchPriority.CRITICAL
                        if any(priority is BatchPriority.CRITICAL for _, priority in chunk)
                        else BatchPriority.DEFERRABLE
                    ),
                    timeout=self.batch_timeout(len(chunk), token),
                )
            )
        return batches

    def _shed(
        self,
        taken: list[_Entry],
        queue: deque[_Entry],
        report: BatchRunReport[ResultT],
        token: CancellationToken,
        budget: float | None,
    ) -> list[_Entry]:
        kept: list[_Entry] = []
        imminent = self.deadline_imminent(token, budget)
        for entry in taken:
            if entry.priority is BatchPriority.CRITICAL:
                kept.append(entry)
            elif imminent or entry.deferrals >= self.config.max_deferrals:
                report.omitted.append(entry.file)
            else:
                entry.deferrals += 1
                report.deferrals += 1
                queue.append(entry)
        return kept

    def _pressure(self) -> PressureLevel:
        if self.monitor is None:
            return PressureLevel.NORMAL
        return self.monitor.next_sample().level

    def _size(self) -> int:
        if self.monitor is None:
            return self.config.target_size
        return self.monitor.batch_size(self.config.target_size, self.config.min_size)


__all__ = [
    "Admission",
    "BatchHandler",
    "BatchPriority",
    "BatchProcessor",
    "BatchRunReport",
    "FileBatch",
    "parent_expired",
]

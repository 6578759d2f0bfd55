# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Concurrent execution of engine calls within one pipeline phase."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Final

from ..cancellation import CancellationToken
from ..engines.base import Engine
from ..errors import FixqaError, OperationCancelledError, ToolMissingError
from ..models import EnginePhase, EngineResult

LOGGER = logging.getLogger(__name__)

_POLL_INTERVAL: Final[float] = 0.05


@dataclass(frozen=True, slots=True)
class EngineJob:
    """One engine call scheduled within a phase."""

    engine: Engine
    files: tuple[str, ...]
    phase: EnginePhase


@dataclass(slots=True)
class EngineOutcome:
    """What happened to one :class:`EngineJob`.

    Exactly one of ``result``, ``missing`` and ``failure`` is set unless the
    job was abandoned after cancellation or never started.
    """

    job: EngineJob
    result: EngineResult | None = None
    missing: str | None = None
    failure: str | None = None
    abandoned: bool = False

    @property
    def name(self) -> str:
        """Return the engine name of the job."""

        return self.job.engine.name


def run_job(job: EngineJob, token: CancellationToken) -> EngineOutcome:
    """Invoke ``job`` and convert its errors into an :class:`EngineOutcome`.

    Args:
        job: Engine call to perform.
        token: Token passed to the engine.

    Returns:
        EngineOutcome: Result, missing-tool notice or failure message.
    """

    engine = job.engine
    started = time.perf_counter()
    try:
        if job.phase is EnginePhase.FIX:
            result = engine.fix(job.files, token)
        else:
            result = engine.check(job.files, token)
    except ToolMissingError as exc:
        return EngineOutcome(job=job, missing=str(exc))
    except OperationCancelledError:
        partial = EngineResult(
            engine=engine.name,
            kind=engine.kind,
            phase=job.phase,
            success=False,
            duration=time.perf_counter() - started,
            cancelled=True,
        )
        return EngineOutcome(job=job, result=partial)
    except (FixqaError, NotImplementedError, OSError, ValueError) as exc:
        LOGGER.debug("%s %s failed", engine.name, job.phase.value, exc_info=True)
        return EngineOutcome(job=job, failure=str(exc) or type(exc).__name__)
    except Exception as exc:
        # Adapter bugs stay contained to the engine that raised them.
        LOGGER.warning("%s %s raised unexpectedly", engine.name, job.phase.value, exc_info=True)
        return EngineOutcome(job=job, failure=f"{type(exc).__name__}: {exc}")
    return EngineOutcome(job=job, result=result)


class PhaseExecutor:
    """Run the engine jobs of one phase and wait for all of them.

    Jobs run on a :class:`~concurrent.futures.ThreadPoolExecutor` bounded by
    ``max_workers``, or one after another in serial mode. Once the phase token
    is cancelled, running jobs get ``grace_period`` seconds to return partial
    results; jobs still running afterwards are abandoned.
    """

    def __init__(
        self,
        *,
        grace_period: float,
        debug_logger: Callable[[str], None] | None = None,
        after_job: Callable[[EngineOutcome], None] | None = None,
    ) -> None:
        """Create the executor.

        Args:
            grace_period: Seconds granted to engines after cancellation.
            debug_logger: Optional sink for debug messages.
            after_job: Optional callback invoked as each job completes.
        """

        self.grace_period = grace_period
        self._debug_logger = debug_logger
        self._after_job = after_job

    def run(
        self,
        jobs: Sequence[EngineJob],
        token: CancellationToken,
        *,
        max_workers: int,
        serial: bool = False,
    ) -> list[EngineOutcome]:
        """Execute ``jobs`` and return their outcomes in job order.

        Args:
            jobs: Engine calls of the phase.
            token: Phase or batch token observed by every engine.
            max_workers: Upper bound on concurrently running engines.
            serial: Run jobs one after another in the given order.

        Returns:
            list[EngineOutcome]: One outcome per job, in ``jobs`` order.
        """

        if not jobs:
            return []
        if serial or max_workers <= 1 or len(jobs) == 1:
            return self._run_serial(jobs, token)
        return self._run_parallel(jobs, token, max_workers=min(max_workers, len(jobs)))

    def _run_serial(self, jobs: Sequence[EngineJob], token: CancellationToken) -> list[EngineOutcome]:
        outcomes: list[EngineOutcome] = []
        for job in jobs:
            if token.cancelled:
                self._debug(f"not starting {job.engine.name}: {token.reason}")
                outcomes.append(EngineOutcome(job=job, abandoned=True))
                continue
            outcome = run_job(job, token)
            self._notify(outcome)
            outcomes.append(outcome)
        return outcomes

    def _run_parallel(
        self,
        jobs: Sequence[EngineJob],
        token: CancellationToken,
        *,
        max_workers: int,
    ) -> list[EngineOutcome]:
        outcomes: dict[int, EngineOutcome] = {}
        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fixqa-engine")
        try:
            futures: dict[Future[EngineOutcome], int] = {
                executor.submit(run_job, job, token): index for index, job in enumerate(jobs)
            }
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                self._collect(done, futures, outcomes)
                if pending and token.cancelled:
                    done, pending = wait(pending, timeout=self.grace_period)
                    self._collect(done, futures, outcomes)
                    for future in pending:
                        index = futures[future]
                        self._debug(f"abandoning {jobs[index].engine.name} after grace period")
                        outcomes[index] = EngineOutcome(job=jobs[index], abandoned=True)
                    break
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return [outcomes[index] for index in range(len(jobs))]

    def _collect(
        self,
        done: set[Future[EngineOutcome]],
        futures: dict[Future[EngineOutcome], int],
        outcomes: dict[int, EngineOutcome],
    ) -> None:
        for future in done:
            outcome = future.result()
            outcomes[futures[future]] = outcome
            self._notify(outcome)

    def _notify(self, outcome: EngineOutcome) -> None:
        if self._after_job is not None:
            self._after_job(outcome)

    def _debug(self, message: str) -> None:
        if self._debug_logger:
            self._debug_logger(message)


__all__ = ["EngineJob", "EngineOutcome", "PhaseExecutor", "run_job"]

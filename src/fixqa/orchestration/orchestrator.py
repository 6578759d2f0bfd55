# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Fix-first orchestration of engine adapters over a changed-file set."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..aggregation import ResultAggregator, new_correlation_id
from ..cancellation import CancellationToken, TimeoutManager
from ..config import Config
from ..engines.base import Engine
from ..errors import ConfigError
from ..logging import warn
from ..models import EnginePhase, EngineResult, QualityCheckResult, StagingWarning, normalize_file
from ..resources.batching import BatchProcessor, FileBatch, parent_expired
from ..resources.monitor import ResourceMonitor
from ..staging import GitStagingAdapter
from .executor import EngineJob, EngineOutcome, PhaseExecutor
from .phases import PhaseTracker, PipelinePhase

LOGGER = logging.getLogger(__name__)

_CANCELLED_STAGING_MESSAGE = "run was cancelled; file left unstaged"


@dataclass(slots=True)
class OrchestratorHooks:
    """Optional callbacks invoked around pipeline phases."""

    before_phase: Callable[[PipelinePhase], None] | None = None
    after_engine: Callable[[EngineResult], None] | None = None
    after_run: Callable[[QualityCheckResult], None] | None = None


@dataclass(slots=True)
class RunRequest:
    """Inputs of one orchestrator run.

    Attributes:
        files: Files to analyse; normalised to absolute paths.
        root: Repository root used for staging; defaults to the process cwd.
        fingerprints: Configuration fingerprint per engine name.
        timeout: Run budget override in seconds.
        critical_files: Files that must never be shed; ``None`` marks every file critical.
        token: External cancellation token supplied by the invoker.
        warm_run: Warm/cold classification override for metrics.
    """

    files: Sequence[str | Path]
    root: Path | None = None
    fingerprints: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None
    critical_files: Sequence[str | Path] | None = None
    token: CancellationToken | None = None
    warm_run: bool | None = None


@dataclass(slots=True)
class _RunState:
    tracker: PhaseTracker = field(default_factory=PhaseTracker)
    results: list[EngineResult] = field(default_factory=list)
    unavailable: dict[str, str] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    omitted: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    recheck: dict[str, set[str]] = field(default_factory=dict)
    timed_out: bool = False


class Orchestrator:
    """Run engines fix-first, aggregate their findings and stage fixed files.

    One run moves through ``START -> FIX_PHASE -> CHECK_PHASE -> AGGREGATE ->
    STAGE -> DONE``. Missing tools degrade the run, engine failures are
    contained per engine, and cancellation still yields an aggregated result.
    Only :class:`~fixqa.errors.ConfigError` escapes :meth:`run`.
    """

    def __init__(
        self,
        engines: Iterable[Engine],
        *,
        config: Config | None = None,
        monitor: ResourceMonitor | None = None,
        stager: GitStagingAdapter | None = None,
        hooks: OrchestratorHooks | None = None,
        debug_logger: Callable[[str], None] | None = None,
        aggregator: ResultAggregator | None = None,
    ) -> None:
        """Create an orchestrator.

        Args:
            engines: Engine adapters in execution order.
            config: Run configuration; defaults to :class:`~fixqa.config.Config`.
            monitor: Resource monitor; one is created from ``config.resources`` when omitted.
            stager: Git staging adapter; one rooted at the request root is created when omitted.
            hooks: Optional lifecycle callbacks.
            debug_logger: Optional sink for debug messages.
            aggregator: Result aggregator override.

        Raises:
            ConfigError: If two engines share a name.
        """

        self._engines = list(engines)
        names = [engine.name for engine in self._engines]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigError(f"duplicate engine names: {', '.join(duplicates)}")
        self.config = config or Config()
        self._monitor = monitor
        self._stager = stager
        self._hooks = hooks or OrchestratorHooks()
        self._debug_logger = debug_logger
        self._aggregator = aggregator or ResultAggregator()

    @property
    def engines(self) -> list[Engine]:
        """Return the engines driven by this orchestrator."""

        return list(self._engines)

    def clear_sessions(self) -> None:
        """Drop the incremental session state of every engine."""

        for engine in self._engines:
            engine.reset_session()

    def _debug(self, message: str) -> None:
        """Emit ``message`` to the configured debug logger when available.

        Args:
            message: Textual content describing the orchestration step.
        """

        if self._debug_logger:
            self._debug_logger(message)

    def _warn(self, message: str) -> None:
        LOGGER.debug(message)
        output = self.config.output
        if not output.quiet:
            warn(message, use_emoji=output.emoji, use_color=None if output.color else False)

    def run(self, request: RunRequest) -> QualityCheckResult:
        """Execute one fix-first run over ``request.files``.

        Args:
            request: Files, fingerprints, budget and optional cancellation token.

        Returns:
            QualityCheckResult: Aggregated outcome of the run.

        Raises:
            ConfigError: If no engines are configured.
        """

        if not self._engines:
            raise ConfigError("no engines configured")

        started = time.perf_counter()
        execution = self.config.execution
        correlation_id = new_correlation_id()
        files = list(dict.fromkeys(normalize_file(file) for file in request.files))
        critical = None if request.critical_files is None else [str(file) for file in request.critical_files]
        budget = request.timeout if request.timeout is not None else execution.timeout
        self._debug(f"run {correlation_id}: files={len(files)} engines={len(self._engines)} timeout={budget:.2f}s")

        timeouts = TimeoutManager()
        run_token = timeouts.run_token(budget, parent=request.token)
        phase_token = timeouts.phase_token(run_token, reserve=budget * execution.reserve_ratio)
        monitor = self._monitor or ResourceMonitor(self.config.resources)
        batcher = BatchProcessor(self.config.batching, monitor, timeouts=timeouts)
        executor = PhaseExecutor(
            grace_period=execution.grace_period,
            debug_logger=self._debug_logger,
            after_job=self._after_job,
        )
        state = _RunState()
        for engine in self._engines:
            engine.prepare_session(request.fingerprints.get(engine.name, ""))

        try:
            with monitor:
                if execution.fix:
                    self._enter(state, PipelinePhase.FIX_PHASE)
                    self._fix_phase(files, critical, phase_token, state, batcher, executor, monitor, timeouts)
                self._enter(state, PipelinePhase.CHECK_PHASE)
                self._check_phase(files, critical, phase_token, state, batcher, executor, monitor, budget)
        finally:
            timeouts.close()

        cancelled = run_token.cancelled or phase_token.cancelled
        if cancelled:
            self._debug(f"run {correlation_id} cancelled: {run_token.reason or phase_token.reason}")
            state.tracker.cancel()
        else:
            self._enter(state, PipelinePhase.AGGREGATE)

        result = self._aggregate(files, state, started, correlation_id, request, cancelled)
        result = self._stage(result, state, request, cancelled)
        if not cancelled:
            state.tracker.advance(PipelinePhase.DONE)
        result.duration = time.perf_counter() - started
        result.phases = state.tracker.names()
        if self._hooks.after_run:
            self._hooks.after_run(result)
        return result

    def _enter(self, state: _RunState, phase: PipelinePhase) -> None:
        if state.tracker.terminal:
            return
        state.tracker.advance(phase)
        self._debug(f"entering {phase.value} phase")
        if self._hooks.before_phase:
            self._hooks.before_phase(phase)

    def _available(self, state: _RunState) -> list[Engine]:
        return [engine for engine in self._engines if engine.name not in state.unavailable]

    def _concurrency(self, monitor: ResourceMonitor) -> int:
        jobs = self.config.execution.jobs
        return min(jobs, monitor.concurrency_cap(jobs))

    def _fix_phase(
        self,
        files: Sequence[str],
        critical: Sequence[str] | None,
        token: CancellationToken,
        state: _RunState,
        batcher: BatchProcessor,
        executor: PhaseExecutor,
        monitor: ResourceMonitor,
        timeouts: TimeoutManager,
    ) -> None:
        fixers = [engine for engine in self._available(state) if engine.supports_fix]
        if not fixers or not files or token.cancelled:
            return
        admission = batcher.admit(files, critical, token)
        state.deferred = admission.deferred
        if not admission.batch.files:
            return
        batch_token = timeouts.scoped(token, admission.batch.timeout)
        try:
            jobs = [EngineJob(engine, admission.batch.files, EnginePhase.FIX) for engine in fixers]
            outcomes = executor.run(
                jobs,
                batch_token,
                max_workers=self._concurrency(monitor),
                serial=self.config.execution.serial_fix,
            )
        finally:
            timeouts.release(batch_token)
        if batch_token.timed_out and not parent_expired(token):
            self._warn(f"fix phase exceeded its {admission.batch.timeout:.2f}s budget")
            state.timed_out = True
        self._record(outcomes, state)
        self._mark_rechecks(outcomes, state, serial=self.config.execution.serial_fix)

    def _check_phase(
        self,
        files: Sequence[str],
        critical: Sequence[str] | None,
        token: CancellationToken,
        state: _RunState,
        batcher: BatchProcessor,
        executor: PhaseExecutor,
        monitor: ResourceMonitor,
        budget: float,
    ) -> None:
        if not files:
            return
        fix_ran = self.config.execution.fix
        deferred = set(state.deferred)

        def handle(batch: FileBatch, batch_token: CancellationToken) -> list[EngineOutcome]:
            jobs: list[EngineJob] = []
            for engine in self._available(state):
                if engine.name in state.failed:
                    continue
                if fix_ran and engine.supports_fix and engine.precise_fix_reporting:
                    rewritten = state.recheck.get(engine.name, set())
                    pending = tuple(file for file in batch.files if file in deferred or file in rewritten)
                    if pending:
                        jobs.append(EngineJob(engine, pending, EnginePhase.CHECK))
                    continue
                jobs.append(EngineJob(engine, batch.files, EnginePhase.CHECK))
            self._debug(f"check batch {batch.index}: files={len(batch.files)} engines={len(jobs)}")
            return executor.run(jobs, batch_token, max_workers=self._concurrency(monitor))

        report = batcher.process(files, handle, token, critical_files=critical, budget=budget)
        for outcomes in report.results:
            self._record(outcomes, state)
        if report.timed_out:
            self._warn(f"{len(report.timed_out)} check batch(es) timed out")
            state.timed_out = True
        state.omitted.extend(file for file in report.omitted if file not in state.omitted)

    def _after_job(self, outcome: EngineOutcome) -> None:
        if outcome.result is not None and self._hooks.after_engine:
            self._hooks.after_engine(outcome.result)

    def _record(self, outcomes: Sequence[EngineOutcome], state: _RunState) -> None:
        for outcome in outcomes:
            name = outcome.name
            if outcome.missing is not None:
                if name not in state.unavailable:
                    state.unavailable[name] = outcome.missing
                    state.tracker.degrade()
                    self._warn(f"{name} unavailable, continuing without it: {outcome.missing}")
            elif outcome.failure is not None:
                state.failed[name] = outcome.failure
                self._warn(f"{name} failed: {outcome.failure}")
            elif outcome.abandoned:
                self._debug(f"{name} abandoned after cancellation")
            elif outcome.result is not None:
                result = outcome.result
                if not result.success and not result.cancelled:
                    state.failed[name] = f"{name} reported an unsuccessful {result.phase.value} run"
                    self._warn(state.failed[name])
                    continue
                state.results.append(result)

    def _mark_rechecks(self, outcomes: Sequence[EngineOutcome], state: _RunState, *, serial: bool) -> None:
        # A precise fix report only describes files no later fixer rewrote.
        for position, outcome in enumerate(outcomes):
            if outcome.result is None or not outcome.job.engine.precise_fix_reporting:
                continue
            others = outcomes[position + 1 :] if serial else [other for other in outcomes if other is not outcome]
            rewritten = {
                file
                for other in others
                if other.result is not None
                for file in other.result.modified_files
            }
            if rewritten:
                self._debug(f"{outcome.name}: {len(rewritten)} file(s) rewritten by a later fixer")
                state.recheck[outcome.name] = rewritten

    def _aggregate(
        self,
        files: Sequence[str],
        state: _RunState,
        started: float,
        correlation_id: str,
        request: RunRequest,
        cancelled: bool,
    ) -> QualityCheckResult:
        execution = self.config.execution
        usable = [result for result in state.results if result.engine not in state.failed]
        merged = self._aggregator.merge_results(usable)
        aggregated = self._aggregator.aggregate(
            merged,
            scope=files,
            duration=time.perf_counter() - started,
            correlation_id=correlation_id,
            fail_on=execution.fail_on,
        )
        if execution.track_metrics:
            warm = execution.warm_run if request.warm_run is None else request.warm_run
            aggregated.metrics = self._aggregator.build_metrics(
                merged,
                duration=time.perf_counter() - started,
                issue_count=len(aggregated.issues),
                warm_run=warm,
                engines=[engine.name for engine in self._engines],
            )
        aggregated.unavailable_engines = list(state.unavailable)
        aggregated.failed_engines = dict(state.failed)
        aggregated.omitted_files = list(state.omitted)
        aggregated.cancelled = cancelled
        aggregated.success = aggregated.success and not state.failed and not state.timed_out and not cancelled
        return aggregated

    def _stage(
        self,
        result: QualityCheckResult,
        state: _RunState,
        request: RunRequest,
        cancelled: bool,
    ) -> QualityCheckResult:
        if not (self.config.execution.fix and self.config.execution.auto_stage):
            return result
        in_scope = {normalize_file(file) for file in request.files}
        modified = list(
            dict.fromkeys(
                file
                for engine_result in state.results
                if engine_result.phase is EnginePhase.FIX and engine_result.engine not in state.failed
                for file in engine_result.modified_files
                if file in in_scope
            )
        )
        if not modified:
            return result
        if cancelled:
            result.staging_warnings = [
                StagingWarning(file=file, message=_CANCELLED_STAGING_MESSAGE) for file in modified
            ]
            return result
        self._enter(state, PipelinePhase.STAGE)
        stager = self._stager or GitStagingAdapter(request.root)
        report = stager.stage(modified)
        for warning in report.warnings:
            self._warn(f"could not stage {warning.file}: {warning.message}")
        result.staged_files = report.staged
        result.staging_warnings = report.warnings
        return result


__all__ = ["Orchestrator", "OrchestratorHooks", "RunRequest"]

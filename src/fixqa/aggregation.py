# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Merge, filter, deduplicate and order engine results into a run result."""

from __future__ import annotations

import secrets
import time
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Final

from .models import (
    EngineMetrics,
    EnginePhase,
    EngineResult,
    Issue,
    IssueKey,
    IssueStatistics,
    PerfMetrics,
    QualityCheckResult,
    normalize_file,
)
from .severity import Severity

CORRELATION_PREFIX: Final[str] = "qc"
RUN_TYPE_WARM: Final[str] = "warm"
RUN_TYPE_COLD: Final[str] = "cold"


def new_correlation_id() -> str:
    """Return a correlation id of the form ``qc-<epoch-ms>-<random>``."""

    return f"{CORRELATION_PREFIX}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def _sort_key(issue: Issue) -> tuple[int, str, int, int, str, str]:
    return (
        issue.severity.rank,
        issue.file,
        issue.line,
        issue.col,
        issue.engine.value,
        issue.rule_id or "",
    )


class ResultAggregator:
    """Combine per-engine results into one deterministic issue list.

    Aggregation is a pure function of its inputs: running it twice over the
    same results yields equal outputs, and its output order never depends on
    engine completion order.
    """

    def aggregate(
        self,
        results: Sequence[EngineResult],
        *,
        scope: Iterable[str] | None = None,
        duration: float = 0.0,
        correlation_id: str | None = None,
        metrics: PerfMetrics | None = None,
        fail_on: Severity = Severity.WARNING,
    ) -> QualityCheckResult:
        """Build a :class:`QualityCheckResult` from ``results``.

        Steps: drop issues outside ``scope``, drop issues covered by fix
        records, deduplicate on identity, sort, and compute statistics.

        Args:
            results: Engine results from both pipeline phases.
            scope: Input file set; issues for other files are dropped.
            duration: Run duration in seconds.
            correlation_id: Identifier attached to the result.
            metrics: Optional performance metrics block.
            fail_on: Lowest severity that makes the run unsuccessful.

        Returns:
            QualityCheckResult: Aggregated result; ``success`` reflects remaining
            issues and cancelled engine results only.
        """

        issues = self.filter_fixed(results)
        if scope is not None:
            allowed = {normalize_file(file) for file in scope}
            issues = [issue for issue in issues if issue.file in allowed]
        issues = self.sort_issues(self.deduplicate(issues))
        blocking = any(issue.severity.at_least(fail_on) for issue in issues)
        cancelled = any(result.cancelled for result in results)
        return QualityCheckResult(
            success=not blocking and not cancelled,
            duration=duration,
            issues=issues,
            metrics=metrics,
            correlation_id=correlation_id,
            statistics=self.statistics(issues),
            fixed_count=sum(result.fixed_count for result in results),
            cancelled=cancelled,
        )

    @staticmethod
    def filter_fixed(results: Sequence[EngineResult]) -> list[Issue]:
        """Return the issues of ``results`` not covered by a fix record.

        A record naming a rule removes that engine's issues for the same file
        and rule from every phase. A file-level record only removes that
        engine's fix-phase issues for the file, since check-phase results were
        observed after the fix.

        Args:
            results: Engine results carrying issues and fix records.

        Returns:
            list[Issue]: Surviving issues in input order.
        """

        by_rule: set[tuple[str, str, str]] = set()
        by_file: set[tuple[str, str]] = set()
        for result in results:
            for record in result.fixed:
                if record.rule_id is None:
                    by_file.add((result.engine, record.file))
                else:
                    by_rule.add((result.engine, record.file, record.rule_id))

        surviving: list[Issue] = []
        for result in results:
            for issue in result.issues:
                if issue.rule_id is not None and (result.engine, issue.file, issue.rule_id) in by_rule:
                    continue
                if result.phase is EnginePhase.FIX and (result.engine, issue.file) in by_file:
                    continue
                surviving.append(issue)
        return surviving

    @staticmethod
    def deduplicate(issues: Iterable[Issue]) -> list[Issue]:
        """Collapse issues sharing an identity, keeping the first occurrence."""

        seen: dict[IssueKey, Issue] = {}
        for issue in issues:
            seen.setdefault(issue.identity, issue)
        return list(seen.values())

    @staticmethod
    def sort_issues(issues: Iterable[Issue]) -> list[Issue]:
        """Return ``issues`` ordered by severity, file, line, column, engine and rule."""

        return sorted(issues, key=_sort_key)

    @staticmethod
    def filter_by_severity(issues: Iterable[Issue], minimum: Severity) -> list[Issue]:
        """Return the issues at least as severe as ``minimum``."""

        return [issue for issue in issues if issue.severity.at_least(minimum)]

    @staticmethod
    def statistics(issues: Sequence[Issue]) -> IssueStatistics:
        """Return issue counts by engine kind, severity and file."""

        return IssueStatistics(
            total=len(issues),
            by_engine=dict(Counter(issue.engine.value for issue in issues)),
            by_severity=dict(Counter(issue.severity.value for issue in issues)),
            by_file=dict(Counter(issue.file for issue in issues)),
        )

    @staticmethod
    def merge_results(results: Sequence[EngineResult]) -> list[EngineResult]:
        """Merge batch results of the same engine and phase into one result each.

        Args:
            results: Results possibly split across several batches.

        Returns:
            list[EngineResult]: One result per ``(engine, phase)`` in first-seen order.
        """

        merged: dict[tuple[str, EnginePhase], EngineResult] = {}
        for result in results:
            key = (result.engine, result.phase)
            current = merged.get(key)
            if current is None:
                merged[key] = result.model_copy(deep=True)
                continue
            merged[key] = current.model_copy(
                update={
                    "success": current.success and result.success,
                    "issues": [*current.issues, *result.issues],
                    "duration": current.duration + result.duration,
                    "fixed_count": current.fixed_count + result.fixed_count,
                    "modified_files": list(dict.fromkeys([*current.modified_files, *result.modified_files])),
                    "fixed": [*current.fixed, *result.fixed],
                    "cancelled": current.cancelled or result.cancelled,
                }
            )
        return list(merged.values())

    @staticmethod
    def build_metrics(
        results: Sequence[EngineResult],
        *,
        duration: float,
        issue_count: int,
        warm_run: bool,
        engines: Iterable[str] = (),
    ) -> PerfMetrics:
        """Return the performance metrics block for a run.

        Args:
            results: Engine results of the run.
            duration: Total run duration in seconds.
            issue_count: Number of issues in the final result.
            warm_run: Whether the invoker reported a warm cache.
            engines: Names of every configured engine; engines without results
                are reported as disabled.

        Returns:
            PerfMetrics: Metrics with per-engine totals across phases and batches.
        """

        per_engine: dict[str, EngineMetrics] = {
            name: EngineMetrics(enabled=False) for name in engines
        }
        for result in results:
            current = per_engine.get(result.engine)
            if current is None or not current.enabled:
                current = EngineMetrics(enabled=True)
            per_engine[result.engine] = EngineMetrics(
                enabled=True,
                duration=current.duration + result.duration,
                issue_count=current.issue_count + len(result.issues),
                fixed_count=current.fixed_count + result.fixed_count,
            )
        return PerfMetrics(
            timestamp=datetime.now(UTC).isoformat(),
            run_type=RUN_TYPE_WARM if warm_run else RUN_TYPE_COLD,
            duration=duration,
            issue_count=issue_count,
            engines=per_engine,
        )


__all__ = [
    "CORRELATION_PREFIX",
    "RUN_TYPE_COLD",
    "RUN_TYPE_WARM",
    "ResultAggregator",
    "new_correlation_id",
]

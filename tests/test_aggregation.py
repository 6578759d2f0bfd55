# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for merging, filtering and ordering engine results."""

from __future__ import annotations

import re
from pathlib import Path

from fixqa.aggregation import RUN_TYPE_COLD, RUN_TYPE_WARM, ResultAggregator, new_correlation_id
from fixqa.models import EngineKind, EnginePhase, EngineResult, FixRecord, Issue, normalize_file
from fixqa.severity import Severity


def _issue(
    file: str,
    *,
    rule: str | None = "E1",
    line: int = 1,
    col: int = 1,
    severity: Severity = Severity.WARNING,
    engine: EngineKind = EngineKind.LINT,
) -> Issue:
    return Issue(engine=engine, severity=severity, file=file, line=line, col=col, rule_id=rule, message=f"{rule}")


def _result(
    engine: str,
    issues: list[Issue],
    *,
    phase: EnginePhase = EnginePhase.CHECK,
    kind: EngineKind = EngineKind.LINT,
    fixed: list[FixRecord] | None = None,
    cancelled: bool = False,
) -> EngineResult:
    return EngineResult(
        engine=engine,
        kind=kind,
        phase=phase,
        success=not cancelled,
        issues=issues,
        fixed=fixed or [],
        fixed_count=len(fixed or []),
        cancelled=cancelled,
    )


def test_duplicate_issues_are_collapsed(tmp_path: Path) -> None:
    file = normalize_file(tmp_path / "a.py")
    first = _result("ruff", [_issue(file)])
    second = _result("ruff", [_issue(file), _issue(file, rule="E2")])

    result = ResultAggregator().aggregate([first, second])

    assert [issue.rule_id for issue in result.issues] == ["E1", "E2"]


def test_issues_are_sorted_by_severity_then_location(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    b = normalize_file(tmp_path / "b.py")
    issues = [
        _issue(b, rule="W1", line=1),
        _issue(a, rule="W2", line=9),
        _issue(a, rule="W3", line=2, col=5),
        _issue(a, rule="W4", line=2, col=1),
        _issue(b, rule="F1", severity=Severity.ERROR, line=40),
        _issue(a, rule="N1", severity=Severity.INFO),
    ]

    result = ResultAggregator().aggregate([_result("ruff", issues)])

    assert [issue.rule_id for issue in result.issues] == ["F1", "W4", "W3", "W2", "W1", "N1"]


def test_aggregation_is_independent_of_result_order(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    lint = _result("ruff", [_issue(a, rule="E1", line=3)])
    types = _result(
        "mypy",
        [_issue(a, rule="arg-type", line=3, engine=EngineKind.TYPE_CHECK, severity=Severity.ERROR)],
        kind=EngineKind.TYPE_CHECK,
    )
    aggregator = ResultAggregator()

    forward = aggregator.aggregate([lint, types])
    backward = aggregator.aggregate([types, lint])

    assert forward.issues == backward.issues
    assert forward.statistics == backward.statistics


def test_rule_fix_records_suppress_issues_in_every_phase(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    fix = _result(
        "ruff-format",
        [_issue(a, rule="format", engine=EngineKind.FORMAT)],
        phase=EnginePhase.FIX,
        kind=EngineKind.FORMAT,
        fixed=[FixRecord(file=a, rule_id="format")],
    )
    check = _result(
        "ruff-format",
        [_issue(a, rule="format", engine=EngineKind.FORMAT)],
        kind=EngineKind.FORMAT,
    )

    result = ResultAggregator().aggregate([fix, check])

    assert result.issues == []
    assert result.fixed_count == 1
    assert result.success


def test_file_fix_records_only_suppress_fix_phase_issues(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    fix = _result(
        "ruff",
        [_issue(a, rule="E501")],
        phase=EnginePhase.FIX,
        fixed=[FixRecord(file=a)],
    )
    check = _result("ruff", [_issue(a, rule="F401", line=4)])

    result = ResultAggregator().aggregate([fix, check])

    assert [issue.rule_id for issue in result.issues] == ["F401"]


def test_fix_records_do_not_leak_across_engines(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    formatter = _result(
        "ruff-format",
        [],
        phase=EnginePhase.FIX,
        kind=EngineKind.FORMAT,
        fixed=[FixRecord(file=a, rule_id="E1")],
    )
    lint = _result("ruff", [_issue(a, rule="E1")])

    result = ResultAggregator().aggregate([formatter, lint])

    assert [issue.rule_id for issue in result.issues] == ["E1"]


def test_issues_outside_scope_are_dropped(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    other = normalize_file(tmp_path / "other.py")

    result = ResultAggregator().aggregate([_result("ruff", [_issue(a), _issue(other)])], scope=[a])

    assert [issue.file for issue in result.issues] == [a]


def test_success_follows_fail_on_threshold(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    results = [_result("ruff", [_issue(a, severity=Severity.INFO)])]
    aggregator = ResultAggregator()

    assert aggregator.aggregate(results, fail_on=Severity.WARNING).success
    assert not aggregator.aggregate(results, fail_on=Severity.INFO).success


def test_cancelled_results_mark_the_run_unsuccessful(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")

    result = ResultAggregator().aggregate([_result("ruff", [], cancelled=True), _result("mypy", [_issue(a)])])

    assert result.cancelled
    assert not result.success
    assert len(result.issues) == 1
    assert not result.has_errors()


def test_statistics_count_by_engine_severity_and_file(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    b = normalize_file(tmp_path / "b.py")
    issues = [
        _issue(a, rule="E1", severity=Severity.ERROR),
        _issue(a, rule="W1"),
        _issue(b, rule="arg-type", engine=EngineKind.TYPE_CHECK, severity=Severity.ERROR),
    ]

    stats = ResultAggregator.statistics(issues)

    assert stats.total == 3
    assert stats.by_engine == {"lint": 2, "type-check": 1}
    assert stats.by_severity == {"error": 2, "warning": 1}
    assert stats.by_file == {a: 2, b: 1}


def test_filter_by_severity(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    issues = [_issue(a, severity=Severity.INFO), _issue(a, rule="E2", severity=Severity.ERROR)]

    assert [issue.rule_id for issue in ResultAggregator.filter_by_severity(issues, Severity.WARNING)] == ["E2"]


def test_merge_results_combines_batches_per_engine_and_phase(tmp_path: Path) -> None:
    a = normalize_file(tmp_path / "a.py")
    b = normalize_file(tmp_path / "b.py")
    first = _result("ruff", [_issue(a)])
    second = _result("ruff", [_issue(b)], cancelled=True)
    fix = _result("ruff", [], phase=EnginePhase.FIX, fixed=[FixRecord(file=a)])

    merged = ResultAggregator.merge_results([first, fix, second])

    assert [(result.engine, result.phase) for result in merged] == [
        ("ruff", EnginePhase.CHECK),
        ("ruff", EnginePhase.FIX),
    ]
    check = merged[0]
    assert [issue.file for issue in check.issues] == [a, b]
    assert check.cancelled
    assert not check.success
    assert first.issues == [_issue(a)]


def test_build_metrics_reports_disabled_engines_and_run_type() -> None:
    results = [
        EngineResult(engine="ruff", kind=EngineKind.LINT, success=True, duration=0.5, fixed_count=2),
        EngineResult(engine="ruff", kind=EngineKind.LINT, phase=EnginePhase.FIX, success=True, duration=0.25),
    ]

    metrics = ResultAggregator.build_metrics(
        results,
        duration=1.0,
        issue_count=0,
        warm_run=True,
        engines=["ruff", "mypy"],
    )
    cold = ResultAggregator.build_metrics([], duration=0.1, issue_count=0, warm_run=False)

    assert metrics.run_type == RUN_TYPE_WARM
    assert cold.run_type == RUN_TYPE_COLD
    assert metrics.engines["ruff"].enabled
    assert metrics.engines["ruff"].duration == 0.75
    assert metrics.engines["ruff"].fixed_count == 2
    assert not metrics.engines["mypy"].enabled


def test_correlation_ids_are_unique_and_well_formed() -> None:
    first = new_correlation_id()
    second = new_correlation_id()

    assert re.fullmatch(r"qc-\d+-[0-9a-f]{8}", first)
    assert first != second

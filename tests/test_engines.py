# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for the subprocess-backed engine adapters and their sessions."""

from __future__ import annotations

import json
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from fixqa.cancellation import CancellationToken
from fixqa.config import Config, EngineConfig
from fixqa.engines import EngineRegistry, MypyEngine, RuffFormatEngine, RuffLintEngine, default_registry
from fixqa.errors import ConfigError, EngineFailureError, OperationCancelledError, ToolMissingError
from fixqa.models import EnginePhase, normalize_file
from fixqa.process import CommandOptions

Responder = Callable[[list[str]], subprocess.CompletedProcess[str]]


class RecordingRunner:
    """Command runner double that records calls and delegates to a responder."""

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.calls: list[list[str]] = []

    def __call__(
        self,
        args: Sequence[str],
        options: CommandOptions,
        token: CancellationToken | None,
    ) -> subprocess.CompletedProcess[str]:
        command = list(args)
        self.calls.append(command)
        return self.responder(command)


def _files_after_separator(command: list[str]) -> list[str]:
    return command[command.index("--") + 1 :]


def _ruff_payload(files: Sequence[str], code: str = "F401") -> str:
    return json.dumps(
        [
            {
                "filename": file,
                "location": {"row": 1, "column": 1},
                "end_location": {"row": 1, "column": 10},
                "code": code,
                "message": "`os` imported but unused",
                "fix": None,
            }
            for file in files
        ]
    )


def _ruff_responder(command: list[str]) -> subprocess.CompletedProcess[str]:
    files = _files_after_separator(command)
    return subprocess.CompletedProcess(command, 1, stdout=_ruff_payload(files), stderr="")


def _write(tmp_path: Path, name: str, content: str = "import os\n") -> str:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return normalize_file(path)


def _lint_engine(tmp_path: Path, runner: RecordingRunner) -> RuffLintEngine:
    engine = RuffLintEngine(cache_root=tmp_path / "cache", cwd=tmp_path, runner=runner)
    engine.prepare_session("fp-1")
    return engine


def test_ruff_check_builds_json_command_and_parses_issues(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")
    runner = RecordingRunner(_ruff_responder)
    engine = _lint_engine(tmp_path, runner)

    result = engine.check([a], CancellationToken())

    assert runner.calls == [["ruff", "check", "--output-format", "json", "--", a]]
    assert result.success
    assert result.phase is EnginePhase.CHECK
    assert [(issue.file, issue.rule_id) for issue in result.issues] == [(a, "F401")]


def test_unchanged_files_are_served_from_the_session(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")
    b = _write(tmp_path, "b.py")
    runner = RecordingRunner(_ruff_responder)
    engine = _lint_engine(tmp_path, runner)

    first = engine.check([a, b], CancellationToken())
    second = engine.check([a, b], CancellationToken())

    assert len(runner.calls) == 1
    assert second.issues == first.issues
    assert engine.session is not None
    assert engine.session.reuse_count == 1


def test_only_changed_files_are_reanalysed(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")
    b = _write(tmp_path, "b.py")
    runner = RecordingRunner(_ruff_responder)
    engine = _lint_engine(tmp_path, runner)
    engine.check([a, b], CancellationToken())

    Path(b).write_text("import sys\n", encoding="utf-8")
    result = engine.check([a, b], CancellationToken())

    assert _files_after_separator(runner.calls[-1]) == [b]
    assert sorted(issue.file for issue in result.issues) == sorted([a, b])


def test_fingerprint_change_drops_the_session(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")
    runner = RecordingRunner(_ruff_responder)
    engine = _lint_engine(tmp_path, runner)
    engine.check([a], CancellationToken())

    engine.prepare_session("fp-2")
    engine.check([a], CancellationToken())

    assert len(runner.calls) == 2
    assert engine.session is not None
    assert engine.session.fingerprint == "fp-2"


def test_reset_session_forces_a_fresh_run(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")
    runner = RecordingRunner(_ruff_responder)
    engine = _lint_engine(tmp_path, runner)
    engine.check([a], CancellationToken())

    engine.reset_session()
    engine.check([a], CancellationToken())

    assert len(runner.calls) == 2


def test_unexpected_exit_status_raises_engine_failure(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")
    runner = RecordingRunner(
        lambda command: subprocess.CompletedProcess(command, 2, stdout="", stderr="ruff failed\nerror: bad config")
    )
    engine = _lint_engine(tmp_path, runner)

    with pytest.raises(EngineFailureError) as excinfo:
        engine.check([a], CancellationToken())
    assert "error: bad config" in str(excinfo.value)
    assert excinfo.value.returncode == 2


def test_missing_tool_propagates(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")

    def responder(command: list[str]) -> subprocess.CompletedProcess[str]:
        raise ToolMissingError("ruff", "executable was not found on PATH")

    engine = _lint_engine(tmp_path, RecordingRunner(responder))

    with pytest.raises(ToolMissingError):
        engine.check([a], CancellationToken())


def test_cancelled_check_returns_partial_result(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")
    b = _write(tmp_path, "b.py")
    cancel = {"now": False}

    def responder(command: list[str]) -> subprocess.CompletedProcess[str]:
        if cancel["now"]:
            raise OperationCancelledError("timeout")
        return _ruff_responder(command)

    runner = RecordingRunner(responder)
    engine = _lint_engine(tmp_path, runner)
    engine.check([a], CancellationToken())
    cancel["now"] = True

    result = engine.check([a, b], CancellationToken())

    assert result.cancelled
    assert not result.success
    assert [issue.file for issue in result.issues] == [a]


def test_format_fix_detects_modified_files_and_feeds_the_check(tmp_path: Path) -> None:
    messy = _write(tmp_path, "messy.py", "x=1\n")
    clean = _write(tmp_path, "clean.py", "x = 1\n")

    def responder(command: list[str]) -> subprocess.CompletedProcess[str]:
        if "--check" in command:
            return subprocess.CompletedProcess(command, 0, stdout="", stderr="")
        Path(messy).write_text("x = 1\n", encoding="utf-8")
        return subprocess.CompletedProcess(command, 0, stdout="1 file reformatted, 1 file left unchanged\n", stderr="")

    runner = RecordingRunner(responder)
    engine = RuffFormatEngine(cache_root=tmp_path / "cache", cwd=tmp_path, runner=runner)
    engine.prepare_session("fp")

    fixed = engine.fix([messy, clean], CancellationToken())
    checked = engine.check([messy, clean], CancellationToken())

    assert runner.calls == [["ruff", "format", "--", messy, clean]]
    assert fixed.phase is EnginePhase.FIX
    assert fixed.modified_files == [messy]
    assert [(record.file, record.rule_id) for record in fixed.fixed] == [(messy, "format")]
    assert fixed.fixed_count == 1
    assert checked.issues == []


def test_format_check_accepts_parse_failures(tmp_path: Path) -> None:
    broken = _write(tmp_path, "broken.py", "def (:\n")
    runner = RecordingRunner(
        lambda command: subprocess.CompletedProcess(
            command,
            2,
            stdout="",
            stderr=f"error: Failed to parse {broken}:1:5: Expected an identifier\n",
        )
    )
    engine = RuffFormatEngine(cache_root=tmp_path / "cache", cwd=tmp_path, runner=runner)
    engine.prepare_session("fp")

    result = engine.check([broken], CancellationToken())

    assert runner.calls[0][:3] == ["ruff", "format", "--check"]
    assert [(issue.file, issue.line, issue.col) for issue in result.issues] == [(broken, 1, 5)]


def test_format_check_reports_files_in_diagnostic_output(tmp_path: Path) -> None:
    messy = _write(tmp_path, "u.py", "x=1\n")
    runner = RecordingRunner(
        lambda command: subprocess.CompletedProcess(
            command,
            1,
            stdout="unformatted: File would be reformatted\n --> u.py:1:1\n\n1 file would be reformatted\n",
            stderr="",
        )
    )
    engine = RuffFormatEngine(cache_root=tmp_path / "cache", cwd=tmp_path, runner=runner)
    engine.prepare_session("fp")

    result = engine.check([messy], CancellationToken())

    assert result.success
    assert [(issue.file, issue.rule_id) for issue in result.issues] == [(messy, "format")]


def test_format_check_failure_without_recognised_files_is_not_clean(tmp_path: Path) -> None:
    messy = _write(tmp_path, "u.py", "x=1\n")
    runner = RecordingRunner(
        lambda command: subprocess.CompletedProcess(command, 1, stdout="u.py: needs formatting\n", stderr="")
    )
    engine = RuffFormatEngine(cache_root=tmp_path / "cache", cwd=tmp_path, runner=runner)
    engine.prepare_session("fp")

    with pytest.raises(EngineFailureError) as excinfo:
        engine.check([messy], CancellationToken())

    assert excinfo.value.returncode == 1


def test_lint_fix_reports_file_level_records(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py", "import os\nimport sys\nprint(sys)\n")

    def responder(command: list[str]) -> subprocess.CompletedProcess[str]:
        Path(a).write_text("import sys\nprint(sys)\n", encoding="utf-8")
        return subprocess.CompletedProcess(command, 0, stdout="[]", stderr="")

    runner = RecordingRunner(responder)
    engine = _lint_engine(tmp_path, runner)

    result = engine.fix([a], CancellationToken())

    assert runner.calls[0][:3] == ["ruff", "check", "--fix"]
    assert result.modified_files == [a]
    assert [(record.file, record.rule_id) for record in result.fixed] == [(a, None)]
    assert not engine.precise_fix_reporting


def test_mypy_reruns_whole_set_when_files_change(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py", "x: int = 1\n")
    b = _write(tmp_path, "b.py", "y: int = 2\n")
    c = _write(tmp_path, "c.py", "z: int = 3\n")

    def responder(command: list[str]) -> subprocess.CompletedProcess[str]:
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    runner = RecordingRunner(responder)
    engine = MypyEngine(cache_root=tmp_path / "cache", cwd=tmp_path, runner=runner)
    engine.prepare_session("fp")

    engine.check([a, b], CancellationToken())
    engine.check([a, b], CancellationToken())
    Path(b).write_text("y: int = 5\n", encoding="utf-8")
    engine.check([a, b], CancellationToken())
    engine.check([a, b, c], CancellationToken())

    assert len(runner.calls) == 3
    assert runner.calls[1][-2:] == [a, b]
    assert runner.calls[2][-3:] == [a, b, c]
    assert engine.session is not None
    cache_dir = runner.calls[0][runner.calls[0].index("--cache-dir") + 1]
    assert Path(cache_dir).is_relative_to(engine.session.directory.parent)
    assert "-O" in runner.calls[0]


def test_mypy_sessions_survive_batched_runs(tmp_path: Path) -> None:
    files = [_write(tmp_path, f"m{index}.py", f"v{index}: int = {index}\n") for index in range(4)]
    runner = RecordingRunner(lambda command: subprocess.CompletedProcess(command, 0, stdout="", stderr=""))
    engine = MypyEngine(cache_root=tmp_path / "cache", cwd=tmp_path, runner=runner)

    for _ in range(2):
        engine.prepare_session("fp")
        engine.check(files[:2], CancellationToken())
        engine.check(files[2:], CancellationToken())

    assert len(runner.calls) == 2
    assert [call[-2:] for call in runner.calls] == [files[:2], files[2:]]

    engine.prepare_session("fp-2")
    engine.check(files[:2], CancellationToken())

    assert len(runner.calls) == 3


def test_mypy_cannot_fix(tmp_path: Path) -> None:
    runner = RecordingRunner(lambda command: subprocess.CompletedProcess(command, 0))
    engine = MypyEngine(cache_root=tmp_path, runner=runner)

    with pytest.raises(NotImplementedError):
        engine.fix([], CancellationToken())


def test_engine_settings_change_executable_and_arguments(tmp_path: Path) -> None:
    a = _write(tmp_path, "a.py")
    runner = RecordingRunner(_ruff_responder)
    settings = EngineConfig(executable="/opt/ruff", args=["--select", "F"])
    engine = RuffLintEngine(settings=settings, cache_root=tmp_path, cwd=tmp_path, runner=runner)

    engine.check([a], CancellationToken())

    assert runner.calls[0] == ["/opt/ruff", "check", "--output-format", "json", "--select", "F", "--", a]


def test_default_registry_follows_enabled_engines(tmp_path: Path) -> None:
    config = Config()
    config.engines["mypy"].enabled = False

    registry = default_registry(config, cwd=tmp_path)

    assert [engine.name for engine in registry] == ["ruff", "ruff-format"]
    assert "ruff" in registry
    assert len(registry) == 2


def test_default_registry_rejects_unknown_engines(tmp_path: Path) -> None:
    config = Config()
    config.engines["pylint"] = EngineConfig()

    with pytest.raises(ConfigError):
        default_registry(config, cwd=tmp_path)


def test_registry_rejects_duplicate_names(tmp_path: Path) -> None:
    registry = EngineRegistry()
    registry.register(RuffLintEngine(cache_root=tmp_path))

    with pytest.raises(ConfigError):
        registry.register(RuffLintEngine(cache_root=tmp_path))
    assert registry.get("ruff") is not None

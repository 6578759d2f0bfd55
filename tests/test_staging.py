# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for staging fixed files in git."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

import pytest

from fixqa.models import normalize_file
from fixqa.staging import GitStagingAdapter


class FakeGit:
    """Git runner double answering the commands the adapter issues."""

    def __init__(
        self,
        *,
        inside: bool = True,
        failing: Sequence[str] = (),
        toplevel: Path | None = None,
        cached: str = "",
    ) -> None:
        self.inside = inside
        self.failing = set(failing)
        self.toplevel = toplevel
        self.cached = cached
        self.calls: list[list[str]] = []

    def __call__(self, cmd: Sequence[str], root: Path) -> subprocess.CompletedProcess[str]:
        args = list(cmd)
        self.calls.append(args)
        if args[1:3] == ["rev-parse", "--is-inside-work-tree"]:
            if self.inside:
                return subprocess.CompletedProcess(args, 0, stdout="true\n", stderr="")
            return subprocess.CompletedProcess(args, 128, stdout="", stderr="fatal: not a git repository")
        if args[1:3] == ["rev-parse", "--show-toplevel"]:
            if self.toplevel is None:
                return subprocess.CompletedProcess(args, 128, stdout="", stderr="fatal: not a git repository")
            return subprocess.CompletedProcess(args, 0, stdout=f"{self.toplevel}\n", stderr="")
        if args[1] == "add":
            if args[-1] in self.failing:
                return subprocess.CompletedProcess(args, 128, stdout="", stderr="fatal: Unable to create index.lock")
            return subprocess.CompletedProcess(args, 0, stdout="", stderr="")
        if args[1] == "diff":
            return subprocess.CompletedProcess(args, 0, stdout=self.cached, stderr="")
        raise AssertionError(f"unexpected git command: {args}")


def _paths(tmp_path: Path, *names: str) -> list[str]:
    return [normalize_file(tmp_path / name) for name in names]


def test_stage_adds_files_one_at_a_time(tmp_path: Path) -> None:
    files = _paths(tmp_path, "a.py", "b.py")
    git = FakeGit()

    report = GitStagingAdapter(tmp_path, runner=git).stage(files)

    assert report.staged == files
    assert report.complete
    assert git.calls[1:] == [["git", "add", "--", files[0]], ["git", "add", "--", files[1]]]


def test_failed_file_does_not_block_the_others(tmp_path: Path) -> None:
    a, b, c = _paths(tmp_path, "a.py", "b.py", "c.py")
    git = FakeGit(failing=[b])

    report = GitStagingAdapter(tmp_path, runner=git).stage([a, b, c])

    assert report.staged == [a, c]
    assert not report.complete
    assert [(warning.file, warning.message) for warning in report.warnings] == [
        (b, "fatal: Unable to create index.lock"),
    ]


def test_outside_a_repository_every_file_gets_a_warning(tmp_path: Path) -> None:
    files = _paths(tmp_path, "a.py", "b.py")
    git = FakeGit(inside=False)

    report = GitStagingAdapter(tmp_path, runner=git).stage(files)

    assert report.staged == []
    assert [warning.file for warning in report.warnings] == files
    assert all(call[1] != "add" for call in git.calls)


def test_stage_without_files_runs_no_git_commands(tmp_path: Path) -> None:
    git = FakeGit()

    report = GitStagingAdapter(tmp_path, runner=git).stage([])

    assert report.complete
    assert git.calls == []


def test_staged_files_lists_existing_paths(tmp_path: Path) -> None:
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "mod.py").write_text("x = 1\n", encoding="utf-8")
    (tmp_path / "README.md").write_text("docs\n", encoding="utf-8")
    git = FakeGit(toplevel=tmp_path, cached="pkg/mod.py\nREADME.md\ngone.py\n\n")

    staged = GitStagingAdapter(tmp_path, runner=git).staged_files()

    assert staged == _paths(tmp_path, "pkg/mod.py", "README.md")
    assert ["git", "diff", "--cached", "--name-only", "--diff-filter=ACMR"] in git.calls


def test_staged_files_outside_repository_is_empty(tmp_path: Path) -> None:
    assert GitStagingAdapter(tmp_path, runner=FakeGit()).staged_files() == []


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_stage_against_a_real_repository(tmp_path: Path) -> None:
    subprocess.run(["git", "init", "-q"], cwd=tmp_path, check=True)
    target = tmp_path / "module.py"
    target.write_text("value = 1\n", encoding="utf-8")
    adapter = GitStagingAdapter(tmp_path)

    report = adapter.stage([str(target)])

    assert report.staged == [normalize_file(target)]
    assert adapter.staged_files() == [normalize_file(target)]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Git staging of files modified by the fix phase."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from subprocess import CompletedProcess

from .errors import ToolMissingError
from .models import StagingWarning, normalize_file
from .process import CommandOptions, run_command

LOGGER = logging.getLogger(__name__)

GitRunner = Callable[[Sequence[str], Path], CompletedProcess[str]]


def _default_runner(cmd: Sequence[str], root: Path) -> CompletedProcess[str]:
    """Execute ``cmd`` inside ``root``.

    Args:
        cmd: Git command to execute.
        root: Directory the command runs in.

    Returns:
        CompletedProcess[str]: Completed process; a missing git binary yields
        exit status 127 with the lookup error on stderr.
    """

    try:
        return run_command(cmd, options=CommandOptions(cwd=root))
    except ToolMissingError as exc:
        return subprocess.CompletedProcess(args=list(cmd), returncode=127, stdout="", stderr=str(exc))


def _failure_detail(completed: CompletedProcess[str]) -> str:
    lines = (completed.stderr or completed.stdout or "").strip().splitlines()
    return lines[-1] if lines else f"git exited with status {completed.returncode}"


@dataclass(slots=True)
class StagingReport:
    """Outcome of one staging pass."""

    staged: list[str] = field(default_factory=list)
    warnings: list[StagingWarning] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """Return whether every requested file was staged."""

        return not self.warnings


class GitStagingAdapter:
    """Stage files one at a time so a failure only affects its own file.

    The adapter is the only component that mutates the git index. Calls are
    issued sequentially to avoid index lock contention.
    """

    def __init__(self, root: Path | None = None, *, runner: GitRunner | None = None) -> None:
        """Create the adapter.

        Args:
            root: Directory git commands run in; defaults to the process cwd.
            runner: Optional git command runner, injectable for tests.
        """

        self.root = root or Path.cwd()
        self._runner = runner or _default_runner

    def stage(self, files: Sequence[str]) -> StagingReport:
        """Stage each of ``files`` with ``git add``.

        Args:
            files: Files modified by the fix phase.

        Returns:
            StagingReport: Staged files and one warning per file that failed.
        """

        report = StagingReport()
        targets = list(dict.fromkeys(normalize_file(file) for file in files))
        if not targets:
            return report
        inside = self._runner(["git", "rev-parse", "--is-inside-work-tree"], self.root)
        if inside.returncode != 0 or inside.stdout.strip() != "true":
            detail = _failure_detail(inside) if inside.returncode != 0 else "not inside a git work tree"
            LOGGER.debug("staging skipped: %s", detail)
            report.warnings.extend(StagingWarning(file=file, message=detail) for file in targets)
            return report
        for file in targets:
            completed = self._runner(["git", "add", "--", file], self.root)
            if completed.returncode == 0:
                report.staged.append(file)
            else:
                report.warnings.append(StagingWarning(file=file, message=_failure_detail(completed)))
        return report

    def staged_files(self) -> list[str]:
        """Return the files currently staged in the index.

        Deleted paths are excluded since there is nothing to analyse.

        Returns:
            list[str]: Absolute paths of staged files that exist on disk.
        """

        toplevel = self._runner(["git", "rev-parse", "--show-toplevel"], self.root)
        if toplevel.returncode != 0:
            return []
        base = Path(toplevel.stdout.strip())
        listed = self._runner(["git", "diff", "--cached", "--name-only", "--diff-filter=ACMR"], self.root)
        if listed.returncode != 0:
            return []
        staged: list[str] = []
        for line in listed.stdout.splitlines():
            entry = line.strip()
            if not entry:
                continue
            candidate = base / entry
            if candidate.exists():
                staged.append(normalize_file(candidate))
        return staged


__all__ = ["GitRunner", "GitStagingAdapter", "StagingReport"]

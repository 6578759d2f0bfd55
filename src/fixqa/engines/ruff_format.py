# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Ruff formatter adapter."""

from __future__ import annotations

from collections.abc import Sequence
from subprocess import CompletedProcess
from typing import ClassVar, Final

from ..config import RUFF_FORMAT_ENGINE
from ..errors import EngineFailureError
from ..models import EngineKind, FixRecord, Issue
from .base import ToolEngine
from .parsers import FORMAT_RULE, parse_ruff_format
from .session import EngineSession

_PARSE_FAILURE_MARKER: Final[str] = "error: Failed to"


class RuffFormatEngine(ToolEngine):
    """Check formatting with ``ruff format --check`` and rewrite files with ``ruff format``.

    Every file the formatter rewrites is reported as a ``format`` fix, which
    makes its fix reporting precise.
    """

    default_name: ClassVar[str] = RUFF_FORMAT_ENGINE
    default_executable: ClassVar[str] = "ruff"
    kind = EngineKind.FORMAT
    supports_fix: ClassVar[bool] = True
    precise_fix_reporting: ClassVar[bool] = True

    def check_command(self, files: Sequence[str], session: EngineSession) -> list[str]:
        del session
        return [self.executable, "format", "--check", *self.settings.args, "--", *files]

    def fix_command(self, files: Sequence[str], session: EngineSession) -> list[str]:
        del session
        return [self.executable, "format", *self.settings.args, "--", *files]

    def parse_check(self, completed: CompletedProcess[str]) -> list[Issue]:
        issues = self.parse_fix(completed)
        if completed.returncode == 1 and not any(issue.rule_id == FORMAT_RULE for issue in issues):
            # Exit status 1 means at least one file would be reformatted.
            raise EngineFailureError(
                self.name,
                "reported unformatted files in an unrecognised output format",
                returncode=completed.returncode,
            )
        return issues

    def parse_fix(self, completed: CompletedProcess[str]) -> list[Issue]:
        return parse_ruff_format(completed.stdout, completed.stderr, cwd=self.working_directory, tool=self.name)

    def fix_records(self, modified: Sequence[str]) -> list[FixRecord]:
        return [FixRecord(file=file, rule_id=FORMAT_RULE) for file in modified]

    def accepts(self, completed: CompletedProcess[str]) -> bool:
        # Exit status 2 also covers files that failed to parse; those are reported as issues.
        if completed.returncode == 2:
            return _PARSE_FAILURE_MARKER in (completed.stderr or "")
        return super().accepts(completed)


__all__ = ["RuffFormatEngine"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Ruff lint adapter."""

from __future__ import annotations

from collections.abc import Sequence
from subprocess import CompletedProcess
from typing import ClassVar

from ..config import RUFF_ENGINE
from ..models import EngineKind, Issue
from .base import ToolEngine
from .parsers import parse_ruff
from .session import EngineSession


class RuffLintEngine(ToolEngine):
    """Run ``ruff check`` and apply its safe fixes with ``--fix``.

    Ruff's JSON output lists the violations left after fixing but not the ones
    it fixed, so fix reporting is file-level only and the check phase re-reads
    the post-fix state.
    """

    default_name: ClassVar[str] = RUFF_ENGINE
    default_executable: ClassVar[str] = "ruff"
    kind = EngineKind.LINT
    supports_fix: ClassVar[bool] = True
    precise_fix_reporting: ClassVar[bool] = False

    def check_command(self, files: Sequence[str], session: EngineSession) -> list[str]:
        del session
        return [self.executable, "check", "--output-format", "json", *self.settings.args, "--", *files]

    def fix_command(self, files: Sequence[str], session: EngineSession) -> list[str]:
        del session
        return [self.executable, "check", "--fix", "--output-format", "json", *self.settings.args, "--", *files]

    def parse_check(self, completed: CompletedProcess[str]) -> list[Issue]:
        return parse_ruff(completed.stdout, cwd=self.working_directory, tool=self.name)


__all__ = ["RuffLintEngine"]

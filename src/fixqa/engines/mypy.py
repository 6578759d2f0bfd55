# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""mypy type-check adapter."""

from __future__ import annotations

from collections.abc import Sequence
from subprocess import CompletedProcess
from typing import ClassVar

from ..config import MYPY_ENGINE
from ..models import EngineKind, Issue
from .base import ToolEngine
from .parsers import parse_mypy
from .session import EngineSession


class MypyEngine(ToolEngine):
    """Run mypy with its incremental cache stored inside the session directory.

    mypy analyses the whole program, so each checked file set keeps its own
    session; unchanged contents reuse the cached result without running mypy.
    """

    default_name: ClassVar[str] = MYPY_ENGINE
    default_executable: ClassVar[str] = "mypy"
    kind = EngineKind.TYPE_CHECK
    per_file: ClassVar[bool] = False

    def check_command(self, files: Sequence[str], session: EngineSession) -> list[str]:
        return [
            self.executable,
            "-O",
            "json",
            "--incremental",
            "--cache-dir",
            str(session.directory / "mypy"),
            "--show-column-numbers",
            "--no-color-output",
            "--no-error-summary",
            *self.settings.args,
            *files,
        ]

    def parse_check(self, completed: CompletedProcess[str]) -> list[Issue]:
        return parse_mypy(completed.stdout, cwd=self.working_directory, tool=self.name)


__all__ = ["MypyEngine"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Engine adapter interface and the subprocess-backed adapter base class."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from pathlib import Path
from subprocess import CompletedProcess
from typing import ClassVar, Final

from ..cancellation import CancellationToken
from ..config import EngineConfig
from ..errors import EngineFailureError, OperationCancelledError
from ..models import EngineKind, EnginePhase, EngineResult, FixRecord, Issue, normalize_file
from ..process import CommandOptions, run_command
from .session import EngineSession, fingerprint_key, snapshot

LOGGER = logging.getLogger(__name__)

CommandRunner = Callable[[Sequence[str], CommandOptions, CancellationToken | None], CompletedProcess[str]]

_DEFAULT_CACHE_ROOT: Final[Path] = Path(".fixqa-cache")
_MAX_PROGRAM_SESSIONS: Final[int] = 32


def default_runner(
    args: Sequence[str],
    options: CommandOptions,
    token: CancellationToken | None,
) -> CompletedProcess[str]:
    """Run ``args`` through :func:`fixqa.process.run_command`."""

    return run_command(args, options=options, token=token)


class Engine(ABC):
    """Uniform interface over one external analysis tool.

    Engines own their incremental session state. ``check`` never modifies
    files; ``fix`` applies safe fixes in place and reports what it changed.
    Missing tooling is signalled with :class:`~fixqa.errors.ToolMissingError`.
    """

    name: str
    kind: EngineKind
    supports_fix: ClassVar[bool] = False
    precise_fix_reporting: ClassVar[bool] = False

    @abstractmethod
    def check(self, files: Sequence[str], token: CancellationToken) -> EngineResult:
        """Analyse ``files`` without modifying them.

        Args:
            files: Absolute file paths to analyse.
            token: Cancellation token observed at engine checkpoints.

        Returns:
            EngineResult: Issues found in ``files``.
        """

    def fix(self, files: Sequence[str], token: CancellationToken) -> EngineResult:
        """Apply safe fixes to ``files`` and report remaining issues.

        Args:
            files: Absolute file paths to fix in place.
            token: Cancellation token observed at engine checkpoints.

        Returns:
            EngineResult: Remaining issues, modified files and fix records.

        Raises:
            NotImplementedError: If the engine cannot fix.
        """

        raise NotImplementedError(f"{self.name} does not support fixing")

    def prepare_session(self, fingerprint: str) -> None:
        """Bind the engine to the configuration ``fingerprint`` for the next calls."""

        del fingerprint

    def reset_session(self) -> None:
        """Drop any incremental state held by the engine."""


class ToolEngine(Engine):
    """Engine adapter driving an external command-line tool.

    Subclasses describe how to build the check/fix command lines and how to
    translate native output. This base class handles session reuse, content
    digest snapshots, modified-file detection and exit status evaluation.
    """

    default_name: ClassVar[str]
    default_executable: ClassVar[str]
    ok_returncodes: ClassVar[frozenset[int]] = frozenset({0, 1})
    # Whole-program tools re-run over the complete file set; sessions are kept per file set.
    per_file: ClassVar[bool] = True

    def __init__(
        self,
        *,
        name: str | None = None,
        settings: EngineConfig | None = None,
        cache_root: Path | None = None,
        cwd: Path | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        """Create the adapter.

        Args:
            name: Adapter name; defaults to the class-level ``default_name``.
            settings: Per-engine configuration (executable and extra arguments).
            cache_root: Root directory for on-disk session caches.
            cwd: Working directory for tool invocations; defaults to the process cwd.
            runner: Subprocess runner, injectable for tests.
        """

        self.name = name or self.default_name
        self.settings = settings or EngineConfig()
        self.cache_root = self.settings.cache_dir or cache_root or _DEFAULT_CACHE_ROOT
        self.cwd = cwd
        self._runner = runner or default_runner
        self._fingerprint = ""
        self._session: EngineSession | None = None
        self._program_sessions: dict[frozenset[str], EngineSession] = {}
        self._lock = threading.Lock()

    @property
    def session(self) -> EngineSession | None:
        """Return the current session, if one has been created."""

        return self._session

    @property
    def executable(self) -> str:
        """Return the executable used to invoke the tool."""

        return self.settings.executable or self.default_executable

    def prepare_session(self, fingerprint: str) -> None:
        with self._lock:
            self._fingerprint = fingerprint
            if self._session is not None and not self._session.matches(fingerprint):
                LOGGER.debug("%s: fingerprint changed, dropping session", self.name)
                self._session = None
                self._program_sessions.clear()

    def reset_session(self) -> None:
        with self._lock:
            self._session = None
            self._program_sessions.clear()

    def check(self, files: Sequence[str], token: CancellationToken) -> EngineResult:
        started = time.perf_counter()
        targets = _normalize(files)
        digests = snapshot(targets)
        session = self._session_for(targets)
        stale = session.stale_files(digests)
        if not stale:
            session.reuse_count += 1
            LOGGER.debug("%s: reusing session for %d file(s)", self.name, len(targets))
            return self._result(EnginePhase.CHECK, session.cached_issues(targets), started)

        run_files = stale if self.per_file else targets
        try:
            completed = self._invoke(self.check_command(run_files, session), token)
        except OperationCancelledError:
            stale_set = set(stale)
            fresh = [file for file in targets if file not in stale_set]
            return self._result(
                EnginePhase.CHECK,
                session.cached_issues(fresh),
                started,
                success=False,
                cancelled=True,
            )
        issues = self.parse_check(completed)
        session.record({file: digests[file] for file in run_files}, issues)
        return self._result(EnginePhase.CHECK, session.cached_issues(targets), started)

    def fix(self, files: Sequence[str], token: CancellationToken) -> EngineResult:
        if not self.supports_fix:
            return super().fix(files, token)
        started = time.perf_counter()
        targets = _normalize(files)
        session = self._session_for(targets)
        before = snapshot(targets)
        issues: list[Issue] = []
        cancelled = False
        try:
            completed = self._invoke(self.fix_command(targets, session), token)
            issues = self.parse_fix(completed)
        except OperationCancelledError:
            cancelled = True
        after = snapshot(targets)
        modified = [file for file in targets if before[file] != after[file]]
        session.forget(modified)
        if not cancelled:
            # Fix output describes the post-fix contents, so the check phase can reuse it.
            session.record(after, issues)
        records = self.fix_records(modified)
        in_scope = set(targets)
        return self._result(
            EnginePhase.FIX,
            [issue for issue in issues if issue.file in in_scope],
            started,
            success=not cancelled,
            cancelled=cancelled,
            modified_files=modified,
            fixed=records,
        )

    @abstractmethod
    def check_command(self, files: Sequence[str], session: EngineSession) -> list[str]:
        """Return the command line used to check ``files``."""

    def fix_command(self, files: Sequence[str], session: EngineSession) -> list[str]:
        """Return the command line used to fix ``files``."""

        raise NotImplementedError(f"{self.name} does not support fixing")

    @abstractmethod
    def parse_check(self, completed: CompletedProcess[str]) -> list[Issue]:
        """Translate check output into issues."""

    def parse_fix(self, completed: CompletedProcess[str]) -> list[Issue]:
        """Translate fix output into remaining issues."""

        return self.parse_check(completed)

    def fix_records(self, modified: Sequence[str]) -> list[FixRecord]:
        """Return fix records for ``modified`` files.

        The default only states that each file changed; engines that know the
        fixed rules override this.
        """

        return [FixRecord(file=file) for file in modified]

    def accepts(self, completed: CompletedProcess[str]) -> bool:
        """Return whether the exit status of ``completed`` denotes a usable run."""

        return completed.returncode in self.ok_returncodes

    @property
    def working_directory(self) -> Path:
        """Return the directory tool invocations run in."""

        return self.cwd or Path.cwd()

    def _invoke(self, command: Sequence[str], token: CancellationToken) -> CompletedProcess[str]:
        completed = self._runner(command, CommandOptions(cwd=self.cwd), token)
        if not self.accepts(completed):
            detail = (completed.stderr or completed.stdout or "").strip().splitlines()
            message = detail[-1] if detail else f"exited with status {completed.returncode}"
            raise EngineFailureError(self.name, message, returncode=completed.returncode)
        return completed

    def _session_for(self, targets: Sequence[str]) -> EngineSession:
        with self._lock:
            wanted = frozenset(targets)
            if not self.per_file:
                session = self._program_session(wanted)
            else:
                session = self._session
                if session is None or not session.matches(self._fingerprint):
                    session = self._new_session(wanted)
                elif session.files != wanted:
                    session.absorb(wanted)
            self._session = session
            return session

    def _program_session(self, files: frozenset[str]) -> EngineSession:
        # Batched runs check several file sets; each keeps its own whole-program session.
        session = self._program_sessions.get(files)
        if session is None or not session.matches(self._fingerprint):
            LOGGER.debug("%s: new session for %d file(s)", self.name, len(files))
            session = self._new_session(files)
            self._program_sessions[files] = session
            while len(self._program_sessions) > _MAX_PROGRAM_SESSIONS:
                self._program_sessions.pop(next(iter(self._program_sessions)))
        return session

    def _new_session(self, files: frozenset[str]) -> EngineSession:
        directory = self.cache_root / self.name / fingerprint_key(self._fingerprint)
        return EngineSession(fingerprint=self._fingerprint, files=files, directory=directory)

    def _result(
        self,
        phase: EnginePhase,
        issues: Sequence[Issue],
        started: float,
        *,
        success: bool = True,
        cancelled: bool = False,
        modified_files: Sequence[str] = (),
        fixed: Sequence[FixRecord] = (),
    ) -> EngineResult:
        return EngineResult(
            engine=self.name,
            kind=self.kind,
            phase=phase,
            success=success,
            issues=list(issues),
            duration=time.perf_counter() - started,
            fixable=self.supports_fix,
            fixed_count=len(fixed),
            modified_files=list(modified_files),
            fixed=list(fixed),
            cancelled=cancelled,
        )


def _normalize(files: Sequence[str]) -> list[str]:
    seen: dict[str, None] = {}
    for file in files:
        seen.setdefault(normalize_file(file), None)
    return list(seen)


__all__ = [
    "CommandRunner",
    "Engine",
    "ToolEngine",
    "default_runner",
]

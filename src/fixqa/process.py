# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Cancellation-aware wrapper around ``subprocess`` execution."""

from __future__ import annotations

import logging
import shutil

# Bandit: subprocess usage is intentional; arguments are passed as lists and
# ``shell=True`` is never used.
import subprocess  # nosec B404
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from subprocess import CompletedProcess
from typing import Final

from .cancellation import CancellationToken
from .errors import OperationCancelledError, ToolMissingError

LOGGER = logging.getLogger(__name__)

_DEFAULT_POLL_INTERVAL: Final[float] = 0.05
_KILL_WAIT: Final[float] = 1.0


@dataclass(slots=True)
class CommandOptions:
    """Command execution options."""

    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    discard_stdin: bool = True
    poll_interval: float = _DEFAULT_POLL_INTERVAL


def _normalize_args(args: Sequence[str]) -> list[str]:
    """Resolve the executable of ``args`` on ``PATH``.

    Args:
        args: Raw command arguments supplied by the caller.

    Returns:
        list[str]: Argument list whose head is an absolute executable path.

    Raises:
        ValueError: If no arguments are provided.
        ToolMissingError: If the executable cannot be resolved.
    """

    if not args:
        msg = "subprocess command requires at least one argument"
        raise ValueError(msg)

    head, *rest = args
    head_path = Path(head)
    if head_path.is_absolute():
        if not head_path.exists():
            raise ToolMissingError(head, "executable does not exist")
        return [str(head_path), *rest]

    resolved = shutil.which(head)
    if resolved is None:
        raise ToolMissingError(head, "executable was not found on PATH")
    return [resolved, *rest]


def run_command(
    args: Sequence[str],
    *,
    options: CommandOptions | None = None,
    token: CancellationToken | None = None,
) -> CompletedProcess[str]:
    """Execute ``args`` while observing ``token`` for cancellation.

    The process is polled every ``poll_interval`` seconds. When the token is
    cancelled the process is killed and :class:`OperationCancelledError` is raised.

    Args:
        args: Command and argument sequence to execute.
        options: Options configuring execution semantics.
        token: Optional cancellation token observed while the process runs.

    Returns:
        CompletedProcess[str]: Completed process with captured text output.

    Raises:
        ToolMissingError: If the executable cannot be resolved or started.
        OperationCancelledError: If ``token`` was cancelled before completion.
    """

    resolved = options or CommandOptions()
    normalized = _normalize_args(args)
    if token is not None:
        token.raise_if_cancelled()
    LOGGER.debug("running %s", " ".join(normalized))
    try:
        process = subprocess.Popen(  # nosec B603 - argument list, no shell
            normalized,
            cwd=str(resolved.cwd) if resolved.cwd is not None else None,
            env=dict(resolved.env) if resolved.env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL if resolved.discard_stdin else None,
            text=True,
        )
    except FileNotFoundError as exc:
        raise ToolMissingError(normalized[0], str(exc)) from exc

    with process:
        while True:
            try:
                stdout, stderr = process.communicate(timeout=resolved.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if token is not None and token.cancelled:
                    _terminate(process)
                    raise OperationCancelledError(token.reason) from None

    return subprocess.CompletedProcess(
        args=normalized,
        returncode=process.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
    )


def _terminate(process: subprocess.Popen[str]) -> None:
    process.kill()
    try:
        process.communicate(timeout=_KILL_WAIT)
    except subprocess.TimeoutExpired:
        LOGGER.warning("process %s did not exit after kill", process.pid)


__all__ = [
    "CommandOptions",
    "run_command",
]

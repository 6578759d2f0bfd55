# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Exception hierarchy shared by the orchestrator and engine adapters."""

from __future__ import annotations


class FixqaError(Exception):
    """Base class for errors raised by fixqa."""


class ConfigError(FixqaError):
    """Raised when configuration input is invalid or prevents the run from starting."""


class ToolMissingError(FixqaError):
    """Raised by an engine adapter when its underlying tool is not installed."""

    def __init__(self, tool: str, detail: str | None = None) -> None:
        """Initialise the error with the missing tool name.

        Args:
            tool: Name of the executable or module that could not be found.
            detail: Optional extra context describing the lookup failure.
        """

        message = f"{tool} is not available"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.tool = tool


class EngineFailureError(FixqaError):
    """Raised when an engine ran but failed for reasons unrelated to missing tooling."""

    def __init__(self, engine: str, message: str, *, returncode: int | None = None) -> None:
        """Initialise the error with engine metadata.

        Args:
            engine: Name of the engine adapter that failed.
            message: Human readable failure description.
            returncode: Exit status of the underlying process, when known.
        """

        super().__init__(f"{engine}: {message}")
        self.engine = engine
        self.returncode = returncode


class OperationCancelledError(FixqaError):
    """Raised at a cancellation checkpoint once the token has been cancelled."""

    def __init__(self, reason: str | None = None) -> None:
        """Initialise the error with the cancellation reason.

        Args:
            reason: Reason recorded on the cancelled token.
        """

        super().__init__(reason or "operation cancelled")
        self.reason = reason


__all__ = [
    "ConfigError",
    "EngineFailureError",
    "FixqaError",
    "OperationCancelledError",
    "ToolMissingError",
]

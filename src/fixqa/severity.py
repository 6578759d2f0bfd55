# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Severity related types and helpers."""

from __future__ import annotations

from enum import Enum
from typing import Final


class Severity(str, Enum):
    """Severity levels normalising different tool vocabularies."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Return the sort rank of the severity (errors first).

        Returns:
            int: ``0`` for errors, ``1`` for warnings and ``2`` for info.
        """

        return _SEVERITY_RANK[self]

    def at_least(self, threshold: Severity) -> bool:
        """Return whether the severity is as severe as ``threshold`` or more.

        Args:
            threshold: Minimum severity to compare against.

        Returns:
            bool: ``True`` when ``self`` ranks at or above ``threshold``.
        """

        return self.rank <= threshold.rank


_SEVERITY_RANK: Final[dict[Severity, int]] = {
    Severity.ERROR: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}

_ERROR_PREFIXES: Final[set[str]] = {"E", "F"}
_WARNING_PREFIX: Final[str] = "W"

_NATIVE_SEVERITIES: Final[dict[str, Severity]] = {
    "error": Severity.ERROR,
    "fatal": Severity.ERROR,
    "warning": Severity.WARNING,
    "warn": Severity.WARNING,
    "note": Severity.INFO,
    "notice": Severity.INFO,
    "info": Severity.INFO,
    "hint": Severity.INFO,
}


def severity_from_code(code: str | None, default: Severity = Severity.WARNING) -> Severity:
    """Infer severity from conventional code prefixes (e.g. E, W).

    Args:
        code: Diagnostic code emitted by the tool.
        default: Severity returned when the code does not match known prefixes.

    Returns:
        Severity: Severity derived from the code or ``default`` when unmatched.
    """
    if not code:
        return default
    head = code[0].upper()
    if head in _ERROR_PREFIXES:
        return Severity.ERROR
    if head == _WARNING_PREFIX:
        return Severity.WARNING
    return default


def severity_from_label(label: str | None, default: Severity = Severity.WARNING) -> Severity:
    """Map a tool-native severity label onto :class:`Severity`.

    Args:
        label: Severity text reported by the tool (``"note"``, ``"error"``...).
        default: Severity returned for unknown or missing labels.

    Returns:
        Severity: Normalised severity.
    """
    if not label:
        return default
    return _NATIVE_SEVERITIES.get(label.strip().lower(), default)


__all__ = ["Severity", "severity_from_code", "severity_from_label"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Translate native tool output into :class:`~fixqa.models.Issue` objects."""

from __future__ import annotations

import json
import re
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Final, cast

from ..models import EngineKind, Issue, JsonValue
from ..severity import Severity, severity_from_code, severity_from_label

FORMAT_RULE: Final[str] = "format"

_WOULD_REFORMAT: Final[re.Pattern[str]] = re.compile(r"^Would reformat:\s+(?P<path>.+?)\s*$")
_UNFORMATTED_HEADER: Final[re.Pattern[str]] = re.compile(r"^unformatted:\s")
_LOCATOR: Final[re.Pattern[str]] = re.compile(r"^-->\s+(?P<path>.+?):(?P<line>\d+):(?P<col>\d+)\s*$")
_CONCISE_UNFORMATTED: Final[re.Pattern[str]] = re.compile(
    r"^(?P<path>.+?):(?P<line>\d+):(?P<col>\d+):\s+unformatted:"
)
_FORMAT_ERROR: Final[re.Pattern[str]] = re.compile(
    r"^error:\s+Failed to (?:parse|format)\s+(?P<path>.+?):(?P<line>\d+):(?P<col>\d+):\s*(?P<message>.*)$"
)


def _load_json_stream(stdout: str) -> JsonValue:
    stdout = stdout.strip()
    if not stdout:
        return []
    try:
        return cast(JsonValue, json.loads(stdout))
    except json.JSONDecodeError:
        payload: list[JsonValue] = []
        for raw_line in stdout.splitlines():
            trimmed = raw_line.strip()
            if not trimmed:
                continue
            try:
                payload.append(cast(JsonValue, json.loads(trimmed)))
            except json.JSONDecodeError:
                continue
        return payload


def iter_dicts(value: JsonValue) -> Iterator[Mapping[str, JsonValue]]:
    """Yield mapping entries contained in ``value``.

    Args:
        value: Decoded JSON payload (a list of objects or a single object).

    Yields:
        Mapping[str, JsonValue]: Each object found at the top level.
    """

    if isinstance(value, Mapping):
        yield value
        return
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        for item in value:
            if isinstance(item, Mapping):
                yield item


def _mapping(value: JsonValue | None) -> Mapping[str, JsonValue]:
    return value if isinstance(value, Mapping) else {}


def _optional_str(value: JsonValue | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_int(value: JsonValue | None) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _resolve(path: str, cwd: Path) -> Path:
    candidate = Path(path)
    return candidate if candidate.is_absolute() else cwd / candidate


def parse_ruff(stdout: str, *, cwd: Path, tool: str = "ruff") -> list[Issue]:
    """Parse ``ruff check --output-format json`` output.

    Args:
        stdout: Raw standard output captured from Ruff.
        cwd: Directory Ruff ran in; relative paths are resolved against it.
        tool: Adapter name recorded on each issue.

    Returns:
        list[Issue]: Lint issues in emission order.
    """

    issues: list[Issue] = []
    for item in iter_dicts(_load_json_stream(stdout)):
        filename = _optional_str(item.get("filename"))
        if filename is None:
            continue
        location = _mapping(item.get("location"))
        end_location = _mapping(item.get("end_location"))
        fix = _mapping(item.get("fix"))
        code = _optional_str(item.get("code"))
        # Ruff reports syntax errors without a rule code.
        severity = severity_from_code(code, Severity.WARNING) if code else Severity.ERROR
        issues.append(
            Issue(
                engine=EngineKind.LINT,
                severity=severity,
                file=_resolve(filename, cwd),
                line=_optional_int(location.get("row")) or 1,
                col=_optional_int(location.get("column")) or 1,
                end_line=_optional_int(end_location.get("row")),
                end_col=_optional_int(end_location.get("column")),
                rule_id=code,
                message=_optional_str(item.get("message")) or "",
                suggestion=_optional_str(fix.get("message")),
                tool=tool,
            )
        )
    return issues


def parse_mypy(stdout: str, *, cwd: Path, tool: str = "mypy") -> list[Issue]:
    """Parse ``mypy -O json`` output (one JSON object per line).

    Notes are folded into ``suggestion`` fields by mypy itself (``hint``) and
    standalone notes are reported with info severity.

    Args:
        stdout: Raw standard output captured from mypy.
        cwd: Directory mypy ran in; relative paths are resolved against it.
        tool: Adapter name recorded on each issue.

    Returns:
        list[Issue]: Type-check issues in emission order.
    """

    issues: list[Issue] = []
    for item in iter_dicts(_load_json_stream(stdout)):
        filename = _optional_str(item.get("file"))
        if filename is None:
            continue
        line = _optional_int(item.get("line"))
        column = _optional_int(item.get("column"))
        issues.append(
            Issue(
                engine=EngineKind.TYPE_CHECK,
                severity=severity_from_label(_optional_str(item.get("severity")), Severity.ERROR),
                file=_resolve(filename, cwd),
                line=line if line is not None and line > 0 else 1,
                # mypy columns are zero-based.
                col=column + 1 if column is not None and column >= 0 else 1,
                rule_id=_optional_str(item.get("code")),
                message=_optional_str(item.get("message")) or "",
                suggestion=_optional_str(item.get("hint")),
                tool=tool,
            )
        )
    return issues


def _format_warning(path: str, cwd: Path, tool: str, *, line: int = 1, col: int = 1) -> Issue:
    return Issue(
        engine=EngineKind.FORMAT,
        severity=Severity.WARNING,
        file=_resolve(path, cwd),
        line=line,
        col=col,
        rule_id=FORMAT_RULE,
        message="File is not formatted",
        suggestion="Run the formatter to rewrite the file",
        tool=tool,
    )


def parse_ruff_format(stdout: str, stderr: str, *, cwd: Path, tool: str = "ruff-format") -> list[Issue]:
    """Parse ``ruff format`` output in check or write mode.

    Unformatted files are recognised in every layout Ruff has used: the legacy
    ``Would reformat: <path>`` line, the ``unformatted:`` diagnostic followed
    by a ``--> path:line:col`` locator, and the concise
    ``path:line:col: unformatted: ...`` line. Each becomes one ``format``
    warning per file. Parse failures on stderr become errors anchored at the
    reported location.

    Args:
        stdout: Raw standard output captured from Ruff.
        stderr: Raw standard error captured from Ruff.
        cwd: Directory Ruff ran in; relative paths are resolved against it.
        tool: Adapter name recorded on each issue.

    Returns:
        list[Issue]: Formatting issues in emission order.
    """

    issues: list[Issue] = []
    seen: set[str] = set()

    def add_warning(path: str, line: int = 1, col: int = 1) -> None:
        issue = _format_warning(path, cwd, tool, line=line, col=col)
        if issue.file not in seen:
            seen.add(issue.file)
            issues.append(issue)

    awaiting_locator = False
    for raw_line in stdout.splitlines():
        stripped = raw_line.strip()
        if (match := _WOULD_REFORMAT.match(stripped)) is not None:
            add_warning(match.group("path"))
        elif (match := _CONCISE_UNFORMATTED.match(stripped)) is not None:
            add_warning(match.group("path"), int(match.group("line")), int(match.group("col")))
        elif _UNFORMATTED_HEADER.match(stripped) is not None:
            awaiting_locator = True
        elif awaiting_locator and (match := _LOCATOR.match(stripped)) is not None:
            add_warning(match.group("path"), int(match.group("line")), int(match.group("col")))
            awaiting_locator = False
    for raw_line in stderr.splitlines():
        match = _FORMAT_ERROR.match(raw_line.strip())
        if match is None:
            continue
        issues.append(
            Issue(
                engine=EngineKind.FORMAT,
                severity=Severity.ERROR,
                file=_resolve(match.group("path"), cwd),
                line=int(match.group("line")),
                col=int(match.group("col")),
                message=match.group("message") or "File could not be formatted",
                tool=tool,
            )
        )
    return issues


__all__ = ["FORMAT_RULE", "iter_dicts", "parse_mypy", "parse_ruff", "parse_ruff_format"]

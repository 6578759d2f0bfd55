# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Human and machine renderings of a :class:`~fixqa.models.QualityCheckResult`."""

from __future__ import annotations

import json
from pathlib import Path

from rich import box
from rich.table import Table

from ..console import get_console_manager
from ..logging import fail, info, ok, section, warn
from ..models import QualityCheckResult
from ..severity import Severity

_SEVERITY_STYLES = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
}


def display_path(path: str, root: Path) -> str:
    """Return ``path`` relative to ``root`` when it lives underneath it."""

    try:
        return Path(path).relative_to(root.resolve()).as_posix()
    except ValueError:
        return path


def render_json(result: QualityCheckResult) -> str:
    """Return the JSON document describing ``result``."""

    return json.dumps(result.to_payload(), indent=2, sort_keys=False)


def render_result(result: QualityCheckResult, *, root: Path, use_emoji: bool, use_color: bool) -> None:
    """Print the issue table to stdout and the run summary to stderr.

    Args:
        result: Run result to render.
        root: Project root used to shorten file paths.
        use_emoji: Toggle emoji in diagnostics.
        use_color: Toggle ANSI colours.
    """

    if result.issues:
        section(f"Issues ({len(result.issues)})", use_color=use_color)
        console = get_console_manager().get(color=use_color, emoji=use_emoji, stderr=False)
        table = Table(box=box.ROUNDED, show_header=True, header_style="bold" if use_color else None)
        table.add_column("Severity")
        table.add_column("Location", style="cyan" if use_color else None)
        table.add_column("Engine", style="magenta" if use_color else None)
        table.add_column("Rule")
        table.add_column("Message")
        for issue in result.issues:
            table.add_row(
                issue.severity.value,
                f"{display_path(issue.file, root)}:{issue.line}:{issue.col}",
                issue.tool or issue.engine.value,
                issue.rule_id or "",
                issue.message,
                style=_SEVERITY_STYLES[issue.severity] if use_color else None,
            )
        console.print(table)

    color = None if use_color else False
    for name in result.unavailable_engines:
        warn(f"{name} was not available; its checks were skipped", use_emoji=use_emoji, use_color=color)
    if result.omitted_files:
        warn(f"{len(result.omitted_files)} file(s) were not analysed", use_emoji=use_emoji, use_color=color)
    for warning in result.staging_warnings:
        warn(
            f"could not stage {display_path(warning.file, root)}: {warning.message}",
            use_emoji=use_emoji,
            use_color=color,
        )
    if result.staged_files:
        info(f"Staged {len(result.staged_files)} fixed file(s)", use_emoji=use_emoji, use_color=color)

    summary = (
        f"{result.statistics.total} issue(s), {result.fixed_count} fix(es) applied "
        f"in {result.duration:.2f}s [{result.correlation_id}]"
    )
    if result.success:
        ok(f"Quality checks passed: {summary}", use_emoji=use_emoji, use_color=color)
    elif result.cancelled:
        fail(f"Quality checks cancelled: {summary}", use_emoji=use_emoji, use_color=color)
    else:
        fail(f"Quality checks failed: {summary}", use_emoji=use_emoji, use_color=color)


__all__ = ["display_path", "render_json", "render_result"]

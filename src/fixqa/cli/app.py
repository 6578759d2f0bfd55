# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Command line entry points: ``fixqa check`` and ``fixqa hook``."""

from __future__ import annotations

import hashlib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Final

import typer

from ..config import Config
from ..engines.registry import default_registry
from ..errors import ConfigError
from ..logging import fail, info
from ..models import QualityCheckResult
from ..orchestration.orchestrator import Orchestrator, RunRequest
from ..severity import Severity
from ..staging import GitStagingAdapter
from .rendering import render_json, render_result

EXIT_OK: Final[int] = 0
EXIT_FAILED: Final[int] = 1
EXIT_CONFIG: Final[int] = 2

# Tool configuration files that change engine behaviour and therefore the fingerprint.
_TOOL_CONFIG_FILES: Final[tuple[str, ...]] = (
    "pyproject.toml",
    "ruff.toml",
    ".ruff.toml",
    "mypy.ini",
    ".mypy.ini",
    "setup.cfg",
)

app = typer.Typer(
    name="fixqa",
    help="Fix-first code quality orchestrator.",
    no_args_is_help=True,
    add_completion=False,
)

ROOT_OPTION = Annotated[
    Path | None,
    typer.Option("--root", "-r", help="Project root (defaults to the current directory)."),
]
TIMEOUT_OPTION = Annotated[
    float | None,
    typer.Option("--timeout", "-t", min=0.01, help="Run budget in seconds."),
]
JOBS_OPTION = Annotated[
    int | None,
    typer.Option("--jobs", "-j", min=1, help="Maximum number of engines running concurrently."),
]
FIX_OPTION = Annotated[bool, typer.Option("--fix/--no-fix", help="Apply safe fixes before checking.")]
STAGE_OPTION = Annotated[bool, typer.Option("--stage/--no-stage", help="Stage files modified by fixes.")]
ENGINE_OPTION = Annotated[
    list[str] | None,
    typer.Option("--engine", "-e", help="Only run the named engine (repeatable)."),
]
FAIL_ON_OPTION = Annotated[
    Severity,
    typer.Option("--fail-on", case_sensitive=False, help="Lowest severity that fails the run."),
]
JSON_OPTION = Annotated[bool, typer.Option("--json", help="Print the result as JSON on stdout.")]
EMOJI_OPTION = Annotated[bool, typer.Option("--emoji/--no-emoji", help="Toggle emoji in output.")]
COLOR_OPTION = Annotated[bool, typer.Option("--color/--no-color", help="Toggle ANSI colour output.")]
QUIET_OPTION = Annotated[bool, typer.Option("--quiet", "-q", help="Suppress progress warnings.")]
WARM_OPTION = Annotated[
    bool,
    typer.Option("--warm-run", envvar="FIXQA_WARM_RUN", help="Label the run as warm in metrics."),
]
METRICS_OPTION = Annotated[
    bool,
    typer.Option("--metrics", envvar="FIXQA_TRACK_METRICS", help="Attach performance metrics to the result."),
]
DEBUG_OPTION = Annotated[bool, typer.Option("--debug", help="Print orchestration debug messages.")]


@dataclass(slots=True)
class RunOptions:
    """Normalised options shared by every command."""

    root: Path
    timeout: float | None = None
    jobs: int | None = None
    fix: bool = True
    stage: bool = True
    engines: tuple[str, ...] = ()
    fail_on: Severity = Severity.WARNING
    json_output: bool = False
    emoji: bool = True
    color: bool = True
    quiet: bool = False
    warm_run: bool = False
    metrics: bool = False
    debug: bool = False


def build_config(options: RunOptions) -> Config:
    """Translate CLI options into a :class:`~fixqa.config.Config`.

    Args:
        options: Normalised CLI options.

    Returns:
        Config: Configuration for the run.

    Raises:
        ConfigError: If ``--engine`` names an engine that is not configured.
    """

    config = Config()
    execution = config.execution
    if options.timeout is not None:
        execution.timeout = options.timeout
    if options.jobs is not None:
        execution.jobs = options.jobs
    execution.fix = options.fix
    execution.auto_stage = options.stage
    execution.fail_on = options.fail_on
    execution.warm_run = options.warm_run
    execution.track_metrics = options.metrics
    config.output.emoji = options.emoji
    config.output.color = options.color
    config.output.quiet = options.quiet or options.json_output
    if options.engines:
        unknown = sorted(set(options.engines) - set(config.engines))
        if unknown:
            raise ConfigError(f"unknown engine(s): {', '.join(unknown)}")
        for name, settings in config.engines.items():
            settings.enabled = name in options.engines
    return config


def engine_fingerprint(name: str, config: Config, root: Path) -> str:
    """Return a fingerprint of everything that affects ``name``'s output.

    Args:
        name: Engine name.
        config: Configuration holding the engine settings.
        root: Project root containing tool configuration files.

    Returns:
        str: Hex digest over the engine settings and tool configuration files.
    """

    hasher = hashlib.sha256()
    hasher.update(name.encode("utf-8"))
    hasher.update(config.engine(name).model_dump_json().encode("utf-8"))
    for filename in _TOOL_CONFIG_FILES:
        candidate = root / filename
        if candidate.is_file():
            hasher.update(filename.encode("utf-8"))
            hasher.update(candidate.read_bytes())
    return hasher.hexdigest()


def execute(
    files: list[Path],
    options: RunOptions,
    *,
    critical_files: list[str] | None = None,
) -> QualityCheckResult:
    """Run the orchestrator over ``files`` with ``options``.

    Args:
        files: Files to analyse.
        options: Normalised CLI options.
        critical_files: Files that must never be shed.

    Returns:
        QualityCheckResult: Result of the run.

    Raises:
        ConfigError: If the configuration cannot drive a run.
    """

    config = build_config(options)
    root = options.root
    registry = default_registry(config, cwd=root)
    debug_logger = _debug_printer(options) if options.debug else None
    orchestrator = Orchestrator(
        registry,
        config=config,
        stager=GitStagingAdapter(root),
        debug_logger=debug_logger,
    )
    fingerprints = {engine.name: engine_fingerprint(engine.name, config, root) for engine in registry}
    request = RunRequest(
        files=[str(path if path.is_absolute() else root / path) for path in files],
        root=root,
        fingerprints=fingerprints,
        critical_files=critical_files,
    )
    return orchestrator.run(request)


def _debug_printer(options: RunOptions) -> Callable[[str], None]:
    def _print(message: str) -> None:
        info(f"[debug] {message}", use_emoji=False, use_color=None if options.color else False)

    return _print


def _emit(result: QualityCheckResult, options: RunOptions) -> None:
    if options.json_output:
        typer.echo(render_json(result))
        return
    render_result(result, root=options.root, use_emoji=options.emoji, use_color=options.color)


def _run_or_exit(
    files: list[Path],
    options: RunOptions,
    *,
    critical_files: list[str] | None = None,
) -> QualityCheckResult:
    try:
        return execute(files, options, critical_files=critical_files)
    except ConfigError as exc:
        fail(str(exc), use_emoji=options.emoji, use_color=None if options.color else False)
        raise typer.Exit(code=EXIT_CONFIG) from exc


@app.command("check")
def check_command(
    paths: Annotated[list[Path], typer.Argument(help="Files to fix and check.")],
    root: ROOT_OPTION = None,
    timeout: TIMEOUT_OPTION = None,
    jobs: JOBS_OPTION = None,
    fix: FIX_OPTION = True,
    stage: STAGE_OPTION = True,
    engine: ENGINE_OPTION = None,
    fail_on: FAIL_ON_OPTION = Severity.WARNING,
    json_output: JSON_OPTION = False,
    emoji: EMOJI_OPTION = True,
    color: COLOR_OPTION = True,
    quiet: QUIET_OPTION = False,
    warm_run: WARM_OPTION = False,
    metrics: METRICS_OPTION = False,
    debug: DEBUG_OPTION = False,
) -> None:
    """Fix and check the given files, staging what the fixes changed.

    Raises:
        typer.Exit: Always raised with the run's exit status.
    """

    options = RunOptions(
        root=(root or Path.cwd()).resolve(),
        timeout=timeout,
        jobs=jobs,
        fix=fix,
        stage=stage,
        engines=tuple(engine or ()),
        fail_on=fail_on,
        json_output=json_output,
        emoji=emoji,
        color=color,
        quiet=quiet,
        warm_run=warm_run,
        metrics=metrics,
        debug=debug,
    )
    result = _run_or_exit(paths, options)
    _emit(result, options)
    raise typer.Exit(code=EXIT_OK if result.success else EXIT_FAILED)


@app.command("hook")
def hook_command(
    root: ROOT_OPTION = None,
    timeout: TIMEOUT_OPTION = None,
    jobs: JOBS_OPTION = None,
    fix: FIX_OPTION = True,
    stage: STAGE_OPTION = True,
    engine: ENGINE_OPTION = None,
    fail_on: FAIL_ON_OPTION = Severity.WARNING,
    json_output: JSON_OPTION = False,
    emoji: EMOJI_OPTION = True,
    color: COLOR_OPTION = True,
    quiet: QUIET_OPTION = False,
    warm_run: WARM_OPTION = False,
    metrics: METRICS_OPTION = False,
    debug: DEBUG_OPTION = False,
    strict_staging: Annotated[
        bool,
        typer.Option("--strict-staging", help="Fail when a fixed file could not be staged."),
    ] = False,
) -> None:
    """Pre-commit entry point: fix and check the staged Python files.

    Staged files are treated as critical and are never shed under memory pressure.

    Raises:
        typer.Exit: Always raised with the run's exit status.
    """

    options = RunOptions(
        root=(root or Path.cwd()).resolve(),
        timeout=timeout,
        jobs=jobs,
        fix=fix,
        stage=stage,
        engines=tuple(engine or ()),
        fail_on=fail_on,
        json_output=json_output,
        emoji=emoji,
        color=color,
        quiet=quiet,
        warm_run=warm_run,
        metrics=metrics,
        debug=debug,
    )
    staged = [file for file in GitStagingAdapter(options.root).staged_files() if file.endswith((".py", ".pyi"))]
    if not staged:
        if not options.quiet and not options.json_output:
            info("No staged Python files to check", use_emoji=options.emoji)
        raise typer.Exit(code=EXIT_OK)
    result = _run_or_exit([Path(file) for file in staged], options, critical_files=staged)
    _emit(result, options)
    failed = not result.success or (strict_staging and bool(result.staging_warnings))
    raise typer.Exit(code=EXIT_FAILED if failed else EXIT_OK)


def main() -> None:
    """Console script entry point."""

    app()


__all__ = ["RunOptions", "app", "build_config", "engine_fingerprint", "execute", "main"]

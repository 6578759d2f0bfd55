# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Core data models shared across the fixqa package."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .severity import Severity

JsonScalar: TypeAlias = str | int | float | bool | None
JsonValue: TypeAlias = JsonScalar | list["JsonValue"] | dict[str, "JsonValue"]
IssueKey: TypeAlias = tuple[str, str, int, int, str | None]


class EngineKind(str, Enum):
    """Closed set of engine kinds the orchestrator can drive."""

    TYPE_CHECK = "type-check"
    LINT = "lint"
    FORMAT = "format"


class EnginePhase(str, Enum):
    """Pipeline phase that produced an :class:`EngineResult`."""

    FIX = "fix"
    CHECK = "check"


def normalize_file(value: str | Path) -> str:
    """Return ``value`` as an absolute POSIX path string.

    Args:
        value: File path supplied by an engine or caller.

    Returns:
        str: Absolute, resolved path rendered with forward slashes.
    """

    raw = Path(value).expanduser()
    try:
        resolved = raw.resolve(strict=False)
    except (OSError, RuntimeError):
        resolved = raw.absolute()
    return resolved.as_posix()


class Issue(BaseModel):
    """One finding reported by one engine; immutable once produced."""

    model_config = ConfigDict(frozen=True)

    engine: EngineKind
    severity: Severity
    file: str
    line: int = Field(default=1, ge=0)
    col: int = Field(default=1, ge=0)
    end_line: int | None = None
    end_col: int | None = None
    rule_id: str | None = None
    message: str
    suggestion: str | None = None
    tool: str | None = None

    @field_validator("file", mode="before")
    @classmethod
    def _normalize_file(cls, value: str | Path) -> str:
        """Normalise issue file paths to absolute POSIX strings.

        Args:
            value: Original file path emitted by the engine.

        Returns:
            str: Absolute path string.
        """

        return normalize_file(value)

    @property
    def identity(self) -> IssueKey:
        """Return the deduplication key ``(engine, file, line, col, rule_id)``.

        Returns:
            IssueKey: Identity tuple for the issue.
        """

        return (self.engine.value, self.file, self.line, self.col, self.rule_id)


class FixRecord(BaseModel):
    """Describe one file (and optionally one rule) an engine fixed."""

    model_config = ConfigDict(frozen=True)

    file: str
    rule_id: str | None = None

    @field_validator("file", mode="before")
    @classmethod
    def _normalize_file(cls, value: str | Path) -> str:
        """Normalise the fixed file path.

        Args:
            value: File path reported by the engine.

        Returns:
            str: Absolute path string.
        """

        return normalize_file(value)


class EngineResult(BaseModel):
    """Output of one engine over one invocation."""

    model_config = ConfigDict(validate_assignment=True)

    engine: str
    kind: EngineKind
    phase: EnginePhase = EnginePhase.CHECK
    success: bool
    issues: list[Issue] = Field(default_factory=list)
    duration: float = 0.0
    fixable: bool | None = None
    fixed_count: int = 0
    modified_files: list[str] = Field(default_factory=list)
    fixed: list[FixRecord] = Field(default_factory=list)
    cancelled: bool = False

    @field_validator("modified_files", mode="before")
    @classmethod
    def _normalize_modified(cls, value: list[str | Path] | None) -> list[str]:
        """Normalise the modified file list.

        Args:
            value: Paths reported as modified by the engine.

        Returns:
            list[str]: Absolute path strings, de-duplicated in order.
        """

        if not value:
            return []
        seen: dict[str, None] = {}
        for item in value:
            seen.setdefault(normalize_file(item), None)
        return list(seen)


class EngineMetrics(BaseModel):
    """Per-engine entry of the performance metrics block."""

    enabled: bool = True
    duration: float = 0.0
    issue_count: int = 0
    fixed_count: int = 0


class PerfMetrics(BaseModel):
    """Optional observability block attached to a run result."""

    timestamp: str
    run_type: str
    duration: float
    issue_count: int = 0
    engines: dict[str, EngineMetrics] = Field(default_factory=dict)


class IssueStatistics(BaseModel):
    """Summary statistics computed over the final issue list."""

    total: int = 0
    by_engine: dict[str, int] = Field(default_factory=dict)
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_file: dict[str, int] = Field(default_factory=dict)


class StagingWarning(BaseModel):
    """Non-fatal warning for a file that could not be staged."""

    model_config = ConfigDict(frozen=True)

    file: str
    message: str


class QualityCheckResult(BaseModel):
    """Final artifact of a run; the only object crossing the core boundary."""

    model_config = ConfigDict(validate_assignment=True)

    success: bool
    duration: float = 0.0
    issues: list[Issue] = Field(default_factory=list)
    metrics: PerfMetrics | None = None
    correlation_id: str | None = None
    statistics: IssueStatistics = Field(default_factory=IssueStatistics)
    unavailable_engines: list[str] = Field(default_factory=list)
    failed_engines: dict[str, str] = Field(default_factory=dict)
    staged_files: list[str] = Field(default_factory=list)
    staging_warnings: list[StagingWarning] = Field(default_factory=list)
    omitted_files: list[str] = Field(default_factory=list)
    fixed_count: int = 0
    cancelled: bool = False
    phases: list[str] = Field(default_factory=list)

    def has_errors(self) -> bool:
        """Return whether any remaining issue has error severity.

        Returns:
            bool: ``True`` when at least one error remains.
        """

        return any(issue.severity is Severity.ERROR for issue in self.issues)

    @property
    def degraded(self) -> bool:
        """Return whether the run continued with a reduced engine set.

        Returns:
            bool: ``True`` when at least one engine was unavailable.
        """

        return bool(self.unavailable_engines)

    def to_payload(self) -> dict[str, JsonValue]:
        """Return a JSON-compatible payload for output renderers.

        Returns:
            dict[str, JsonValue]: Serialisable representation of the result.
        """

        return self.model_dump(mode="json", exclude_none=True)


__all__ = [
    "EngineKind",
    "EngineMetrics",
    "EnginePhase",
    "EngineResult",
    "FixRecord",
    "Issue",
    "IssueKey",
    "IssueStatistics",
    "JsonValue",
    "PerfMetrics",
    "QualityCheckResult",
    "StagingWarning",
    "normalize_file",
]

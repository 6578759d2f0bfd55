# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models for the fix-first orchestration package."""

from __future__ import annotations

import math
import os
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ConfigError
from .severity import Severity

RUFF_ENGINE: Final[str] = "ruff"
RUFF_FORMAT_ENGINE: Final[str] = "ruff-format"
MYPY_ENGINE: Final[str] = "mypy"


def default_parallel_jobs() -> int:
    """Return 75% of available CPU cores (minimum of 1)."""
    cores = os.cpu_count() or 1
    proposed = max(1, math.floor(cores * 0.75))
    return proposed


def _default_cache_root() -> Path:
    override = os.environ.get("FIXQA_CACHE_DIR")
    if override:
        return Path(override)
    return Path(".fixqa-cache")


class ExecutionConfig(BaseModel):
    """Execution behaviour for a single orchestrator run."""

    model_config = ConfigDict(validate_assignment=True)

    jobs: int = Field(default_factory=default_parallel_jobs, ge=1)
    timeout: float = Field(default=30.0, gt=0)
    fix: bool = True
    serial_fix: bool = True
    auto_stage: bool = True
    warm_run: bool = False
    track_metrics: bool = False
    fail_on: Severity = Severity.WARNING
    grace_period: float = Field(default=0.5, ge=0)
    reserve_ratio: float = Field(default=0.05, ge=0, lt=1)
    cache_dir: Path = Field(default_factory=_default_cache_root)


class BatchConfig(BaseModel):
    """Sizing and timeout knobs for the batch processor."""

    model_config = ConfigDict(validate_assignment=True)

    target_size: int = Field(default=100, ge=1)
    min_size: int = Field(default=1, ge=1)
    base_timeout: float = Field(default=10.0, ge=0)
    per_file_timeout: float = Field(default=0.05, ge=0)
    max_deferrals: int = Field(default=2, ge=0)
    imminent_ratio: float = Field(default=0.1, ge=0, le=1)

    @model_validator(mode="after")
    def _check_sizes(self) -> BatchConfig:
        """Ensure the minimum batch size never exceeds the target size.

        Returns:
            BatchConfig: Validated configuration.

        Raises:
            ValueError: If ``min_size`` exceeds ``target_size``.
        """

        if self.min_size > self.target_size:
            raise ValueError("min_size must not exceed target_size")
        return self


class ResourceConfig(BaseModel):
    """Thresholds used by the resource monitor to classify memory pressure."""

    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = True
    memory_limit_mb: float = Field(default=1024.0, gt=0)
    elevated_ratio: float = Field(default=0.7, gt=0, le=1)
    horizon: float = Field(default=5.0, gt=0)
    interval: float = Field(default=0.1, gt=0)
    window: int = Field(default=10, ge=2)

    @property
    def memory_limit_bytes(self) -> int:
        """Return the memory limit expressed in bytes.

        Returns:
            int: Memory limit in bytes.
        """

        return int(self.memory_limit_mb * 1024 * 1024)


class EngineConfig(BaseModel):
    """Per-engine settings resolved by the external configuration loader."""

    model_config = ConfigDict(validate_assignment=True)

    enabled: bool = True
    executable: str | None = None
    args: list[str] = Field(default_factory=list)
    cache_dir: Path | None = None


class OutputConfig(BaseModel):
    """Console behaviour for user-facing diagnostics."""

    model_config = ConfigDict(validate_assignment=True)

    emoji: bool = True
    color: bool = True
    quiet: bool = False


def _default_engines() -> dict[str, EngineConfig]:
    return {
        RUFF_ENGINE: EngineConfig(),
        RUFF_FORMAT_ENGINE: EngineConfig(),
        MYPY_ENGINE: EngineConfig(),
    }


class Config(BaseModel):
    """Top-level configuration for the orchestrator."""

    model_config = ConfigDict(validate_assignment=True)

    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    batching: BatchConfig = Field(default_factory=BatchConfig)
    resources: ResourceConfig = Field(default_factory=ResourceConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    engines: dict[str, EngineConfig] = Field(default_factory=_default_engines)

    @field_validator("engines")
    @classmethod
    def _check_engine_names(cls, value: dict[str, EngineConfig]) -> dict[str, EngineConfig]:
        """Reject blank engine names.

        Args:
            value: Mapping of engine names to settings.

        Returns:
            dict[str, EngineConfig]: Validated mapping.

        Raises:
            ValueError: If an engine name is empty.
        """

        for name in value:
            if not name.strip():
                raise ValueError("engine names must not be empty")
        return value

    def enabled_engines(self) -> list[str]:
        """Return the names of engines enabled in this configuration.

        Returns:
            list[str]: Enabled engine names in declaration order.
        """

        return [name for name, settings in self.engines.items() if settings.enabled]

    def engine(self, name: str) -> EngineConfig:
        """Return the settings for ``name``.

        Args:
            name: Engine name to look up.

        Returns:
            EngineConfig: Settings registered for the engine.

        Raises:
            ConfigError: If no settings exist for ``name``.
        """

        try:
            return self.engines[name]
        except KeyError as exc:
            raise ConfigError(f"no configuration for engine '{name}'") from exc


__all__ = [
    "MYPY_ENGINE",
    "RUFF_ENGINE",
    "RUFF_FORMAT_ENGINE",
    "BatchConfig",
    "Config",
    "ConfigError",
    "EngineConfig",
    "ExecutionConfig",
    "OutputConfig",
    "ResourceConfig",
    "default_parallel_jobs",
]

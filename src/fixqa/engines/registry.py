# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Registry of engine adapters available to the orchestrator."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Final

from ..config import MYPY_ENGINE, RUFF_ENGINE, RUFF_FORMAT_ENGINE, Config
from ..errors import ConfigError
from .base import CommandRunner, Engine, ToolEngine
from .mypy import MypyEngine
from .ruff import RuffLintEngine
from .ruff_format import RuffFormatEngine

ENGINE_TYPES: Final[Mapping[str, type[ToolEngine]]] = {
    RUFF_ENGINE: RuffLintEngine,
    RUFF_FORMAT_ENGINE: RuffFormatEngine,
    MYPY_ENGINE: MypyEngine,
}


class EngineRegistry:
    """Ordered collection of engine adapters keyed by name."""

    def __init__(self) -> None:
        self._engines: dict[str, Engine] = {}

    def register(self, engine: Engine) -> None:
        """Register ``engine`` under its name.

        Args:
            engine: Adapter to register.

        Raises:
            ConfigError: If an engine with the same name is already registered.
        """

        if engine.name in self._engines:
            raise ConfigError(f"engine '{engine.name}' registered twice")
        self._engines[engine.name] = engine

    def get(self, name: str) -> Engine:
        """Return the engine registered as ``name``.

        Raises:
            ConfigError: If no such engine exists.
        """

        try:
            return self._engines[name]
        except KeyError as exc:
            raise ConfigError(f"unknown engine '{name}'") from exc

    def engines(self) -> list[Engine]:
        """Return the registered engines in registration order."""

        return list(self._engines.values())

    def __iter__(self) -> Iterator[Engine]:
        return iter(self._engines.values())

    def __len__(self) -> int:
        return len(self._engines)

    def __contains__(self, name: object) -> bool:
        return name in self._engines


def default_registry(
    config: Config,
    *,
    cwd: Path | None = None,
    runner: CommandRunner | None = None,
) -> EngineRegistry:
    """Build the registry of enabled engines described by ``config``.

    Args:
        config: Configuration listing engine names and their settings.
        cwd: Working directory for tool invocations.
        runner: Optional subprocess runner shared by every adapter.

    Returns:
        EngineRegistry: Registry holding one adapter per enabled engine.

    Raises:
        ConfigError: If the configuration names an unknown engine.
    """

    registry = EngineRegistry()
    for name in config.enabled_engines():
        engine_type = ENGINE_TYPES.get(name)
        if engine_type is None:
            raise ConfigError(f"unknown engine '{name}'; expected one of {', '.join(sorted(ENGINE_TYPES))}")
        registry.register(
            engine_type(
                name=name,
                settings=config.engine(name),
                cache_root=config.execution.cache_dir,
                cwd=cwd,
                runner=runner,
            )
        )
    return registry


__all__ = ["ENGINE_TYPES", "EngineRegistry", "default_registry"]

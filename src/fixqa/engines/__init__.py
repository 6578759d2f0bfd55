# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Engine adapters wrapping the external analysis tools."""

from __future__ import annotations

from .base import CommandRunner, Engine, ToolEngine, default_runner
from .mypy import MypyEngine
from .registry import ENGINE_TYPES, EngineRegistry, default_registry
from .ruff import RuffLintEngine
from .ruff_format import RuffFormatEngine
from .session import EngineSession, file_digest, snapshot

__all__ = [
    "ENGINE_TYPES",
    "CommandRunner",
    "Engine",
    "EngineRegistry",
    "EngineSession",
    "MypyEngine",
    "RuffFormatEngine",
    "RuffLintEngine",
    "ToolEngine",
    "default_registry",
    "default_runner",
    "file_digest",
    "snapshot",
]

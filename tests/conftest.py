# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from fixqa.config import Config
from fixqa.console import get_console_manager


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Return a quiet configuration whose caches live under ``tmp_path``."""

    cfg = Config()
    cfg.execution.jobs = 4
    cfg.execution.cache_dir = tmp_path / ".fixqa-cache"
    cfg.output.quiet = True
    cfg.output.color = False
    cfg.output.emoji = False
    return cfg


@pytest.fixture(autouse=True)
def _fresh_consoles() -> None:
    """Drop cached Rich consoles so each test binds to its own streams."""

    get_console_manager().clear()

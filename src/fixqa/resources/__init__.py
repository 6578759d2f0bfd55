# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Resource-aware scheduling: memory pressure monitoring and adaptive batching."""

from __future__ import annotations

from .batching import Admission, BatchPriority, BatchProcessor, BatchRunReport, FileBatch
from .monitor import PressureLevel, ResourceMonitor, ResourcePressureSample, read_rss

__all__ = [
    "Admission",
    "BatchPriority",
    "BatchProcessor",
    "BatchRunReport",
    "FileBatch",
    "PressureLevel",
    "ResourceMonitor",
    "ResourcePressureSample",
    "read_rss",
]

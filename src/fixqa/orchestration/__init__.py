# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Fix-first pipeline orchestration."""

from __future__ import annotations

from .executor import EngineJob, EngineOutcome, PhaseExecutor
from .orchestrator import Orchestrator, OrchestratorHooks, RunRequest
from .phases import PhaseTracker, PhaseTransitionError, PipelinePhase

__all__ = [
    "EngineJob",
    "EngineOutcome",
    "Orchestrator",
    "OrchestratorHooks",
    "PhaseExecutor",
    "PhaseTracker",
    "PhaseTransitionError",
    "PipelinePhase",
    "RunRequest",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Pipeline phase state machine."""

from __future__ import annotations

from enum import Enum
from typing import Final

from ..errors import FixqaError


class PipelinePhase(str, Enum):
    """States of one orchestrator run."""

    START = "start"
    FIX_PHASE = "fix"
    CHECK_PHASE = "check"
    AGGREGATE = "aggregate"
    STAGE = "stage"
    DONE = "done"
    DEGRADED = "degraded"
    CANCELLED = "cancelled"


_TRANSITIONS: Final[dict[PipelinePhase, frozenset[PipelinePhase]]] = {
    PipelinePhase.START: frozenset({PipelinePhase.FIX_PHASE, PipelinePhase.CHECK_PHASE}),
    PipelinePhase.FIX_PHASE: frozenset({PipelinePhase.CHECK_PHASE}),
    PipelinePhase.CHECK_PHASE: frozenset({PipelinePhase.AGGREGATE}),
    PipelinePhase.AGGREGATE: frozenset({PipelinePhase.STAGE, PipelinePhase.DONE}),
    PipelinePhase.STAGE: frozenset({PipelinePhase.DONE}),
    PipelinePhase.DONE: frozenset(),
    PipelinePhase.CANCELLED: frozenset(),
}


class PhaseTransitionError(FixqaError):
    """Raised when the pipeline attempts an invalid phase transition."""


class PhaseTracker:
    """Track the current phase and the ordered history of a run.

    ``DEGRADED`` is a side state: it is recorded in the history while the run
    stays in its current phase. ``CANCELLED`` and ``DONE`` are terminal.
    """

    def __init__(self) -> None:
        self.current = PipelinePhase.START
        self.history: list[PipelinePhase] = [PipelinePhase.START]

    @property
    def terminal(self) -> bool:
        """Return whether the run reached ``DONE`` or ``CANCELLED``."""

        return self.current in {PipelinePhase.DONE, PipelinePhase.CANCELLED}

    @property
    def degraded(self) -> bool:
        """Return whether the run continued with a reduced engine set."""

        return PipelinePhase.DEGRADED in self.history

    def advance(self, phase: PipelinePhase) -> None:
        """Move to ``phase``.

        Args:
            phase: Next phase of the pipeline.

        Raises:
            PhaseTransitionError: If ``phase`` is not reachable from the current phase.
        """

        if phase not in _TRANSITIONS[self.current]:
            raise PhaseTransitionError(f"cannot move from {self.current.value} to {phase.value}")
        self.current = phase
        self.history.append(phase)

    def degrade(self) -> None:
        """Record that an engine became unavailable; the current phase is kept."""

        if not self.degraded:
            self.history.append(PipelinePhase.DEGRADED)

    def cancel(self) -> None:
        """Enter the terminal ``CANCELLED`` state from any non-terminal phase."""

        if self.terminal:
            return
        self.current = PipelinePhase.CANCELLED
        self.history.append(PipelinePhase.CANCELLED)

    def names(self) -> list[str]:
        """Return the history as phase names."""

        return [phase.value for phase in self.history]


__all__ = ["PhaseTracker", "PhaseTransitionError", "PipelinePhase"]

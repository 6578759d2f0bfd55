# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for the pipeline phase state machine."""

from __future__ import annotations

import pytest

from fixqa.orchestration.phases import PhaseTracker, PhaseTransitionError, PipelinePhase


def test_full_pipeline_path() -> None:
    tracker = PhaseTracker()
    for phase in (
        PipelinePhase.FIX_PHASE,
        PipelinePhase.CHECK_PHASE,
        PipelinePhase.AGGREGATE,
        PipelinePhase.STAGE,
        PipelinePhase.DONE,
    ):
        tracker.advance(phase)

    assert tracker.terminal
    assert tracker.names() == ["start", "fix", "check", "aggregate", "stage", "done"]


def test_check_only_pipeline_skips_fix_and_stage() -> None:
    tracker = PhaseTracker()
    tracker.advance(PipelinePhase.CHECK_PHASE)
    tracker.advance(PipelinePhase.AGGREGATE)
    tracker.advance(PipelinePhase.DONE)

    assert tracker.current is PipelinePhase.DONE


@pytest.mark.parametrize(
    ("path", "invalid"),
    [
        ((), PipelinePhase.AGGREGATE),
        ((PipelinePhase.FIX_PHASE,), PipelinePhase.STAGE),
        ((PipelinePhase.CHECK_PHASE,), PipelinePhase.FIX_PHASE),
        ((PipelinePhase.CHECK_PHASE, PipelinePhase.AGGREGATE, PipelinePhase.DONE), PipelinePhase.STAGE),
    ],
)
def test_invalid_transitions_are_rejected(path: tuple[PipelinePhase, ...], invalid: PipelinePhase) -> None:
    tracker = PhaseTracker()
    for phase in path:
        tracker.advance(phase)

    with pytest.raises(PhaseTransitionError):
        tracker.advance(invalid)


def test_degraded_is_recorded_once_and_keeps_the_current_phase() -> None:
    tracker = PhaseTracker()
    tracker.advance(PipelinePhase.CHECK_PHASE)

    tracker.degrade()
    tracker.degrade()

    assert tracker.current is PipelinePhase.CHECK_PHASE
    assert tracker.degraded
    assert tracker.names().count("degraded") == 1
    tracker.advance(PipelinePhase.AGGREGATE)


def test_cancel_is_terminal_from_any_phase() -> None:
    tracker = PhaseTracker()
    tracker.advance(PipelinePhase.FIX_PHASE)

    tracker.cancel()
    tracker.cancel()

    assert tracker.current is PipelinePhase.CANCELLED
    assert tracker.names() == ["start", "fix", "cancelled"]
    with pytest.raises(PhaseTransitionError):
        tracker.advance(PipelinePhase.CHECK_PHASE)

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for cancellation tokens and the timeout manager."""

from __future__ import annotations

import pytest

from fixqa.cancellation import REASON_TIMEOUT, CancellationToken, TimeoutManager
from fixqa.errors import OperationCancelledError


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_cancel_propagates_down_not_up() -> None:
    root = CancellationToken()
    child = root.child()
    grandchild = child.child()

    child.cancel("stop")

    assert not root.cancelled
    assert child.cancelled
    assert grandchild.cancelled
    assert grandchild.reason == "stop"


def test_child_of_cancelled_token_starts_cancelled() -> None:
    root = CancellationToken()
    root.cancel()

    assert root.child().cancelled


def test_child_deadline_is_capped_by_parent() -> None:
    clock = FakeClock(100.0)
    root = CancellationToken(deadline=110.0, clock=clock)

    child = root.child(deadline=200.0)
    unbounded = root.child()

    assert child.deadline == 110.0
    assert unbounded.deadline == 110.0
    assert child.remaining() == pytest.approx(10.0)
    clock.now = 500.0
    assert child.remaining() == 0.0


def test_raise_if_cancelled_reports_reason() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel(REASON_TIMEOUT)

    with pytest.raises(OperationCancelledError) as excinfo:
        token.raise_if_cancelled()
    assert excinfo.value.reason == REASON_TIMEOUT
    assert token.timed_out


def test_on_cancel_callbacks_run_once() -> None:
    token = CancellationToken()
    seen: list[str | None] = []

    token.on_cancel(lambda cancelled: seen.append(cancelled.reason))
    token.cancel("first")
    token.cancel("second")
    token.on_cancel(lambda cancelled: seen.append(cancelled.reason))

    assert seen == ["first", "first"]
    assert token.reason == "first"


def test_timeout_manager_cancels_run_token_at_deadline() -> None:
    manager = TimeoutManager()
    token = manager.run_token(0.05)

    assert token.wait(2.0)
    assert token.timed_out
    manager.close()


def test_run_token_follows_external_parent() -> None:
    external = CancellationToken()
    manager = TimeoutManager()
    token = manager.run_token(None, parent=external)

    external.cancel("user abort")

    assert token.cancelled
    assert token.reason == "user abort"
    manager.close()


def test_phase_token_reserves_budget() -> None:
    clock = FakeClock(0.0)
    manager = TimeoutManager(clock=clock)
    run = manager.run_token(10.0)

    phase = manager.phase_token(run, reserve=1.0)

    assert run.deadline == 10.0
    assert phase.deadline == 9.0
    manager.close()


def test_expired_scope_is_cancelled_immediately() -> None:
    clock = FakeClock(0.0)
    manager = TimeoutManager(clock=clock)
    parent = CancellationToken(deadline=0.0, clock=clock)

    scoped = manager.scoped(parent, 5.0)

    assert scoped.cancelled
    assert scoped.timed_out


def test_release_detaches_scope_from_parent() -> None:
    manager = TimeoutManager()
    parent = CancellationToken()
    scoped = manager.scoped(parent, None)

    manager.release(scoped)
    parent.cancel()

    assert not scoped.cancelled

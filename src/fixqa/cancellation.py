# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Cooperative cancellation tokens and wall-clock budget management.

Tokens form a tree: cancelling a token cancels every descendant, never the
ancestors. Engines observe tokens at their own checkpoints (batch boundaries,
per-file loops, subprocess polling) and return partial results instead of
being interrupted.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Final

from .errors import OperationCancelledError

REASON_TIMEOUT: Final[str] = "timeout"
REASON_CANCELLED: Final[str] = "cancelled"

Clock = Callable[[], float]
CancelCallback = Callable[["CancellationToken"], None]


class CancellationToken:
    """Thread-safe cancellation flag linked to an optional parent token."""

    def __init__(
        self,
        *,
        parent: CancellationToken | None = None,
        deadline: float | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        """Create a token, inheriting cancellation from ``parent``.

        Args:
            parent: Token whose cancellation propagates to this token.
            deadline: Monotonic timestamp after which the budget is exhausted.
            clock: Monotonic clock used for deadline arithmetic.
        """

        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[CancelCallback] = []
        self._reason: str | None = None
        self._clock = clock
        self._parent = parent
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline
        if parent is not None:
            parent.on_cancel(self._cancel_from_parent)

    @property
    def cancelled(self) -> bool:
        """Return whether cancellation has been requested.

        Returns:
            bool: ``True`` once the token or an ancestor was cancelled.
        """

        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Return the reason supplied when the token was cancelled.

        Returns:
            str | None: Cancellation reason, or ``None`` while active.
        """

        return self._reason

    @property
    def timed_out(self) -> bool:
        """Return whether the token was cancelled because a budget expired.

        Returns:
            bool: ``True`` when the cancellation reason is a timeout.
        """

        return self._reason == REASON_TIMEOUT

    def remaining(self) -> float | None:
        """Return the seconds left before the deadline.

        Returns:
            float | None: Remaining budget (never negative), or ``None`` when unbounded.
        """

        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def cancel(self, reason: str = REASON_CANCELLED) -> None:
        """Request cancellation of this token and all descendants.

        Args:
            reason: Reason recorded for observers.
        """

        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback(self)

    def on_cancel(self, callback: CancelCallback) -> None:
        """Register ``callback`` to run once the token is cancelled.

        The callback runs immediately when the token is already cancelled.

        Args:
            callback: Callable receiving the cancelled token.
        """

        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback(self)

    def remove_callback(self, callback: CancelCallback) -> None:
        """Unregister ``callback`` if it is still pending.

        Args:
            callback: Callback previously passed to :meth:`on_cancel`.
        """

        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def detach(self) -> None:
        """Stop listening for cancellation of the parent token."""

        if self._parent is not None:
            self._parent.remove_callback(self._cancel_from_parent)

    def raise_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelledError` at a cancellation checkpoint.

        Raises:
            OperationCancelledError: If cancellation has been requested.
        """

        if self._event.is_set():
            raise OperationCancelledError(self._reason)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses.

        Args:
            timeout: Maximum number of seconds to wait.

        Returns:
            bool: ``True`` when the token was cancelled.
        """

        return self._event.wait(timeout)

    def child(self, *, deadline: float | None = None) -> CancellationToken:
        """Return a new token linked to this one.

        Args:
            deadline: Optional deadline for the child; capped by this token's deadline.

        Returns:
            CancellationToken: Child token.
        """

        return CancellationToken(parent=self, deadline=deadline, clock=self._clock)

    def _cancel_from_parent(self, parent: CancellationToken) -> None:
        self.cancel(parent.reason or REASON_CANCELLED)

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self.cancelled else "active"
        return f"CancellationToken({state}, deadline={self.deadline})"


class TimeoutManager:
    """Convert wall-clock budgets into deadline-bound cancellation tokens."""

    def __init__(self, *, clock: Clock = time.monotonic) -> None:
        """Create a manager using ``clock`` for deadline arithmetic.

        Args:
            clock: Monotonic clock, injectable for tests.
        """

        self._clock = clock
        self._timers: dict[int, threading.Timer] = {}
        self._lock = threading.Lock()

    def run_token(self, timeout: float | None, *, parent: CancellationToken | None = None) -> CancellationToken:
        """Return the root token for a run bounded by ``timeout`` seconds.

        Args:
            timeout: Overall run budget in seconds, or ``None`` for no budget.
            parent: Optional external token supplied by the invoker.

        Returns:
            CancellationToken: Token cancelled when the budget expires or ``parent`` cancels.
        """

        deadline = None if timeout is None else self._clock() + timeout
        token = CancellationToken(parent=parent, deadline=deadline, clock=self._clock)
        self._arm(token)
        return token

    def phase_token(self, run_token: CancellationToken, *, reserve: float = 0.0) -> CancellationToken:
        """Return a phase token whose deadline keeps ``reserve`` seconds for later phases.

        Args:
            run_token: Root token of the current run.
            reserve: Seconds held back from this phase for aggregation and staging.

        Returns:
            CancellationToken: Child token bounded by the phase deadline.
        """

        deadline = None if run_token.deadline is None else run_token.deadline - reserve
        token = run_token.child(deadline=deadline)
        self._arm(token)
        return token

    def scoped(self, parent: CancellationToken, timeout: float | None) -> CancellationToken:
        """Return a child of ``parent`` bounded by an additional ``timeout``.

        Args:
            parent: Token that bounds the new scope.
            timeout: Extra budget in seconds for the scope.

        Returns:
            CancellationToken: Child token bounded by both budgets.
        """

        deadline = None if timeout is None else self._clock() + timeout
        token = parent.child(deadline=deadline)
        self._arm(token)
        return token

    def release(self, token: CancellationToken) -> None:
        """Disarm the deadline timer of ``token`` and detach it from its parent.

        Args:
            token: Token created by this manager.
        """

        with self._lock:
            timer = self._timers.pop(id(token), None)
        if timer is not None:
            timer.cancel()
        token.detach()

    def close(self) -> None:
        """Disarm every pending deadline timer."""

        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _arm(self, token: CancellationToken) -> None:
        remaining = token.remaining()
        if remaining is None:
            return
        if remaining <= 0:
            token.cancel(REASON_TIMEOUT)
            return
        timer = threading.Timer(remaining, token.cancel, kwargs={"reason": REASON_TIMEOUT})
        timer.daemon = True
        with self._lock:
            self._timers[id(token)] = timer
        timer.start()


__all__ = [
    "REASON_CANCELLED",
    "REASON_TIMEOUT",
    "CancellationToken",
    "TimeoutManager",
]

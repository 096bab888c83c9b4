"""Delayed actions with cancellation tokens.

Round pacing (time limits, next-round delays) goes through a scheduler so a
round can be aborted mid-delay without leaving a pending callback behind.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class CancelToken:
    def __init__(self, label: str = "") -> None:
        self.label = label
        self._cancelled = False
        self._on_cancel: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for hook in self._on_cancel:
            hook()
        self._on_cancel.clear()

    def add_cancel_hook(self, hook: Callable[[], None]) -> None:
        if self._cancelled:
            hook()
            return
        self._on_cancel.append(hook)


class Scheduler(Protocol):
    def schedule(self, delay: float, callback: Callable[[], None], label: str = "") -> CancelToken:
        """Run ``callback`` after ``delay`` seconds unless the token is cancelled."""


class FrameScheduler:
    """Scheduler advanced explicitly by the host's update tick."""

    def __init__(self) -> None:
        self._now = 0.0
        self._counter = itertools.count()
        self._queue: list[tuple[float, int, CancelToken, Callable[[], None]]] = []

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for _, _, token, _ in self._queue if not token.cancelled)

    def schedule(self, delay: float, callback: Callable[[], None], label: str = "") -> CancelToken:
        token = CancelToken(label=label)
        heapq.heappush(self._queue, (self._now + max(0.0, delay), next(self._counter), token, callback))
        return token

    def tick(self, dt: float) -> int:
        """Advance time by ``dt`` seconds and run every callback that came due."""
        target = self._now + max(0.0, dt)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, token, callback = heapq.heappop(self._queue)
            self._now = due
            if token.cancelled:
                continue
            logger.debug(f"[timer-fire] {token.label} at t={due:.3f}")
            callback()
            fired += 1
        self._now = target
        return fired


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later`` for async hosts."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        after_fire: Callable[[], None] | None = None,
    ) -> None:
        self._loop = loop
        self._after_fire = after_fire

    def schedule(self, delay: float, callback: Callable[[], None], label: str = "") -> CancelToken:
        loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        token = CancelToken(label=label)

        def fire() -> None:
            if token.cancelled:
                return
            logger.debug(f"[timer-fire] {label}")
            callback()
            if self._after_fire is not None:
                self._after_fire()

        handle = loop.call_later(max(0.0, delay), fire)
        token.add_cancel_hook(handle.cancel)
        return token

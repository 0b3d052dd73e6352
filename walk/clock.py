"""
walk/clock.py — Timer sources for the walk scheduler

WalkScheduler never touches the event loop's timers directly. It asks a
Clock for a one-shot callback and keeps the returned handle so it can
cancel it later.

    LoopClock    — production clock, backed by loop.call_later()
    ManualClock  — logical time that only moves when advance() is awaited.
                   Used by the tests and by any host that wants
                   deterministic stepping.

Usage::

    clock = ManualClock()
    scheduler = WalkScheduler(on_step, on_state_change, clock=clock)
    await scheduler.start(WalkConfig(interval_ms=5000))
    await clock.advance(5.0)      # fires the timer, lets the step run
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, runtime_checkable

# Event-loop iterations given to freshly spawned tasks after each timer fires
_SETTLE_ROUNDS = 20


# ─────────────────────────────────────────────────────────────────────────────
# Protocols
# ─────────────────────────────────────────────────────────────────────────────

@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class Clock(Protocol):
    """Anything that can schedule a one-shot callback `delay` seconds from now."""
    def time(self) -> float: ...
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


# ─────────────────────────────────────────────────────────────────────────────
# LoopClock
# ─────────────────────────────────────────────────────────────────────────────

class LoopClock:
    """
    Clock backed by the asyncio event loop.

    If no loop is given, the running loop is looked up on every call so a
    scheduler can be constructed before the loop starts.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def time(self) -> float:
        return self._get_loop().time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self._get_loop().call_later(delay, callback, *args)


# ─────────────────────────────────────────────────────────────────────────────
# ManualClock
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(order=True)
class _ManualHandle:
    when: float
    seq: int
    callback: Callable[..., Any] = field(compare=False)
    args: tuple = field(default=(), compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """
    Logical-time clock. Nothing fires until advance() is awaited.

    advance() fires due callbacks in deadline order, moving `now` to each
    deadline before firing it, and yields to the event loop after every
    callback so tasks spawned by the callback (e.g. the scheduler's next
    step) run to completion before later deadlines are considered.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[_ManualHandle] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _ManualHandle:
        handle = _ManualHandle(
            when=self._now + max(delay, 0.0),
            seq=next(self._seq),
            callback=callback,
            args=args,
        )
        heapq.heappush(self._queue, handle)
        return handle

    @property
    def pending(self) -> int:
        """Number of armed, uncancelled callbacks."""
        return sum(1 for h in self._queue if not h.cancelled)

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            while self._queue and self._queue[0].cancelled:
                heapq.heappop(self._queue)
            if not self._queue or self._queue[0].when > target:
                break
            handle = heapq.heappop(self._queue)
            self._now = handle.when
            handle.callback(*handle.args)
            await _settle()
        self._now = target
        await _settle()


async def _settle() -> None:
    for _ in range(_SETTLE_ROUNDS):
        await asyncio.sleep(0)

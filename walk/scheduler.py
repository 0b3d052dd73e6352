"""
walk/scheduler.py — WalkScheduler

Runs one recurring "walk": invokes an async step action immediately, then
again every interval, until the walk is stopped or a step reports failure.

The scheduler does not know what a step does. The host supplies two
callbacks, bound for the lifetime of the instance:

    on_step(config)                  -> Awaitable[bool]   True = step done
    on_state_change(active, config)  -> None              config is None when idle

State machine
-------------
    Idle    no timer handle, no config
    Active  timer handle held, config held

`is_active` is derived from the timer handle alone. There is never more than
one outstanding timer.

Concurrency
-----------
* Single event loop. The scheduler suspends only while awaiting a step
  (and, in start(), while a superseded walk's step settles).
* start() enters Active *before* awaiting the first step: a placeholder timer
  is armed and the observer is told immediately. A stop() that arrives while
  the first step is loading therefore sees an active walk and shuts it down
  cleanly.
* Every start()/stop() bumps a generation counter. Each resumption compares
  its captured generation with the current one and bails without re-arming
  or re-notifying if they differ.
* Exactly one step is in flight at a time.

Usage::

    scheduler = WalkScheduler(on_step=jump, on_state_change=render_status)
    await scheduler.start(WalkConfig(interval_ms=30_000, show_timer_bar=True))
    ...
    await scheduler.shutdown()    # stop + wait for any in-flight step
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional

from observability.logger import get_logger
from walk.clock import Clock, LoopClock, TimerHandle

log = get_logger(__name__)

StepAction = Callable[[Any], Awaitable[bool]]
StateObserver = Callable[[bool, Any], None]


# ─────────────────────────────────────────────────────────────────────────────
# WalkConfig
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class WalkConfig:
    """
    Configuration of one walk.

    interval_ms     Delay between the end of one step and the start of the next.
    show_timer_bar  Display hint for the host; the scheduler never reads it.
    extras          Any other host data carried through unchanged.
    """
    interval_ms: int
    show_timer_bar: bool = False
    extras: Mapping[str, Any] = field(default_factory=dict)

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000


def interval_ms_of(config: Any) -> int:
    """
    Read the interval from any accepted configuration shape: a bare int,
    a mapping with an "interval_ms" key, or an object with `interval_ms`.
    """
    if isinstance(config, bool):
        raise TypeError("walk configuration may not be a bool")
    if isinstance(config, int):
        return config
    if isinstance(config, Mapping):
        return int(config["interval_ms"])
    return int(config.interval_ms)


def _noop() -> None:
    pass


# ─────────────────────────────────────────────────────────────────────────────
# WalkScheduler
# ─────────────────────────────────────────────────────────────────────────────

class WalkScheduler:
    """
    Single-walk recurring scheduler. See the module docstring for the contract.

    A step action must not await start()/force_next() on its own scheduler:
    start() waits for the in-flight step to settle, so that would deadlock.
    Schedule it as a separate task instead.

    If on_state_change raises while a walk is being activated, the walk is
    stopped and the error propagates out of start().
    """

    def __init__(
        self,
        on_step: StepAction,
        on_state_change: StateObserver,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._on_step = on_step
        self._on_state_change = on_state_change
        self._clock: Clock = clock or LoopClock()

        self._timer: Optional[TimerHandle] = None
        self._config: Any = None
        self._interval_ms = 0
        self._generation = 0

        self._step_done: Optional[asyncio.Event] = None
        self._continue_task: Optional[asyncio.Task] = None

    # ── Queries ───────────────────────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self._timer is not None

    @property
    def config(self) -> Any:
        """Configuration of the current walk, or None when idle."""
        return self._config

    @property
    def step_in_flight(self) -> bool:
        task = self._continue_task
        return self._step_done is not None or (task is not None and not task.done())

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self, config: Any) -> None:
        """
        Start a walk, superseding any walk already running.

        Returns once the first step has resolved (or immediately if the
        interval is not positive). The observer is told the walk is active
        before the first step is awaited.
        """
        interval_ms = interval_ms_of(config)
        if interval_ms <= 0:
            log.debug("walk.start_ignored", interval_ms=interval_ms)
            return

        self.stop()
        self._generation += 1
        generation = self._generation

        if self.step_in_flight:
            log.debug("walk.start_waiting_for_step")
            await self.join()
            if generation != self._generation:
                return

        self._config = config
        self._interval_ms = interval_ms
        # Placeholder slot: makes the walk visibly active while the first step loads.
        self._timer = self._clock.call_later(interval_ms / 1000, _noop)

        log.info("walk.started", interval_ms=interval_ms, generation=generation)
        try:
            self._on_state_change(True, config)
        except Exception:
            log.error("walk.observer_error", generation=generation, exc_info=True)
            if generation == self._generation:
                self.stop()
            raise
        if generation != self._generation:
            # The observer stopped or restarted the walk from inside the callback.
            return

        succeeded = await self._run_step(config)

        if generation != self._generation:
            return
        if succeeded:
            self._arm(generation)
        else:
            log.info("walk.step_failed", generation=generation, first_step=True)
            self.stop()

    def stop(self) -> None:
        """
        Stop the walk. Idempotent; notifies the observer once per stop.
        Also abandons a start() still waiting for an earlier step to settle.
        """
        self._generation += 1
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self._config = None
        log.info("walk.stopped", generation=self._generation)
        self._on_state_change(False, None)

    async def force_next(self) -> None:
        """Run a step right now by restarting the current walk."""
        if not self.is_active:
            return
        await self.start(self._config)

    def reset_timer(self) -> None:
        """
        Push the next step a full interval into the future without stepping.
        No-op while a step is in flight; its completion arms a fresh timer.
        """
        if not self.is_active or self.step_in_flight:
            return
        self._arm(self._generation)
        log.debug("walk.timer_reset", interval_ms=self._interval_ms)

    async def join(self) -> None:
        """Wait until no step is in flight."""
        while True:
            task = self._continue_task
            if task is not None and not task.done():
                await asyncio.wait({task})
            elif self._step_done is not None:
                await self._step_done.wait()
            else:
                return

    async def shutdown(self) -> None:
        """Stop and wait for any in-flight step, so no callback fires afterwards."""
        self.stop()
        await self.join()

    # ── Internals ─────────────────────────────────────────────────────────────

    def _arm(self, generation: int) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._clock.call_later(
            self._interval_ms / 1000, self._on_timer, generation
        )

    def _on_timer(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._continue_task = asyncio.get_running_loop().create_task(
            self._continue(generation, self._config)
        )

    async def _continue(self, generation: int, config: Any) -> None:
        # stop()/start() may have run between the timer firing and this task's first turn.
        if generation != self._generation:
            return
        succeeded = await self._run_step(config)

        if generation != self._generation:
            return
        if succeeded:
            self._arm(generation)
        else:
            log.info("walk.step_failed", generation=generation, first_step=False)
            self.stop()

    async def _run_step(self, config: Any) -> bool:
        done = asyncio.Event()
        self._step_done = done
        try:
            return bool(await self._on_step(config))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error(
                "walk.step_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return False
        finally:
            done.set()
            if self._step_done is done:
                self._step_done = None

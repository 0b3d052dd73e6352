"""
tests/unit/test_walk_scheduler.py — WalkScheduler Unit Tests

Covers:
  - start(): non-positive interval rejected, optimistic activation, first step
  - recurrence on the interval, same configuration every step
  - stop(): terminates, silences timers, idempotent, single notification
  - step failure (first and later steps) ends the walk, no retry
  - step exceptions treated as failures
  - supersession: start while active → stop/start notification pair
  - stop() racing the first step; stop + restart racing the first step
  - observer stopping the walk from inside the activation callback
  - stop()/start() landing between a timer firing and its step
  - observer raising on activation
  - force_next(), reset_timer(), shutdown()
  - configuration shapes: WalkConfig, bare int, mapping (passed through by identity)

Time is driven with ManualClock; nothing here sleeps for real.

Run with:
    pytest tests/unit/test_walk_scheduler.py -v
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from walk.clock import ManualClock
from walk.scheduler import WalkConfig, WalkScheduler, interval_ms_of


LEISURE = WalkConfig(interval_ms=15000, show_timer_bar=True)
FAST = WalkConfig(interval_ms=2000, show_timer_bar=False)
FIVE_S = WalkConfig(interval_ms=5000, show_timer_bar=True)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _make_scheduler(step_result=True, on_step=None):
    on_step = on_step or AsyncMock(return_value=step_result)
    on_state = MagicMock()
    clock = ManualClock()
    scheduler = WalkScheduler(on_step, on_state, clock=clock)
    return scheduler, on_step, on_state, clock


def _fire_next_timer(clock: ManualClock) -> None:
    """Run the earliest armed timer callback synchronously, without yielding."""
    handle = min(h for h in clock._queue if not h.cancelled)
    handle.cancel()
    handle.callback(*handle.args)


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class _Gate:
    """Step action whose calls block until release() (optionally only from call N on)."""

    def __init__(self, block_from_call: int = 1, result: bool = True) -> None:
        self.block_from_call = block_from_call
        self.result = result
        self.calls: list = []
        self._event = asyncio.Event()

    async def __call__(self, config):
        self.calls.append(config)
        if len(self.calls) >= self.block_from_call:
            await self._event.wait()
        return self.result

    def release(self) -> None:
        self._event.set()


# ─────────────────────────────────────────────────────────────────────────────
# start()
# ─────────────────────────────────────────────────────────────────────────────

class TestStart:

    @pytest.mark.asyncio
    async def test_zero_interval_is_ignored(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(WalkConfig(interval_ms=0, show_timer_bar=True))
        assert s.is_active is False
        assert s.config is None
        on_state.assert_not_called()
        on_step.assert_not_called()
        assert clock.pending == 0

    @pytest.mark.asyncio
    async def test_negative_interval_is_ignored(self):
        s, on_step, on_state, _ = _make_scheduler()
        await s.start(-5)
        assert s.is_active is False
        on_state.assert_not_called()
        on_step.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_interval_does_not_stop_running_walk(self):
        s, _, on_state, _ = _make_scheduler()
        await s.start(FIVE_S)
        await s.start(WalkConfig(interval_ms=0))
        assert s.is_active is True
        assert s.config is FIVE_S
        on_state.assert_called_once_with(True, FIVE_S)

    @pytest.mark.asyncio
    async def test_normal_start(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(FIVE_S)
        assert s.is_active is True
        assert s.config is FIVE_S
        on_state.assert_called_once_with(True, FIVE_S)
        on_step.assert_awaited_once_with(FIVE_S)
        assert clock.pending == 1

    @pytest.mark.asyncio
    async def test_observer_notified_before_first_step(self):
        order: list[str] = []
        s = None

        async def step(config):
            order.append("step")
            assert s.is_active is True
            return True

        def observe(active, config):
            order.append(f"state:{active}")

        s = WalkScheduler(step, observe, clock=ManualClock())
        await s.start(FIVE_S)
        assert order == ["state:True", "step"]

    @pytest.mark.asyncio
    async def test_active_while_first_step_in_flight(self):
        gate = _Gate()
        s, _, on_state, _ = _make_scheduler(on_step=gate)
        task = asyncio.create_task(s.start(FIVE_S))
        await asyncio.sleep(0)
        assert s.is_active is True
        assert s.step_in_flight is True
        on_state.assert_called_once_with(True, FIVE_S)
        gate.release()
        await task
        assert s.step_in_flight is False

    @pytest.mark.asyncio
    async def test_observer_error_on_activation_leaves_scheduler_idle(self):
        on_step = AsyncMock(return_value=True)
        on_state = MagicMock(side_effect=[RuntimeError("render failed"), None])
        clock = ManualClock()
        s = WalkScheduler(on_step, on_state, clock=clock)

        with pytest.raises(RuntimeError):
            await s.start(FIVE_S)

        assert s.is_active is False
        assert s.config is None
        assert clock.pending == 0
        on_step.assert_not_called()
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]


# ─────────────────────────────────────────────────────────────────────────────
# Recurrence
# ─────────────────────────────────────────────────────────────────────────────

class TestRecurrence:

    @pytest.mark.asyncio
    async def test_second_step_after_interval(self):
        s, on_step, _, clock = _make_scheduler()
        await s.start(FIVE_S)
        assert on_step.await_count == 1

        await clock.advance(5.0)

        assert on_step.await_count == 2
        on_step.assert_awaited_with(FIVE_S)

    @pytest.mark.asyncio
    async def test_no_step_before_interval_elapses(self):
        s, on_step, _, clock = _make_scheduler()
        await s.start(FIVE_S)
        await clock.advance(4.0)
        assert on_step.await_count == 1
        await clock.advance(1.0)
        assert on_step.await_count == 2

    @pytest.mark.asyncio
    async def test_keeps_stepping_with_same_config(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(FIVE_S)
        await clock.advance(15.0)
        assert on_step.await_count == 4
        assert all(c.args[0] is FIVE_S for c in on_step.await_args_list)
        # Recurring steps never re-notify the observer.
        on_state.assert_called_once_with(True, FIVE_S)
        assert s.is_active is True

    @pytest.mark.asyncio
    async def test_one_step_in_flight_at_a_time(self):
        gate = _Gate(block_from_call=2)
        s, _, _, clock = _make_scheduler(on_step=gate)
        await s.start(FIVE_S)

        await clock.advance(5.0)
        assert len(gate.calls) == 2
        assert s.step_in_flight is True

        await clock.advance(60.0)
        assert len(gate.calls) == 2

        gate.release()
        await s.join()
        assert s.is_active is True
        assert clock.pending == 1


# ─────────────────────────────────────────────────────────────────────────────
# stop()
# ─────────────────────────────────────────────────────────────────────────────

class TestStop:

    @pytest.mark.asyncio
    async def test_stop_terminates_and_silences_timers(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(FIVE_S)
        assert s.is_active is True

        s.stop()

        assert s.is_active is False
        assert s.config is None
        on_state.assert_called_with(False, None)
        assert clock.pending == 0

        await clock.advance(10.0)
        assert on_step.await_count == 1

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        s, _, on_state, _ = _make_scheduler()
        await s.start(FIVE_S)
        s.stop()
        s.stop()
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]

    @pytest.mark.asyncio
    async def test_stop_between_timer_and_step_skips_step(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(FIVE_S)

        _fire_next_timer(clock)
        s.stop()
        await _settle()
        await s.join()

        assert on_step.await_count == 1
        assert s.is_active is False
        assert s.step_in_flight is False
        assert clock.pending == 0
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]

    def test_stop_when_idle_is_silent(self):
        s, _, on_state, _ = _make_scheduler()
        s.stop()
        on_state.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_during_later_step_discards_result(self):
        gate = _Gate(block_from_call=2)
        s, _, on_state, clock = _make_scheduler(on_step=gate)
        await s.start(FIVE_S)
        await clock.advance(5.0)
        assert s.step_in_flight is True

        s.stop()
        gate.release()
        await s.join()

        assert s.is_active is False
        assert clock.pending == 0
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]

    @pytest.mark.asyncio
    async def test_walk_can_be_restarted_after_stop(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(FIVE_S)
        s.stop()
        await s.start(FAST)
        assert s.is_active is True
        assert on_state.call_args_list == [
            call(True, FIVE_S), call(False, None), call(True, FAST),
        ]
        await clock.advance(2.0)
        on_step.assert_awaited_with(FAST)


# ─────────────────────────────────────────────────────────────────────────────
# Step failure
# ─────────────────────────────────────────────────────────────────────────────

class TestStepFailure:

    @pytest.mark.asyncio
    async def test_first_step_failure_never_activates(self):
        s, on_step, on_state, clock = _make_scheduler(step_result=False)
        await s.start(LEISURE)

        assert on_state.call_count == 2
        assert on_state.call_args_list == [call(True, LEISURE), call(False, None)]
        assert s.is_active is False
        assert clock.pending == 0

        await clock.advance(60.0)
        assert on_step.await_count == 1

    @pytest.mark.asyncio
    async def test_later_step_failure_stops_walk(self):
        on_step = AsyncMock(side_effect=[True, False])
        s, _, on_state, clock = _make_scheduler(on_step=on_step)
        await s.start(FIVE_S)
        await clock.advance(5.0)

        assert on_step.await_count == 2
        assert s.is_active is False
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]

        await clock.advance(20.0)
        assert on_step.await_count == 2

    @pytest.mark.asyncio
    async def test_step_exception_is_treated_as_failure(self):
        on_step = AsyncMock(side_effect=RuntimeError("vault vanished"))
        s, _, on_state, clock = _make_scheduler(on_step=on_step)
        await s.start(FIVE_S)
        assert s.is_active is False
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]
        assert clock.pending == 0

    @pytest.mark.asyncio
    async def test_exception_in_later_step_stops_walk(self):
        on_step = AsyncMock(side_effect=[True, OSError("disk gone")])
        s, _, on_state, clock = _make_scheduler(on_step=on_step)
        await s.start(FIVE_S)
        await clock.advance(5.0)
        assert s.is_active is False
        on_state.assert_called_with(False, None)

    @pytest.mark.asyncio
    async def test_truthy_result_counts_as_success(self):
        s, _, _, _ = _make_scheduler(step_result=1)
        await s.start(FIVE_S)
        assert s.is_active is True


# ─────────────────────────────────────────────────────────────────────────────
# Supersession
# ─────────────────────────────────────────────────────────────────────────────

class TestSupersession:

    @pytest.mark.asyncio
    async def test_start_while_active_stops_then_starts(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(LEISURE)
        await s.start(FAST)

        assert s.is_active is True
        assert s.config is FAST
        assert on_state.call_args_list == [
            call(True, LEISURE), call(False, None), call(True, FAST),
        ]
        assert on_step.await_args_list == [call(LEISURE), call(FAST)]

        await clock.advance(2.0)
        assert on_step.await_count == 3
        on_step.assert_awaited_with(FAST)

    @pytest.mark.asyncio
    async def test_superseded_timer_never_fires(self):
        s, on_step, _, clock = _make_scheduler()
        await s.start(LEISURE)
        await s.start(FAST)
        await clock.advance(30.0)
        assert all(c.args[0] is FAST for c in on_step.await_args_list[1:])
        assert clock.pending == 1

    @pytest.mark.asyncio
    async def test_restart_between_timer_and_step_runs_only_new_walk(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(FIVE_S)

        _fire_next_timer(clock)
        await s.start(FAST)
        await _settle()

        assert on_step.await_args_list == [call(FIVE_S), call(FAST)]
        assert s.config is FAST
        assert on_state.call_args_list == [
            call(True, FIVE_S), call(False, None), call(True, FAST),
        ]


# ─────────────────────────────────────────────────────────────────────────────
# Races with the first step
# ─────────────────────────────────────────────────────────────────────────────

class TestFirstStepRaces:

    @pytest.mark.asyncio
    async def test_stop_during_first_step(self):
        gate = _Gate()
        s, _, on_state, clock = _make_scheduler(on_step=gate)

        task = asyncio.create_task(s.start(FIVE_S))
        await asyncio.sleep(0)
        assert s.is_active is True

        s.stop()
        assert s.is_active is False
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]

        gate.release()
        await task

        assert s.is_active is False
        assert clock.pending == 0
        assert on_state.call_count == 2

        await clock.advance(20.0)
        assert len(gate.calls) == 1

    @pytest.mark.asyncio
    async def test_stop_during_first_failing_step_notifies_once(self):
        gate = _Gate(result=False)
        s, _, on_state, _ = _make_scheduler(on_step=gate)
        task = asyncio.create_task(s.start(FIVE_S))
        await asyncio.sleep(0)
        s.stop()
        gate.release()
        await task
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]

    @pytest.mark.asyncio
    async def test_restart_during_first_step_waits_for_it(self):
        gate = _Gate()
        s, _, on_state, clock = _make_scheduler(on_step=gate)

        task_a = asyncio.create_task(s.start(LEISURE))
        await asyncio.sleep(0)
        task_b = asyncio.create_task(s.start(FAST))
        await asyncio.sleep(0)

        # A was stopped, B has not stepped yet: only one step in flight.
        assert gate.calls == [LEISURE]
        assert on_state.call_args_list == [call(True, LEISURE), call(False, None)]

        gate.release()
        await asyncio.gather(task_a, task_b)

        assert gate.calls == [LEISURE, FAST]
        assert s.is_active is True
        assert s.config is FAST
        assert on_state.call_args_list == [
            call(True, LEISURE), call(False, None), call(True, FAST),
        ]
        assert clock.pending == 1

    @pytest.mark.asyncio
    async def test_stop_while_restart_is_waiting_cancels_restart(self):
        gate = _Gate()
        s, _, on_state, clock = _make_scheduler(on_step=gate)

        task_a = asyncio.create_task(s.start(LEISURE))
        await asyncio.sleep(0)
        task_b = asyncio.create_task(s.start(FAST))
        await asyncio.sleep(0)
        s.stop()

        gate.release()
        await asyncio.gather(task_a, task_b)

        assert gate.calls == [LEISURE]
        assert s.is_active is False
        assert clock.pending == 0
        assert on_state.call_args_list == [call(True, LEISURE), call(False, None)]

    @pytest.mark.asyncio
    async def test_observer_stopping_on_activation_skips_step(self):
        on_step = AsyncMock(return_value=True)
        s = None

        def observe(active, config):
            if active:
                s.stop()

        on_state = MagicMock(side_effect=observe)
        s = WalkScheduler(on_step, on_state, clock=ManualClock())
        await s.start(FIVE_S)

        on_step.assert_not_called()
        assert s.is_active is False
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]


# ─────────────────────────────────────────────────────────────────────────────
# force_next / reset_timer / shutdown
# ─────────────────────────────────────────────────────────────────────────────

class TestConvenienceOperations:

    @pytest.mark.asyncio
    async def test_force_next_steps_now_and_restarts_countdown(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(FIVE_S)
        await clock.advance(2.0)

        await s.force_next()

        assert on_step.await_count == 2
        assert on_state.call_args_list == [
            call(True, FIVE_S), call(False, None), call(True, FIVE_S),
        ]
        await clock.advance(3.0)          # t=5: old deadline, cancelled
        assert on_step.await_count == 2
        await clock.advance(2.0)          # t=7: new deadline
        assert on_step.await_count == 3

    @pytest.mark.asyncio
    async def test_force_next_when_idle_is_noop(self):
        s, on_step, on_state, _ = _make_scheduler()
        await s.force_next()
        on_step.assert_not_called()
        on_state.assert_not_called()

    @pytest.mark.asyncio
    async def test_force_next_during_step_waits_for_it(self):
        gate = _Gate(block_from_call=2)
        s, _, _, clock = _make_scheduler(on_step=gate)
        await s.start(FIVE_S)
        await clock.advance(5.0)
        assert len(gate.calls) == 2

        task = asyncio.create_task(s.force_next())
        await asyncio.sleep(0)
        assert len(gate.calls) == 2

        gate.release()
        await task
        assert len(gate.calls) == 3
        assert s.is_active is True

    @pytest.mark.asyncio
    async def test_reset_timer_postpones_next_step(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(FIVE_S)
        await clock.advance(4.0)

        s.reset_timer()

        await clock.advance(4.0)          # t=8
        assert on_step.await_count == 1
        await clock.advance(1.0)          # t=9
        assert on_step.await_count == 2
        on_state.assert_called_once_with(True, FIVE_S)
        assert clock.pending == 1

    def test_reset_timer_when_idle_is_noop(self):
        s, _, on_state, clock = _make_scheduler()
        s.reset_timer()
        assert clock.pending == 0
        assert s.is_active is False
        on_state.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_timer_during_step_is_noop(self):
        gate = _Gate()
        s, _, _, clock = _make_scheduler(on_step=gate)
        task = asyncio.create_task(s.start(FIVE_S))
        await asyncio.sleep(0)

        s.reset_timer()
        assert clock.pending == 1         # only the placeholder

        gate.release()
        await task
        assert clock.pending == 1
        await clock.advance(5.0)
        assert len(gate.calls) == 2

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_in_flight_step(self):
        gate = _Gate()
        s, _, on_state, clock = _make_scheduler(on_step=gate)
        start_task = asyncio.create_task(s.start(FIVE_S))
        await asyncio.sleep(0)

        shutdown_task = asyncio.create_task(s.shutdown())
        await asyncio.sleep(0)
        assert s.is_active is False
        assert not shutdown_task.done()

        gate.release()
        await shutdown_task
        await start_task
        assert clock.pending == 0
        assert on_state.call_args_list == [call(True, FIVE_S), call(False, None)]

    @pytest.mark.asyncio
    async def test_shutdown_when_idle(self):
        s, _, on_state, _ = _make_scheduler()
        await s.shutdown()
        on_state.assert_not_called()


# ─────────────────────────────────────────────────────────────────────────────
# Configuration shapes
# ─────────────────────────────────────────────────────────────────────────────

class TestConfigurationShapes:

    @pytest.mark.asyncio
    async def test_bare_interval_passed_through(self):
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(3000)
        on_state.assert_called_once_with(True, 3000)
        on_step.assert_awaited_once_with(3000)
        await clock.advance(3.0)
        on_step.assert_awaited_with(3000)

    @pytest.mark.asyncio
    async def test_mapping_passed_through_by_identity(self):
        cfg = {"interval_ms": 1000, "show_bar": True, "theme": "dark"}
        s, on_step, on_state, clock = _make_scheduler()
        await s.start(cfg)
        await clock.advance(1.0)
        assert on_state.call_args.args[1] is cfg
        assert all(c.args[0] is cfg for c in on_step.await_args_list)
        assert cfg == {"interval_ms": 1000, "show_bar": True, "theme": "dark"}

    def test_interval_ms_of_shapes(self):
        assert interval_ms_of(2500) == 2500
        assert interval_ms_of({"interval_ms": 10}) == 10
        assert interval_ms_of(WalkConfig(interval_ms=7)) == 7
        assert interval_ms_of(SimpleNamespace(interval_ms=42)) == 42

    def test_interval_ms_of_rejects_bool(self):
        with pytest.raises(TypeError):
            interval_ms_of(True)

    def test_walk_config_is_frozen(self):
        cfg = WalkConfig(interval_ms=1000)
        with pytest.raises(AttributeError):
            cfg.interval_ms = 5  # type: ignore[misc]
        assert cfg.interval_s == 1.0
        assert cfg.show_timer_bar is False

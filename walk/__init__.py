"""
walk/ — Ergodic Walk Core

Public API:
    from walk import WalkScheduler, WalkConfig

Component overview:
    WalkScheduler   Single-walk recurring scheduler (start / stop / force_next / reset_timer)
    WalkConfig      Interval plus opaque display hints for one walk
    LoopClock       asyncio-backed timer source (default)
    ManualClock     Logical-time timer source for tests and deterministic hosts
"""

from walk.clock import Clock, LoopClock, ManualClock, TimerHandle
from walk.scheduler import WalkConfig, WalkScheduler, interval_ms_of

__all__ = [
    "WalkScheduler",
    "WalkConfig",
    "interval_ms_of",
    "Clock",
    "TimerHandle",
    "LoopClock",
    "ManualClock",
]

"""
timer-core: Count-up timer engine with pause/resume and subtimers

A finite-state clock that tracks elapsed running time, publishes
elapsed-time updates to a single consumer while it runs, and keeps a pool
of numbered subtimers that record split times against the parent clock.

Lifecycle:
    STOPPED → RESET → RUNNING ⇄ PAUSED → STOPPED

Usage:
    from timer_core import Timer

    timer = Timer()
    timer.reset_timer()
    timer.start_timer()
    while True:
        print(timer.updates.get())

Version: 1.0.0
"""

__version__ = "1.0.0"

from .interfaces.timer_types import (
    DEFAULT_TICK_INTERVAL_MS,
    DEFAULT_UPDATE_INTERVAL_MS,
    TimerState,
    TimerConfig,
    TimerStatus,
    SubTimer,
    TimerError,
    InvalidStateTransition,
    InvalidConfigValue,
    DuplicateIdentifier,
    UnknownIdentifier,
)
from .engine.timer_engine import Timer

__all__ = [
    "Timer",
    "TimerState",
    "TimerConfig",
    "TimerStatus",
    "SubTimer",
    "TimerError",
    "InvalidStateTransition",
    "InvalidConfigValue",
    "DuplicateIdentifier",
    "UnknownIdentifier",
    "DEFAULT_TICK_INTERVAL_MS",
    "DEFAULT_UPDATE_INTERVAL_MS",
    "__version__",
]

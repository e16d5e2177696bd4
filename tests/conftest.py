"""
Pytest configuration and fixtures for timer-core tests.
"""

import queue
import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from timer_core.engine.timer_engine import Timer
from timer_core.interfaces.timer_types import TimerConfig, TimerState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def _stop_if_active(timer):
    if timer.state in (TimerState.RUNNING, TimerState.PAUSED):
        timer.stop_timer()


@pytest.fixture
def clock():
    """Fake clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def make_timer(clock):
    """
    Factory for timers on the fake clock.

    Ticks are slow (1 s) so emission loops stay idle while tests move the
    clock by hand. Timers left running are stopped at teardown.
    """
    timers = []

    def factory(**config):
        config.setdefault('tick_interval_ms', 1000)
        config.setdefault('update_interval_ms', 1000)
        timer = Timer(TimerConfig(**config), clock=clock)
        timers.append(timer)
        return timer

    yield factory

    for timer in timers:
        _stop_if_active(timer)


@pytest.fixture
def live_timer():
    """Timer on the real clock with the default 10 ms cadence, already RESET."""
    timer = Timer()
    timer.reset_timer()
    yield timer
    _stop_if_active(timer)


@pytest.fixture
def drain():
    """Return a helper that empties a queue and returns its contents."""
    def _drain(q: queue.Queue) -> list:
        items = []
        while True:
            try:
                items.append(q.get_nowait())
            except queue.Empty:
                return items
    return _drain

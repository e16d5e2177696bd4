"""
Tests for the subtimer registry and its coupling to the parent timer.
"""

import time

import pytest

from timer_core.engine.subtimers import SubTimerRegistry
from timer_core.engine.timer_engine import Timer
from timer_core.interfaces.timer_types import (
    DuplicateIdentifier,
    InvalidStateTransition,
    SubTimer,
    TimerConfig,
    TimerState,
    UnknownIdentifier,
)


class TestSubTimerRegistry:
    """Test SubTimerRegistry on its own."""

    def test_add_creates_reset_record(self):
        registry = SubTimerRegistry()

        sub = registry.add(3)

        assert sub.state == TimerState.RESET
        assert sub.elapsed == 0.0
        assert 3 in registry
        assert registry.ids() == [3]

    def test_duplicate_rejected(self):
        registry = SubTimerRegistry()
        registry.add(1)

        with pytest.raises(DuplicateIdentifier) as exc_info:
            registry.add(1)

        assert exc_info.value.sub_id == 1
        assert len(registry) == 1

    def test_get_unknown(self):
        registry = SubTimerRegistry()

        with pytest.raises(UnknownIdentifier, match="does not exist"):
            registry.get(42)

    def test_start_all(self):
        registry = SubTimerRegistry()
        registry.add(1)
        registry.add(2)

        registry.start_all()

        assert all(registry.get(i).state == TimerState.RUNNING for i in (1, 2))

    def test_start_all_empty_is_noop(self):
        registry = SubTimerRegistry()
        registry.start_all()
        assert len(registry) == 0

    def test_stop_records_elapsed(self):
        registry = SubTimerRegistry()
        registry.add(1)
        registry.start_all()

        assert registry.stop(1, 2.5) == 2.5
        assert registry.get(1).state == TimerState.STOPPED
        assert registry.get(1).elapsed == 2.5

    def test_stop_twice_keeps_first_time(self):
        registry = SubTimerRegistry()
        registry.add(1)
        registry.start_all()
        registry.stop(1, 2.5)

        assert registry.stop(1, 9.0) == 2.5

    def test_listener_fires_when_pool_completes(self):
        events = []
        registry = SubTimerRegistry()
        registry.on_all_stopped = lambda: events.append('done')
        registry.add(1)
        registry.add(2)
        registry.start_all()

        registry.stop(2, 1.0)
        assert events == []

        registry.stop(1, 2.0)
        assert events == ['done']

        registry.stop(1, 3.0)
        assert events == ['done']

    def test_all_stopped_false_when_empty(self):
        assert not SubTimerRegistry().all_stopped()


class TestSubTimerAdmission:
    """Test Timer.add_sub_timer."""

    @pytest.mark.parametrize("setup", ['stopped', 'running', 'paused'])
    def test_only_while_reset(self, make_timer, setup):
        timer = make_timer()
        if setup != 'stopped':
            timer.reset_timer()
            timer.start_timer()
        if setup == 'paused':
            timer.pause_timer()

        with pytest.raises(InvalidStateTransition):
            timer.add_sub_timer(1)

        assert len(timer.subtimers) == 0

    def test_duplicate_in_same_generation(self, make_timer):
        timer = make_timer()
        timer.reset_timer()
        timer.add_sub_timer(1)

        with pytest.raises(DuplicateIdentifier):
            timer.add_sub_timer(1)

        timer.add_sub_timer(2)
        assert sorted(timer.subtimers) == [1, 2]

    def test_ids_reusable_after_reset(self, make_timer):
        timer = make_timer()
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.start_timer()
        timer.stop_timer()
        timer.reset_timer()

        assert len(timer.subtimers) == 0
        timer.add_sub_timer(1)
        assert timer.subtimers[1].state == TimerState.RESET

    def test_accessor_is_a_copy(self, make_timer):
        """Changing the returned mapping cannot register a subtimer."""
        timer = make_timer()
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.start_timer()

        view = timer.subtimers
        view[5] = SubTimer()
        view[1].state = TimerState.STOPPED
        del view[1]

        assert sorted(timer.subtimers) == [1]
        assert timer.subtimers[1].state == TimerState.RUNNING
        assert not hasattr(timer.subtimers, 'add')
        with pytest.raises(InvalidStateTransition):
            timer.add_sub_timer(5)
        with pytest.raises(UnknownIdentifier):
            timer.stop_sub_timer(5)

    def test_start_runs_subtimers(self, make_timer):
        timer = make_timer()
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.add_sub_timer(2)

        timer.start_timer()

        assert timer.subtimers[1].state == TimerState.RUNNING
        assert timer.subtimers[2].state == TimerState.RUNNING


class TestStopSubTimer:
    """Test Timer.stop_sub_timer."""

    def test_unknown_id(self, make_timer):
        timer = make_timer()
        timer.reset_timer()
        timer.start_timer()

        with pytest.raises(UnknownIdentifier):
            timer.stop_sub_timer(5)

        assert timer.state == TimerState.RUNNING

    def test_returns_parent_elapsed(self, make_timer, clock):
        timer = make_timer()
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.add_sub_timer(2)
        timer.start_timer()

        clock.advance(1.5)
        first = timer.stop_sub_timer(1)
        clock.advance(2.0)
        second = timer.stop_sub_timer(2)

        assert first == pytest.approx(1.5)
        assert second == pytest.approx(3.5)
        assert timer.subtimers[1].elapsed == pytest.approx(1.5)

    def test_stop_while_paused_uses_frozen_elapsed(self, make_timer, clock):
        timer = make_timer()
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.add_sub_timer(2)
        timer.start_timer()
        clock.advance(2.0)
        timer.pause_timer()
        clock.advance(30.0)

        assert timer.stop_sub_timer(1) == pytest.approx(2.0)


class TestStopOnSubtimersFinish:
    """Test the subtimer -> parent stop feedback."""

    @pytest.mark.parametrize("order", [(1, 2), (2, 1)])
    def test_parent_stops_after_last_subtimer(self, make_timer, clock, monkeypatch, order):
        timer = make_timer(stop_on_subtimers_finish=True)
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.add_sub_timer(2)
        timer.start_timer()

        stops = []
        real_stop = Timer._stop_locked

        def counting_stop(self):
            stops.append(self.state)
            return real_stop(self)

        monkeypatch.setattr(Timer, '_stop_locked', counting_stop)

        clock.advance(1.0)
        timer.stop_sub_timer(order[0])
        assert timer.state == TimerState.RUNNING

        clock.advance(1.0)
        final = timer.stop_sub_timer(order[1])

        assert timer.state == TimerState.STOPPED
        assert len(stops) == 1
        assert final == pytest.approx(2.0)
        assert timer.elapsed == pytest.approx(2.0)
        assert not timer.loop_running

    def test_repeated_stop_after_finish_is_harmless(self, make_timer):
        timer = make_timer(stop_on_subtimers_finish=True)
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.start_timer()
        timer.stop_sub_timer(1)
        assert timer.state == TimerState.STOPPED

        timer.stop_sub_timer(1)

        assert timer.state == TimerState.STOPPED

    def test_parent_keeps_running_without_flag(self, make_timer):
        timer = make_timer()
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.add_sub_timer(2)
        timer.start_timer()

        timer.stop_sub_timer(1)
        timer.stop_sub_timer(2)

        assert timer.state == TimerState.RUNNING
        assert all(sub.stopped for sub in timer.subtimers.values())

    def test_paused_parent_is_stopped(self, make_timer, clock):
        timer = make_timer(stop_on_subtimers_finish=True)
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.start_timer()
        clock.advance(1.0)
        timer.pause_timer()

        timer.stop_sub_timer(1)

        assert timer.state == TimerState.STOPPED
        assert timer.elapsed == pytest.approx(1.0)

    def test_no_feedback_before_start(self, make_timer):
        timer = make_timer(stop_on_subtimers_finish=True)
        timer.reset_timer()
        timer.add_sub_timer(1)

        assert timer.stop_sub_timer(1) == 0.0
        assert timer.state == TimerState.RESET

    def test_live_timer_stops_on_last_split(self, drain):
        timer = Timer(TimerConfig(stop_on_subtimers_finish=True))
        timer.reset_timer()
        timer.add_sub_timer(1)
        timer.add_sub_timer(2)
        timer.start_timer()
        time.sleep(0.05)
        drain(timer.updates)
        first = timer.stop_sub_timer(1)
        time.sleep(0.05)
        drain(timer.updates)
        second = timer.stop_sub_timer(2)

        assert second > first > 0
        assert timer.state == TimerState.STOPPED
        assert not timer.loop_running

#!/usr/bin/env python3
"""
Timer Engine - state machine, clock bookkeeping and update emission.

State machine:
    reset    STOPPED           -> RESET
    start    RESET             -> RUNNING
    pause    RUNNING           -> PAUSED
    resume   PAUSED            -> RUNNING
    resume   STOPPED           -> RUNNING   (allow_resume_after_stop only)
    stop     RUNNING | PAUSED  -> STOPPED

    A new Timer starts out STOPPED and must be reset before the first start.
    Every operation checks the transition table before touching any field;
    an illegal operation raises InvalidStateTransition and changes nothing.

Clock:
    elapsed = now - start_time while RUNNING, frozen otherwise.
    Resuming from PAUSED shifts start_time forward by the paused interval,
    so elapsed never includes time spent paused.

Concurrency:
    One RLock guards state, clock fields, elapsed and the subtimer registry.
    The emission loop only takes the lock to sample. Loops are joined
    outside the lock, after the transition that retired them.
"""

import logging
import queue
import threading
import time
from typing import Callable, Dict, FrozenSet, Optional, Tuple

from .emission_loop import EmissionLoop
from .subtimers import SubTimerRegistry
from ..interfaces.timer_types import (
    DEFAULT_UPDATE_INTERVAL_MS,
    SubTimer,
    TimerConfig,
    TimerOperation,
    TimerState,
    TimerStatus,
    InvalidConfigValue,
    InvalidStateTransition,
)

logger = logging.getLogger('timer-core.engine')


# operation -> (allowed source states, target state)
TRANSITIONS: Dict[TimerOperation, Tuple[FrozenSet[TimerState], TimerState]] = {
    TimerOperation.RESET: (frozenset({TimerState.STOPPED}), TimerState.RESET),
    TimerOperation.START: (frozenset({TimerState.RESET}), TimerState.RUNNING),
    TimerOperation.PAUSE: (frozenset({TimerState.RUNNING}), TimerState.PAUSED),
    TimerOperation.RESUME: (
        frozenset({TimerState.PAUSED, TimerState.STOPPED}), TimerState.RUNNING
    ),
    TimerOperation.STOP: (
        frozenset({TimerState.RUNNING, TimerState.PAUSED}), TimerState.STOPPED
    ),
}


class Timer:
    """
    Count-up timer with pause/resume, an update stream and subtimers.

    Consumers read elapsed seconds from ``updates`` while the timer runs.
    The queue holds a single value; the emission loop blocks until it is
    read, so callers must keep draining it while the timer is RUNNING.
    """

    def __init__(
        self,
        config: Optional[TimerConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize a timer in STOPPED state.

        Args:
            config: Policy switches and cadences (defaults if None)
            clock: Monotonic time source in seconds
        """
        self.config = config or TimerConfig()
        self._clock = clock
        self._lock = threading.RLock()

        self._state = TimerState.STOPPED
        self._start_time = 0.0
        self._pause_time: Optional[float] = None
        self._stop_time: Optional[float] = None
        self._elapsed = 0.0

        self._tick_interval_ms = self.config.tick_interval_ms
        self._update_interval_ms = self.config.update_interval_ms

        self._subtimers = self._new_registry()
        self._subtimers_finished = False

        self.updates: queue.Queue = queue.Queue(maxsize=1)
        self._loop: Optional[EmissionLoop] = None
        self._generation = 0

        self.stats = {
            'runs': 0,
            'updates_emitted': 0,
            'loops_spawned': 0,
        }

    def __repr__(self):
        return f"<Timer state={self.state.value} elapsed={self.elapsed:.3f}s>"

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> TimerState:
        with self._lock:
            return self._state

    @property
    def elapsed(self) -> float:
        """Last computed elapsed time in seconds."""
        with self._lock:
            return self._elapsed

    @property
    def tick_interval_ms(self) -> int:
        return self._tick_interval_ms

    @property
    def update_interval_ms(self) -> int:
        with self._lock:
            return self._update_interval_ms

    @property
    def loop_running(self) -> bool:
        """True while an emission loop thread is alive."""
        with self._lock:
            return self._loop is not None and self._loop.running

    @property
    def subtimers(self) -> Dict[int, SubTimer]:
        """Copies of the current subtimer records, keyed by id."""
        with self._lock:
            return self._subtimers.snapshot()

    def get_status(self) -> TimerStatus:
        """Consistent snapshot of the timer for reporting. Read-only."""
        with self._lock:
            if self._state == TimerState.RUNNING:
                elapsed = self._clock() - self._start_time
            else:
                elapsed = self._elapsed
            return TimerStatus(
                state=self._state,
                elapsed=elapsed,
                tick_interval_ms=self._tick_interval_ms,
                update_interval_ms=self._update_interval_ms,
                runs=self.stats['runs'],
                updates_emitted=self.stats['updates_emitted'],
                loops_spawned=self.stats['loops_spawned'],
                subtimers=self._subtimers.snapshot(),
            )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_update_interval(self, interval_ms: int):
        """
        Set the update cadence used by the next run.

        Only allowed while STOPPED. Zero restores the default cadence.

        Raises:
            InvalidStateTransition: timer is not STOPPED
            InvalidConfigValue: interval_ms is negative
        """
        with self._lock:
            if self._state != TimerState.STOPPED:
                logger.debug(f"Rejected update interval change: timer is {self._state.value}")
                raise InvalidStateTransition(
                    "change update interval", self._state, "timer must be STOPPED"
                )
            if interval_ms < 0:
                raise InvalidConfigValue(
                    f"Update interval must not be negative, got {interval_ms}"
                )
            self._update_interval_ms = interval_ms or DEFAULT_UPDATE_INTERVAL_MS
            logger.info(f"Update interval set to {self._update_interval_ms}ms")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def reset_timer(self):
        """STOPPED -> RESET. Discards all subtimers and the elapsed time."""
        with self._lock:
            self._check_transition(TimerOperation.RESET)
            loop = self._retire_loop()
            self._subtimers = self._new_registry()
            self._subtimers_finished = False
            self._start_time = 0.0
            self._pause_time = None
            self._stop_time = None
            self._elapsed = 0.0
            self._state = TimerState.RESET
            self._drain_updates()
        self._join(loop)
        logger.info("Timer reset")

    def start_timer(self):
        """RESET -> RUNNING. Starts all subtimers and the emission loop."""
        with self._lock:
            self._check_transition(TimerOperation.START)
            self._start_time = self._clock()
            self._elapsed = 0.0
            self._state = TimerState.RUNNING
            self._subtimers.start_all()
            self.stats['runs'] += 1
            self._spawn_loop()
            n_subtimers = len(self._subtimers)
        logger.info(f"Timer started ({n_subtimers} subtimers)")

    def pause_timer(self):
        """RUNNING -> PAUSED. Freezes elapsed and stops the emission loop."""
        with self._lock:
            self._check_transition(TimerOperation.PAUSE)
            self._pause_time = self._clock()
            self._elapsed = self._pause_time - self._start_time
            self._state = TimerState.PAUSED
            loop = self._retire_loop()
            elapsed = self._elapsed
        self._join(loop)
        logger.info(f"Timer paused at {elapsed:.3f}s")

    def resume_timer(self):
        """
        PAUSED -> RUNNING, or STOPPED -> RUNNING if allow_resume_after_stop.

        From PAUSED the paused interval is excluded from elapsed. From
        STOPPED the frozen elapsed time is kept, and the stopped interval
        is added on top when continue_counting_when_stopped is set.
        """
        with self._lock:
            self._check_transition(TimerOperation.RESUME)
            now = self._clock()
            if self._state == TimerState.PAUSED:
                self._start_time += now - self._pause_time
                self._pause_time = None
            elif self.config.continue_counting_when_stopped and self._stop_time is not None:
                self._start_time = self._stop_time - self._elapsed
            else:
                self._start_time = now - self._elapsed
            self._stop_time = None
            self._state = TimerState.RUNNING
            self._spawn_loop()
            elapsed = self._refresh_elapsed()
        logger.info(f"Timer resumed at {elapsed:.3f}s")

    def stop_timer(self):
        """RUNNING or PAUSED -> STOPPED. Freezes elapsed and stops the emission loop."""
        with self._lock:
            loop = self._stop_locked()
            elapsed = self._elapsed
        self._join(loop)
        logger.info(f"Timer stopped at {elapsed:.3f}s")

    # ------------------------------------------------------------------
    # Subtimers
    # ------------------------------------------------------------------

    def add_sub_timer(self, sub_id: int):
        """
        Register a subtimer. Only allowed while the timer is RESET.

        Raises:
            InvalidStateTransition: timer is not RESET
            DuplicateIdentifier: sub_id is already registered
        """
        with self._lock:
            if self._state != TimerState.RESET:
                logger.debug(f"Rejected subtimer {sub_id}: timer is {self._state.value}")
                raise InvalidStateTransition(
                    "add subtimer", self._state, "timer must be RESET"
                )
            self._subtimers.add(sub_id)

    def stop_sub_timer(self, sub_id: int) -> float:
        """
        Stop a subtimer and return the timer's elapsed time at that moment.

        If stop_on_subtimers_finish is set and this was the last running
        subtimer, the timer itself is stopped as well.

        Raises:
            UnknownIdentifier: sub_id is not registered
        """
        loop = None
        auto_stopped = False
        with self._lock:
            self._subtimers_finished = False
            if self._state == TimerState.RUNNING:
                self._refresh_elapsed()
            elapsed = self._subtimers.stop(sub_id, self._elapsed)
            if self._subtimers_finished:
                self._subtimers_finished = False
                auto_stopped = self._should_stop_on_finish()
                if auto_stopped:
                    loop = self._stop_locked()
        self._join(loop)
        if auto_stopped:
            logger.info(f"All subtimers finished, timer stopped at {elapsed:.3f}s")
        return elapsed

    # ------------------------------------------------------------------
    # Internals (lock held unless noted)
    # ------------------------------------------------------------------

    def _check_transition(self, operation: TimerOperation) -> TimerState:
        allowed, target = TRANSITIONS[operation]
        if self._state not in allowed:
            logger.debug(f"Rejected {operation.value}: timer is {self._state.value}")
            raise InvalidStateTransition(operation.value, self._state)
        if (operation == TimerOperation.RESUME and self._state == TimerState.STOPPED
                and not self.config.allow_resume_after_stop):
            logger.debug("Rejected resume: resume after stop is disabled")
            raise InvalidStateTransition(
                operation.value, self._state, "resume after stop is disabled"
            )
        return target

    def _stop_locked(self) -> Optional[EmissionLoop]:
        self._check_transition(TimerOperation.STOP)
        now = self._clock()
        if self._state == TimerState.RUNNING:
            self._elapsed = now - self._start_time
        self._pause_time = None
        self._stop_time = now
        self._state = TimerState.STOPPED
        return self._retire_loop()

    def _refresh_elapsed(self) -> float:
        self._elapsed = self._clock() - self._start_time
        return self._elapsed

    def _new_registry(self) -> SubTimerRegistry:
        registry = SubTimerRegistry()
        registry.on_all_stopped = self._handle_all_stopped
        return registry

    def _handle_all_stopped(self):
        # Recorded here, consumed by stop_sub_timer once the registry returns
        self._subtimers_finished = True

    def _should_stop_on_finish(self) -> bool:
        if not self.config.stop_on_subtimers_finish:
            logger.debug("All subtimers finished")
            return False
        allowed, _ = TRANSITIONS[TimerOperation.STOP]
        if self._state not in allowed:
            logger.debug(f"All subtimers finished while timer is {self._state.value}")
            return False
        return True

    def _sample(self, generation: int) -> Optional[float]:
        """Emission loop callback. Takes the lock itself."""
        with self._lock:
            if generation != self._generation or self._state != TimerState.RUNNING:
                return None
            return self._refresh_elapsed()

    def _count_update(self, elapsed: float):
        with self._lock:
            self.stats['updates_emitted'] += 1

    def _spawn_loop(self):
        self._generation += 1
        generation = self._generation
        self._loop = EmissionLoop(
            sample=lambda: self._sample(generation),
            updates=self.updates,
            tick_interval_ms=self._tick_interval_ms,
            update_interval_ms=self._update_interval_ms,
            on_emit=self._count_update,
            name=f"EmissionLoop-{generation}"
        )
        self._loop.start()
        self.stats['loops_spawned'] += 1

    def _retire_loop(self) -> Optional[EmissionLoop]:
        loop, self._loop = self._loop, None
        if loop is not None:
            loop.stop()
        return loop

    def _join(self, loop: Optional[EmissionLoop]):
        """Wait for a retired loop. Called without the lock held."""
        if loop is not None:
            loop.join(timeout=max(1.0, 5 * self._tick_interval_ms / 1000.0))

    def _drain_updates(self):
        while True:
            try:
                self.updates.get_nowait()
            except queue.Empty:
                return

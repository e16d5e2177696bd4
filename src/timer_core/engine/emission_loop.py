"""
Emission Loop - publishes elapsed time while a timer runs.

One loop instance lives for exactly one Running period. The Timer spawns a
fresh instance on start and on every resume, and stops and joins it on every
transition out of Running.

Tick driver:
    The loop waits on its own stop event with the tick interval as timeout.
    A timeout is a tick; the event being set is the cancellation signal, so
    a stopped loop wakes immediately instead of sleeping out the interval.

Hand-off:
    Samples go to a single-slot queue with a blocking put. A slow or absent
    reader stalls publication; the put polls the stop event once per tick so
    a stalled loop still exits promptly when cancelled.
"""

import logging
import math
import queue
import threading
from typing import Callable, Optional

logger = logging.getLogger('timer-core.emission')


class EmissionLoop:
    """Background thread sampling elapsed time and handing it to a consumer."""

    def __init__(
        self,
        sample: Callable[[], Optional[float]],
        updates: queue.Queue,
        tick_interval_ms: int,
        update_interval_ms: int,
        on_emit: Optional[Callable[[float], None]] = None,
        name: str = "EmissionLoop"
    ):
        """
        Args:
            sample: Returns the current elapsed time, or None if the timer
                is not running
            updates: Queue the samples are published on
            tick_interval_ms: Sampling cadence
            update_interval_ms: Minimum time between publications, rounded up
                to whole ticks
            on_emit: Called with each value after it was handed off
            name: Thread name
        """
        self._sample = sample
        self.updates = updates
        self.tick_interval = tick_interval_ms / 1000.0
        self.ticks_per_update = max(1, math.ceil(update_interval_ms / tick_interval_ms))
        self.on_emit = on_emit
        self.name = name

        self._stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None
        self.ticks = 0
        self.emitted = 0

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def start(self):
        """Start the loop thread. A loop instance can only be started once."""
        if self.thread is not None:
            raise RuntimeError(f"{self.name} already started")
        self.thread = threading.Thread(
            target=self._run,
            name=self.name,
            daemon=True
        )
        self.thread.start()

    def stop(self):
        """Signal the loop to exit. Does not wait; see join()."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the loop thread to exit.

        Returns True if the thread is gone. Joining from the loop thread
        itself is a no-op that returns False.
        """
        if self.thread is None:
            return True
        if self.thread is threading.current_thread():
            return False
        self.thread.join(timeout)
        if self.thread.is_alive():
            logger.warning(f"{self.name} did not exit within {timeout}s")
            return False
        return True

    def _run(self):
        logger.debug(
            f"{self.name} started (tick={self.tick_interval * 1000:.0f}ms, "
            f"every {self.ticks_per_update} ticks)"
        )

        while not self._stop_event.wait(self.tick_interval):
            self.ticks += 1
            elapsed = self._sample()
            if elapsed is None:
                continue
            if self.ticks % self.ticks_per_update:
                continue
            if not self._hand_off(elapsed):
                break
            self.emitted += 1
            if self.on_emit:
                self.on_emit(elapsed)

        logger.debug(f"{self.name} stopped after {self.ticks} ticks, {self.emitted} updates")

    def _hand_off(self, elapsed: float) -> bool:
        """Blocking put that gives up only when the loop is cancelled."""
        while not self._stop_event.is_set():
            try:
                self.updates.put(elapsed, timeout=self.tick_interval)
                return True
            except queue.Full:
                continue
        return False

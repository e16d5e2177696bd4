"""
Subtimer Registry

Holds the subtimers of one timer generation. The registry is owned by the
Timer, which replaces it with a fresh instance on every reset, and it is
only touched while the Timer's lock is held.

The registry never drives the parent. When a stop leaves every registered
subtimer STOPPED it notifies ``on_all_stopped``; the Timer decides what to
do with that event.
"""

import logging
from typing import Callable, Dict, Iterator, List, Optional

from ..interfaces.timer_types import (
    SubTimer,
    TimerState,
    DuplicateIdentifier,
    UnknownIdentifier,
)

logger = logging.getLogger('timer-core.subtimers')


class SubTimerRegistry:
    """Mapping of caller-chosen integer ids to SubTimer records."""

    def __init__(self):
        self._subtimers: Dict[int, SubTimer] = {}

        # Called once each time a stop completes the whole pool
        self.on_all_stopped: Optional[Callable[[], None]] = None

    def __len__(self) -> int:
        return len(self._subtimers)

    def __contains__(self, sub_id: int) -> bool:
        return sub_id in self._subtimers

    def __iter__(self) -> Iterator[int]:
        return iter(self._subtimers)

    def ids(self) -> List[int]:
        return list(self._subtimers)

    def get(self, sub_id: int) -> SubTimer:
        """Return the record for ``sub_id`` or raise UnknownIdentifier."""
        try:
            return self._subtimers[sub_id]
        except KeyError:
            raise UnknownIdentifier(sub_id) from None

    def add(self, sub_id: int) -> SubTimer:
        """Register a new subtimer in RESET state."""
        if sub_id in self._subtimers:
            raise DuplicateIdentifier(sub_id)
        sub = SubTimer()
        self._subtimers[sub_id] = sub
        logger.debug(f"Subtimer {sub_id} added")
        return sub

    def start_all(self):
        """Move every RESET subtimer to RUNNING."""
        if not self._subtimers:
            return
        for sub in self._subtimers.values():
            if sub.state == TimerState.RESET:
                sub.state = TimerState.RUNNING
        logger.debug(f"Started {len(self._subtimers)} subtimers")

    def stop(self, sub_id: int, elapsed: float) -> float:
        """
        Stop a subtimer and record the parent's elapsed time.

        Stopping a subtimer that is already STOPPED returns its recorded
        time and changes nothing.

        Args:
            sub_id: Subtimer id
            elapsed: Parent elapsed time (seconds) at the moment of the stop

        Returns:
            The subtimer's recorded elapsed time
        """
        sub = self.get(sub_id)
        if sub.stopped:
            return sub.elapsed

        sub.state = TimerState.STOPPED
        sub.elapsed = elapsed
        logger.info(f"Subtimer {sub_id} stopped at {elapsed:.3f}s")

        if self.all_stopped() and self.on_all_stopped:
            self.on_all_stopped()

        return sub.elapsed

    def all_stopped(self) -> bool:
        """True if the registry is non-empty and every subtimer is STOPPED."""
        return bool(self._subtimers) and all(
            sub.stopped for sub in self._subtimers.values()
        )

    def snapshot(self) -> Dict[int, SubTimer]:
        """Copies of all records, safe to hand out of the lock."""
        return {
            sub_id: SubTimer(state=sub.state, elapsed=sub.elapsed)
            for sub_id, sub in self._subtimers.items()
        }

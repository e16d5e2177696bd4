"""
Timer Data Models

These types define the contract between the timer engine and its consumers
(the CLI, the health server, and any application reading the update stream).

Durations are float seconds on the engine's monotonic clock.
Intervals are integer milliseconds.
"""

from dataclasses import dataclass, field, asdict, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional

DEFAULT_TICK_INTERVAL_MS = 10
DEFAULT_UPDATE_INTERVAL_MS = 10


class TimerState(str, Enum):
    """Timer lifecycle state."""
    RESET = "RESET"        # Initialized, subtimers may be added
    RUNNING = "RUNNING"    # Counting, emitting updates
    PAUSED = "PAUSED"      # Frozen, resumable
    STOPPED = "STOPPED"    # Frozen, must be reset before the next start


class TimerOperation(str, Enum):
    """Public transitions of the timer state machine."""
    RESET = "reset"
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"


class TimerError(Exception):
    """Base class for all timer errors."""


class InvalidStateTransition(TimerError):
    """Operation is not legal in the timer's current state."""

    def __init__(self, operation: str, state: TimerState, detail: str = ""):
        self.operation = operation
        self.state = state
        message = f"Cannot {operation} while timer is {state.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InvalidConfigValue(TimerError):
    """A configuration value is out of range."""


class DuplicateIdentifier(TimerError):
    """A subtimer with this id is already registered."""

    def __init__(self, sub_id: int):
        self.sub_id = sub_id
        super().__init__(f"Subtimer with id {sub_id} already exists")


class UnknownIdentifier(TimerError):
    """No subtimer with this id is registered."""

    def __init__(self, sub_id: int):
        self.sub_id = sub_id
        super().__init__(f"Subtimer with id {sub_id} does not exist")


@dataclass(frozen=True)
class TimerConfig:
    """
    Policy switches and cadences fixed when the timer is constructed.

    The update interval can still be changed later through
    Timer.set_update_interval(); this holds its initial value.
    """
    allow_resume_after_stop: bool = False
    continue_counting_when_stopped: bool = False
    stop_on_subtimers_finish: bool = False
    tick_interval_ms: int = DEFAULT_TICK_INTERVAL_MS
    update_interval_ms: int = DEFAULT_UPDATE_INTERVAL_MS

    def __post_init__(self):
        for name in ('allow_resume_after_stop', 'continue_counting_when_stopped',
                     'stop_on_subtimers_finish'):
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise InvalidConfigValue(f"{name} must be true or false, got {value!r}")
        for name in ('tick_interval_ms', 'update_interval_ms'):
            value = getattr(self, name)
            # bool is an int subclass; a flag here is a typo
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigValue(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise InvalidConfigValue(f"{name} must be positive, got {value}")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> 'TimerConfig':
        """Build a config from a [timer] table, ignoring unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SubTimer:
    """A secondary timer record bound to the parent's elapsed clock."""
    state: TimerState = TimerState.RESET   # RESET, RUNNING or STOPPED
    elapsed: float = 0.0                   # Parent elapsed when stopped

    @property
    def stopped(self) -> bool:
        return self.state == TimerState.STOPPED

    def to_dict(self) -> dict:
        return {'state': self.state.value, 'elapsed': self.elapsed}


@dataclass
class TimerStatus:
    """Point-in-time snapshot of a timer, used by the health server."""
    state: TimerState
    elapsed: float
    tick_interval_ms: int
    update_interval_ms: int
    runs: int = 0
    updates_emitted: int = 0
    loops_spawned: int = 0
    subtimers: Dict[int, SubTimer] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'state': self.state.value,
            'elapsed_seconds': self.elapsed,
            'tick_interval_ms': self.tick_interval_ms,
            'update_interval_ms': self.update_interval_ms,
            'runs': self.runs,
            'updates_emitted': self.updates_emitted,
            'loops_spawned': self.loops_spawned,
            'subtimers': {
                str(sub_id): sub.to_dict() for sub_id, sub in self.subtimers.items()
            },
        }

"""Timer data models and error taxonomy."""

from .timer_types import (
    DEFAULT_TICK_INTERVAL_MS,
    DEFAULT_UPDATE_INTERVAL_MS,
    TimerState,
    TimerOperation,
    TimerConfig,
    TimerStatus,
    SubTimer,
    TimerError,
    InvalidStateTransition,
    InvalidConfigValue,
    DuplicateIdentifier,
    UnknownIdentifier,
)

__all__ = [
    'DEFAULT_TICK_INTERVAL_MS',
    'DEFAULT_UPDATE_INTERVAL_MS',
    'TimerState',
    'TimerOperation',
    'TimerConfig',
    'TimerStatus',
    'SubTimer',
    'TimerError',
    'InvalidStateTransition',
    'InvalidConfigValue',
    'DuplicateIdentifier',
    'UnknownIdentifier',
]

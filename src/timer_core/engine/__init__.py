"""Timer engine - state machine, emission loop and subtimer registry.

Contains:
- Timer: the state machine and public transition operations
- EmissionLoop: one background thread per Running period
- SubTimerRegistry: subtimers of one reset generation
"""

from .timer_engine import Timer, TRANSITIONS
from .emission_loop import EmissionLoop
from .subtimers import SubTimerRegistry

__all__ = ['Timer', 'TRANSITIONS', 'EmissionLoop', 'SubTimerRegistry']

"""
Delivery: scheduling, persistence and the terminal front-end.

Components:
- SM2Scheduler: Spaced repetition algorithm
- ReviewScheduler: SM-2 updates against the state store
- StateStore: SQLite persistence
- quiz_cli: Typer/Rich terminal interface (imported on demand)
"""

from .scheduler import ReviewScheduler, SM2Config, SM2Scheduler
from .state_store import AttemptRecord, ReviewEvent, SchedulingState, StateStore

__all__ = [
    # Persistence
    "StateStore",
    "SchedulingState",
    "ReviewEvent",
    "AttemptRecord",
    # Scheduling
    "SM2Config",
    "SM2Scheduler",
    "ReviewScheduler",
]

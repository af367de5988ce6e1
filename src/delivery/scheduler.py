"""
SM-2 Spaced Repetition Scheduler.

Implements:
- SM-2 algorithm for review intervals (pure, no I/O)
- Store-backed review recording for scheduling state handed off
  from a finished quiz session

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from loguru import logger

from .state_store import MILLIS_PER_DAY, ReviewEvent, SchedulingState, StateStore

MIN_GRADE = 0
MAX_GRADE = 5


def _now_ms() -> int:
    return int(time.time() * 1000)

# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days after the first successful recall
    second_interval: int = 6  # Days after the second successful recall
    recall_threshold: int = 3  # Grades below this reset repetitions

    @classmethod
    def from_settings(cls, settings) -> SM2Config:
        return cls(
            initial_easiness=settings.sm2_initial_ease,
            minimum_easiness=settings.sm2_minimum_ease,
            recall_threshold=settings.sm2_recall_threshold,
        )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


class SM2Scheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    The SuperMemo 2 algorithm calculates review intervals from a recall
    grade and the previous state of the item:
    - Ease Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive successful recalls
    """

    def __init__(self, config: SM2Config | None = None):
        self.config = config or SM2Config()

    def initial_state(self, question_id: str, now_ms: int | None = None) -> SchedulingState:
        """State for a question that has never been graded."""
        now = _now_ms() if now_ms is None else now_ms
        return SchedulingState(
            question_id=question_id,
            interval_days=0,
            repetition_count=0,
            ease_factor=self.config.initial_easiness,
            next_review_at_ms=now,
        )

    def next_state(
        self,
        grade: int,
        previous: SchedulingState,
        now_ms: int | None = None,
    ) -> SchedulingState:
        """
        Calculate the next scheduling state for a grade.

        Args:
            grade: Recall grade (0-5)
            previous: State before this review
            now_ms: Review time in epoch milliseconds (defaults to now)

        Returns:
            New SchedulingState; ``previous`` is left untouched

        Raises:
            ValueError: If grade is outside 0-5
        """
        if isinstance(grade, bool) or not isinstance(grade, int):
            raise ValueError(f"SM-2 grade must be an integer, got {grade!r}")
        if not MIN_GRADE <= grade <= MAX_GRADE:
            raise ValueError(f"SM-2 grade must be between 0 and 5, got {grade}")

        now = _now_ms() if now_ms is None else now_ms
        ease = previous.ease_factor

        if grade >= self.config.recall_threshold:
            if previous.repetition_count == 0:
                interval = self.config.first_interval
            elif previous.repetition_count == 1:
                interval = self.config.second_interval
            else:
                interval = round_half_up(previous.interval_days * previous.ease_factor)
            repetitions = previous.repetition_count + 1
            # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
            ease = ease + (0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02))
        else:
            # Failed recall: start over, ease untouched
            repetitions = 0
            interval = self.config.first_interval

        ease = max(ease, self.config.minimum_easiness)

        return SchedulingState(
            question_id=previous.question_id,
            interval_days=interval,
            repetition_count=repetitions,
            ease_factor=ease,
            next_review_at_ms=now + interval * MILLIS_PER_DAY,
            last_reviewed_at_ms=now,
        )

    @staticmethod
    def binary_grade(is_correct: bool) -> int:
        """Map a right/wrong answer onto the grade scale (no partial credit)."""
        return MAX_GRADE if is_correct else MIN_GRADE


# =============================================================================
# Store-backed Review Scheduler
# =============================================================================


class ReviewScheduler:
    """
    Applies SM-2 updates against a StateStore.

    Used outside a quiz session (manual reviews) and to persist the
    scheduling state a finished session produced.
    """

    def __init__(self, store: StateStore, sm2: SM2Scheduler | None = None):
        self.store = store
        self.sm2 = sm2 or SM2Scheduler()

    def record_review(
        self,
        question_id: str,
        grade: int,
        now_ms: int | None = None,
    ) -> SchedulingState:
        """
        Record a review and update scheduling state.

        Returns:
            Updated SchedulingState
        """
        now = _now_ms() if now_ms is None else now_ms
        current = self.store.get_state(question_id) or self.sm2.initial_state(question_id, now)
        new_state = self.sm2.next_state(grade, current, now)

        self.store.save_state(new_state)
        self.store.log_review(ReviewEvent(question_id, grade, now))

        logger.debug(
            f"Recorded review for {question_id}: grade={grade}, "
            f"interval={new_state.interval_days}d, ef={new_state.ease_factor:.2f}"
        )
        return new_state

    def persist_session(
        self,
        states: Mapping[str, SchedulingState],
        history: Iterable[ReviewEvent],
    ) -> int:
        """
        Save the scheduling state and review events computed by a session.

        Returns:
            Number of states written
        """
        for state in states.values():
            self.store.save_state(state)
        for event in history:
            self.store.log_review(event)

        logger.info(f"Persisted scheduling state for {len(states)} questions")
        return len(states)

    def load_states(self, question_ids: Iterable[str]) -> dict[str, SchedulingState]:
        """Prior scheduling state to seed a new session with."""
        return self.store.get_states(question_ids)

    def due_question_ids(self, now_ms: int | None = None, limit: int = 100) -> list[str]:
        now = _now_ms() if now_ms is None else now_ms
        return self.store.get_due_question_ids(now, limit=limit)

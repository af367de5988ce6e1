"""
Quiz Session: state machine for a single quiz or exam attempt.

Owns the question cursor, the answer map and submission status, and
composes the grading resolver, SM-2 scheduler, exam clock and integrity
monitor.

States: IN_PROGRESS(cursor) -> SUBMITTED (terminal)

Every operation either applies fully or raises ActionRejected before
touching state. Clock ticks, infractions and force_submit() are inert
once the session is submitted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from types import MappingProxyType

from loguru import logger

from config import get_settings
from src.delivery.scheduler import SM2Scheduler
from src.delivery.state_store import ReviewEvent, SchedulingState

from .errors import ActionRejected, QuestionSetError, ResultNotReady
from .exam_clock import ExamClock
from .grading import DEFAULT_PASS_THRESHOLD, GradingResolver
from .integrity import IntegrityMonitor, IntegritySignal, SignalSource
from .models import (
    AnswerRecord,
    ChoiceAnswer,
    EssayAnswer,
    EssayEvidence,
    EssayQuestion,
    GradingStatus,
    Infraction,
    MultipleChoiceQuestion,
    Question,
    SessionMode,
    SessionResult,
    SessionStatus,
    current_millis,
)

# =============================================================================
# Configuration
# =============================================================================


@dataclass
class SessionConfig:
    """Per-session settings."""

    mode: SessionMode = SessionMode.PRACTICE
    time_limit_seconds: int | None = None  # Exam only; defaults per question
    seconds_per_question: int = 60
    immediate_learning: bool = False
    essay_pass_threshold: int = DEFAULT_PASS_THRESHOLD
    report_pass_accuracy: float = 70.0
    tick_interval: float = 1.0
    auto_clock: bool = True  # Start the asyncio ticker on start()

    def __post_init__(self) -> None:
        self.mode = SessionMode(self.mode)

    @classmethod
    def from_settings(cls, settings=None, **overrides) -> SessionConfig:
        """Build from application Settings, with explicit overrides."""
        settings = settings or get_settings()
        config = cls(
            seconds_per_question=settings.exam_seconds_per_question,
            immediate_learning=settings.immediate_learning,
            essay_pass_threshold=settings.essay_pass_threshold,
            report_pass_accuracy=settings.report_pass_accuracy,
        )
        return replace(config, **overrides)

    def exam_budget(self, question_count: int) -> int:
        if self.time_limit_seconds is not None:
            return max(0, self.time_limit_seconds)
        return question_count * self.seconds_per_question


# =============================================================================
# Session
# =============================================================================


class QuizSession:
    """
    Drives one attempt from the first question to the final score.

    Args:
        questions: Ordered questions; fixed for the session's lifetime
        config: Session settings (mode, time budget, thresholds)
        resolver: Grading resolver (offline essay grader if None)
        scheduler: SM-2 scheduler
        signals: Source of integrity signals, watched in exam mode
        on_complete: Called exactly once with the result on submission
        scheduling_states: Prior SM-2 state per question id
        now_ms: Clock in epoch milliseconds
    """

    def __init__(
        self,
        questions: Sequence[Question],
        config: SessionConfig | None = None,
        *,
        resolver: GradingResolver | None = None,
        scheduler: SM2Scheduler | None = None,
        signals: SignalSource | None = None,
        on_complete: Callable[[SessionResult], None] | None = None,
        scheduling_states: Mapping[str, SchedulingState] | None = None,
        now_ms: Callable[[], int] = current_millis,
        topic: str | None = None,
    ):
        if not questions:
            raise QuestionSetError("A session needs at least one question")
        ids = [q.id for q in questions]
        if len(set(ids)) != len(ids):
            raise QuestionSetError("Question ids must be unique within a session")

        self.config = config or SessionConfig()
        self.resolver = resolver or GradingResolver(
            pass_threshold=self.config.essay_pass_threshold
        )
        self.scheduler = scheduler or SM2Scheduler()
        self.on_complete = on_complete
        self.topic = topic
        self._now = now_ms

        self._questions: tuple[Question, ...] = tuple(questions)
        self._by_id: dict[str, Question] = {q.id: q for q in self._questions}

        self._cursor = 0
        self._status = SessionStatus.IN_PROGRESS
        self._answers: dict[str, AnswerRecord] = {}
        self._grading: dict[str, GradingStatus] = {}
        self._started_at_ms = self._now()

        self._remaining: int | None = None
        if self.is_exam:
            self._remaining = self.config.exam_budget(len(self._questions))
        self._infractions: list[Infraction] = []

        self._scheduling: dict[str, SchedulingState] = dict(scheduling_states or {})
        self._scheduled: set[str] = set()
        self._history: list[ReviewEvent] = []

        self._result: SessionResult | None = None
        self._timed_out = False

        self._clock = ExamClock(self.tick, interval=self.config.tick_interval)
        self._monitor = IntegrityMonitor(signals, self.record_infraction)

        logger.info(
            f"Quiz session created: {len(self._questions)} questions, "
            f"mode={self.config.mode.value}"
            + (f", {self._remaining}s budget" if self.is_exam else "")
        )

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def questions(self) -> tuple[Question, ...]:
        return self._questions

    @property
    def mode(self) -> SessionMode:
        return self.config.mode

    @property
    def is_exam(self) -> bool:
        return self.config.mode == SessionMode.EXAM

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def submitted(self) -> bool:
        return self._status == SessionStatus.SUBMITTED

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current_question(self) -> Question:
        return self._questions[self._cursor]

    @property
    def is_last_question(self) -> bool:
        return self._cursor == len(self._questions) - 1

    @property
    def answers(self) -> Mapping[str, AnswerRecord]:
        return MappingProxyType(self._answers)

    @property
    def remaining_seconds(self) -> int | None:
        return self._remaining

    @property
    def infraction_count(self) -> int:
        return len(self._infractions)

    @property
    def infractions(self) -> tuple[Infraction, ...]:
        return tuple(self._infractions)

    @property
    def started_at_ms(self) -> int:
        return self._started_at_ms

    @property
    def clock_running(self) -> bool:
        return self._clock.running

    @property
    def monitoring(self) -> bool:
        return self._monitor.active

    def question(self, question_id: str) -> Question | None:
        return self._by_id.get(question_id)

    def grading_status(self, question_id: str) -> GradingStatus | None:
        return self._grading.get(question_id)

    def scheduling_state(self, question_id: str) -> SchedulingState | None:
        return self._scheduling.get(question_id)

    def scheduling_states(self) -> dict[str, SchedulingState]:
        """States updated during this session, keyed by question id."""
        return {qid: self._scheduling[qid] for qid in self._scheduled}

    def review_history(self, question_id: str | None = None) -> list[ReviewEvent]:
        if question_id is None:
            return list(self._history)
        return [e for e in self._history if e.question_id == question_id]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Begin exam supervision: watch integrity signals and, with
        ``auto_clock``, start the countdown on the running event loop.

        Practice sessions need no start().
        """
        if self.submitted or not self.is_exam:
            return
        # Clock first; it raises outside a running loop
        if self.config.auto_clock:
            self._clock.start()
        self._monitor.start()
        logger.info("Exam supervision started")

    def close(self) -> None:
        """Release the clock and signal subscriptions."""
        self._clock.cancel()
        self._monitor.stop()

    def __enter__(self) -> QuizSession:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # =========================================================================
    # Operations
    # =========================================================================

    def select_option(self, question_id: str, option_id: str) -> ChoiceAnswer:
        """
        Answer the current multiple-choice question.

        In practice mode the first answer is binding. In exam mode the
        selection may be changed until submission.
        """
        action = "select_option"
        question = self._require_current(action, question_id)

        match question:
            case MultipleChoiceQuestion():
                pass
            case EssayQuestion():
                raise ActionRejected(action, "not a multiple-choice question", question_id)
            case _:
                raise TypeError(f"Unknown question type: {question!r}")

        if not self.is_exam and question_id in self._answers:
            raise ActionRejected(action, "answer already recorded", question_id)
        if not question.has_option(option_id):
            raise ActionRejected(action, f"unknown option {option_id!r}", question_id)

        is_correct = self.resolver.resolve_choice(question, option_id)
        record = ChoiceAnswer(
            question_id=question_id,
            selected_option_id=option_id,
            is_correct=is_correct,
            answered_at_ms=self._now(),
        )
        self._answers[question_id] = record
        self._grading[question_id] = GradingStatus.RESOLVED
        logger.debug(f"Answer recorded for {question_id}: {option_id} correct={is_correct}")

        # Exam answers can still change; those are scheduled at submission
        if self.config.immediate_learning and not self.is_exam:
            self._schedule(question_id, self.scheduler.binary_grade(is_correct))

        return record

    async def submit_essay_evidence(
        self,
        question_id: str,
        evidence: EssayEvidence,
    ) -> EssayAnswer | None:
        """
        Grade the current essay question.

        Returns:
            The new EssayAnswer, or None when grading failed (the question
            stays ungraded and may be retried) or the session was submitted
            while the call was in flight (the late result is discarded).
        """
        action = "submit_essay_evidence"
        question = self._require_current(action, question_id)

        match question:
            case EssayQuestion():
                pass
            case MultipleChoiceQuestion():
                raise ActionRejected(action, "not an essay question", question_id)
            case _:
                raise TypeError(f"Unknown question type: {question!r}")

        if question_id in self._answers:
            raise ActionRejected(action, "essay already graded", question_id)
        if self._grading.get(question_id) == GradingStatus.PENDING:
            raise ActionRejected(action, "grading already in progress", question_id)

        self._grading[question_id] = GradingStatus.PENDING
        logger.debug(f"Grading essay for {question_id}")

        try:
            outcome = await self.resolver.resolve_essay(question, evidence)
        except asyncio.CancelledError:
            self._grading[question_id] = GradingStatus.FAILED
            raise

        if self.submitted:
            self._grading.pop(question_id, None)
            logger.warning(f"Discarding essay grade for {question_id}: session already submitted")
            return None

        if outcome.failed:
            self._grading[question_id] = GradingStatus.FAILED
            logger.warning(f"Essay {question_id} left ungraded: {outcome.error}")
            return None

        record = EssayAnswer(
            question_id=question_id,
            evidence=evidence,
            grading_outcome=outcome,
            is_correct=self.resolver.is_passing(outcome),
            answered_at_ms=self._now(),
        )
        self._answers[question_id] = record
        self._grading[question_id] = GradingStatus.RESOLVED
        logger.debug(f"Essay {question_id} recorded: score={outcome.score} correct={record.is_correct}")
        return record

    def advance(self) -> SessionStatus:
        """
        Move past the current question, submitting after the last one.

        Returns:
            Status after the move
        """
        action = "advance"
        self._require_in_progress(action)
        self._require_time_left(action)
        question_id = self.current_question.id

        if question_id not in self._answers:
            if self._grading.get(question_id) == GradingStatus.PENDING:
                raise ActionRejected(action, "essay grading still in progress", question_id)
            raise ActionRejected(action, "current question has no answer", question_id)

        if self.is_last_question:
            self._submit(timed_out=False)
        else:
            self._cursor += 1
            logger.debug(f"Advanced to question {self._cursor + 1}/{len(self._questions)}")
        return self._status

    def force_submit(self, timed_out: bool = False) -> SessionResult:
        """
        Submit now, answered or not. Idempotent: a submitted session
        returns its existing result.
        """
        if not self.submitted:
            self._submit(timed_out=timed_out)
        return self.result()

    def tick(self) -> int | None:
        """
        One second elapsed. Submits when the countdown reaches zero.

        Returns:
            Remaining seconds (None outside exam mode)
        """
        if not self.is_exam or self.submitted:
            return self._remaining

        if self._remaining > 0:
            self._remaining -= 1
        if self._remaining == 0:
            logger.info("Exam time expired")
            self.force_submit(timed_out=True)
        return self._remaining

    def record_infraction(self, signal: IntegritySignal) -> int:
        """
        Count a focus or visibility loss. Ignored outside an in-progress exam.

        Returns:
            Infraction count
        """
        if not self.is_exam or self.submitted:
            return self.infraction_count

        signal = IntegritySignal(signal)
        self._infractions.append(Infraction(signal=signal.value, at_ms=self._now()))
        logger.warning(f"Integrity infraction #{self.infraction_count}: {signal.value}")
        return self.infraction_count

    def rate_recall(self, question_id: str, grade: int) -> SchedulingState:
        """
        Log a self-rated recall grade (0-5) for an answered question.

        Each question is scheduled at most once per session.
        """
        action = "rate_recall"
        self._require_in_progress(action)
        if self.is_exam:
            raise ActionRejected(action, "recall ratings are not taken during exams", question_id)
        if question_id not in self._by_id:
            raise ActionRejected(action, "unknown question", question_id)
        if question_id not in self._answers:
            raise ActionRejected(action, "question has no answer yet", question_id)
        if question_id in self._scheduled:
            raise ActionRejected(action, "already scheduled in this session", question_id)
        if isinstance(grade, bool) or not isinstance(grade, int) or not 0 <= grade <= 5:
            raise ActionRejected(action, f"grade must be 0-5, got {grade!r}", question_id)

        return self._schedule(question_id, grade)

    def result(self) -> SessionResult:
        if self._result is None:
            raise ResultNotReady("Session has not been submitted")
        return self._result

    # =========================================================================
    # Internals
    # =========================================================================

    def _require_in_progress(self, action: str, question_id: str | None = None) -> None:
        if self.submitted:
            raise ActionRejected(action, "session already submitted", question_id)

    def _require_time_left(self, action: str, question_id: str | None = None) -> None:
        if self.is_exam and self._remaining == 0:
            raise ActionRejected(action, "time has expired", question_id)

    def _require_current(self, action: str, question_id: str) -> Question:
        self._require_in_progress(action, question_id)
        self._require_time_left(action, question_id)
        question = self._by_id.get(question_id)
        if question is None:
            raise ActionRejected(action, "unknown question", question_id)
        if question.id != self.current_question.id:
            raise ActionRejected(action, "not the current question", question_id)
        return question

    def _schedule(self, question_id: str, grade: int) -> SchedulingState:
        now = self._now()
        previous = self._scheduling.get(question_id) or self.scheduler.initial_state(
            question_id, now
        )
        state = self.scheduler.next_state(grade, previous, now)
        self._scheduling[question_id] = state
        self._scheduled.add(question_id)
        self._history.append(ReviewEvent(question_id, grade, now))
        logger.debug(
            f"Scheduled {question_id}: grade={grade}, interval={state.interval_days}d, "
            f"ef={state.ease_factor:.2f}"
        )
        return state

    def _submit(self, timed_out: bool) -> None:
        self._status = SessionStatus.SUBMITTED
        self._timed_out = timed_out
        self.close()

        if self.config.immediate_learning and self.is_exam:
            for question_id, answer in self._answers.items():
                match answer:
                    case ChoiceAnswer(is_correct=correct) if question_id not in self._scheduled:
                        self._schedule(question_id, self.scheduler.binary_grade(correct))
                    case _:
                        pass

        finished = self._now()
        answers = tuple(self._answers[q.id] for q in self._questions if q.id in self._answers)
        self._result = SessionResult(
            score=sum(1 for a in answers if a.is_correct),
            total=len(self._questions),
            answers=answers,
            elapsed_seconds=max(0, (finished - self._started_at_ms) // 1000),
            infraction_count=self.infraction_count,
            mode=self.config.mode,
            timed_out=timed_out,
            finished_at_ms=finished,
            topic=self.topic,
            pass_accuracy=self.config.report_pass_accuracy,
            infractions=tuple(self._infractions),
        )
        logger.info(
            f"Session submitted: {self._result.score}/{self._result.total} "
            f"in {self._result.elapsed_seconds}s"
            + (" (time expired)" if timed_out else "")
        )

        if self.on_complete is not None:
            self.on_complete(self._result)

"""
Quiz Session Data Models.

Questions and answer records come in two shapes, multiple choice and
essay. Each shape is its own frozen dataclass; consumers branch with
``match`` on the class rather than inspecting a type field, so an essay
can never reach the multiple-choice grading path.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


def current_millis() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Enumerations
# =============================================================================


class QuestionKind(str, Enum):
    """Question variants, valued as they appear in question files."""

    MULTIPLE_CHOICE = "MCQ"
    ESSAY = "ESSAY"


class SessionMode(str, Enum):
    """How a quiz attempt is run."""

    PRACTICE = "practice"  # Untimed, first answer binding
    EXAM = "exam"  # Countdown + integrity monitoring


class SessionStatus(str, Enum):
    """Lifecycle of a quiz session."""

    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class GradingStatus(str, Enum):
    """Per-question grading state."""

    PENDING = "pending"  # Essay grading call in flight
    RESOLVED = "resolved"  # AnswerRecord written
    FAILED = "failed"  # Last grading call failed; retry allowed


# =============================================================================
# Questions
# =============================================================================


@dataclass(frozen=True)
class Option:
    """A selectable multiple-choice option."""

    id: str
    text: str


@dataclass(frozen=True)
class MultipleChoiceQuestion:
    """A question with exactly one correct option."""

    id: str
    stem: str
    options: tuple[Option, ...]
    correct_option_id: str
    explanation: str = ""
    context: str | None = None  # Vignette shown above the stem
    topic: str | None = None
    difficulty: float = 0.5

    @property
    def kind(self) -> QuestionKind:
        return QuestionKind.MULTIPLE_CHOICE

    def has_option(self, option_id: str) -> bool:
        return any(option.id == option_id for option in self.options)

    def option_text(self, option_id: str) -> str | None:
        for option in self.options:
            if option.id == option_id:
                return option.text
        return None


@dataclass(frozen=True)
class EssayQuestion:
    """An open-ended question scored by the external grader."""

    id: str
    stem: str
    rubric: str | None = None
    context: str | None = None
    topic: str | None = None
    difficulty: float = 0.5

    @property
    def kind(self) -> QuestionKind:
        return QuestionKind.ESSAY


Question = Union[MultipleChoiceQuestion, EssayQuestion]


@dataclass(frozen=True)
class QuestionSet:
    """An ordered question list as loaded from a file."""

    questions: tuple[Question, ...]
    topic: str | None = None

    def __len__(self) -> int:
        return len(self.questions)


# =============================================================================
# Essay Evidence & Grading
# =============================================================================


@dataclass(frozen=True)
class EssayEvidence:
    """
    The learner's essay submission, passed opaquely to the grader.

    Either typed text or an image of a handwritten answer.
    """

    text: str | None = None
    image: bytes | None = None
    mime_type: str = "image/jpeg"
    source_name: str | None = None

    def __post_init__(self) -> None:
        if not self.text and not self.image:
            raise ValueError("Essay evidence needs text or an image")

    @property
    def is_image(self) -> bool:
        return self.image is not None


@dataclass(frozen=True)
class GradingOutcome:
    """Structured feedback returned by the essay grader."""

    transcription: str
    legible: bool
    score: float  # 0-100
    strengths: tuple[str, ...] = ()
    improvements: tuple[str, ...] = ()
    corrected_version: str = ""
    summary: str = ""
    failed: bool = False  # True when the grader could not produce a grade
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GradingOutcome:
        """Parse a grader response using the grading service's field names."""
        try:
            score = float(data.get("score_out_of_100", 0) or 0)
        except (TypeError, ValueError):
            score = 0.0
        return cls(
            transcription=data.get("handwriting_transcription", "") or "",
            legible=bool(data.get("is_legible", False)),
            score=min(100.0, max(0.0, score)),
            strengths=_as_tuple(data.get("key_strengths")),
            improvements=_as_tuple(data.get("areas_for_improvement")),
            corrected_version=data.get("corrected_version", "") or "",
            summary=data.get("feedback_summary", "") or "",
        )

    @classmethod
    def neutral(cls, summary: str, error: str | None = None) -> GradingOutcome:
        """A zero-score outcome standing in for a grade that could not be made."""
        return cls(
            transcription="Could not transcribe",
            legible=False,
            score=0.0,
            strengths=(),
            improvements=("Check the grading service connection and try again",),
            corrected_version="",
            summary=summary,
            failed=True,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "handwriting_transcription": self.transcription,
            "is_legible": self.legible,
            "score_out_of_100": self.score,
            "key_strengths": list(self.strengths),
            "areas_for_improvement": list(self.improvements),
            "corrected_version": self.corrected_version,
            "feedback_summary": self.summary,
        }


def _as_tuple(value: Any) -> tuple[str, ...]:
    """Feedback list from a service field; a bare string is one item."""
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(item) for item in value)


# =============================================================================
# Answer Records
# =============================================================================


@dataclass(frozen=True)
class ChoiceAnswer:
    """Recorded response to a multiple-choice question."""

    question_id: str
    selected_option_id: str
    is_correct: bool
    answered_at_ms: int


@dataclass(frozen=True)
class EssayAnswer:
    """Recorded, graded response to an essay question."""

    question_id: str
    evidence: EssayEvidence
    grading_outcome: GradingOutcome
    is_correct: bool
    answered_at_ms: int


AnswerRecord = Union[ChoiceAnswer, EssayAnswer]


def answer_to_dict(answer: AnswerRecord) -> dict[str, Any]:
    """Serialize an answer record for reports and the attempt log."""
    match answer:
        case ChoiceAnswer():
            return {
                "question_id": answer.question_id,
                "selected_option_id": answer.selected_option_id,
                "is_correct": answer.is_correct,
                "answered_at_ms": answer.answered_at_ms,
            }
        case EssayAnswer():
            return {
                "question_id": answer.question_id,
                "essay_text": answer.evidence.text,
                "essay_image": answer.evidence.source_name,
                "grading_result": answer.grading_outcome.to_dict(),
                "is_correct": answer.is_correct,
                "answered_at_ms": answer.answered_at_ms,
            }
        case _:
            raise TypeError(f"Unknown answer record: {answer!r}")


# =============================================================================
# Session Result
# =============================================================================


@dataclass(frozen=True)
class Infraction:
    """A focus or visibility loss observed during an exam."""

    signal: str
    at_ms: int


@dataclass(frozen=True)
class SessionResult:
    """Final tally emitted once a session is submitted."""

    score: int
    total: int
    answers: tuple[AnswerRecord, ...]
    elapsed_seconds: int
    infraction_count: int = 0
    mode: SessionMode = SessionMode.PRACTICE
    timed_out: bool = False
    finished_at_ms: int = 0
    topic: str | None = None
    pass_accuracy: float = 70.0
    infractions: tuple[Infraction, ...] = field(default=(), repr=False)

    @property
    def accuracy(self) -> float:
        """Percentage of all questions answered correctly."""
        if self.total == 0:
            return 0.0
        return round(self.score / self.total * 100, 1)

    @property
    def passed(self) -> bool:
        return self.accuracy >= self.pass_accuracy

    @property
    def answered(self) -> int:
        return len(self.answers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "total": self.total,
            "accuracy": self.accuracy,
            "passed": self.passed,
            "elapsed_seconds": self.elapsed_seconds,
            "infraction_count": self.infraction_count,
            "mode": self.mode.value,
            "timed_out": self.timed_out,
            "finished_at_ms": self.finished_at_ms,
            "topic": self.topic,
            "answers": [answer_to_dict(a) for a in self.answers],
        }

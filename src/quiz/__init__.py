"""
Quiz session engine.

Drives a single quiz or exam attempt:
- QuizSession: answer/grading state machine, cursor and submission
- GradingResolver: local MCQ grading, delegated essay grading
- ExamClock: one-second countdown that forces submission at zero
- IntegrityMonitor: counts focus/visibility losses during exams

Question Types:
- MCQ: one correct option, graded locally
- ESSAY: scored 0-100 by an external grader
"""

from .errors import ActionRejected, QuestionSetError, QuizError, ResultNotReady
from .exam_clock import ExamClock, format_clock
from .grading import EssayGrader, GradingResolver, OfflineEssayGrader
from .integrity import IntegrityMonitor, IntegritySignal, SignalBus
from .loader import load_questions, parse_questions
from .models import (
    ChoiceAnswer,
    EssayAnswer,
    EssayEvidence,
    EssayQuestion,
    GradingOutcome,
    GradingStatus,
    MultipleChoiceQuestion,
    Option,
    QuestionSet,
    SessionMode,
    SessionResult,
    SessionStatus,
)
from .session import QuizSession, SessionConfig

__all__ = [
    # Session
    "QuizSession",
    "SessionConfig",
    "SessionMode",
    "SessionStatus",
    "SessionResult",
    # Questions & answers
    "MultipleChoiceQuestion",
    "EssayQuestion",
    "Option",
    "QuestionSet",
    "ChoiceAnswer",
    "EssayAnswer",
    "EssayEvidence",
    # Grading
    "GradingResolver",
    "GradingOutcome",
    "GradingStatus",
    "EssayGrader",
    "OfflineEssayGrader",
    # Exam supervision
    "ExamClock",
    "format_clock",
    "IntegrityMonitor",
    "IntegritySignal",
    "SignalBus",
    # Loading
    "load_questions",
    "parse_questions",
    # Errors
    "QuizError",
    "ActionRejected",
    "ResultNotReady",
    "QuestionSetError",
]

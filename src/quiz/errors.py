"""
Quiz engine errors.
"""


class QuizError(Exception):
    """Base error for the quiz engine."""


class ActionRejected(QuizError):
    """An operation was refused; the session is unchanged."""

    def __init__(self, action: str, reason: str, question_id: str | None = None):
        self.action = action
        self.reason = reason
        self.question_id = question_id
        target = f" ({question_id})" if question_id else ""
        super().__init__(f"{action}{target} rejected: {reason}")


class ResultNotReady(QuizError):
    """result() was called before the session was submitted."""


class QuestionSetError(QuizError):
    """The supplied questions cannot form a session."""

"""
Grading Resolver.

Multiple-choice answers are graded locally. Essays go to an external
grading collaborator; whatever happens on that call, the resolver hands
back a well-formed GradingOutcome so the session never has to care
whether the grader was reachable.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from loguru import logger

from .models import EssayEvidence, EssayQuestion, GradingOutcome, MultipleChoiceQuestion

UNAVAILABLE_SUMMARY = "Grading service unavailable."
DEFAULT_PASS_THRESHOLD = 60


class EssayGrader(Protocol):
    """Contract of the external essay grading collaborator."""

    async def grade(
        self,
        evidence: EssayEvidence,
        stem: str,
        rubric: str | None = None,
    ) -> GradingOutcome:
        """Score an essay answer (0-100) and return structured feedback."""
        ...


class OfflineEssayGrader:
    """
    Grader used when no grading service is configured.

    Records the essay with a zero score instead of blocking the session.
    """

    async def grade(
        self,
        evidence: EssayEvidence,
        stem: str,
        rubric: str | None = None,
    ) -> GradingOutcome:
        return GradingOutcome(
            transcription=evidence.text or "Could not transcribe (Offline Mode)",
            legible=evidence.text is not None,
            score=0.0,
            strengths=(),
            improvements=("Configure a grading service for scored feedback",),
            summary=UNAVAILABLE_SUMMARY,
        )


class GradingResolver:
    """
    Decides correctness for both question variants.

    Args:
        grader: External essay grading collaborator
        pass_threshold: Minimum essay score counted as correct
        timeout_seconds: Seconds before an essay call counts as failed (None = no limit)
    """

    def __init__(
        self,
        grader: EssayGrader | None = None,
        pass_threshold: int = DEFAULT_PASS_THRESHOLD,
        timeout_seconds: float | None = 30.0,
    ):
        self.grader = grader or OfflineEssayGrader()
        self.pass_threshold = pass_threshold
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def resolve_choice(question: MultipleChoiceQuestion, selected_option_id: str) -> bool:
        return selected_option_id == question.correct_option_id

    def is_passing(self, outcome: GradingOutcome) -> bool:
        return not outcome.failed and outcome.score >= self.pass_threshold

    async def resolve_essay(
        self,
        question: EssayQuestion,
        evidence: EssayEvidence,
    ) -> GradingOutcome:
        """
        Grade an essay through the collaborator.

        No retries. Errors and timeouts come back as a neutral outcome
        with ``failed`` set, never as an exception.
        """
        try:
            call = self.grader.grade(evidence, question.stem, question.rubric)
            if self.timeout_seconds is not None:
                outcome = await asyncio.wait_for(call, timeout=self.timeout_seconds)
            else:
                outcome = await call
        except asyncio.TimeoutError:
            logger.warning(
                f"Essay grading for {question.id} timed out after {self.timeout_seconds}s"
            )
            return GradingOutcome.neutral(UNAVAILABLE_SUMMARY, error="timeout")
        except Exception as e:
            logger.warning(f"Essay grading for {question.id} failed: {e}")
            return GradingOutcome.neutral(UNAVAILABLE_SUMMARY, error=str(e) or type(e).__name__)

        logger.debug(f"Essay {question.id} graded: score={outcome.score}")
        return outcome

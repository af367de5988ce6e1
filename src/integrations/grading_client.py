"""
Essay grading API client.

Handles HTTP communication with the remote essay grading service. The
service transcribes handwritten answers, scores them out of 100 and
returns structured feedback.

No retries happen here: a failed call surfaces as an httpx error and
the grading resolver turns it into a neutral outcome.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from config import Settings, get_settings
from src.quiz.grading import EssayGrader, OfflineEssayGrader
from src.quiz.models import EssayEvidence, GradingOutcome


@dataclass
class GradingRequest:
    """Request payload for one essay grading call."""

    stem: str
    evidence: EssayEvidence
    rubric: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert request to API payload format."""
        payload: dict[str, Any] = {
            "question_stem": self.stem,
            "rubric": self.rubric,
        }
        if self.evidence.is_image:
            payload["image"] = {
                "data": base64.b64encode(self.evidence.image).decode("ascii"),
                "mime_type": self.evidence.mime_type,
            }
        if self.evidence.text:
            payload["essay_text"] = self.evidence.text
        return payload


class HttpEssayGrader:
    """HTTP client for the essay grading service."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 30.0,
    ):
        """
        Initialize grading client.

        Args:
            api_url: Base URL for the grading API
            api_key: Optional bearer token
            timeout_seconds: Request timeout in seconds
        """
        self.api_url = api_url.rstrip("/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            headers=headers,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> HttpEssayGrader:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def grade(
        self,
        evidence: EssayEvidence,
        stem: str,
        rubric: str | None = None,
    ) -> GradingOutcome:
        """
        Grade an essay answer.

        Returns:
            Parsed grading outcome

        Raises:
            httpx.HTTPError: On API communication failure
            ValueError: If the response body is not a JSON object
        """
        request = GradingRequest(stem=stem, evidence=evidence, rubric=rubric)
        try:
            response = await self.client.post(
                f"{self.api_url}/grade",
                json=request.to_dict(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Grading service returned {e.response.status_code}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"Grading service request failed: {e}")
            raise

        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Grading service returned a non-object response")
        return GradingOutcome.from_dict(data)

    async def health_check(self) -> bool:
        """
        Check if the grading API is available.

        Returns:
            True if API is healthy, False otherwise
        """
        try:
            response = await self.client.get(f"{self.api_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False


def build_grader(settings: Settings | None = None) -> EssayGrader:
    """Remote grader when a grading URL is configured, offline grader otherwise."""
    settings = settings or get_settings()
    if not settings.has_remote_grader():
        logger.info("No grading service configured - essays graded offline")
        return OfflineEssayGrader()
    config = settings.get_grading_config()
    return HttpEssayGrader(
        api_url=config["api_url"],
        api_key=config["api_key"],
        timeout_seconds=config["timeout_seconds"],
    )

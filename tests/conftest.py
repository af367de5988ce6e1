"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.quiz.grading import GradingResolver  # noqa: E402
from src.quiz.models import (  # noqa: E402
    EssayQuestion,
    GradingOutcome,
    MultipleChoiceQuestion,
    Option,
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class StubGrader:
    """Essay grader returning a fixed score, recording each call."""

    def __init__(self, score: float = 85.0):
        self.score = score
        self.calls = []

    async def grade(self, evidence, stem, rubric=None):
        self.calls.append((evidence, stem, rubric))
        return GradingOutcome(
            transcription=evidence.text or "",
            legible=True,
            score=self.score,
            strengths=("Clear structure",),
            improvements=(),
            summary="Solid answer.",
        )


class FailingGrader:
    """Essay grader whose call always raises."""

    def __init__(self, error: Exception | None = None):
        self.error = error or ConnectionError("grading service down")
        self.calls = 0

    async def grade(self, evidence, stem, rubric=None):
        self.calls += 1
        raise self.error


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """Controllable clock for sessions."""
    return FakeClock()


@pytest.fixture
def mcq_question():
    """A single multiple-choice question."""
    return MultipleChoiceQuestion(
        id="q1",
        stem="Which layer of the OSI model handles routing?",
        options=(
            Option("a", "Physical"),
            Option("b", "Data Link"),
            Option("c", "Network"),
            Option("d", "Transport"),
        ),
        correct_option_id="c",
        explanation="Routers operate at the network layer.",
        topic="Networking",
    )


@pytest.fixture
def mcq_questions(mcq_question):
    """Three multiple-choice questions."""
    return [
        mcq_question,
        MultipleChoiceQuestion(
            id="q2",
            stem="Which protocol resolves IP addresses to MAC addresses?",
            options=(Option("a", "DNS"), Option("b", "ARP"), Option("c", "DHCP")),
            correct_option_id="b",
            topic="Networking",
        ),
        MultipleChoiceQuestion(
            id="q3",
            stem="What is the default port for HTTPS?",
            options=(Option("a", "80"), Option("b", "443"), Option("c", "8080")),
            correct_option_id="b",
            topic="Networking",
        ),
    ]


@pytest.fixture
def essay_question():
    """A single essay question."""
    return EssayQuestion(
        id="e1",
        stem="Explain how TCP establishes a connection.",
        rubric="Mentions SYN, SYN-ACK and ACK in order.",
        topic="Networking",
    )


@pytest.fixture
def stub_grader():
    return StubGrader()


@pytest.fixture
def failing_grader():
    return FailingGrader()


@pytest.fixture
def resolver(stub_grader):
    """Grading resolver backed by the stub grader."""
    return GradingResolver(stub_grader, pass_threshold=60)


@pytest.fixture
def sample_question_data():
    """Question file contents in the generator's field names."""
    return {
        "topic": "Networking",
        "questions": [
            {
                "id": "q1",
                "stem": "Which layer handles routing?",
                "type": "MCQ",
                "options": [
                    {"id": "a", "text": "Physical"},
                    {"id": "b", "text": "Network"},
                ],
                "correctOptionId": "b",
                "explanation": "Routers are layer 3 devices.",
                "vignette": "A packet leaves your laptop.",
                "difficulty": 0.3,
            },
            {
                "id": "e1",
                "stem": "Explain the TCP handshake.",
                "type": "ESSAY",
                "explanation": "SYN, SYN-ACK, ACK.",
            },
        ],
    }

"""
External integrations for the quiz engine.

Modules:
- grading_client: HTTP essay grading service client
"""
from .grading_client import GradingRequest, HttpEssayGrader, build_grader

__all__ = ["GradingRequest", "HttpEssayGrader", "build_grader"]

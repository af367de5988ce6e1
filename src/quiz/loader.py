"""
Question Set Loader.

Reads question sets from JSON. Accepted shapes:

    [ {question}, ... ]
    { "topic": "...", "questions": [ {question}, ... ] }

Each question uses the field names of the question generator:
``stem``, ``type`` (MCQ | ESSAY), ``options`` [{id, text}],
``correctOptionId``, ``explanation``, ``vignette``, ``rubric``,
``topic``, ``difficulty``. Missing ids are generated.
"""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import QuestionSetError
from .models import EssayQuestion, MultipleChoiceQuestion, Option, Question, QuestionSet


class OptionSchema(BaseModel):
    id: str = Field(min_length=1)
    text: str


class QuestionSchema(BaseModel):
    """One question as it appears in a question file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    stem: str = Field(min_length=1)
    type: Literal["MCQ", "ESSAY"] = "MCQ"
    options: list[OptionSchema] = Field(default_factory=list)
    correct_option_id: str | None = Field(default=None, alias="correctOptionId")
    explanation: str = ""
    vignette: str | None = None
    rubric: str | None = None
    topic: str | None = None
    difficulty: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_choices(self) -> QuestionSchema:
        if self.type != "MCQ":
            return self
        if len(self.options) < 2:
            raise ValueError("multiple-choice questions need at least two options")
        option_ids = [o.id for o in self.options]
        if len(set(option_ids)) != len(option_ids):
            raise ValueError("option ids must be unique")
        if self.correct_option_id not in option_ids:
            raise ValueError(
                f"correctOptionId {self.correct_option_id!r} is not one of {option_ids}"
            )
        return self

    def to_question(self, default_topic: str | None = None) -> Question:
        question_id = self.id or uuid.uuid4().hex[:9]
        topic = self.topic or default_topic
        if self.type == "ESSAY":
            # Generators put the grading key in "explanation" for essays
            return EssayQuestion(
                id=question_id,
                stem=self.stem,
                rubric=self.rubric or self.explanation or None,
                context=self.vignette,
                topic=topic,
                difficulty=self.difficulty,
            )
        return MultipleChoiceQuestion(
            id=question_id,
            stem=self.stem,
            options=tuple(Option(id=o.id, text=o.text) for o in self.options),
            correct_option_id=self.correct_option_id,
            explanation=self.explanation,
            context=self.vignette,
            topic=topic,
            difficulty=self.difficulty,
        )


class QuestionSetSchema(BaseModel):
    topic: str | None = None
    questions: list[QuestionSchema] = Field(min_length=1)

    @model_validator(mode="after")
    def check_unique_ids(self) -> QuestionSetSchema:
        ids = [q.id for q in self.questions if q.id]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"duplicate question ids: {duplicates}")
        return self


def parse_questions(data: Any) -> QuestionSet:
    """
    Validate raw JSON data into a QuestionSet.

    Raises:
        QuestionSetError: If the data is not a valid question set
    """
    if isinstance(data, list):
        data = {"questions": data}
    try:
        schema = QuestionSetSchema.model_validate(data)
    except ValidationError as e:
        raise QuestionSetError(f"Invalid question set: {e}") from e

    questions = tuple(q.to_question(schema.topic) for q in schema.questions)
    topics = {q.topic for q in questions}
    topic = schema.topic or (topics.pop() if len(topics) == 1 else None)
    return QuestionSet(questions=questions, topic=topic)


def load_questions(path: Path | str) -> QuestionSet:
    """
    Load a question set from a JSON file.

    Raises:
        QuestionSetError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise QuestionSetError(f"Question file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise QuestionSetError(f"Question file is not valid JSON: {path}: {e}") from e

    question_set = parse_questions(data)
    logger.info(f"Loaded {len(question_set)} questions from {path}")
    return question_set

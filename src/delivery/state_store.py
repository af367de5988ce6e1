"""
SQLite State Store for quiz scheduling.

Provides portable persistence for:
- SM-2 scheduling state per question
- Review history log
- Attempt history (finished quiz sessions)

A session keeps its scheduling state in memory; this store is the
external home it can be handed to once the session finishes.

Database location: ~/.quizcore/state.db
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from src.quiz.models import SessionResult

MILLIS_PER_DAY = 86_400_000

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class SchedulingState:
    """SM-2 algorithm state for a single question."""

    question_id: str
    interval_days: int = 0  # Days until next review
    repetition_count: int = 0  # Consecutive successful recalls
    ease_factor: float = 2.5  # EF starts at 2.5, floor 1.3
    next_review_at_ms: int = 0
    last_reviewed_at_ms: int | None = None

    def is_due(self, now_ms: int) -> bool:
        """Check if this question is due for review."""
        return now_ms >= self.next_review_at_ms

    def days_overdue(self, now_ms: int) -> int:
        """Whole days past the scheduled review."""
        return max(0, (now_ms - self.next_review_at_ms) // MILLIS_PER_DAY)


@dataclass(frozen=True)
class ReviewEvent:
    """A single grade applied to a question."""

    question_id: str
    grade: int  # 0-5 SM-2 scale
    reviewed_at_ms: int


@dataclass(frozen=True)
class AttemptRecord:
    """A finished quiz attempt summary."""

    id: int
    finished_at_ms: int
    mode: str
    topic: str | None
    score: int
    total: int
    accuracy: float
    elapsed_seconds: int
    infraction_count: int
    timed_out: bool


# =============================================================================
# State Store
# =============================================================================


class StateStore:
    """
    SQLite-backed persistence for scheduling state.

    Handles:
    - SM-2 state per question (ease, interval, repetitions)
    - Review log with grades
    - Attempt history for reporting
    """

    DEFAULT_DB_PATH = Path.home() / ".quizcore" / "state.db"

    def __init__(self, db_path: Path | None = None):
        """
        Initialize the state store.

        Args:
            db_path: Custom database path (defaults to ~/.quizcore/state.db)
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info(f"StateStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> StateStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS scheduling_state (
                question_id TEXT PRIMARY KEY,
                interval_days INTEGER DEFAULT 0,
                repetition_count INTEGER DEFAULT 0,
                ease_factor REAL DEFAULT 2.5,
                next_review_at_ms INTEGER NOT NULL,
                last_reviewed_at_ms INTEGER
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS review_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                question_id TEXT NOT NULL,
                grade INTEGER NOT NULL,
                reviewed_at_ms INTEGER NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS attempt_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                finished_at_ms INTEGER NOT NULL,
                mode TEXT NOT NULL,
                topic TEXT,
                score INTEGER NOT NULL,
                total INTEGER NOT NULL,
                accuracy REAL NOT NULL,
                elapsed_seconds INTEGER NOT NULL,
                infraction_count INTEGER DEFAULT 0,
                timed_out BOOLEAN DEFAULT 0,
                answers_json TEXT
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_scheduling_next_review
            ON scheduling_state(next_review_at_ms)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_review_log_question
            ON review_log(question_id)
        """)

        self.conn.commit()

    # =========================================================================
    # Scheduling State Operations
    # =========================================================================

    @staticmethod
    def _row_to_state(row: sqlite3.Row) -> SchedulingState:
        return SchedulingState(
            question_id=row["question_id"],
            interval_days=row["interval_days"],
            repetition_count=row["repetition_count"],
            ease_factor=row["ease_factor"],
            next_review_at_ms=row["next_review_at_ms"],
            last_reviewed_at_ms=row["last_reviewed_at_ms"],
        )

    def get_state(self, question_id: str) -> SchedulingState | None:
        """
        Get scheduling state for a question.

        Returns:
            SchedulingState, or None if the question was never graded
        """
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM scheduling_state WHERE question_id = ?", (question_id,))
        row = cursor.fetchone()
        return self._row_to_state(row) if row else None

    def get_states(self, question_ids: Iterable[str]) -> dict[str, SchedulingState]:
        """Get the stored states for the given questions, skipping unknown ids."""
        states = {}
        for question_id in question_ids:
            state = self.get_state(question_id)
            if state is not None:
                states[question_id] = state
        return states

    def save_state(self, state: SchedulingState) -> None:
        """Save or update scheduling state for a question."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO scheduling_state (
                question_id, interval_days, repetition_count,
                ease_factor, next_review_at_ms, last_reviewed_at_ms
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(question_id) DO UPDATE SET
                interval_days = excluded.interval_days,
                repetition_count = excluded.repetition_count,
                ease_factor = excluded.ease_factor,
                next_review_at_ms = excluded.next_review_at_ms,
                last_reviewed_at_ms = excluded.last_reviewed_at_ms
        """,
            (
                state.question_id,
                state.interval_days,
                state.repetition_count,
                state.ease_factor,
                state.next_review_at_ms,
                state.last_reviewed_at_ms,
            ),
        )
        self.conn.commit()

    def get_due_question_ids(self, now_ms: int, limit: int = 100) -> list[str]:
        """
        Get question IDs that are due for review.

        Args:
            now_ms: Reference time in epoch milliseconds
            limit: Maximum ids to return

        Returns:
            Question ids, most overdue first
        """
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT question_id FROM scheduling_state
            WHERE next_review_at_ms <= ?
            ORDER BY next_review_at_ms ASC, interval_days ASC
            LIMIT ?
        """,
            (now_ms, limit),
        )
        return [row["question_id"] for row in cursor.fetchall()]

    def count_due(self, now_ms: int) -> int:
        """Count questions due for review."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT COUNT(*) as cnt FROM scheduling_state WHERE next_review_at_ms <= ?",
            (now_ms,),
        )
        return cursor.fetchone()["cnt"]

    # =========================================================================
    # Review Log Operations
    # =========================================================================

    def log_review(self, event: ReviewEvent) -> int:
        """
        Log a review event.

        Returns:
            Review record ID
        """
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO review_log (question_id, grade, reviewed_at_ms)
            VALUES (?, ?, ?)
        """,
            (event.question_id, event.grade, event.reviewed_at_ms),
        )
        self.conn.commit()
        return cursor.lastrowid

    def get_review_history(self, question_id: str, limit: int = 10) -> list[ReviewEvent]:
        """Get review history for a question, most recent first."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM review_log
            WHERE question_id = ?
            ORDER BY reviewed_at_ms DESC, id DESC
            LIMIT ?
        """,
            (question_id, limit),
        )
        return [
            ReviewEvent(
                question_id=row["question_id"],
                grade=row["grade"],
                reviewed_at_ms=row["reviewed_at_ms"],
            )
            for row in cursor.fetchall()
        ]

    # =========================================================================
    # Attempt Operations
    # =========================================================================

    def record_attempt(self, result: SessionResult) -> int:
        """
        Store a finished attempt.

        Returns:
            Attempt ID
        """
        payload = result.to_dict()
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO attempt_history (
                finished_at_ms, mode, topic, score, total, accuracy,
                elapsed_seconds, infraction_count, timed_out, answers_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                result.finished_at_ms,
                result.mode.value,
                result.topic,
                result.score,
                result.total,
                result.accuracy,
                result.elapsed_seconds,
                result.infraction_count,
                result.timed_out,
                json.dumps(payload["answers"]),
            ),
        )
        self.conn.commit()
        logger.debug(f"Recorded attempt {cursor.lastrowid}: {result.score}/{result.total}")
        return cursor.lastrowid

    def get_recent_attempts(self, limit: int = 10) -> list[AttemptRecord]:
        """Get the most recent attempts."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT * FROM attempt_history
            ORDER BY finished_at_ms DESC, id DESC
            LIMIT ?
        """,
            (limit,),
        )
        return [
            AttemptRecord(
                id=row["id"],
                finished_at_ms=row["finished_at_ms"],
                mode=row["mode"],
                topic=row["topic"],
                score=row["score"],
                total=row["total"],
                accuracy=row["accuracy"],
                elapsed_seconds=row["elapsed_seconds"],
                infraction_count=row["infraction_count"],
                timed_out=bool(row["timed_out"]),
            )
            for row in cursor.fetchall()
        ]

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self, now_ms: int) -> dict:
        """
        Get overall learning statistics.

        Returns:
            Dictionary with aggregate stats
        """
        cursor = self.conn.cursor()

        cursor.execute("SELECT COUNT(*) as cnt FROM scheduling_state")
        tracked = cursor.fetchone()["cnt"]

        cursor.execute("SELECT COUNT(*) as cnt FROM review_log")
        total_reviews = cursor.fetchone()["cnt"]

        # Retention rate over the last 100 reviews (grade >= 3 is passing)
        cursor.execute("""
            SELECT
                COUNT(CASE WHEN grade >= 3 THEN 1 END) * 100.0 / COUNT(*) as retention
            FROM (
                SELECT grade FROM review_log ORDER BY reviewed_at_ms DESC LIMIT 100
            )
        """)
        row = cursor.fetchone()
        retention = row["retention"] if row["retention"] else 0

        cursor.execute("SELECT COUNT(*) as cnt FROM attempt_history")
        attempts = cursor.fetchone()["cnt"]

        return {
            "questions_tracked": tracked,
            "questions_due": self.count_due(now_ms),
            "total_reviews": total_reviews,
            "retention_rate_percent": round(retention, 1),
            "attempts_completed": attempts,
        }

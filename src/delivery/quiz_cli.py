"""
Quiz CLI: terminal front-end for the quiz session engine.

A Rich terminal interface for practice quizzes and timed exams
over JSON question sets.

Commands:
- quiz run       - Take a quiz from a question file
- quiz validate  - Check a question file
- quiz due       - List questions due for review
- quiz stats     - Show review statistics
- quiz history   - Show recent attempts

During an exam, Ctrl-C counts as leaving the window and Ctrl-Z as
hiding it; both are recorded as integrity infractions instead of
interrupting the exam. Type ``:submit`` at any prompt to hand in early.
"""
from __future__ import annotations

import asyncio
import mimetypes
import signal
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from config import Settings, get_settings
from src.integrations.grading_client import HttpEssayGrader, build_grader
from src.quiz.errors import ActionRejected, QuestionSetError
from src.quiz.exam_clock import format_clock
from src.quiz.grading import GradingResolver
from src.quiz.integrity import IntegritySignal, SignalBus
from src.quiz.loader import load_questions
from src.quiz.models import (
    ChoiceAnswer,
    EssayAnswer,
    EssayEvidence,
    EssayQuestion,
    MultipleChoiceQuestion,
    SessionMode,
    SessionResult,
    current_millis,
)
from src.quiz.session import QuizSession, SessionConfig

from .scheduler import ReviewScheduler, SM2Config, SM2Scheduler
from .state_store import StateStore

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="quiz",
    help="Quiz session engine: practice quizzes and timed exams",
    no_args_is_help=True,
)
console = Console()

SUBMIT_COMMAND = ":submit"

STYLES = {
    "correct": "bold green",
    "incorrect": "bold red",
    "info": "bold cyan",
    "warning": "bold yellow",
    "dim": "dim",
}


def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr and the optional log file."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="WARNING",
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
        )


# =============================================================================
# Display Helpers
# =============================================================================


def option_label(index: int) -> str:
    return chr(65 + index)


def display_question(session: QuizSession) -> None:
    """Display the current question."""
    question = session.current_question
    header = f"Question {session.cursor + 1}/{len(session.questions)}"
    if session.is_exam:
        header += f"  |  {format_clock(session.remaining_seconds)} left"

    content = ""
    if question.context:
        content += f"[italic dim]{question.context}[/italic dim]\n\n"
    content += f"[bold]{question.stem}[/bold]"

    match question:
        case MultipleChoiceQuestion():
            content += "\n\n"
            for i, option in enumerate(question.options):
                content += f"  {option_label(i)}. {option.text}\n"
        case EssayQuestion():
            content += "\n\n[dim]Type your answer, or @path/to/photo.jpg of your handwriting[/dim]"

    console.print(Panel(
        content,
        title=header,
        title_align="left",
        border_style="cyan",
        padding=(1, 2),
    ))


def display_choice_feedback(question: MultipleChoiceQuestion, answer: ChoiceAnswer) -> None:
    """Show correctness and the explanation after a practice answer."""
    if answer.is_correct:
        body = "[green]✓ Correct[/green]"
        style = STYLES["correct"]
    else:
        correct = question.option_text(question.correct_option_id)
        body = f"[red]✗ Incorrect[/red]  Answer: {correct}"
        style = STYLES["incorrect"]
    if question.explanation:
        body += f"\n\n{question.explanation}"
    console.print(Panel(body, title="Instant Insight", border_style=style, padding=(1, 2)))


def display_essay_feedback(answer: EssayAnswer) -> None:
    """Show the grader's feedback for an essay."""
    outcome = answer.grading_outcome
    style = STYLES["correct"] if answer.is_correct else STYLES["incorrect"]
    body = f"[bold]{outcome.score:.0f}[/bold]/100\n\n[italic]{outcome.summary}[/italic]"
    if outcome.strengths:
        body += "\n\n[green]Strengths[/green]\n" + "\n".join(f"  • {s}" for s in outcome.strengths)
    if outcome.improvements:
        body += "\n\n[yellow]Improvements[/yellow]\n" + "\n".join(
            f"  • {s}" for s in outcome.improvements
        )
    console.print(Panel(body, title="Grading Feedback", border_style=style, padding=(1, 2)))


def display_summary(result: SessionResult) -> None:
    """Display the final tally."""
    table = Table(title="Session Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    verdict = "[green]Passed[/green]" if result.passed else "[yellow]Review[/yellow]"
    table.add_row("Score", f"{result.score}/{result.total}")
    table.add_row("Accuracy", f"{result.accuracy:.1f}%  {verdict}")
    table.add_row("Answered", f"{result.answered}/{result.total}")
    table.add_row("Time", format_clock(result.elapsed_seconds))
    if result.mode == SessionMode.EXAM:
        table.add_row("Focus losses", str(result.infraction_count))
        if result.timed_out:
            table.add_row("Ended", "[red]time expired[/red]")

    console.print()
    console.print(table)


# =============================================================================
# Session Driver
# =============================================================================


async def _ask(prompt: str, **kwargs) -> str:
    # Prompt blocks; keep the event loop free so the exam clock keeps ticking
    return await asyncio.to_thread(Prompt.ask, prompt, **kwargs)


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, bus: SignalBus) -> list[int]:
    installed = []
    for name, kind in (
        ("SIGINT", IntegritySignal.WINDOW_BLUR),
        ("SIGTSTP", IntegritySignal.PAGE_HIDDEN),
    ):
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        try:
            loop.add_signal_handler(signum, bus.emit, kind)
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(signum)
    return installed


def evidence_from_input(raw: str) -> EssayEvidence:
    """
    Build essay evidence from typed input.

    ``@path`` reads an image file; anything else is the essay text.

    Raises:
        ValueError: If the input is empty or the image cannot be read
    """
    raw = raw.strip()
    if raw.startswith("@"):
        path = Path(raw[1:]).expanduser()
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ValueError(f"Cannot read {path}: {e}") from e
        mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        return EssayEvidence(image=data, mime_type=mime_type, source_name=path.name)
    return EssayEvidence(text=raw)


async def _answer_choice(session: QuizSession, question: MultipleChoiceQuestion) -> None:
    labels = [option_label(i) for i in range(len(question.options))]

    while not session.submitted:
        raw = (await _ask(f"Your answer ({'/'.join(labels)})")).strip()
        if session.submitted:
            return
        if raw.lower() == SUBMIT_COMMAND:
            session.force_submit()
            return
        if raw.upper() not in labels:
            if raw == "" and question.id in session.answers:
                return
            console.print(f"[yellow]Choose one of {', '.join(labels)}[/yellow]")
            continue

        option = question.options[labels.index(raw.upper())]
        try:
            answer = session.select_option(question.id, option.id)
        except ActionRejected as e:
            console.print(f"[yellow]{e.reason}[/yellow]")
            return

        if not session.is_exam:
            display_choice_feedback(question, answer)
            return
        console.print(f"[dim]Selected {raw.upper()}. Enter to continue, or pick again.[/dim]")


async def _answer_essay(session: QuizSession, question: EssayQuestion) -> None:
    while not session.submitted and question.id not in session.answers:
        raw = await _ask("Your answer")
        if session.submitted:
            return
        if raw.strip().lower() == SUBMIT_COMMAND:
            session.force_submit()
            return
        try:
            evidence = evidence_from_input(raw)
        except ValueError as e:
            console.print(f"[yellow]{e}[/yellow]")
            continue

        with console.status("Grading..."):
            answer = await session.submit_essay_evidence(question.id, evidence)

        if answer is not None:
            display_essay_feedback(answer)
        elif not session.submitted:
            console.print("[red]Grading failed.[/red] Your answer was not scored; try again.")


async def _offer_recall_rating(session: QuizSession, question_id: str) -> None:
    raw = await _ask(
        "[dim]Rate your recall 0-5 (Enter to skip)[/dim]",
        default="",
        show_default=False,
    )
    if session.submitted or not raw.strip():
        return
    try:
        state = session.rate_recall(question_id, int(raw))
    except ValueError:
        console.print("[yellow]Ratings are whole numbers 0-5[/yellow]")
        return
    except ActionRejected as e:
        console.print(f"[yellow]{e.reason}[/yellow]")
        return
    console.print(f"[dim]Next review in {state.interval_days} day(s)[/dim]")


async def run_session(session: QuizSession, bus: SignalBus) -> SessionResult:
    """Drive a session in the terminal until it is submitted."""
    loop = asyncio.get_running_loop()
    installed: list[int] = []

    if session.is_exam:
        installed = _install_signal_handlers(loop, bus)

        def notify(kind: IntegritySignal) -> None:
            if not session.submitted:
                console.print(f"[bold yellow]Focus loss recorded ({kind.value})[/bold yellow]")

        bus.subscribe(IntegritySignal.WINDOW_BLUR, notify)
        bus.subscribe(IntegritySignal.PAGE_HIDDEN, notify)

    session.start()
    try:
        while not session.submitted:
            question = session.current_question
            display_question(session)

            match question:
                case MultipleChoiceQuestion():
                    await _answer_choice(session, question)
                case EssayQuestion():
                    await _answer_essay(session, question)

            if session.submitted:
                break
            if question.id not in session.answers:
                continue

            can_rate = not session.is_exam and not session.config.immediate_learning
            if can_rate:
                await _offer_recall_rating(session, question.id)
            if not session.submitted:
                session.advance()
    finally:
        session.close()
        for signum in installed:
            loop.remove_signal_handler(signum)

    return session.result()


async def _run_with_grader(session: QuizSession, bus: SignalBus) -> SessionResult:
    grader = session.resolver.grader
    try:
        return await run_session(session, bus)
    finally:
        if isinstance(grader, HttpEssayGrader):
            await grader.close()


# =============================================================================
# Commands
# =============================================================================


@app.command()
def run(
    question_file: Path = typer.Argument(..., help="JSON question set"),
    mode: SessionMode = typer.Option(SessionMode.PRACTICE, "--mode", "-m", help="practice or exam"),
    time_limit: Optional[int] = typer.Option(
        None,
        "--time-limit", "-t",
        help="Exam time limit in seconds (default: per-question budget)",
    ),
    immediate: Optional[bool] = typer.Option(
        None,
        "--immediate/--no-immediate",
        help="Schedule multiple-choice reviews as soon as they are answered",
    ),
    save: bool = typer.Option(True, "--save/--no-save", help="Persist scheduling state and the attempt"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="State database path"),
) -> None:
    """
    Take a quiz or timed exam.

    Multiple-choice questions are graded instantly; essays are sent to
    the configured grading service.
    """
    settings = get_settings()

    try:
        question_set = load_questions(question_file)
    except QuestionSetError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    overrides = {"mode": mode, "time_limit_seconds": time_limit}
    if immediate is not None:
        overrides["immediate_learning"] = immediate
    config = SessionConfig.from_settings(settings, **overrides)

    store = StateStore(db_path or settings.state_db_path) if save else None
    sm2 = SM2Scheduler(SM2Config.from_settings(settings))
    review = ReviewScheduler(store, sm2) if store else None
    prior = review.load_states(q.id for q in question_set.questions) if review else {}

    resolver = GradingResolver(
        build_grader(settings),
        pass_threshold=config.essay_pass_threshold,
        timeout_seconds=settings.grading_timeout_seconds,
    )
    bus = SignalBus()

    def announce(result: SessionResult) -> None:
        if result.timed_out:
            console.print("\n[bold red]Time is up.[/bold red] Press Enter to see your results.")

    session = QuizSession(
        question_set.questions,
        config,
        resolver=resolver,
        scheduler=sm2,
        signals=bus,
        on_complete=announce,
        scheduling_states=prior,
        topic=question_set.topic,
    )

    title = question_set.topic or question_file.stem
    console.print(f"\n[bold cyan]{title}[/bold cyan] - {len(question_set)} questions ({mode.value})")
    if session.is_exam:
        console.print(f"Time limit: {format_clock(session.remaining_seconds)}")

    result = asyncio.run(_run_with_grader(session, bus))
    display_summary(result)

    if review is not None:
        review.persist_session(session.scheduling_states(), session.review_history())
        store.record_attempt(result)
        store.close()


@app.command()
def validate(
    question_file: Path = typer.Argument(..., help="JSON question set"),
) -> None:
    """Check a question file without starting a session."""
    try:
        question_set = load_questions(question_file)
    except QuestionSetError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise typer.Exit(1)

    mcq = sum(1 for q in question_set.questions if isinstance(q, MultipleChoiceQuestion))
    essays = len(question_set) - mcq
    console.print(f"[green]✓[/green] {len(question_set)} questions: {mcq} multiple choice, {essays} essay")


@app.command()
def due(
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum questions to list"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="State database path"),
) -> None:
    """List questions due for review."""
    store = StateStore(db_path or get_settings().state_db_path)
    now = current_millis()
    due_ids = ReviewScheduler(store).due_question_ids(now, limit=limit)

    if not due_ids:
        console.print("\n[green]Nothing due for review![/green]")
        store.close()
        return

    table = Table(title="Due for Review")
    table.add_column("Question")
    table.add_column("Interval", justify="right")
    table.add_column("Ease", justify="right")
    table.add_column("Overdue", justify="right")

    for question_id, state in store.get_states(due_ids).items():
        table.add_row(
            question_id,
            f"{state.interval_days}d",
            f"{state.ease_factor:.2f}",
            f"{state.days_overdue(now)}d",
        )
    console.print(table)
    store.close()


@app.command()
def stats(
    db_path: Optional[Path] = typer.Option(None, "--db", help="State database path"),
) -> None:
    """Show review statistics."""
    with StateStore(db_path or get_settings().state_db_path) as store:
        summary = store.get_stats(current_millis())

    table = Table(title="Review Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Questions tracked", str(summary["questions_tracked"]))
    table.add_row("Due now", str(summary["questions_due"]))
    table.add_row("Reviews logged", str(summary["total_reviews"]))
    table.add_row("Retention", f"{summary['retention_rate_percent']}%")
    table.add_row("Attempts", str(summary["attempts_completed"]))
    console.print(table)


@app.command()
def history(
    limit: int = typer.Option(10, "--limit", "-l", help="Number of attempts to show"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="State database path"),
) -> None:
    """Show recent attempts."""
    store = StateStore(db_path or get_settings().state_db_path)
    attempts = store.get_recent_attempts(limit=limit)
    store.close()

    if not attempts:
        console.print("\n[dim]No attempts recorded yet.[/dim]")
        return

    table = Table(title="Recent Attempts")
    table.add_column("Topic")
    table.add_column("Mode")
    table.add_column("Score", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Time", justify="right")
    table.add_column("Focus losses", justify="right")

    for attempt in attempts:
        table.add_row(
            attempt.topic or "-",
            attempt.mode,
            f"{attempt.score}/{attempt.total}",
            f"{attempt.accuracy:.1f}%",
            format_clock(attempt.elapsed_seconds),
            str(attempt.infraction_count),
        )
    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()

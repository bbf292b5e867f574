"""
examprep CLI - drive the mastery engine from the terminal.

Usage:
    examprep load-items physics.json --set-id physics-1 --name "Physics"
    examprep generate Kinematics --subject Physics --student s1 --count 10
    examprep review s1 <item-id> 0.85
    examprep due s1 physics-1 --limit 10
    examprep summary s1 physics-1
    examprep start-test s1 physics-1
    examprep submit-test <attempt-id> answers.json --time 600
    examprep progress s1 --window 30
    examprep recommend s1
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from loguru import logger
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from examprep.config import Settings, get_settings
from examprep.content.generator import FallbackContentGenerator, HttpContentGenerator
from examprep.core.exceptions import EngineError
from examprep.core.models import Difficulty, PerformanceProfile, QuestionType, RecommendationReport
from examprep.db.database import Database
from examprep.db.sql_store import SqlStore
from examprep.schemas import AnswerSubmission, ItemPayload
from examprep.service import MasteryEngine
from examprep.study.mastery_estimator import MasteryLevel

T = TypeVar("T")

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="examprep",
    help="Adaptive mastery engine - spaced review, test scoring and study guidance",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Install loguru sinks for command-line use."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if log_file:
        logger.add(log_file, level="DEBUG", rotation="10 MB", retention=5)


@app.callback()
def main_callback(
    ctx: typer.Context,
    database_url: Annotated[
        str | None, typer.Option("--db", help="Database URL (defaults to EXAMPREP_DATABASE_URL)")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Adaptive mastery engine for exam preparation."""
    settings = get_settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    configure_logging("DEBUG" if verbose else settings.log_level, settings.log_file)
    ctx.obj = settings


def _run(settings: Settings, action: Callable[[MasteryEngine], Awaitable[T]]) -> T:
    """Build an engine over the SQL store, run one async action, map engine errors to exit 1."""

    async def runner() -> T:
        database = Database(settings.database_url)
        database.init_db()
        try:
            if settings.content_api_url:
                async with HttpContentGenerator(settings) as generator:
                    return await action(MasteryEngine(SqlStore(database), settings, content_generator=generator))
            return await action(
                MasteryEngine(SqlStore(database), settings, content_generator=FallbackContentGenerator(settings))
            )
        finally:
            database.dispose()

    try:
        return asyncio.run(runner())
    except EngineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1) from e


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {path}:[/] {e}")
        raise typer.Exit(1) from e


# =============================================================================
# Item Commands
# =============================================================================


@app.command("load-items")
def load_items(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="JSON file with a list of items")],
    set_id: Annotated[str, typer.Option("--set-id", "-s", help="Item set id")],
    name: Annotated[str | None, typer.Option("--name", "-n", help="Display name")] = None,
) -> None:
    """Register an item set from a JSON file."""
    try:
        payloads = TypeAdapter(list[ItemPayload]).validate_python(_load_json(path))
    except ValidationError as e:
        console.print(f"[red]Invalid item file:[/] {e}")
        raise typer.Exit(1) from e

    def build(engine: MasteryEngine):
        return engine.register_item_set(set_id, name or set_id, [p.to_item() for p in payloads])

    item_set = _run(ctx.obj, build)
    console.print(f"[green]Loaded {len(item_set.items)} items into {item_set.id}[/]")


@app.command()
def generate(
    ctx: typer.Context,
    topic: Annotated[str, typer.Argument(help="Topic to generate questions on")],
    subject: Annotated[str, typer.Option("--subject", help="Subject the topic belongs to")] = "General",
    student: Annotated[str, typer.Option("--student", help="Student to adapt difficulty for")] = "anonymous",
    count: Annotated[int, typer.Option("--count", "-n", help="Number of questions")] = 10,
    question_type: Annotated[QuestionType, typer.Option("--type", "-t")] = QuestionType.SINGLE_CHOICE,
    difficulty: Annotated[Difficulty, typer.Option("--difficulty", "-d", help="Base difficulty")] = Difficulty.MEDIUM,
    set_id: Annotated[str | None, typer.Option("--set-id", "-s")] = None,
) -> None:
    """Generate a practice set at the student's adapted difficulty."""
    item_set = _run(
        ctx.obj,
        lambda engine: engine.build_practice_set(student, topic, subject, count, question_type, difficulty, set_id),
    )
    console.print(
        Panel(
            f"Set: [bold]{item_set.id}[/]\n{item_set.name}\nItems: {len(item_set.items)}",
            title="Practice Set",
            border_style="cyan",
        )
    )


# =============================================================================
# Review Commands
# =============================================================================


@app.command()
def review(
    ctx: typer.Context,
    student: Annotated[str, typer.Argument(help="Student id")],
    item_id: Annotated[str, typer.Argument(help="Reviewed item id")],
    performance: Annotated[float, typer.Argument(help="Recall quality in [0, 1]")],
    time_spent: Annotated[float, typer.Option("--time", help="Seconds spent")] = 0.0,
) -> None:
    """Record one flashcard review."""
    record = _run(ctx.obj, lambda engine: engine.submit_review(student, item_id, performance, time_spent))
    console.print(
        f"Next review in [bold]{record.interval_days}[/] day(s) "
        f"({record.next_review_at:%Y-%m-%d %H:%M} UTC)"
    )


@app.command()
def due(
    ctx: typer.Context,
    student: Annotated[str, typer.Argument(help="Student id")],
    set_id: Annotated[str, typer.Argument(help="Item set id")],
    limit: Annotated[int, typer.Option("--limit", "-n")] = 20,
) -> None:
    """List items due for review, highest priority first."""
    queue = _run(ctx.obj, lambda engine: engine.get_due_queue(student, set_id, limit))
    if not queue:
        console.print("[green]Nothing due - come back later.[/]")
        return

    table = Table(title=f"Due in {set_id}")
    table.add_column("#", justify="right")
    table.add_column("Item")
    table.add_column("Topic")
    table.add_column("Priority", justify="center")
    table.add_column("Status")
    for position, entry in enumerate(queue, start=1):
        table.add_row(
            str(position),
            entry.item.id,
            entry.item.topic,
            str(entry.priority),
            "[cyan]new[/]" if entry.is_new else "[yellow]due[/]",
        )
    console.print(table)


@app.command()
def summary(
    ctx: typer.Context,
    student: Annotated[str, typer.Argument(help="Student id")],
    set_id: Annotated[str, typer.Argument(help="Item set id")],
) -> None:
    """Show set statistics: mastery, retention, streak."""
    stats = _run(ctx.obj, lambda engine: engine.set_summary(student, set_id))
    level = MasteryLevel.from_score(stats.overall_mastery)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value")
    table.add_row("Items", str(stats.total_items))
    table.add_row("New / Due", f"{stats.new_items} / {stats.due_items}")
    table.add_row("Mastered", str(stats.mastered_items))
    table.add_row("Set mastery", f"[{level.color}]{stats.overall_mastery:.1f} ({level.display_name})[/]")
    table.add_row("Average item mastery", f"{stats.average_mastery:.1f}")
    table.add_row("Retention", f"{stats.retention_rate:.0f}%")
    table.add_row("Reviews", str(stats.total_reviews))
    table.add_row("Streak", f"{stats.review_streak} day(s)")
    console.print(Panel(table, title=set_id, border_style="cyan"))


# =============================================================================
# Test Commands
# =============================================================================


@app.command("start-test")
def start_test(
    ctx: typer.Context,
    student: Annotated[str, typer.Argument(help="Student id")],
    set_id: Annotated[str, typer.Argument(help="Item set to test on")],
    name: Annotated[str, typer.Option("--name")] = "",
) -> None:
    """Open a test attempt over every item of a set."""

    async def start(engine: MasteryEngine):
        item_set = await engine.store.get_item_set(set_id)
        return await engine.create_attempt(student, [i.id for i in item_set.items], name or set_id)

    attempt = _run(ctx.obj, start)
    console.print(f"Attempt [bold]{attempt.id}[/] started with {len(attempt.item_ids)} questions")


@app.command("submit-test")
def submit_test(
    ctx: typer.Context,
    attempt_id: Annotated[str, typer.Argument(help="Attempt id")],
    answers_path: Annotated[Path, typer.Argument(help="JSON list of {question_id, answer, time_spent}")],
    time_spent: Annotated[float | None, typer.Option("--time", help="Total seconds")] = None,
) -> None:
    """Score a test attempt and print analytics and recommendations."""
    try:
        answers = TypeAdapter(list[AnswerSubmission]).validate_python(_load_json(answers_path))
    except ValidationError as e:
        console.print(f"[red]Invalid answers file:[/] {e}")
        raise typer.Exit(1) from e

    report = _run(ctx.obj, lambda engine: engine.submit_attempt(attempt_id, answers, time_spent))
    evaluation = report.evaluation
    color = "green" if evaluation.passed else "red"
    lines = [
        f"Score: [bold {color}]{evaluation.score:.1f}%[/] ({evaluation.performance_category.display_name})",
        f"Correct: {evaluation.correct_answers}/{evaluation.total_questions}",
        f"Pending manual review: {evaluation.pending_review}",
    ]
    if report.comparison:
        lines.append(
            f"vs previous {report.comparison.tests_compared}: "
            f"{report.comparison.improvement:+.1f} ({report.comparison.trend.value})"
        )
    console.print(Panel("\n".join(lines), title="Result", border_style=color))

    timing = evaluation.analytics.time_management
    console.print(
        f"Time: {timing.too_fast} too fast, {timing.optimal} optimal, {timing.too_slow} too slow "
        f"(avg {timing.average_time_per_question:.0f}s)"
    )
    _print_recommendations(report.recommendations)


# =============================================================================
# Progress Commands
# =============================================================================


@app.command()
def progress(
    ctx: typer.Context,
    student: Annotated[str, typer.Argument(help="Student id")],
    window: Annotated[int, typer.Option("--window", "-w", help="Window in days")] = 30,
) -> None:
    """Show the student's performance profile."""
    profile = _run(ctx.obj, lambda engine: engine.get_progress(student, window))
    _print_profile(profile)


@app.command()
def recommend(
    ctx: typer.Context,
    student: Annotated[str, typer.Argument(help="Student id")],
    window: Annotated[int, typer.Option("--window", "-w")] = 30,
    limit: Annotated[int | None, typer.Option("--limit", "-n")] = None,
) -> None:
    """Show study recommendations and the learning path."""
    report = _run(ctx.obj, lambda engine: engine.recommend(student, window, limit))
    _print_recommendations(report)


def _print_profile(profile: PerformanceProfile) -> None:
    if not profile.has_history:
        console.print(f"[dim]No practice in the last {profile.window_days} days.[/]")
        return

    console.print(
        Panel(
            f"Accuracy: [bold]{profile.accuracy:.1f}%[/]\n"
            f"Consistency: {profile.consistency_score:.0f}% ({profile.active_days} active days)\n"
            f"Improvement: {profile.improvement_rate:+.1f}%",
            title=f"{profile.student_id} - last {profile.window_days} days",
            border_style="cyan",
        )
    )
    table = Table(title="Topics")
    table.add_column("Topic")
    table.add_column("Mastery", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Attempts", justify="right")
    for topic in sorted(profile.topic_mastery.values(), key=lambda t: t.mastery):
        level = MasteryLevel.from_score(topic.mastery)
        table.add_row(
            topic.topic,
            f"[{level.color}]{topic.mastery:.0f}%[/]",
            f"{topic.confidence:.0f}%",
            str(topic.attempts),
        )
    console.print(table)
    if profile.weak_areas:
        console.print("Weak: " + ", ".join(a.name for a in profile.weak_areas))
    if profile.strong_areas:
        console.print("Strong: " + ", ".join(a.name for a in profile.strong_areas))


def _print_recommendations(report: RecommendationReport) -> None:
    table = Table(title="Recommendations")
    table.add_column("Priority")
    table.add_column("Recommendation")
    table.add_column("Action")
    for rec in report.recommendations:
        style = "red" if rec.priority.value == "high" else "yellow"
        table.add_row(f"[{style}]{rec.priority.value}[/]", rec.message, rec.action)
    console.print(table)

    path = report.learning_path
    phases = " -> ".join(f"{p.name} ({p.duration})" for p in path.phases)
    console.print(f"Level: [bold]{path.current_level}[/]  Path: {phases}  (~{path.estimated_weeks} weeks)")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()

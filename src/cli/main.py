"""
Typer CLI for the practice-engine service.

Commands:
    practice db init             - Initialize database tables
    practice db status           - Check connectivity and row counts
    practice questions load FILE - Bulk load questions from JSON
    practice serve               - Run the REST API with uvicorn
    practice mastery LEARNER     - Show a learner's topic mastery
    practice queue LEARNER       - Show a learner's pending review queue

Usage:
    practice --help
    practice db init
    practice questions load data/physics.json
    practice queue learner-42 --subject physics
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from src.core.log_config import configure_logging
from src.core.mastery import TopicMasterySnapshot
from src.db.database import check_database_health, init_db, session_scope, table_counts
from src.db.gateway import PracticeGateway
from src.db.models import Question

app = typer.Typer(
    help="practice-engine CLI: adaptive practice sessions over a question bank",
    no_args_is_help=True,
)

console = Console()

QUESTION_FIELDS = {column.key for column in Question.__table__.columns} - {"created_at"}
REQUIRED_QUESTION_FIELDS = ("subject_id", "topic_id", "correct_answer")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show INFO logs"),
) -> None:
    """Adaptive practice engine."""
    configure_logging(get_settings(), level="INFO" if verbose else "WARNING", to_file=False)


# ========================================
# DATABASE COMMANDS
# ========================================

db_app = typer.Typer(help="Database management (init, status)")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Creates all tables defined in src/db/models/ if they don't exist.
    Safe to run multiple times (idempotent).
    """
    logger.info("Initializing database tables...")

    try:
        init_db()
    except SQLAlchemyError as exc:
        logger.error(f"Database initialization failed: {exc}")
        rprint(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)

    rprint("[green]✓[/green] Database initialized!")


@db_app.command("status")
def db_status() -> None:
    """Check database connectivity and show row counts per table."""
    db_status_value, db_error = check_database_health()
    if db_error:
        rprint(f"[red]✗[/red] Database unreachable: {db_error}")
        raise typer.Exit(code=1)

    with session_scope() as session:
        counts = table_counts(session)

    table = Table(title="Practice Engine Tables")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", style="green", justify="right")
    for name, count in counts.items():
        table.add_row(name, f"{count:,}")

    rprint(f"[green]✓[/green] Database {db_status_value}")
    console.print(table)


# ========================================
# QUESTION BANK COMMANDS
# ========================================

questions_app = typer.Typer(help="Question bank management")
app.add_typer(questions_app, name="questions")


def read_question_file(path: Path) -> list[dict[str, Any]]:
    """
    Parse a question bank file.

    Accepts either a JSON list of question objects or an object with a
    "questions" list. Unknown keys are dropped; numeric difficulties are
    stored as strings.

    Raises:
        ValueError: Malformed file or a question missing required fields
    """
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("questions")
    if not isinstance(payload, list):
        raise ValueError("Expected a list of questions or an object with a 'questions' list")

    records = []
    for index, raw in enumerate(payload):
        if not isinstance(raw, dict):
            raise ValueError(f"Question #{index} is not an object")
        missing = [name for name in REQUIRED_QUESTION_FIELDS if raw.get(name) is None]
        if missing:
            raise ValueError(f"Question #{index} is missing: {', '.join(missing)}")

        record = {key: value for key, value in raw.items() if key in QUESTION_FIELDS}
        if record.get("difficulty") is not None:
            record["difficulty"] = str(record["difficulty"])
        records.append(record)
    return records


@questions_app.command("load")
def questions_load(
    path: Path = typer.Argument(..., help="JSON file with questions"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Validate without writing"),
) -> None:
    """
    Load questions from a JSON file into the question bank.

    Existing questions with the same id are replaced.

    Examples:
        practice questions load bank.json
        practice questions load bank.json --dry-run
    """
    if not path.exists():
        rprint(f"[red]Error:[/red] Path not found: {path}")
        raise typer.Exit(1)

    try:
        records = read_question_file(path)
    except (ValueError, json.JSONDecodeError) as exc:
        rprint(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)

    if dry_run:
        subjects = sorted({r["subject_id"] for r in records})
        rprint(f"[cyan]{len(records)} questions valid[/cyan] (subjects: {', '.join(subjects)})")
        rprint("[dim]Run without --dry-run to import[/dim]")
        return

    with session_scope() as session:
        loaded = PracticeGateway(session).add_questions(records)

    logger.info(f"Loaded {loaded} questions from {path}")
    rprint(f"[green]✓[/green] Loaded {loaded} questions from {path}")


# ========================================
# LEARNER COMMANDS
# ========================================


@app.command("mastery")
def show_mastery(
    learner_id: str = typer.Argument(..., help="Learner identifier"),
) -> None:
    """Show topic mastery and next review dates for a learner."""
    settings = get_settings()

    with session_scope() as session:
        gateway = PracticeGateway(session)
        snapshots = [
            TopicMasterySnapshot.from_row(
                row, settings.weak_mastery_threshold, settings.strong_mastery_threshold
            )
            for row in gateway.learner_topic_mastery(learner_id)
        ]
        profile = gateway.get_ability_profile(learner_id)
        theta = float(profile.theta) if profile is not None else 0.0
        xp = profile.xp if profile is not None else 0

    if not snapshots:
        rprint(f"[yellow]No mastery recorded for learner {learner_id}[/yellow]")
        return

    table = Table(title=f"Topic Mastery: {learner_id}")
    table.add_column("Topic", style="cyan")
    table.add_column("Level")
    table.add_column("Mastery", justify="right")
    table.add_column("Reps", justify="right")
    table.add_column("Ease", justify="right")
    table.add_column("Next Review", style="dim")

    for snap in snapshots:
        table.add_row(
            snap.topic_id,
            f"[{snap.level.color}]{snap.level.emoji} {snap.level.display_name}[/{snap.level.color}]",
            f"{snap.mastery_level:.0%}",
            str(snap.repetition_count),
            f"{snap.ease_factor:.2f}",
            snap.next_review_date.strftime("%Y-%m-%d %H:%M") if snap.next_review_date else "-",
        )

    console.print(table)
    rprint(f"[dim]Ability (theta): {theta:+.3f}   Lifetime XP: {xp}[/dim]")


@app.command("queue")
def show_queue(
    learner_id: str = typer.Argument(..., help="Learner identifier"),
    subject: str = typer.Option(None, "--subject", "-s", help="Only this subject"),
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum items"),
) -> None:
    """Show a learner's pending spaced-repetition items, soonest first."""
    with session_scope() as session:
        items = PracticeGateway(session).learner_queue(learner_id, subject_id=subject, limit=limit)
        rows = [
            (
                item.question_id,
                item.topic_id or "-",
                item.scheduled_for.strftime("%Y-%m-%d %H:%M"),
                f"{item.priority_score:.2f}",
                item.recommendation_reason or "-",
            )
            for item in items
        ]

    if not rows:
        rprint(f"[yellow]No pending reviews for learner {learner_id}[/yellow]")
        return

    table = Table(title=f"Review Queue: {learner_id}")
    table.add_column("Question", style="cyan", max_width=36)
    table.add_column("Topic")
    table.add_column("Scheduled For", style="green")
    table.add_column("Priority", justify="right")
    table.add_column("Reason", style="dim")
    for row in rows:
        table.add_row(*row)

    console.print(table)


# ========================================
# SERVER
# ========================================


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (default from settings)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the practice REST API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command("version")
def show_version() -> None:
    """Show version information."""
    rprint("[bold]practice-engine[/bold] v0.1.0")
    rprint("  Adaptive practice sessions: IRT ability, SM-2 review, mode mixes")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

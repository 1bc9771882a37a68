"""
Typer CLI for the daily practice tracker.

Commands:
    practice question        - Show today's question
    practice answer [TEXT]   - Submit today's answer (prompts when TEXT is omitted)
    practice stats           - Show streaks, totals and achievements
    practice history         - Show recent answers with feedback
    practice info            - Show configuration

Usage:
    practice --help
    practice answer "I learned to ask for help earlier."
    PRACTICE_USER_ID=alice practice stats
"""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

# Fix Windows encoding issues for emoji in achievement badges
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from config import get_settings
from src.practice import (
    AlreadyAnsweredError,
    AnswerSubmissionService,
    AnswerValidationError,
    EmptyPoolError,
    PersistenceError,
)

app = typer.Typer(
    help="Daily practice: one question a day, keep your streak alive",
    no_args_is_help=True,
)

console = Console()

T = TypeVar("T")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Configure logging before any command runs."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """Lazily builds the submission service from settings."""

    def __init__(self, user_id: str | None = None):
        self.settings = get_settings()
        self.user_id = user_id or self.settings.user_id
        self._service: AnswerSubmissionService | None = None

    @property
    def service(self) -> AnswerSubmissionService:
        if self._service is None:
            try:
                self._service = AnswerSubmissionService.from_settings(self.settings)
            except PersistenceError as e:
                rprint(f"[red]✗[/red] Storage unavailable: {e}")
                raise typer.Exit(code=2)
        return self._service


def _build_context(user_id: str | None = None) -> CLIContext:
    return CLIContext(user_id=user_id)


USER_OPTION = typer.Option(None, "--user", "-u", help="User id (defaults to PRACTICE_USER_ID)")


def _run(ctx: CLIContext, work: Callable[[], Awaitable[T]], failure: str = "Storage unavailable") -> T:
    """Run async service work, then release the service; storage failures exit with code 2."""

    async def run_and_close() -> T:
        try:
            return await work()
        finally:
            await ctx.service.close()

    try:
        return asyncio.run(run_and_close())
    except PersistenceError as e:
        rprint(f"[red]✗[/red] {failure}: {e}")
        raise typer.Exit(code=2)


def _todays_question(ctx: CLIContext):
    try:
        return ctx.service.todays_question()
    except EmptyPoolError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=2)


# ========================================
# DAILY QUESTION COMMANDS
# ========================================


@app.command("question")
def show_question(user: Optional[str] = USER_OPTION) -> None:
    """Show today's question."""
    ctx = _build_context(user)
    question = _todays_question(ctx)
    progress = _run(ctx, lambda: ctx.service.progress(ctx.user_id))

    subtitle = "[green]✓ Answered today[/green]" if progress.answered_today else "[dim]Not answered yet[/dim]"
    console.print(
        Panel(
            question.text,
            title=f"Question of the day · {progress.today:%b %d, %Y}",
            subtitle=subtitle,
            border_style="cyan",
        )
    )


@app.command("answer")
def submit_answer(
    text: Optional[str] = typer.Argument(None, help="Your answer (prompted when omitted)"),
    user: Optional[str] = USER_OPTION,
) -> None:
    """
    Submit an answer to today's question.

    One answer is accepted per calendar day. Answering on consecutive days
    grows your streak; missing a day starts it again at 1.
    """
    ctx = _build_context(user)
    question = _todays_question(ctx)

    if text is None:
        console.print(Panel(question.text, title="Question of the day", border_style="cyan"))
        text = Prompt.ask("Your answer")

    async def submit_and_reload():
        answer = await ctx.service.submit(ctx.user_id, question.id, text)
        return answer, await ctx.service.stats(ctx.user_id)

    try:
        answer, stats = _run(ctx, submit_and_reload, failure="Failed to save your answer. Please try again")
    except AnswerValidationError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    except AlreadyAnsweredError:
        rprint("[yellow]⚠[/yellow] You already answered today's question. Come back tomorrow!")
        return

    rprint("\n[bold green]✓ Answer submitted![/bold green]")
    console.print(Panel(answer.feedback, title="Feedback", border_style="green"))
    rprint(f"  🔥 Streak: [bold]{stats.current_streak}[/bold] day(s)   📚 Total: {stats.total_answers}")


# ========================================
# PROGRESS COMMANDS
# ========================================


@app.command("stats")
def show_stats(user: Optional[str] = USER_OPTION) -> None:
    """Show streaks, totals and achievements."""
    ctx = _build_context(user)
    progress = _run(ctx, lambda: ctx.service.progress(ctx.user_id))

    table = Table(title="Your Learning Journey", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")

    table.add_row("Current Streak", str(progress.current_streak))
    table.add_row("Longest Streak", str(progress.longest_streak))
    table.add_row("Questions Answered", str(progress.total_answers))
    table.add_row("Average Score", f"{progress.average_score}%")
    table.add_row(
        "Last Answered",
        f"{progress.last_answer_date:%b %d, %Y}" if progress.last_answer_date else "-",
    )
    console.print(table)

    badges = Table(title="🏆 Achievements", show_header=False)
    badges.add_column("Icon")
    badges.add_column("Achievement")
    badges.add_column("Status", justify="right")
    for achievement, unlocked in progress.achievements:
        badges.add_row(
            achievement.icon,
            f"[bold]{achievement.title}[/bold]\n[dim]{achievement.description}[/dim]",
            "[green]Unlocked[/green]" if unlocked else "[dim]Locked[/dim]",
        )
    console.print(badges)

    if progress.total_answers == 0:
        rprint("[dim]No activity yet. Answer today's question to get started![/dim]")


@app.command("history")
def show_history(
    limit: int = typer.Option(10, "--limit", "-n", help="Number of answers to show"),
    user: Optional[str] = USER_OPTION,
) -> None:
    """Show recent answers, newest first."""
    ctx = _build_context(user)
    answers = _run(ctx, lambda: ctx.service.history(ctx.user_id, limit=limit))

    if not answers:
        rprint("[dim]No answers yet.[/dim]")
        return

    table = Table(title=f"Recent Answers ({len(answers)})", show_header=True)
    table.add_column("Date", style="cyan")
    table.add_column("Answer")
    table.add_column("Feedback", style="dim")

    for answer in answers:
        table.add_row(f"{answer.created_at:%Y-%m-%d}", answer.text, answer.feedback)

    console.print(table)


# ========================================
# INFO COMMANDS
# ========================================


@app.command("info")
def show_info() -> None:
    """Show configuration."""
    settings = get_settings()

    table = Table(title="Daily Practice Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Database", str(settings.db_path))
    table.add_row("User", settings.user_id)
    table.add_row("Timezone", settings.timezone or "system local")
    table.add_row("Question File", str(settings.question_file) if settings.question_file else "built-in pool")
    table.add_row("Duplicate Policy", settings.duplicate_policy)
    table.add_row("Min Answer Length", str(settings.min_answer_length))
    table.add_row("Scoring Service", settings.feedback_url or "Not set (placeholder feedback)")
    table.add_row("Log Level", settings.log_level)

    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

"""
Typer CLI for coco-coach.

Commands:
    coach run                       - Run one live session (audio + OpenAI + backend)
    coach simulate                  - Run a session against a scripted participant
    coach plan                      - Print the adaptive plan that would run next
    coach profile USER_ID           - Show a stored user profile
    coach activities                - List the content library

Usage:
    coach run
    coach simulate --persona quitter
    coach plan --user u-123
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import Settings, get_settings
from coach import __version__
from coach.backend import BackendClient
from coach.errors import CoachError
from coach.library import load_library
from coach.planner import AdaptivePlanner
from coach.profile import ProfileStore
from coach.session import SessionIdentity, SessionResult, SessionRunner
from coach.simulator import PERSONAS, RecordingBackend, ScriptedVoiceIO

app = typer.Typer(
    help="coco-coach: voice-driven cognitive training sessions",
    no_args_is_help=True,
)

console = Console()


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """stderr sink, plus an optional rotating file sink."""
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation=settings.log_rotation,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra} | {message}",
        )


def _profile_store(settings: Settings) -> ProfileStore:
    return ProfileStore(settings.profiles_dir)


def _render_result(result: SessionResult) -> None:
    table = Table(title=f"Session {result.status.value}")
    table.add_column("Activity", style="cyan")
    table.add_column("Domain")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Turns", justify="right")
    table.add_column("Latency (ms)", justify="right", style="dim")

    for activity in result.activity_results:
        table.add_row(
            activity.activity_id,
            activity.cognitive_domain.value,
            str(activity.score),
            str(activity.turn_count),
            str(activity.response_time_ms or "-"),
        )

    if result.domain_scores:
        table.add_section()
        for domain, score in result.domain_scores.items():
            table.add_row("", f"[bold]{domain.value}[/bold]", f"[bold]{score}[/bold]", "", "")

    console.print(table)
    console.print(
        f"Utterances: {result.utterance_count}  Duration: {result.duration_sec}s  "
        f"Summary sent: {'yes' if result.summary_sent else 'no'}  Exit code: {result.exit_code}"
    )


# ========================================
# Commands
# ========================================


@app.command("run")
def run_command(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run one live session on this device."""
    settings = get_settings()
    configure_logging(settings, verbose)

    from coach.voice import LiveVoiceIO

    async def _main() -> SessionResult:
        async with BackendClient.from_settings(settings) as backend:
            runner = SessionRunner(
                io=None,
                io_factory=lambda: LiveVoiceIO.from_settings(settings),
                backend=backend,
                identity=SessionIdentity.from_settings(settings),
                profile_store=_profile_store(settings),
                library_path=settings.content_library_path,
                max_session_seconds=settings.max_session_seconds,
                summary_timeout_seconds=settings.backend_timeout_seconds,
            )
            return await runner.run()

    result = asyncio.run(_main())
    logger.info(f"Exit code: {result.exit_code}")
    raise typer.Exit(code=result.exit_code)


@app.command("simulate")
def simulate_command(
    persona: str = typer.Option("cooperative", "--persona", "-p", help=f"One of: {', '.join(PERSONAS)}"),
    send: bool = typer.Option(False, "--send", help="Post the summary to the configured backend"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run a full session against a scripted participant, without audio."""
    settings = get_settings()
    configure_logging(settings, verbose)

    if persona not in PERSONAS:
        console.print(f"[red]Unknown persona:[/red] {persona}")
        raise typer.Exit(code=1)

    io = ScriptedVoiceIO(responder=PERSONAS[persona]())

    async def _main() -> SessionResult:
        identity = SessionIdentity.from_settings(settings)
        if send:
            async with BackendClient.from_settings(settings) as backend:
                runner = SessionRunner(
                    io, backend, identity=identity,
                    library_path=settings.content_library_path,
                    summary_timeout_seconds=settings.backend_timeout_seconds,
                )
                return await runner.run()
        runner = SessionRunner(
            io, RecordingBackend(), identity=identity,
            library_path=settings.content_library_path,
        )
        return await runner.run()

    result = asyncio.run(_main())
    if as_json:
        console.print_json(json.dumps(result.to_dict()))
    else:
        _render_result(result)
    raise typer.Exit(code=result.exit_code)


@app.command("plan")
def plan_command(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Adapt to this user's stored profile"),
) -> None:
    """Print the plan the next session would run."""
    settings = get_settings()
    configure_logging(settings)

    try:
        planner = AdaptivePlanner(load_library(settings.content_library_path))
        profile = _profile_store(settings).load(user) if user else None
        plan = planner.build_adaptive_plan(profile)
    except CoachError as e:
        console.print(f"[red]Could not build plan:[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title=f"Plan {plan.plan_id[:8]} (~{plan.estimated_duration_min} min)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Activity", style="cyan")
    table.add_column("Type")
    table.add_column("Domain")
    table.add_column("Difficulty")
    table.add_column("Min", justify="right")
    for i, activity in enumerate(plan.activities, start=1):
        table.add_row(
            str(i),
            activity.title or activity.id,
            activity.type.value,
            activity.cognitive_domain.value,
            activity.difficulty.value,
            str(activity.duration_min),
        )
    console.print(table)
    if profile is None and user:
        console.print(f"[yellow]No profile for {user}; default plan shown[/yellow]")


@app.command("profile")
def profile_command(user_id: str = typer.Argument(..., help="user_external_id")) -> None:
    """Show a stored user profile."""
    settings = get_settings()
    profile = _profile_store(settings).load(user_id)
    if profile is None:
        console.print(f"[yellow]No profile for {user_id}[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title=f"Profile {profile.user_external_id}")
    table.add_column("Domain", style="cyan")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Trend")
    table.add_column("Sessions", justify="right")
    for domain_score in profile.domains:
        table.add_row(
            domain_score.domain.value,
            str(domain_score.current_score),
            domain_score.trend,
            str(domain_score.session_count),
        )
    console.print(table)
    console.print(f"Total sessions: {profile.total_sessions}  Updated: {profile.updated_at}")


@app.command("activities")
def activities_command() -> None:
    """List the content library."""
    settings = get_settings()
    try:
        library = load_library(settings.content_library_path)
    except CoachError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"Content library ({len(library)} activities)")
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Domain")
    table.add_column("Min", justify="right")
    for activity in sorted(library, key=lambda a: (a.cognitive_domain.value, a.id)):
        table.add_row(activity.id, activity.type.value, activity.cognitive_domain.value, str(activity.duration_min))
    console.print(table)


@app.command("version")
def version_command() -> None:
    console.print(f"coco-coach {__version__}")


def run() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    run()

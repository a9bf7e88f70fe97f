"""
Main CLI entry point for the trail sync client.

Usage:
    trailsync trails list
    trailsync trails generate en --watch
    trailsync lessons complete lesson-123 --trail trail-1 --score 85 --time 300
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import typer
from rich.console import Console
from rich.table import Table

from trailsync.client import TrailClient
from trailsync.errors import TrailServiceError
from trailsync.models import (
    GenerateTrailRequest,
    RefreshReason,
    RefreshTrailRequest,
)
from trailsync.services.progress import (
    compute_module_progress,
    is_trail_completed,
    remaining_lessons,
)
from trailsync.settings import get_settings
from trailsync.store import TrailStore, TrailStoreState

# Main app
app = typer.Typer(name="trailsync", help="Trail sync operator CLI")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    """Configure logging from settings."""
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ============================================================================
# Session Helper
# ============================================================================


@asynccontextmanager
async def open_session() -> AsyncIterator[tuple[TrailClient, TrailStore]]:
    """Open a client and a store bound to it; the store is disposed on exit."""
    settings = get_settings()
    async with TrailClient.from_settings(settings) as client:
        async with TrailStore.from_settings(client, settings) as store:
            yield client, store


def run_async(coro):
    """Helper to run async functions from Typer commands."""
    return asyncio.run(coro)


def exit_on_error(store: TrailStore) -> None:
    if store.error:
        console.print(f"[red]{store.error}[/red]")
        raise typer.Exit(code=1)


# ============================================================================
# Trail Commands
# ============================================================================

trails_app = typer.Typer(help="Trail management")
app.add_typer(trails_app, name="trails")


@trails_app.command("list")
def trails_list():
    """List active trails with their progress."""

    async def _list():
        async with open_session() as (_, store):
            await store.load_active_trails()
            exit_on_error(store)
            return store.active_trails, store.overall_progress

    trails, overall = run_async(_list())

    if not trails:
        console.print("No active trails.")
        return

    table = Table(title="Active trails")
    table.add_column("ID")
    table.add_column("Language")
    table.add_column("Level")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Avg score", justify="right")
    for trail in trails:
        table.add_row(
            trail.id,
            f"{trail.language_flag or ''} {trail.language_name or trail.language_code}".strip(),
            trail.level_code,
            trail.status.value,
            f"{trail.lessons_completed}/{trail.total_lessons} ({trail.progress_percentage}%)",
            "-" if trail.average_score is None else f"{trail.average_score:.1f}",
        )
    console.print(table)
    console.print(
        f"Overall: {overall.lessons_completed}/{overall.total_lessons} lessons "
        f"({overall.progress_percentage}%), {overall.time_spent_minutes} min"
    )


@trails_app.command("show")
def trails_show(trail_id: str = typer.Argument(..., help="Trail ID")):
    """Show a trail's modules and lessons."""

    async def _show():
        async with open_session() as (_, store):
            trail = await store.load_trail(trail_id)
            exit_on_error(store)
            return trail

    trail = run_async(_show())
    progress = trail.progress

    console.print(f"[bold]{trail.language_name or trail.language_code}[/bold] ({trail.level_code})")
    console.print(f"  Status: {trail.status.value}")
    if progress is not None:
        console.print(
            f"  Progress: {progress.lessons_completed}/{progress.total_lessons} "
            f"({progress.progress_percentage}%)"
        )
        if is_trail_completed(progress):
            console.print("  [green]Trail completed[/green]")
        else:
            console.print(f"  Remaining: {remaining_lessons(progress)} lessons")

    for module in trail.modules:
        module_progress = compute_module_progress(module)
        console.print(
            f"\n  {module.order_index}. {module.title} [{module.status.value}] "
            f"{module_progress.lessons_completed}/{module_progress.total_lessons}"
        )
        for lesson in module.lessons:
            mark = "●" if lesson.is_completed else ("◌" if lesson.is_placeholder else "○")
            console.print(f"     {mark} {lesson.id}: {lesson.title} ({lesson.type.value})")


@trails_app.command("generate")
def trails_generate(
    language_code: str = typer.Argument(..., help="Enrolled language code, e.g. 'en'"),
    force: bool = typer.Option(False, "--force", "-f", help="Regenerate an existing trail"),
    watch: bool = typer.Option(False, "--watch", "-w", help="Follow generation until done"),
):
    """Request generation of a trail."""

    async def _generate():
        async with open_session() as (_, store):
            await store.load_active_trails()
            trail_id = await store.generate_trail(
                GenerateTrailRequest(language_code=language_code, force_regenerate=force)
            )
            exit_on_error(store)
            console.print(f"Generating trail: {trail_id}")
            if watch:
                await follow_generation(store, trail_id)
                exit_on_error(store)
                trail = store.get_trail(trail_id)
                if trail is not None and trail.progress is not None:
                    console.print(
                        f"[green]Trail ready[/green]: {len(trail.modules)} modules, "
                        f"{trail.progress.total_lessons} lessons"
                    )

    run_async(_generate())


async def follow_generation(store: TrailStore, trail_id: str) -> None:
    """Print status updates until the store stops tracking the trail's generation."""
    done = asyncio.Event()

    def on_change(previous: TrailStoreState, current: TrailStoreState) -> None:
        status = current.generation_statuses.get(trail_id)
        if status is not None and status is not previous.generation_statuses.get(trail_id):
            line = (
                f"{status.progress_percentage:3d}% {status.current_step} "
                f"(modules {status.modules_generated}/{status.total_modules}, "
                f"lessons {status.lessons_generated}/{status.total_lessons})"
            )
            if status.error_message:
                line += f" [red]{status.error_message}[/red]"
            console.print(line)
        if trail_id in previous.generation_statuses:
            if trail_id not in current.generation_statuses:
                done.set()

    unsubscribe = store.subscribe(on_change)
    try:
        # The subscription can also end without a final status (trail deleted)
        while store.is_watching(trail_id) and not done.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(done.wait(), timeout=1.0)
    finally:
        unsubscribe()


@trails_app.command("refresh")
def trails_refresh(
    trail_id: str = typer.Argument(..., help="Trail ID"),
    reason: RefreshReason = typer.Option(
        RefreshReason.MANUAL_REQUEST, "--reason", "-r", help="Why the trail is regenerated"
    ),
    level: str | None = typer.Option(None, "--level", help="New level code (for level_change)"),
):
    """Regenerate an existing trail."""

    async def _refresh():
        async with open_session() as (_, store):
            trail = await store.refresh_trail(
                trail_id, RefreshTrailRequest(reason=reason, new_level_code=level)
            )
            exit_on_error(store)
            return trail

    trail = run_async(_refresh())
    console.print(f"Trail {trail.id} is {trail.status.value}")


@trails_app.command("archive")
def trails_archive(trail_id: str = typer.Argument(..., help="Trail ID")):
    """Archive a trail (frees a slot for a new language)."""

    async def _archive():
        async with open_session() as (_, store):
            await store.load_active_trails()
            await store.archive_trail(trail_id)
            exit_on_error(store)

    run_async(_archive())
    console.print(f"Archived trail: {trail_id}")


# ============================================================================
# Lesson Commands
# ============================================================================

lessons_app = typer.Typer(help="Lesson progress")
app.add_typer(lessons_app, name="lessons")


@lessons_app.command("complete")
def lessons_complete(
    lesson_id: str = typer.Argument(..., help="Lesson ID"),
    trail_id: str | None = typer.Option(None, "--trail", "-t", help="Trail containing the lesson"),
    score: float | None = typer.Option(None, "--score", "-s", help="Score (0-100)"),
    time_spent: int | None = typer.Option(None, "--time", help="Time spent in seconds"),
):
    """Mark a lesson complete."""

    async def _complete():
        async with open_session() as (_, store):
            if trail_id:
                await store.load_trail(trail_id)
            lesson = await store.complete_lesson(lesson_id, score, time_spent)
            exit_on_error(store)
            trail = store.get_trail(trail_id) if trail_id else None
            return lesson, trail

    lesson, trail = run_async(_complete())
    console.print(f"Completed: {lesson.title}")
    if trail is not None and trail.progress is not None:
        progress = trail.progress
        average = "-" if progress.average_score is None else f"{progress.average_score:.1f}"
        console.print(
            f"  Trail progress: {progress.lessons_completed}/{progress.total_lessons} "
            f"({progress.progress_percentage}%), average score {average}"
        )


@lessons_app.command("next")
def lessons_next(trail_id: str = typer.Argument(..., help="Trail ID")):
    """Show the next lesson to study."""

    async def _next():
        async with open_session() as (_, store):
            lesson = await store.load_next_lesson(trail_id)
            exit_on_error(store)
            return lesson

    lesson = run_async(_next())
    if lesson is None:
        console.print("[green]All lessons completed.[/green]")
        return
    console.print(f"Next: {lesson.id}: {lesson.title} ({lesson.type.value})")


# ============================================================================
# Language Commands
# ============================================================================

languages_app = typer.Typer(help="Language enrollments")
app.add_typer(languages_app, name="languages")


@languages_app.command("list")
def languages_list():
    """List enrolled languages and whether each has an active trail."""

    async def _list():
        async with open_session() as (client, store):
            await store.load_active_trails()
            exit_on_error(store)
            try:
                enrollments = await client.list_enrollments()
            except TrailServiceError as e:
                console.print(f"[red]Could not load enrollments: {e.user_message}[/red]")
                raise typer.Exit(code=1)
            return enrollments, store.active_trails

    enrollments, trails = run_async(_list())
    with_trail = {trail.language_code for trail in trails}

    for enrollment in enrollments:
        primary = " (primary)" if enrollment.is_primary else ""
        trail = "trail" if enrollment.language_code in with_trail else "no trail"
        console.print(
            f"○ {enrollment.language_code}: {enrollment.display_name} "
            f"{enrollment.cefr_level}{primary} - {trail}"
        )


if __name__ == "__main__":
    app()

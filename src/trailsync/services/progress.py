"""
Progress aggregation.

Pure functions deriving completion statistics from a trail's nested lesson
collection. Nothing here mutates its input or talks to the network, so the
store can call them after every change.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime

from trailsync.models import (
    ModuleProgress,
    OverallProgress,
    Trail,
    TrailModule,
    TrailProgress,
    TrailSummary,
)
from trailsync.models.base import round_half_up

# ============================================================================
# Progress Calculation
# ============================================================================


def percentage(completed: int, total: int) -> int:
    """Whole-number completion percentage, 0 for an empty collection."""
    if total <= 0:
        return 0
    return round_half_up(100 * completed, total)


def compute_progress(modules: Sequence[TrailModule]) -> TrailProgress:
    """
    Derive trail progress from its modules.

    Placeholders count towards the total; only lessons with ``completed_at``
    count as completed. Scores and time are taken from completed lessons only.

    Args:
        modules: The trail's modules with their lessons

    Returns:
        Fresh TrailProgress
    """
    lessons = [lesson for module in modules for lesson in module.lessons]
    completed = [lesson for lesson in lessons if lesson.completed_at is not None]

    scores = [lesson.score for lesson in completed if lesson.score is not None]
    average_score = round(sum(scores) / len(scores), 2) if scores else None

    total_seconds = sum(lesson.time_spent_seconds or 0 for lesson in completed)
    last_activity_at = max((lesson.completed_at for lesson in completed), default=None)

    return TrailProgress(
        progress_percentage=percentage(len(completed), len(lessons)),
        lessons_completed=len(completed),
        total_lessons=len(lessons),
        average_score=average_score,
        time_spent_minutes=total_seconds // 60,
        last_activity_at=last_activity_at,
    )


def compute_module_progress(module: TrailModule) -> ModuleProgress:
    """Completion counters for a single module."""
    total = len(module.lessons)
    completed = sum(1 for lesson in module.lessons if lesson.completed_at is not None)
    return ModuleProgress(
        module_id=module.id,
        lessons_completed=completed,
        total_lessons=total,
        progress_percentage=percentage(completed, total),
    )


def compute_overall_progress(summaries: Iterable[TrailSummary]) -> OverallProgress:
    """
    Aggregate progress across the learner's active trails.

    Archived summaries are ignored.
    """
    active = [summary for summary in summaries if summary.is_active]
    completed = sum(summary.lessons_completed for summary in active)
    total = sum(summary.total_lessons for summary in active)
    return OverallProgress(
        active_trails=len(active),
        lessons_completed=completed,
        total_lessons=total,
        progress_percentage=percentage(completed, total),
        time_spent_minutes=sum(summary.time_spent_minutes for summary in active),
        last_activity_at=max(
            (s.last_activity_at for s in active if s.last_activity_at is not None),
            default=None,
        ),
    )


def with_progress(trail: Trail) -> Trail:
    """Return the trail with its progress recomputed from its modules."""
    return trail.model_copy(update={"progress": compute_progress(trail.modules)})


def summarize_trail(trail: Trail, created_at: datetime | None = None) -> TrailSummary:
    """
    Project a full trail onto the list-view summary.

    Args:
        trail: Trail to project (its progress is recomputed, not trusted)
        created_at: Creation time to carry over from an existing summary

    Returns:
        TrailSummary with flattened counters
    """
    progress = compute_progress(trail.modules)
    return TrailSummary(
        id=trail.id,
        language_code=trail.language_code,
        language_name=trail.language_name,
        language_flag=trail.language_flag,
        level_code=trail.level_code,
        level_name=trail.level_name,
        status=trail.status,
        progress_percentage=progress.progress_percentage,
        lessons_completed=progress.lessons_completed,
        total_lessons=progress.total_lessons,
        average_score=progress.average_score,
        time_spent_minutes=progress.time_spent_minutes,
        last_activity_at=progress.last_activity_at,
        created_at=created_at or trail.created_at,
    )


def is_trail_completed(progress: TrailProgress) -> bool:
    return progress.total_lessons > 0 and progress.progress_percentage >= 100


def remaining_lessons(progress: TrailProgress) -> int:
    return max(progress.total_lessons - progress.lessons_completed, 0)

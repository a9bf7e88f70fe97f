"""
Trail services.

Progress aggregation, lesson patching and generation status subscriptions.
"""

from .generation import (
    GenerationStatusSubscription,
    StatusSource,
    subscribe_to_generation_status,
)
from .lessons import (
    LessonLocation,
    apply_lesson_update,
    ensure_can_complete,
    find_lesson,
    reconcile_lesson,
    replace_lesson,
)
from .progress import (
    compute_module_progress,
    compute_overall_progress,
    compute_progress,
    is_trail_completed,
    percentage,
    remaining_lessons,
    summarize_trail,
    with_progress,
)

__all__ = [
    # Generation
    "GenerationStatusSubscription",
    "StatusSource",
    "subscribe_to_generation_status",
    # Lessons
    "LessonLocation",
    "apply_lesson_update",
    "ensure_can_complete",
    "find_lesson",
    "reconcile_lesson",
    "replace_lesson",
    # Progress
    "compute_progress",
    "compute_module_progress",
    "compute_overall_progress",
    "is_trail_completed",
    "percentage",
    "remaining_lessons",
    "summarize_trail",
    "with_progress",
]

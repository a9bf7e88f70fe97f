"""
Lesson patch helpers for optimistic progress updates.

Every helper returns new objects; trails held by the store are never
mutated in place.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from trailsync.errors import ConflictError
from trailsync.models import (
    Lesson,
    LessonProgressUpdate,
    ModuleStatus,
    Trail,
    TrailModule,
)
from trailsync.services.progress import with_progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonLocation:
    """Where a lesson lives inside the store's loaded trails."""

    trail: Trail
    module: TrailModule
    lesson: Lesson


def find_lesson(trails: Mapping[str, Trail], lesson_id: str) -> LessonLocation | None:
    """
    Locate a lesson across loaded trails.

    Args:
        trails: Loaded trails keyed by id
        lesson_id: Lesson to find

    Returns:
        The containing trail/module/lesson, or None if no loaded trail has it
    """
    for trail in trails.values():
        for module in trail.modules:
            for lesson in module.lessons:
                if lesson.id == lesson_id:
                    return LessonLocation(trail=trail, module=module, lesson=lesson)
    return None


def ensure_can_complete(location: LessonLocation, update: LessonProgressUpdate) -> None:
    """
    Reject completing a lesson that has not been generated yet.

    Raises:
        ConflictError: If the module is PENDING or the lesson is a placeholder
    """
    if not update.completed:
        return
    if location.module.status == ModuleStatus.PENDING:
        raise ConflictError(
            f"Lesson {location.lesson.id} belongs to module {location.module.id}, "
            "which is still being generated"
        )
    if location.lesson.is_placeholder:
        raise ConflictError(f"Lesson {location.lesson.id} has no content yet")


def apply_lesson_update(
    lesson: Lesson,
    update: LessonProgressUpdate,
    now: datetime | None = None,
) -> Lesson:
    """
    Apply a progress patch the way the remote does.

    - ``completed=True`` stamps ``completed_at`` only if it is not set yet
    - ``completed=False`` never clears ``completed_at``
    - ``score`` replaces the previous score
    - ``time_spent_seconds`` accumulates onto the previous total

    Args:
        lesson: Current lesson
        update: Patch to apply
        now: Completion timestamp (defaults to the current UTC time)

    Returns:
        New lesson
    """
    changes: dict[str, object] = {}

    if update.completed and lesson.completed_at is None:
        changes["completed_at"] = now or datetime.now(UTC)

    if update.score is not None:
        changes["score"] = update.score

    if update.time_spent_seconds is not None:
        changes["time_spent_seconds"] = (lesson.time_spent_seconds or 0) + update.time_spent_seconds

    if not changes:
        return lesson
    return lesson.model_copy(update=changes)


def reconcile_lesson(local: Lesson, remote: Lesson) -> Lesson:
    """
    Take the remote lesson as authoritative, except that a completion the
    client already knows about is never erased.
    """
    if remote.completed_at is None and local.completed_at is not None:
        return remote.model_copy(update={"completed_at": local.completed_at})
    return remote


def replace_lesson(trail: Trail, lesson: Lesson) -> Trail:
    """
    Return a new trail with ``lesson`` swapped in and progress recomputed.

    Modules and lessons that did not change keep their identity.
    """
    modules = []
    for module in trail.modules:
        if any(existing.id == lesson.id for existing in module.lessons):
            lessons = tuple(
                lesson if existing.id == lesson.id else existing for existing in module.lessons
            )
            module = module.model_copy(update={"lessons": lessons})
        modules.append(module)
    return with_progress(trail.model_copy(update={"modules": tuple(modules)}))


def demote_unfinished_modules(trail: Trail) -> Trail:
    """
    Treat READY modules that still carry placeholder lessons as PENDING.

    The remote can mark a module READY before every lesson has content; such
    a module stays locked until a later fetch delivers the real lessons.
    """
    unfinished = [
        module.id for module in trail.modules if module.is_ready and module.has_placeholders
    ]
    if not unfinished:
        return trail

    logger.warning(
        "Trail %s has READY modules with placeholder lessons, keeping them pending: %s",
        trail.id,
        ", ".join(unfinished),
    )
    modules = tuple(
        module.model_copy(update={"status": ModuleStatus.PENDING})
        if module.id in unfinished
        else module
        for module in trail.modules
    )
    return trail.model_copy(update={"modules": modules})

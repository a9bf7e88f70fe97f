"""
Trail models.

A Trail is the full generated curriculum for one learner/language pair:
Trail -> TrailModule (ordered) -> Lesson (ordered). TrailProgress is derived
from the lessons and never edited by hand.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from .base import DomainModel, coerce_percentage


class TrailStatus(StrEnum):
    """Lifecycle status of a trail."""

    GENERATING = "GENERATING"
    PARTIAL = "PARTIAL"
    READY = "READY"
    ARCHIVED = "ARCHIVED"


class ModuleStatus(StrEnum):
    """Module status: PENDING while its lessons are still being generated."""

    PENDING = "PENDING"
    READY = "READY"


class LessonType(StrEnum):
    """Kind of generated lesson content."""

    INTERACTIVE = "interactive"
    VIDEO = "video"
    READING = "reading"
    EXERCISE = "exercise"
    CONVERSATION = "conversation"
    FLASHCARD = "flashcard"
    GAME = "game"


# Forward-only lifecycle. Archival is reachable from anywhere but is final.
TRAIL_STATUS_TRANSITIONS: dict[TrailStatus, set[TrailStatus]] = {
    TrailStatus.GENERATING: {TrailStatus.PARTIAL, TrailStatus.READY, TrailStatus.ARCHIVED},
    TrailStatus.PARTIAL: {TrailStatus.READY, TrailStatus.ARCHIVED},
    TrailStatus.READY: {TrailStatus.ARCHIVED},
    TrailStatus.ARCHIVED: set(),
}

# Only an explicit regeneration request may send a trail back into generation.
RESTART_TRANSITIONS: dict[TrailStatus, set[TrailStatus]] = {
    TrailStatus.GENERATING: {TrailStatus.GENERATING, TrailStatus.PARTIAL},
    TrailStatus.PARTIAL: {TrailStatus.GENERATING, TrailStatus.PARTIAL},
    TrailStatus.READY: {TrailStatus.GENERATING, TrailStatus.PARTIAL},
}


def can_transition(current: TrailStatus, new: TrailStatus, *, restart: bool = False) -> bool:
    """
    Check whether a trail may move from ``current`` to ``new``.

    Args:
        current: Status the client currently holds
        new: Status reported by the remote
        restart: True when the change comes from an explicit regeneration

    Returns:
        True if the transition is allowed (staying put always is)
    """
    if current == new:
        return True
    if new in TRAIL_STATUS_TRANSITIONS[current]:
        return True
    return restart and new in RESTART_TRANSITIONS.get(current, set())


# ============================================================================
# Lessons and modules
# ============================================================================


class Lesson(DomainModel):
    """An atomic learning unit with generated content and completion facts."""

    id: str
    module_id: str | None = None
    title: str
    type: LessonType = LessonType.INTERACTIVE
    order_index: int = 0
    duration_minutes: int | None = Field(default=None, ge=0)
    content: dict[str, Any] = Field(default_factory=dict)
    is_placeholder: bool = False

    # Completion facts. completed_at never goes back to None once set.
    completed_at: datetime | None = None
    score: float | None = Field(default=None, ge=0, le=100)
    time_spent_seconds: int | None = Field(default=None, ge=0)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class TrailModule(DomainModel):
    """Thematic grouping of lessons, generated and unlocked progressively."""

    id: str
    trail_id: str | None = None
    title: str
    description: str | None = None
    competency_code: str = ""
    competency_name: str = ""
    order_index: int = 0
    status: ModuleStatus = ModuleStatus.PENDING
    lessons: tuple[Lesson, ...] = ()

    @field_validator("lessons")
    @classmethod
    def _order_lessons(cls, lessons: tuple[Lesson, ...]) -> tuple[Lesson, ...]:
        return tuple(sorted(lessons, key=lambda lesson: lesson.order_index))

    @property
    def is_ready(self) -> bool:
        return self.status == ModuleStatus.READY

    @property
    def has_placeholders(self) -> bool:
        return any(lesson.is_placeholder for lesson in self.lessons)


# ============================================================================
# Progress
# ============================================================================


class TrailProgress(DomainModel):
    """Derived completion statistics for one trail."""

    progress_percentage: int = Field(default=0, ge=0, le=100)
    lessons_completed: int = Field(default=0, ge=0)
    total_lessons: int = Field(default=0, ge=0)
    average_score: float | None = None
    time_spent_minutes: int = Field(default=0, ge=0)
    last_activity_at: datetime | None = None

    @field_validator("progress_percentage", mode="before")
    @classmethod
    def _round_percentage(cls, value: Any) -> Any:
        return coerce_percentage(value)


class ModuleProgress(DomainModel):
    """Per-module completion counters."""

    module_id: str
    lessons_completed: int = 0
    total_lessons: int = 0
    progress_percentage: int = 0


class OverallProgress(DomainModel):
    """Aggregate across every active trail in the learner's list."""

    active_trails: int = 0
    lessons_completed: int = 0
    total_lessons: int = 0
    progress_percentage: int = 0
    time_spent_minutes: int = 0
    last_activity_at: datetime | None = None


# ============================================================================
# Trails
# ============================================================================


class Trail(DomainModel):
    """Complete trail entity, owned by the trail store."""

    id: str
    language_code: str
    language_name: str = ""
    language_flag: str | None = None
    level_code: str = ""
    level_name: str = ""
    status: TrailStatus = TrailStatus.GENERATING
    modules: tuple[TrailModule, ...] = ()
    progress: TrailProgress | None = None
    estimated_duration_hours: float | None = None
    previous_trail_id: str | None = None
    archived_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("modules")
    @classmethod
    def _order_modules(cls, modules: tuple[TrailModule, ...]) -> tuple[TrailModule, ...]:
        return tuple(sorted(modules, key=lambda module: module.order_index))

    @property
    def is_active(self) -> bool:
        return self.status != TrailStatus.ARCHIVED

    @property
    def is_generating(self) -> bool:
        return self.status in (TrailStatus.GENERATING, TrailStatus.PARTIAL)

    def find_module(self, module_id: str) -> TrailModule | None:
        return next((m for m in self.modules if m.id == module_id), None)


class TrailSummary(DomainModel):
    """List-view projection of a Trail: no modules, flattened counters."""

    id: str
    language_code: str
    language_name: str = ""
    language_flag: str | None = None
    level_code: str = ""
    level_name: str = ""
    status: TrailStatus = TrailStatus.GENERATING
    progress_percentage: int = Field(default=0, ge=0, le=100)
    lessons_completed: int = 0
    total_lessons: int = 0
    average_score: float | None = None
    time_spent_minutes: int = 0
    last_activity_at: datetime | None = None
    created_at: datetime | None = None

    @field_validator("progress_percentage", mode="before")
    @classmethod
    def _round_percentage(cls, value: Any) -> Any:
        if value is None:
            return 0
        return coerce_percentage(value)

    @property
    def is_active(self) -> bool:
        return self.status != TrailStatus.ARCHIVED

    @property
    def is_generating(self) -> bool:
        return self.status in (TrailStatus.GENERATING, TrailStatus.PARTIAL)

"""
Trail sync models.

Exports all pydantic models for easy importing.
"""

from .base import DomainModel

# Enrollment
from .enrollment import LanguageEnrollment

# Generation
from .generation import (
    GenerateTrailRequest,
    GenerateTrailResponse,
    GenerationJobStatus,
    RefreshReason,
    RefreshTrailRequest,
    TrailGenerationStatus,
)

# Lesson progress
from .lesson_progress import LessonProgressUpdate

# Trail
from .trail import (
    RESTART_TRANSITIONS,
    TRAIL_STATUS_TRANSITIONS,
    Lesson,
    LessonType,
    ModuleProgress,
    ModuleStatus,
    OverallProgress,
    Trail,
    TrailModule,
    TrailProgress,
    TrailStatus,
    TrailSummary,
    can_transition,
)

__all__ = [
    "DomainModel",
    "GenerateTrailRequest",
    "GenerateTrailResponse",
    "GenerationJobStatus",
    "LanguageEnrollment",
    "Lesson",
    "LessonProgressUpdate",
    "LessonType",
    "ModuleProgress",
    "ModuleStatus",
    "OverallProgress",
    "RESTART_TRANSITIONS",
    "RefreshReason",
    "RefreshTrailRequest",
    "TRAIL_STATUS_TRANSITIONS",
    "Trail",
    "TrailGenerationStatus",
    "TrailModule",
    "TrailProgress",
    "TrailStatus",
    "TrailSummary",
    "can_transition",
]

"""
Lesson progress update models.
"""

from typing import Any

from pydantic import Field

from .base import DomainModel


class LessonProgressUpdate(DomainModel):
    """
    Patch reported when a learner works on a lesson.

    ``completed=False`` never un-completes a lesson; it only means
    "not completing it with this update".
    """

    completed: bool = False
    score: float | None = Field(default=None, ge=0, le=100)
    time_spent_seconds: int | None = Field(default=None, ge=0)
    user_responses: dict[str, Any] | None = None

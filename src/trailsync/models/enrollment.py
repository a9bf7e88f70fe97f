"""
Language enrollment models.

Enrollments are created by the onboarding flow and are read-only here; they
decide which languages are eligible for a new trail.
"""

from datetime import datetime

from .base import DomainModel


class LanguageEnrollment(DomainModel):
    """A learner's registration in one language at a CEFR level."""

    id: str | None = None
    language_code: str
    language_name_pt: str = ""
    language_name_en: str = ""
    language_name_es: str = ""
    cefr_level: str
    is_primary: bool = False
    enrolled_at: datetime | None = None
    last_studied_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.language_name_en or self.language_name_pt or self.language_code

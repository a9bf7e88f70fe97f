"""
Generation models: requests that start or restart generation, and the
transient status reported while the remote job runs.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator, model_validator

from .base import DomainModel, coerce_percentage
from .trail import TrailStatus


class GenerationJobStatus(StrEnum):
    """Status of the remote generation job."""

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class RefreshReason(StrEnum):
    """Why a trail is being regenerated."""

    LEVEL_CHANGE = "level_change"
    PREFERENCES_UPDATE = "preferences_update"
    CURRICULUM_UPDATE = "curriculum_update"
    MANUAL_REQUEST = "manual_request"


class TrailGenerationStatus(DomainModel):
    """
    Snapshot of an in-progress generation.

    Held only while a subscription is active; discarded at 100%.
    """

    trail_id: str | None = None
    job_id: str | None = None
    trail_status: TrailStatus | None = None
    job_status: GenerationJobStatus | None = None
    progress_percentage: int = Field(default=0, ge=0, le=100)
    current_step: str = ""
    message: str | None = None
    modules_generated: int = 0
    total_modules: int = 0
    lessons_generated: int = 0
    total_lessons: int = 0
    started_at: datetime | None = None
    estimated_completion_at: datetime | None = None
    error_message: str | None = None
    attempt_number: int | None = None
    max_attempts: int | None = None

    @field_validator("progress_percentage", mode="before")
    @classmethod
    def _round_percentage(cls, value: Any) -> Any:
        return coerce_percentage(value)

    @property
    def is_complete(self) -> bool:
        return self.progress_percentage >= 100

    @property
    def is_failed(self) -> bool:
        return self.error_message is not None or self.job_status == GenerationJobStatus.FAILED


class GenerateTrailRequest(DomainModel):
    """Request generation of a trail for an enrolled language."""

    language_code: str = Field(..., min_length=2)
    force_regenerate: bool = False


class GenerateTrailResponse(DomainModel):
    """Acknowledgement that generation started; carries the trail identity."""

    trail_id: str
    status: TrailStatus | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_full_trail(cls, data: Any) -> Any:
        # The remote may answer with the whole Trail instead of {trailId}
        if isinstance(data, dict) and "trailId" not in data and "trail_id" not in data:
            if "id" in data:
                return {"trailId": data["id"], "status": data.get("status")}
        return data


class RefreshTrailRequest(DomainModel):
    """Explicit regeneration of an existing trail."""

    reason: RefreshReason = RefreshReason.MANUAL_REQUEST
    preserve_progress: bool = True
    new_level_code: str | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def _level_change_needs_level(self) -> "RefreshTrailRequest":
        if self.reason == RefreshReason.LEVEL_CHANGE and not self.new_level_code:
            raise ValueError("new_level_code is required when reason is level_change")
        return self

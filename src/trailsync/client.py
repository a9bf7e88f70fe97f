"""
HTTP client for the remote trail service.

Stateless query/command interface: every method maps one domain operation
to one remote call and translates HTTP failures into the trail error
taxonomy (see trailsync.errors).
"""

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from trailsync.errors import (
    ConflictError,
    NetworkOrServerError,
    NotFoundError,
    QuotaExceededError,
    TrailServiceError,
)
from trailsync.models import (
    GenerateTrailRequest,
    GenerateTrailResponse,
    LanguageEnrollment,
    Lesson,
    LessonProgressUpdate,
    RefreshTrailRequest,
    Trail,
    TrailGenerationStatus,
    TrailModule,
    TrailProgress,
    TrailSummary,
)
from trailsync.settings import Settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class TrailClient:
    """
    HTTP client for the trail service.

    Usage:
        async with TrailClient("https://api.example.com/api") as client:
            trails = await client.list_active_trails()
            for trail in trails:
                print(trail.language_name, trail.progress_percentage)
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080/api",
        *,
        token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "TrailClient":
        return cls(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout_seconds,
            **kwargs,
        )

    async def __aenter__(self) -> "TrailClient":
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with TrailClient() as client:'")
        return self._client

    # ========================================================================
    # Trails
    # ========================================================================

    async def list_active_trails(self) -> list[TrailSummary]:
        """List the learner's non-archived trails, oldest first."""
        response = await self._request("GET", "/trails")
        return _parse_list(TrailSummary, response.json())

    async def get_trail_by_id(self, trail_id: str) -> Trail:
        """
        Fetch a full trail with modules and lessons.

        Raises:
            NotFoundError: If the trail does not exist or belongs to someone else
        """
        response = await self._request("GET", f"/trails/{trail_id}")
        return _parse(Trail, response.json())

    async def get_trail_by_language(self, language_code: str) -> Trail:
        """Fetch the active trail for an enrolled language."""
        response = await self._request("GET", "/trails", params={"lang": language_code})
        return _parse(Trail, response.json())

    async def generate_trail(self, request: GenerateTrailRequest) -> GenerateTrailResponse:
        """
        Ask the remote to start generating a trail.

        Raises:
            QuotaExceededError: If the active-trail limit would be exceeded
        """
        response = await self._request(
            "POST", "/trails/generate", json=request.to_wire(), on_conflict=QuotaExceededError
        )
        return _parse(GenerateTrailResponse, response.json())

    async def refresh_trail(self, trail_id: str, request: RefreshTrailRequest) -> Trail:
        """Regenerate an existing trail in place (same identity)."""
        response = await self._request(
            "POST", f"/trails/{trail_id}/refresh", json=request.to_wire()
        )
        return _parse(Trail, response.json())

    async def archive_trail(self, trail_id: str) -> None:
        """Archive (soft-delete) a trail. Archiving twice is a no-op remotely."""
        await self._request("PATCH", f"/trails/{trail_id}/archive")

    async def get_generation_status(self, trail_id: str) -> TrailGenerationStatus:
        response = await self._request("GET", f"/trails/{trail_id}/generation-status")
        return _parse(TrailGenerationStatus, response.json())

    async def get_progress(self, trail_id: str) -> TrailProgress:
        response = await self._request("GET", f"/trails/{trail_id}/progress")
        return _parse(TrailProgress, response.json())

    # ========================================================================
    # Modules and lessons
    # ========================================================================

    async def list_modules(self, trail_id: str) -> list[TrailModule]:
        response = await self._request("GET", f"/trails/{trail_id}/modules")
        return _parse_list(TrailModule, response.json())

    async def get_module_by_id(self, trail_id: str, module_id: str) -> TrailModule:
        response = await self._request("GET", f"/trails/{trail_id}/modules/{module_id}")
        return _parse(TrailModule, response.json())

    async def get_lesson_by_id(self, lesson_id: str) -> Lesson:
        response = await self._request("GET", f"/lessons/{lesson_id}")
        return _parse(Lesson, response.json())

    async def get_next_lesson(self, trail_id: str) -> Lesson | None:
        """
        Fetch the next lesson the learner has not completed.

        Returns:
            The lesson, or None when every lesson is complete (204)
        """
        response = await self._request("GET", f"/trails/{trail_id}/next-lesson")
        if response.status_code == 204 or not response.content:
            return None
        return _parse(Lesson, response.json())

    async def update_lesson_progress(self, lesson_id: str, update: LessonProgressUpdate) -> Lesson:
        """
        Report lesson progress and return the authoritative lesson.

        Raises:
            ConflictError: If the lesson's module is still being generated
        """
        response = await self._request(
            "PATCH", f"/lessons/{lesson_id}/progress", json=update.to_wire()
        )
        return _parse(Lesson, response.json())

    async def complete_lesson(
        self,
        lesson_id: str,
        score: float | None = None,
        time_spent_seconds: int | None = None,
    ) -> Lesson:
        return await self.update_lesson_progress(
            lesson_id,
            LessonProgressUpdate(
                completed=True, score=score, time_spent_seconds=time_spent_seconds
            ),
        )

    # ========================================================================
    # Enrollments (collaborator boundary)
    # ========================================================================

    async def list_enrollments(self) -> list[LanguageEnrollment]:
        response = await self._request("GET", "/profile/languages")
        return _parse_list(LanguageEnrollment, response.json())

    # ========================================================================
    # Transport
    # ========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        on_conflict: type[TrailServiceError] = ConflictError,
    ) -> httpx.Response:
        logger.debug("%s %s", method, path)
        try:
            response = await self.client.request(method, path, json=json, params=params)
        except httpx.TransportError as e:
            raise NetworkOrServerError(f"{method} {path} failed: {e}") from e

        status = response.status_code
        if status < 400:
            return response

        detail = _error_detail(response)
        message = f"{method} {path} -> {status}: {detail.get('message', response.reason_phrase)}"

        if status == 404:
            raise NotFoundError(message, status_code=status)
        if status == 409:
            if on_conflict is QuotaExceededError:
                raise QuotaExceededError(
                    message, limit=detail.get("limit"), status_code=status
                )
            raise on_conflict(message, status_code=status)
        if status >= 500:
            raise NetworkOrServerError(message, status_code=status)
        raise TrailServiceError(message, status_code=status)


def _error_detail(response: httpx.Response) -> dict[str, Any]:
    """Best-effort decode of an error body; the remote sends {message, ...}."""
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text} if response.text else {}
    return body if isinstance(body, dict) else {}


def _parse(model: type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise TrailServiceError(f"Malformed {model.__name__} response: {e}") from e


def _parse_list(model: type[ModelT], data: Any) -> list[ModelT]:
    try:
        return TypeAdapter(list[model]).validate_python(data)
    except ValidationError as e:
        raise TrailServiceError(f"Malformed {model.__name__} list response: {e}") from e

"""
Tests for the trail service HTTP client.
"""

import httpx
import pytest

from factories import BASE_URL, make_module, make_trail
from trailsync.client import TrailClient
from trailsync.errors import (
    ConflictError,
    NetworkOrServerError,
    NotFoundError,
    QuotaExceededError,
    TrailServiceError,
)
from trailsync.models import (
    GenerateTrailRequest,
    LessonProgressUpdate,
    ModuleStatus,
    RefreshReason,
    RefreshTrailRequest,
    TrailStatus,
)
from trailsync.settings import Settings


@pytest.mark.asyncio
async def test_list_active_trails(client, service):
    """Test listing returns summaries of active trails only."""
    service.add_trail(make_trail("T1", "en"))
    service.add_trail(make_trail("T2", "es", status=TrailStatus.ARCHIVED))

    trails = await client.list_active_trails()

    assert [t.id for t in trails] == ["T1"]
    assert trails[0].total_lessons == 14
    assert service.calls == [("GET", "/trails")]


@pytest.mark.asyncio
async def test_get_trail_by_id(client, service):
    service.add_trail(make_trail("T1"))

    trail = await client.get_trail_by_id("T1")

    assert trail.id == "T1"
    assert len(trail.modules) == 4
    assert [m.order_index for m in trail.modules] == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_get_trail_by_language(client, service):
    service.add_trail(make_trail("T1", "en"))
    service.add_trail(make_trail("T2", "es"))

    trail = await client.get_trail_by_language("es")

    assert trail.id == "T2"


@pytest.mark.asyncio
async def test_missing_trail_raises_not_found(client):
    with pytest.raises(NotFoundError) as exc_info:
        await client.get_trail_by_id("nope")

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_generate_trail(client, service):
    service.add_generation(make_trail("T9", "fr"), [{"progressPercentage": 10}])

    response = await client.generate_trail(GenerateTrailRequest(language_code="fr"))

    assert response.trail_id == "T9"
    assert service.count("POST", "/trails/generate") == 1


@pytest.mark.asyncio
async def test_generate_over_quota_raises_quota_exceeded(client, service):
    """Test a 409 on generation carries the remote's limit."""
    for i, lang in enumerate(["en", "es", "de"]):
        service.add_trail(make_trail(f"T{i}", lang))
    service.add_generation(make_trail("T9", "fr"), [{"progressPercentage": 10}])

    with pytest.raises(QuotaExceededError) as exc_info:
        await client.generate_trail(GenerateTrailRequest(language_code="fr"))

    assert exc_info.value.limit == 3
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_refresh_trail(client, service):
    service.add_trail(make_trail("T1"))

    trail = await client.refresh_trail(
        "T1", RefreshTrailRequest(reason=RefreshReason.LEVEL_CHANGE, new_level_code="B1")
    )

    assert trail.id == "T1"
    assert trail.status == TrailStatus.GENERATING


@pytest.mark.asyncio
async def test_archive_trail(client, service):
    service.add_trail(make_trail("T1"))

    assert await client.archive_trail("T1") is None
    assert service.trails["T1"].status == TrailStatus.ARCHIVED
    assert service.calls == [("PATCH", "/trails/T1/archive")]


@pytest.mark.asyncio
async def test_get_generation_status(client, service):
    service.add_trail(make_trail("T1", status=TrailStatus.GENERATING))
    service.status_queues["T1"] = [
        {"trailId": "T1", "progressPercentage": 42.6, "currentStep": "Generating modules"}
    ]

    status = await client.get_generation_status("T1")

    assert status.progress_percentage == 43
    assert status.current_step == "Generating modules"
    assert not status.is_complete


@pytest.mark.asyncio
async def test_modules_and_progress(client, service):
    service.add_trail(make_trail("T1"))

    modules = await client.list_modules("T1")
    module = await client.get_module_by_id("T1", "T1-M2")
    progress = await client.get_progress("T1")

    assert len(modules) == 4
    assert module.id == "T1-M2"
    assert len(module.lessons) == 3
    assert progress.total_lessons == 14
    assert progress.lessons_completed == 0


@pytest.mark.asyncio
async def test_get_lesson_and_next_lesson(client, service):
    service.add_trail(make_trail("T1"))

    lesson = await client.get_lesson_by_id("T1-M1-L2")
    next_lesson = await client.get_next_lesson("T1")

    assert lesson.title == "Lesson T1-M1-L2"
    assert next_lesson.id == "T1-M1-L1"


@pytest.mark.asyncio
async def test_next_lesson_is_none_when_everything_is_done(client, service):
    """Test a 204 means there is no next lesson."""
    service.add_trail(make_trail("T1", modules=[make_module("M1", lesson_count=1)]))
    await client.complete_lesson("M1-L1")

    assert await client.get_next_lesson("T1") is None


@pytest.mark.asyncio
async def test_update_lesson_progress(client, service):
    service.add_trail(make_trail("T1"))

    lesson = await client.update_lesson_progress(
        "T1-M1-L1", LessonProgressUpdate(completed=True, score=85, time_spent_seconds=300)
    )
    again = await client.update_lesson_progress(
        "T1-M1-L1", LessonProgressUpdate(time_spent_seconds=60)
    )

    assert lesson.completed_at is not None
    assert lesson.score == 85
    assert again.time_spent_seconds == 360
    assert again.completed_at == lesson.completed_at


@pytest.mark.asyncio
async def test_progress_on_pending_module_raises_conflict(client, service):
    pending = make_module("M2", status=ModuleStatus.PENDING)
    service.add_trail(make_trail("T1", modules=[make_module("M1"), pending]))

    with pytest.raises(ConflictError):
        await client.complete_lesson("M2-L1")


@pytest.mark.asyncio
async def test_list_enrollments(client):
    enrollments = await client.list_enrollments()

    assert [e.language_code for e in enrollments] == ["en", "es"]
    assert enrollments[0].is_primary
    assert enrollments[0].display_name == "English"


@pytest.mark.asyncio
async def test_server_error_maps_to_network_or_server_error(client, service):
    service.fail("GET", "/trails", 503)

    with pytest.raises(NetworkOrServerError) as exc_info:
        await client.list_active_trails()

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_other_client_errors_map_to_base_error(client, service):
    service.fail("GET", "/trails", 401)

    with pytest.raises(TrailServiceError) as exc_info:
        await client.list_active_trails()

    assert type(exc_info.value) is TrailServiceError
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_transport_failure_maps_to_network_error():
    """Test connection failures surface as NetworkOrServerError."""

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with TrailClient(BASE_URL, transport=httpx.MockTransport(refuse)) as client:
        with pytest.raises(NetworkOrServerError):
            await client.list_active_trails()


@pytest.mark.asyncio
async def test_malformed_response_raises_service_error():
    def garbage(request):
        return httpx.Response(200, json={"unexpected": True})

    async with TrailClient(BASE_URL, transport=httpx.MockTransport(garbage)) as client:
        with pytest.raises(TrailServiceError, match="Malformed Trail"):
            await client.get_trail_by_id("T1")


@pytest.mark.asyncio
async def test_bearer_token_is_sent():
    seen = {}

    def capture(request):
        seen["authorization"] = request.headers.get("authorization")
        return httpx.Response(200, json=[])

    async with TrailClient(BASE_URL, token="secret", transport=httpx.MockTransport(capture)) as c:
        await c.list_active_trails()

    assert seen["authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_client_requires_context_manager():
    client = TrailClient(BASE_URL)

    with pytest.raises(RuntimeError):
        await client.list_active_trails()


def test_from_settings():
    settings = Settings(api_base_url="http://trails.test/api/", api_token="t")

    client = TrailClient.from_settings(settings)

    assert client.base_url == "http://trails.test/api"
    assert client.token == "t"

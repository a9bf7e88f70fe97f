"""
Tests for trail domain models.
"""

import pytest
from pydantic import ValidationError

from factories import make_lesson, make_module, wire
from trailsync.models import (
    GenerateTrailRequest,
    GenerateTrailResponse,
    LessonProgressUpdate,
    ModuleStatus,
    RefreshReason,
    RefreshTrailRequest,
    Trail,
    TrailGenerationStatus,
    TrailModule,
    TrailStatus,
    TrailSummary,
    can_transition,
)
from trailsync.models.base import round_half_up


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        (TrailStatus.GENERATING, TrailStatus.PARTIAL, True),
        (TrailStatus.GENERATING, TrailStatus.READY, True),
        (TrailStatus.PARTIAL, TrailStatus.READY, True),
        (TrailStatus.READY, TrailStatus.ARCHIVED, True),
        (TrailStatus.READY, TrailStatus.READY, True),
        (TrailStatus.READY, TrailStatus.GENERATING, False),
        (TrailStatus.READY, TrailStatus.PARTIAL, False),
        (TrailStatus.PARTIAL, TrailStatus.GENERATING, False),
        (TrailStatus.ARCHIVED, TrailStatus.READY, False),
    ],
)
def test_status_transitions(current, new, allowed):
    """Test the lifecycle only moves forward without an explicit restart."""
    assert can_transition(current, new) is allowed


def test_restart_reopens_generation():
    assert can_transition(TrailStatus.READY, TrailStatus.GENERATING, restart=True)
    assert can_transition(TrailStatus.PARTIAL, TrailStatus.GENERATING, restart=True)
    assert not can_transition(TrailStatus.ARCHIVED, TrailStatus.GENERATING, restart=True)


def test_round_half_up():
    assert round_half_up(1, 2) == 1
    assert round_half_up(1, 3) == 0
    assert round_half_up(5, 2) == 3


def test_module_orders_lessons():
    module = make_module(
        "M1",
        lessons=[make_lesson("L2", order_index=1), make_lesson("L1", order_index=0)],
    )

    assert [lesson.id for lesson in module.lessons] == ["L1", "L2"]


def test_ready_module_with_placeholders_still_parses():
    """Test a READY module carrying placeholder lessons loads instead of failing."""
    module = TrailModule.model_validate(
        {
            "id": "M1",
            "title": "Greetings",
            "status": "READY",
            "lessons": [wire(make_lesson("L1", is_placeholder=True))],
        }
    )

    assert module.is_ready
    assert module.has_placeholders


def test_pending_module_allows_placeholders():
    module = make_module("M1", lesson_count=3, status=ModuleStatus.PENDING)

    assert all(lesson.is_placeholder for lesson in module.lessons)
    assert not module.is_ready


def test_trail_parses_camel_case_payload():
    """Test wire payloads in camelCase load into snake_case fields."""
    trail = Trail.model_validate(
        {
            "id": "T1",
            "languageCode": "en",
            "languageName": "English",
            "levelCode": "A2",
            "status": "PARTIAL",
            "modules": [
                {
                    "id": "M2",
                    "title": "Travel",
                    "orderIndex": 1,
                    "status": "PENDING",
                    "lessons": [{"id": "L3", "title": "Airport", "isPlaceholder": True}],
                },
                {"id": "M1", "title": "Greetings", "orderIndex": 0, "status": "READY"},
            ],
            "unknownField": "ignored",
        }
    )

    assert trail.language_code == "en"
    assert trail.status == TrailStatus.PARTIAL
    assert trail.is_generating
    assert [m.id for m in trail.modules] == ["M1", "M2"]
    assert trail.find_module("M2").lessons[0].is_placeholder
    assert trail.find_module("nope") is None


def test_models_are_frozen():
    lesson = make_lesson("L1")

    with pytest.raises(ValidationError):
        lesson.score = 10


def test_summary_rounds_and_defaults_percentage():
    empty = TrailSummary(id="T1", language_code="en", progress_percentage=None)
    partial = TrailSummary(id="T1", language_code="en", progress_percentage=33.5)

    assert empty.progress_percentage == 0
    assert partial.progress_percentage == 34


def test_generation_status_flags():
    running = TrailGenerationStatus(progress_percentage=99.4)
    done = TrailGenerationStatus(progress_percentage=100)

    assert running.progress_percentage == 99
    assert not running.is_complete
    assert done.is_complete


def test_generate_response_accepts_full_trail():
    """Test the acknowledgement may be either {trailId} or a whole trail."""
    short = GenerateTrailResponse.model_validate({"trailId": "T1"})
    full = GenerateTrailResponse.model_validate(
        {"id": "T2", "languageCode": "en", "status": "GENERATING"}
    )

    assert short.trail_id == "T1"
    assert full.trail_id == "T2"
    assert full.status == TrailStatus.GENERATING


def test_generate_request_wire_shape():
    request = GenerateTrailRequest(language_code="en")

    assert request.to_wire() == {"languageCode": "en", "forceRegenerate": False}


def test_generate_request_rejects_blank_language():
    with pytest.raises(ValidationError):
        GenerateTrailRequest(language_code="")


def test_level_change_requires_new_level():
    with pytest.raises(ValidationError):
        RefreshTrailRequest(reason=RefreshReason.LEVEL_CHANGE)

    request = RefreshTrailRequest(reason=RefreshReason.LEVEL_CHANGE, new_level_code="B1")
    assert request.to_wire()["newLevelCode"] == "B1"


def test_progress_update_drops_unset_fields():
    update = LessonProgressUpdate(completed=True, score=85)

    assert update.to_wire() == {"completed": True, "score": 85.0}


@pytest.mark.parametrize("score", [-1, 101])
def test_progress_update_validates_score(score):
    with pytest.raises(ValidationError):
        LessonProgressUpdate(score=score)


def test_wire_helper_uses_aliases():
    assert "orderIndex" in wire(make_lesson("L1"))

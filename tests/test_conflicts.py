"""Tests for the conflict-detection service."""

from datetime import datetime, timedelta, timezone

import pytest

from lessonsched.domain.models import Candidate, ConflictReason, Event
from lessonsched.services.conflicts import (
    check_conflict,
    describe_conflict,
    find_conflicts,
)
from lessonsched.services.timezones import to_instant


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 3, 1, hour, minute, tzinfo=timezone.utc)


def _make_event(
    start: datetime,
    end: datetime,
    event_id: str = "1",
    teacher_id: str = "7",
    **overrides,
) -> Event:
    return Event(id=event_id, teacher_id=teacher_id, start_time=start, end_time=end, **overrides)


def _candidate(start: datetime, end: datetime, teacher_id: str = "7", **overrides) -> Candidate:
    return Candidate(start=start, end=end, teacher_id=teacher_id, **overrides)


# ---------------------------------------------------------------------------
# Overlap rule
# ---------------------------------------------------------------------------


def test_no_overlap():
    """Events that don't overlap should not be reported."""
    existing = [_make_event(_at(8), _at(9))]
    result = check_conflict(_candidate(_at(10), _at(11)), existing)
    assert result.busy is False
    assert result.conflicting_event is None


def test_partial_overlap():
    """[10:00,10:50) against [10:30,11:20) is a conflict."""
    existing = [_make_event(_at(10, 30), _at(11, 20))]
    result = check_conflict(_candidate(_at(10), _at(10, 50)), existing)
    assert result.busy is True
    assert result.reason == ConflictReason.OVERLAP
    assert result.conflicting_event.id == "1"


def test_exact_boundary_no_conflict():
    """Touching intervals are free when there is no buffer."""
    existing = [_make_event(_at(10, 30), _at(11))]
    result = check_conflict(_candidate(_at(10), _at(10, 30)), existing)
    assert result.busy is False


def test_exact_boundary_conflicts_with_buffer():
    existing = [_make_event(_at(10, 30), _at(11))]
    result = check_conflict(_candidate(_at(10), _at(10, 30)), existing, buffer_minutes=5)
    assert result.busy is True
    assert result.reason == ConflictReason.BUFFER


def test_buffer_at_least_the_gap_conflicts():
    existing = [_make_event(_at(10, 30), _at(11))]
    candidate = _candidate(_at(10), _at(10, 20))
    assert check_conflict(candidate, existing, buffer_minutes=10).busy is True
    # Both intervals are widened, so a 5 minute buffer leaves exactly 10 minutes.
    assert check_conflict(candidate, existing, buffer_minutes=5).busy is False


def test_identical_interval_conflicts():
    existing = [_make_event(_at(10), _at(11))]
    result = check_conflict(_candidate(_at(10), _at(11)), existing)
    assert result.busy is True
    assert result.reason == ConflictReason.OVERLAP


def test_negative_buffer_rejected():
    with pytest.raises(ValueError):
        check_conflict(_candidate(_at(10), _at(11)), [], buffer_minutes=-5)


# ---------------------------------------------------------------------------
# Filtering rules
# ---------------------------------------------------------------------------


def test_excluded_event_does_not_conflict_with_itself():
    existing = [_make_event(_at(10), _at(11), event_id="42")]
    candidate = _candidate(_at(10, 15), _at(11, 15), exclude_event_id="42")
    assert check_conflict(candidate, existing).busy is False


@pytest.mark.parametrize("status", ["cancelled", "Cancelled", "CANCELLED", "canceled"])
def test_cancelled_events_never_conflict(status):
    existing = [_make_event(_at(10), _at(11), class_status=status)]
    assert check_conflict(_candidate(_at(10), _at(11)), existing).busy is False


def test_other_teachers_lesson_does_not_conflict():
    existing = [_make_event(_at(10), _at(11), teacher_id="9")]
    assert check_conflict(_candidate(_at(10), _at(11)), existing).busy is False


@pytest.mark.parametrize(
    "overrides",
    [
        {"class_type": "unavailable"},
        {"class_type": "Unavailable-Lesson"},
        {"class_status": "Not Available"},
        {"is_not_available": True},
    ],
)
def test_unavailability_of_other_teacher_never_conflicts(overrides):
    existing = [_make_event(_at(10), _at(11), teacher_id="A", **overrides)]
    assert check_conflict(_candidate(_at(10), _at(11), teacher_id="B"), existing).busy is False


def test_unavailability_of_same_teacher_conflicts():
    existing = [_make_event(_at(10), _at(11), teacher_id="A", class_type="Unavailable")]
    result = check_conflict(_candidate(_at(10, 30), _at(11, 30), teacher_id="A"), existing)
    assert result.busy is True
    assert result.conflicting_event.is_unavailable


@pytest.mark.parametrize("end_hour", [10, 9])
def test_empty_or_inverted_event_is_skipped(end_hour):
    existing = [_make_event(_at(10), _at(end_hour))]
    assert check_conflict(_candidate(_at(9), _at(11)), existing).busy is False


def test_not_before_drops_past_events():
    existing = [_make_event(_at(10), _at(11))]
    candidate = _candidate(_at(10), _at(11))
    assert check_conflict(candidate, existing, not_before=_at(11)).busy is False
    assert check_conflict(candidate, existing, not_before=_at(10, 30)).busy is True


def test_first_match_in_input_order():
    existing = [
        _make_event(_at(10, 30), _at(11, 30), event_id="b"),
        _make_event(_at(9, 30), _at(10, 30), event_id="a"),
    ]
    result = check_conflict(_candidate(_at(10), _at(11)), existing)
    assert result.conflicting_event.id == "b"


def test_find_conflicts_returns_all_matches():
    existing = [
        _make_event(_at(9, 30), _at(10, 30), event_id="a"),
        _make_event(_at(12), _at(13), event_id="far"),
        _make_event(_at(10, 30), _at(11, 30), event_id="b"),
    ]
    results = find_conflicts(_candidate(_at(10), _at(11)), existing)
    assert [r.conflicting_event.id for r in results] == ["a", "b"]


def test_new_york_candidate_against_utc_events():
    """14:00 EST is 19:00Z; only teacher 7's scheduled lesson blocks it."""
    teacher_9_block = _make_event(
        _at(19), _at(19, 50), event_id="u9", teacher_id="9", class_status="unavailable"
    )
    teacher_7_lesson = _make_event(
        _at(19), _at(19, 50), event_id="l7", teacher_id="7", class_status="scheduled"
    )
    candidate = Candidate(
        start=to_instant("2024-03-01 14:00", "America/New_York"),
        end=to_instant("2024-03-01 14:50", "America/New_York"),
        teacher_id=7,
    )

    result = check_conflict(candidate, [teacher_9_block, teacher_7_lesson])
    assert result.busy is True
    assert result.conflicting_event == teacher_7_lesson


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def test_describe_overlap_in_requesters_zone():
    existing = [_make_event(_at(19), _at(19, 50), class_type="Regular-Lesson")]
    result = check_conflict(_candidate(_at(19, 30), _at(20)), existing)
    message = describe_conflict(result, "America/New_York")
    assert "already booked" in message
    assert "regular lesson" in message
    assert "14:00 to 14:50" in message
    assert "2024-03-01" in message


def test_describe_buffer_conflict_mentions_spacing():
    existing = [_make_event(_at(10), _at(11), class_type="unavailable")]
    result = check_conflict(_candidate(_at(11), _at(12)), existing, buffer_minutes=5)
    message = describe_conflict(result, "UTC", buffer_minutes=5)
    assert "5 minutes" in message
    assert "unavailable time" in message
    assert "10:00 to 11:00" in message


def test_describe_free_slot_is_none():
    result = check_conflict(_candidate(_at(10), _at(11)), [])
    assert describe_conflict(result) is None


def test_candidate_must_have_positive_duration():
    with pytest.raises(ValueError):
        _candidate(_at(10), _at(10))
    with pytest.raises(ValueError):
        _candidate(_at(10), _at(10) - timedelta(minutes=1))

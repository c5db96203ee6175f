"""Service for detecting scheduling conflicts between a candidate and events.

Overlap rule: conflict if candidate.start < event.end_time AND
candidate.end > event.start_time, after both intervals are widened by the
buffer. Exact boundary touches (end == start) are NOT conflicts when the
buffer is zero.

Only events of the candidate's teacher are considered. Cancelled events never
conflict, and an unavailability block of another teacher never conflicts.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta

from lessonsched.domain.models import Candidate, ConflictReason, ConflictResult, Event
from lessonsched.services.timezones import format_local


def _overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and a_end > b_start


def _relevant(
    candidate: Candidate, event: Event, not_before: datetime | None
) -> bool:
    if candidate.exclude_event_id is not None and event.id == candidate.exclude_event_id:
        return False
    if event.is_cancelled:
        return False
    # Covers the unavailability rule too: another teacher's block is dropped
    # here, the same teacher's block is kept.
    if event.teacher_id != candidate.teacher_id:
        return False
    if not event.has_valid_interval:
        return False
    if not_before is not None and event.end_time <= not_before:
        return False
    return True


def _reason(candidate: Candidate, event: Event, buffer: timedelta) -> ConflictReason | None:
    if candidate.start == event.start_time and candidate.end == event.end_time:
        return ConflictReason.OVERLAP
    if _overlaps(candidate.start, candidate.end, event.start_time, event.end_time):
        return ConflictReason.OVERLAP
    if buffer and _overlaps(
        candidate.start - buffer,
        candidate.end + buffer,
        event.start_time - buffer,
        event.end_time + buffer,
    ):
        return ConflictReason.BUFFER
    return None


def _iter_conflicts(
    candidate: Candidate,
    events: list[Event],
    buffer_minutes: int,
    not_before: datetime | None,
) -> Iterator[ConflictResult]:
    if buffer_minutes < 0:
        raise ValueError("buffer_minutes must not be negative")
    buffer = timedelta(minutes=buffer_minutes)
    for event in events:
        if not _relevant(candidate, event, not_before):
            continue
        reason = _reason(candidate, event, buffer)
        if reason is not None:
            yield ConflictResult(busy=True, conflicting_event=event, reason=reason)


def check_conflict(
    candidate: Candidate,
    events: list[Event],
    buffer_minutes: int = 0,
    not_before: datetime | None = None,
) -> ConflictResult:
    """Return the first event (in input order) that blocks *candidate*.

    *not_before* drops events that ended before that instant.
    """
    for result in _iter_conflicts(candidate, events, buffer_minutes, not_before):
        return result
    return ConflictResult(busy=False)


def find_conflicts(
    candidate: Candidate,
    events: list[Event],
    buffer_minutes: int = 0,
    not_before: datetime | None = None,
) -> list[ConflictResult]:
    """Return every event that blocks *candidate*, in input order."""
    return list(_iter_conflicts(candidate, events, buffer_minutes, not_before))


def _describe_type(event: Event) -> str:
    if event.is_unavailable:
        return "unavailable time"
    if event.class_type:
        return event.class_type.replace("-", " ").replace("_", " ").lower()
    return "lesson"


def describe_conflict(
    result: ConflictResult, zone: str | None = None, buffer_minutes: int = 0
) -> str | None:
    """Build the message shown when a booking is rejected, or ``None`` if free."""
    if not result.busy or result.conflicting_event is None:
        return None
    event = result.conflicting_event
    span = f"{format_local(event.start_time, zone)} to {format_local(event.end_time, zone)}"
    day = format_local(event.start_time, zone, "%Y-%m-%d")
    kind = _describe_type(event)
    if result.reason == ConflictReason.BUFFER:
        return (
            f"Need at least {buffer_minutes} minutes between lessons. "
            f"There is an existing {kind} on {day} from {span}."
        )
    return (
        f"This time slot is already booked. There is an existing {kind} on {day} from {span}. "
        "Please choose a different time."
    )

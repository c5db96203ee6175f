"""Service for expanding a weekly repeating lesson into individual intervals."""

from __future__ import annotations

from datetime import datetime, timezone

from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

from lessonsched.services.timezones import resolve_zone

# Indexed by datetime.weekday().
_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)


def expand_weekly(
    start: datetime,
    end: datetime,
    zone: str,
    weekdays: list[int],
    weeks: int,
) -> list[tuple[datetime, datetime]]:
    """Expand a lesson into UTC intervals on *weekdays* for *weeks* weeks.

    Weekdays use Python numbering (Monday is 0). The first occurrence is the
    first selected weekday on or after *start*. Recurrence runs on wall-clock
    time in *zone*, so a 16:00 lesson stays at 16:00 across DST changes.
    """
    if not weekdays:
        raise ValueError("at least one weekday is required")
    if weeks < 1:
        raise ValueError("weeks must be at least 1")

    tz = resolve_zone(zone)
    local_start = start.astimezone(tz).replace(tzinfo=None)
    local_end = end.astimezone(tz).replace(tzinfo=None)
    duration = local_end - local_start

    days = sorted(set(weekdays))
    rule = rrule(
        WEEKLY,
        dtstart=local_start,
        byweekday=[_WEEKDAYS[d] for d in days],
        count=len(days) * weeks,
    )

    intervals: list[tuple[datetime, datetime]] = []
    for occurrence in rule:
        occ_start = occurrence.replace(tzinfo=tz).astimezone(timezone.utc)
        occ_end = (occurrence + duration).replace(tzinfo=tz).astimezone(timezone.utc)
        intervals.append((occ_start, occ_end))
    return intervals

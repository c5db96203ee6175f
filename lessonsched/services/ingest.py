"""Normalization of raw event payloads at the fetch boundary.

Stored records name the teacher ``teacher_id``, ``resourceId`` or
``teacherId`` and spell statuses in several ways. Everything past this module
sees a single :class:`Event` shape.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from lessonsched.domain.errors import FetchFailure, ParseError
from lessonsched.domain.models import Event
from lessonsched.services.timezones import to_instant

logger = logging.getLogger(__name__)

_TEACHER_KEYS = ("teacher_id", "resourceId", "teacherId")
_START_KEYS = ("startDate", "start_date", "start")
_END_KEYS = ("endDate", "end_date", "end")
_UNAVAILABLE_FLAGS = ("isNotAvailable", "isUnavailable")


def _first(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def extract_rows(payload: Any) -> list[dict[str, Any]]:
    """Return the list of raw events from a bare list or ``{"events": {"rows": [...]}}``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        events = payload.get("events")
        if isinstance(events, list):
            return events
        if isinstance(events, dict) and isinstance(events.get("rows"), list):
            return events["rows"]
    raise FetchFailure("Unexpected event payload shape")


def normalize_event(raw: dict[str, Any], storage_zone: str | None = None) -> Event:
    """Build an :class:`Event` from one stored record.

    Raises ``ParseError`` when the record has no id, no teacher, unusable
    times, or field values the model rejects.
    """
    if raw.get("id") in (None, ""):
        raise ParseError("Event record has no id")

    teacher = _first(raw, _TEACHER_KEYS)
    if teacher is None:
        raise ParseError(f"Event {raw.get('id')!r} has no teacher reference")

    start_raw = _first(raw, _START_KEYS)
    end_raw = _first(raw, _END_KEYS)
    if start_raw is None or end_raw is None:
        raise ParseError(f"Event {raw.get('id')!r} is missing start or end")

    start_time = to_instant(start_raw, storage_zone)
    end_time = to_instant(end_raw, storage_zone)
    try:
        return Event(
            id=str(raw["id"]),
            teacher_id=str(teacher),
            student_id=raw.get("student_id"),
            start_time=start_time,
            end_time=end_time,
            class_status=raw.get("class_status"),
            class_type=raw.get("class_type"),
            payment_status=raw.get("payment_status"),
            is_not_available=any(bool(raw.get(flag)) for flag in _UNAVAILABLE_FLAGS),
        )
    except ValidationError as exc:
        fields = ", ".join(str(error["loc"][0]) for error in exc.errors() if error["loc"])
        raise ParseError(f"Event {raw['id']!r} has invalid fields: {fields}") from exc


def normalize_events(rows: list[dict[str, Any]], storage_zone: str | None = None) -> list[Event]:
    """Normalize a fetched batch, skipping records that cannot be placed on the timeline."""
    events: list[Event] = []
    for raw in rows:
        try:
            events.append(normalize_event(raw, storage_zone))
        except ParseError as exc:
            logger.warning("Skipping event record: %s", exc)
    return events

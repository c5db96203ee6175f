"""Domain models for lesson scheduling and conflict detection."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from enum import StrEnum
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator, model_validator


class ClassStatus(StrEnum):
    SCHEDULED = "scheduled"
    GIVEN = "given"
    CANCELLED = "cancelled"
    STUDENT_NO_SHOW = "student_no_show"
    TEACHER_NO_SHOW = "teacher_no_show"
    UNAVAILABLE = "unavailable"


class ConflictReason(StrEnum):
    OVERLAP = "overlap"
    BUFFER = "buffer"


# Spellings seen in stored data, keyed by their folded form.
_STATUS_SYNONYMS = {
    "completed": ClassStatus.GIVEN,
    "canceled": ClassStatus.CANCELLED,
    "not_available": ClassStatus.UNAVAILABLE,
    "no_show_student": ClassStatus.STUDENT_NO_SHOW,
    "no_show_teacher": ClassStatus.TEACHER_NO_SHOW,
}

_UNAVAILABLE_TYPES = {"unavailable", "unavailable lesson", "not available"}


def normalize_status(raw: object) -> str:
    """Fold a stored class status onto the canonical vocabulary.

    Unknown statuses are kept (folded) rather than rejected.
    """
    if raw is None:
        return ClassStatus.SCHEDULED.value
    key = re.sub(r"[\s\-]+", "_", str(raw).strip().lower())
    if not key:
        return ClassStatus.SCHEDULED.value
    return str(_STATUS_SYNONYMS.get(key, key))


def is_unavailable_type(class_type: str | None) -> bool:
    if not class_type:
        return False
    key = re.sub(r"[\s\-_]+", " ", class_type.strip().lower())
    return key in _UNAVAILABLE_TYPES


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class WallClockTime(BaseModel):
    """A local date and time in a named zone; for display and form input."""

    local_date: date
    local_time: time
    zone: str
    # Second occurrence of a repeated wall time (DST fall-back).
    fold: int = Field(default=0, ge=0, le=1)

    def as_datetime(self) -> datetime:
        local = datetime.combine(self.local_date, self.local_time, tzinfo=ZoneInfo(self.zone))
        return local.replace(fold=self.fold)

    def __str__(self) -> str:
        return f"{self.local_date.isoformat()} {self.local_time.strftime('%H:%M:%S')} {self.zone}"


class Event(BaseModel):
    """A calendar entry as fetched from storage, with times as UTC instants.

    Zero or negative durations are accepted here; the conflict checker skips
    them.
    """

    id: str
    teacher_id: str
    student_id: str | None = None
    start_time: datetime
    end_time: datetime
    class_status: str = ClassStatus.SCHEDULED.value
    class_type: str | None = None
    payment_status: str | None = None
    is_not_available: bool = False

    @field_validator("id", "teacher_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("student_id", mode="before")
    @classmethod
    def _stringify_optional_id(cls, value: object) -> object:
        if value in (None, "", 0, "0"):
            return None
        return str(value)

    @field_validator("class_status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> str:
        return normalize_status(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def is_unavailable(self) -> bool:
        return (
            self.is_not_available
            or is_unavailable_type(self.class_type)
            or self.class_status == ClassStatus.UNAVAILABLE
        )

    @property
    def is_cancelled(self) -> bool:
        return self.class_status == ClassStatus.CANCELLED

    @property
    def has_valid_interval(self) -> bool:
        return self.start_time < self.end_time


class NewEvent(BaseModel):
    """An event about to be written; storage assigns the id."""

    teacher_id: str
    student_id: str | None = None
    start_time: datetime
    end_time: datetime
    class_status: str = ClassStatus.SCHEDULED.value
    class_type: str | None = None
    payment_status: str | None = None
    is_not_available: bool = False

    @field_validator("class_status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> str:
        return normalize_status(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Candidate(BaseModel):
    """An interval a teacher is about to be booked for."""

    start: datetime
    end: datetime
    teacher_id: str
    exclude_event_id: str | None = None

    @field_validator("teacher_id", "exclude_event_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _end_after_start(self) -> Candidate:
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class ConflictResult(BaseModel):
    busy: bool
    conflicting_event: Event | None = None
    reason: ConflictReason | None = None


class BookingOutcome(BaseModel):
    accepted: bool
    events: list[Event] = Field(default_factory=list)
    conflict: ConflictResult | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class BookingRequest(BaseModel):
    """A booking as submitted by a form, drag or resize.

    ``start``/``end`` without an offset are read in ``timezone`` (the storage
    zone when omitted).
    """

    start: str | datetime
    end: str | datetime
    teacher_id: str
    timezone: str | None = None
    student_id: str | None = None
    class_type: str | None = None
    class_status: str | None = None
    payment_status: str | None = None
    exclude_event_id: str | None = None
    buffer_minutes: int | None = Field(default=None, ge=0)

    @field_validator("teacher_id", "exclude_event_id", "student_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value


class SeriesRequest(BaseModel):
    booking: BookingRequest
    weekdays: list[int] = Field(min_length=1)
    weeks: int = Field(default=1, ge=1)

    @field_validator("weekdays")
    @classmethod
    def _weekday_range(cls, value: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("weekdays must be between 0 (Monday) and 6 (Sunday)")
        return value


class ConflictCheckResponse(BaseModel):
    busy: bool
    reason: ConflictReason | None = None
    conflicting_event: Event | None = None
    message: str | None = None


class TimeConversionRequest(BaseModel):
    time: str
    from_timezone: str
    to_timezone: str
    reference_date: date


class TimeConversionResponse(BaseModel):
    time: str
    day_shift: int

"""Domain events published on the bus around bookings."""

from __future__ import annotations

from pydantic import BaseModel

from lessonsched.domain.models import ConflictReason, Event


class EventBooked(BaseModel):
    """Fired after a new lesson or unavailability block is written."""

    event: Event


class EventRescheduled(BaseModel):
    """Fired after an existing event was moved or resized."""

    event: Event


class BookingRejected(BaseModel):
    """Fired when a requested booking collides with an existing event."""

    teacher_id: str
    conflicting_event_id: str
    reason: ConflictReason
    message: str


class CalendarUpdated(BaseModel):
    """Tells listeners to refresh their calendar view."""

    teacher_id: str | None = None


class ClassesUpdated(BaseModel):
    """Tells listeners to refresh class records."""

    teacher_id: str | None = None


class EventDeleted(BaseModel):
    """Fired after a lesson or unavailability block was removed."""

    event_id: str

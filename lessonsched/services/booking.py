"""Booking orchestration: snapshot, conflict check, write, notify.

The check here reads a snapshot and then writes; it is an early rejection for
the single-user case, not a lock. Two writers racing for the same slot can
both pass it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

from lessonsched.config import Settings, get_settings
from lessonsched.domain.bus import EventBus
from lessonsched.domain.errors import EventNotFound, FetchFailure
from lessonsched.domain.events import (
    BookingRejected,
    CalendarUpdated,
    ClassesUpdated,
    EventBooked,
    EventDeleted,
    EventRescheduled,
)
from lessonsched.domain.models import (
    BookingOutcome,
    BookingRequest,
    Candidate,
    ClassStatus,
    ConflictResult,
    Event,
    NewEvent,
    SeriesRequest,
    is_unavailable_type,
)
from lessonsched.services.conflicts import check_conflict, describe_conflict
from lessonsched.services.recurrence import expand_weekly
from lessonsched.services.timezones import to_instant

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    """Where events are read from and written to."""

    async def fetch_events(self) -> list[Event]: ...

    async def create_event(self, event: NewEvent) -> Event: ...

    async def update_event(self, event_id: str, start: datetime, end: datetime) -> Event: ...

    async def delete_event(self, event_id: str) -> None: ...


class BookingService:
    def __init__(
        self,
        source: EventSource,
        bus: EventBus,
        settings: Settings | None = None,
    ) -> None:
        self.source = source
        self.bus = bus
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _zone(self, request: BookingRequest) -> str:
        return request.timezone or self.settings.storage_timezone

    def _buffer(self, request: BookingRequest) -> int:
        if request.buffer_minutes is not None:
            return request.buffer_minutes
        return self.settings.buffer_minutes

    def candidate_for(self, request: BookingRequest, exclude_event_id: str | None = None) -> Candidate:
        """Resolve a request's times to instants.

        Raises ``ParseError`` for unreadable times and ``ValueError`` when the
        interval is empty.
        """
        zone = self._zone(request)
        return Candidate(
            start=to_instant(request.start, zone),
            end=to_instant(request.end, zone),
            teacher_id=request.teacher_id,
            exclude_event_id=exclude_event_id or request.exclude_event_id,
        )

    async def _snapshot(self) -> list[Event]:
        try:
            return await self.source.fetch_events()
        except FetchFailure:
            logger.error("Could not load events; blocking the booking")
            raise

    def _new_event(self, request: BookingRequest, start: datetime, end: datetime) -> NewEvent:
        unavailable = is_unavailable_type(request.class_type)
        return NewEvent(
            teacher_id=request.teacher_id,
            student_id=None if unavailable else request.student_id,
            start_time=start,
            end_time=end,
            class_status=request.class_status or ClassStatus.SCHEDULED,
            class_type=request.class_type,
            payment_status=request.payment_status,
            is_not_available=unavailable,
        )

    def message_for(self, request: BookingRequest, result: ConflictResult) -> str | None:
        """Human-readable rejection text in the requester's zone."""
        return describe_conflict(result, self._zone(request), self._buffer(request))

    def _reject(self, request: BookingRequest, conflict: ConflictResult) -> BookingOutcome:
        message = self.message_for(request, conflict)
        logger.info(
            "Rejected booking for teacher %s: conflicts with event %s (%s)",
            request.teacher_id,
            conflict.conflicting_event.id,
            conflict.reason,
        )
        self.bus.publish(
            BookingRejected(
                teacher_id=request.teacher_id,
                conflicting_event_id=conflict.conflicting_event.id,
                reason=conflict.reason,
                message=message,
            )
        )
        return BookingOutcome(accepted=False, conflict=conflict, message=message)

    def _notify_written(self, events: list[Event], teacher_id: str) -> None:
        self.bus.publish(CalendarUpdated(teacher_id=teacher_id))
        if any(not event.is_unavailable for event in events):
            self.bus.publish(ClassesUpdated(teacher_id=teacher_id))

    async def _roll_back(self, created: list[Event]) -> None:
        """Delete occurrences of a series whose later writes failed."""
        for event in created:
            try:
                await self.source.delete_event(event.id)
            except (FetchFailure, EventNotFound) as exc:
                logger.error("Could not roll back series occurrence %s: %s", event.id, exc)
        if created:
            logger.warning("Rolled back %d occurrences of a failed series", len(created))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def check(self, request: BookingRequest) -> ConflictResult:
        candidate = self.candidate_for(request)
        events = await self._snapshot()
        return check_conflict(candidate, events, self._buffer(request))

    async def book(self, request: BookingRequest) -> BookingOutcome:
        """Create the requested event unless it conflicts.

        Raises ``FetchFailure`` if the snapshot or the write fails.
        """
        candidate = self.candidate_for(request)
        events = await self._snapshot()
        conflict = check_conflict(candidate, events, self._buffer(request))
        if conflict.busy:
            return self._reject(request, conflict)

        created = await self.source.create_event(
            self._new_event(request, candidate.start, candidate.end)
        )
        logger.info("Booked event %s for teacher %s", created.id, created.teacher_id)
        self.bus.publish(EventBooked(event=created))
        self._notify_written([created], created.teacher_id)
        return BookingOutcome(accepted=True, events=[created])

    async def reschedule(self, event_id: str, request: BookingRequest) -> BookingOutcome:
        """Move or resize *event_id*; the event never conflicts with itself."""
        candidate = self.candidate_for(request, exclude_event_id=event_id)
        events = await self._snapshot()
        conflict = check_conflict(candidate, events, self._buffer(request))
        if conflict.busy:
            return self._reject(request, conflict)

        updated = await self.source.update_event(event_id, candidate.start, candidate.end)
        logger.info("Rescheduled event %s for teacher %s", updated.id, updated.teacher_id)
        self.bus.publish(EventRescheduled(event=updated))
        self._notify_written([updated], updated.teacher_id)
        return BookingOutcome(accepted=True, events=[updated])

    async def delete(self, event_id: str) -> None:
        """Remove a lesson or unavailability block; deletions never conflict.

        Raises ``EventNotFound`` for unknown ids and ``FetchFailure`` when the
        backend cannot be reached.
        """
        await self.source.delete_event(event_id)
        logger.info("Deleted event %s", event_id)
        self.bus.publish(EventDeleted(event_id=event_id))
        self.bus.publish(CalendarUpdated())
        self.bus.publish(ClassesUpdated())

    async def book_series(self, series: SeriesRequest) -> BookingOutcome:
        """Book a weekly repeating lesson, all occurrences or none."""
        request = series.booking
        first = self.candidate_for(request)
        intervals = expand_weekly(
            first.start, first.end, self._zone(request), series.weekdays, series.weeks
        )
        events = await self._snapshot()
        buffer = self._buffer(request)

        # Earlier occurrences of the same series take part in the check too.
        pending: list[Event] = []
        for index, (start, end) in enumerate(intervals):
            candidate = Candidate(start=start, end=end, teacher_id=request.teacher_id)
            conflict = check_conflict(candidate, events + pending, buffer)
            if conflict.busy:
                return self._reject(request, conflict)
            pending.append(
                Event(
                    id=f"pending-{index}",
                    teacher_id=request.teacher_id,
                    start_time=start,
                    end_time=end,
                    class_type=request.class_type,
                )
            )

        created: list[Event] = []
        try:
            for start, end in intervals:
                created.append(
                    await self.source.create_event(self._new_event(request, start, end))
                )
        except Exception:
            await self._roll_back(created)
            raise
        logger.info("Booked %d occurrences for teacher %s", len(created), request.teacher_id)
        for event in created:
            self.bus.publish(EventBooked(event=event))
        self._notify_written(created, request.teacher_id)
        return BookingOutcome(accepted=True, events=created)

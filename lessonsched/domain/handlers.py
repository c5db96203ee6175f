"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

import logging
from typing import Callable

from lessonsched.domain.bus import EventBus
from lessonsched.domain.events import (
    BookingRejected,
    EventBooked,
    EventDeleted,
    EventRescheduled,
)
from lessonsched.services.reconcile import ClientEventMirror

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Keeps a client mirror in step with confirmed writes and deletions."""

    def __init__(self, bus: EventBus, mirror: ClientEventMirror) -> None:
        self.bus = bus
        self.mirror = mirror
        self._unsubscribers: list[Callable[[], None]] = []
        self._register()

    def _register(self) -> None:
        self._unsubscribers = [
            self.bus.subscribe(EventBooked, self.on_event_booked),
            self.bus.subscribe(EventRescheduled, self.on_event_rescheduled),
            self.bus.subscribe(EventDeleted, self.on_event_deleted),
            self.bus.subscribe(BookingRejected, self.on_booking_rejected),
        ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_event_booked(self, event: EventBooked) -> None:
        self.mirror.upsert(event.event)

    def on_event_rescheduled(self, event: EventRescheduled) -> None:
        self.mirror.upsert(event.event)

    def on_event_deleted(self, event: EventDeleted) -> None:
        self.mirror.remove(event.event_id)

    def on_booking_rejected(self, event: BookingRejected) -> None:
        logger.debug(
            "Booking for teacher %s rejected (%s): %s",
            event.teacher_id,
            event.reason,
            event.message,
        )

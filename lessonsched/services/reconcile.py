"""Merging authoritative event snapshots into client-held state."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from lessonsched.domain.errors import FetchFailure
from lessonsched.domain.models import Event

if TYPE_CHECKING:
    from lessonsched.services.booking import EventSource

logger = logging.getLogger(__name__)


def merge(server_events: list[Event], client_events: list[Event]) -> list[Event]:
    """Return *server_events*, keeping locally moved times of unavailability blocks.

    When the client copy of an event is an unavailability block whose start or
    end differs from the server's, its times win and every other field comes
    from the server. Events the server no longer returns are dropped.
    """
    client_by_id = {event.id: event for event in client_events}
    merged: list[Event] = []
    for server_event in server_events:
        client_event = client_by_id.get(server_event.id)
        if (
            client_event is not None
            and client_event.is_unavailable
            and (
                client_event.start_time != server_event.start_time
                or client_event.end_time != server_event.end_time
            )
        ):
            merged.append(
                server_event.model_copy(
                    update={
                        "start_time": client_event.start_time,
                        "end_time": client_event.end_time,
                    }
                )
            )
        else:
            merged.append(server_event)
    return merged


class ClientEventMirror:
    """In-memory copy of the calendar as the user currently sees it.

    Only this class mutates the list; readers get copies.
    """

    def __init__(self, events: list[Event] | None = None) -> None:
        self._events: list[Event] = list(events or [])

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    def get(self, event_id: str) -> Event | None:
        for event in self._events:
            if event.id == event_id:
                return event
        return None

    def replace_from_server(self, server_events: list[Event]) -> list[Event]:
        self._events = merge(server_events, self._events)
        return self.events

    def apply_local_edit(self, event_id: str, start: datetime, end: datetime) -> Event | None:
        """Record a drag or resize that the server has not confirmed yet."""
        for index, event in enumerate(self._events):
            if event.id == event_id:
                edited = event.model_copy(update={"start_time": start, "end_time": end})
                self._events[index] = edited
                return edited
        return None

    def upsert(self, event: Event) -> None:
        for index, existing in enumerate(self._events):
            if existing.id == event.id:
                self._events[index] = event
                return
        self._events.append(event)

    def remove(self, event_id: str) -> bool:
        remaining = [event for event in self._events if event.id != event_id]
        removed = len(remaining) != len(self._events)
        self._events = remaining
        return removed


class PeriodicRefresh:
    """Re-fetch events into a mirror every *interval* seconds until stopped.

    Usable as an async context manager so the task is cancelled when the
    owning view goes away.
    """

    def __init__(self, source: EventSource, mirror: ClientEventMirror, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.source = source
        self.mirror = mirror
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh_once(self) -> bool:
        try:
            events = await self.source.fetch_events()
        except FetchFailure as exc:
            logger.warning("Calendar refresh failed, keeping current state: %s", exc)
            return False
        self.mirror.replace_from_server(events)
        return True

    async def _run(self) -> None:
        while True:
            await self.refresh_once()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> PeriodicRefresh:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

"""In-memory event store, used when no backend URL is configured."""

from __future__ import annotations

from datetime import datetime
from itertools import count

from lessonsched.domain.errors import EventNotFound
from lessonsched.domain.models import Event, NewEvent


class EventRepository:
    """Dict-backed store for Event instances, keyed by id.

    Implements the async event-source interface the booking service uses.
    """

    def __init__(self, events: list[Event] | None = None) -> None:
        self._store: dict[str, Event] = {}
        self._ids = count(1)
        for event in events or []:
            self.add(event)

    def add(self, event: Event) -> None:
        self._store[event.id] = event

    def get(self, event_id: str) -> Event | None:
        return self._store.get(event_id)

    def list_all(self) -> list[Event]:
        return list(self._store.values())

    def clear(self) -> None:
        self._store.clear()

    def _next_id(self) -> str:
        while True:
            candidate = str(next(self._ids))
            if candidate not in self._store:
                return candidate

    async def fetch_events(self) -> list[Event]:
        return self.list_all()

    async def create_event(self, event: NewEvent) -> Event:
        stored = Event(id=self._next_id(), **event.model_dump())
        self.add(stored)
        return stored

    async def update_event(self, event_id: str, start: datetime, end: datetime) -> Event:
        existing = self._store.get(event_id)
        if existing is None:
            raise EventNotFound(event_id)
        updated = existing.model_copy(update={"start_time": start, "end_time": end})
        self._store[event_id] = updated
        return updated

    async def delete_event(self, event_id: str) -> None:
        if self._store.pop(event_id, None) is None:
            raise EventNotFound(event_id)

"""FastAPI application: entry point for the lesson scheduling service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from lessonsched.config import get_settings
from lessonsched.domain.bus import EventBus
from lessonsched.domain.errors import EventNotFound, FetchFailure, ParseError
from lessonsched.domain.handlers import HandlerRegistry
from lessonsched.domain.models import (
    BookingOutcome,
    BookingRequest,
    ConflictCheckResponse,
    Event,
    SeriesRequest,
    TimeConversionRequest,
    TimeConversionResponse,
)
from lessonsched.repos.http import HttpEventSource
from lessonsched.repos.memory import EventRepository
from lessonsched.services.booking import BookingService
from lessonsched.services.reconcile import ClientEventMirror
from lessonsched.services.timezones import convert_wall_time, day_shift

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if isinstance(event_source, HttpEventSource):
        await event_source.aclose()


app = FastAPI(title="Lesson Scheduling Service", lifespan=lifespan)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
event_repo = EventRepository()
if settings.events_url:
    event_source = HttpEventSource(
        settings.events_url,
        settings.storage_timezone,
        timeout=settings.http_timeout,
        retry_delay=settings.retry_delay,
    )
    logger.info("Using event backend at %s", settings.events_url)
else:
    event_source = event_repo
    logger.info("No event backend configured; using in-memory store")

client_mirror = ClientEventMirror()
handler_registry = HandlerRegistry(bus=event_bus, mirror=client_mirror)
booking_service = BookingService(event_source, event_bus, settings)


# ── Error mapping ─────────────────────────────────────────────────────


@app.exception_handler(FetchFailure)
async def _fetch_failure(request: Request, exc: FetchFailure) -> JSONResponse:
    logger.error("Event backend unavailable: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Could not verify the calendar; please try again."},
    )


@app.exception_handler(EventNotFound)
async def _event_not_found(request: Request, exc: EventNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Event not found"})


@app.exception_handler(ParseError)
async def _parse_error(request: Request, exc: ParseError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    messages = [error["msg"] for error in exc.errors()]
    return JSONResponse(status_code=422, content={"detail": "; ".join(messages)})


def _outcome_response(outcome: BookingOutcome) -> BookingOutcome | JSONResponse:
    if outcome.accepted:
        return outcome
    return JSONResponse(status_code=409, content=outcome.model_dump(mode="json"))


# ── Routes ────────────────────────────────────────────────────────────


@app.get("/events", response_model=list[Event])
async def list_events() -> list[Event]:
    """Return all stored events, normalized."""
    return await event_source.fetch_events()


@app.post("/conflicts/check", response_model=ConflictCheckResponse)
async def check_conflicts(payload: BookingRequest) -> ConflictCheckResponse:
    """Report whether the requested slot is free, without writing anything."""
    result = await booking_service.check(payload)
    return ConflictCheckResponse(
        busy=result.busy,
        reason=result.reason,
        conflicting_event=result.conflicting_event,
        message=booking_service.message_for(payload, result),
    )


@app.post("/events", response_model=BookingOutcome)
async def create_event(payload: BookingRequest):
    """Book a lesson or unavailability block; 409 if the slot is taken."""
    return _outcome_response(await booking_service.book(payload))


@app.post("/events/series", response_model=BookingOutcome)
async def create_series(payload: SeriesRequest):
    """Book a weekly repeating lesson, all occurrences or none."""
    return _outcome_response(await booking_service.book_series(payload))


@app.put("/events/{event_id}", response_model=BookingOutcome)
async def reschedule_event(event_id: str, payload: BookingRequest):
    """Move or resize an event (drag/resize in the calendar)."""
    return _outcome_response(await booking_service.reschedule(event_id, payload))


@app.delete("/events/{event_id}", status_code=204)
async def delete_event(event_id: str) -> Response:
    """Remove a lesson or unavailability block."""
    await booking_service.delete(event_id)
    return Response(status_code=204)


@app.post("/time/convert", response_model=TimeConversionResponse)
def convert_time(payload: TimeConversionRequest) -> TimeConversionResponse:
    """Convert a bare time of day between zones, with the resulting day shift."""
    return TimeConversionResponse(
        time=convert_wall_time(
            payload.time, payload.from_timezone, payload.to_timezone, payload.reference_date
        ),
        day_shift=day_shift(
            payload.time, payload.from_timezone, payload.to_timezone, payload.reference_date
        ),
    )

"""Event source backed by the school's REST API."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

import httpx

from lessonsched.domain.errors import EventNotFound, FetchFailure, ParseError
from lessonsched.domain.models import Event, NewEvent
from lessonsched.services.ingest import extract_rows, normalize_event, normalize_events
from lessonsched.services.timezones import to_storage_string

logger = logging.getLogger(__name__)

# Timeouts and these statuses get one retry, for idempotent methods only.
_RETRY_STATUSES = {408, 503}
_RETRY_METHODS = {"GET", "PUT", "DELETE"}

_DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}


class HttpEventSource:
    def __init__(
        self,
        base_url: str,
        storage_zone: str,
        timeout: float = 20.0,
        retry_delay: float = 1.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.storage_zone = storage_zone
        self.retry_delay = retry_delay
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout, headers=_DEFAULT_HEADERS
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        retried = False
        while True:
            retryable = not retried and method in _RETRY_METHODS
            retried = True
            try:
                response = await self._client.request(method, path, **kwargs)
            except httpx.TimeoutException as exc:
                if not retryable:
                    raise FetchFailure(f"{method} {path} timed out") from exc
                logger.warning("%s %s timed out, retrying", method, path)
                await asyncio.sleep(self.retry_delay)
                continue
            except httpx.HTTPError as exc:
                raise FetchFailure(f"{method} {path} failed: {exc}") from exc

            if response.status_code in _RETRY_STATUSES and retryable:
                logger.warning(
                    "%s %s returned %s, retrying", method, path, response.status_code
                )
                await asyncio.sleep(self.retry_delay)
                continue
            return response

    def _checked(self, response: httpx.Response) -> Any:
        try:
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise FetchFailure(
                f"{exc.request.method} {exc.request.url} returned {response.status_code}"
            ) from exc
        except ValueError as exc:
            raise FetchFailure("Response body is not JSON") from exc

    def _single(self, payload: Any) -> Event:
        raw = payload.get("event", payload) if isinstance(payload, dict) else None
        if not isinstance(raw, dict):
            raise FetchFailure("Unexpected event payload shape")
        try:
            return normalize_event(raw, self.storage_zone)
        except ParseError as exc:
            raise FetchFailure(f"Unreadable event in response: {exc}") from exc

    async def fetch_events(self) -> list[Event]:
        payload = self._checked(await self._request("GET", "/lessons"))
        return normalize_events(extract_rows(payload), self.storage_zone)

    async def create_event(self, event: NewEvent) -> Event:
        body = {
            "teacher_id": event.teacher_id,
            "student_id": event.student_id,
            "class_type": event.class_type,
            "class_status": event.class_status,
            "payment_status": event.payment_status,
            "start_date": to_storage_string(event.start_time, self.storage_zone),
            "end_date": to_storage_string(event.end_time, self.storage_zone),
            "isNotAvailable": event.is_not_available,
        }
        payload = self._checked(await self._request("POST", "/lessons", json=body))
        return self._single(payload)

    async def update_event(self, event_id: str, start: datetime, end: datetime) -> Event:
        body = {
            "start_date": to_storage_string(start, self.storage_zone),
            "end_date": to_storage_string(end, self.storage_zone),
        }
        response = await self._request("PUT", f"/lessons/{event_id}", json=body)
        if response.status_code == 404:
            raise EventNotFound(event_id)
        return self._single(self._checked(response))

    async def delete_event(self, event_id: str) -> None:
        response = await self._request("DELETE", f"/lessons/{event_id}")
        if response.status_code == 404:
            raise EventNotFound(event_id)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchFailure(
                f"DELETE /lessons/{event_id} returned {response.status_code}"
            ) from exc

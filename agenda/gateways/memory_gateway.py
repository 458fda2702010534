"""
In-memory Calendar Gateway.

Mirrors the Google Calendar semantics the core relies on (overlap filtering
on timeMin/timeMax, start-time ordering, free-text query, pagination,
404 on unknown ids) without any network access. Used by the test suite and
by CALENDAR_BACKEND=memory for local runs.

Each call yields to the event loop once before touching state, so
concurrent requests interleave the way they do against the real API.
"""

import asyncio
import copy
import logging
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from agenda.errors import NotFoundError
from agenda.models import EventPage
from agenda.utils.date_parser import DateTimeNormalizer, overlaps

logger = logging.getLogger(__name__)


class InMemoryCalendarGateway:
    """
    Calendar store kept in a dict per calendar id.

    Usage:
        gateway = InMemoryCalendarGateway("America/Sao_Paulo")
        created = await gateway.insert_event("agenda", {...})
    """

    def __init__(self, timezone: str):
        self.normalizer = DateTimeNormalizer(timezone)
        self.calendars: dict[str, dict[str, dict[str, Any]]] = {}

    def events(self, calendar_id: str) -> list[dict[str, Any]]:
        """All live events of a calendar (copies), ordered by start."""
        return [copy.deepcopy(e) for e in self._sorted(self.calendars.get(calendar_id, {}).values())]

    def _sorted(self, events) -> list[dict[str, Any]]:
        def start_key(event: dict[str, Any]) -> datetime:
            bounds = self.normalizer.event_bounds(event)
            return bounds[0].astimezone(UTC) if bounds else datetime.max.replace(tzinfo=UTC)

        return sorted(events, key=start_key)

    def _calendar(self, calendar_id: str) -> dict[str, dict[str, Any]]:
        return self.calendars.setdefault(calendar_id, {})

    @staticmethod
    def _matches_query(event: dict[str, Any], query: str) -> bool:
        haystack = " ".join(
            str(event.get(field, "")) for field in ("summary", "description", "location")
        ).lower()
        return all(term in haystack for term in query.lower().split())

    async def list_events(
        self,
        calendar_id: str,
        time_min: datetime | None = None,
        time_max: datetime | None = None,
        *,
        query: str | None = None,
        max_results: int = 250,
        page_token: str | None = None,
    ) -> EventPage:
        await asyncio.sleep(0)

        selected = []
        for event in self._sorted(self._calendar(calendar_id).values()):
            bounds = self.normalizer.event_bounds(event)
            if bounds is None:
                continue
            start, end = bounds
            window_start = time_min or start
            window_end = time_max or end
            if (time_min or time_max) and not overlaps(start, end, window_start, window_end):
                continue
            if query and not self._matches_query(event, query):
                continue
            selected.append(copy.deepcopy(event))

        offset = int(page_token) if page_token else 0
        page = selected[offset:offset + max_results]
        next_offset = offset + max_results
        next_token = str(next_offset) if next_offset < len(selected) else None

        return EventPage(items=page, next_page_token=next_token)

    async def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any]:
        await asyncio.sleep(0)
        event = self._calendar(calendar_id).get(event_id)
        if event is None:
            raise NotFoundError("Evento não encontrado na agenda", details={"event_id": event_id})
        return copy.deepcopy(event)

    async def insert_event(
        self, calendar_id: str, event: dict[str, Any], *, with_meet_link: bool = False
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        stored = copy.deepcopy(event)
        stored["id"] = uuid4().hex
        stored.setdefault("status", "confirmed")
        if with_meet_link:
            code = uuid4().hex
            stored["hangoutLink"] = f"https://meet.google.com/{code[:3]}-{code[3:7]}-{code[7:10]}"
        self._calendar(calendar_id)[stored["id"]] = stored
        logger.debug(f"Stored in-memory event | event_id={stored['id']}")
        return copy.deepcopy(stored)

    async def update_event(
        self, calendar_id: str, event_id: str, event: dict[str, Any]
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        calendar = self._calendar(calendar_id)
        if event_id not in calendar:
            raise NotFoundError("Evento não encontrado na agenda", details={"event_id": event_id})
        stored = copy.deepcopy(event)
        stored["id"] = event_id
        calendar[event_id] = stored
        return copy.deepcopy(stored)

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        await asyncio.sleep(0)
        if self._calendar(calendar_id).pop(event_id, None) is None:
            raise NotFoundError("Evento não encontrado na agenda", details={"event_id": event_id})

"""Unit tests for memory_gateway.py - in-memory calendar store."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from agenda.errors import NotFoundError
from agenda.gateways.memory_gateway import InMemoryCalendarGateway

CALENDAR_ID = "agenda-test"
TZ = ZoneInfo("America/Sao_Paulo")


def timed_event(start: str, end: str, **fields) -> dict:
    return {"start": {"dateTime": start}, "end": {"dateTime": end}, **fields}


@pytest.fixture
def store():
    return InMemoryCalendarGateway("America/Sao_Paulo")


class TestListEvents:

    @pytest.mark.asyncio
    async def test_overlap_filter_and_order(self, store):
        await store.insert_event(CALENDAR_ID, timed_event(
            "2026-03-14T15:00:00-03:00", "2026-03-14T16:00:00-03:00", summary="tarde"
        ))
        await store.insert_event(CALENDAR_ID, timed_event(
            "2026-03-14T09:00:00-03:00", "2026-03-14T10:00:00-03:00", summary="manhã"
        ))
        await store.insert_event(CALENDAR_ID, timed_event(
            "2026-03-15T09:00:00-03:00", "2026-03-15T10:00:00-03:00", summary="outro dia"
        ))

        page = await store.list_events(
            CALENDAR_ID,
            datetime(2026, 3, 14, 0, 0, tzinfo=TZ),
            datetime(2026, 3, 14, 23, 59, 59, tzinfo=TZ),
        )

        assert [e["summary"] for e in page.items] == ["manhã", "tarde"]

    @pytest.mark.asyncio
    async def test_query_matches_all_terms(self, store):
        await store.insert_event(CALENDAR_ID, timed_event(
            "2026-03-14T09:00:00-03:00", "2026-03-14T10:00:00-03:00",
            description="ID Reserva: res-1001",
        ))

        assert len((await store.list_events(CALENDAR_ID, query="res-1001")).items) == 1
        assert (await store.list_events(CALENDAR_ID, query="res-9999")).items == []

    @pytest.mark.asyncio
    async def test_pagination(self, store):
        for hour in range(8, 13):
            await store.insert_event(CALENDAR_ID, timed_event(
                f"2026-03-14T{hour:02d}:00:00-03:00", f"2026-03-14T{hour + 1:02d}:00:00-03:00"
            ))

        first = await store.list_events(CALENDAR_ID, max_results=2)
        second = await store.list_events(CALENDAR_ID, max_results=2, page_token=first.next_page_token)
        third = await store.list_events(CALENDAR_ID, max_results=2, page_token=second.next_page_token)

        assert len(first.items) == len(second.items) == 2
        assert len(third.items) == 1
        assert third.next_page_token is None

    @pytest.mark.asyncio
    async def test_returned_events_are_copies(self, store):
        created = await store.insert_event(CALENDAR_ID, timed_event(
            "2026-03-14T09:00:00-03:00", "2026-03-14T10:00:00-03:00", summary="original"
        ))
        created["summary"] = "mutated"

        assert store.events(CALENDAR_ID)[0]["summary"] == "original"


class TestWrites:

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_status(self, store):
        created = await store.insert_event(CALENDAR_ID, {"summary": "x"})

        assert created["id"]
        assert created["status"] == "confirmed"
        assert "hangoutLink" not in created

    @pytest.mark.asyncio
    async def test_meet_link(self, store):
        created = await store.insert_event(CALENDAR_ID, {"summary": "x"}, with_meet_link=True)
        assert created["hangoutLink"].startswith("https://meet.google.com/")

    @pytest.mark.asyncio
    async def test_update_and_delete(self, store):
        created = await store.insert_event(CALENDAR_ID, {"summary": "x"})

        updated = await store.update_event(CALENDAR_ID, created["id"], {"summary": "y"})
        await store.delete_event(CALENDAR_ID, created["id"])

        assert updated == {"summary": "y", "id": created["id"]}
        assert store.events(CALENDAR_ID) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["get", "update", "delete"])
    async def test_unknown_ids(self, store, operation):
        calls = {
            "get": lambda: store.get_event(CALENDAR_ID, "nope"),
            "update": lambda: store.update_event(CALENDAR_ID, "nope", {}),
            "delete": lambda: store.delete_event(CALENDAR_ID, "nope"),
        }

        with pytest.raises(NotFoundError):
            await calls[operation]()

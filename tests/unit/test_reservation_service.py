"""
Unit tests for reservation_service.py - reservation lifecycle.

Tests coverage:
- create: validation, conflicts, pricing, location, event layout
- reschedule: self-exclusion, price recompute, description preservation
- cancel / check_by_reservation round trips
- availability: occupied hours, idempotency, all-day events
- update_event / delete_event by calendar event id
- concurrent creates for the same or overlapping slots
- typed failures converted to OperationResult
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from agenda.errors import UpstreamError
from agenda.gateways.memory_gateway import InMemoryCalendarGateway
from agenda.models import EventUpdate
from agenda.services.reservation_service import ReservationLifecycleManager
from agenda.utils import event_description as desc

CALENDAR_ID = "agenda-test"


class LateInsertGateway(InMemoryCalendarGateway):
    """Insert that lands only after its deadline, then reports the timeout."""

    async def insert_event(self, calendar_id, event, *, with_meet_link=False):
        await asyncio.sleep(0.05)
        await super().insert_event(calendar_id, event, with_meet_link=with_meet_link)
        raise UpstreamError("Tempo esgotado ao acessar a agenda", error_code="UPSTREAM_TIMEOUT")


# ============================================================================
# Create
# ============================================================================


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_success(self, manager, gateway, make_request, settings):
        result = await manager.create(make_request())

        assert result.success is True
        assert result.data["reservation_id"] == "res-1001"
        assert result.data["date"] == "14/03/2026"
        assert result.data["time"] == "10:00"
        assert result.data["price"] == "150.00"
        assert result.data["location"] == settings.CLINIC_ADDRESS
        assert result.data["state"] == "scheduled"
        assert result.data["meeting_link"] is None

        events = gateway.events(CALENDAR_ID)
        assert len(events) == 1
        assert events[0]["id"] == result.data["event_id"]

    @pytest.mark.asyncio
    async def test_event_layout(self, manager, gateway, make_request):
        await manager.create(make_request(accessibility=True, notes="Primeira consulta"))

        event = gateway.events(CALENDAR_ID)[0]
        fields = desc.parse_description(event["description"])

        assert event["summary"] == "Consulta Clínica SaúdeSim - Maria Souza"
        assert event["start"]["dateTime"] == "2026-03-14T10:00:00-03:00"
        assert event["end"]["dateTime"] == "2026-03-14T11:00:00-03:00"
        assert event["start"]["timeZone"] == "America/Sao_Paulo"
        assert event["attendees"] == [{"email": "maria@example.com"}]
        assert event["extendedProperties"]["private"]["reservationId"] == "res-1001"
        assert fields[desc.PATIENT] == "Maria Souza"
        assert fields[desc.CHANNEL] == "in-person"
        assert fields[desc.ACCESSIBILITY] == "sim"
        assert fields[desc.PRICE] == "R$ 150,00"
        assert fields[desc.NOTES] == "Primeira consulta"
        assert event["description"].splitlines()[-1] == "ID Reserva: res-1001"

    @pytest.mark.asyncio
    async def test_online_gets_meeting_link(self, manager, gateway, make_request, settings):
        result = await manager.create(make_request(channel="online"))

        assert result.success is True
        assert result.data["location"] == settings.ONLINE_LOCATION
        assert result.data["meeting_link"].startswith("https://meet.google.com/")

    @pytest.mark.asyncio
    async def test_meeting_link_can_be_disabled(self, gateway, make_request, make_settings):
        manager = ReservationLifecycleManager(gateway, make_settings(CREATE_MEET_LINKS=False))

        result = await manager.create(make_request(channel="online"))

        assert result.data["meeting_link"] is None

    @pytest.mark.asyncio
    async def test_no_attendees_without_email(self, manager, gateway, make_request):
        result = await manager.create(make_request(email=None))

        assert result.success is True
        assert "attendees" not in gateway.events(CALENDAR_ID)[0]

    @pytest.mark.asyncio
    async def test_evening_price(self, manager, make_request):
        result = await manager.create(make_request(time="19:00"))
        assert result.data["price"] == "200.00"

    @pytest.mark.asyncio
    async def test_missing_fields(self, manager, gateway, make_request):
        result = await manager.create(make_request(name="", date=None, email=None, phone=" "))

        assert result.success is False
        assert result.error_code == "VALIDATION_ERROR"
        assert set(result.data["missing_fields"]) == {"name", "date", "email/phone"}
        assert gateway.events(CALENDAR_ID) == []

    @pytest.mark.asyncio
    async def test_phone_alone_is_enough_contact(self, manager, make_request):
        result = await manager.create(make_request(email=None))
        assert result.success is True

    @pytest.mark.asyncio
    async def test_invalid_email(self, manager, make_request):
        result = await manager.create(make_request(email="maria.example.com"))

        assert result.error_code == "VALIDATION_ERROR"
        assert result.data["field"] == "email"

    @pytest.mark.asyncio
    async def test_invalid_channel(self, manager, make_request):
        result = await manager.create(make_request(channel="domiciliar"))

        assert result.error_code == "VALIDATION_ERROR"
        assert result.data["field"] == "channel"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("date,time", [("31/02/2025", "10:00"), ("14/03/2026", "25:00")])
    async def test_invalid_date_or_time(self, manager, gateway, make_request, date, time):
        result = await manager.create(make_request(date=date, time=time))

        assert result.error_code == "VALIDATION_ERROR"
        assert gateway.events(CALENDAR_ID) == []

    @pytest.mark.asyncio
    async def test_conflict_creates_nothing(self, manager, gateway, make_request, seed_event):
        await seed_event("2026-03-14T10:00:00-03:00", "2026-03-14T11:00:00-03:00")

        conflict = await manager.create(make_request())
        next_hour = await manager.create(make_request(reservation_id="res-1002", time="11:00"))

        assert conflict.success is False
        assert conflict.error_code == "CONFLICT"
        assert conflict.data == {"date": "14/03/2026", "time": "10:00"}
        assert next_hour.success is True
        assert len(gateway.events(CALENDAR_ID)) == 2

    @pytest.mark.asyncio
    async def test_duplicate_ids_allowed_by_default(self, manager, make_request):
        await manager.create(make_request())
        second = await manager.create(make_request(time="15:00"))

        assert second.success is True

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected_when_enabled(self, gateway, make_request, make_settings):
        manager = ReservationLifecycleManager(
            gateway, make_settings(REJECT_DUPLICATE_RESERVATION_IDS=True)
        )
        first = await manager.create(make_request())

        second = await manager.create(make_request(time="15:00"))

        assert second.error_code == "DUPLICATE_RESERVATION"
        assert second.data["event_id"] == first.data["event_id"]

    @pytest.mark.asyncio
    async def test_upstream_failure(self, settings, make_request):
        failing = AsyncMock()
        failing.list_events.side_effect = UpstreamError(
            "Tempo esgotado ao acessar a agenda", error_code="UPSTREAM_TIMEOUT"
        )
        manager = ReservationLifecycleManager(failing, settings)

        result = await manager.create(make_request())

        assert result.success is False
        assert result.error_code == "UPSTREAM_TIMEOUT"
        failing.insert_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_internal(self, settings, make_request):
        broken = AsyncMock()
        broken.list_events.side_effect = RuntimeError("boom")
        manager = ReservationLifecycleManager(broken, settings)

        result = await manager.create(make_request())

        assert result.success is False
        assert result.error_code == "INTERNAL_ERROR"


class TestConcurrentCreate:

    @pytest.mark.asyncio
    async def test_same_slot_only_one_wins(self, manager, gateway, make_request):
        requests = [make_request(reservation_id=f"res-{i}") for i in range(5)]

        results = await asyncio.gather(*(manager.create(r) for r in requests))

        succeeded = [r for r in results if r.success]
        assert len(succeeded) == 1
        assert all(r.error_code == "CONFLICT" for r in results if not r.success)
        assert len(gateway.events(CALENDAR_ID)) == 1

    @pytest.mark.asyncio
    async def test_different_slots_all_succeed(self, manager, gateway, make_request):
        requests = [make_request(reservation_id=f"res-{h}", time=f"{h:02d}:00") for h in range(8, 13)]

        results = await asyncio.gather(*(manager.create(r) for r in requests))

        assert all(r.success for r in results)
        assert len(gateway.events(CALENDAR_ID)) == 5

    @pytest.mark.asyncio
    async def test_half_hour_overlap_only_one_wins(self, manager, gateway, make_request):
        results = await asyncio.gather(
            manager.create(make_request(reservation_id="res-1030", time="10:30")),
            manager.create(make_request(reservation_id="res-1100", time="11:00")),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert [r.error_code for r in results if not r.success] == ["CONFLICT"]
        assert len(gateway.events(CALENDAR_ID)) == 1

    @pytest.mark.asyncio
    async def test_timed_out_insert_keeps_slot_locked(self, settings, make_request):
        gateway = LateInsertGateway(settings.TIMEZONE)
        manager = ReservationLifecycleManager(gateway, settings)

        results = await asyncio.gather(
            manager.create(make_request(reservation_id="res-a")),
            manager.create(make_request(reservation_id="res-b")),
        )

        assert sorted(r.error_code for r in results) == ["CONFLICT", "UPSTREAM_TIMEOUT"]
        assert len(gateway.events(CALENDAR_ID)) == 1


# ============================================================================
# Check / cancel
# ============================================================================


class TestCheckAndCancel:

    @pytest.mark.asyncio
    async def test_check_returns_created_slot(self, manager, make_request):
        created = await manager.create(make_request())

        check = await manager.check_by_reservation("res-1001")

        assert check.success is True
        assert check.data["date"] == created.data["date"]
        assert check.data["time"] == created.data["time"]
        assert check.data["location"] == created.data["location"]
        assert check.data["event_id"] == created.data["event_id"]
        assert check.data["price"] == "150.00"

    @pytest.mark.asyncio
    async def test_cancel_then_check_not_found(self, manager, gateway, make_request):
        await manager.create(make_request())

        cancel = await manager.cancel("res-1001")
        check = await manager.check_by_reservation("res-1001")

        assert cancel.success is True
        assert cancel.data["state"] == "cancelled"
        assert check.error_code == "NOT_FOUND"
        assert gateway.events(CALENDAR_ID) == []

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, manager):
        result = await manager.cancel("res-404")
        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_cancel_requires_id(self, manager):
        result = await manager.cancel("  ")
        assert result.error_code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_cancel_frees_the_slot(self, manager, make_request):
        await manager.create(make_request())
        await manager.cancel("res-1001")

        again = await manager.create(make_request(reservation_id="res-2002"))

        assert again.success is True

    @pytest.mark.asyncio
    async def test_check_does_not_match_id_prefix(self, manager, make_request):
        await manager.create(make_request(reservation_id="res-10"))

        result = await manager.check_by_reservation("res-1")

        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_id_in_notes_does_not_capture_other_reservation(
        self, manager, gateway, make_request
    ):
        first = await manager.create(
            make_request(reservation_id="res-1", notes="remarcar Reserva: res-2")
        )
        second = await manager.create(make_request(reservation_id="res-2", time="15:00"))

        check = await manager.check_by_reservation("res-2")
        cancelled = await manager.cancel("res-2")

        assert check.data["time"] == "15:00"
        assert check.data["event_id"] == second.data["event_id"]
        assert cancelled.data["event_id"] == second.data["event_id"]
        remaining = gateway.events(CALENDAR_ID)
        assert [e["id"] for e in remaining] == [first.data["event_id"]]


# ============================================================================
# Reschedule
# ============================================================================


class TestReschedule:

    @pytest.mark.asyncio
    async def test_reschedule_to_evening_recomputes_price(self, manager, make_request):
        await manager.create(make_request())

        result = await manager.reschedule("res-1001", "14/03/2026", "19:00")
        check = await manager.check_by_reservation("res-1001")

        assert result.success is True
        assert result.data["price"] == "200.00"
        assert result.data["previous_time"] == "10:00"
        assert result.data["state"] == "rescheduled"
        assert check.data["time"] == "19:00"
        assert check.data["price"] == "200.00"

    @pytest.mark.asyncio
    async def test_reschedule_within_own_slot(self, manager, make_request):
        await manager.create(make_request())

        result = await manager.reschedule("res-1001", "14/03/2026", "10:00")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_reschedule_overlapping_own_slot(self, manager, make_request):
        await manager.create(make_request())

        result = await manager.reschedule("res-1001", "14/03/2026", "10:30")

        assert result.success is True
        assert result.data["time"] == "10:30"

    @pytest.mark.asyncio
    async def test_reschedule_into_taken_slot(self, manager, gateway, make_request):
        await manager.create(make_request())
        await manager.create(make_request(reservation_id="res-2002", time="15:00"))

        result = await manager.reschedule("res-1001", "14/03/2026", "15:00")
        check = await manager.check_by_reservation("res-1001")

        assert result.error_code == "CONFLICT"
        assert check.data["time"] == "10:00"

    @pytest.mark.asyncio
    async def test_other_description_lines_kept(self, manager, gateway, make_request):
        await manager.create(make_request(notes="Trazer exames"))
        before = gateway.events(CALENDAR_ID)[0]["description"].splitlines()

        await manager.reschedule("res-1001", "15/03/2026", "20:00")

        after = gateway.events(CALENDAR_ID)[0]["description"].splitlines()
        assert len(before) == len(after)
        changed = [(b, a) for b, a in zip(before, after) if b != a]
        assert changed == [("Valor: R$ 150,00", "Valor: R$ 200,00")]

    @pytest.mark.asyncio
    async def test_channel_change_updates_location(self, manager, gateway, make_request, settings):
        await manager.create(make_request(channel="presencial"))

        result = await manager.reschedule("res-1001", "14/03/2026", "11:00", "online")

        event = gateway.events(CALENDAR_ID)[0]
        assert result.data["location"] == settings.ONLINE_LOCATION
        assert event["location"] == settings.ONLINE_LOCATION
        assert desc.parse_description(event["description"])[desc.CHANNEL] == "online"

    @pytest.mark.asyncio
    async def test_reschedule_unknown_reservation(self, manager):
        result = await manager.reschedule("res-404", "14/03/2026", "10:00")
        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_reschedule_invalid_time(self, manager, make_request):
        await manager.create(make_request())

        result = await manager.reschedule("res-1001", "14/03/2026", "10h")

        assert result.error_code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_reschedule_missing_fields(self, manager):
        result = await manager.reschedule("res-1001", None, "")

        assert result.error_code == "VALIDATION_ERROR"
        assert result.data["missing_fields"] == ["date", "time"]


# ============================================================================
# Availability
# ============================================================================


class TestAvailability:

    @pytest.mark.asyncio
    async def test_empty_day_has_fifteen_slots(self, manager):
        result = await manager.availability("14/03/2026")

        assert result.success is True
        assert result.data["available"] == [f"{h:02d}:00" for h in range(8, 23)]
        assert result.data["occupied"] == []

    @pytest.mark.asyncio
    async def test_booked_hour_excluded(self, manager, make_request):
        await manager.create(make_request(time="09:00"))

        result = await manager.availability("14/03/2026")

        assert "09:00" not in result.data["available"]
        assert len(result.data["available"]) == 14
        assert result.data["occupied"] == ["09:00"]

    @pytest.mark.asyncio
    async def test_partial_overlap_blocks_both_hours(self, manager, seed_event):
        await seed_event("2026-03-14T13:30:00-03:00", "2026-03-14T14:30:00-03:00")

        result = await manager.availability("14/03/2026")

        assert result.data["occupied"] == ["13:00", "14:00"]

    @pytest.mark.asyncio
    async def test_all_day_event_blocks_day(self, manager, seed_event):
        await seed_event("2026-03-14", "2026-03-15", all_day=True)

        result = await manager.availability("14/03/2026")

        assert result.data["available"] == []

    @pytest.mark.asyncio
    async def test_cancelled_events_ignored(self, manager, seed_event):
        await seed_event(
            "2026-03-14T10:00:00-03:00", "2026-03-14T11:00:00-03:00", status="cancelled"
        )

        result = await manager.availability("14/03/2026")

        assert "10:00" in result.data["available"]

    @pytest.mark.asyncio
    async def test_availability_is_idempotent(self, manager, make_request):
        await manager.create(make_request(time="16:00"))

        first = await manager.availability("14/03/2026")
        second = await manager.availability("14/03/2026")

        assert first.data == second.data

    @pytest.mark.asyncio
    async def test_other_days_do_not_interfere(self, manager, make_request):
        await manager.create(make_request(date="13/03/2026", time="22:00"))
        await manager.create(make_request(reservation_id="res-2", date="15/03/2026", time="08:00"))

        result = await manager.availability("14/03/2026")

        assert len(result.data["available"]) == 15

    @pytest.mark.asyncio
    async def test_configured_hours(self, gateway, make_settings):
        manager = ReservationLifecycleManager(
            gateway, make_settings(AVAILABILITY_FIRST_HOUR=9, AVAILABILITY_LAST_HOUR=12)
        )

        result = await manager.availability("14/03/2026")

        assert result.data["available"] == ["09:00", "10:00", "11:00", "12:00"]

    @pytest.mark.asyncio
    async def test_invalid_date(self, manager):
        result = await manager.availability("2026-03-14")
        assert result.error_code == "VALIDATION_ERROR"


# ============================================================================
# Event-id operations
# ============================================================================


class TestUpdateEvent:

    @pytest.mark.asyncio
    async def test_update_name_and_email(self, manager, gateway, make_request):
        created = await manager.create(make_request())
        event_id = created.data["event_id"]

        result = await manager.update_event(
            event_id, EventUpdate(name="Maria S. Lima", email="lima@example.com")
        )

        event = gateway.events(CALENDAR_ID)[0]
        fields = desc.parse_description(event["description"])
        assert result.success is True
        assert event["summary"] == "Consulta Clínica SaúdeSim - Maria S. Lima"
        assert event["attendees"] == [{"email": "lima@example.com"}]
        assert fields[desc.PATIENT] == "Maria S. Lima"
        assert fields[desc.EMAIL] == "lima@example.com"
        assert fields[desc.RESERVATION] == "res-1001"

    @pytest.mark.asyncio
    async def test_move_event_recomputes_price(self, manager, make_request):
        created = await manager.create(make_request())

        result = await manager.update_event(
            created.data["event_id"], EventUpdate(date="14/03/2026", time="18:00")
        )

        assert result.success is True
        assert result.data["time"] == "18:00"
        assert result.data["price"] == "200.00"

    @pytest.mark.asyncio
    async def test_move_into_taken_slot(self, manager, make_request):
        created = await manager.create(make_request())
        await manager.create(make_request(reservation_id="res-2", time="12:00"))

        result = await manager.update_event(
            created.data["event_id"], EventUpdate(date="14/03/2026", time="12:00")
        )

        assert result.error_code == "CONFLICT"

    @pytest.mark.asyncio
    async def test_date_without_time(self, manager, make_request):
        created = await manager.create(make_request())

        result = await manager.update_event(created.data["event_id"], EventUpdate(date="15/03/2026"))

        assert result.error_code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_update_location(self, manager, gateway, make_request):
        created = await manager.create(make_request())

        await manager.update_event(created.data["event_id"], EventUpdate(location="Sala 2"))

        assert gateway.events(CALENDAR_ID)[0]["location"] == "Sala 2"

    @pytest.mark.asyncio
    async def test_unknown_event(self, manager):
        result = await manager.update_event("nope", EventUpdate(name="X"))
        assert result.error_code == "NOT_FOUND"


class TestDeleteEvent:

    @pytest.mark.asyncio
    async def test_delete(self, manager, gateway, make_request):
        created = await manager.create(make_request())

        result = await manager.delete_event(created.data["event_id"])

        assert result.success is True
        assert gateway.events(CALENDAR_ID) == []

    @pytest.mark.asyncio
    async def test_delete_unknown(self, manager):
        result = await manager.delete_event("nope")
        assert result.error_code == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_delete_requires_id(self, manager):
        result = await manager.delete_event(None)
        assert result.error_code == "VALIDATION_ERROR"

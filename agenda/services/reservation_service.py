"""
Reservation lifecycle: create, reschedule, cancel, check, availability.

ReservationLifecycleManager is the single entry point used by the webhook
routes. It composes:
- DateTimeNormalizer (date/time strings -> TimeSlot)
- SlotConflictChecker (double-booking detection)
- ReservationDirectory (reservation id -> calendar event)
- PricingPolicy (price by start hour)
- SlotLockManager (check-then-act atomicity per slot)
- CalendarGateway (the only I/O)

Every public method returns an OperationResult. Typed errors raised by the
components (ValidationError, ConflictError, NotFoundError, UpstreamError)
are converted at this boundary; the HTTP layer maps error codes to status
codes.

State machine (the calendar event is the only persisted state):
    REQUESTED --create--> SCHEDULED --reschedule--> RESCHEDULED
    SCHEDULED/RESCHEDULED --cancel--> CANCELLED (event deleted)
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable

from agenda.errors import AgendaError, ConflictError, ValidationError
from agenda.gateways.calendar_gateway import CalendarGateway
from agenda.models import (
    Channel,
    EventUpdate,
    OperationResult,
    ReservationRequest,
    ReservationState,
    TimeSlot,
)
from agenda.services.pricing_service import PricingPolicy, format_price
from agenda.services.reservation_directory import ReservationDirectory
from agenda.services.slot_lock import InMemorySlotLockManager, SlotLockManager, acquire_all
from agenda.utils import event_description as desc
from agenda.utils.date_parser import DateTimeNormalizer, overlaps
from agenda.validators.slot_validator import SlotConflictChecker, is_live
from shared.config import Settings

logger = logging.getLogger(__name__)

# Errors the caller can fix; logged at WARNING. Everything else is ERROR.
CLIENT_ERROR_CODES = {"VALIDATION_ERROR", "CONFLICT", "SLOT_BUSY", "DUPLICATE_RESERVATION", "NOT_FOUND"}

# Upper bound on events.list pages read for one day of availability
AVAILABILITY_MAX_PAGES = 10


def _clean(value: str | None) -> str:
    return (value or "").strip()


class ReservationLifecycleManager:
    """
    Orchestrates reservation operations against one calendar.

    Usage:
        manager = ReservationLifecycleManager(gateway, settings)
        result = await manager.create(ReservationRequest(...))
        if not result.success:
            print(result.error_code, result.error_message)
    """

    def __init__(
        self,
        gateway: CalendarGateway,
        settings: Settings,
        *,
        slot_locks: SlotLockManager | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.settings = settings
        self.gateway = gateway
        self.calendar_id = settings.GOOGLE_CALENDAR_ID
        self.normalizer = DateTimeNormalizer(settings.TIMEZONE)
        self.pricing = PricingPolicy(settings)
        self.conflicts = SlotConflictChecker(gateway, self.calendar_id)
        self.directory = ReservationDirectory(gateway, settings, self.normalizer, clock=clock)
        self.slot_locks = slot_locks or InMemorySlotLockManager(settings.SLOT_LOCK_WAIT_SECONDS)

    # ------------------------------------------------------------------
    # Boundary
    # ------------------------------------------------------------------

    async def _run(
        self,
        operation: str,
        trace_id: str,
        action: Callable[[], Awaitable[OperationResult]],
    ) -> OperationResult:
        """Run one operation, converting typed errors into a failed OperationResult."""
        logger.info(f"[{trace_id}] Starting {operation}")
        try:
            result = await action()
            logger.info(f"[{trace_id}] {operation} succeeded")
            return result

        except AgendaError as e:
            level = logging.WARNING if e.error_code in CLIENT_ERROR_CODES else logging.ERROR
            logger.log(
                level,
                f"[{trace_id}] {operation} failed: {e.error_code} - {e.message}",
                extra={"error_code": e.error_code},
            )
            return OperationResult.fail(e.error_code, e.message, **e.details)

        except Exception as e:
            logger.error(f"[{trace_id}] Unexpected error in {operation}: {e}", exc_info=True)
            return OperationResult.fail("INTERNAL_ERROR", "Erro interno ao processar a solicitação")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _location_for(self, channel: Channel) -> str:
        if channel == Channel.ONLINE:
            return self.settings.ONLINE_LOCATION
        return self.settings.CLINIC_ADDRESS

    def _summary_for(self, name: str) -> str:
        return f"{self.settings.EVENT_TITLE_PREFIX} - {name}"

    @staticmethod
    def _parse_channel(value: str | None) -> Channel:
        channel = Channel.parse(value)
        if channel is None:
            raise ValidationError(
                f"Tipo de atendimento inválido '{value}'. Use 'online' ou 'presencial'",
                details={"field": "channel", "value": value},
            )
        return channel

    @staticmethod
    def _check_email(email: str) -> None:
        if email and "@" not in email:
            raise ValidationError(
                f"E-mail inválido '{email}'",
                details={"field": "email", "value": email},
            )

    async def _ensure_free(self, slot: TimeSlot, exclude_event_id: str | None = None) -> None:
        if await self.conflicts.is_occupied(slot, exclude_event_id=exclude_event_id):
            raise ConflictError(
                f"O horário {slot.time_str} de {slot.date_str} já está ocupado",
                details={"date": slot.date_str, "time": slot.time_str},
            )

    def _build_event(
        self,
        request: ReservationRequest,
        reservation_id: str,
        channel: Channel,
        slot: TimeSlot,
        price: Decimal,
        location: str,
    ) -> dict[str, Any]:
        name = _clean(request.name)
        email = _clean(request.email)

        event: dict[str, Any] = {
            "summary": self._summary_for(name),
            "location": location,
            "description": desc.build_description([
                (desc.PATIENT, name),
                (desc.PHONE, _clean(request.phone)),
                (desc.EMAIL, email),
                (desc.CHANNEL, channel.value),
                (desc.PAYMENT, _clean(request.payment_method)),
                (desc.ACCESSIBILITY, desc.format_flag(request.accessibility)),
                (desc.PRICE, format_price(price)),
                (desc.NOTES, _clean(request.notes)),
                (desc.RESERVATION, reservation_id),
            ]),
            **slot.to_event_times(),
            "extendedProperties": {"private": {"reservationId": reservation_id}},
        }
        if email and self.settings.SEND_ATTENDEE_INVITES:
            event["attendees"] = [{"email": email}]
        return event

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create(self, request: ReservationRequest) -> OperationResult:
        """
        Book a new appointment.

        Steps: validate required fields -> normalize slot -> (under slot lock)
        conflict check -> price -> location -> insert event.

        Success data: reservation_id, event_id, date, time, price, location,
        meeting_link (online appointments only), state.

        Failure codes: VALIDATION_ERROR, CONFLICT, SLOT_BUSY,
        DUPLICATE_RESERVATION, UPSTREAM_ERROR, UPSTREAM_TIMEOUT.
        """
        trace_id = f"create:{_clean(request.reservation_id) or '?'}"
        return await self._run("create", trace_id, lambda: self._create(request))

    async def _create(self, request: ReservationRequest) -> OperationResult:
        reservation_id = _clean(request.reservation_id)

        required = {
            "name": request.name,
            "date": request.date,
            "time": request.time,
            "channel": request.channel,
            "reservation_id": request.reservation_id,
        }
        missing = [field for field, value in required.items() if not _clean(value)]
        if not _clean(request.email) and not _clean(request.phone):
            missing.append("email/phone")
        if missing:
            raise ValidationError(
                f"Campos obrigatórios ausentes: {', '.join(missing)}",
                details={"missing_fields": missing},
            )

        self._check_email(_clean(request.email))
        channel = self._parse_channel(request.channel)
        slot = self.normalizer.to_interval(request.date, request.time)

        async with acquire_all(self.slot_locks, slot.lock_keys):
            if self.settings.REJECT_DUPLICATE_RESERVATION_IDS:
                existing = await self.directory.find_all(reservation_id)
                if existing:
                    raise ConflictError(
                        f"A reserva {reservation_id} já existe",
                        error_code="DUPLICATE_RESERVATION",
                        details={"reservation_id": reservation_id, "event_id": existing[0].get("id")},
                    )

            await self._ensure_free(slot)

            price = self.pricing.price_for(slot)
            location = self._location_for(channel)
            event = self._build_event(request, reservation_id, channel, slot, price, location)

            created = await self.gateway.insert_event(
                self.calendar_id,
                event,
                with_meet_link=channel == Channel.ONLINE and self.settings.CREATE_MEET_LINKS,
            )

        logger.info(
            f"Reservation created | reservation_id={reservation_id} | "
            f"event_id={created.get('id')} | slot={slot.key}",
            extra={"reservation_id": reservation_id, "event_id": created.get("id"), "slot": slot.key},
        )

        return OperationResult.ok(
            reservation_id=reservation_id,
            event_id=created.get("id"),
            date=slot.date_str,
            time=slot.time_str,
            price=str(price),
            location=location,
            meeting_link=created.get("hangoutLink"),
            state=ReservationState.SCHEDULED.value,
        )

    # ------------------------------------------------------------------
    # Reschedule
    # ------------------------------------------------------------------

    async def reschedule(
        self,
        reservation_id: str | None,
        new_date: str | None,
        new_time: str | None,
        new_channel: str | None = None,
    ) -> OperationResult:
        """
        Move a reservation to a new slot, recomputing its price.

        The reservation's own event is excluded from the conflict check, so
        moving within (or back into) its current hour never conflicts with
        itself. Every description line except Valor (and Atendimento, when
        the channel changes) is preserved verbatim.

        Success data: reservation_id, event_id, date, time, price, location,
        previous_date, previous_time, state.
        """
        trace_id = f"reschedule:{_clean(reservation_id) or '?'}"
        return await self._run(
            "reschedule",
            trace_id,
            lambda: self._reschedule(reservation_id, new_date, new_time, new_channel),
        )

    async def _reschedule(
        self,
        reservation_id: str | None,
        new_date: str | None,
        new_time: str | None,
        new_channel: str | None,
    ) -> OperationResult:
        reservation_id = _clean(reservation_id)
        missing = [
            field for field, value in (
                ("reservation_id", reservation_id), ("date", new_date), ("time", new_time)
            )
            if not _clean(value)
        ]
        if missing:
            raise ValidationError(
                f"Campos obrigatórios ausentes: {', '.join(missing)}",
                details={"missing_fields": missing},
            )

        slot = self.normalizer.to_interval(new_date, new_time)
        channel = self._parse_channel(new_channel) if _clean(new_channel) else None

        event = await self.directory.find_by_reservation_id(reservation_id)
        current = self.directory.parse_reservation(event)
        event_id = event["id"]

        async with acquire_all(self.slot_locks, slot.lock_keys):
            await self._ensure_free(slot, exclude_event_id=event_id)

            price = self.pricing.price_for(slot)
            description = desc.replace_field(event.get("description"), desc.PRICE, format_price(price))
            location = event.get("location", "")

            if channel is not None and channel != current.channel:
                description = desc.replace_field(description, desc.CHANNEL, channel.value)
                location = self._location_for(channel)

            updated_event = {
                **event,
                "description": description,
                "location": location,
                **slot.to_event_times(),
            }
            await self.gateway.update_event(self.calendar_id, event_id, updated_event)

        logger.info(
            f"Reservation rescheduled | reservation_id={reservation_id} | event_id={event_id} | "
            f"from={current.slot.key if current.slot else None} | to={slot.key}",
            extra={"reservation_id": reservation_id, "event_id": event_id, "slot": slot.key},
        )

        return OperationResult.ok(
            reservation_id=reservation_id,
            event_id=event_id,
            date=slot.date_str,
            time=slot.time_str,
            price=str(price),
            location=location,
            previous_date=current.slot.date_str if current.slot else None,
            previous_time=current.slot.time_str if current.slot else None,
            state=ReservationState.RESCHEDULED.value,
        )

    # ------------------------------------------------------------------
    # Cancel / check
    # ------------------------------------------------------------------

    async def cancel(self, reservation_id: str | None) -> OperationResult:
        """
        Delete the event holding a reservation. Deletion is attempted once.

        Failure codes: VALIDATION_ERROR, NOT_FOUND, UPSTREAM_ERROR, UPSTREAM_TIMEOUT.
        """
        trace_id = f"cancel:{_clean(reservation_id) or '?'}"
        return await self._run("cancel", trace_id, lambda: self._cancel(reservation_id))

    async def _cancel(self, reservation_id: str | None) -> OperationResult:
        reservation_id = self._require_reservation_id(reservation_id)
        event = await self.directory.find_by_reservation_id(reservation_id)

        await self.gateway.delete_event(self.calendar_id, event["id"])

        logger.info(
            f"Reservation cancelled | reservation_id={reservation_id} | event_id={event['id']}",
            extra={"reservation_id": reservation_id, "event_id": event["id"]},
        )
        return OperationResult.ok(
            reservation_id=reservation_id,
            event_id=event["id"],
            state=ReservationState.CANCELLED.value,
        )

    async def check_by_reservation(self, reservation_id: str | None) -> OperationResult:
        """Current date, time and location of a reservation. Read-only."""
        trace_id = f"check:{_clean(reservation_id) or '?'}"
        return await self._run("check_by_reservation", trace_id, lambda: self._check(reservation_id))

    async def _check(self, reservation_id: str | None) -> OperationResult:
        reservation_id = self._require_reservation_id(reservation_id)
        event = await self.directory.find_by_reservation_id(reservation_id)
        reservation = self.directory.parse_reservation(event)
        reservation.reservation_id = reservation_id
        return OperationResult.ok(**reservation.to_response())

    @staticmethod
    def _require_reservation_id(reservation_id: str | None) -> str:
        reservation_id = _clean(reservation_id)
        if not reservation_id:
            raise ValidationError(
                "Campos obrigatórios ausentes: reservation_id",
                details={"missing_fields": ["reservation_id"]},
            )
        return reservation_id

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    async def availability(self, date: str | None) -> OperationResult:
        """
        Free hourly slots of a day.

        Every hour from AVAILABILITY_FIRST_HOUR to AVAILABILITY_LAST_HOUR
        (inclusive) whose one-hour window does not overlap a live event.
        Read-only: calling it twice without writes returns the same list.

        Success data: date, available (["08:00", ...]), occupied.
        """
        return await self._run("availability", f"availability:{date}", lambda: self._availability(date))

    async def _availability(self, date: str | None) -> OperationResult:
        day = self.normalizer.parse_date(date)
        time_min, time_max = self.normalizer.day_window(date)

        events: list[dict[str, Any]] = []
        page_token = None
        for _ in range(AVAILABILITY_MAX_PAGES):
            page = await self.gateway.list_events(
                self.calendar_id, time_min, time_max, page_token=page_token
            )
            events.extend(page.items)
            page_token = page.next_page_token
            if not page_token:
                break

        busy = []
        for event in events:
            if not is_live(event):
                continue
            bounds = self.normalizer.event_bounds(event)
            if bounds is not None:
                busy.append(bounds)

        available: list[str] = []
        occupied: list[str] = []
        for hour in range(self.settings.AVAILABILITY_FIRST_HOUR, self.settings.AVAILABILITY_LAST_HOUR + 1):
            slot = self.normalizer.slot_at(day, hour)
            if any(overlaps(slot.start, slot.end, start, end) for start, end in busy):
                occupied.append(slot.time_str)
            else:
                available.append(slot.time_str)

        logger.info(
            f"Availability computed | date={date} | events={len(events)} | "
            f"available={len(available)} | occupied={len(occupied)}"
        )
        return OperationResult.ok(
            date=day.strftime("%d/%m/%Y"),
            available=available,
            occupied=occupied,
        )

    # ------------------------------------------------------------------
    # Event-id operations
    # ------------------------------------------------------------------

    async def update_event(self, event_id: str | None, changes: EventUpdate) -> OperationResult:
        """
        Partially update an event addressed by its calendar event id.

        A new date and time must be given together; moving the event takes
        the slot lock, checks conflicts (excluding the event itself) and
        recomputes the price.
        """
        trace_id = f"update-event:{_clean(event_id) or '?'}"
        return await self._run("update_event", trace_id, lambda: self._update_event(event_id, changes))

    async def _update_event(self, event_id: str | None, changes: EventUpdate) -> OperationResult:
        event_id = _clean(event_id)
        if not event_id:
            raise ValidationError(
                "event_id obrigatório", details={"missing_fields": ["event_id"]}
            )
        if bool(_clean(changes.date)) != bool(_clean(changes.time)):
            raise ValidationError(
                "Data e hora devem ser informadas juntas",
                details={"fields": ["date", "time"]},
            )

        slot = (
            self.normalizer.to_interval(changes.date, changes.time)
            if _clean(changes.date) else None
        )
        channel = self._parse_channel(changes.channel) if _clean(changes.channel) else None
        self._check_email(_clean(changes.email))

        event = await self.gateway.get_event(self.calendar_id, event_id)
        description = event.get("description", "")

        if _clean(changes.name):
            event["summary"] = self._summary_for(_clean(changes.name))
            description = desc.replace_field(description, desc.PATIENT, _clean(changes.name))
        if _clean(changes.email):
            event["attendees"] = [{"email": _clean(changes.email)}]
            description = desc.replace_field(description, desc.EMAIL, _clean(changes.email))
        if _clean(changes.phone):
            description = desc.replace_field(description, desc.PHONE, _clean(changes.phone))
        if _clean(changes.payment_method):
            description = desc.replace_field(description, desc.PAYMENT, _clean(changes.payment_method))
        if changes.accessibility is not None:
            description = desc.replace_field(
                description, desc.ACCESSIBILITY, desc.format_flag(changes.accessibility)
            )
        if _clean(changes.notes):
            description = desc.replace_field(description, desc.NOTES, _clean(changes.notes))
        if channel is not None:
            description = desc.replace_field(description, desc.CHANNEL, channel.value)
            event["location"] = self._location_for(channel)
        if _clean(changes.location):
            event["location"] = _clean(changes.location)

        event["description"] = description

        if slot is None:
            updated = await self.gateway.update_event(self.calendar_id, event_id, event)
        else:
            async with acquire_all(self.slot_locks, slot.lock_keys):
                await self._ensure_free(slot, exclude_event_id=event_id)
                price = self.pricing.price_for(slot)
                event["description"] = desc.replace_field(
                    event["description"], desc.PRICE, format_price(price)
                )
                event.update(slot.to_event_times())
                updated = await self.gateway.update_event(self.calendar_id, event_id, event)

        reservation = self.directory.parse_reservation(updated)
        return OperationResult.ok(**reservation.to_response())

    async def delete_event(self, event_id: str | None) -> OperationResult:
        """Delete an event addressed by its calendar event id."""
        trace_id = f"delete-event:{_clean(event_id) or '?'}"
        return await self._run("delete_event", trace_id, lambda: self._delete_event(event_id))

    async def _delete_event(self, event_id: str | None) -> OperationResult:
        event_id = _clean(event_id)
        if not event_id:
            raise ValidationError(
                "event_id obrigatório", details={"missing_fields": ["event_id"]}
            )
        await self.gateway.delete_event(self.calendar_id, event_id)
        return OperationResult.ok(event_id=event_id, state=ReservationState.CANCELLED.value)

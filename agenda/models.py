"""
Domain models for the reservation core.

- TimeSlot: one-hour interval in the clinic timezone
- Channel: online / in-person attendance
- ReservationRequest: fields collected by the bot for a new booking
- Reservation: appointment projected from a calendar event
- EventPage: one page of calendar events returned by a gateway
- OperationResult: outcome of every lifecycle operation
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

SLOT_DURATION = timedelta(hours=1)


@dataclass(frozen=True)
class TimeSlot:
    """Timezone-aware one-hour interval. `end - start` is always exactly one hour."""

    start: datetime
    end: datetime
    timezone: str

    @property
    def duration(self) -> timedelta:
        """Elapsed time, computed in UTC (same-tzinfo subtraction would use wall time)."""
        return self.end.astimezone(UTC) - self.start.astimezone(UTC)

    @property
    def key(self) -> str:
        """Date + start hour, e.g. "2026-03-14T10"."""
        return self.start.strftime("%Y-%m-%dT%H")

    @property
    def lock_keys(self) -> list[str]:
        """
        Key of every clock hour the interval touches, in order.

        10:00-11:00 -> [T10]; 10:30-11:30 -> [T10, T11]. Two overlapping
        slots always share at least one key.
        """
        keys = []
        cursor = self.start.replace(minute=0, second=0, microsecond=0).astimezone(UTC)
        end = self.end.astimezone(UTC)
        while cursor < end:
            keys.append(cursor.astimezone(self.start.tzinfo).strftime("%Y-%m-%dT%H"))
            cursor += timedelta(hours=1)
        return keys

    @property
    def date_str(self) -> str:
        return self.start.strftime("%d/%m/%Y")

    @property
    def time_str(self) -> str:
        return self.start.strftime("%H:%M")

    def to_event_times(self) -> dict[str, dict[str, str]]:
        """Google Calendar start/end payload with explicit UTC offsets."""
        return {
            "start": {"dateTime": self.start.isoformat(), "timeZone": self.timezone},
            "end": {"dateTime": self.end.isoformat(), "timeZone": self.timezone},
        }


class Channel(str, Enum):
    """How the patient attends the appointment."""

    ONLINE = "online"
    IN_PERSON = "in-person"

    @classmethod
    def parse(cls, value: str | None) -> "Channel | None":
        """Map bot input (Portuguese or English) to a Channel, None if unknown."""
        if not value:
            return None
        return CHANNEL_ALIASES.get(value.strip().lower())


CHANNEL_ALIASES = {
    "online": Channel.ONLINE,
    "on-line": Channel.ONLINE,
    "virtual": Channel.ONLINE,
    "teleconsulta": Channel.ONLINE,
    "in-person": Channel.IN_PERSON,
    "in_person": Channel.IN_PERSON,
    "presencial": Channel.IN_PERSON,
}


@dataclass
class ReservationRequest:
    """Raw create-request fields; validated by ReservationLifecycleManager.create()."""

    reservation_id: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    channel: str | None = None
    date: str | None = None
    time: str | None = None
    payment_method: str | None = None
    accessibility: bool = False
    notes: str | None = None


@dataclass
class Reservation:
    """Appointment as stored in (and recovered from) a calendar event."""

    reservation_id: str
    event_id: str
    slot: TimeSlot | None
    name: str = ""
    phone: str = ""
    email: str = ""
    channel: Channel | None = None
    payment_method: str = ""
    accessibility: bool = False
    price: Decimal | None = None
    location: str = ""
    notes: str = ""
    meeting_link: str | None = None

    def to_response(self) -> dict[str, Any]:
        """Caller-facing projection used by check-by-reservation."""
        return {
            "reservation_id": self.reservation_id,
            "event_id": self.event_id,
            "date": self.slot.date_str if self.slot else None,
            "time": self.slot.time_str if self.slot else None,
            "location": self.location,
            "channel": self.channel.value if self.channel else None,
            "price": str(self.price) if self.price is not None else None,
            "meeting_link": self.meeting_link,
        }


@dataclass
class EventPage:
    """One page of events from a Calendar Gateway."""

    items: list[dict[str, Any]] = field(default_factory=list)
    next_page_token: str | None = None


class OperationResult(BaseModel):
    """Result of a lifecycle operation (success or a typed failure)."""

    success: bool
    error_code: str | None = None
    error_message: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, **data: Any) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error_code: str, error_message: str, **details: Any) -> "OperationResult":
        return cls(
            success=False,
            error_code=error_code,
            error_message=error_message,
            data=details,
        )


class ReservationState(str, Enum):
    """
    Reservation lifecycle.

    REQUESTED -> SCHEDULED -> {RESCHEDULED, CANCELLED}
    RESCHEDULED -> {RESCHEDULED, CANCELLED}
    """

    REQUESTED = "requested"
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"


@dataclass
class EventUpdate:
    """Partial changes for an event addressed by its calendar event id."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    channel: str | None = None
    date: str | None = None
    time: str | None = None
    payment_method: str | None = None
    accessibility: bool | None = None
    location: str | None = None
    notes: str | None = None

"""
Date/time normalization for bot-entered appointment times.

Converts the strings collected by the bot ("14/03/2026", "9", "10:30") into
timezone-aware one-hour TimeSlots in the clinic timezone, and builds the
civil-day windows used by availability queries.

Rules:
- Dates are DD/MM/YYYY (day and month may have one digit, year has four)
  and must exist in the calendar: the components are rebuilt into a date
  and compared back, so 31/02/2025 and 00/01/2025 are rejected.
- Times are a bare hour ("9", "09") or HH:MM ("09:30"). A bare hour means
  HH:00.
- All arithmetic is done on aware datetimes; the hour is added in UTC, so
  a slot is exactly one hour long even across a DST transition.
- The host timezone is never consulted.
"""

import re
from datetime import UTC, date, datetime, time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from agenda.errors import ValidationError
from agenda.models import SLOT_DURATION, TimeSlot

DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
TIME_PATTERN = re.compile(r"^(?:(\d{1,2})|(\d{2}):(\d{2}))$")


def parse_iso_datetime(value: str) -> datetime:
    """Parse an RFC3339 string from the Calendar API ('Z' suffix accepted)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class DateTimeNormalizer:
    """
    Parse DD/MM/YYYY + HH:MM strings into TimeSlots in one fixed timezone.

    Usage:
        normalizer = DateTimeNormalizer("America/Sao_Paulo")
        slot = normalizer.to_interval("14/03/2026", "10:00")
        slot.start.isoformat()  # '2026-03-14T10:00:00-03:00'
    """

    def __init__(self, timezone: str):
        try:
            self.tz = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {timezone}") from e
        self.timezone = timezone

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def parse_date(self, date_str: str | None) -> date:
        """
        Parse a DD/MM/YYYY string into a calendar date.

        Raises:
            ValidationError: if the pattern does not match or the date does not exist
        """
        match = DATE_PATTERN.match((date_str or "").strip())
        if not match:
            raise ValidationError(
                f"Data inválida '{date_str}'. Use o formato DD/MM/AAAA",
                details={"field": "date", "value": date_str},
            )

        day, month, year = (int(part) for part in match.groups())
        try:
            parsed = date(year, month, day)
        except ValueError:
            parsed = None

        if parsed is None or (parsed.day, parsed.month, parsed.year) != (day, month, year):
            raise ValidationError(
                f"Data inexistente '{date_str}'",
                details={"field": "date", "value": date_str},
            )
        return parsed

    def parse_time(self, time_str: str | None) -> time:
        """
        Parse a bare hour ("9") or HH:MM ("09:30") string.

        Raises:
            ValidationError: for any other shape or out-of-range values
        """
        match = TIME_PATTERN.match((time_str or "").strip())
        if not match:
            raise ValidationError(
                f"Horário inválido '{time_str}'. Use HH:MM ou apenas a hora",
                details={"field": "time", "value": time_str},
            )

        bare_hour, hour, minute = match.groups()
        hour_value = int(bare_hour if bare_hour is not None else hour)
        minute_value = int(minute) if minute is not None else 0

        if hour_value > 23 or minute_value > 59:
            raise ValidationError(
                f"Horário inválido '{time_str}'",
                details={"field": "time", "value": time_str},
            )
        return time(hour_value, minute_value)

    # ------------------------------------------------------------------
    # Intervals
    # ------------------------------------------------------------------

    def to_interval(self, date_str: str | None, time_str: str | None) -> TimeSlot:
        """
        Build the one-hour TimeSlot starting at the given civil date and time.

        Raises:
            ValidationError: invalid date, invalid time, or a local time that
                does not exist in the timezone (DST gap)
        """
        day = self.parse_date(date_str)
        clock = self.parse_time(time_str)

        start = datetime.combine(day, clock, tzinfo=self.tz)

        # A wall time inside a DST gap does not survive the UTC round trip
        round_trip = start.astimezone(UTC).astimezone(self.tz)
        if (round_trip.date(), round_trip.hour, round_trip.minute) != (day, clock.hour, clock.minute):
            raise ValidationError(
                f"Horário {clock.strftime('%H:%M')} não existe em {date_str} "
                f"no fuso {self.timezone}",
                details={"field": "time", "value": time_str},
            )

        return self.slot_starting_at(start)

    def slot_starting_at(self, start: datetime) -> TimeSlot:
        """TimeSlot for an aware start instant, expressed in the clinic timezone."""
        if start.tzinfo is None:
            raise ValueError("slot start must be timezone-aware")
        local_start = start.astimezone(self.tz)
        end = (local_start.astimezone(UTC) + SLOT_DURATION).astimezone(self.tz)
        return TimeSlot(start=local_start, end=end, timezone=self.timezone)

    def slot_at(self, day: date, hour: int) -> TimeSlot:
        """Slot starting at `hour`:00 on `day`."""
        return self.slot_starting_at(datetime.combine(day, time(hour, 0), tzinfo=self.tz))

    def start_of_day(self, date_str: str | None) -> datetime:
        """00:00:00 of the civil day in the clinic timezone."""
        return datetime.combine(self.parse_date(date_str), time(0, 0, 0), tzinfo=self.tz)

    def end_of_day(self, date_str: str | None) -> datetime:
        """23:59:59 of the civil day in the clinic timezone."""
        return datetime.combine(self.parse_date(date_str), time(23, 59, 59), tzinfo=self.tz)

    def day_window(self, date_str: str | None) -> tuple[datetime, datetime]:
        return self.start_of_day(date_str), self.end_of_day(date_str)

    # ------------------------------------------------------------------
    # Calendar events
    # ------------------------------------------------------------------

    def event_bounds(self, event: dict[str, Any]) -> tuple[datetime, datetime] | None:
        """
        Aware (start, end) of a calendar event.

        Timed events use start.dateTime/end.dateTime; all-day events use
        start.date/end.date (end exclusive) at midnight in the clinic
        timezone. Returns None when the event carries neither.
        """
        start = event.get("start", {})
        end = event.get("end", {})

        if start.get("dateTime") and end.get("dateTime"):
            return (
                parse_iso_datetime(start["dateTime"]).astimezone(self.tz),
                parse_iso_datetime(end["dateTime"]).astimezone(self.tz),
            )

        if start.get("date") and end.get("date"):
            return (
                datetime.combine(date.fromisoformat(start["date"]), time(0, 0), tzinfo=self.tz),
                datetime.combine(date.fromisoformat(end["date"]), time(0, 0), tzinfo=self.tz),
            )

        return None

    def slot_from_event(self, event: dict[str, Any]) -> TimeSlot | None:
        """TimeSlot of a timed event (None for all-day or malformed events)."""
        start_value = event.get("start", {}).get("dateTime")
        if not start_value:
            return None
        try:
            return self.slot_starting_at(parse_iso_datetime(start_value))
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format_date(self, value: datetime) -> str:
        """DD/MM/YYYY in the clinic timezone."""
        return value.astimezone(self.tz).strftime("%d/%m/%Y")

    def format_time(self, value: datetime) -> str:
        """HH:MM in the clinic timezone."""
        return value.astimezone(self.tz).strftime("%H:%M")


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Half-open interval overlap, compared in UTC so DST folds order correctly."""
    return (
        start_a.astimezone(UTC) < end_b.astimezone(UTC)
        and start_b.astimezone(UTC) < end_a.astimezone(UTC)
    )

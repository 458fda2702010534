"""
Pydantic models for the bot's reservation webhook payloads.

The bot sends the Portuguese field names (nome, fone, tipo_atd, data, hora,
pagto, libras, res_id, obs); the English names are accepted too. Field
content is validated by the reservation core, not here: every field is
optional so a missing value is reported as VALIDATION_ERROR with the
core's message instead of a generic 422.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agenda.models import EventUpdate, ReservationRequest

TRUTHY = {"sim", "s", "yes", "y", "true", "1"}


def _coerce_flag(value: bool | str | int | None) -> bool | None:
    """The bot sends libras as "sim"/"não", true/false or 1/0."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = value.strip().lower()
    if not text:
        return None
    return text in TRUTHY


class WebhookModel(BaseModel):
    """Common config: aliases, English names and unknown fields ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)


class CreateEventPayload(WebhookModel):
    """POST /create-event"""

    name: str | None = Field(default=None, alias="nome")
    email: str | None = None
    phone: str | None = Field(default=None, alias="fone")
    channel: str | None = Field(default=None, alias="tipo_atd")
    date: str | None = Field(default=None, alias="data")
    time: str | None = Field(default=None, alias="hora")
    payment_method: str | None = Field(default=None, alias="pagto")
    accessibility: bool | None = Field(default=None, alias="libras")
    reservation_id: str | None = Field(default=None, alias="res_id")
    notes: str | None = Field(default=None, alias="obs")

    @field_validator("accessibility", mode="before")
    @classmethod
    def parse_accessibility(cls, v: bool | str | int | None) -> bool | None:
        return _coerce_flag(v)

    @field_validator("phone", "reservation_id", "time", mode="before")
    @classmethod
    def stringify(cls, v: str | int | None) -> str | None:
        # Spreadsheet-driven bots send numbers for phone, id and bare hours
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v

    def to_request(self) -> ReservationRequest:
        return ReservationRequest(
            reservation_id=self.reservation_id,
            name=self.name,
            email=self.email,
            phone=self.phone,
            channel=self.channel,
            date=self.date,
            time=self.time,
            payment_method=self.payment_method,
            accessibility=bool(self.accessibility),
            notes=self.notes,
        )


class ReschedulePayload(WebhookModel):
    """POST /reschedule-by-reservation"""

    reservation_id: str | None = Field(default=None, alias="res_id")
    date: str | None = Field(default=None, alias="data")
    time: str | None = Field(default=None, alias="hora")
    channel: str | None = Field(default=None, alias="tipo_atd")

    @field_validator("reservation_id", "time", mode="before")
    @classmethod
    def stringify(cls, v: str | int | None) -> str | None:
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


class ReservationIdPayload(WebhookModel):
    """POST /cancel and POST /check-by-reservation"""

    reservation_id: str | None = Field(default=None, alias="res_id")

    @field_validator("reservation_id", mode="before")
    @classmethod
    def stringify(cls, v: str | int | None) -> str | None:
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


class AvailabilityPayload(WebhookModel):
    """POST /availability"""

    date: str | None = Field(default=None, alias="data")


class UpdateEventPayload(WebhookModel):
    """POST /update-event"""

    event_id: str | None = None
    name: str | None = Field(default=None, alias="nome")
    email: str | None = None
    phone: str | None = Field(default=None, alias="fone")
    channel: str | None = Field(default=None, alias="tipo_atd")
    date: str | None = Field(default=None, alias="data")
    time: str | None = Field(default=None, alias="hora")
    payment_method: str | None = Field(default=None, alias="pagto")
    accessibility: bool | None = Field(default=None, alias="libras")
    location: str | None = Field(default=None, alias="local")
    notes: str | None = Field(default=None, alias="obs")

    @field_validator("accessibility", mode="before")
    @classmethod
    def parse_accessibility(cls, v: bool | str | int | None) -> bool | None:
        return _coerce_flag(v)

    @field_validator("phone", "time", mode="before")
    @classmethod
    def stringify(cls, v: str | int | None) -> str | None:
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v

    def to_update(self) -> EventUpdate:
        return EventUpdate(
            name=self.name,
            email=self.email,
            phone=self.phone,
            channel=self.channel,
            date=self.date,
            time=self.time,
            payment_method=self.payment_method,
            accessibility=self.accessibility,
            location=self.location,
            notes=self.notes,
        )


class DeleteEventPayload(WebhookModel):
    """POST /delete-event"""

    event_id: str | None = None

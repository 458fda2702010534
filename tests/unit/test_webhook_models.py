"""Unit tests for reservation webhook Pydantic models."""

import pytest

from api.models.reservation_webhook import (
    CreateEventPayload,
    ReschedulePayload,
    ReservationIdPayload,
    UpdateEventPayload,
)


class TestCreateEventPayload:
    """Tests for CreateEventPayload model."""

    def test_portuguese_field_names(self) -> None:
        payload = CreateEventPayload.model_validate({
            "nome": "  Maria Souza ",
            "fone": "11999990000",
            "tipo_atd": "presencial",
            "data": "14/03/2026",
            "hora": "10:00",
            "pagto": "cartão",
            "libras": "sim",
            "res_id": "res-1001",
            "obs": "Primeira consulta",
        })

        request = payload.to_request()

        assert request.name == "Maria Souza"
        assert request.channel == "presencial"
        assert request.payment_method == "cartão"
        assert request.accessibility is True
        assert request.reservation_id == "res-1001"
        assert request.notes == "Primeira consulta"

    def test_english_field_names(self) -> None:
        payload = CreateEventPayload.model_validate({
            "name": "John",
            "reservation_id": "res-1",
            "accessibility": False,
        })

        assert payload.name == "John"
        assert payload.reservation_id == "res-1"
        assert payload.accessibility is False

    @pytest.mark.parametrize(
        "value,expected",
        [("sim", True), ("Não", False), ("true", True), (1, True), (0, False), (True, True), ("", None)],
    )
    def test_accessibility_flag(self, value, expected) -> None:
        payload = CreateEventPayload.model_validate({"libras": value})
        assert payload.accessibility is expected

    def test_missing_accessibility_means_no(self) -> None:
        assert CreateEventPayload.model_validate({}).to_request().accessibility is False

    def test_numbers_become_strings(self) -> None:
        payload = CreateEventPayload.model_validate({"hora": 9, "res_id": 77, "fone": 11999990000})

        assert payload.time == "9"
        assert payload.reservation_id == "77"
        assert payload.phone == "11999990000"

    def test_unknown_fields_ignored(self) -> None:
        payload = CreateEventPayload.model_validate({"nome": "A", "valor": "150", "local": "x"})
        assert payload.name == "A"


class TestOtherPayloads:

    def test_reschedule_payload(self) -> None:
        payload = ReschedulePayload.model_validate(
            {"res_id": "res-1", "data": "15/03/2026", "hora": "19", "tipo_atd": "online"}
        )

        assert (payload.reservation_id, payload.date, payload.time, payload.channel) == (
            "res-1", "15/03/2026", "19", "online"
        )

    def test_reservation_id_payload(self) -> None:
        assert ReservationIdPayload.model_validate({"res_id": 1001}).reservation_id == "1001"

    def test_update_payload_keeps_unset_fields_none(self) -> None:
        update = UpdateEventPayload.model_validate({"event_id": "evt-1", "local": "Sala 2"}).to_update()

        assert update.location == "Sala 2"
        assert update.name is None
        assert update.accessibility is None

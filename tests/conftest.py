"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
Every test runs against the in-memory calendar: nothing here talks to Google
or Redis.
"""

import os

import pytest

# Keep a developer's .env / shell from leaking into the app module's settings
# Must be set BEFORE any imports of shared.config consumers
os.environ["CALENDAR_BACKEND"] = "memory"
os.environ["GOOGLE_CALENDAR_ID"] = "agenda-test"
os.environ["SLOT_LOCK_BACKEND"] = "memory"
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret-0123456789abcdef"

from agenda.gateways.memory_gateway import InMemoryCalendarGateway  # noqa: E402
from agenda.models import ReservationRequest  # noqa: E402
from agenda.services.reservation_service import ReservationLifecycleManager  # noqa: E402
from agenda.utils import event_description as desc  # noqa: E402
from shared.config import Settings  # noqa: E402

TEST_CALENDAR_ID = "agenda-test"
TEST_WEBHOOK_SECRET = "test-webhook-secret-0123456789abcdef"


def build_settings(**overrides) -> Settings:
    """Settings independent of the environment, with test defaults."""
    values = {
        "WEBHOOK_SECRET": TEST_WEBHOOK_SECRET,
        "CALENDAR_BACKEND": "memory",
        "GOOGLE_CALENDAR_ID": TEST_CALENDAR_ID,
        "RESERVATION_LOOKBACK_DAYS": 0,
        "SLOT_LOCK_WAIT_SECONDS": 2.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def make_settings():
    """Factory for Settings with test defaults plus overrides."""
    return build_settings


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def gateway(settings) -> InMemoryCalendarGateway:
    return InMemoryCalendarGateway(settings.TIMEZONE)


@pytest.fixture
def manager(gateway, settings) -> ReservationLifecycleManager:
    return ReservationLifecycleManager(gateway, settings)


@pytest.fixture
def make_request():
    """Factory for valid create requests; override any field by keyword."""

    def _make(**overrides) -> ReservationRequest:
        values = {
            "reservation_id": "res-1001",
            "name": "Maria Souza",
            "email": "maria@example.com",
            "phone": "11999990000",
            "channel": "presencial",
            "date": "14/03/2026",
            "time": "10:00",
            "payment_method": "pix",
            "accessibility": False,
        }
        values.update(overrides)
        return ReservationRequest(**values)

    return _make


@pytest.fixture
def seed_event(gateway):
    """Insert a raw event straight into the in-memory calendar."""

    async def _seed(
        start: str,
        end: str,
        *,
        summary: str = "Bloqueio",
        reservation_id: str | None = None,
        status: str = "confirmed",
        all_day: bool = False,
    ) -> dict:
        if all_day:
            times = {"start": {"date": start}, "end": {"date": end}}
        else:
            times = {
                "start": {"dateTime": start, "timeZone": "America/Sao_Paulo"},
                "end": {"dateTime": end, "timeZone": "America/Sao_Paulo"},
            }
        event = {"summary": summary, "status": status, **times}
        if reservation_id:
            event["description"] = desc.build_description([
                (desc.PATIENT, "Paciente Antigo"),
                (desc.CHANNEL, "in-person"),
                (desc.PRICE, "R$ 150,00"),
                (desc.RESERVATION, reservation_id),
            ])
        return await gateway.insert_event(TEST_CALENDAR_ID, event)

    return _seed
